"""
test_image_http.py - HTTP 이미지 Provider 테스트
"""

import json

import httpx
import pytest

from src.app.providers.image_http import HttpImageProvider
from src.domain.errors import ErrorCodes, ProducerError, RequestTimeoutError

URL = "http://image.test/generate"


def make_provider(handler, token: str = "Bearer secret") -> HttpImageProvider:
    return HttpImageProvider(
        URL,
        auth_token=token,
        timeout=5,
        read_timeout=10,
        transport=httpx.MockTransport(handler),
    )


class TestHttpImageProvider:
    """generate() 테스트."""

    def test_missing_token_fails_fast(self, monkeypatch):
        monkeypatch.delenv("IMAGE_GENERATION_AUTH_TOKEN", raising=False)

        with pytest.raises(ProducerError) as exc_info:
            HttpImageProvider(URL)

        assert exc_info.value.code == ErrorCodes.IMAGE_AUTH_MISSING

    def test_token_from_env(self, monkeypatch):
        monkeypatch.setenv("IMAGE_GENERATION_AUTH_TOKEN", "env-token")

        assert HttpImageProvider(URL).auth_token == "env-token"

    @pytest.mark.asyncio
    async def test_request_shape(self, png_bytes: bytes):
        requests: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            requests.append(request)
            return httpx.Response(
                200, content=png_bytes, headers={"content-type": "image/png"}
            )

        provider = make_provider(handler)
        response = await provider.generate("A cat", "sdxl-turbo", 512, 768)

        assert response.success is True
        assert response.body == png_bytes
        assert response.content_type == "image/png"

        request = requests[0]
        assert str(request.url) == URL
        assert request.headers["Authorization"] == "Bearer secret"
        assert request.headers["Accept"] == "application/json"
        assert json.loads(request.content) == {
            "prompt": "A cat",
            "model_type": "sdxl-turbo",
            "width": 512,
            "height": 768,
        }
        await provider.aclose()

    @pytest.mark.asyncio
    async def test_error_status_returned_not_raised(self):
        """상태 코드 판정은 오케스트레이터 몫."""
        provider = make_provider(lambda request: httpx.Response(400, text="Bad Request"))

        response = await provider.generate("A cat", "sdxl-turbo", 512, 512)

        assert response.success is False
        assert response.status_code == 400
        assert response.text == "Bad Request"

    @pytest.mark.asyncio
    async def test_timeout(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("read timed out", request=request)

        provider = make_provider(handler)

        with pytest.raises(RequestTimeoutError) as exc_info:
            await provider.generate("A cat", "sdxl-turbo", 512, 512)

        assert exc_info.value.code == ErrorCodes.IMAGE_REQUEST_TIMEOUT

    @pytest.mark.asyncio
    async def test_transport_error(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        provider = make_provider(handler)

        with pytest.raises(ProducerError) as exc_info:
            await provider.generate("A cat", "sdxl-turbo", 512, 512)

        assert exc_info.value.code == ErrorCodes.IMAGE_TRANSPORT_FAILED
