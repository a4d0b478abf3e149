"""
HTTP 이미지 생성 Provider.

POST IMAGE_GENERATION_URL
    {"prompt": ..., "model_type": <chat.ai_model_name>, "width": 512, "height": 512}
헤더 Authorization 은 토큰 그대로 전달 (Bearer 접두사는 토큰에 포함시킬 것).

응답 판정(상태 코드, payload 디코딩)은 오케스트레이터 몫.
"""

import logging
import os
from typing import Any

import httpx

from src.domain.constants import DEFAULT_IMAGE_READ_TIMEOUT, DEFAULT_IMAGE_TIMEOUT
from src.domain.errors import ErrorCodes, ProducerError, RequestTimeoutError

from .base import ImageProvider, ImageResponse

logger = logging.getLogger(__name__)


class HttpImageProvider(ImageProvider):
    """
    이미지 생성 API Provider.

    Usage:
        provider = HttpImageProvider(url="http://gpu:7860/generate", auth_token="...")
        response = await provider.generate("A cat", "sdxl-turbo", 512, 512)
    """

    def __init__(
        self,
        url: str,
        auth_token: str | None = None,
        timeout: float = DEFAULT_IMAGE_TIMEOUT,
        read_timeout: float = DEFAULT_IMAGE_READ_TIMEOUT,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        """
        Args:
            url: 이미지 생성 엔드포인트
            auth_token: 인증 토큰 (없으면 IMAGE_GENERATION_AUTH_TOKEN 환경변수)
            timeout: 연결 타임아웃 (초)
            read_timeout: 읽기 타임아웃 (초)
            transport: 테스트용 httpx transport

        Raises:
            ProducerError: 토큰이 없을 때 (fail-fast)
        """
        self.url = url
        self.auth_token = auth_token or os.environ.get("IMAGE_GENERATION_AUTH_TOKEN")

        # Fail-fast: 토큰 없으면 요청 시점의 모호한 401 대신 즉시 에러
        if not self.auth_token:
            raise ProducerError(
                ErrorCodes.IMAGE_AUTH_MISSING,
                "이미지 생성 인증 토큰이 없습니다. "
                "IMAGE_GENERATION_AUTH_TOKEN 환경변수를 설정하세요.",
            )

        self.timeout = timeout
        self.read_timeout = read_timeout
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    def _get_client(self) -> httpx.AsyncClient:
        """httpx 클라이언트 (lazy init)."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=httpx.Timeout(self.timeout, read=self.read_timeout),
                transport=self._transport,
            )
        return self._client

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    def _build_headers(self) -> dict[str, str]:
        return {
            "Authorization": str(self.auth_token),
            "Content-Type": "application/json",
            "Accept": "application/json",
        }

    async def generate(
        self,
        prompt: str,
        model: str,
        width: int,
        height: int,
        **kwargs: Any,
    ) -> ImageResponse:
        payload: dict[str, Any] = {
            "prompt": prompt,
            "model_type": model,
            "width": width,
            "height": height,
            **kwargs,
        }

        try:
            response = await self._get_client().post(
                self.url,
                json=payload,
                headers=self._build_headers(),
            )
        except httpx.TimeoutException as e:
            logger.error(f"Image request timed out after {self.read_timeout}s: {e}")
            raise RequestTimeoutError(
                ErrorCodes.IMAGE_REQUEST_TIMEOUT,
                f"Image generation timed out: {e}",
                timeout=self.read_timeout,
            ) from e
        except httpx.HTTPError as e:
            logger.error(f"Image request failed: {e}")
            raise ProducerError(
                ErrorCodes.IMAGE_TRANSPORT_FAILED,
                f"Image generation request failed: {e}",
            ) from e

        return ImageResponse(
            status_code=response.status_code,
            body=response.content,
            content_type=response.headers.get("content-type"),
        )
