"""
Ollama 텍스트 스트리밍 Provider.

POST {base_url}/api/chat (stream=true) → NDJSON 라인:
    {"message": {"role": "assistant", "content": "Hel"}, "done": false}
    ...
    {"message": {"role": "assistant", "content": ""}, "done": true}

재시도 없음: 실패는 ProducerError 로 오케스트레이터에 전달.
"""

import json
import logging
from collections.abc import AsyncGenerator
from typing import Any

import httpx

from src.domain.constants import DEFAULT_TEXT_TIMEOUT, ERROR_BODY_MAX_LENGTH
from src.domain.errors import ErrorCodes, ProducerError

from .base import Fragment, TextProvider

logger = logging.getLogger(__name__)


class OllamaTextProvider(TextProvider):
    """
    Ollama chat API Provider.

    Usage:
        provider = OllamaTextProvider(base_url="http://localhost:11434")
        async for fragment in provider.stream(messages, model="llama3.1"):
            print(fragment.text, end="")
    """

    CHAT_PATH = "/api/chat"

    def __init__(
        self,
        base_url: str,
        timeout: float = DEFAULT_TEXT_TIMEOUT,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        """
        Args:
            base_url: Ollama 서버 URL (TEXT_GENERATION_URL)
            timeout: 요청/읽기 타임아웃 (초)
            transport: 테스트용 httpx transport
        """
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    def _get_client(self) -> httpx.AsyncClient:
        """httpx 클라이언트 (lazy init)."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                timeout=self.timeout,
                transport=self._transport,
            )
        return self._client

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def stream(
        self,
        messages: list[dict[str, str]],
        model: str,
    ) -> AsyncGenerator[Fragment, None]:
        payload: dict[str, Any] = {
            "model": model,
            "messages": messages,
            "stream": True,
        }

        try:
            async with self._get_client().stream(
                "POST", self.CHAT_PATH, json=payload
            ) as response:
                if response.status_code != 200:
                    body = (await response.aread()).decode("utf-8", errors="replace")
                    raise ProducerError(
                        ErrorCodes.TEXT_REQUEST_FAILED,
                        f"Text generation failed: Status {response.status_code}. "
                        f"Details: {body[:ERROR_BODY_MAX_LENGTH] or 'No details provided.'}",
                        status=response.status_code,
                    )

                async for line in response.aiter_lines():
                    if not line.strip():
                        continue

                    fragment = self._parse_line(line)
                    if fragment.text:
                        yield fragment
                    if fragment.done:
                        break

        except httpx.HTTPError as e:
            logger.error(f"Text stream failed: {e}")
            raise ProducerError(
                ErrorCodes.TEXT_STREAM_FAILED,
                f"Text generation stream failed: {e}",
                model=model,
            ) from e

    @staticmethod
    def _parse_line(line: str) -> Fragment:
        """
        NDJSON 한 줄 → Fragment.

        Raises:
            ProducerError: 잘못된 JSON 또는 서버 측 에러 라인
        """
        try:
            data = json.loads(line)
        except json.JSONDecodeError as e:
            raise ProducerError(
                ErrorCodes.TEXT_STREAM_FAILED,
                f"Invalid stream line: {line[:ERROR_BODY_MAX_LENGTH]}",
            ) from e

        if not isinstance(data, dict):
            raise ProducerError(
                ErrorCodes.TEXT_STREAM_FAILED,
                f"Invalid stream line: {line[:ERROR_BODY_MAX_LENGTH]}",
            )

        if data.get("error"):
            raise ProducerError(
                ErrorCodes.TEXT_PROVIDER_ERROR,
                str(data["error"]),
            )

        message = data.get("message") or {}
        return Fragment(
            text=str(message.get("content") or ""),
            done=bool(data.get("done", False)),
        )
