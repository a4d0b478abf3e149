"""
AI Provider 추상 인터페이스.

- TextProvider: (대화 turn 목록, 모델) → fragment 의 lazy 비동기 시퀀스
- ImageProvider: (prompt, 모델, 크기) → 단일 HTTP 응답

모델명은 chat.ai_model_name 이 SSOT (provider 는 전달만).
"""

from abc import ABC, abstractmethod
from collections.abc import AsyncGenerator
from dataclasses import dataclass
from typing import Any

# =============================================================================
# Result Data Classes
# =============================================================================

@dataclass
class Fragment:
    """스트리밍 producer 가 내보내는 텍스트 조각."""
    text: str
    done: bool = False


@dataclass
class ImageResponse:
    """
    이미지 생성 서버 응답.

    body 는 raw 이미지 바이트 또는 base64 필드를 가진 JSON.
    """
    status_code: int
    body: bytes
    content_type: str | None = None

    @property
    def success(self) -> bool:
        return 200 <= self.status_code < 300

    @property
    def text(self) -> str:
        return self.body.decode("utf-8", errors="replace")


# =============================================================================
# Abstract Providers
# =============================================================================

class TextProvider(ABC):
    """
    텍스트 스트리밍 Provider.

    역할: 대화 context → 증분 텍스트
    """

    @abstractmethod
    def stream(
        self,
        messages: list[dict[str, str]],
        model: str,
    ) -> AsyncGenerator[Fragment, None]:
        """
        대화 응답 스트리밍.

        Args:
            messages: [{"role": "user"|"assistant", "content": ...}, ...]
            model: 모델 ID

        Yields:
            Fragment (도중 어느 시점에서든 ProducerError 가능)

        소비자는 도중 중단 시 aclose() 로 스트림을 닫음.
        """
        ...


class ImageProvider(ABC):
    """
    이미지 생성 Provider.

    역할: prompt → 이미지 응답 (단일 호출)
    """

    @abstractmethod
    async def generate(
        self,
        prompt: str,
        model: str,
        width: int,
        height: int,
        **kwargs: Any,
    ) -> ImageResponse:
        """
        이미지 생성 요청.

        Returns:
            ImageResponse (상태 코드 판정은 호출자 몫)

        Raises:
            RequestTimeoutError: 시간 초과
            ProducerError: 전송 실패
        """
        ...
