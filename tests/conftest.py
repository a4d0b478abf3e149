"""
Pytest fixtures for the chat service tests.

테스트 구성:
- 저장소는 tmp_path 아래 실제 파일로 (FileLock 포함)
- producer/notifier 는 외부 호출 없는 fake 로 대체
"""

import base64
from collections.abc import AsyncGenerator, Callable
from pathlib import Path
from typing import Any

import pytest
import yaml

from src.app.providers.base import Fragment, ImageProvider, ImageResponse, TextProvider
from src.app.services.notifier import ChannelKey, EventKind, Notifier
from src.core.store import ConversationStore
from src.domain.schemas import Chat, ChatType

# 최소 PNG (시그니처 + IHDR 일부)
PNG_BYTES = b"\x89PNG\r\n\x1a\n" + b"\x00\x00\x00\rIHDR" + b"\x00" * 32


# =============================================================================
# Fakes
# =============================================================================

class RecordingNotifier(Notifier):
    """전송 대신 이벤트를 순서대로 기록."""

    def __init__(self) -> None:
        self.events: list[tuple[str, EventKind, dict[str, Any]]] = []

    def notify(
        self,
        channel: ChannelKey | str,
        kind: EventKind,
        payload: dict[str, Any],
    ) -> None:
        self.events.append((str(channel), kind, payload))

    @property
    def kinds(self) -> list[EventKind]:
        return [kind for _, kind, _ in self.events]

    def of_kind(self, kind: EventKind) -> list[dict[str, Any]]:
        return [payload for _, k, payload in self.events if k == kind]

    def channels_of(self, kind: EventKind) -> list[str]:
        return [channel for channel, k, _ in self.events if k == kind]


class FakeTextProvider(TextProvider):
    """
    정해진 fragment 를 순서대로 내보내는 producer.

    error_after: 이 개수만큼 내보낸 뒤 error 발생 (None 이면 끝까지)
    """

    def __init__(
        self,
        fragments: list[str],
        error: Exception | None = None,
        error_after: int | None = None,
    ) -> None:
        self.fragments = fragments
        self.error = error
        self.error_after = error_after
        self.calls: list[tuple[list[dict[str, str]], str]] = []
        self.closed = False

    async def stream(
        self,
        messages: list[dict[str, str]],
        model: str,
    ) -> AsyncGenerator[Fragment, None]:
        self.calls.append((messages, model))
        try:
            for index, text in enumerate(self.fragments):
                if self.error is not None and self.error_after == index:
                    raise self.error
                yield Fragment(text=text)
            if self.error is not None and (
                self.error_after is None or self.error_after >= len(self.fragments)
            ):
                raise self.error
        finally:
            self.closed = True


class FakeImageProvider(ImageProvider):
    """정해진 응답(또는 예외)을 돌려주는 이미지 producer."""

    def __init__(
        self,
        response: ImageResponse | None = None,
        error: Exception | None = None,
    ) -> None:
        self.response = response or ImageResponse(200, PNG_BYTES, "image/png")
        self.error = error
        self.calls: list[dict[str, Any]] = []

    async def generate(
        self,
        prompt: str,
        model: str,
        width: int,
        height: int,
        **kwargs: Any,
    ) -> ImageResponse:
        self.calls.append(
            {"prompt": prompt, "model": model, "width": width, "height": height}
        )
        if self.error is not None:
            raise self.error
        return self.response


# =============================================================================
# Path / Config Fixtures
# =============================================================================

@pytest.fixture
def project_root() -> Path:
    """프로젝트 루트 경로."""
    return Path(__file__).parent.parent


@pytest.fixture
def default_config(project_root: Path) -> dict:
    """default.yaml 로드."""
    with open(project_root / "default.yaml", encoding="utf-8") as f:
        return yaml.safe_load(f)


# =============================================================================
# Store Fixtures
# =============================================================================

@pytest.fixture
def store(tmp_path: Path) -> ConversationStore:
    """tmp_path 기반 저장소."""
    return ConversationStore(tmp_path / "data", lock_timeout=1.0)


@pytest.fixture
def text_chat(store: ConversationStore) -> Chat:
    return store.create_chat("user-1", "Hi! My name is Purple.", ChatType.TEXT, "llama3.1")


@pytest.fixture
def image_chat(store: ConversationStore) -> Chat:
    return store.create_chat(
        "user-1", "A serene mountain landscape at sunset", ChatType.IMAGE, "sdxl-turbo"
    )


# =============================================================================
# Fake Fixtures
# =============================================================================

@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def make_text_provider() -> Callable[..., FakeTextProvider]:
    """FakeTextProvider 팩토리."""
    return FakeTextProvider


@pytest.fixture
def make_image_provider() -> Callable[..., FakeImageProvider]:
    """FakeImageProvider 팩토리."""
    return FakeImageProvider


@pytest.fixture
def png_bytes() -> bytes:
    return PNG_BYTES


@pytest.fixture
def png_base64() -> str:
    return base64.b64encode(PNG_BYTES).decode("ascii")
