"""
test_api_chat.py - Chat API E2E 테스트

실제 앱(lifespan 포함) + 실제 저장소/알림, producer 만 fake 로 교체.

시나리오:
- 텍스트 채팅 생성 → 스트림 응답 저장
- 이미지 채팅 생성 → 이미지 첨부 → 다운로드
- 이미지 서버 400 → 메시지 없음 + 사용자 에러 알림
"""

from collections.abc import Generator
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

from src.app.main import app
from src.app.providers.base import ImageResponse
from src.app.services.chat_message import ChatMessageService
from src.app.services.image import ImageMessageService
from src.app.services.notifier import EventKind

# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def client(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> Generator[TestClient, None, None]:
    """FastAPI TestClient (데이터는 tmp_path, 이미지 토큰 설정)."""
    monkeypatch.setenv("CHAT_DATA_ROOT", str(tmp_path / "data"))
    monkeypatch.setenv("IMAGE_GENERATION_AUTH_TOKEN", "Bearer test-token")

    with TestClient(app) as client:
        yield client


def use_fakes(text_provider, image_provider) -> None:
    """lifespan 이 만든 서비스를 fake producer 기반으로 교체."""
    state = app.state
    state.chat_service = ChatMessageService(
        state.store, state.notifier, text_provider, flush_threshold=2, chunk_delay=0, flush_delay=0
    )
    state.image_service = ImageMessageService(state.store, state.notifier, image_provider)


# =============================================================================
# Health Check
# =============================================================================


def test_health(client: TestClient):
    response = client.get("/health")

    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


def test_lifespan_wiring(client: TestClient, tmp_path: Path):
    assert app.state.store.data_root == tmp_path / "data"
    assert app.state.image_service is not None


# =============================================================================
# Text Chat
# =============================================================================


def test_text_chat_flow(client: TestClient, make_text_provider, make_image_provider):
    """채팅 생성 → 첫 응답 저장 → 후속 메시지는 이전 대화를 context 로."""
    text_provider = make_text_provider(["Hi", ", ", "Purple!"])
    use_fakes(text_provider, make_image_provider())

    created = client.post(
        "/api/chats",
        data={"user_id": "user-1", "prompt": "Hi! My name is Purple.", "chat_type": "text"},
    )
    assert created.status_code == 201
    chat_id = created.json()["chat"]["id"]

    chat = client.get(f"/api/chats/{chat_id}").json()
    assert [m["answer"] for m in chat["messages"]] == ["Hi, Purple!"]

    sent = client.post(f"/api/chats/{chat_id}/messages", data={"prompt": "What's my name?"})
    assert sent.status_code == 202

    messages, _ = text_provider.calls[1]
    assert messages[0] == {"role": "user", "content": "Hi! My name is Purple."}
    assert messages[-1] == {"role": "user", "content": "What's my name?"}
    assert len(client.get(f"/api/chats/{chat_id}").json()["messages"]) == 2


# =============================================================================
# Image Chat
# =============================================================================


def test_image_chat_flow(
    client: TestClient, make_text_provider, make_image_provider, png_bytes: bytes
):
    use_fakes(make_text_provider([]), make_image_provider())

    created = client.post(
        "/api/chats",
        data={
            "user_id": "user-1",
            "prompt": "A serene mountain landscape at sunset",
            "chat_type": "image",
        },
    )
    assert created.status_code == 201
    chat_id = created.json()["chat"]["id"]

    message = client.get(f"/api/chats/{chat_id}").json()["messages"][0]
    assert message["generated_image"]["mime_type"] == "image/png"

    image = client.get(f"/api/chats/{chat_id}/messages/{message['id']}/image")
    assert image.status_code == 200
    assert image.content == png_bytes


def test_image_bad_request_notifies_owner(
    client: TestClient, make_text_provider, make_image_provider
):
    """이미지 서버 400: 메시지 없음 + 사용자 채널로 에러 1건."""
    use_fakes(
        make_text_provider([]),
        make_image_provider(ImageResponse(400, b"Bad Request", "text/plain")),
    )
    errors = app.state.notifier.subscribe("user:user-1:notifications")

    created = client.post(
        "/api/chats",
        data={
            "user_id": "user-1",
            "prompt": "A beautiful sunset over the mountains",
            "chat_type": "image",
        },
    )
    chat_id = created.json()["chat"]["id"]

    assert client.get(f"/api/chats/{chat_id}").json()["messages"] == []
    event = errors.get_nowait()
    assert event.kind == EventKind.ERROR
    assert event.payload["message"] == (
        "Image generation failed: Status 400. Details: Bad Request"
    )
    assert errors.empty()
