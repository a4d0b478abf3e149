"""
Chat Routes: 채팅/메시지 API + 알림 SSE 스트림.

- GET    /api/models                                  → 모델 카탈로그
- POST   /api/chats                                   → 채팅 생성 + 첫 메시지 예약
- GET    /api/chats/{chat_id}                         → 채팅 + 메시지
- DELETE /api/chats/{chat_id}                         → 채팅 삭제
- POST   /api/chats/{chat_id}/messages                → 메시지 예약 (modality 별 job)
- PATCH  /api/chats/{chat_id}/messages/{message_id}   → context 포함/제외
- GET    /api/chats/{chat_id}/messages/{message_id}/image → 생성 이미지
- GET    /api/chat/stream?channel=<key>               → SSE 스트림

생성 작업은 모두 BackgroundTasks 로 예약하고 즉시 반환.
결과는 SSE 채널(chat/message/user)로 전달됨.
"""

import asyncio
import json
import logging
from collections.abc import AsyncGenerator, Awaitable, Callable
from datetime import UTC, datetime
from typing import Any

from fastapi import APIRouter, BackgroundTasks, Form, HTTPException, Query, Request, Response
from fastapi.responses import FileResponse, StreamingResponse

from src.app.jobs import run_chat_message_job, run_image_job
from src.app.services.chat_message import ChatMessageService
from src.app.services.image import ImageMessageService
from src.app.services.notifier import BroadcastNotifier
from src.core import registry
from src.core.store import ConversationStore
from src.domain.constants import DEFAULT_HEARTBEAT_INTERVAL
from src.domain.errors import ErrorCodes, PersistenceError, ValidationError
from src.domain.schemas import Chat, ChatType

logger = logging.getLogger(__name__)

api_router = APIRouter()


def get_store(request: Request) -> ConversationStore:
    return request.app.state.store


def _not_found(chat_id: str) -> HTTPException:
    return HTTPException(
        status_code=404,
        detail={"code": ErrorCodes.CHAT_NOT_FOUND, "message": f"Chat '{chat_id}' not found"},
    )


def _get_image_service(request: Request) -> ImageMessageService:
    """이미지 producer 미설정(인증 토큰 없음)이면 503."""
    service: ImageMessageService | None = request.app.state.image_service
    if service is None:
        raise HTTPException(
            status_code=503,
            detail={
                "code": ErrorCodes.IMAGE_AUTH_MISSING,
                "message": "Image generation is not configured",
            },
        )
    return service


def _schedule_message(
    request: Request,
    background_tasks: BackgroundTasks,
    chat: Chat,
    prompt: str,
) -> None:
    """채팅 modality 에 맞는 job 예약."""
    if chat.chat_type == ChatType.IMAGE:
        background_tasks.add_task(
            run_image_job, _get_image_service(request), prompt, chat.id
        )
    else:
        chat_service: ChatMessageService = request.app.state.chat_service
        background_tasks.add_task(
            run_chat_message_job, chat_service, prompt, chat_id=chat.id
        )


# =============================================================================
# Catalog
# =============================================================================

@api_router.get("/models")
async def list_models() -> dict[str, Any]:
    """지원 모델 목록 (modality 별)."""
    return {
        "models": registry.catalog(),
        "defaults": {t.value: registry.default_model(t) for t in ChatType},
    }


# =============================================================================
# Chats
# =============================================================================

@api_router.post("/chats", status_code=201)
async def create_chat(
    request: Request,
    background_tasks: BackgroundTasks,
    user_id: str = Form(...),
    prompt: str = Form(...),
    chat_type: str = Form(ChatType.TEXT.value),
    ai_model_name: str | None = Form(None),
) -> dict[str, Any]:
    """
    채팅 생성 + 첫 메시지 job 예약.

    Returns:
        {"chat": {...}} (201)
    """
    if not prompt.strip():
        raise HTTPException(
            status_code=422,
            detail={"code": ErrorCodes.MISSING_REQUIRED_FIELD, "message": "prompt is required"},
        )

    if chat_type == ChatType.IMAGE.value:
        _get_image_service(request)

    model_id = ai_model_name
    if not model_id:
        try:
            model_id = registry.default_model(chat_type)
        except ValueError:
            model_id = None  # create_chat 이 INVALID_CHAT_TYPE 으로 거절

    try:
        chat = get_store(request).create_chat(user_id, prompt, chat_type, model_id)
    except ValidationError as e:
        raise HTTPException(
            status_code=422, detail={"code": e.code, "message": e.message}
        ) from e

    _schedule_message(request, background_tasks, chat, prompt)
    return {"chat": chat.to_dict()}


@api_router.get("/chats/{chat_id}")
async def get_chat(request: Request, chat_id: str) -> dict[str, Any]:
    """채팅 + 메시지 전체 (재접속 시 상태 복구용)."""
    store = get_store(request)
    chat = store.find_chat(chat_id)
    if chat is None:
        raise _not_found(chat_id)

    return {
        "chat": chat.to_dict(),
        "messages": [m.to_dict() for m in store.list_messages(chat_id)],
    }


@api_router.delete("/chats/{chat_id}", status_code=204)
async def delete_chat(request: Request, chat_id: str) -> Response:
    if not get_store(request).delete_chat(chat_id):
        raise _not_found(chat_id)
    return Response(status_code=204)


# =============================================================================
# Messages
# =============================================================================

@api_router.post("/chats/{chat_id}/messages", status_code=202)
async def send_message(
    request: Request,
    background_tasks: BackgroundTasks,
    chat_id: str,
    prompt: str = Form(...),
) -> dict[str, Any]:
    """
    메시지 job 예약 (즉시 202).

    prompt 검증은 오케스트레이터가 수행하고 실패는 사용자 알림 채널로 전달.
    """
    chat = get_store(request).find_chat(chat_id)
    if chat is None:
        raise _not_found(chat_id)

    _schedule_message(request, background_tasks, chat, prompt)
    return {"chat_id": chat.id, "status": "accepted"}


@api_router.patch("/chats/{chat_id}/messages/{message_id}")
async def update_message(
    request: Request,
    chat_id: str,
    message_id: int,
    excluded: bool = Form(...),
) -> dict[str, Any]:
    """메시지 context 포함/제외 토글."""
    try:
        message = get_store(request).set_excluded(chat_id, message_id, excluded)
    except PersistenceError as e:
        if e.code in (ErrorCodes.CHAT_NOT_FOUND, ErrorCodes.MESSAGE_NOT_FOUND):
            raise HTTPException(
                status_code=404, detail={"code": e.code, "message": e.message}
            ) from e
        raise
    return {"message": message.to_dict()}


@api_router.get("/chats/{chat_id}/messages/{message_id}/image")
async def get_message_image(
    request: Request,
    chat_id: str,
    message_id: int,
) -> FileResponse:
    """생성 이미지 파일."""
    store = get_store(request)
    message = store.get_message(chat_id, message_id)
    path = store.image_path(chat_id, message_id)
    if message is None or message.generated_image is None or path is None:
        raise HTTPException(
            status_code=404,
            detail={"code": ErrorCodes.MESSAGE_NOT_FOUND, "message": "Image not found"},
        )

    return FileResponse(
        path=path,
        filename=message.generated_image.filename,
        media_type=message.generated_image.mime_type,
    )


# =============================================================================
# SSE Stream
# =============================================================================

async def iter_channel_events(
    notifier: BroadcastNotifier,
    channel: str,
    is_disconnected: Callable[[], Awaitable[bool]],
    heartbeat_interval: float = DEFAULT_HEARTBEAT_INTERVAL,
) -> AsyncGenerator[str, None]:
    """
    채널 이벤트 → SSE 프레임.

    이벤트가 heartbeat_interval 동안 없으면 heartbeat 프레임 전송.
    클라이언트 연결이 끊기면 구독 해제 후 종료.
    """
    queue = notifier.subscribe(channel)
    logger.info(f"SSE subscribed: {channel}")
    try:
        while True:
            if await is_disconnected():
                break

            try:
                event = await asyncio.wait_for(queue.get(), timeout=heartbeat_interval)
            except TimeoutError:
                heartbeat = {"time": datetime.now(UTC).isoformat()}
                yield f"event: heartbeat\ndata: {json.dumps(heartbeat)}\n\n"
                continue

            yield event.to_sse()
    finally:
        notifier.unsubscribe(channel, queue)
        logger.info(f"SSE unsubscribed: {channel}")


@api_router.get("/chat/stream")
async def chat_stream(
    request: Request,
    channel: str = Query(..., min_length=1),
) -> StreamingResponse:
    """
    SSE 스트림.

    channel 예:
    - chat:<chat_id>:messages
    - message:<chat_id>-<message_id>:answer
    - user:<user_id>:notifications
    """
    settings = request.app.state.settings
    return StreamingResponse(
        iter_channel_events(
            request.app.state.notifier,
            channel,
            request.is_disconnected,
            settings.heartbeat_interval,
        ),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
        },
    )
