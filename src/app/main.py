"""
FastAPI 애플리케이션 진입점.

실행:
- 개발: uvicorn src.app.main:app --reload
- 프로덕션: uvicorn src.app.main:app
"""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from dotenv import load_dotenv
from fastapi import FastAPI

from src.app.providers import HttpImageProvider, OllamaTextProvider
from src.app.routes import chat
from src.app.services.chat_message import ChatMessageService
from src.app.services.image import ImageMessageService
from src.app.services.notifier import BroadcastNotifier
from src.app.settings import build_settings, load_config
from src.core.store import ConversationStore

logger = logging.getLogger(__name__)


# =============================================================================
# Lifespan
# =============================================================================


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """
    애플리케이션 생명주기 관리.

    시작 시: .env + 설정 로드, 저장소/알림/producer/오케스트레이터 초기화
    종료 시: producer HTTP 클라이언트 정리
    """
    # Startup
    load_dotenv()
    app.state.config = load_config()
    settings = build_settings(app.state.config)
    app.state.settings = settings

    app.state.store = ConversationStore(settings.data_root, settings.lock_timeout)
    app.state.notifier = BroadcastNotifier(settings.queue_size)

    text_provider = OllamaTextProvider(settings.text_url, settings.text_timeout)
    app.state.text_provider = text_provider
    app.state.chat_service = ChatMessageService(
        app.state.store,
        app.state.notifier,
        text_provider,
        flush_threshold=settings.flush_threshold,
        chunk_delay=settings.chunk_delay,
        flush_delay=settings.flush_delay,
        default_model=settings.text_default_model,
    )

    # 인증 토큰 없으면 이미지 채팅 비활성 (요청 시 503)
    image_provider = None
    if settings.image_auth_token:
        image_provider = HttpImageProvider(
            settings.image_url,
            auth_token=settings.image_auth_token,
            timeout=settings.image_timeout,
            read_timeout=settings.image_read_timeout,
        )
        app.state.image_service = ImageMessageService(
            app.state.store,
            app.state.notifier,
            image_provider,
            width=settings.image_width,
            height=settings.image_height,
        )
    else:
        logger.warning("IMAGE_GENERATION_AUTH_TOKEN not set, image chats disabled")
        app.state.image_service = None
    app.state.image_provider = image_provider

    yield

    # Shutdown
    await text_provider.aclose()
    if image_provider is not None:
        await image_provider.aclose()


# =============================================================================
# App Instance
# =============================================================================

app = FastAPI(
    title="AI Chat Service",
    description="텍스트 스트리밍 / 이미지 생성 채팅 + 실시간 알림",
    version="0.1.0",
    lifespan=lifespan,
)


# =============================================================================
# Routes
# =============================================================================

app.include_router(chat.api_router, prefix="/api", tags=["Chat API"])


@app.get("/health")
async def health() -> dict[str, str]:
    """헬스 체크."""
    return {"status": "ok"}


# =============================================================================
# CLI Entry Point
# =============================================================================

if __name__ == "__main__":
    import uvicorn

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )
    uvicorn.run(
        "src.app.main:app",
        host="127.0.0.1",
        port=8000,
        reload=True,
    )
