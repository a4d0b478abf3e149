"""
Background jobs: 제출 1건 = 오케스트레이터 호출 1회.

라우트가 BackgroundTasks 로 예약. 재시도 없음 (결과 로그만 남김).
"""

import logging

from src.app.services.chat_message import ChatMessageService
from src.app.services.image import ImageMessageService
from src.domain.schemas import ServiceResult

logger = logging.getLogger(__name__)


async def run_chat_message_job(
    service: ChatMessageService,
    prompt: str,
    chat_id: str | None = None,
    user_id: str | None = None,
    model_id: str | None = None,
) -> ServiceResult:
    """텍스트 메시지 job."""
    logger.info(f"Chat message job started: chat={chat_id or '-'} user={user_id or '-'}")
    result = await service.call(
        prompt=prompt, chat_id=chat_id, user_id=user_id, model_id=model_id
    )
    if result.success:
        message_id = result.message.id if result.message else None
        logger.info(f"Chat message job finished: chat={chat_id or '-'} message={message_id}")
    else:
        logger.warning(f"Chat message job failed: {result.full_messages()}")
    return result


async def run_image_job(
    service: ImageMessageService,
    prompt: str,
    chat_id: str,
) -> ServiceResult:
    """이미지 생성 job."""
    logger.info(f"Image job started: chat={chat_id}")
    result = await service.call(prompt=prompt, chat_id=chat_id)
    if result.success:
        message_id = result.message.id if result.message else None
        logger.info(f"Image job finished: chat={chat_id} message={message_id}")
    else:
        logger.warning(f"Image job failed: {result.full_messages()}")
    return result
