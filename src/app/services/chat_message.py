"""
Chat Message Service: prompt 1건 → 스트리밍 응답 저장 + UI 증분 알림.

상태 흐름 (요청 1건당 1회 실행):
    Validating → Resolving → Spinning → Streaming → Flushing* → Finalizing → Done
    (어느 단계에서든 → Errored)

규칙:
- 메시지는 첫 fragment 도착 시점에 생성 (검증 실패/첫 fragment 전 실패 시 생성 안 함)
- fragment 마다 chunk 알림, flush_threshold 개마다 저장 + 메시지 교체 알림
- 스트림 종료 시 전체 answer 최종 저장 + 교체 알림 1회 (직전 flush 와 같아도 수행)
- 빈 응답(fragment 0개)은 에러 아님: 메시지 없음, 최종 저장 없음
- 에러는 경계에서 모두 잡아 소유자 알림 1건으로 변환 (재시도 없음, 호출자 몫)
"""

import asyncio
import logging
from contextlib import aclosing

from src.app.providers.base import TextProvider
from src.app.services.accumulator import ChunkAccumulator
from src.app.services.notifier import ChatBroadcaster, Notifier
from src.core import registry
from src.core.store import ConversationStore
from src.domain.constants import (
    DEFAULT_CHUNK_DELAY,
    DEFAULT_FLUSH_DELAY,
    DEFAULT_FLUSH_THRESHOLD,
)
from src.domain.errors import ChatServiceError, ErrorCodes, ValidationError
from src.domain.schemas import BASE_FIELD, Chat, ChatType, Message, ServiceResult

logger = logging.getLogger(__name__)


class ChatMessageService:
    """
    텍스트 채팅 스트림 오케스트레이터.

    Usage:
        # 새 채팅 생성 + 첫 메시지
        result = await service.call(prompt="Hi!", user_id="user-1")
        # 기존 채팅에 메시지 추가
        result = await service.call(prompt='Define the term "AI"', chat_id=chat.id)
    """

    def __init__(
        self,
        store: ConversationStore,
        notifier: Notifier,
        text_provider: TextProvider,
        flush_threshold: int = DEFAULT_FLUSH_THRESHOLD,
        chunk_delay: float = DEFAULT_CHUNK_DELAY,
        flush_delay: float = DEFAULT_FLUSH_DELAY,
        default_model: str | None = None,
    ):
        """
        Args:
            store: 채팅 저장소
            notifier: UI 알림 (composition)
            text_provider: 스트리밍 producer
            flush_threshold: 몇 fragment 마다 저장/교체 알림할지
            chunk_delay: fragment 마다 대기 (UI 속도 조절용)
            flush_delay: flush 마다 대기
            default_model: 새 채팅 모델 (None 이면 registry 기본값)
        """
        self.store = store
        self.notifier = notifier
        self.text_provider = text_provider
        self.flush_threshold = flush_threshold
        self.chunk_delay = chunk_delay
        self.flush_delay = flush_delay
        self.default_model = default_model or registry.default_model(ChatType.TEXT)

    async def call(
        self,
        prompt: str,
        chat_id: str | None = None,
        user_id: str | None = None,
        model_id: str | None = None,
    ) -> ServiceResult:
        """
        메시지 생성 + 응답 스트리밍.

        Args:
            prompt: 사용자 메시지
            chat_id: 기존 채팅 ID (없으면 user_id 로 새 채팅 생성)
            user_id: 새 채팅 소유자
            model_id: 새 채팅 모델 (기존 채팅이면 무시)

        Returns:
            ServiceResult (예외를 밖으로 던지지 않음)
        """
        result = ServiceResult()
        broadcaster: ChatBroadcaster | None = None

        try:
            # === Validating ===
            chat = self._validate(prompt, chat_id, user_id, result)
            if chat is not None:
                broadcaster = ChatBroadcaster(self.notifier, chat)

            if not result.success:
                logger.info(f"Chat message rejected: {result.full_messages()}")
                if broadcaster is not None:
                    broadcaster.notify_error(result.full_messages())
                return result

            # === Resolving ===
            if chat is None:
                try:
                    chat = self.store.create_chat(
                        user_id, prompt, ChatType.TEXT, model_id or self.default_model
                    )
                except ValidationError as e:
                    # 채팅이 없으므로 알릴 대상 없음. message 가 필드명을 포함하므로 base 로 기록
                    result.add_error(e.kind, BASE_FIELD, e.message, code=e.code)
                    logger.info(f"Chat creation rejected: {e}")
                    return result
                broadcaster = ChatBroadcaster(self.notifier, chat)

            context = self.build_context(chat, prompt)

            # === Spinning ===
            broadcaster.show_spinner()

            # === Streaming → Finalizing ===
            result.message = await self._stream(chat, prompt, context, broadcaster)

            if result.message is None:
                logger.info(f"Empty answer for chat {chat.id}, no message created")
            else:
                logger.info(
                    f"Chat message completed: chat={chat.id} message={result.message.id} "
                    f"chars={len(result.message.answer)}"
                )
            return result

        except Exception as e:
            # === Errored ===
            self._record_error(result, e)
            logger.error(
                f"Chat message failed (chat={chat_id or '-'}): {e}",
                exc_info=True,
            )
            if broadcaster is not None:
                broadcaster.remove_spinner_if_shown()
                broadcaster.notify_error(result.full_messages())
            return result

    # =========================================================================
    # Validating / Resolving
    # =========================================================================

    def _validate(
        self,
        prompt: str,
        chat_id: str | None,
        user_id: str | None,
        result: ServiceResult,
    ) -> Chat | None:
        """
        입력 검증 + 기존 채팅 조회.

        새 채팅 생성은 여기서 하지 않음 (prompt 가 유효할 때만 생성).

        Returns:
            조회된 기존 Chat (없으면 None)
        """
        chat = None

        if not chat_id and not user_id:
            result.add_error(
                "validation",
                BASE_FIELD,
                "chat or user required",
                code=ErrorCodes.CHAT_OR_USER_REQUIRED,
            )
        elif chat_id:
            chat = self.store.find_chat(chat_id)
            if chat is None:
                result.add_error(
                    "validation", "ai_chat", "not found", code=ErrorCodes.CHAT_NOT_FOUND
                )
            elif chat.chat_type != ChatType.TEXT:
                result.add_error(
                    "validation",
                    "ai_chat",
                    "is not a text chat",
                    code=ErrorCodes.INVALID_CHAT_TYPE,
                )

        if not prompt or not prompt.strip():
            result.add_error(
                "validation",
                "prompt",
                "is required",
                code=ErrorCodes.MISSING_REQUIRED_FIELD,
            )

        return chat

    def build_context(self, chat: Chat, prompt: str) -> list[dict[str, str]]:
        """
        대화 context 구성.

        Returns:
            [
                {"role": "user", "content": "Hi! My name is Purple."},
                {"role": "assistant", "content": "Hi, Purple!"},
                {"role": "user", "content": "What's my name?"},
            ]
        """
        context: list[dict[str, str]] = []
        for message in self.store.context_messages(chat.id):
            context.append({"role": "user", "content": message.prompt})
            context.append({"role": "assistant", "content": message.answer})
        context.append({"role": "user", "content": prompt})
        return context

    # =========================================================================
    # Streaming
    # =========================================================================

    async def _stream(
        self,
        chat: Chat,
        prompt: str,
        context: list[dict[str, str]],
        broadcaster: ChatBroadcaster,
    ) -> Message | None:
        """
        producer 소비 루프.

        Returns:
            최종 저장된 Message (fragment 가 없었으면 None)
        """
        accumulator = ChunkAccumulator(self.flush_threshold)
        message: Message | None = None

        # 중간 실패 시에도 producer 스트림(HTTP 연결)을 즉시 닫음
        async with aclosing(
            self.text_provider.stream(context, chat.ai_model_name)
        ) as fragments:
            async for fragment in fragments:
                # 첫 fragment: spinner 제거 + 메시지 생성
                if message is None:
                    broadcaster.remove_spinner()
                    message = self.store.append_message(chat.id, prompt)
                    broadcaster.add_message(message)

                accumulator.push(fragment.text)
                broadcaster.append_answer_chunk(message.id, fragment.text)
                await self._pause(self.chunk_delay)

                # === Flushing ===
                if accumulator.should_flush():
                    message = self.store.update_answer(
                        chat.id, message.id, accumulator.snapshot()
                    )
                    broadcaster.replace_message(message)
                    accumulator.mark_flushed()
                    await self._pause(self.flush_delay)

        if message is None:
            broadcaster.remove_spinner_if_shown()
            return None

        # === Finalizing ===
        message = self.store.update_answer(chat.id, message.id, accumulator.snapshot())
        broadcaster.replace_message(message)
        return message

    @staticmethod
    async def _pause(delay: float) -> None:
        if delay > 0:
            await asyncio.sleep(delay)

    @staticmethod
    def _record_error(result: ServiceResult, error: Exception) -> None:
        if isinstance(error, ChatServiceError):
            result.add_error(error.kind, BASE_FIELD, error.message, code=error.code)
        else:
            result.add_error(
                "error",
                BASE_FIELD,
                str(error) or type(error).__name__,
                code=ErrorCodes.UNEXPECTED_ERROR,
            )
