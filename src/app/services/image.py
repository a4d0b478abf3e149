"""
Image Message Service: prompt 1건 → 이미지 생성 요청 → 메시지 + 첨부.

상태 흐름 (단일 호출, chunk 누적 없음):
    Validating → Resolving → Spinning → Requesting → Decoding → Persisting → Finalizing → Done
    (어느 단계에서든 → Errored)

텍스트 흐름과 다른 점:
- 채팅 자동 생성 없음: 존재하는 chat_id 필수
- 응답 payload 두 형태 모두 지원: raw 이미지 바이트 / JSON {"images": ["<base64>"]}

알려진 gap: 메시지 생성 후 첨부가 실패하면 이미지 없는 메시지가 남음.
에러 알림 + error 로그로 드러내고 조용히 삼키지 않음.
"""

import base64
import binascii
import json
import logging
from dataclasses import dataclass

from src.app.providers.base import ImageProvider, ImageResponse
from src.app.services.notifier import ChatBroadcaster, Notifier
from src.core.store import ConversationStore
from src.domain.constants import (
    DEFAULT_IMAGE_HEIGHT,
    DEFAULT_IMAGE_WIDTH,
    ERROR_BODY_MAX_LENGTH,
    sniff_image_mime,
)
from src.domain.errors import (
    ChatServiceError,
    DecodingError,
    ErrorCodes,
    ProducerError,
)
from src.domain.schemas import BASE_FIELD, Chat, ChatType, ServiceResult

logger = logging.getLogger(__name__)


# =============================================================================
# Decoding
# =============================================================================

@dataclass
class DecodedImage:
    """디코딩된 이미지 바이너리."""
    data: bytes
    mime_type: str


def _truncate(text: str, length: int = ERROR_BODY_MAX_LENGTH) -> str:
    if len(text) <= length:
        return text
    return text[: length - 3] + "..."


def _decode_base64_image(encoded: str) -> DecodedImage:
    # data URI 접두사 허용: data:image/png;base64,....
    if encoded.startswith("data:") and "," in encoded:
        encoded = encoded.split(",", 1)[1]

    try:
        data = base64.b64decode(encoded.strip(), validate=True)
    except (binascii.Error, ValueError) as e:
        raise DecodingError(
            ErrorCodes.IMAGE_DATA_INVALID,
            f"Failed to decode base64 string: {e}",
        ) from e

    if not data:
        raise DecodingError(
            ErrorCodes.IMAGE_DATA_MISSING,
            "Failed to decode base64 string.",
        )

    return DecodedImage(data=data, mime_type=sniff_image_mime(data) or "image/png")


def _decode_json_payload(body: bytes) -> DecodedImage:
    try:
        parsed = json.loads(body)
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise DecodingError(
            ErrorCodes.IMAGE_DATA_INVALID,
            f"Invalid JSON received from image API: {e}",
        ) from e

    encoded = None
    if isinstance(parsed, dict):
        images = parsed.get("images")
        if isinstance(images, list) and images:
            encoded = images[0]
        else:
            encoded = parsed.get("image")

    if not isinstance(encoded, str) or not encoded.strip():
        raise DecodingError(
            ErrorCodes.IMAGE_DATA_MISSING,
            "No 'images' key with base64 string found in API response.",
        )

    return _decode_base64_image(encoded)


def decode_image_payload(response: ImageResponse) -> DecodedImage:
    """
    이미지 응답 → 바이너리.

    지원 형태:
    - raw 이미지 바이트 (Content-Type image/* 또는 시그니처로 판별)
    - JSON {"images": ["<base64>", ...]} 또는 {"image": "<base64>"}

    Raises:
        DecodingError: 데이터 없음/형식 오류
    """
    body = response.body
    if not body:
        raise DecodingError(
            ErrorCodes.IMAGE_DATA_MISSING,
            "Image API returned an empty body.",
        )

    content_type = (response.content_type or "").split(";")[0].strip().lower()

    if content_type.startswith("image/"):
        return DecodedImage(data=body, mime_type=sniff_image_mime(body) or content_type)

    if content_type.endswith("json") or body.lstrip()[:1] in (b"{", b"["):
        return _decode_json_payload(body)

    sniffed = sniff_image_mime(body)
    if sniffed is None:
        raise DecodingError(
            ErrorCodes.IMAGE_DATA_INVALID,
            f"Unrecognized image payload (content-type: {content_type or 'none'}).",
        )
    return DecodedImage(data=body, mime_type=sniffed)


# =============================================================================
# Service
# =============================================================================

class ImageMessageService:
    """
    이미지 채팅 오케스트레이터.

    Usage:
        result = await service.call(prompt="A serene mountain landscape", chat_id=chat.id)
        if result.success:
            print(result.message.generated_image.path)
    """

    def __init__(
        self,
        store: ConversationStore,
        notifier: Notifier,
        image_provider: ImageProvider,
        width: int = DEFAULT_IMAGE_WIDTH,
        height: int = DEFAULT_IMAGE_HEIGHT,
    ):
        self.store = store
        self.notifier = notifier
        self.image_provider = image_provider
        self.width = width
        self.height = height

    async def call(self, prompt: str, chat_id: str | None = None) -> ServiceResult:
        """
        이미지 생성 + 메시지 저장.

        Returns:
            ServiceResult (예외를 밖으로 던지지 않음)
        """
        result = ServiceResult()
        broadcaster: ChatBroadcaster | None = None

        try:
            # === Validating / Resolving ===
            chat = self._validate(prompt, chat_id, result)
            if chat is not None:
                broadcaster = ChatBroadcaster(self.notifier, chat)

            if not result.success:
                logger.info(f"Image request rejected: {result.full_messages()}")
                if broadcaster is not None:
                    broadcaster.notify_error(result.full_messages())
                return result

            # === Spinning ===
            broadcaster.show_spinner(message=prompt)

            # === Requesting ===
            response = await self.image_provider.generate(
                prompt, chat.ai_model_name, self.width, self.height
            )
            if not response.success:
                detail = _truncate(response.text.strip()) or "No details provided."
                raise ProducerError(
                    ErrorCodes.IMAGE_REQUEST_FAILED,
                    f"Image generation failed: Status {response.status_code}. "
                    f"Details: {detail}",
                    status=response.status_code,
                )

            # === Decoding ===
            image = decode_image_payload(response)

            # === Persisting ===
            message = self.store.append_message(chat.id, prompt)
            broadcaster.add_message(message)
            try:
                message = self.store.attach_generated_image(
                    chat.id, message.id, image.data, image.mime_type
                )
            except ChatServiceError as e:
                logger.error(
                    f"Image attachment failed, message {message.id} in chat {chat.id} "
                    f"has no image: {e}"
                )
                raise

            # === Finalizing ===
            broadcaster.remove_spinner()
            broadcaster.replace_message(message)

            result.message = message
            logger.info(
                f"Image message completed: chat={chat.id} message={message.id} "
                f"bytes={len(image.data)}"
            )
            return result

        except Exception as e:
            # === Errored ===
            if isinstance(e, ChatServiceError):
                result.add_error(e.kind, BASE_FIELD, e.message, code=e.code)
            else:
                result.add_error(
                    "error",
                    BASE_FIELD,
                    f"An unexpected error occurred: {e}",
                    code=ErrorCodes.UNEXPECTED_ERROR,
                )
            logger.error(
                f"Image message failed (chat={chat_id or '-'}): {result.full_messages()}",
                exc_info=True,
            )
            if broadcaster is not None:
                broadcaster.remove_spinner_if_shown()
                broadcaster.notify_error(result.full_messages())
            return result

    def _validate(
        self,
        prompt: str,
        chat_id: str | None,
        result: ServiceResult,
    ) -> Chat | None:
        chat = None

        if not prompt or not prompt.strip():
            result.add_error(
                "validation",
                "prompt",
                "is required",
                code=ErrorCodes.MISSING_REQUIRED_FIELD,
            )

        if not chat_id:
            result.add_error(
                "validation",
                "chat_id",
                "is required",
                code=ErrorCodes.MISSING_REQUIRED_FIELD,
            )
        else:
            chat = self.store.find_chat(chat_id)
            if chat is None:
                result.add_error(
                    "validation", "ai_chat", "not found", code=ErrorCodes.CHAT_NOT_FOUND
                )
            elif chat.chat_type != ChatType.IMAGE:
                result.add_error(
                    "validation",
                    "ai_chat",
                    "is not an image chat",
                    code=ErrorCodes.INVALID_CHAT_TYPE,
                )

        return chat
