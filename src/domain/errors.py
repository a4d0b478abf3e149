"""
Error definitions for the chat service.

분류 (오케스트레이터 경계에서 모두 잡혀 에러 알림 1건으로 변환됨):
- ValidationError: 입력 누락/불량, 미지원 모델, 채팅 없음 (재시도 안 함)
- ProducerError: 텍스트/이미지 생성 서버 실패 (스트림 전/중)
- RequestTimeoutError: 이미지 요청 시간 초과 (ProducerError의 일종)
- DecodingError: 이미지 payload 파싱 실패
- AttachmentError: 이미지 첨부 저장 실패
- PersistenceError: 저장소 쓰기/읽기 실패
"""

from typing import Any


class ChatServiceError(Exception):
    """
    채팅 서비스 에러 베이스.

    Usage:
        raise ValidationError("UNSUPPORTED_MODEL", "model is not supported", model="gpt")
    """

    # ServiceResult.errors 의 kind 값
    kind = "error"

    def __init__(self, code: str, message: str, **context: Any) -> None:
        self.code = code
        self.message = message
        self.context = context
        super().__init__(f"[{code}] {message}")

    def to_dict(self) -> dict[str, Any]:
        """로그/JSON 직렬화용."""
        return {
            "kind": self.kind,
            "code": self.code,
            "message": self.message,
            **self.context,
        }


class ValidationError(ChatServiceError):
    """입력 검증 실패."""

    kind = "validation"


class ProducerError(ChatServiceError):
    """외부 생성 서버(텍스트 스트림/이미지 API) 실패."""

    kind = "producer"


class RequestTimeoutError(ProducerError):
    """이미지 생성 요청 타임아웃."""

    kind = "timeout"


class DecodingError(ChatServiceError):
    """이미지 응답 payload 디코딩 실패."""

    kind = "decoding"


class AttachmentError(ChatServiceError):
    """생성 이미지 첨부 실패."""

    kind = "attachment"


class PersistenceError(ChatServiceError):
    """저장소 실패."""

    kind = "persistence"


# =============================================================================
# Error Codes
# =============================================================================

class ErrorCodes:
    """에러 코드 상수."""

    # === Validation ===
    MISSING_REQUIRED_FIELD = "MISSING_REQUIRED_FIELD"
    CHAT_OR_USER_REQUIRED = "CHAT_OR_USER_REQUIRED"
    CHAT_NOT_FOUND = "CHAT_NOT_FOUND"
    INVALID_CHAT_TYPE = "INVALID_CHAT_TYPE"
    UNSUPPORTED_MODEL = "UNSUPPORTED_MODEL"

    # === Producer ===
    TEXT_REQUEST_FAILED = "TEXT_REQUEST_FAILED"
    TEXT_STREAM_FAILED = "TEXT_STREAM_FAILED"
    TEXT_PROVIDER_ERROR = "TEXT_PROVIDER_ERROR"
    IMAGE_AUTH_MISSING = "IMAGE_AUTH_MISSING"
    IMAGE_REQUEST_FAILED = "IMAGE_REQUEST_FAILED"
    IMAGE_TRANSPORT_FAILED = "IMAGE_TRANSPORT_FAILED"
    IMAGE_REQUEST_TIMEOUT = "IMAGE_REQUEST_TIMEOUT"

    # === Decoding ===
    IMAGE_DATA_MISSING = "IMAGE_DATA_MISSING"
    IMAGE_DATA_INVALID = "IMAGE_DATA_INVALID"

    # === Attachment ===
    IMAGE_ALREADY_ATTACHED = "IMAGE_ALREADY_ATTACHED"
    ATTACHMENT_FAILED = "ATTACHMENT_FAILED"

    # === Persistence ===
    MESSAGE_NOT_FOUND = "MESSAGE_NOT_FOUND"
    CHAT_LOCK_TIMEOUT = "CHAT_LOCK_TIMEOUT"
    CHAT_CORRUPT = "CHAT_CORRUPT"
    WRITE_FAILED = "WRITE_FAILED"

    # === Generic ===
    UNEXPECTED_ERROR = "UNEXPECTED_ERROR"
