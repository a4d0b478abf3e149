"""Domain layer: errors and schemas."""

from .errors import (
    AttachmentError,
    ChatServiceError,
    DecodingError,
    PersistenceError,
    ProducerError,
    RequestTimeoutError,
    ValidationError,
)
from .schemas import (
    Chat,
    ChatType,
    ImageAttachment,
    Message,
    ResultError,
    ServiceResult,
)

__all__ = [
    "ChatServiceError",
    "ValidationError",
    "ProducerError",
    "RequestTimeoutError",
    "DecodingError",
    "AttachmentError",
    "PersistenceError",
    "Chat",
    "ChatType",
    "ImageAttachment",
    "Message",
    "ResultError",
    "ServiceResult",
]
