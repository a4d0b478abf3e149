"""
Application Services.

역할:
- accumulator: fragment 누적 + flush 판단
- notifier: 채널 pub/sub + 채팅 단위 UI 이벤트
- chat_message: 텍스트 스트림 오케스트레이터
- image: 이미지 요청 오케스트레이터
"""

from .accumulator import ChunkAccumulator
from .chat_message import ChatMessageService
from .image import DecodedImage, ImageMessageService, decode_image_payload
from .notifier import BroadcastNotifier, ChatBroadcaster, EventKind, Notifier

__all__ = [
    "ChunkAccumulator",
    "ChatMessageService",
    "ImageMessageService",
    "DecodedImage",
    "decode_image_payload",
    "Notifier",
    "BroadcastNotifier",
    "ChatBroadcaster",
    "EventKind",
]
