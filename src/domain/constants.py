"""
Domain Constants: 서비스 전역 상수.

스트리밍 주기, 저장 경로, 알림 채널 토픽 등.
설정(default.yaml)으로 덮어쓸 수 있는 값은 DEFAULT_ 접두사.
"""

# =============================================================================
# Streaming (청크 누적/flush 정책)
# =============================================================================
# producer 가 수백 개의 작은 fragment 를 보내므로 N개마다 저장+알림.
# delay 값은 UI 속도 조절용일 뿐 정확성과 무관.

DEFAULT_FLUSH_THRESHOLD = 50
DEFAULT_CHUNK_DELAY = 0.01  # 초, fragment 마다 (클수록 느리게 써짐)
DEFAULT_FLUSH_DELAY = 0.05  # 초, flush 마다

# =============================================================================
# Chat
# =============================================================================

CHAT_TITLE_MAX_LENGTH = 100
CHAT_ID_PREFIX = "CHAT-"

# =============================================================================
# Storage Layout
# =============================================================================
# <data_root>/chats/<chat_id>/
# ├── chat.json
# └── images/<message_id>.<ext>

CHATS_DIR = "chats"
CHAT_JSON_FILENAME = "chat.json"
CHAT_IMAGES_DIR = "images"
LOCKS_DIR = ".locks"
DEFAULT_LOCK_TIMEOUT = 10.0

# =============================================================================
# Image Generation
# =============================================================================

DEFAULT_IMAGE_WIDTH = 512
DEFAULT_IMAGE_HEIGHT = 512
DEFAULT_IMAGE_TIMEOUT = 120.0
DEFAULT_IMAGE_READ_TIMEOUT = 120.0
ERROR_BODY_MAX_LENGTH = 150

DEFAULT_TEXT_TIMEOUT = 120.0

# =============================================================================
# Notification Channels
# =============================================================================

TOPIC_MESSAGES = "messages"
TOPIC_ANSWER = "answer"
TOPIC_NOTIFICATIONS = "notifications"
SPINNER_TARGET = "ai_chat__spinner"

DEFAULT_SUBSCRIBER_QUEUE_SIZE = 1000
DEFAULT_HEARTBEAT_INTERVAL = 30.0

# =============================================================================
# MIME Types
# =============================================================================

IMAGE_EXTENSIONS = {
    "image/png": ".png",
    "image/jpeg": ".jpg",
    "image/webp": ".webp",
    "image/gif": ".gif",
}

# magic bytes → MIME (raw binary 응답 판별용)
IMAGE_SIGNATURES: tuple[tuple[bytes, str], ...] = (
    (b"\x89PNG\r\n\x1a\n", "image/png"),
    (b"\xff\xd8\xff", "image/jpeg"),
    (b"GIF87a", "image/gif"),
    (b"GIF89a", "image/gif"),
)


def sniff_image_mime(data: bytes) -> str | None:
    """
    바이트 시그니처로 이미지 MIME 타입 추정.

    Returns:
        MIME 타입 (알 수 없으면 None)
    """
    for signature, mime in IMAGE_SIGNATURES:
        if data.startswith(signature):
            return mime
    # WEBP: RIFF????WEBP
    if len(data) >= 12 and data[:4] == b"RIFF" and data[8:12] == b"WEBP":
        return "image/webp"
    return None


def get_image_extension(mime_type: str) -> str:
    """MIME 타입 → 파일 확장자 (알 수 없으면 .bin)."""
    return IMAGE_EXTENSIONS.get(mime_type.split(";")[0].strip().lower(), ".bin")
