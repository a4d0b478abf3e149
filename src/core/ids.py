"""
ID 생성: chat_id, title

규칙:
- chat_id 는 생성 후 변경 금지 (디렉터리명으로 사용)
- message id 는 채팅별 증가 정수 (store 에서 발급)
"""

import uuid
from datetime import UTC, datetime

from src.domain.constants import CHAT_ID_PREFIX, CHAT_TITLE_MAX_LENGTH


def generate_chat_id() -> str:
    """
    Chat ID 생성.

    고유성 보장: UUID v4
    포맷: CHAT-{timestamp}-{uuid[:8]}

    Returns:
        chat_id 문자열 (파일명으로 안전)
    """
    now = datetime.now(UTC)
    timestamp = now.strftime("%Y%m%d%H%M%S")
    unique = uuid.uuid4().hex[:8]

    return f"{CHAT_ID_PREFIX}{timestamp}-{unique}"


def is_safe_chat_id(chat_id: str) -> bool:
    """
    경로 조작 방지용 chat_id 검사.

    허용 문자: ASCII 알파벳, 숫자, '-', '_'
    """
    if not chat_id or len(chat_id) > 64:
        return False
    return all((c.isascii() and c.isalnum()) or c in "-_" for c in chat_id)


def truncate_title(prompt: str, max_length: int = CHAT_TITLE_MAX_LENGTH) -> str:
    """
    첫 prompt 로 채팅 제목 생성.

    - 줄바꿈 → 공백
    - max_length 초과 시 '...' 포함 max_length 로 자름
    """
    title = " ".join(prompt.split())
    if len(title) <= max_length:
        return title
    return title[: max_length - 3].rstrip() + "..."
