"""
test_ids.py - ID/제목 생성 테스트

DoD:
- chat_id 고유성 + 포맷
- 경로 조작 문자 거부
- 제목 길이 제한
"""

import re

from src.core.ids import generate_chat_id, is_safe_chat_id, truncate_title

# =============================================================================
# generate_chat_id 테스트
# =============================================================================


class TestGenerateChatId:
    """generate_chat_id 함수 테스트."""

    def test_format(self):
        """CHAT-YYYYMMDDHHMMSS-xxxxxxxx 포맷."""
        chat_id = generate_chat_id()

        assert re.fullmatch(r"CHAT-\d{14}-[0-9a-f]{8}", chat_id)

    def test_unique(self):
        ids = {generate_chat_id() for _ in range(100)}

        assert len(ids) == 100

    def test_generated_id_is_safe(self):
        assert is_safe_chat_id(generate_chat_id())


# =============================================================================
# is_safe_chat_id 테스트
# =============================================================================


class TestIsSafeChatId:
    """is_safe_chat_id 함수 테스트."""

    def test_rejects_path_traversal(self):
        assert is_safe_chat_id("../etc") is False
        assert is_safe_chat_id("a/b") is False

    def test_rejects_empty_and_long(self):
        assert is_safe_chat_id("") is False
        assert is_safe_chat_id("a" * 65) is False

    def test_rejects_non_ascii(self):
        assert is_safe_chat_id("채팅") is False

    def test_accepts_dash_underscore(self):
        assert is_safe_chat_id("CHAT_1-abc") is True


# =============================================================================
# truncate_title 테스트
# =============================================================================


class TestTruncateTitle:
    """truncate_title 함수 테스트."""

    def test_short_prompt_unchanged(self):
        assert truncate_title("Hi!") == "Hi!"

    def test_collapses_whitespace(self):
        assert truncate_title("Hello\n  world\t!") == "Hello world !"

    def test_long_prompt_truncated(self):
        title = truncate_title("x" * 200, max_length=20)

        assert len(title) == 20
        assert title.endswith("...")
