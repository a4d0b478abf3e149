"""
test_store.py - ConversationStore 테스트

DoD:
- 채팅 생성 검증 (user/type/model)
- 메시지 id 채팅별 증가, prompt 불변, answer 덮어쓰기
- 이미지 첨부 1회
- 락 타임아웃/손상 파일은 PersistenceError
"""

import json
from pathlib import Path
from unittest.mock import patch

import pytest
from filelock import FileLock

from src.core.store import ConversationStore
from src.domain.errors import (
    AttachmentError,
    ErrorCodes,
    PersistenceError,
    ValidationError,
)
from src.domain.schemas import ChatType

# =============================================================================
# Chats
# =============================================================================


class TestCreateChat:
    """create_chat 테스트."""

    def test_create_text_chat(self, store: ConversationStore):
        chat = store.create_chat("user-1", "Hi!", ChatType.TEXT, "llama3.1")

        assert chat.id.startswith("CHAT-")
        assert chat.user_id == "user-1"
        assert chat.chat_type == ChatType.TEXT
        assert chat.ai_model_name == "llama3.1"
        assert chat.title == "Hi!"
        assert store.find_chat(chat.id) == chat

    def test_chat_json_layout(self, store: ConversationStore):
        chat = store.create_chat("user-1", "Hi!", "text", "mistral")

        data = json.loads(
            (store.chats_dir / chat.id / "chat.json").read_text(encoding="utf-8")
        )
        assert data["schema_version"] == "1.0"
        assert data["next_message_id"] == 1
        assert data["messages"] == []

    def test_missing_user(self, store: ConversationStore):
        with pytest.raises(ValidationError) as exc_info:
            store.create_chat(None, "Hi!", ChatType.TEXT, "llama3.1")

        assert exc_info.value.code == ErrorCodes.MISSING_REQUIRED_FIELD
        assert exc_info.value.context["field"] == "user_id"

    def test_invalid_chat_type(self, store: ConversationStore):
        with pytest.raises(ValidationError) as exc_info:
            store.create_chat("user-1", "Hi!", "video", "llama3.1")

        assert exc_info.value.code == ErrorCodes.INVALID_CHAT_TYPE

    def test_unsupported_model(self, store: ConversationStore):
        """이미지 모델로 텍스트 채팅 생성 불가."""
        with pytest.raises(ValidationError) as exc_info:
            store.create_chat("user-1", "Hi!", ChatType.TEXT, "sdxl-turbo")

        assert exc_info.value.code == ErrorCodes.UNSUPPORTED_MODEL
        assert exc_info.value.context["field"] == "ai_model_name"
        assert not store.chats_dir.exists() or not any(store.chats_dir.iterdir())

    def test_blank_prompt_title_fallback(self, store: ConversationStore):
        chat = store.create_chat("user-1", "   ", ChatType.TEXT, "llama3.1")

        assert chat.title == "(untitled)"


class TestFindAndDelete:
    """find_chat / delete_chat 테스트."""

    def test_find_missing(self, store: ConversationStore):
        assert store.find_chat("CHAT-missing") is None
        assert store.find_chat(None) is None

    def test_find_unsafe_id(self, store: ConversationStore):
        assert store.find_chat("../../etc") is None

    def test_corrupt_chat_json(self, store: ConversationStore, text_chat):
        (store.chats_dir / text_chat.id / "chat.json").write_text("{broken", encoding="utf-8")

        with pytest.raises(PersistenceError) as exc_info:
            store.find_chat(text_chat.id)

        assert exc_info.value.code == ErrorCodes.CHAT_CORRUPT

    def test_delete(self, store: ConversationStore, text_chat):
        assert store.delete_chat(text_chat.id) is True
        assert store.find_chat(text_chat.id) is None
        assert store.delete_chat(text_chat.id) is False

    def test_delete_removes_lock_file(self, store: ConversationStore, text_chat):
        store.append_message(text_chat.id, "Hi")
        lock_path = store.data_root / ".locks" / f"{text_chat.id}.lock"
        assert lock_path.exists()

        store.delete_chat(text_chat.id)

        assert not lock_path.exists()


# =============================================================================
# Messages
# =============================================================================


class TestMessages:
    """메시지 추가/갱신 테스트."""

    def test_ids_ascend_per_chat(self, store: ConversationStore, text_chat):
        first = store.append_message(text_chat.id, "one")
        second = store.append_message(text_chat.id, "two")

        assert (first.id, second.id) == (1, 2)
        assert first.answer == ""
        assert first.excluded is False

    def test_ids_independent_between_chats(self, store: ConversationStore, text_chat):
        other = store.create_chat("user-2", "Hello", ChatType.TEXT, "llama3.1")
        store.append_message(text_chat.id, "one")

        assert store.append_message(other.id, "first").id == 1

    def test_append_blank_prompt(self, store: ConversationStore, text_chat):
        with pytest.raises(ValidationError):
            store.append_message(text_chat.id, " ")

    def test_append_to_missing_chat(self, store: ConversationStore):
        with pytest.raises(PersistenceError) as exc_info:
            store.append_message("CHAT-missing", "Hi")

        assert exc_info.value.code == ErrorCodes.CHAT_NOT_FOUND

    def test_update_answer_overwrites(self, store: ConversationStore, text_chat):
        message = store.append_message(text_chat.id, "Hi")

        store.update_answer(text_chat.id, message.id, "Hel")
        updated = store.update_answer(text_chat.id, message.id, "Hello!")

        assert updated.answer == "Hello!"
        assert updated.prompt == "Hi"
        assert store.get_message(text_chat.id, message.id).answer == "Hello!"

    def test_update_answer_idempotent(self, store: ConversationStore, text_chat):
        """같은 텍스트 재저장: 중복/에러 없음."""
        message = store.append_message(text_chat.id, "Hi")

        first = store.update_answer(text_chat.id, message.id, "Hello!")
        second = store.update_answer(text_chat.id, message.id, "Hello!")

        assert first.answer == second.answer == "Hello!"
        assert len(store.list_messages(text_chat.id)) == 1

    def test_update_missing_message(self, store: ConversationStore, text_chat):
        with pytest.raises(PersistenceError) as exc_info:
            store.update_answer(text_chat.id, 99, "x")

        assert exc_info.value.code == ErrorCodes.MESSAGE_NOT_FOUND

    def test_write_failure(self, store: ConversationStore, text_chat):
        message = store.append_message(text_chat.id, "Hi")

        with patch("src.core.store.atomic_write_json", side_effect=OSError("disk full")):
            with pytest.raises(PersistenceError) as exc_info:
                store.update_answer(text_chat.id, message.id, "x")

        assert exc_info.value.code == ErrorCodes.WRITE_FAILED

    def test_context_messages_skip_excluded(self, store: ConversationStore, text_chat):
        first = store.append_message(text_chat.id, "one")
        second = store.append_message(text_chat.id, "two")

        store.set_excluded(text_chat.id, first.id, True)

        assert [m.id for m in store.list_messages(text_chat.id)] == [1, 2]
        assert [m.id for m in store.context_messages(text_chat.id)] == [second.id]


# =============================================================================
# Image Attachment
# =============================================================================


class TestAttachGeneratedImage:
    """attach_generated_image 테스트."""

    def test_attach(self, store: ConversationStore, image_chat, png_bytes: bytes):
        message = store.append_message(image_chat.id, "A cat")

        updated = store.attach_generated_image(
            image_chat.id, message.id, png_bytes, "image/png"
        )

        assert updated.generated_image.filename == "1.png"
        assert updated.generated_image.size == len(png_bytes)
        path = store.image_path(image_chat.id, message.id)
        assert path is not None
        assert path.read_bytes() == png_bytes

    def test_reattach_rejected(self, store: ConversationStore, image_chat, png_bytes: bytes):
        """메시지당 1회만 첨부."""
        message = store.append_message(image_chat.id, "A cat")
        store.attach_generated_image(image_chat.id, message.id, png_bytes, "image/png")

        with pytest.raises(AttachmentError) as exc_info:
            store.attach_generated_image(image_chat.id, message.id, b"other", "image/png")

        assert exc_info.value.code == ErrorCodes.IMAGE_ALREADY_ATTACHED
        assert store.image_path(image_chat.id, message.id).read_bytes() == png_bytes

    def test_empty_data(self, store: ConversationStore, image_chat):
        message = store.append_message(image_chat.id, "A cat")

        with pytest.raises(AttachmentError) as exc_info:
            store.attach_generated_image(image_chat.id, message.id, b"", "image/png")

        assert exc_info.value.code == ErrorCodes.ATTACHMENT_FAILED

    def test_image_path_without_attachment(self, store: ConversationStore, image_chat):
        message = store.append_message(image_chat.id, "A cat")

        assert store.image_path(image_chat.id, message.id) is None


# =============================================================================
# Locking
# =============================================================================


def test_lock_timeout(tmp_path: Path):
    """다른 writer 가 락을 잡고 있으면 CHAT_LOCK_TIMEOUT."""
    store = ConversationStore(tmp_path / "data", lock_timeout=0.1)
    chat = store.create_chat("user-1", "Hi", ChatType.TEXT, "llama3.1")

    holder = FileLock(tmp_path / "data" / ".locks" / f"{chat.id}.lock")
    with holder:
        with pytest.raises(PersistenceError) as exc_info:
            store.append_message(chat.id, "blocked")

    assert exc_info.value.code == ErrorCodes.CHAT_LOCK_TIMEOUT


class TestLockFiles:
    """없는 채팅에 대한 쓰기는 락 파일을 남기지 않음."""

    @pytest.mark.parametrize("chat_id", ["CHAT-missing", "../../etc", "a/b"])
    def test_set_excluded_missing_chat(self, store: ConversationStore, chat_id: str):
        with pytest.raises(PersistenceError) as exc_info:
            store.set_excluded(chat_id, 1, True)

        assert exc_info.value.code == ErrorCodes.CHAT_NOT_FOUND
        locks_dir = store.data_root / ".locks"
        assert not locks_dir.exists() or list(locks_dir.iterdir()) == []

    def test_writes_to_missing_chat(self, store: ConversationStore, png_bytes: bytes):
        writes = [
            lambda: store.append_message("CHAT-missing", "Hi"),
            lambda: store.update_answer("CHAT-missing", 1, "x"),
            lambda: store.attach_generated_image("CHAT-missing", 1, png_bytes, "image/png"),
        ]
        for write in writes:
            with pytest.raises(PersistenceError) as exc_info:
                write()
            assert exc_info.value.code == ErrorCodes.CHAT_NOT_FOUND

        assert not (store.data_root / ".locks" / "CHAT-missing.lock").exists()
