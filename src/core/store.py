"""
Conversation Store: 채팅/메시지 영속화

저장 구조:
<data_root>/chats/<chat_id>/
├── chat.json          # chat + messages (schema_version 포함)
└── images/<id>.<ext>  # 생성 이미지

규칙:
- 모든 쓰기는 채팅별 FileLock + atomic_write_json
- 서로 다른 채팅은 락을 공유하지 않음 (동시 처리 가능)
- 같은 메시지의 writer 는 하나 (해당 오케스트레이터)
- message.prompt 수정 금지, answer 는 덮어쓰기(append 아님)
- 이미지 첨부는 메시지당 1회 (재첨부 시 IMAGE_ALREADY_ATTACHED)
"""

import json
import logging
import shutil
from collections.abc import Generator
from contextlib import contextmanager
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from filelock import FileLock, Timeout

from src.core import registry
from src.core.atomic_io import atomic_write_bytes, atomic_write_json
from src.core.ids import generate_chat_id, is_safe_chat_id, truncate_title
from src.domain.constants import (
    CHAT_IMAGES_DIR,
    CHAT_JSON_FILENAME,
    CHATS_DIR,
    DEFAULT_LOCK_TIMEOUT,
    LOCKS_DIR,
    get_image_extension,
)
from src.domain.errors import (
    AttachmentError,
    ErrorCodes,
    PersistenceError,
    ValidationError,
)
from src.domain.schemas import Chat, ChatType, ImageAttachment, Message

logger = logging.getLogger(__name__)


def _now() -> str:
    return datetime.now(UTC).isoformat()


class ConversationStore:
    """
    채팅/메시지 저장소.

    Usage:
        store = ConversationStore(Path("data"))
        chat = store.create_chat("user-1", "Hi!", ChatType.TEXT, "llama3.1")
        message = store.append_message(chat.id, "Hi!")
        store.update_answer(chat.id, message.id, "Hello!")
    """

    SCHEMA_VERSION = "1.0"

    def __init__(self, data_root: Path, lock_timeout: float = DEFAULT_LOCK_TIMEOUT):
        """
        Args:
            data_root: 데이터 루트 디렉터리
            lock_timeout: 채팅 락 획득 타임아웃 (초)
        """
        self.data_root = data_root
        self.chats_dir = data_root / CHATS_DIR
        self._locks_dir = data_root / LOCKS_DIR
        self.lock_timeout = lock_timeout

    # =========================================================================
    # Paths & Locking
    # =========================================================================

    def _chat_dir(self, chat_id: str) -> Path:
        return self.chats_dir / chat_id

    def _chat_json(self, chat_id: str) -> Path:
        return self._chat_dir(chat_id) / CHAT_JSON_FILENAME

    def _lock_path(self, chat_id: str) -> Path:
        return self._locks_dir / f"{chat_id}.lock"

    @contextmanager
    def _chat_lock(
        self, chat_id: str, must_exist: bool = True
    ) -> Generator[None, None, None]:
        """
        채팅별 락 획득.

        없는 채팅(또는 안전하지 않은 id)에는 락 파일을 만들지 않음.

        Args:
            must_exist: False 면 존재 확인 생략 (채팅 생성용)

        Raises:
            PersistenceError: CHAT_NOT_FOUND, CHAT_LOCK_TIMEOUT
        """
        if not is_safe_chat_id(chat_id) or (
            must_exist and not self._chat_json(chat_id).exists()
        ):
            raise PersistenceError(
                ErrorCodes.CHAT_NOT_FOUND,
                f"Chat '{chat_id}' not found",
                chat_id=chat_id,
            )

        self._locks_dir.mkdir(parents=True, exist_ok=True)
        lock = FileLock(self._lock_path(chat_id), timeout=self.lock_timeout)

        try:
            lock.acquire()
        except Timeout as e:
            raise PersistenceError(
                ErrorCodes.CHAT_LOCK_TIMEOUT,
                f"Failed to acquire lock for chat '{chat_id}'",
                chat_id=chat_id,
                timeout=self.lock_timeout,
            ) from e

        try:
            yield
        finally:
            lock.release()

    # =========================================================================
    # Raw Load / Save
    # =========================================================================

    def _load(self, chat_id: str) -> dict[str, Any] | None:
        """
        chat.json 로드.

        Returns:
            데이터 dict (없으면 None)

        Raises:
            PersistenceError: CHAT_CORRUPT
        """
        if not is_safe_chat_id(chat_id):
            return None

        path = self._chat_json(chat_id)
        if not path.exists():
            return None

        try:
            data: dict[str, Any] = json.loads(path.read_text(encoding="utf-8"))
        except (json.JSONDecodeError, OSError) as e:
            raise PersistenceError(
                ErrorCodes.CHAT_CORRUPT,
                f"chat.json is unreadable: {e}",
                chat_id=chat_id,
                path=str(path),
            ) from e

        if "schema_version" not in data:
            raise PersistenceError(
                ErrorCodes.CHAT_CORRUPT,
                "schema_version missing",
                chat_id=chat_id,
                path=str(path),
            )
        return data

    def _load_required(self, chat_id: str) -> dict[str, Any]:
        data = self._load(chat_id)
        if data is None:
            raise PersistenceError(
                ErrorCodes.CHAT_NOT_FOUND,
                f"Chat '{chat_id}' not found",
                chat_id=chat_id,
            )
        return data

    def _save(self, chat_id: str, data: dict[str, Any]) -> None:
        try:
            atomic_write_json(self._chat_json(chat_id), data)
        except OSError as e:
            raise PersistenceError(
                ErrorCodes.WRITE_FAILED,
                f"Failed to write chat.json: {e}",
                chat_id=chat_id,
            ) from e

    @staticmethod
    def _find_message_index(data: dict[str, Any], message_id: int) -> int:
        for index, raw in enumerate(data["messages"]):
            if int(raw["id"]) == message_id:
                return index
        raise PersistenceError(
            ErrorCodes.MESSAGE_NOT_FOUND,
            f"Message {message_id} not found",
            chat_id=data["chat"]["id"],
            message_id=message_id,
        )

    # =========================================================================
    # Chats
    # =========================================================================

    def find_chat(self, chat_id: str | None) -> Chat | None:
        """채팅 조회 (없으면 None)."""
        if not chat_id:
            return None
        data = self._load(str(chat_id))
        if data is None:
            return None
        return Chat.from_dict(data["chat"])

    def create_chat(
        self,
        user_id: str | None,
        initial_prompt: str,
        chat_type: ChatType | str,
        model_id: str | None,
    ) -> Chat:
        """
        새 채팅 생성.

        Args:
            user_id: 소유 사용자 ID
            initial_prompt: 첫 prompt (제목으로 사용)
            chat_type: text / image
            model_id: 모델 ID (registry 에 있어야 함)

        Returns:
            생성된 Chat

        Raises:
            ValidationError: MISSING_REQUIRED_FIELD, INVALID_CHAT_TYPE, UNSUPPORTED_MODEL
        """
        if not user_id:
            raise ValidationError(
                ErrorCodes.MISSING_REQUIRED_FIELD,
                "user_id is required",
                field="user_id",
            )

        try:
            resolved_type = ChatType(chat_type)
        except ValueError as e:
            raise ValidationError(
                ErrorCodes.INVALID_CHAT_TYPE,
                f"chat_type {chat_type!r} is not valid",
                field="chat_type",
            ) from e

        if not registry.is_supported(resolved_type, model_id):
            raise ValidationError(
                ErrorCodes.UNSUPPORTED_MODEL,
                f"ai_model_name {model_id!r} is not supported for {resolved_type.value} chats",
                field="ai_model_name",
            )

        chat = Chat(
            id=generate_chat_id(),
            user_id=str(user_id),
            chat_type=resolved_type,
            ai_model_name=str(model_id),
            title=truncate_title(initial_prompt or "") or "(untitled)",
            created_at=_now(),
        )

        with self._chat_lock(chat.id, must_exist=False):
            try:
                self._chat_dir(chat.id).mkdir(parents=True, exist_ok=False)
            except OSError as e:
                raise PersistenceError(
                    ErrorCodes.WRITE_FAILED,
                    f"Failed to create chat directory: {e}",
                    chat_id=chat.id,
                ) from e

            self._save(chat.id, {
                "schema_version": self.SCHEMA_VERSION,
                "chat": chat.to_dict(),
                "next_message_id": 1,
                "messages": [],
            })

        logger.info(f"Chat created: {chat.id} ({chat.chat_type.value}, {chat.ai_model_name})")
        return chat

    def delete_chat(self, chat_id: str) -> bool:
        """
        채팅 삭제 (메시지/이미지 포함).

        Returns:
            삭제 여부 (없으면 False)
        """
        if self._load(chat_id) is None:
            return False

        with self._chat_lock(chat_id):
            try:
                shutil.rmtree(self._chat_dir(chat_id))
            except OSError as e:
                raise PersistenceError(
                    ErrorCodes.WRITE_FAILED,
                    f"Failed to delete chat: {e}",
                    chat_id=chat_id,
                ) from e

        self._lock_path(chat_id).unlink(missing_ok=True)
        logger.info(f"Chat deleted: {chat_id}")
        return True

    # =========================================================================
    # Messages
    # =========================================================================

    def append_message(self, chat_id: str, prompt: str) -> Message:
        """
        메시지 추가 (answer 빈 값, context 포함).

        Raises:
            ValidationError: prompt 빈 값
            PersistenceError: CHAT_NOT_FOUND
        """
        if not prompt or not prompt.strip():
            raise ValidationError(
                ErrorCodes.MISSING_REQUIRED_FIELD,
                "prompt is required",
                field="prompt",
            )

        with self._chat_lock(chat_id):
            data = self._load_required(chat_id)
            now = _now()
            message = Message(
                id=int(data["next_message_id"]),
                chat_id=chat_id,
                prompt=prompt,
                answer="",
                excluded=False,
                created_at=now,
                updated_at=now,
            )
            data["messages"].append(message.to_dict())
            data["next_message_id"] = message.id + 1
            self._save(chat_id, data)

        return message

    def get_message(self, chat_id: str, message_id: int) -> Message | None:
        data = self._load(chat_id)
        if data is None:
            return None
        for raw in data["messages"]:
            if int(raw["id"]) == message_id:
                return Message.from_dict(raw)
        return None

    def update_answer(self, chat_id: str, message_id: int, full_text: str) -> Message:
        """
        answer 덮어쓰기 (멱등: 같은 텍스트 재저장은 무해).

        Raises:
            PersistenceError: CHAT_NOT_FOUND, MESSAGE_NOT_FOUND, WRITE_FAILED
        """
        with self._chat_lock(chat_id):
            data = self._load_required(chat_id)
            index = self._find_message_index(data, message_id)
            raw = data["messages"][index]
            raw["answer"] = full_text
            raw["updated_at"] = _now()
            self._save(chat_id, data)

        return Message.from_dict(raw)

    def set_excluded(self, chat_id: str, message_id: int, excluded: bool) -> Message:
        """메시지를 대화 context 에서 제외/포함."""
        with self._chat_lock(chat_id):
            data = self._load_required(chat_id)
            index = self._find_message_index(data, message_id)
            raw = data["messages"][index]
            raw["excluded"] = bool(excluded)
            raw["updated_at"] = _now()
            self._save(chat_id, data)

        return Message.from_dict(raw)

    def attach_generated_image(
        self,
        chat_id: str,
        message_id: int,
        data: bytes,
        mime_type: str,
    ) -> Message:
        """
        생성 이미지 첨부 (메시지당 1회).

        Args:
            chat_id: 채팅 ID
            message_id: 메시지 ID
            data: 디코딩된 이미지 바이트
            mime_type: image/png 등

        Returns:
            이미지가 첨부된 Message

        Raises:
            AttachmentError: IMAGE_ALREADY_ATTACHED, ATTACHMENT_FAILED
            PersistenceError: CHAT_NOT_FOUND, MESSAGE_NOT_FOUND
        """
        if not data:
            raise AttachmentError(
                ErrorCodes.ATTACHMENT_FAILED,
                "image data is empty",
                chat_id=chat_id,
                message_id=message_id,
            )

        with self._chat_lock(chat_id):
            chat_data = self._load_required(chat_id)
            index = self._find_message_index(chat_data, message_id)
            raw = chat_data["messages"][index]

            # 재첨부 금지 (exactly-once)
            if raw.get("generated_image"):
                raise AttachmentError(
                    ErrorCodes.IMAGE_ALREADY_ATTACHED,
                    "generated image already attached. Cannot overwrite.",
                    chat_id=chat_id,
                    message_id=message_id,
                )

            filename = f"{message_id}{get_image_extension(mime_type)}"
            relative_path = f"{CHAT_IMAGES_DIR}/{filename}"
            image_path = self._chat_dir(chat_id) / relative_path

            try:
                atomic_write_bytes(image_path, data)
            except OSError as e:
                raise AttachmentError(
                    ErrorCodes.ATTACHMENT_FAILED,
                    f"Failed to store image: {e}",
                    chat_id=chat_id,
                    message_id=message_id,
                ) from e

            attachment = ImageAttachment(
                filename=filename,
                mime_type=mime_type,
                size=len(data),
                path=relative_path,
                attached_at=_now(),
            )
            raw["generated_image"] = attachment.to_dict()
            raw["updated_at"] = attachment.attached_at

            try:
                self._save(chat_id, chat_data)
            except PersistenceError as e:
                image_path.unlink(missing_ok=True)
                raise AttachmentError(
                    ErrorCodes.ATTACHMENT_FAILED,
                    e.message,
                    chat_id=chat_id,
                    message_id=message_id,
                ) from e

        return Message.from_dict(raw)

    def image_path(self, chat_id: str, message_id: int) -> Path | None:
        """첨부 이미지 파일 경로 (없으면 None)."""
        message = self.get_message(chat_id, message_id)
        if message is None or message.generated_image is None:
            return None
        path = self._chat_dir(chat_id) / message.generated_image.path
        return path if path.exists() else None

    def list_messages(self, chat_id: str) -> list[Message]:
        """전체 메시지 (id 오름차순)."""
        data = self._load(chat_id)
        if data is None:
            return []
        messages = [Message.from_dict(raw) for raw in data["messages"]]
        return sorted(messages, key=lambda m: m.id)

    def context_messages(self, chat_id: str) -> list[Message]:
        """대화 context 에 포함되는 메시지 (excluded=False, id 오름차순)."""
        return [m for m in self.list_messages(chat_id) if m.in_context]
