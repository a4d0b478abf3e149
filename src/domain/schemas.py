"""
Data schemas for the chat service.

규칙:
- Chat.ai_model_name 은 생성 시 registry 로 검증, 이후 변경 없음
- Message.prompt 는 생성 후 불변, answer 만 누적 갱신
- 이미지 채팅 메시지는 answer 대신 generated_image 가 1회 첨부됨
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

# =============================================================================
# Chat Type (modality)
# =============================================================================

class ChatType(str, Enum):
    """채팅 종류. 어떤 producer/저장 형태를 쓸지 결정."""
    TEXT = "text"
    IMAGE = "image"


# =============================================================================
# Core Schemas
# =============================================================================

@dataclass
class ImageAttachment:
    """메시지에 첨부된 생성 이미지."""
    filename: str
    mime_type: str
    size: int
    path: str  # chat 디렉터리 기준 상대 경로
    attached_at: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "filename": self.filename,
            "mime_type": self.mime_type,
            "size": self.size,
            "path": self.path,
            "attached_at": self.attached_at,
        }


@dataclass
class Message:
    """채팅의 한 턴 (prompt + 누적 answer)."""
    id: int
    chat_id: str
    prompt: str
    answer: str = ""
    excluded: bool = False  # True면 대화 context 에서 제외
    created_at: str | None = None
    updated_at: str | None = None
    generated_image: ImageAttachment | None = None

    @property
    def in_context(self) -> bool:
        return not self.excluded

    def to_dict(self) -> dict[str, Any]:
        """JSON 직렬화용."""
        return {
            "id": self.id,
            "chat_id": self.chat_id,
            "prompt": self.prompt,
            "answer": self.answer,
            "excluded": self.excluded,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
            "generated_image": (
                self.generated_image.to_dict() if self.generated_image else None
            ),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Message":
        image = data.get("generated_image")
        return cls(
            id=int(data["id"]),
            chat_id=data["chat_id"],
            prompt=data["prompt"],
            answer=data.get("answer", ""),
            excluded=bool(data.get("excluded", False)),
            created_at=data.get("created_at"),
            updated_at=data.get("updated_at"),
            generated_image=ImageAttachment(**image) if image else None,
        )


@dataclass
class Chat:
    """대화 단위."""
    id: str
    user_id: str
    chat_type: ChatType
    ai_model_name: str
    title: str
    created_at: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "chat_type": self.chat_type.value,
            "ai_model_name": self.ai_model_name,
            "title": self.title,
            "created_at": self.created_at,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Chat":
        return cls(
            id=data["id"],
            user_id=str(data["user_id"]),
            chat_type=ChatType(data["chat_type"]),
            ai_model_name=data["ai_model_name"],
            title=data.get("title", ""),
            created_at=data.get("created_at"),
        )


# =============================================================================
# Service Result
# =============================================================================

BASE_FIELD = "base"

FIELD_LABELS = {
    "ai_chat": "Chat",
    "chat_id": "Chat id",
    "user_id": "User id",
    "ai_model_name": "Model",
}


@dataclass
class ResultError:
    """
    오케스트레이터 결과의 개별 에러.

    kind: validation / producer / timeout / decoding / attachment / persistence / error
    field: 관련 필드 (prompt, chat_id, ai_chat ...), 특정 필드가 없으면 "base"
    code: ErrorCodes 값 (도메인 에러에서 온 경우)
    """
    kind: str
    field: str
    message: str
    code: str | None = None

    @property
    def full_message(self) -> str:
        """'Prompt is required' 형태의 사람이 읽는 문장 (base 는 message 그대로)."""
        if self.field == BASE_FIELD:
            return self.message
        label = FIELD_LABELS.get(self.field, self.field.replace("_", " ").capitalize())
        return f"{label} {self.message}"

    def to_dict(self) -> dict[str, Any]:
        return {
            "kind": self.kind,
            "field": self.field,
            "message": self.message,
            "code": self.code,
        }


def to_sentence(items: list[str]) -> str:
    """['a', 'b', 'c'] → 'a, b and c'."""
    if not items:
        return ""
    if len(items) == 1:
        return items[0]
    return ", ".join(items[:-1]) + " and " + items[-1]


@dataclass
class ServiceResult:
    """
    오케스트레이터 진입점의 반환값.

    success: 성공 여부
    errors: 구조화된 에러 목록
    message: 생성된 메시지 (텍스트 응답이 비어 있으면 성공이어도 None)
    """
    success: bool = True
    errors: list[ResultError] = field(default_factory=list)
    message: Message | None = None

    def add_error(
        self, kind: str, field_name: str, message: str, code: str | None = None
    ) -> None:
        self.errors.append(
            ResultError(kind=kind, field=field_name, message=message, code=code)
        )
        self.success = False

    def errors_for(self, field_name: str) -> list[str]:
        return [e.message for e in self.errors if e.field == field_name]

    def full_messages(self) -> str:
        return to_sentence([e.full_message for e in self.errors])

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": self.success,
            "errors": [e.to_dict() for e in self.errors],
            "message": self.message.to_dict() if self.message else None,
        }
