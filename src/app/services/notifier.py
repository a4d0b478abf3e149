"""
Notifier: 구독 중인 클라이언트로 UI 증분 이벤트 push.

전달 보장:
- fire-and-forget, at-most-once
- 구독자가 없으면 버림 (재전송/저장 없음)
- 재접속한 클라이언트는 GET /api/chats/{id} 로 현재 상태를 다시 읽어야 함

채널 키: "<entity>:<id>:<topic>"
- chat:<chat_id>:messages           채팅 메시지 목록 (spinner, 생성, 교체)
- message:<chat_id>-<id>:answer     단일 메시지 answer (chunk append)
- user:<user_id>:notifications      사용자 알림 영역 (error)
"""

import asyncio
import json
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any

from src.domain.constants import (
    DEFAULT_SUBSCRIBER_QUEUE_SIZE,
    SPINNER_TARGET,
    TOPIC_ANSWER,
    TOPIC_MESSAGES,
    TOPIC_NOTIFICATIONS,
)
from src.domain.schemas import Chat, Message

logger = logging.getLogger(__name__)


# =============================================================================
# Events & Channels
# =============================================================================

class EventKind(str, Enum):
    """UI 이벤트 종류."""
    SPINNER_START = "spinner-start"
    SPINNER_REMOVE = "spinner-remove"
    MESSAGE_CREATED = "message-created"
    MESSAGE_CHUNK_APPENDED = "message-chunk-appended"
    MESSAGE_REPLACED = "message-replaced"
    ERROR = "error"


@dataclass(frozen=True)
class ChannelKey:
    """구독 가능한 알림 대상 (entity, id, topic)."""
    entity: str
    entity_id: str
    topic: str

    def __str__(self) -> str:
        return f"{self.entity}:{self.entity_id}:{self.topic}"


def chat_messages_channel(chat_id: str) -> ChannelKey:
    return ChannelKey("chat", chat_id, TOPIC_MESSAGES)


def message_channel(chat_id: str, message_id: int) -> ChannelKey:
    return ChannelKey("message", f"{chat_id}-{message_id}", TOPIC_ANSWER)


def user_notifications_channel(user_id: str) -> ChannelKey:
    return ChannelKey("user", str(user_id), TOPIC_NOTIFICATIONS)


@dataclass
class NotificationEvent:
    """구독자에게 전달되는 이벤트."""
    channel: str
    kind: EventKind
    payload: dict[str, Any]
    created_at: str = field(default_factory=lambda: datetime.now(UTC).isoformat())

    def to_dict(self) -> dict[str, Any]:
        return {
            "channel": self.channel,
            "kind": self.kind.value,
            "payload": self.payload,
            "created_at": self.created_at,
        }

    def to_sse(self) -> str:
        """SSE 프레임 (event: <kind> / data: <json>)."""
        data = json.dumps(self.to_dict(), ensure_ascii=False)
        return f"event: {self.kind.value}\ndata: {data}\n\n"


# =============================================================================
# Notifier
# =============================================================================

class Notifier(ABC):
    """알림 전송 추상 인터페이스 (publish 전용)."""

    @abstractmethod
    def notify(
        self,
        channel: ChannelKey | str,
        kind: EventKind,
        payload: dict[str, Any],
    ) -> None:
        """
        채널 구독자에게 이벤트 전달.

        Args:
            channel: 대상 채널
            kind: 이벤트 종류
            payload: 이벤트 데이터 (JSON 직렬화 가능)
        """
        ...


class BroadcastNotifier(Notifier):
    """
    프로세스 내 pub/sub (asyncio.Queue 기반).

    SSE 라우트가 subscribe() 한 큐를 소비.
    큐가 가득 찬 느린 구독자에게는 이벤트를 버림 (at-most-once).
    """

    def __init__(self, queue_size: int = DEFAULT_SUBSCRIBER_QUEUE_SIZE):
        self.queue_size = queue_size
        self._subscribers: dict[str, set[asyncio.Queue[NotificationEvent]]] = {}

    def subscribe(self, channel: ChannelKey | str) -> asyncio.Queue[NotificationEvent]:
        queue: asyncio.Queue[NotificationEvent] = asyncio.Queue(maxsize=self.queue_size)
        self._subscribers.setdefault(str(channel), set()).add(queue)
        return queue

    def unsubscribe(
        self,
        channel: ChannelKey | str,
        queue: asyncio.Queue[NotificationEvent],
    ) -> None:
        key = str(channel)
        queues = self._subscribers.get(key)
        if not queues:
            return
        queues.discard(queue)
        if not queues:
            del self._subscribers[key]

    def subscriber_count(self, channel: ChannelKey | str) -> int:
        return len(self._subscribers.get(str(channel), ()))

    def notify(
        self,
        channel: ChannelKey | str,
        kind: EventKind,
        payload: dict[str, Any],
    ) -> None:
        key = str(channel)
        queues = self._subscribers.get(key)
        if not queues:
            return

        event = NotificationEvent(channel=key, kind=kind, payload=payload)
        for queue in list(queues):
            try:
                queue.put_nowait(event)
            except asyncio.QueueFull:
                logger.warning(f"Subscriber queue full, dropping {kind.value} on {key}")


# =============================================================================
# Chat Broadcaster
# =============================================================================

class ChatBroadcaster:
    """
    채팅 단위 UI 이벤트 helper.

    두 오케스트레이터가 composition 으로 보유 (상속 아님).
    채널 키/target/payload 구성만 담당, 전송은 Notifier 에 위임.
    """

    def __init__(self, notifier: Notifier, chat: Chat):
        self.notifier = notifier
        self.chat = chat
        self.spinner_shown = False

    @property
    def messages_target(self) -> str:
        return f"ai_chat_{self.chat.id}_messages"

    def show_spinner(self, message: str | None = None) -> None:
        """spinner 표시 (message 없으면 점만 표시)."""
        self.notifier.notify(
            chat_messages_channel(self.chat.id),
            EventKind.SPINNER_START,
            {"target": self.messages_target, "message": message},
        )
        self.spinner_shown = True

    def remove_spinner(self) -> None:
        self.notifier.notify(
            chat_messages_channel(self.chat.id),
            EventKind.SPINNER_REMOVE,
            {"target": SPINNER_TARGET},
        )
        self.spinner_shown = False

    def remove_spinner_if_shown(self) -> None:
        if self.spinner_shown:
            self.remove_spinner()

    def add_message(self, message: Message) -> None:
        self.notifier.notify(
            chat_messages_channel(self.chat.id),
            EventKind.MESSAGE_CREATED,
            {"target": self.messages_target, "message": message.to_dict()},
        )

    def replace_message(self, message: Message) -> None:
        self.notifier.notify(
            chat_messages_channel(self.chat.id),
            EventKind.MESSAGE_REPLACED,
            {"target": f"ai_chat--message_{message.id}", "message": message.to_dict()},
        )

    def append_answer_chunk(self, message_id: int, chunk: str) -> None:
        """단일 메시지 채널에 fragment 텍스트만 전달 (partial 없음)."""
        self.notifier.notify(
            message_channel(self.chat.id, message_id),
            EventKind.MESSAGE_CHUNK_APPENDED,
            {
                "target": f"ai_message_{message_id}_answer",
                "message_id": message_id,
                "chunk": chunk,
            },
        )

    def notify_error(self, message: str) -> None:
        """채팅 소유자의 알림 영역으로 에러 전달."""
        self.notifier.notify(
            user_notifications_channel(self.chat.user_id),
            EventKind.ERROR,
            {
                "target": f"ai_chat_{self.chat.id}_notification",
                "chat_id": self.chat.id,
                "message": message,
            },
        )
