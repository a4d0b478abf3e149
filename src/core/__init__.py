"""
Core layer: 영속화와 카탈로그.

역할:
- 채팅/메시지 저장소 (락 + 원자적 쓰기)
- 모델 registry, ID 생성
"""

from .atomic_io import atomic_write_bytes, atomic_write_json
from .ids import generate_chat_id, truncate_title
from .registry import catalog, default_model, is_supported, models_for
from .store import ConversationStore

__all__ = [
    # atomic_io
    "atomic_write_json",
    "atomic_write_bytes",
    # ids
    "generate_chat_id",
    "truncate_title",
    # registry
    "models_for",
    "is_supported",
    "default_model",
    "catalog",
    # store
    "ConversationStore",
]
