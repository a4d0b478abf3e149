"""
설정: default.yaml + 환경변수 override.

우선순위: 환경변수 > default.yaml > 코드 기본값
인증 토큰(IMAGE_GENERATION_AUTH_TOKEN)은 환경변수에서만 읽음 (yaml 커밋 금지).
"""

import os
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import yaml

from src.domain.constants import (
    DEFAULT_CHUNK_DELAY,
    DEFAULT_FLUSH_DELAY,
    DEFAULT_FLUSH_THRESHOLD,
    DEFAULT_HEARTBEAT_INTERVAL,
    DEFAULT_IMAGE_HEIGHT,
    DEFAULT_IMAGE_READ_TIMEOUT,
    DEFAULT_IMAGE_TIMEOUT,
    DEFAULT_IMAGE_WIDTH,
    DEFAULT_LOCK_TIMEOUT,
    DEFAULT_SUBSCRIBER_QUEUE_SIZE,
    DEFAULT_TEXT_TIMEOUT,
)

PROJECT_ROOT = Path(__file__).parent.parent.parent


def load_config(config_path: Path | None = None) -> dict:
    """설정 파일 로드 (없으면 빈 dict)."""
    if config_path is None:
        config_path = PROJECT_ROOT / "default.yaml"

    if not config_path.exists():
        return {}

    with open(config_path, encoding="utf-8") as f:
        data: dict[Any, Any] = yaml.safe_load(f) or {}
        return data


@dataclass
class ChatSettings:
    """이 서비스가 소비하는 설정 전체."""
    data_root: Path
    lock_timeout: float = DEFAULT_LOCK_TIMEOUT

    # 텍스트 producer
    text_url: str = "http://localhost:11434"
    text_timeout: float = DEFAULT_TEXT_TIMEOUT
    text_default_model: str | None = None  # None 이면 registry 기본값

    # 이미지 producer
    image_url: str = "http://localhost:7860/generate"
    image_auth_token: str | None = None
    image_width: int = DEFAULT_IMAGE_WIDTH
    image_height: int = DEFAULT_IMAGE_HEIGHT
    image_timeout: float = DEFAULT_IMAGE_TIMEOUT
    image_read_timeout: float = DEFAULT_IMAGE_READ_TIMEOUT

    # 스트리밍
    flush_threshold: int = DEFAULT_FLUSH_THRESHOLD
    chunk_delay: float = DEFAULT_CHUNK_DELAY
    flush_delay: float = DEFAULT_FLUSH_DELAY

    # 알림
    queue_size: int = DEFAULT_SUBSCRIBER_QUEUE_SIZE
    heartbeat_interval: float = DEFAULT_HEARTBEAT_INTERVAL


def build_settings(
    config: dict,
    environ: Mapping[str, str] | None = None,
) -> ChatSettings:
    """
    config dict + 환경변수 → ChatSettings.

    Args:
        config: load_config() 결과
        environ: 환경변수 (None 이면 os.environ)
    """
    env = os.environ if environ is None else environ

    storage = config.get("storage", {}) or {}
    ai = config.get("ai", {}) or {}
    text = ai.get("text", {}) or {}
    image = ai.get("image", {}) or {}
    streaming = config.get("streaming", {}) or {}
    notifications = config.get("notifications", {}) or {}

    data_root = Path(env.get("CHAT_DATA_ROOT") or storage.get("data_root", "data"))
    if not data_root.is_absolute():
        data_root = PROJECT_ROOT / data_root

    return ChatSettings(
        data_root=data_root,
        lock_timeout=float(storage.get("lock_timeout", DEFAULT_LOCK_TIMEOUT)),
        text_url=env.get("TEXT_GENERATION_URL") or text.get("url", "http://localhost:11434"),
        text_timeout=float(text.get("timeout", DEFAULT_TEXT_TIMEOUT)),
        text_default_model=text.get("default_model") or None,
        image_url=env.get("IMAGE_GENERATION_URL") or image.get(
            "url", "http://localhost:7860/generate"
        ),
        image_auth_token=env.get("IMAGE_GENERATION_AUTH_TOKEN") or None,
        image_width=int(env.get("IMAGE_GENERATION_WIDTH") or image.get("width", DEFAULT_IMAGE_WIDTH)),
        image_height=int(env.get("IMAGE_GENERATION_HEIGHT") or image.get("height", DEFAULT_IMAGE_HEIGHT)),
        image_timeout=float(
            env.get("IMAGE_GENERATION_TIMEOUT") or image.get("timeout", DEFAULT_IMAGE_TIMEOUT)
        ),
        image_read_timeout=float(
            env.get("IMAGE_GENERATION_READ_TIMEOUT")
            or image.get("read_timeout", DEFAULT_IMAGE_READ_TIMEOUT)
        ),
        flush_threshold=int(streaming.get("flush_threshold", DEFAULT_FLUSH_THRESHOLD)),
        chunk_delay=float(streaming.get("chunk_delay", DEFAULT_CHUNK_DELAY)),
        flush_delay=float(streaming.get("flush_delay", DEFAULT_FLUSH_DELAY)),
        queue_size=int(notifications.get("queue_size", DEFAULT_SUBSCRIBER_QUEUE_SIZE)),
        heartbeat_interval=float(
            notifications.get("heartbeat_interval", DEFAULT_HEARTBEAT_INTERVAL)
        ),
    )
