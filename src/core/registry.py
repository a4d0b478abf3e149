"""
Model Registry: 채팅 종류별 지원 모델 카탈로그.

순수 상수 데이터. 없는 모델/종류는 에러가 아니라 "미지원"(False).
"""

from src.domain.schemas import ChatType

SUPPORTED_MODELS: dict[ChatType, frozenset[str]] = {
    ChatType.TEXT: frozenset({
        "deepseek-r1",
        "llama3.2",
        "llama3.1",
        "llama3",
        "mistral",
        "openhermes2.5-mistral",
        "qwen2.5-coder",
        "gemma2",
    }),
    ChatType.IMAGE: frozenset({
        "anythingV3_fp16.safetensors",
        "realisticVisionV60B1_v51HyperVAE.safetensors",
        "sdxl-turbo",
        "sdxl-anime",
    }),
}

DEFAULT_MODELS: dict[ChatType, str] = {
    ChatType.TEXT: "llama3.1",
    ChatType.IMAGE: "sdxl-turbo",
}


def _coerce_chat_type(chat_type: ChatType | str) -> ChatType | None:
    if isinstance(chat_type, ChatType):
        return chat_type
    try:
        return ChatType(chat_type)
    except ValueError:
        return None


def models_for(chat_type: ChatType | str) -> frozenset[str]:
    """해당 종류의 지원 모델 집합 (알 수 없는 종류면 빈 집합)."""
    resolved = _coerce_chat_type(chat_type)
    if resolved is None:
        return frozenset()
    return SUPPORTED_MODELS[resolved]


def is_supported(chat_type: ChatType | str, model_id: str | None) -> bool:
    """model_id 가 해당 종류 카탈로그에 있는지."""
    if not model_id:
        return False
    return model_id in models_for(chat_type)


def default_model(chat_type: ChatType | str) -> str:
    """
    채팅 생성 시 모델 미지정이면 사용할 기본 모델.

    Raises:
        ValueError: 알 수 없는 chat_type
    """
    resolved = _coerce_chat_type(chat_type)
    if resolved is None:
        raise ValueError(f"Unknown chat type: {chat_type!r}")
    return DEFAULT_MODELS[resolved]


def catalog() -> dict[str, list[str]]:
    """모델 선택 UI 용 정렬된 목록."""
    return {
        chat_type.value: sorted(models)
        for chat_type, models in SUPPORTED_MODELS.items()
    }
