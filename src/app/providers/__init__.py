"""
AI Provider Abstraction.

텍스트(스트리밍)/이미지(단일 호출) producer 교체 가능하게 설계.
모델명은 chat.ai_model_name 만 SSOT.
"""

from .base import Fragment, ImageProvider, ImageResponse, TextProvider
from .image_http import HttpImageProvider
from .ollama import OllamaTextProvider

__all__ = [
    "TextProvider",
    "ImageProvider",
    "Fragment",
    "ImageResponse",
    "OllamaTextProvider",
    "HttpImageProvider",
]
