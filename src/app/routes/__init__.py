"""
FastAPI Routes.

API 라우트 (REST + SSE)
"""

from . import chat

__all__ = ["chat"]
