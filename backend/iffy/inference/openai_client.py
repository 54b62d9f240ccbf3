from __future__ import annotations

from typing import Optional

from openai import AsyncOpenAI, OpenAI

from ..config import settings
from ..logger import logger

_async_client: Optional[AsyncOpenAI] = None
_client: Optional[OpenAI] = None


def _require_key() -> str:
    if not settings.OPENAI_API_KEY:
        logger.error("OPENAI_API_KEY is not set; model calls are unavailable.")
        raise RuntimeError("OPENAI_API_KEY is not set")
    return settings.OPENAI_API_KEY


def get_async_client() -> AsyncOpenAI:
    """
    Lazily initialize the request-path client so that importing this module
    does not explode if the key is missing (e.g. during tests).
    """
    global _async_client
    if _async_client is None:
        _async_client = AsyncOpenAI(api_key=_require_key())
    return _async_client


def get_client() -> OpenAI:
    """Blocking client for the Celery worker."""
    global _client
    if _client is None:
        _client = OpenAI(api_key=_require_key())
    return _client
