from __future__ import annotations

from functools import lru_cache
from contextlib import contextmanager
from threading import BoundedSemaphore

from openai import OpenAI

from ..core.config import get_settings

_llm_semaphore: BoundedSemaphore | None = None


def _get_semaphore() -> BoundedSemaphore:
    """
    Lazy-initialised global semaphore for limiting concurrent LLM calls.
    """
    global _llm_semaphore
    if _llm_semaphore is None:
        settings = get_settings()
        _llm_semaphore = BoundedSemaphore(settings.LLM_MAX_CONCURRENCY)
    return _llm_semaphore


@contextmanager
def limit_llm_concurrency():
    """
    Bound concurrent streams to the LLM provider.

    Usage:

        with limit_llm_concurrency():
            for chunk in client.chat.completions.create(..., stream=True):
                ...

    The slot is held for as long as the stream is being consumed.
    """
    sem = _get_semaphore()
    sem.acquire()
    try:
        yield
    finally:
        sem.release()


def normalize_model_name(model: str, *, openrouter: bool) -> str:
    """
    OpenRouter expects vendor-prefixed ids ("openai/gpt-5"); the OpenAI API
    expects the bare model id.
    """
    m = (model or "").strip()
    if openrouter or "/" not in m:
        return m
    return m.split("/")[-1]


@lru_cache(maxsize=1)
def get_llm_client() -> OpenAI:
    """
    Centralised factory for the OpenAI‑compatible client used across the app.

    - If OPENROUTER_API_KEY is set, route requests via OpenRouter.
    - Otherwise, fall back to the standard OpenAI API using OPENAI_API_KEY.

    This is cached so all callers in a process share a single client instance.
    """
    settings = get_settings()

    if settings.OPENROUTER_API_KEY:
        return OpenAI(
            base_url="https://openrouter.ai/api/v1",
            api_key=settings.OPENROUTER_API_KEY.strip(),
            default_headers={
                "HTTP-Referer": settings.FRONTEND_ORIGIN or "http://localhost:3000",
                "X-Title": "Research Orchestrator",
            },
        )

    if settings.OPENAI_API_KEY:
        return OpenAI(api_key=settings.OPENAI_API_KEY.strip())

    raise RuntimeError(
        "No LLM API key configured. Set either OPENAI_API_KEY or OPENROUTER_API_KEY."
    )


def resolve_model() -> str:
    settings = get_settings()
    return normalize_model_name(settings.LLM_MODEL, openrouter=bool(settings.OPENROUTER_API_KEY))
