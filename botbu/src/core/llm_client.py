"""
Bot Bu - Gemini Client
=======================
Thin async wrapper over ``google-genai`` used by every generation step.

Responsibilities:
  • Build ``GenerateContentConfig`` from settings (temperature, top-k,
    top-p, max output tokens).
  • Optionally attach the Google Search tool for grounded answers and
    extract cited web URIs from the grounding metadata.
  • Retry transient failures (``503`` / ``overloaded`` / ``429``) with
    exponential backoff; every other error propagates immediately.
  • Respect a caller's cancel event between attempts.

The model itself is an opaque service: nothing here inspects prompts.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any, TypeVar

from google import genai
from google.genai import types

from botbu.src.core.exceptions import ContentBlockedError, raise_if_cancelled
from botbu.src.utils.logger import get_logger

logger = get_logger(__name__)

T = TypeVar("T")

_TRANSIENT_MARKERS = ("503", "overloaded", "429")
_BLOCKING_FINISH_REASONS = {"SAFETY", "PROHIBITED_CONTENT", "BLOCKLIST", "SPII"}


@dataclass(frozen=True)
class LLMResponse:
    """Text plus any web sources the model cited."""

    text: str
    sources: list[str] = field(default_factory=list)


def is_transient_error(exc: BaseException) -> bool:
    message = str(exc)
    return any(marker in message for marker in _TRANSIENT_MARKERS)


async def retry_with_backoff(fn: Callable[[], Awaitable[T]], max_retries: int = 3, base_delay: float = 1.0, cancel_event: asyncio.Event | None = None, sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep) -> T:
    """
    Await ``fn()`` up to ``max_retries`` times.

    Only transient errors are retried; the delay doubles each attempt
    (``base_delay``, ``2 * base_delay`` …).  The last error is re-raised.
    """
    for attempt in range(max_retries):
        raise_if_cancelled(cancel_event, "model call")
        try:
            return await fn()
        except Exception as exc:
            is_last = attempt == max_retries - 1
            if is_last or not is_transient_error(exc):
                raise
            delay = base_delay * (2 ** attempt)
            logger.warning("[LLM] Retry %d/%d after %.1fs: %s", attempt + 1, max_retries, delay, exc)
            await sleep(delay)

    raise RuntimeError("retry_with_backoff called with max_retries < 1")


def extract_grounding_sources(response: Any) -> list[str]:
    """Web URIs from ``candidates[0].grounding_metadata.grounding_chunks``."""
    candidates = getattr(response, "candidates", None) or []
    if not candidates:
        return []
    metadata = getattr(candidates[0], "grounding_metadata", None)
    chunks = getattr(metadata, "grounding_chunks", None) or []

    sources: list[str] = []
    for chunk in chunks:
        web = getattr(chunk, "web", None)
        uri = getattr(web, "uri", None)
        if uri:
            sources.append(uri)
    return sources


def _block_reason(response: Any) -> str | None:
    feedback = getattr(response, "prompt_feedback", None)
    block = getattr(feedback, "block_reason", None)
    if block:
        return getattr(block, "name", str(block))

    candidates = getattr(response, "candidates", None) or []
    if candidates:
        finish = getattr(candidates[0], "finish_reason", None)
        name = getattr(finish, "name", str(finish) if finish else None)
        if name in _BLOCKING_FINISH_REASONS:
            return name
    return None


class GeminiClient:
    """
    Async text generation against a Gemini model.

    Parameters
    ----------
    api_key
        Google AI Studio key (raw value).
    model
        Model id, e.g. ``gemini-2.5-flash``.
    temperature, top_k, top_p
        Default sampling parameters.
    max_retries, base_delay
        Backoff policy for transient errors.
    client
        Pre-built ``genai.Client`` (tests inject a fake).
    """

    __slots__ = ("_client", "_model", "_temperature", "_top_k", "_top_p", "_max_retries", "_base_delay")

    def __init__(self, api_key: str | None = None, model: str = "gemini-2.5-flash", temperature: float = 0.7, top_k: int = 40, top_p: float = 0.95, max_retries: int = 3, base_delay: float = 1.0, client: Any = None) -> None:
        self._client = client if client is not None else genai.Client(api_key=api_key)
        self._model = model
        self._temperature = temperature
        self._top_k = top_k
        self._top_p = top_p
        self._max_retries = max_retries
        self._base_delay = base_delay


    @property
    def model(self) -> str:
        return self._model


    async def generate(self, prompt: str, *, web_search: bool = False, max_output_tokens: int = 1024, temperature: float | None = None, cancel_event: asyncio.Event | None = None) -> LLMResponse:
        """
        Generate a completion for ``prompt``.

        Parameters
        ----------
        web_search
            Attach the Google Search tool and collect grounding sources.
        temperature
            Override the default temperature for this call.

        Raises
        ------
        ContentBlockedError
            The model returned no text because of a safety block.
        RequestCancelled
            ``cancel_event`` was set before an attempt.
        """
        config = self._build_config(web_search=web_search, max_output_tokens=max_output_tokens, temperature=temperature)

        async def _call() -> Any:
            return await self._client.aio.models.generate_content(model=self._model, contents=prompt, config=config)

        response = await retry_with_backoff(_call, max_retries=self._max_retries, base_delay=self._base_delay, cancel_event=cancel_event)

        text = getattr(response, "text", None)
        if text is None:
            reason = _block_reason(response)
            if reason:
                raise ContentBlockedError(f"Response blocked: {reason}")
            text = ""

        sources = extract_grounding_sources(response) if web_search else []
        logger.debug("[LLM] %s → %d chars (web_search=%s, sources=%d)", self._model, len(text), web_search, len(sources))
        return LLMResponse(text=text, sources=sources)


    def _build_config(self, web_search: bool, max_output_tokens: int, temperature: float | None) -> types.GenerateContentConfig:
        tools = [types.Tool(google_search=types.GoogleSearch())] if web_search else None
        return types.GenerateContentConfig(
            temperature=self._temperature if temperature is None else temperature,
            top_k=self._top_k,
            top_p=self._top_p,
            max_output_tokens=max_output_tokens,
            tools=tools,
        )


    def __repr__(self) -> str:
        return f"GeminiClient(model='{self._model}', max_retries={self._max_retries})"
