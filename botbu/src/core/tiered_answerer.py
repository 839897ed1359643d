"""
Bot Bu - Three-Tier Answerer
=============================
Ordered fallback cascade for the main chat endpoint.

Architecture
------------
``TierResult``
    Tagged success / failure returned by every tier.  Failures carry a
    machine-readable ``reason`` (``no_documents``, ``insufficient_context``,
    ``needs_current_info``, ``error``).

``run_cascade``
    Small driver loop: awaits each strategy in order, stops at the first
    success, otherwise returns the apology with all failure reasons in
    the metadata.  Strategies are plain async callables, so the policy is
    testable without Gemini.

``TieredAnswerer``
    The three production strategies:
        1. **Internal Knowledge Base** – document keyword search builds a
           context block; the model answers strictly from it or replies
           ``TIER1_INSUFFICIENT``.
        2. **AI Built-in Knowledge** – no context, no tools; the model
           replies ``TIER2_INSUFFICIENT`` when it needs live data.
        3. **Google Search Grounding** – web-search tool enabled; any
           non-error reply succeeds and cited URIs are returned.

Errors raised inside a tier become ``reason="error"`` and the cascade
moves on.  ``RequestCancelled`` is the exception: it stops the cascade.

Usage:
    answerer = TieredAnswerer(llm, document_index)
    answer = await answerer.answer("When is the CS 240 final?", history)
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass, field
from typing import Any

from botbu.config.prompt_templates import ALL_TIERS_FAILED_RESPONSE, CONVERSATION_HEADER, TIER1_INSUFFICIENT_SIGNAL, TIER1_PROMPT, TIER2_INSUFFICIENT_SIGNAL, TIER2_PROMPT, TIER3_PROMPT
from botbu.src.core.conversation import ChatTurn, format_history
from botbu.src.core.document_processor import DocumentIndex
from botbu.src.core.exceptions import RequestCancelled, raise_if_cancelled
from botbu.src.core.llm_client import GeminiClient
from botbu.src.utils.logger import get_logger
from botbu.src.utils.text_utils import friendly_source_name

logger = get_logger(__name__)


@dataclass(frozen=True)
class TierResult:
    success: bool
    response: str = ""
    metadata: dict[str, Any] = field(default_factory=dict)
    reason: str | None = None
    error: str | None = None

    @classmethod
    def failed(cls, reason: str, error: str | None = None) -> TierResult:
        return cls(success=False, reason=reason, error=error)


@dataclass(frozen=True)
class TieredAnswer:
    message: str
    metadata: dict[str, Any]


TierStrategy = Callable[[str, Sequence[ChatTurn], "asyncio.Event | None"], Awaitable[TierResult]]


# ══════════════════════════════════════════════════════════════════════
#  DRIVER
# ══════════════════════════════════════════════════════════════════════

async def run_cascade(strategies: Sequence[tuple[str, TierStrategy]], message: str, history: Sequence[ChatTurn], cancel_event: asyncio.Event | None = None) -> TieredAnswer:
    """
    Try each ``(name, strategy)`` in order; first success wins.

    Every strategy receives the same ``(message, history)``.
    """
    failures: list[TierResult] = []

    for position, (name, strategy) in enumerate(strategies, 1):
        raise_if_cancelled(cancel_event, name)
        t_tier = time.perf_counter()
        try:
            result = await strategy(message, history, cancel_event)
        except RequestCancelled:
            raise
        except Exception as exc:
            logger.error("[TIER%d] %s error: %s", position, name, exc)
            result = TierResult.failed("error", str(exc))

        tier_ms = (time.perf_counter() - t_tier) * 1000
        if result.success:
            logger.info("[TIER%d] SUCCESS: %s (%.1fms, %d chars)", position, name, tier_ms, len(result.response))
            return TieredAnswer(message=result.response, metadata=result.metadata)

        logger.info("[TIER%d] %s failed: %s (%.1fms)", position, name, result.reason, tier_ms)
        failures.append(result)

    logger.warning("[TIERS] All tiers failed: %s", [f.reason for f in failures])
    metadata: dict[str, Any] = {"tier": 0, "tierName": "Failed", "error": "All tiers failed"}
    for position, failure in enumerate(failures, 1):
        metadata[f"tier{position}Reason"] = failure.reason
    return TieredAnswer(message=ALL_TIERS_FAILED_RESPONSE, metadata=metadata)


def _with_history(prompt: str, history: Sequence[ChatTurn]) -> str:
    if not history:
        return prompt
    return prompt + CONVERSATION_HEADER + format_history(history) + "\n"


# ══════════════════════════════════════════════════════════════════════
#  PRODUCTION TIERS
# ══════════════════════════════════════════════════════════════════════

class TieredAnswerer:
    """
    Internal documents → model knowledge → Google Search.

    Parameters
    ----------
    llm
        ``GeminiClient`` used by all three tiers.
    document_index
        Tier-1 search engine over the internal documents.
    max_output_tokens
        Output cap for every tier call.
    """

    __slots__ = ("_llm", "_documents", "_max_output_tokens")

    def __init__(self, llm: GeminiClient, document_index: DocumentIndex, max_output_tokens: int = 2048) -> None:
        self._llm = llm
        self._documents = document_index
        self._max_output_tokens = max_output_tokens


    @property
    def strategies(self) -> list[tuple[str, TierStrategy]]:
        return [
            ("Internal Knowledge Base", self.try_internal_documents),
            ("AI Built-in Knowledge", self.try_model_knowledge),
            ("Google Search Grounding", self.try_web_search),
        ]


    async def answer(self, message: str, history: Sequence[ChatTurn] = (), cancel_event: asyncio.Event | None = None) -> TieredAnswer:
        return await run_cascade(self.strategies, message, history, cancel_event)


    async def try_internal_documents(self, message: str, history: Sequence[ChatTurn], cancel_event: asyncio.Event | None = None) -> TierResult:
        """Tier 1: answer strictly from internal document context."""
        internal = await self._documents.get_internal_context(message)
        if internal is None or not internal.context:
            return TierResult.failed("no_documents")

        logger.info("[TIER1] %d relevant chunk(s)", internal.chunk_count)
        prompt = _with_history(TIER1_PROMPT.format(context=internal.context, question=message), history)
        reply = await self._llm.generate(prompt, max_output_tokens=self._max_output_tokens, cancel_event=cancel_event)

        if reply.text.strip() == TIER1_INSUFFICIENT_SIGNAL:
            return TierResult.failed("insufficient_context")

        return TierResult(
            success=True,
            response=reply.text,
            metadata={
                "tier": 1,
                "tierName": "Internal Knowledge Base",
                "internalDocsUsed": True,
                "internalSources": [friendly_source_name(name) for name in internal.sources],
                "chunksUsed": internal.chunk_count,
            },
        )


    async def try_model_knowledge(self, message: str, history: Sequence[ChatTurn], cancel_event: asyncio.Event | None = None) -> TierResult:
        """Tier 2: general model knowledge, no tools."""
        prompt = _with_history(TIER2_PROMPT.format(question=message), history)
        reply = await self._llm.generate(prompt, max_output_tokens=self._max_output_tokens, cancel_event=cancel_event)

        if reply.text.strip() == TIER2_INSUFFICIENT_SIGNAL:
            return TierResult.failed("needs_current_info")

        return TierResult(success=True, response=reply.text, metadata={"tier": 2, "tierName": "AI Built-in Knowledge", "internalDocsUsed": False, "googleSearchUsed": False})


    async def try_web_search(self, message: str, history: Sequence[ChatTurn], cancel_event: asyncio.Event | None = None) -> TierResult:
        """Tier 3: Google Search grounded answer with cited URIs."""
        prompt = _with_history(TIER3_PROMPT.format(question=message), history)
        reply = await self._llm.generate(prompt, web_search=True, max_output_tokens=self._max_output_tokens, cancel_event=cancel_event)

        if reply.sources:
            logger.info("[TIER3] Sources: %s", ", ".join(reply.sources))

        return TierResult(success=True, response=reply.text, metadata={"tier": 3, "tierName": "Google Search Grounding", "internalDocsUsed": False, "googleSearchUsed": True, "sources": reply.sources})
