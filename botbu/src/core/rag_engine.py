"""
Bot Bu - RAG Engine
====================
Single-tier retrieval-augmented answering behind ``POST /api/chat-rag``.

``RAGManager`` flow:
    1.  Cache lookup on the raw message → return immediately on hit.
    2.  Dining query? → add current date / day / time to the prompt.
    3.  Expand the query with course numbers from recent history.
    4.  Retrieve → cosine similarity (top-k 10, min score 0.25), falling
        back to keyword ranking when the query cannot be embedded.
    5.  Build the augmented prompt (chunks joined by ``---``, last 6
        messages of history).
    6.  Call Gemini with retry/backoff.
    7.  Nothing retrieved, or the model says it lacks the information →
        one Google-Search-grounded supplement (last 4 messages).  If that
        fails the first answer stands.
    8.  Gemini unavailable after retries → best chunk's raw content
        (``usedFallback``) or, with no chunks, the overloaded apology.
    9.  Cache write (skipped for the apology and for cancelled requests).

Cancellation: an optional ``asyncio.Event``; once set, no further model
or embedding call is made and nothing is cached.
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from botbu.config.prompt_templates import CONTEXT_SEPARATOR, DINING_KEYWORDS, DIRECT_CONTEXT_TEMPLATE, NO_CONTEXT_PLACEHOLDER, NO_HISTORY_PLACEHOLDER, NO_KB_INFO_PHRASE, OVERLOADED_RESPONSE, RAG_PROMPT_TEMPLATE, TIME_CONTEXT_TEMPLATE, WEB_SEARCH_PROMPT_TEMPLATE
from botbu.config.settings import RetrievalConfig
from botbu.src.core.conversation import ChatTurn, format_history
from botbu.src.core.exceptions import EmbeddingError, RequestCancelled, raise_if_cancelled
from botbu.src.core.llm_client import GeminiClient
from botbu.src.core.query_expander import expand_query
from botbu.src.core.response_cache import ResponseCache
from botbu.src.core.retrieval import Embedder, KeywordRanker, RankedResult, SearchMethod, SimilarityRanker
from botbu.src.database.knowledge_store import KnowledgeBase
from botbu.src.utils.logger import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class RAGAnswer:
    """Answer text plus the metadata returned to the client."""

    message: str
    metadata: dict[str, Any]
    sources: list[dict[str, Any]] = field(default_factory=list)

    def to_payload(self) -> dict[str, Any]:
        return {"message": self.message, "metadata": self.metadata}


def is_dining_query(message: str) -> bool:
    lowered = message.lower()
    return any(keyword in lowered for keyword in DINING_KEYWORDS)


def build_time_context(now: datetime) -> str:
    """``CURRENT DATE & TIME`` block, e.g. ``3/14/2025`` / ``Friday`` / ``06:30 PM``."""
    return TIME_CONTEXT_TEMPLATE.format(date=f"{now.month}/{now.day}/{now.year}", day=now.strftime("%A"), time=now.strftime("%I:%M %p"))


def build_context(results: Sequence[RankedResult]) -> str:
    """Chunk contents joined by separators; no titles or source labels."""
    if not results:
        return NO_CONTEXT_PLACEHOLDER
    return CONTEXT_SEPARATOR.join(result.content for result in results)


class RAGManager:
    """
    Retrieval → prompt → Gemini → optional web supplement → cache.

    Parameters
    ----------
    knowledge_base
        The loaded, immutable knowledge base.
    llm
        ``GeminiClient`` for generation and the web-search supplement.
    embedder
        Query embedder for similarity search; ``None`` means keyword only.
    cache
        Shared ``ResponseCache``; a private 2 h cache is created if omitted.
    retrieval
        Top-k / min-score for similarity search (keyword search reuses top-k).
    history_window, search_history_window
        Messages of history in the main prompt and in the web supplement.
    now
        Returns the local ``datetime``; injectable for tests.
    """

    __slots__ = ("_kb", "_llm", "_cache", "_similarity", "_keyword", "_retrieval", "_history_window", "_search_history_window", "_max_output_tokens", "_search_temperature", "_now")

    def __init__(self, knowledge_base: KnowledgeBase, llm: GeminiClient, embedder: Embedder | None = None, cache: ResponseCache | None = None, retrieval: RetrievalConfig | None = None, history_window: int = 6, search_history_window: int = 4, max_output_tokens: int = 1024, search_temperature: float = 0.8, now: Callable[[], datetime] = datetime.now) -> None:
        self._kb = knowledge_base
        self._llm = llm
        self._cache = cache if cache is not None else ResponseCache(ttl_seconds=7200)
        self._similarity = SimilarityRanker(knowledge_base.chunks, embedder)
        self._keyword = KeywordRanker(knowledge_base.chunks)
        self._retrieval = retrieval or RetrievalConfig(top_k=10, min_score=0.25)
        self._history_window = history_window
        self._search_history_window = search_history_window
        self._max_output_tokens = max_output_tokens
        self._search_temperature = search_temperature
        self._now = now


    @property
    def cache(self) -> ResponseCache:
        return self._cache


    async def generate_response(self, message: str, history: Sequence[ChatTurn] = (), cancel_event: asyncio.Event | None = None) -> RAGAnswer:
        """
        Answer ``message`` from the knowledge base.

        Raises
        ------
        RequestCancelled
            ``cancel_event`` was set; nothing was cached.
        """
        t_start = time.perf_counter()

        def elapsed_ms() -> int:
            return int((time.perf_counter() - t_start) * 1000)

        # ── 1. Cache lookup ───────────────────────────────────────────
        cache_key = ResponseCache.make_key(message)
        entry = self._cache.get(cache_key)
        if entry is not None:
            logger.info("[RAG] Cache hit: '%s'", message[:60])
            metadata = {**entry.data["metadata"], "cached": True, "processingTime": elapsed_ms()}
            return RAGAnswer(message=entry.data["response"], metadata=metadata, sources=entry.data.get("sources", []))

        logger.info("[RAG] Processing query: '%s' (%d history message(s))", message[:80], len(history))

        # ── 2. Dining time context ────────────────────────────────────
        time_context = ""
        if is_dining_query(message):
            time_context = build_time_context(self._now())
            logger.debug("[RAG] Dining query, adding time context")

        # ── 3. Query expansion ────────────────────────────────────────
        search_query = expand_query(message, history)
        if search_query != message:
            logger.info("[RAG] Query expanded: '%s' → '%s'", message[:50], search_query[:80])

        # ── 4. Retrieval ──────────────────────────────────────────────
        t_search = time.perf_counter()
        chunks, search_method = await self._retrieve(search_query, cancel_event)
        search_ms = (time.perf_counter() - t_search) * 1000
        logger.info("[RAG] Found %d chunk(s) via %s search in %.1fms", len(chunks), search_method, search_ms)
        for rank, result in enumerate(chunks[:3], 1):
            logger.debug("[RAG]   %d. %s (score: %.3f)", rank, result.title, result.score)

        # ── 5. Prompt ─────────────────────────────────────────────────
        prompt = RAG_PROMPT_TEMPLATE.format(context=build_context(chunks), history=format_history(history, self._history_window) or NO_HISTORY_PLACEHOLDER, time_context=time_context, question=message)

        # ── 6-8. Generate (+ web supplement / local fallback) ─────────
        used_fallback = False
        t_llm = time.perf_counter()
        try:
            reply = await self._llm.generate(prompt, max_output_tokens=self._max_output_tokens, cancel_event=cancel_event)
            answer = reply.text

            if not chunks or NO_KB_INFO_PHRASE in answer:
                answer = await self._web_supplement(message, history, answer, cancel_event)
        except RequestCancelled:
            raise
        except Exception as exc:
            logger.error("[RAG] Gemini failed after retries: %s", exc)
            if not chunks:
                return RAGAnswer(message=OVERLOADED_RESPONSE, metadata={"error": "Gemini overloaded", "processingTime": elapsed_ms(), "usedFallback": True})
            logger.info("[RAG] Using direct context fallback")
            answer = DIRECT_CONTEXT_TEMPLATE.format(content=chunks[0].content)
            used_fallback = True
        llm_ms = (time.perf_counter() - t_llm) * 1000

        # ── 9. Cache write ────────────────────────────────────────────
        raise_if_cancelled(cancel_event, "cache write")

        sources = [{"title": r.title, "category": r.chunk.category, "similarity": f"{r.score:.3f}"} for r in chunks]
        metadata = {"chunksFound": len(chunks), "searchMethod": search_method, "processingTime": elapsed_ms(), "cached": False, "usedFallback": used_fallback}
        self._cache.put(cache_key, {"response": answer, "sources": sources, "metadata": metadata})

        logger.info("[RAG] Response generated in %dms (search=%.1f, llm=%.1f)%s", metadata["processingTime"], search_ms, llm_ms, " (fallback)" if used_fallback else "")
        return RAGAnswer(message=answer, metadata=metadata, sources=sources)

    # ══════════════════════════════════════════════════════════════════
    #  HELPERS
    # ══════════════════════════════════════════════════════════════════

    async def _retrieve(self, search_query: str, cancel_event: asyncio.Event | None) -> tuple[list[RankedResult], SearchMethod]:
        raise_if_cancelled(cancel_event, "retrieval")
        try:
            return await self._similarity.search(search_query, self._retrieval), "vector"
        except EmbeddingError as exc:
            logger.warning("[RAG] Vector search failed, falling back to keyword search: %s", exc)

        raise_if_cancelled(cancel_event, "keyword search")
        return self._keyword.rank(search_query, top_k=self._retrieval.top_k), "keyword"


    async def _web_supplement(self, message: str, history: Sequence[ChatTurn], original: str, cancel_event: asyncio.Event | None) -> str:
        """Google-Search-grounded answer; the original answer stands if it fails."""
        logger.info("[RAG] No knowledge-base answer, trying Google Search")

        recent = format_history(history, self._search_history_window)
        conversation = f"Recent conversation:\n{recent}\n\n" if recent else ""
        prompt = WEB_SEARCH_PROMPT_TEMPLATE.format(conversation=conversation, question=message)

        try:
            reply = await self._llm.generate(prompt, web_search=True, max_output_tokens=self._max_output_tokens, temperature=self._search_temperature, cancel_event=cancel_event)
        except RequestCancelled:
            raise
        except Exception as exc:
            logger.warning("[RAG] Google Search failed: %s", exc)
            return original

        logger.info("[RAG] Google Search provided an answer (%d source(s))", len(reply.sources))
        return reply.text


    def __repr__(self) -> str:
        return f"RAGManager(chunks={len(self._kb.chunks)}, llm={self._llm!r}, cache={self._cache!r})"
