"""
Bot Bu - Retrieval
===================
Two rankers over the in-memory knowledge base.

``SimilarityRanker``
    Linear cosine-similarity scan over precomputed chunk embeddings.
    The query is embedded through an injected ``Embedder``; if that call
    fails an ``EmbeddingError`` is raised so the caller can switch to
    keyword search.

``KeywordRanker``
    Substring / keyword-overlap scoring.  Pure local computation that
    never fails; the designated fallback when embeddings are unavailable.

Both return ``RankedResult`` lists sorted by descending score.  Sorting
is stable, so equal scores keep knowledge-base order.
"""

from __future__ import annotations

import asyncio
import math
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Literal, Protocol, runtime_checkable

from botbu.config.settings import RetrievalConfig
from botbu.src.core.exceptions import EmbeddingError
from botbu.src.database.knowledge_store import Chunk
from botbu.src.utils.logger import get_logger
from botbu.src.utils.text_utils import tokenize_query

logger = get_logger(__name__)

SearchMethod = Literal["vector", "keyword"]

# Keyword score weights
_TITLE_WEIGHT = 2.0
_KEYWORD_WEIGHT = 1.5


# ── Embedder Protocol ─────────────────────────────────────────────────

@runtime_checkable
class Embedder(Protocol):
    """Structural type for any LangChain-compatible embedding model."""

    def embed_query(self, text: str) -> list[float]: ...


@dataclass(frozen=True)
class RankedResult:
    """A chunk plus its per-query score."""

    chunk: Chunk
    score: float
    method: SearchMethod
    matches: tuple[str, ...] = field(default_factory=tuple)

    @property
    def title(self) -> str:
        return self.chunk.title

    @property
    def content(self) -> str:
        return self.chunk.content


def cosine_similarity(vec_a: Sequence[float] | None, vec_b: Sequence[float] | None) -> float:
    """
    ``dot(a, b) / (|a| * |b|)``.

    Returns 0.0 for empty or missing vectors, mismatched lengths and
    zero magnitudes.  The result is not clamped.
    """
    if not vec_a or not vec_b or len(vec_a) != len(vec_b):
        return 0.0

    dot = sum(a * b for a, b in zip(vec_a, vec_b))
    magnitude_a = math.sqrt(sum(a * a for a in vec_a))
    magnitude_b = math.sqrt(sum(b * b for b in vec_b))

    if magnitude_a == 0.0 or magnitude_b == 0.0:
        return 0.0
    return dot / (magnitude_a * magnitude_b)


class SimilarityRanker:
    """
    Cosine-similarity ranking over embedded chunks.

    Parameters
    ----------
    chunks
        The knowledge-base chunks (read-only, shared).
    embedder
        Object exposing ``embed_query(text) -> list[float]``, e.g.
        ``GoogleGenerativeAIEmbeddings``.  Only needed for ``search``.
    """

    __slots__ = ("_chunks", "_embedder")

    def __init__(self, chunks: Sequence[Chunk], embedder: Embedder | None = None) -> None:
        self._chunks = chunks
        self._embedder = embedder


    def rank(self, query_embedding: Sequence[float], config: RetrievalConfig | None = None) -> list[RankedResult]:
        """Score every embedded chunk against ``query_embedding``."""
        config = config or RetrievalConfig()

        scored: list[RankedResult] = []
        for chunk in self._chunks:
            if not chunk.has_embedding:
                continue
            if config.category and chunk.category != config.category:
                continue
            similarity = cosine_similarity(query_embedding, chunk.embedding)
            if similarity < config.min_score:
                continue
            scored.append(RankedResult(chunk=chunk, score=similarity, method="vector"))

        scored.sort(key=lambda result: result.score, reverse=True)
        return scored[: config.top_k]


    async def search(self, query_text: str, config: RetrievalConfig | None = None) -> list[RankedResult]:
        """
        Embed ``query_text`` and rank.

        Raises
        ------
        EmbeddingError
            If no embedder is configured or the embedding call fails.
        """
        if self._embedder is None:
            raise EmbeddingError("No embedder configured for similarity search.")

        try:
            query_embedding = await asyncio.to_thread(self._embedder.embed_query, query_text)
        except Exception as exc:
            logger.warning("[VECTOR] Query embedding failed: %s", exc)
            raise EmbeddingError(str(exc)) from exc

        results = self.rank(query_embedding, config)
        logger.debug("[VECTOR] %d result(s) for '%s'", len(results), query_text[:60])
        return results


class KeywordRanker:
    """
    Keyword-overlap ranking.

    Score per chunk::

        (content_matches + 2 * title_matches + 1.5 * keyword_matches) / n_query_tokens

    where a content/title match is a query token found as a substring and
    a keyword match is a query token present in the chunk's keyword list.
    """

    __slots__ = ("_chunks",)

    def __init__(self, chunks: Sequence[Chunk]) -> None:
        self._chunks = chunks


    def rank(self, query_text: str, top_k: int = 5) -> list[RankedResult]:
        query_words = tokenize_query(query_text)
        if not query_words:
            return []

        scored: list[RankedResult] = []
        for chunk in self._chunks:
            content_lower = chunk.content.lower()
            title_lower = chunk.title.lower()
            keywords = set(chunk.keywords)

            content_matches = sum(1 for word in query_words if word in content_lower)
            title_matches = sum(1 for word in query_words if word in title_lower)
            keyword_matches = sum(1 for word in query_words if word in keywords)

            score = (content_matches + title_matches * _TITLE_WEIGHT + keyword_matches * _KEYWORD_WEIGHT) / len(query_words)
            if score <= 0:
                continue

            matches = tuple(word for word in query_words if word in content_lower or word in title_lower or word in keywords)
            scored.append(RankedResult(chunk=chunk, score=score, method="keyword", matches=matches))

        scored.sort(key=lambda result: result.score, reverse=True)
        logger.debug("[KEYWORD] %d/%d chunk(s) matched '%s'", len(scored), len(self._chunks), query_text[:60])
        return scored[:top_k]
