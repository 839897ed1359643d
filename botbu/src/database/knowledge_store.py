"""
Bot Bu - Knowledge Store
=========================
Read-only, process-lifetime view of the embedded knowledge base.

The knowledge base is a single JSON document produced offline
(consolidation + embedding passes)::

    {
        "version": "1.0",
        "last_updated": "2025-10-20T12:00:00Z",
        "total_chunks": 312,
        "categories": ["graduate courses", "dining hours", ...],
        "chunks": [
            {"id": "dining-1", "title": "Hinman Dining", "category": "dining hours",
             "content": "...", "keywords": ["hinman", "dining", ...],
             "metadata": {"source": "dining.json", "week": "..."},
             "embedding": [0.012, -0.044, ...]},
            ...
        ]
    }

Design decisions:
  • **Immutable**: ``Chunk`` and ``KnowledgeBase`` are frozen pydantic
    models; nothing mutates them at request time, so they are shared
    across concurrent requests without locking.
  • **Load once**: ``load_knowledge_base`` is called at startup by the
    service container.  There is no hot reload; a new file requires a
    process restart.
  • **Embeddings optional**: chunks whose embedding pass failed carry
    ``embedding = None``; they are skipped by similarity ranking but
    still eligible for keyword ranking.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from botbu.src.core.exceptions import KnowledgeBaseError
from botbu.src.utils.logger import get_logger

logger = get_logger(__name__)


class Chunk(BaseModel):
    """One retrievable unit of text."""

    model_config = ConfigDict(frozen=True)

    id: str
    title: str = "General Information"
    category: str = ""
    content: str
    keywords: tuple[str, ...] = ()
    metadata: dict[str, Any] = Field(default_factory=dict)
    embedding: tuple[float, ...] | None = None

    @property
    def has_embedding(self) -> bool:
        return bool(self.embedding)


class KnowledgeBase(BaseModel):
    """Wrapper holding every chunk plus catalogue metadata."""

    model_config = ConfigDict(frozen=True)

    version: str = "1.0"
    last_updated: str = ""
    total_chunks: int = 0
    categories: tuple[str, ...] = ()
    chunks: tuple[Chunk, ...] = ()

    def stats(self) -> dict[str, Any]:
        """Summary used by the health endpoint and the CLI."""
        return {
            "totalChunks": self.total_chunks,
            "embeddedChunks": sum(1 for chunk in self.chunks if chunk.has_embedding),
            "categories": list(self.categories),
            "lastUpdated": self.last_updated,
            "version": self.version,
        }


def load_knowledge_base(path: Path | str) -> KnowledgeBase:
    """
    Load and validate the knowledge-base JSON.

    Raises
    ------
    KnowledgeBaseError
        If the file is missing, not valid JSON, or does not match the
        chunk schema.
    """
    kb_path = Path(path)
    try:
        raw = json.loads(kb_path.read_text(encoding="utf-8"))
    except FileNotFoundError as exc:
        raise KnowledgeBaseError(f"Knowledge base not found: {kb_path}") from exc
    except (OSError, json.JSONDecodeError) as exc:
        raise KnowledgeBaseError(f"Cannot read knowledge base {kb_path}: {exc}") from exc

    try:
        kb = KnowledgeBase.model_validate(raw)
    except ValidationError as exc:
        raise KnowledgeBaseError(f"Malformed knowledge base {kb_path}: {exc}") from exc

    if kb.total_chunks != len(kb.chunks):
        logger.warning("[KB] total_chunks=%d but file holds %d chunks.", kb.total_chunks, len(kb.chunks))

    logger.info("[KB] Loaded %d chunks (%d embedded) from %s", len(kb.chunks), sum(1 for c in kb.chunks if c.has_embedding), kb_path.name)
    return kb


def empty_knowledge_base() -> KnowledgeBase:
    """Placeholder used when the file is unavailable so the tiered endpoint still serves."""
    return KnowledgeBase()
