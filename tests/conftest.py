"""
Shared test fixtures.

Provides: fake Gemini client, fake embedder, a small knowledge base
(courses + Hinman dining), a controllable clock.
"""

import os

# Settings are instantiated at import time and GOOGLE_API_KEY is required.
os.environ.setdefault("GOOGLE_API_KEY", "test-key")

from typing import Any

import pytest

from botbu.src.core.llm_client import LLMResponse
from botbu.src.database.knowledge_store import Chunk, KnowledgeBase


class FakeClock:
    """Manually advanced epoch-seconds clock."""

    def __init__(self, start: float = 1_700_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeLLM:
    """
    Stand-in for ``GeminiClient``.

    ``replies`` is consumed in order; an ``Exception`` instance is raised
    instead of returned.  Every call is recorded in ``calls``.
    """

    def __init__(self, *replies: Any):
        self.replies = list(replies)
        self.calls: list[dict[str, Any]] = []

    async def generate(self, prompt: str, *, web_search: bool = False, max_output_tokens: int = 1024, temperature: float | None = None, cancel_event=None) -> LLMResponse:
        self.calls.append({"prompt": prompt, "web_search": web_search, "temperature": temperature})
        reply = self.replies.pop(0)
        if isinstance(reply, Exception):
            raise reply
        if isinstance(reply, LLMResponse):
            return reply
        return LLMResponse(text=reply)


class FakeEmbedder:
    """Maps query substrings to fixed vectors; unknown queries get ``default``."""

    def __init__(self, vectors: dict[str, list[float]] | None = None, default: list[float] | None = None, error: Exception | None = None):
        self.vectors = vectors or {}
        self.default = default or [0.0, 0.0, 1.0]
        self.error = error
        self.queries: list[str] = []

    def embed_query(self, text: str) -> list[float]:
        self.queries.append(text)
        if self.error is not None:
            raise self.error
        for needle, vector in self.vectors.items():
            if needle.lower() in text.lower():
                return vector
        return self.default


def make_chunk(chunk_id: str, content: str, title: str = "General Information", category: str = "general", keywords: tuple[str, ...] = (), embedding: tuple[float, ...] | None = None) -> Chunk:
    return Chunk(id=chunk_id, title=title, category=category, content=content, keywords=keywords, embedding=embedding)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def hinman_chunk() -> Chunk:
    return make_chunk(
        "dining-hinman",
        "Hinman Dining Hall is open Monday to Friday 7:00 AM - 9:00 PM and weekends 10:00 AM - 8:00 PM.",
        title="Hinman Dining",
        category="dining hours",
        keywords=("hinman", "dining", "hall", "hours"),
        embedding=(0.0, 1.0, 0.0),
    )


@pytest.fixture
def sample_chunks(hinman_chunk: Chunk) -> list[Chunk]:
    return [
        make_chunk("cs-559", "CS 559 Science of Cyber Security is taught by Yan Guanhua. Monday and Wednesday 9:45 AM - 11:15 AM in S2 258.", title="CS 559 - Science of Cyber Security", category="graduate courses", keywords=("cs", "559", "cyber", "security"), embedding=(1.0, 0.0, 0.0)),
        make_chunk("cs-515", "CS 515 Fundamentals of Computing Systems meets Tuesday and Thursday 1:15 PM - 2:40 PM in EB 111.", title="CS 515 - Fundamentals of Computing Systems", category="graduate courses", keywords=("cs", "515", "computing", "systems"), embedding=(0.8, 0.6, 0.0)),
        hinman_chunk,
        make_chunk("parking", "Visitor parking is available in Lot M1 with a daily pass.", title="Parking", category="campus", keywords=("parking", "visitor")),
    ]


@pytest.fixture
def knowledge_base(sample_chunks: list[Chunk]) -> KnowledgeBase:
    return KnowledgeBase(version="1.0", last_updated="2025-10-20", total_chunks=len(sample_chunks), categories=("graduate courses", "dining hours", "campus"), chunks=tuple(sample_chunks))
