"""
Bot Bu - Internal Document Search
===================================
Keyword search over the raw university documents (``.txt`` / ``.pdf`` /
``.docx``) dropped into the documents directory.  This is the engine
behind tier 1 of the tiered answerer and is deliberately simpler than
the embedded knowledge base: no embeddings, just term counting.

Pipeline:  read → clean → sentence chunk (with overlap) → cache →
term-count search → formatted context block.

Key design decisions:
    • **Time-boxed cache** – extracted documents are cached for
      ``cache_seconds`` (5 min) so PDFs are not re-parsed per request.
    • **Blocking I/O off the loop** – file reads and PDF/DOCX extraction
      run in a worker thread via ``asyncio.to_thread``.
    • **Unreadable files are skipped** – a broken PDF is logged and left
      out rather than failing the whole tier.
    • **Sanitised labels** – context blocks and sources use friendly
      names; raw filenames never reach the model or the user.

Usage:
    from botbu.src.core.document_processor import DocumentIndex
    index = DocumentIndex(settings.DOCUMENTS_DIR)
    internal = await index.get_internal_context("CS exam schedule")
"""

from __future__ import annotations

import asyncio
import re
import time
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path

from docx import Document as DocxDocument
from PyPDF2 import PdfReader

from botbu.src.utils.logger import get_logger
from botbu.src.utils.text_utils import clean_text, friendly_source_name, tokenize_query

logger = get_logger(__name__)

_SUPPORTED_EXTENSIONS = {".txt", ".pdf", ".docx"}
_SENTENCE_SPLIT_RE = re.compile(r"[.!?]\s+")


@dataclass(frozen=True)
class LoadedDocument:
    file_name: str
    chunks: tuple[str, ...]

    @property
    def chunk_count(self) -> int:
        return len(self.chunks)


@dataclass(frozen=True)
class DocumentMatch:
    file_name: str
    chunk: str
    chunk_index: int
    match_count: int
    relevance_score: float


@dataclass(frozen=True)
class InternalContext:
    """Formatted context handed to the tier-1 prompt."""

    context: str
    sources: list[str]
    chunk_count: int


# ══════════════════════════════════════════════════════════════════════
#  PURE HELPERS
# ══════════════════════════════════════════════════════════════════════

def chunk_text(text: str, chunk_size: int = 1000, overlap: int = 200) -> list[str]:
    """
    Greedy sentence packing.

    Sentences are appended until the next one would push the chunk past
    ``chunk_size``; the new chunk then starts with the last
    ``overlap // 5`` words of the previous one.
    """
    chunks: list[str] = []
    current = ""
    overlap_words = max(overlap // 5, 1)

    for sentence in _SENTENCE_SPLIT_RE.split(text):
        if len(current + sentence) > chunk_size and current:
            chunks.append(current.strip())
            tail = current.split(" ")[-overlap_words:]
            current = " ".join(tail) + " " + sentence
        else:
            current += (" " if current else "") + sentence

    if current.strip():
        chunks.append(current.strip())
    return chunks


def search_documents(documents: list[LoadedDocument], query: str, max_results: int = 5) -> list[DocumentMatch]:
    """
    Score every chunk by the fraction of query terms (len > 2) it contains.

    Chunks with no matching term are dropped; ties keep document order.
    """
    if not documents:
        return []

    query_terms = tokenize_query(query)
    if not query_terms:
        return []

    results: list[DocumentMatch] = []
    for doc in documents:
        for index, chunk in enumerate(doc.chunks):
            chunk_lower = chunk.lower()
            match_count = sum(1 for term in query_terms if term in chunk_lower)
            if match_count > 0:
                results.append(DocumentMatch(file_name=doc.file_name, chunk=chunk, chunk_index=index, match_count=match_count, relevance_score=match_count / len(query_terms)))

    results.sort(key=lambda match: match.relevance_score, reverse=True)
    logger.debug("[DOCS] %d matching chunk(s) for '%s', keeping %d", len(results), query[:60], min(len(results), max_results))
    return results[:max_results]


def format_context(results: list[DocumentMatch]) -> str:
    """Render matches as labelled blocks; empty string when there are none."""
    if not results:
        return ""

    blocks = ["INTERNAL DOCUMENTS CONTEXT:\n\n"]
    for result in results:
        blocks.append(f"[Document: {friendly_source_name(result.file_name)}]\n{result.chunk}\n\n")
    return "".join(blocks)


# ══════════════════════════════════════════════════════════════════════
#  FILE READING
# ══════════════════════════════════════════════════════════════════════

def _read_txt(path: Path) -> str:
    try:
        return path.read_text(encoding="utf-8")
    except UnicodeDecodeError:
        return path.read_text(encoding="latin-1")


def _read_pdf(path: Path) -> str:
    reader = PdfReader(str(path))
    pages = [(page.extract_text() or "") for page in reader.pages]
    logger.debug("[DOCS] PDF %s: %d page(s)", path.name, len(pages))
    return "\n\n".join(pages)


def _read_docx(path: Path) -> str:
    document = DocxDocument(str(path))
    return "\n".join(paragraph.text for paragraph in document.paragraphs)


_READERS: dict[str, Callable[[Path], str]] = {
    ".txt": _read_txt,
    ".pdf": _read_pdf,
    ".docx": _read_docx,
}


class DocumentIndex:
    """
    Lazily loaded, time-cached set of internal documents.

    Parameters
    ----------
    documents_dir
        Directory scanned (non-recursively) for supported files.
    chunk_size, chunk_overlap
        Passed to ``chunk_text``.
    max_results
        Chunks returned per search.
    cache_seconds
        How long extracted documents are reused before re-reading disk.
    clock
        Returns epoch seconds; injectable for tests.
    """

    __slots__ = ("_dir", "_chunk_size", "_chunk_overlap", "_max_results", "_cache_seconds", "_clock", "_documents", "_loaded_at")

    def __init__(self, documents_dir: Path, chunk_size: int = 1000, chunk_overlap: int = 200, max_results: int = 5, cache_seconds: float = 300, clock: Callable[[], float] = time.time) -> None:
        self._dir = Path(documents_dir)
        self._chunk_size = chunk_size
        self._chunk_overlap = chunk_overlap
        self._max_results = max_results
        self._cache_seconds = cache_seconds
        self._clock = clock
        self._documents: list[LoadedDocument] | None = None
        self._loaded_at: float | None = None


    async def load(self) -> list[LoadedDocument]:
        """Return cached documents, re-reading the directory once the cache expires."""
        if self._documents is not None and self._loaded_at is not None and self._clock() - self._loaded_at < self._cache_seconds:
            logger.debug("[DOCS] Using cached documents (%d)", len(self._documents))
            return self._documents

        documents = await asyncio.to_thread(self._load_from_disk)
        self._documents = documents
        self._loaded_at = self._clock()
        return documents


    async def get_internal_context(self, query: str) -> InternalContext | None:
        """Search the documents; ``None`` when nothing matches."""
        documents = await self.load()
        if not documents:
            return None

        results = search_documents(documents, query, self._max_results)
        if not results:
            logger.info("[DOCS] No relevant documents found")
            return None

        logger.info("[DOCS] Generated context from %d document chunk(s)", len(results))
        return InternalContext(context=format_context(results), sources=[r.file_name for r in results], chunk_count=len(results))


    def _load_from_disk(self) -> list[LoadedDocument]:
        if not self._dir.exists():
            logger.warning("[DOCS] Documents directory does not exist: %s", self._dir)
            return []

        files = sorted(f for f in self._dir.iterdir() if f.is_file() and f.suffix.lower() in _SUPPORTED_EXTENSIONS)
        if not files:
            logger.warning("[DOCS] No supported documents in %s", self._dir)
            return []

        documents: list[LoadedDocument] = []
        for path in files:
            try:
                raw = _READERS[path.suffix.lower()](path)
            except Exception:
                logger.exception("[DOCS] Failed to extract text from %s, skipping.", path.name)
                continue

            text = clean_text(raw)
            if not text:
                logger.warning("[DOCS] No text extracted from %s", path.name)
                continue

            chunks = chunk_text(text, self._chunk_size, self._chunk_overlap)
            documents.append(LoadedDocument(file_name=path.name, chunks=tuple(chunks)))
            logger.debug("[DOCS] %s → %d chunk(s)", path.name, len(chunks))

        logger.info("[DOCS] Loaded %d document(s) with %d chunk(s)", len(documents), sum(d.chunk_count for d in documents))
        return documents
