"""
Bot Bu - Knowledge Base Search CLI
===================================
Inspect retrieval without starting the server:
    1. Validate settings (``GOOGLE_API_KEY`` must be set).
    2. Load the embedded knowledge base and print its stats.
    3. Expand the query exactly as the RAG endpoint does.
    4. Rank with cosine similarity (or keyword matching with
       ``--keyword``; similarity falls back to keywords on embedding
       failure) and print the top chunks.

Usage:
    python -m botbu.scripts.search_kb "Who teaches CS 559?"
    python -m botbu.scripts.search_kb "hinman dining hours" --keyword --top-k 3
    python -m botbu.scripts.search_kb "cs 240" --category courses --min-score 0.4
"""

from __future__ import annotations

import argparse
import asyncio
import sys
import time
from pathlib import Path

# ── Ensure project root is importable when run directly ────────────────
_PROJECT_ROOT = Path(__file__).resolve().parent.parent.parent
if str(_PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(_PROJECT_ROOT))


# ── CLI Argument Parsing ───────────────────────────────────────────────

def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="search_kb", description="Bot Bu: rank knowledge-base chunks for a query.")
    parser.add_argument("query", help="Question to search for.")
    parser.add_argument("--top-k", type=int, default=None, help="Number of chunks to show (default: RAG_TOP_K).")
    parser.add_argument("--min-score", type=float, default=None, help="Minimum cosine similarity (default: RAG_MIN_SCORE).")
    parser.add_argument("--category", default=None, help="Only rank chunks of this category (similarity search only).")
    parser.add_argument("--keyword", action="store_true", default=False, help="Skip embeddings and use keyword ranking.")
    return parser.parse_args(argv)


# ── Main Orchestration ─────────────────────────────────────────────────

def main(argv: list[str] | None = None) -> int:
    args = _parse_args(argv)

    try:
        from botbu.config.settings import RetrievalConfig, settings
    except Exception as exc:
        print("\n[FATAL] Configuration error, check your .env file:\n")
        print(f"  {exc}")
        print()
        return 1

    from botbu.src.core.exceptions import EmbeddingError, KnowledgeBaseError
    from botbu.src.core.query_expander import expand_query
    from botbu.src.core.retrieval import KeywordRanker, SimilarityRanker
    from botbu.src.database.knowledge_store import load_knowledge_base
    from botbu.src.utils.logger import get_logger

    logger = get_logger(__name__)

    try:
        kb = load_knowledge_base(settings.KNOWLEDGE_BASE_FILE)
    except KnowledgeBaseError as exc:
        logger.error("%s", exc)
        return 1

    _print_header(kb.stats(), settings.KNOWLEDGE_BASE_FILE)

    config = RetrievalConfig(top_k=args.top_k or settings.RAG_TOP_K, min_score=settings.RAG_MIN_SCORE if args.min_score is None else args.min_score, category=args.category)
    search_query = expand_query(args.query)
    print(f"Query: {args.query}")
    if search_query != args.query:
        print(f"Expanded: {search_query}")
    print("=" * 60)

    t_search = time.perf_counter()
    results = []
    if not args.keyword:
        from langchain_google_genai import GoogleGenerativeAIEmbeddings

        embedder = GoogleGenerativeAIEmbeddings(model=settings.EMBEDDING_MODEL, google_api_key=settings.GOOGLE_API_KEY.get_secret_value())
        try:
            results = asyncio.run(SimilarityRanker(kb.chunks, embedder).search(search_query, config))
        except EmbeddingError as exc:
            logger.warning("Vector search failed, using keyword ranking: %s", exc)
            args.keyword = True
    if args.keyword:
        results = KeywordRanker(kb.chunks).rank(search_query, top_k=config.top_k)
    search_ms = (time.perf_counter() - t_search) * 1000

    for i, result in enumerate(results, 1):
        print(f"\n--- Result {i} ({result.method}) ---")
        print(f"  Title:     {result.title}")
        print(f"  Category:  {result.chunk.category}")
        print(f"  Score:     {result.score:.4f}")
        if result.matches:
            print(f"  Matches:   {', '.join(result.matches)}")
        print(f"  Content:   {result.content[:300]}")

    print("\n" + "=" * 60)
    print(f"  {len(results)} result(s) in {search_ms:.1f}ms")
    print("=" * 60)
    return 0


# ── Pretty-print helpers ──────────────────────────────────────────────

def _print_header(stats: dict, path: Path) -> None:
    print()
    print("=" * 60)
    print("  BOT BU - Knowledge Base Search")
    print("=" * 60)
    print(f"  File         : {path}")
    print(f"  Version      : {stats['version']} (updated {stats['lastUpdated']})")
    print(f"  Chunks       : {stats['totalChunks']} ({stats['embeddedChunks']} embedded)")
    print(f"  Categories   : {', '.join(stats['categories']) or '-'}")
    print("=" * 60)
    print()


# ── Entry point ────────────────────────────────────────────────────────

if __name__ == "__main__":
    sys.exit(main())
