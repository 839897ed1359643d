"""
Bot Bu - Dependency Container
==============================
Lazily built, process-wide service instances for the route handlers.

Every service is created on first access and reused afterwards: the
knowledge base is loaded once, the response cache and rate limiter are
shared by every request.  Route handlers receive them through the
``get_*`` functions so tests can swap them with
``app.dependency_overrides``.
"""

from __future__ import annotations

from botbu.config.settings import Settings, settings
from botbu.src.core.document_processor import DocumentIndex
from botbu.src.core.exceptions import KnowledgeBaseError
from botbu.src.core.llm_client import GeminiClient
from botbu.src.core.rag_engine import RAGManager
from botbu.src.core.rate_limiter import RateLimiter
from botbu.src.core.response_cache import ResponseCache
from botbu.src.core.retrieval import Embedder
from botbu.src.core.tiered_answerer import TieredAnswerer
from botbu.src.database.knowledge_store import KnowledgeBase, empty_knowledge_base, load_knowledge_base
from botbu.src.utils.logger import get_logger

logger = get_logger(__name__)


class ServiceContainer:
    """Container for cached service instances."""

    def __init__(self, config: Settings = settings) -> None:
        self._config = config
        self.clear()


    @property
    def knowledge_base(self) -> KnowledgeBase:
        if self._knowledge_base is None:
            try:
                self._knowledge_base = load_knowledge_base(self._config.KNOWLEDGE_BASE_FILE)
            except KnowledgeBaseError:
                logger.exception("[DEPS] Knowledge base unavailable, RAG answers will rely on web search.")
                self._knowledge_base = empty_knowledge_base()
        return self._knowledge_base


    @property
    def embedder(self) -> Embedder:
        if self._embedder is None:
            from langchain_google_genai import GoogleGenerativeAIEmbeddings

            self._embedder = GoogleGenerativeAIEmbeddings(model=self._config.EMBEDDING_MODEL, google_api_key=self._config.GOOGLE_API_KEY.get_secret_value())
            logger.info("[DEPS] Embedder initialised: %s", self._config.EMBEDDING_MODEL)
        return self._embedder


    @property
    def llm(self) -> GeminiClient:
        if self._llm is None:
            cfg = self._config
            self._llm = GeminiClient(api_key=cfg.GOOGLE_API_KEY.get_secret_value(), model=cfg.LLM_MODEL, temperature=cfg.LLM_TEMPERATURE, top_k=cfg.LLM_TOP_K, top_p=cfg.LLM_TOP_P, max_retries=cfg.LLM_MAX_RETRIES, base_delay=cfg.LLM_RETRY_BASE_DELAY)
            logger.info("[DEPS] LLM initialised: %r", self._llm)
        return self._llm


    @property
    def response_cache(self) -> ResponseCache:
        if self._response_cache is None:
            self._response_cache = ResponseCache(ttl_seconds=self._config.CACHE_TTL_SECONDS)
        return self._response_cache


    @property
    def rag_manager(self) -> RAGManager:
        if self._rag_manager is None:
            cfg = self._config
            self._rag_manager = RAGManager(knowledge_base=self.knowledge_base, llm=self.llm, embedder=self.embedder, cache=self.response_cache, retrieval=cfg.retrieval_config(), history_window=cfg.RAG_HISTORY_WINDOW, search_history_window=cfg.SEARCH_HISTORY_WINDOW, max_output_tokens=cfg.RAG_MAX_OUTPUT_TOKENS, search_temperature=cfg.SEARCH_TEMPERATURE)
        return self._rag_manager


    @property
    def document_index(self) -> DocumentIndex:
        if self._document_index is None:
            cfg = self._config
            self._document_index = DocumentIndex(cfg.DOCUMENTS_DIR, chunk_size=cfg.DOCUMENT_CHUNK_SIZE, chunk_overlap=cfg.DOCUMENT_CHUNK_OVERLAP, max_results=cfg.DOCUMENT_SEARCH_LIMIT, cache_seconds=cfg.DOCUMENT_CACHE_SECONDS)
        return self._document_index


    @property
    def tiered_answerer(self) -> TieredAnswerer:
        if self._tiered_answerer is None:
            self._tiered_answerer = TieredAnswerer(self.llm, self.document_index, max_output_tokens=self._config.TIER_MAX_OUTPUT_TOKENS)
        return self._tiered_answerer


    @property
    def rate_limiter(self) -> RateLimiter:
        if self._rate_limiter is None:
            self._rate_limiter = RateLimiter(self._config.rate_limit_config(), state_file=self._config.usage_state_file)
            logger.info("[DEPS] Rate limiter: %r", self._rate_limiter)
        return self._rate_limiter


    def clear(self) -> None:
        """Drop every cached instance."""
        self._knowledge_base: KnowledgeBase | None = None
        self._embedder: Embedder | None = None
        self._llm: GeminiClient | None = None
        self._response_cache: ResponseCache | None = None
        self._rag_manager: RAGManager | None = None
        self._document_index: DocumentIndex | None = None
        self._tiered_answerer: TieredAnswerer | None = None
        self._rate_limiter: RateLimiter | None = None


# Global service container
_services = ServiceContainer()


def get_services() -> ServiceContainer:
    return _services


def get_rag_manager() -> RAGManager:
    return _services.rag_manager


def get_tiered_answerer() -> TieredAnswerer:
    return _services.tiered_answerer


def get_rate_limiter() -> RateLimiter:
    return _services.rate_limiter


def get_settings() -> Settings:
    return settings
