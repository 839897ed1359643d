"""
Test suite for the HTTP routes.

Uses FastAPI ``TestClient`` with ``dependency_overrides`` so no real
Gemini client, knowledge-base file or usage-state file is touched.
"""

from datetime import datetime
from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from botbu.config.prompt_templates import GENERIC_ERROR_RESPONSE
from botbu.config.settings import RateLimitConfig, RetrievalConfig
from botbu.src.api.dependencies import get_rag_manager, get_rate_limiter, get_tiered_answerer
from botbu.src.api.routes import classify_chat_error, router
from botbu.src.core.document_processor import DocumentIndex
from botbu.src.core.rag_engine import RAGManager
from botbu.src.core.rate_limiter import RateLimiter
from botbu.src.core.response_cache import ResponseCache
from botbu.src.core.tiered_answerer import TieredAnswerer
from conftest import FakeEmbedder, FakeLLM


@pytest.fixture
def app() -> FastAPI:
    app = FastAPI()
    app.include_router(router)
    return app


@pytest.fixture
def client(app: FastAPI) -> TestClient:
    return TestClient(app)


def _limiter(clock, rpd=10000, rpm=1000, interval_ms=0) -> RateLimiter:
    return RateLimiter(RateLimitConfig(rpm=rpm, rpd=rpd, min_request_interval_ms=interval_ms), clock=clock)


def _override(app, dependency, value):
    app.dependency_overrides[dependency] = lambda: value


class TestChatRagEndpoint:

    def test_returns_message_and_metadata(self, app, client, knowledge_base, clock):
        # Arrange
        llm = FakeLLM("Hinman is open until 9 PM.")
        rag = RAGManager(knowledge_base, llm, embedder=FakeEmbedder({"hinman": [0.0, 1.0, 0.0]}), cache=ResponseCache(7200, clock=clock), retrieval=RetrievalConfig(top_k=10, min_score=0.25), now=lambda: datetime(2025, 3, 14, 12, 0))
        _override(app, get_rag_manager, rag)

        # Act
        response = client.post("/api/chat-rag", json={"message": "Is Hinman open?", "conversationHistory": [{"type": "user", "content": "hi"}]})

        # Assert
        assert response.status_code == 200
        body = response.json()
        assert body["message"] == "Hinman is open until 9 PM."
        assert set(body["metadata"]) == {"chunksFound", "searchMethod", "processingTime", "cached", "usedFallback"}
        assert body["metadata"]["searchMethod"] == "vector"

    @pytest.mark.parametrize("payload", [{"message": 123}, {"message": ""}, {"conversationHistory": []}, {"message": None}])
    def test_invalid_message_is_400(self, app, client, payload):
        rag = MagicMock()
        rag.generate_response = AsyncMock()
        _override(app, get_rag_manager, rag)

        response = client.post("/api/chat-rag", json=payload)

        assert response.status_code == 400
        assert response.json() == {"success": False, "error": "Invalid message format"}
        rag.generate_response.assert_not_awaited()

    def test_non_json_body_is_400(self, app, client):
        _override(app, get_rag_manager, MagicMock())

        response = client.post("/api/chat-rag", content=b"not json", headers={"Content-Type": "application/json"})

        assert response.status_code == 400

    def test_unexpected_error_is_500(self, app, client):
        rag = MagicMock()
        rag.generate_response = AsyncMock(side_effect=RuntimeError("kb exploded"))
        _override(app, get_rag_manager, rag)

        response = client.post("/api/chat-rag", json={"message": "hello"})

        assert response.status_code == 500
        assert response.json()["message"] == GENERIC_ERROR_RESPONSE
        assert response.json()["metadata"]["error"] == "kb exploded"


class TestChatEndpoint:

    def _wire(self, app, tmp_path, llm, limiter):
        _override(app, get_tiered_answerer, TieredAnswerer(llm, DocumentIndex(tmp_path)))
        _override(app, get_rate_limiter, limiter)

    def test_tiered_answer(self, app, client, tmp_path, clock):
        limiter = _limiter(clock)
        self._wire(app, tmp_path, FakeLLM("Binghamton is in Vestal, NY."), limiter)

        response = client.post("/api/chat", json={"message": "Where is Binghamton University?"})

        assert response.status_code == 200
        assert response.json()["message"] == "Binghamton is in Vestal, NY."
        assert response.json()["metadata"]["tier"] == 2
        assert limiter.usage_stats().requests_today == 1

    def test_blank_message_is_400(self, app, client, tmp_path, clock):
        limiter = _limiter(clock)
        self._wire(app, tmp_path, FakeLLM(), limiter)

        response = client.post("/api/chat", json={"message": "   "})

        assert response.status_code == 400
        assert response.json() == {"error": "Message is required"}
        assert limiter.usage_stats().total_requests == 0

    def test_rapid_requests_are_throttled(self, app, client, tmp_path, clock):
        llm = FakeLLM("first")
        self._wire(app, tmp_path, llm, _limiter(clock, interval_ms=1000))

        client.post("/api/chat", json={"message": "hello"})
        response = client.post("/api/chat", json={"message": "hello again"})

        assert response.status_code == 429
        body = response.json()
        assert body["rateLimited"] is True
        assert body["waitTime"] == 1
        assert len(llm.calls) == 1

    def test_daily_quota_exceeded(self, app, client, tmp_path, clock):
        llm = FakeLLM("first")
        self._wire(app, tmp_path, llm, _limiter(clock, rpd=1))

        client.post("/api/chat", json={"message": "hello"})
        response = client.post("/api/chat", json={"message": "hello again"})

        assert response.status_code == 429
        body = response.json()
        assert body["reason"] == "daily_limit_exceeded"
        assert body["retryAfter"] == "tomorrow"
        assert "tomorrow" in body["message"]
        assert len(llm.calls) == 1

    def test_all_tiers_failing_still_returns_200_apology(self, app, client, tmp_path, clock):
        self._wire(app, tmp_path, FakeLLM(RuntimeError("x"), RuntimeError("x"), RuntimeError("x")), _limiter(clock))

        response = client.post("/api/chat", json={"message": "hello"})

        assert response.status_code == 200
        assert response.json()["metadata"]["tierName"] == "Failed"

    def test_pipeline_error_is_classified(self, app, client, clock):
        answerer = MagicMock()
        answerer.answer = AsyncMock(side_effect=RuntimeError("Response blocked: SAFETY"))
        _override(app, get_tiered_answerer, answerer)
        _override(app, get_rate_limiter, _limiter(clock))

        response = client.post("/api/chat", json={"message": "hello"})

        assert response.status_code == 400
        assert response.json()["error"] == "Content filtered"


@pytest.mark.parametrize("message, status, error", [
    ("You exceeded your current quota", 429, "API rate limit exceeded"),
    ("rate limit reached upstream", 429, "API rate limit exceeded"),
    ("API_KEY_INVALID", 500, "API configuration error"),
    ("401 Unauthorized", 500, "API configuration error"),
    ("finish_reason SAFETY", 400, "Content filtered"),
    ("socket closed", 500, "Failed to process request"),
])
def test_classify_chat_error(message, status, error):
    response = classify_chat_error(RuntimeError(message))

    assert response.status_code == status
    assert error.encode() in response.body


def test_health_endpoint(client):
    response = client.get("/api/chat")

    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "ok"
    assert body["features"]["tier3"] == "Google Search Grounding"
    assert body["rateLimits"] == {"rpm": 1000, "rpd": 10000}


class TestUsageEndpoint:

    def test_usage_shape(self, app, client, clock):
        limiter = _limiter(clock, rpd=100, rpm=10)
        for _ in range(3):
            limiter.record_request()
        _override(app, get_rate_limiter, limiter)

        response = client.get("/api/usage")

        assert response.status_code == 200
        body = response.json()
        usage = body["globalUsage"]
        assert body["success"] is True
        assert usage["requestsToday"] == 3
        assert usage["dailyLimit"] == 100
        assert usage["dailyRemaining"] == 97
        assert usage["dailyPercentage"] == 3.0
        assert usage["minutePercentage"] == 30.0
        assert usage["totalRequests"] == 3
        assert usage["firstRequestDate"]
        assert usage["warnings"] == {"dailyWarning": False, "dailyCritical": False, "minuteWarning": False, "minuteCritical": False}
        assert usage["status"] == "healthy"
        assert "ALL users" in body["message"]

    def test_usage_critical_when_minute_quota_nearly_used(self, app, client, clock):
        limiter = _limiter(clock, rpd=100, rpm=10)
        for _ in range(10):
            limiter.record_request()
        _override(app, get_rate_limiter, limiter)

        usage = client.get("/api/usage").json()["globalUsage"]

        assert usage["warnings"]["minuteCritical"] is True
        assert usage["warnings"]["dailyWarning"] is False
        assert usage["status"] == "critical"
