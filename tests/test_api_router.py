"""
Tests for the RAG-first client router using ``httpx.MockTransport``.
"""

import asyncio
import json

import httpx
import pytest

from botbu.src.core.api_router import ChatApiRouter
from botbu.src.core.conversation import ChatTurn
from botbu.src.core.exceptions import ApiRouterError, RequestCancelled


class _Backend:
    """Scripted server: ``status`` per endpoint, requests recorded in ``hits``."""

    def __init__(self, rag_status=200, fallback_status=200):
        self.rag_status = rag_status
        self.fallback_status = fallback_status
        self.hits = []
        self.bodies = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.hits.append(request.url.path)
        self.bodies.append(json.loads(request.content))
        if request.url.path == "/api/chat-rag":
            if self.rag_status != 200:
                return httpx.Response(self.rag_status, json={"success": False, "error": "RAG down"})
            return httpx.Response(200, json={"message": "rag answer", "metadata": {"cached": False}})
        if self.fallback_status != 200:
            return httpx.Response(self.fallback_status, json={"error": "Failed to process request", "message": "fallback down"})
        return httpx.Response(200, json={"message": "tiered answer", "metadata": {"tier": 2}})


def _router(backend, clock, **kwargs) -> ChatApiRouter:
    client = httpx.AsyncClient(transport=httpx.MockTransport(backend), base_url="http://botbu.test")
    return ChatApiRouter(client=client, clock=clock, **kwargs)


async def test_rag_success(clock):
    backend = _Backend()
    router = _router(backend, clock)

    result = await router.call("Who teaches CS 559?", [ChatTurn(type="user", content="hi")])

    assert result["message"] == "rag answer"
    assert result["apiUsed"] == "RAG"
    assert result["usedFallback"] is False
    assert "processingTime" in result
    assert backend.hits == ["/api/chat-rag"]
    assert backend.bodies[0] == {"message": "Who teaches CS 559?", "conversationHistory": [{"type": "user", "content": "hi"}]}


async def test_rag_failure_falls_back(clock):
    backend = _Backend(rag_status=500)
    router = _router(backend, clock)

    result = await router.call("hello")

    assert result["message"] == "tiered answer"
    assert result["apiUsed"] == "Fallback"
    assert result["usedFallback"] is True
    assert backend.hits == ["/api/chat-rag", "/api/chat"]
    assert router.status()["ragFailures"] == 1


async def test_non_json_success_body_counts_as_rag_failure(clock):
    def backend(request: httpx.Request) -> httpx.Response:
        if request.url.path == "/api/chat-rag":
            return httpx.Response(200, content=b"<html>gateway</html>", headers={"Content-Type": "text/html"})
        return httpx.Response(200, json={"message": "tiered answer", "metadata": {"tier": 2}})

    router = _router(backend, clock)

    result = await router.call("hello")

    assert result["message"] == "tiered answer"
    assert result["apiUsed"] == "Fallback"
    assert router.status()["ragFailures"] == 1


async def test_cooldown_after_repeated_failures(clock):
    backend = _Backend(rag_status=503)
    router = _router(backend, clock, max_failures=3, cooldown_seconds=60)

    for _ in range(3):
        await router.call("hello")
    backend.hits.clear()

    result = await router.call("hello")

    assert backend.hits == ["/api/chat"]
    assert result["apiUsed"] == "Fallback"
    status = router.status()
    assert status["inCooldown"] is True
    assert status["recommendedAPI"] == "Fallback"
    assert 0 < status["cooldownRemaining"] <= 60


async def test_cooldown_expires_and_success_resets(clock):
    backend = _Backend(rag_status=503)
    router = _router(backend, clock, max_failures=3, cooldown_seconds=60)
    for _ in range(3):
        await router.call("hello")

    clock.advance(61)
    backend.rag_status = 200
    result = await router.call("hello")

    assert result["apiUsed"] == "RAG"
    assert router.status() == {"ragFailures": 0, "inCooldown": False, "cooldownRemaining": 0.0, "recommendedAPI": "RAG"}


async def test_both_fail_raises_fallback_error(clock):
    router = _router(_Backend(rag_status=500, fallback_status=500), clock)

    with pytest.raises(ApiRouterError, match="fallback down") as exc_info:
        await router.call("hello")

    assert exc_info.value.status_code == 500


async def test_cancelled_request_skips_fallback(clock):
    event = asyncio.Event()
    backend = _Backend(rag_status=500)
    router = _router(lambda request: (event.set(), backend(request))[1], clock)

    with pytest.raises(RequestCancelled):
        await router.call("hello", cancel_event=event)

    assert backend.hits == ["/api/chat-rag"]


def test_reset_failures(clock):
    router = ChatApiRouter(clock=clock)
    router._rag_failures = 5
    router._last_rag_failure = clock()

    router.reset_failures()

    assert router.status()["ragFailures"] == 0
