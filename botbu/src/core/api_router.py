"""
Bot Bu - API Router
====================
Client-side endpoint chooser for front ends talking to a Bot Bu server.

Calls ``/api/chat-rag`` first and falls back to the tiered ``/api/chat``
when it fails.  After ``max_failures`` consecutive RAG failures the
router skips RAG entirely until ``cooldown_seconds`` have passed since
the last failure; any RAG success resets the counter.

Failure state is per router instance.
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Callable, Sequence
from typing import Any

import httpx

from botbu.src.core.conversation import ChatTurn
from botbu.src.core.exceptions import ApiRouterError, raise_if_cancelled
from botbu.src.utils.logger import get_logger

logger = get_logger(__name__)

RAG_ENDPOINT = "/api/chat-rag"
FALLBACK_ENDPOINT = "/api/chat"


class ChatApiRouter:
    """
    RAG-first chat client with failure cooldown.

    Parameters
    ----------
    base_url
        Server root, e.g. ``http://localhost:8000``.
    max_failures
        Consecutive RAG failures that trigger the cooldown.
    cooldown_seconds
        How long RAG is skipped after the last failure.
    clock
        Monotonic seconds; injectable for tests.
    client
        Shared ``httpx.AsyncClient``; a short-lived one is opened per
        request when omitted.
    """

    __slots__ = ("_base_url", "_max_failures", "_cooldown", "_clock", "_client", "_timeout", "_rag_failures", "_last_rag_failure")

    def __init__(self, base_url: str = "http://localhost:8000", max_failures: int = 3, cooldown_seconds: float = 60.0, clock: Callable[[], float] = time.monotonic, client: httpx.AsyncClient | None = None, timeout: float = 60.0) -> None:
        self._base_url = base_url.rstrip("/")
        self._max_failures = max_failures
        self._cooldown = cooldown_seconds
        self._clock = clock
        self._client = client
        self._timeout = timeout
        self._rag_failures = 0
        self._last_rag_failure: float | None = None


    async def call(self, message: str, history: Sequence[ChatTurn] = (), cancel_event: asyncio.Event | None = None) -> dict[str, Any]:
        """
        Send ``message`` and return the endpoint's JSON plus ``apiUsed``,
        ``usedFallback`` and ``processingTime`` (ms).

        Raises
        ------
        ApiRouterError
            Both endpoints failed (the fallback's error is raised).
        RequestCancelled
            ``cancel_event`` was set; the fallback is not attempted.
        """
        t_start = time.perf_counter()

        def elapsed_ms() -> int:
            return int((time.perf_counter() - t_start) * 1000)

        payload = {"message": message, "conversationHistory": [turn.model_dump() for turn in history]}

        raise_if_cancelled(cancel_event, "RAG request")
        if self._in_cooldown():
            logger.info("[ROUTER] RAG in cooldown, using fallback API")
            response = await self._post(FALLBACK_ENDPOINT, payload)
            return {**response, "apiUsed": "Fallback", "usedFallback": True, "processingTime": elapsed_ms()}

        try:
            response = await self._post(RAG_ENDPOINT, payload)
        except ApiRouterError as exc:
            self._rag_failures += 1
            self._last_rag_failure = self._clock()
            logger.warning("[ROUTER] RAG API failed (%d consecutive): %s", self._rag_failures, exc)
        else:
            self._rag_failures = 0
            self._last_rag_failure = None
            return {**response, "apiUsed": "RAG", "usedFallback": False, "processingTime": elapsed_ms()}

        raise_if_cancelled(cancel_event, "fallback request")
        logger.info("[ROUTER] Falling back to standard API")
        try:
            response = await self._post(FALLBACK_ENDPOINT, payload)
        except ApiRouterError:
            logger.error("[ROUTER] Both APIs failed")
            raise
        return {**response, "apiUsed": "Fallback", "usedFallback": True, "processingTime": elapsed_ms()}


    def status(self) -> dict[str, Any]:
        in_cooldown = self._in_cooldown()
        remaining = self._cooldown - (self._clock() - self._last_rag_failure) if in_cooldown and self._last_rag_failure is not None else 0.0
        return {"ragFailures": self._rag_failures, "inCooldown": in_cooldown, "cooldownRemaining": remaining, "recommendedAPI": "Fallback" if in_cooldown else "RAG"}


    def reset_failures(self) -> None:
        self._rag_failures = 0
        self._last_rag_failure = None
        logger.info("[ROUTER] API failure tracking reset")


    def _in_cooldown(self) -> bool:
        if self._rag_failures < self._max_failures or self._last_rag_failure is None:
            return False
        return self._clock() - self._last_rag_failure < self._cooldown


    async def _post(self, endpoint: str, payload: dict[str, Any]) -> dict[str, Any]:
        if self._client is not None:
            return await self._send(self._client, endpoint, payload)
        async with httpx.AsyncClient(base_url=self._base_url, timeout=self._timeout) as client:
            return await self._send(client, endpoint, payload)


    @staticmethod
    async def _send(client: httpx.AsyncClient, endpoint: str, payload: dict[str, Any]) -> dict[str, Any]:
        try:
            response = await client.post(endpoint, json=payload)
        except httpx.HTTPError as exc:
            raise ApiRouterError(f"{endpoint} unreachable: {exc}") from exc

        if response.is_success:
            try:
                return response.json()
            except ValueError as exc:
                raise ApiRouterError(f"{endpoint} returned invalid JSON", status_code=response.status_code) from exc

        try:
            body = response.json()
        except ValueError:
            body = {"error": "Unknown error"}
        detail = body.get("message") or body.get("error") if isinstance(body, dict) else None
        raise ApiRouterError(detail or f"API returned {response.status_code}", status_code=response.status_code)


    def __repr__(self) -> str:
        return f"ChatApiRouter(base_url='{self._base_url}', rag_failures={self._rag_failures})"
