"""
Bot Bu - HTTP Routes
=====================
Thin controllers: parse the body, apply the guards, delegate to the
core pipelines, shape the JSON.

    POST /api/chat-rag   single-tier RAG answer (cached)
    POST /api/chat       three-tier answer behind the global rate limiter
    GET  /api/chat       static health / feature / limit metadata
    GET  /api/usage      global usage counters for the sidebar widget

Each POST handler watches for the client going away and sets the
pipeline's cancel event, so an abandoned request stops issuing model
calls.
"""

from __future__ import annotations

import asyncio
import json
from datetime import datetime, timezone
from typing import Any

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse, Response
from pydantic import ValidationError

from botbu.config.prompt_templates import GENERIC_ERROR_RESPONSE
from botbu.config.settings import Settings
from botbu.src.api.dependencies import get_rag_manager, get_rate_limiter, get_settings, get_tiered_answerer
from botbu.src.api.schemas import ChatRequest, GlobalUsage, UsageResponse, UsageWarnings
from botbu.src.core.exceptions import RequestCancelled
from botbu.src.core.rag_engine import RAGManager
from botbu.src.core.rate_limiter import RateLimiter
from botbu.src.core.tiered_answerer import TieredAnswerer
from botbu.src.utils.logger import get_logger

logger = get_logger(__name__)

router = APIRouter(prefix="/api", tags=["chat"])

# Non-standard "client closed request" status
CLIENT_CLOSED_REQUEST = 499
DISCONNECT_POLL_SECONDS = 0.5


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


async def _parse_chat_request(request: Request) -> ChatRequest | None:
    """``None`` when the body is not JSON or does not match ``ChatRequest``."""
    try:
        body = await request.json()
        return ChatRequest.model_validate(body)
    except (json.JSONDecodeError, UnicodeDecodeError, ValidationError) as exc:
        logger.info("[API] Rejected chat body: %s", exc.__class__.__name__)
        return None


async def _watch_disconnect(request: Request, cancel_event: asyncio.Event) -> None:
    while not cancel_event.is_set():
        await asyncio.sleep(DISCONNECT_POLL_SECONDS)
        if await request.is_disconnected():
            logger.info("[API] Client disconnected, cancelling request")
            cancel_event.set()


def classify_chat_error(exc: Exception) -> JSONResponse:
    """Map an unexpected pipeline error to the client-facing response."""
    message = str(exc)

    if "quota" in message or "rate limit" in message:
        return JSONResponse({"error": "API rate limit exceeded", "message": "We've hit our API limit. Please try again in a few minutes.", "rateLimited": True}, status_code=429)

    if "API_KEY" in message or "401" in message:
        return JSONResponse({"error": "API configuration error", "message": "Service temporarily unavailable. Please contact support."}, status_code=500)

    if "SAFETY" in message:
        return JSONResponse({"error": "Content filtered", "message": "Your message was filtered for safety. Please rephrase your question."}, status_code=400)

    return JSONResponse({"error": "Failed to process request", "message": "An error occurred while processing your request. Please try again.", "details": message}, status_code=500)


# ══════════════════════════════════════════════════════════════════════
#  POST /api/chat-rag
# ══════════════════════════════════════════════════════════════════════

@router.post("/chat-rag")
async def chat_rag(request: Request, rag: RAGManager = Depends(get_rag_manager)) -> Response:
    """Single-tier RAG answer with response caching."""
    payload = await _parse_chat_request(request)
    if payload is None or not payload.message:
        return JSONResponse({"success": False, "error": "Invalid message format"}, status_code=400)

    logger.info("[API] chat-rag: '%s' (%d history message(s))", payload.message[:80], len(payload.conversation_history))

    cancel_event = asyncio.Event()
    watcher = asyncio.create_task(_watch_disconnect(request, cancel_event))
    try:
        answer = await rag.generate_response(payload.message, payload.conversation_history, cancel_event=cancel_event)
    except RequestCancelled:
        logger.info("[API] chat-rag cancelled by client")
        return Response(status_code=CLIENT_CLOSED_REQUEST)
    except Exception as exc:
        logger.exception("[API] chat-rag failed")
        return JSONResponse({"message": GENERIC_ERROR_RESPONSE, "metadata": {"error": str(exc)}}, status_code=500)
    finally:
        watcher.cancel()

    return JSONResponse(answer.to_payload())


# ══════════════════════════════════════════════════════════════════════
#  POST /api/chat
# ══════════════════════════════════════════════════════════════════════

@router.post("/chat")
async def chat(request: Request, answerer: TieredAnswerer = Depends(get_tiered_answerer), limiter: RateLimiter = Depends(get_rate_limiter)) -> Response:
    """Three-tier answer: internal documents → model knowledge → Google Search."""
    payload = await _parse_chat_request(request)
    if payload is None or not payload.message.strip():
        return JSONResponse({"error": "Message is required"}, status_code=400)

    # ── Throttle ──────────────────────────────────────────────────────
    throttle = limiter.should_throttle()
    if throttle.throttled:
        logger.info("[RATE] Request throttled: %s", throttle.message)
        return JSONResponse({"error": "Please wait before sending another message", "message": throttle.message, "waitTime": throttle.wait_time, "rateLimited": True}, status_code=429)

    # ── Global quota ──────────────────────────────────────────────────
    decision = limiter.acquire(len(payload.message))
    if not decision.allowed:
        logger.warning("[RATE] Rate limit hit: %s", decision.reason)
        retry_text = "tomorrow" if decision.retry_after == "tomorrow" else f"{decision.retry_after} seconds"
        return JSONResponse({"error": decision.message, "reason": decision.reason, "retryAfter": decision.retry_after, "rateLimited": True, "message": f"Rate limit reached. {decision.message}. Please try again in {retry_text}."}, status_code=429)

    logger.info("[API] chat: '%s' (%d chars, %d history message(s))", payload.message[:80], len(payload.message), len(payload.conversation_history))

    cancel_event = asyncio.Event()
    watcher = asyncio.create_task(_watch_disconnect(request, cancel_event))
    try:
        answer = await answerer.answer(payload.message, payload.conversation_history, cancel_event=cancel_event)
    except RequestCancelled:
        logger.info("[API] chat cancelled by client")
        return Response(status_code=CLIENT_CLOSED_REQUEST)
    except Exception as exc:
        logger.exception("[API] chat failed")
        return classify_chat_error(exc)
    finally:
        watcher.cancel()

    return JSONResponse({"message": answer.message, "metadata": answer.metadata})


@router.get("/chat")
async def chat_health(config: Settings = Depends(get_settings)) -> dict[str, Any]:
    return {
        "status": "ok",
        "service": "Binghamton University AI Chat - 3-Tier System",
        "model": config.LLM_MODEL,
        "features": {
            "tier1": "Internal Knowledge Base",
            "tier2": "AI Built-in Knowledge",
            "tier3": "Google Search Grounding",
            "rateLimiting": True,
            "requestThrottling": True,
        },
        "rateLimits": {"rpm": config.RATE_LIMIT_RPM, "rpd": config.RATE_LIMIT_RPD},
        "timestamp": _now_iso(),
    }


# ══════════════════════════════════════════════════════════════════════
#  GET /api/usage
# ══════════════════════════════════════════════════════════════════════

@router.get("/usage", tags=["usage"])
async def usage(limiter: RateLimiter = Depends(get_rate_limiter)) -> Response:
    """Global usage shared by every user of the service."""
    try:
        stats = limiter.usage_stats()
    except Exception as exc:
        logger.exception("[API] Failed to fetch usage statistics")
        return JSONResponse({"success": False, "error": "Failed to fetch usage statistics", "details": str(exc)}, status_code=500)

    daily, minute = stats.percentages["daily"], stats.percentages["minute"]
    warnings = UsageWarnings(daily_warning=daily > 80, daily_critical=daily > 95, minute_warning=minute > 80, minute_critical=minute > 95)

    body = UsageResponse(
        global_usage=GlobalUsage(
            requests_today=stats.requests_today,
            daily_limit=stats.limits["daily"],
            daily_remaining=stats.remaining["daily"],
            daily_percentage=round(daily, 1),
            requests_this_minute=stats.requests_this_minute,
            minute_limit=stats.limits["minute"],
            minute_remaining=stats.remaining["minute"],
            minute_percentage=round(minute, 1),
            warnings=warnings,
            status=warnings.status,
            total_requests=stats.total_requests,
            first_request_date=stats.first_request_date,
        ),
        message="These limits are shared across ALL users of Bot Bu",
        timestamp=_now_iso(),
    )
    return JSONResponse(body.model_dump(by_alias=True))
