"""
Bot Bu - Exception hierarchy
=============================
Errors that cross component boundaries.  Anything not listed here
(network, auth, SDK errors) propagates as raised by the library and is
classified at the HTTP boundary.
"""

from __future__ import annotations

import asyncio


class BotBuError(Exception):
    """Base class for all project errors."""


class KnowledgeBaseError(BotBuError):
    """The knowledge-base file is missing or malformed."""


class EmbeddingError(BotBuError):
    """Query embedding failed; callers fall back to keyword search."""


class RequestCancelled(BotBuError):
    """The caller cancelled the request; no further network calls or cache writes."""


class ApiRouterError(BotBuError):
    """A chat endpoint answered with a non-2xx status."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class ContentBlockedError(BotBuError):
    """Gemini refused to answer (message carries the block reason, e.g. ``SAFETY``)."""


def raise_if_cancelled(cancel_event: asyncio.Event | None, where: str = "") -> None:
    """Raise ``RequestCancelled`` if the caller has set ``cancel_event``."""
    if cancel_event is not None and cancel_event.is_set():
        raise RequestCancelled(f"Request cancelled{f' before {where}' if where else ''}")
