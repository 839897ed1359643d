"""
Bot Bu - Global Rate Limiter
=============================
Tracks Gemini API usage for **all** users of the process and enforces
the shared ceilings before any upstream call is made.

Checks
------
``should_throttle()``
    Minimum spacing between accepted requests (default 1 s), regardless
    of remaining quota.  Bounds burst rate.
``can_make_request()``
    Per-day and per-minute ceilings.  Each counter resets when the
    wall-clock day / minute differs from the stored one.  The per-minute
    count is re-derived from a sliding 60 s window of request timestamps
    on every check.
``acquire()``
    Ceiling check plus ``record_request()`` under one lock hold; the
    chat route uses this so concurrent callers cannot both take the
    last free slot.
``record_request()``
    Counts an accepted request.

Persistence
-----------
State is mirrored to a JSON file (``usage-state.json``) after every
accepted request and every counter reset, so limits survive restarts.
Any filesystem failure (read-only disk, missing ``/tmp`` on exotic
hosts …) switches the limiter to in-memory mode **for the rest of the
process**; the file path is never retried.

Concurrency
-----------
Every public method holds ``self._lock`` for its whole
read-modify-write, so concurrent threads cannot lose increments.
A separate ``can_make_request()`` then ``record_request()`` pair is
not atomic; use ``acquire()`` when the two must not interleave.
"""

from __future__ import annotations

import json
import math
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from botbu.config.settings import RateLimitConfig
from botbu.src.utils.logger import get_logger

logger = get_logger(__name__)

_MINUTE_MS = 60_000


class RateLimitState(BaseModel):
    """Mutable counters; serialised with camelCase keys."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    requests_today: int = 0
    requests_this_minute: int = 0
    current_day: str = ""
    current_minute: int = 0
    last_request_time: int = 0
    request_timestamps: list[int] = Field(default_factory=list)
    total_requests: int = 0
    first_request_date: str = ""


@dataclass(frozen=True)
class RateLimitDecision:
    allowed: bool
    reason: str | None = None
    message: str | None = None
    retry_after: int | str | None = None
    remaining: dict[str, int] | None = None


@dataclass(frozen=True)
class ThrottleDecision:
    throttled: bool
    wait_time: int | None = None
    message: str | None = None


@dataclass(frozen=True)
class UsageStats:
    requests_today: int
    requests_this_minute: int
    total_requests: int
    first_request_date: str
    limits: dict[str, int]
    percentages: dict[str, float]
    remaining: dict[str, int]


class RateLimiter:
    """
    Shared request-ceiling tracker.

    Parameters
    ----------
    config
        RPM / RPD / minimum-interval limits.
    state_file
        JSON file to persist state in; ``None`` starts in memory-only mode.
    clock
        Returns epoch seconds; injectable for tests.
    """

    __slots__ = ("_config", "_state_file", "_clock", "_lock", "_in_memory", "_state")

    def __init__(self, config: RateLimitConfig, state_file: Path | None = None, clock: Callable[[], float] = time.time) -> None:
        self._config = config
        self._state_file = state_file
        self._clock = clock
        self._lock = threading.Lock()
        self._in_memory = state_file is None

        if not self._in_memory:
            try:
                self._state_file.parent.mkdir(parents=True, exist_ok=True)  # type: ignore[union-attr]
            except OSError as exc:
                self._degrade("Cannot create data directory", exc)

        self._state = self._load_state()

    # ══════════════════════════════════════════════════════════════════
    #  PUBLIC API
    # ══════════════════════════════════════════════════════════════════

    @property
    def persistent(self) -> bool:
        """``False`` once the limiter has fallen back to memory-only mode."""
        return not self._in_memory


    def can_make_request(self) -> RateLimitDecision:
        """Check the daily and per-minute ceilings."""
        with self._lock:
            return self._check(self._now_ms())


    def acquire(self, tokens: int = 0) -> RateLimitDecision:
        """
        Check the ceilings and, when allowed, count the request under the
        same lock hold, so two callers cannot both take the last slot.
        """
        with self._lock:
            now_ms = self._now_ms()
            decision = self._check(now_ms)
            if decision.allowed:
                self._record(now_ms, tokens)
            return decision


    def record_request(self, tokens: int = 0) -> None:
        """Count an accepted request and persist the new state."""
        with self._lock:
            self._record(self._now_ms(), tokens)


    def should_throttle(self) -> ThrottleDecision:
        """Deny requests arriving sooner than the minimum interval after the last accepted one."""
        with self._lock:
            since_last = self._now_ms() - self._state.last_request_time
            interval = self._config.min_request_interval_ms

            if since_last < interval:
                wait_time = math.ceil((interval - since_last) / 1000)
                plural = "" if wait_time == 1 else "s"
                return ThrottleDecision(throttled=True, wait_time=wait_time, message=f"Please wait {wait_time} second{plural} before sending another message")

            return ThrottleDecision(throttled=False)


    def usage_stats(self) -> UsageStats:
        """Current snapshot for the usage endpoint.  Resets are applied but not persisted."""
        with self._lock:
            self._roll_counters(self._now_ms(), persist=False)
            state = self._state
            daily_percent = state.requests_today / self._config.rpd * 100
            minute_percent = state.requests_this_minute / self._config.rpm * 100

            return UsageStats(
                requests_today=state.requests_today,
                requests_this_minute=state.requests_this_minute,
                total_requests=state.total_requests,
                first_request_date=state.first_request_date,
                limits={"daily": self._config.rpd, "minute": self._config.rpm},
                percentages={"daily": daily_percent, "minute": minute_percent},
                remaining=self._remaining(),
            )

    # ══════════════════════════════════════════════════════════════════
    #  COUNTER ARITHMETIC (caller holds the lock)
    # ══════════════════════════════════════════════════════════════════

    def _check(self, now_ms: int) -> RateLimitDecision:
        self._roll_counters(now_ms, persist=True)

        if self._state.requests_today >= self._config.rpd:
            return RateLimitDecision(allowed=False, reason="daily_limit_exceeded", message=f"Daily request limit reached for Bot Bu ({self._config.rpd:,} requests/day)", retry_after="tomorrow")

        if self._state.requests_this_minute >= self._config.rpm:
            seconds_until_next_minute = 60 - (now_ms % _MINUTE_MS) // 1000
            return RateLimitDecision(allowed=False, reason="minute_limit_exceeded", message=f"Too many requests per minute for Bot Bu ({self._config.rpm:,} requests/min)", retry_after=seconds_until_next_minute)

        return RateLimitDecision(allowed=True, remaining=self._remaining())


    def _record(self, now_ms: int, tokens: int) -> None:
        state = self._state
        state.requests_today += 1
        state.requests_this_minute += 1
        state.total_requests += 1
        state.last_request_time = now_ms
        state.request_timestamps.append(now_ms)
        self._save_state()

        logger.info("[RATE] Global usage: %d/%d today, %d/%d this minute (%d total, ~%d chars)", state.requests_today, self._config.rpd, state.requests_this_minute, self._config.rpm, state.total_requests, tokens)


    def _now_ms(self) -> int:
        return int(self._clock() * 1000)


    def _day_of(self, now_ms: int) -> str:
        return datetime.fromtimestamp(now_ms / 1000).date().isoformat()


    def _roll_counters(self, now_ms: int, persist: bool) -> None:
        state = self._state
        today = self._day_of(now_ms)
        current_minute = now_ms // _MINUTE_MS

        if state.current_day != today:
            state.requests_today = 0
            state.current_day = today
            if persist:
                self._save_state()

        if state.current_minute != current_minute:
            state.requests_this_minute = 0
            state.current_minute = current_minute
            state.request_timestamps = []
            if persist:
                self._save_state()

        one_minute_ago = now_ms - _MINUTE_MS
        state.request_timestamps = [ts for ts in state.request_timestamps if ts > one_minute_ago]
        state.requests_this_minute = len(state.request_timestamps)


    def _remaining(self) -> dict[str, int]:
        return {"daily": self._config.rpd - self._state.requests_today, "minute": self._config.rpm - self._state.requests_this_minute}

    # ══════════════════════════════════════════════════════════════════
    #  PERSISTENCE
    # ══════════════════════════════════════════════════════════════════

    def _default_state(self) -> RateLimitState:
        now_ms = self._now_ms()
        return RateLimitState(current_day=self._day_of(now_ms), current_minute=now_ms // _MINUTE_MS, first_request_date=datetime.now(timezone.utc).isoformat())


    def _load_state(self) -> RateLimitState:
        if self._in_memory:
            return self._default_state()

        try:
            if self._state_file.exists():  # type: ignore[union-attr]
                raw: dict[str, Any] = json.loads(self._state_file.read_text(encoding="utf-8"))  # type: ignore[union-attr]
                state = RateLimitState.model_validate(raw)
                logger.info("[RATE] Loaded persistent usage data: %d today, %d total", state.requests_today, state.total_requests)
                return state
        except (OSError, ValueError) as exc:
            self._degrade("Error loading usage state", exc)

        return self._default_state()


    def _save_state(self) -> None:
        if self._in_memory:
            return
        try:
            payload = json.dumps(self._state.model_dump(by_alias=True), indent=2)
            self._state_file.write_text(payload, encoding="utf-8")  # type: ignore[union-attr]
        except OSError as exc:
            self._degrade("Error saving usage state", exc)


    def _degrade(self, what: str, exc: Exception) -> None:
        logger.warning("[RATE] %s, switching to in-memory storage: %s", what, exc)
        self._in_memory = True


    def __repr__(self) -> str:
        mode = "memory" if self._in_memory else str(self._state_file)
        return f"RateLimiter(rpm={self._config.rpm}, rpd={self._config.rpd}, storage={mode})"
