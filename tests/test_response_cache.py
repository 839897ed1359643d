"""
Tests for the TTL response cache.
"""

from botbu.src.core.response_cache import ResponseCache


def test_key_is_case_and_whitespace_insensitive():
    assert ResponseCache.make_key("  Hinman Dining HOURS ") == ResponseCache.make_key("hinman dining hours")


def test_hit_within_ttl(clock):
    cache = ResponseCache(ttl_seconds=7200, clock=clock)
    cache.put("k", {"response": "answer"})

    clock.advance(7199)
    entry = cache.get("k")

    assert entry is not None
    assert entry.data == {"response": "answer"}


def test_expired_entry_is_never_served_and_dropped(clock):
    cache = ResponseCache(ttl_seconds=60, clock=clock)
    cache.put("k", {"response": "old"})

    clock.advance(60)

    assert cache.get("k") is None
    assert len(cache) == 0


def test_put_overwrites_with_fresh_timestamp(clock):
    cache = ResponseCache(ttl_seconds=60, clock=clock)
    first = cache.put("k", {"response": "one"})
    clock.advance(30)
    second = cache.put("k", {"response": "two"})

    assert second.timestamp > first.timestamp
    assert cache.get("k").data["response"] == "two"


def test_miss_and_clear(clock):
    cache = ResponseCache(ttl_seconds=60, clock=clock)
    assert cache.get("missing") is None

    cache.put("a", {})
    cache.put("b", {})
    cache.clear()

    assert len(cache) == 0
