"""
Tests for the Gemini wrapper: retry policy, grounding extraction and
safety-block detection.  The google-genai client is replaced by mocks.
"""

import asyncio
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest

from botbu.src.core.exceptions import ContentBlockedError, RequestCancelled
from botbu.src.core.llm_client import GeminiClient, extract_grounding_sources, is_transient_error, retry_with_backoff


class _Sleeps:
    def __init__(self):
        self.delays = []

    async def __call__(self, delay):
        self.delays.append(delay)


def _fake_genai(*results):
    client = MagicMock()
    client.aio.models.generate_content = AsyncMock(side_effect=list(results))
    return client


def _response(text, uris=(), finish_reason=None, block_reason=None):
    chunks = [SimpleNamespace(web=SimpleNamespace(uri=uri)) for uri in uris]
    candidate = SimpleNamespace(grounding_metadata=SimpleNamespace(grounding_chunks=chunks), finish_reason=finish_reason)
    feedback = SimpleNamespace(block_reason=block_reason)
    return SimpleNamespace(text=text, candidates=[candidate], prompt_feedback=feedback)


class TestRetryWithBackoff:

    @pytest.mark.parametrize("message", ["503 Service Unavailable", "The model is overloaded", "429 Too Many Requests"])
    def test_transient_markers(self, message):
        assert is_transient_error(RuntimeError(message))

    def test_other_errors_are_not_transient(self):
        assert not is_transient_error(ValueError("API_KEY invalid"))

    async def test_retries_transient_then_succeeds(self):
        sleeps = _Sleeps()
        fn = AsyncMock(side_effect=[RuntimeError("503"), RuntimeError("overloaded"), "ok"])

        result = await retry_with_backoff(fn, max_retries=3, base_delay=1.0, sleep=sleeps)

        assert result == "ok"
        assert fn.await_count == 3
        assert sleeps.delays == [1.0, 2.0]

    async def test_gives_up_after_max_retries(self):
        sleeps = _Sleeps()
        fn = AsyncMock(side_effect=RuntimeError("503"))

        with pytest.raises(RuntimeError, match="503"):
            await retry_with_backoff(fn, max_retries=3, sleep=sleeps)

        assert fn.await_count == 3
        assert len(sleeps.delays) == 2

    async def test_non_transient_error_propagates_immediately(self):
        sleeps = _Sleeps()
        fn = AsyncMock(side_effect=ValueError("bad request"))

        with pytest.raises(ValueError):
            await retry_with_backoff(fn, sleep=sleeps)

        assert fn.await_count == 1
        assert sleeps.delays == []

    async def test_cancelled_before_first_attempt(self):
        event = asyncio.Event()
        event.set()
        fn = AsyncMock(return_value="never")

        with pytest.raises(RequestCancelled):
            await retry_with_backoff(fn, cancel_event=event)

        fn.assert_not_awaited()


class TestGeminiClient:

    async def test_generate_returns_text_without_sources(self):
        client = _fake_genai(_response("Hello", uris=["https://binghamton.edu"]))
        llm = GeminiClient(client=client, max_retries=1)

        reply = await llm.generate("prompt", max_output_tokens=256)

        assert reply.text == "Hello"
        assert reply.sources == []
        config = client.aio.models.generate_content.await_args.kwargs["config"]
        assert config.max_output_tokens == 256
        assert not config.tools

    async def test_web_search_attaches_tool_and_collects_sources(self):
        client = _fake_genai(_response("Answer", uris=["https://binghamton.edu/a", "https://binghamton.edu/b"]))
        llm = GeminiClient(client=client, max_retries=1)

        reply = await llm.generate("prompt", web_search=True, temperature=0.8)

        assert reply.sources == ["https://binghamton.edu/a", "https://binghamton.edu/b"]
        config = client.aio.models.generate_content.await_args.kwargs["config"]
        assert config.temperature == 0.8
        assert config.tools[0].google_search is not None

    async def test_blocked_response_raises(self):
        llm = GeminiClient(client=_fake_genai(_response(None, finish_reason=SimpleNamespace(name="SAFETY"))), max_retries=1)

        with pytest.raises(ContentBlockedError, match="SAFETY"):
            await llm.generate("prompt")

    async def test_empty_unblocked_response_is_empty_text(self):
        llm = GeminiClient(client=_fake_genai(_response(None)), max_retries=1)

        reply = await llm.generate("prompt")

        assert reply.text == ""


def test_extract_grounding_sources_handles_missing_metadata():
    assert extract_grounding_sources(SimpleNamespace(candidates=[])) == []
    assert extract_grounding_sources(SimpleNamespace(candidates=[SimpleNamespace(grounding_metadata=None)])) == []
    assert extract_grounding_sources(_response("x", uris=["https://a"])) == ["https://a"]
