"""Tests for GroqGenerator against a stub aiohttp session."""

import asyncio
import json

import aiohttp
import pytest

from exceptions import UpstreamGenerationError
from llm_provider import GroqGenerator


class StubResponse:
    def __init__(self, status: int = 200, payload=None, text: str = "") -> None:
        self.status = status
        self._payload = payload
        self._text = text

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        return False

    async def json(self):
        if self._payload is None:
            raise json.JSONDecodeError("Expecting value", self._text, 0)
        return self._payload

    async def text(self):
        return self._text


class StubSession:
    def __init__(self, response=None, error: Exception = None) -> None:
        self.response = response
        self.error = error
        self.requests = []

    def post(self, url, json=None, headers=None, timeout=None):
        self.requests.append({"url": url, "json": json, "headers": headers})
        if self.error:
            raise self.error
        return self.response

    async def close(self):
        pass


def _completion(content):
    return {"choices": [{"message": {"content": content}}]}


def _generator(session) -> GroqGenerator:
    generator = GroqGenerator(api_key="gsk-test", model="llama-3.1-8b-instant", timeout_sec=5)
    generator.session = session
    return generator


class TestGroqGenerator:

    @pytest.mark.asyncio
    async def test_returns_trimmed_summary(self):
        session = StubSession(StubResponse(payload=_completion("  FACT: water is wet\n")))
        summary = await _generator(session).generate("Summarize this", "Be terse.")

        assert summary == "FACT: water is wet"
        request = session.requests[0]
        assert request["url"] == GroqGenerator.GROQ_API_URL
        assert request["headers"]["Authorization"] == "Bearer gsk-test"
        assert request["json"]["messages"] == [
            {"role": "system", "content": "Be terse."},
            {"role": "user", "content": "Summarize this"},
        ]
        assert request["json"]["temperature"] == 0.3
        assert request["json"]["max_tokens"] == 1024

    @pytest.mark.asyncio
    async def test_default_system_prompt(self):
        session = StubSession(StubResponse(payload=_completion("ok")))
        await _generator(session).generate("Summarize this")
        assert session.requests[0]["json"]["messages"][0]["content"] == "Extract verifiable facts."

    @pytest.mark.asyncio
    async def test_null_content_becomes_empty_summary(self):
        session = StubSession(StubResponse(payload=_completion(None)))
        assert await _generator(session).generate("x") == ""

    @pytest.mark.asyncio
    async def test_missing_api_key(self):
        generator = GroqGenerator(api_key=None)
        with pytest.raises(UpstreamGenerationError, match="GROQ_API_KEY"):
            await generator.generate("x")

    @pytest.mark.asyncio
    async def test_http_error_status(self):
        session = StubSession(StubResponse(status=429, text="rate limited"))
        with pytest.raises(UpstreamGenerationError, match="HTTP 429"):
            await _generator(session).generate("x")

    @pytest.mark.asyncio
    async def test_missing_choices(self):
        session = StubSession(StubResponse(payload={"choices": []}))
        with pytest.raises(UpstreamGenerationError, match="missing choices"):
            await _generator(session).generate("x")

    @pytest.mark.asyncio
    async def test_unparseable_body(self):
        session = StubSession(StubResponse(payload=None, text="<html>"))
        with pytest.raises(UpstreamGenerationError, match="Unparseable"):
            await _generator(session).generate("x")

    @pytest.mark.asyncio
    async def test_network_error(self):
        session = StubSession(error=aiohttp.ClientConnectionError("refused"))
        with pytest.raises(UpstreamGenerationError, match="unreachable"):
            await _generator(session).generate("x")

    @pytest.mark.asyncio
    async def test_timeout(self):
        session = StubSession(error=asyncio.TimeoutError())
        with pytest.raises(UpstreamGenerationError, match="timeout"):
            await _generator(session).generate("x")

    @pytest.mark.asyncio
    async def test_single_attempt_per_call(self):
        session = StubSession(StubResponse(status=500, text="boom"))
        with pytest.raises(UpstreamGenerationError):
            await _generator(session).generate("x")
        assert len(session.requests) == 1
