"""Tests for the streaming completion providers."""

from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest

from deliberate.config import Settings
from deliberate.services.llm import (
    AnthropicCompletion,
    GeminiCompletion,
    OpenAICompletion,
    build_completions,
    close_completions,
)


async def _aiter(items):
    for item in items:
        yield item


def _settings(**overrides):
    values = {"openai_api_key": None, "anthropic_api_key": None, "google_ai_api_key": None}
    values.update(overrides)
    return Settings(_env_file=None, **values)


def test_only_keyed_providers_registered():
    """Providers without a key are skipped."""
    assert build_completions(_settings()) == {}

    completions = build_completions(_settings(openai_api_key="sk-test", anthropic_api_key="ak-test"))
    assert sorted(completions) == ["claude", "openai"]
    assert completions["openai"].model == "gpt-4o"
    assert completions["claude"].display_name == "Claude"


@pytest.mark.asyncio
async def test_openai_stream_yields_text_deltas():
    """Empty deltas and choice-less chunks are skipped."""
    completion = OpenAICompletion("sk-test", model="gpt-test", max_tokens=100)
    chunks = [
        SimpleNamespace(choices=[SimpleNamespace(delta=SimpleNamespace(content="Hello"))]),
        SimpleNamespace(choices=[]),
        SimpleNamespace(choices=[SimpleNamespace(delta=SimpleNamespace(content=None))]),
        SimpleNamespace(choices=[SimpleNamespace(delta=SimpleNamespace(content=" there"))]),
    ]
    completion._client = MagicMock()
    completion._client.chat.completions.create = AsyncMock(return_value=_aiter(chunks))

    text = [t async for t in completion.stream("be kind", "hi")]

    assert text == ["Hello", " there"]
    kwargs = completion._client.chat.completions.create.call_args.kwargs
    assert kwargs["model"] == "gpt-test"
    assert kwargs["stream"] is True
    assert kwargs["messages"][0] == {"role": "system", "content": "be kind"}


class _FakeAnthropicStream:
    def __init__(self, texts):
        self.text_stream = _aiter(texts)

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        return False


@pytest.mark.asyncio
async def test_anthropic_stream_yields_text():
    """Text events are forwarded in order."""
    completion = AnthropicCompletion("ak-test", model="claude-test")
    completion._client = MagicMock()
    completion._client.messages.stream = MagicMock(return_value=_FakeAnthropicStream(["A", "", "B"]))

    text = [t async for t in completion.stream("sys", "msg")]

    assert text == ["A", "B"]
    kwargs = completion._client.messages.stream.call_args.kwargs
    assert kwargs["system"] == "sys"
    assert kwargs["messages"] == [{"role": "user", "content": "msg"}]


@pytest.mark.asyncio
async def test_close_completions_tolerates_failures():
    """One failing close does not stop the others."""
    failing = MagicMock()
    failing.aclose = AsyncMock(side_effect=RuntimeError("boom"))
    healthy = MagicMock()
    healthy.aclose = AsyncMock()

    await close_completions({"a": failing, "b": healthy})

    healthy.aclose.assert_awaited_once()


@pytest.mark.asyncio
async def test_gemini_stream_and_close():
    """Gemini forwards non-empty chunks and releases its async client."""
    completion = GeminiCompletion("gk-test", model="gemini-test")
    completion._client = MagicMock()
    completion._client.aio.models.generate_content_stream = AsyncMock(
        return_value=_aiter([SimpleNamespace(text="Hi"), SimpleNamespace(text=None)])
    )
    completion._client.aio.aclose = AsyncMock()

    assert [t async for t in completion.stream("sys", "msg")] == ["Hi"]
    await close_completions({"gemini": completion})

    completion._client.aio.aclose.assert_awaited_once()
