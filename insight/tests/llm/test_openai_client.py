import asyncio
from types import SimpleNamespace

import pytest

from insight.config import override_ai_config
from insight.llm import openai_client


class DummyCompletions:
    def __init__(self, owner):
        self.owner = owner

    async def create(self, **kwargs):
        self.owner.requests.append(kwargs)
        return SimpleNamespace(
            choices=[SimpleNamespace(message=SimpleNamespace(content="dummy-reply"))],
            usage=SimpleNamespace(prompt_tokens=3, completion_tokens=4, total_tokens=7),
        )


class DummyAsyncOpenAI:
    instances = []

    def __init__(self, **kwargs):
        self.kwargs = kwargs
        self.requests = []
        self.chat = SimpleNamespace(completions=DummyCompletions(self))
        DummyAsyncOpenAI.instances.append(self)

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.kwargs["http_client"].aclose()
        return False


@pytest.fixture
def dummy_openai(monkeypatch):
    DummyAsyncOpenAI.instances = []
    monkeypatch.setattr(openai_client, "AsyncOpenAI", DummyAsyncOpenAI)
    return DummyAsyncOpenAI


def test_call_ai_success(monkeypatch, dummy_openai):
    monkeypatch.setenv("OPENAI_API_KEY", "sk-valid")
    monkeypatch.setenv("OPENAI_BASE_URL", "https://llm.example.com/v1")
    monkeypatch.setenv("INSIGHT_MODEL_NAME", "gpt-4o")
    messages = [{"role": "user", "content": "ping"}]

    content, usage = asyncio.run(openai_client.call_ai(messages))

    assert content == "dummy-reply"
    assert usage.total_tokens == 7
    assert usage.time_cost_ms >= 0
    client = dummy_openai.instances[0]
    assert client.kwargs["api_key"] == "sk-valid"
    assert client.kwargs["base_url"] == "https://llm.example.com/v1"
    assert client.kwargs["max_retries"] == 0
    assert client.requests[0]["model"] == "gpt-4o"
    assert client.requests[0]["messages"] == messages


def test_call_ai_missing_key(dummy_openai):
    with pytest.raises(RuntimeError, match="OPENAI_API_KEY"):
        asyncio.run(openai_client.call_ai([{"role": "user", "content": "ping"}]))


def test_call_ai_uses_mini_model_when_asked(monkeypatch, dummy_openai):
    monkeypatch.setenv("OPENAI_API_KEY", "sk-valid")
    monkeypatch.setenv("INSIGHT_MODEL_MINI_NAME", "gpt-4o-mini")

    asyncio.run(openai_client.call_ai([{"role": "user", "content": "ping"}], use_mini=True))

    assert dummy_openai.instances[0].requests[0]["model"] == "gpt-4o-mini"


def test_call_ai_follows_scoped_override(monkeypatch, dummy_openai):
    monkeypatch.setenv("OPENAI_API_KEY", "sk-primary")
    monkeypatch.setenv("INSIGHT_MODEL_NAME", "gpt-4o")

    async def run():
        with override_ai_config({"OPENAI_API_KEY": "sk-vl", "INSIGHT_MODEL_NAME": "qwen-vl-max"}):
            await openai_client.call_ai([{"role": "user", "content": "inside"}])
        await openai_client.call_ai([{"role": "user", "content": "outside"}])

    asyncio.run(run())

    inside, outside = dummy_openai.instances
    assert inside.kwargs["api_key"] == "sk-vl"
    assert inside.requests[0]["model"] == "qwen-vl-max"
    assert outside.kwargs["api_key"] == "sk-primary"
    assert outside.requests[0]["model"] == "gpt-4o"
