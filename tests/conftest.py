"""
Pytest configuration and shared fixtures for the ShellSense test suite.

HTTP is never real: transports are built on httpx.MockTransport with a
handler that records every request it sees.
"""

import json
from typing import Callable, List

import httpx
import pytest

from shellsense.llm.transport import Transport
from shellsense.pipeline.models import TerminalContext
from shellsense.utils.config import Config, ProviderConfig


class RecordingHandler:
    """
    httpx.MockTransport handler.

    Returns queued responses in order (the last one repeats) and keeps the
    requests it received.
    """

    def __init__(self, responses: List[httpx.Response]):
        self.responses = list(responses)
        self.requests: List[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        template = self.responses.pop(0) if len(self.responses) > 1 else self.responses[0]
        # Responses are single-use once a client has read them
        return httpx.Response(template.status_code, headers=template.headers, content=template.content)

    @property
    def bodies(self) -> List[dict]:
        return [json.loads(request.content) for request in self.requests]


def json_response(payload, status_code: int = 200) -> httpx.Response:
    return httpx.Response(status_code, json=payload)


def sse_response(events: List, done_marker: bool = True) -> httpx.Response:
    """Server-sent events body from dict payloads."""
    lines = [f"data: {json.dumps(event)}\n\n" for event in events]
    if done_marker:
        lines.append("data: [DONE]\n\n")
    return httpx.Response(
        200,
        content="".join(lines).encode("utf-8"),
        headers={"content-type": "text/event-stream"},
    )


def openai_reply(content: str, prompt_tokens: int = 12, completion_tokens: int = 7) -> httpx.Response:
    return json_response({
        "choices": [{"message": {"role": "assistant", "content": content}, "finish_reason": "stop"}],
        "usage": {"prompt_tokens": prompt_tokens, "completion_tokens": completion_tokens},
    })


@pytest.fixture
def provider_config():
    """Provider configuration with fixed test keys, independent of the environment."""
    return ProviderConfig(
        openai_api_key="sk-test",
        anthropic_api_key="ak-test",
        google_api_key="gk-test",
        ollama_base_url="http://localhost:11434/v1",
        lmstudio_base_url="http://localhost:1234/v1",
        vllm_base_url="http://localhost:8000/v1",
    )


@pytest.fixture
def test_config(provider_config):
    """Configured for OpenAI with short timers so orchestrator tests run fast."""
    config = Config()
    config.providers = provider_config
    config.suggestions.provider = "openai"
    config.suggestions.model = "gpt-4o-mini"
    config.suggestions.debounce_seconds = 0.01
    config.suggestions.meaningful_debounce_seconds = 0.01
    config.suggestions.cooldown_seconds = 0.0
    config.suggestions.post_command_delay_seconds = 0.01
    config.research.enabled = False
    return config


@pytest.fixture
def make_transport(provider_config) -> Callable[[List[httpx.Response]], tuple]:
    """Factory returning (transport, handler) over a MockTransport."""
    def factory(responses: List[httpx.Response]):
        handler = RecordingHandler(responses)
        client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        transport = Transport(provider_config=provider_config, client=client)
        return transport, handler

    return factory


class FakeClock:
    """Injectable monotonic clock; tests move `now` by hand."""

    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeTerminal:
    """TerminalStateProvider returning whatever state the test sets."""

    def __init__(self, context: TerminalContext):
        self.context = context
        self.calls = 0

    def get_terminal_state(self) -> TerminalContext:
        self.calls += 1
        return self.context


class FakeAgentProbe:
    """AgentActivityProbe with a settable busy flag."""

    def __init__(self, busy: bool = False):
        self.busy = busy

    def is_agent_busy(self) -> bool:
        return self.busy


@pytest.fixture
def terminal():
    return FakeTerminal(TerminalContext(cwd="/home/u/project"))


@pytest.fixture
def agent_probe():
    return FakeAgentProbe()
