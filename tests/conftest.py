import json
from dataclasses import dataclass, field
from typing import Any

import pytest

from switchboard.message import Message, MessageRole
from switchboard.model import LanguageModel
from switchboard.provider import ModelProvider


# ---------------------------------------------------------------------------
# Raw OpenAI-style chunk builders
# ---------------------------------------------------------------------------

def _chunk(delta: dict | None = None, finish_reason: str | None = None) -> dict:
    return {
        "choices": [{
            "index": 0,
            "delta": delta or {},
            "finish_reason": finish_reason,
        }],
    }


def usage_chunk(prompt: int, completion: int) -> dict:
    """Trailing chunk sent when ``stream_options.include_usage`` is set."""
    return {
        "choices": [],
        "usage": {
            "prompt_tokens": prompt,
            "completion_tokens": completion,
            "total_tokens": prompt + completion,
        },
    }


def make_text_response(content: str, usage: tuple[int, int] | None = None) -> list[dict]:
    """Raw chunks for a plain text answer, split into two deltas."""
    half = len(content) // 2
    chunks = [
        _chunk({"role": "assistant", "content": content[:half]}),
        _chunk({"content": content[half:]}),
        _chunk(finish_reason="stop"),
    ]
    if usage is not None:
        chunks.append(usage_chunk(*usage))
    return chunks


def _tool_call_chunks(index: int, name: str, arguments: str, call_id: str) -> list[dict]:
    half = len(arguments) // 2
    return [
        _chunk({"tool_calls": [{
            "index": index, "id": call_id, "type": "function",
            "function": {"name": name, "arguments": ""},
        }]}),
        _chunk({"tool_calls": [{"index": index, "function": {"arguments": arguments[:half]}}]}),
        _chunk({"tool_calls": [{"index": index, "function": {"arguments": arguments[half:]}}]}),
    ]


def make_tool_call_response(
    name: str,
    args: dict,
    call_id: str = "call_1",
    content: str | None = None,
    usage: tuple[int, int] | None = None,
) -> list[dict]:
    """Raw chunks for a response requesting a single tool call."""
    return make_multi_tool_call_response([(name, args, call_id)], content=content, usage=usage)


def make_multi_tool_call_response(
    calls: list[tuple[str, dict | str, str]],
    content: str | None = None,
    usage: tuple[int, int] | None = None,
) -> list[dict]:
    """Raw chunks for a response requesting several tool calls.

    Each item in *calls* is ``(func_name, args, call_id)``.  ``args`` may
    be a raw string to simulate malformed JSON.
    """
    chunks = []
    if content:
        chunks.append(_chunk({"role": "assistant", "content": content}))
    for index, (name, args, call_id) in enumerate(calls):
        raw = args if isinstance(args, str) else json.dumps(args)
        chunks.extend(_tool_call_chunks(index, name, raw, call_id))
    chunks.append(_chunk(finish_reason="tool_calls"))
    if usage is not None:
        chunks.append(usage_chunk(*usage))
    return chunks


# ---------------------------------------------------------------------------
# Mock provider
# ---------------------------------------------------------------------------

class MockProvider(ModelProvider):
    """Provider that replays pre-queued raw chunk lists. No network calls."""

    vendor = "openai"

    def __init__(self):
        self.responses: list[list[Any]] = []
        self.call_log: list[dict] = []
        self.closed = 0

    async def stream_raw(self, model, messages, options):
        self.call_log.append({
            "model": model,
            "messages": list(messages),
            "options": options,
        })
        chunks = self.responses.pop(0)
        try:
            for chunk in chunks:
                yield chunk
        finally:
            self.closed += 1


# ---------------------------------------------------------------------------
# Fake SDK stream (for provider tests)
# ---------------------------------------------------------------------------

@dataclass
class FakeEvent:
    payload: dict

    def model_dump(self) -> dict:
        return self.payload


@dataclass
class FakeAsyncStream:
    """Mimics the SDKs' AsyncStream: async iterable with ``close()``."""

    events: list[dict] = field(default_factory=list)
    closed: bool = False

    def __aiter__(self):
        return self._iterate()

    async def _iterate(self):
        for payload in self.events:
            yield FakeEvent(payload)

    async def close(self):
        self.closed = True


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def mock_provider():
    return MockProvider()


@pytest.fixture
def mock_model(mock_provider):
    return LanguageModel(mock_provider, "mock-model")


@pytest.fixture
def user_messages():
    return [Message(role=MessageRole.USER, content="Hello")]
