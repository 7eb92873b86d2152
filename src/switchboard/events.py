"""Canonical stream events shared by every vendor adapter.

A stream is a sequence of :class:`TextDelta` and :class:`ToolCallDelta`
events terminated by exactly one :class:`Finish`.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

from pydantic import BaseModel, ConfigDict

from switchboard.errors import ToolArgumentDecodeError
from switchboard.message import ToolCall


class FinishReason(Enum):
    STOP = "stop"
    LENGTH = "length"
    TOOL_CALLS = "tool_calls"
    CONTENT_FILTER = "content_filter"
    OTHER = "other"


class Usage(BaseModel):
    """Token counts exactly as the vendor reported them.

    Fields the vendor omitted stay ``None``.
    """

    model_config = ConfigDict(frozen=True)

    input_tokens: int | None = None
    output_tokens: int | None = None
    total_tokens: int | None = None

    def __add__(self, other: Usage) -> Usage:
        return Usage(
            input_tokens=_add_counts(self.input_tokens, other.input_tokens),
            output_tokens=_add_counts(self.output_tokens, other.output_tokens),
            total_tokens=_add_counts(self.total_tokens, other.total_tokens),
        )


def _add_counts(a: int | None, b: int | None) -> int | None:
    if a is None:
        return b
    if b is None:
        return a
    return a + b


@dataclass
class StreamEvent:
    """Base for all canonical events."""


@dataclass
class TextDelta(StreamEvent):
    """A text fragment, surfaced as soon as the vendor sends it."""

    text: str = ""


@dataclass
class ToolCallDelta(StreamEvent):
    """A tool call whose arguments are complete, valid JSON.

    ``index`` is the vendor-local position of the call in the response.
    """

    call: ToolCall
    index: int = 0


@dataclass
class Finish(StreamEvent):
    """Final event of every stream.

    ``tool_errors`` lists tool calls whose arguments failed to decode.
    Those calls were dropped from the stream but the rest of the
    response is intact.
    """

    reason: FinishReason = FinishReason.STOP
    usage: Usage | None = None
    tool_errors: list[ToolArgumentDecodeError] = field(default_factory=list)
