from pydantic import BaseModel, ConfigDict, Field

from switchboard.errors import ToolArgumentDecodeError
from switchboard.events import FinishReason, Usage
from switchboard.message import Message, ToolCall


class GenerateResult(BaseModel):
    """Buffered outcome of one generation.

    ``tool_errors`` holds tool calls whose arguments could not be
    decoded; when it is non-empty the result is ``partial`` but text and
    the remaining tool calls are still valid.

    ``tool_call_indices`` holds the stream index of each entry in
    ``tool_calls``, so decoded and undecodable calls can be put back in
    the order the model requested them.
    """

    model_config = ConfigDict(arbitrary_types_allowed=True)

    text: str = ""
    tool_calls: list[ToolCall] = Field(default_factory=list)
    tool_call_indices: list[int] = Field(default_factory=list, exclude=True)
    finish_reason: FinishReason = FinishReason.OTHER
    usage: Usage | None = None
    tool_errors: list[ToolArgumentDecodeError] = Field(default_factory=list, exclude=True)

    @property
    def partial(self) -> bool:
        return bool(self.tool_errors)


class ToolResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    tool_call_id: str
    tool_name: str
    output: str
    is_error: bool = False


class StepResult(BaseModel):
    """One iteration of the agent loop.  Immutable once created."""

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    step_number: int
    messages: list[Message]
    text: str = ""
    tool_calls: list[ToolCall] = Field(default_factory=list)
    tool_results: list[ToolResult] = Field(default_factory=list)
    finish_reason: FinishReason
    usage: Usage | None = None
    tool_errors: list[ToolArgumentDecodeError] = Field(default_factory=list)


def total_usage(usages: list[Usage | None]) -> Usage | None:
    """Sum vendor-reported usage field by field.

    Returns ``None`` when no entry reported usage at all.
    """
    reported = [u for u in usages if u is not None]
    if not reported:
        return None
    total = reported[0]
    for usage in reported[1:]:
        total = total + usage
    return total
