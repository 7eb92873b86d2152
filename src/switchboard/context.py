from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from switchboard.message import Message, ToolCall


@dataclass
class Context:
    """Runtime context injected into tools that declare a ``context`` parameter.

    Args:
        messages: The conversation as sent to the model for this step,
            including the assistant turn that requested the tool.
        tool_call: The call being executed.
        step_number: 1-based index of the current agent-loop step.
        model: The language model driving the loop.
    """

    messages: list[Message]
    tool_call: ToolCall
    step_number: int
    model: Any = None
