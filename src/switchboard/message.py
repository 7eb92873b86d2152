import json
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_serializer


class MessageRole(Enum):
    SYSTEM = "system"
    ASSISTANT = "assistant"
    USER = "user"
    TOOL = "tool"


class ToolCall(BaseModel):
    """A complete tool call with fully parsed arguments."""

    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    arguments: Any = Field(default_factory=dict)


class ToolDefinition(BaseModel):
    """A tool offered to the model for one request.

    ``parameters`` is a JSON-Schema object describing the arguments.
    """

    model_config = ConfigDict(frozen=True)

    name: str
    description: str = ""
    parameters: dict = Field(
        default_factory=lambda: {"type": "object", "properties": {}}
    )

    def openai_schema(self) -> dict:
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": self.parameters,
            },
        }

    def anthropic_schema(self) -> dict:
        return {
            "name": self.name,
            "description": self.description,
            "input_schema": self.parameters,
        }


class Message(BaseModel):
    """One conversation turn.

    ``tool_calls`` is only set on assistant turns that requested tools.
    ``tool_call_id`` links a tool-role message to the call it answers.
    ``model_dump()`` produces the OpenAI chat wire shape.
    """

    role: MessageRole
    content: str | None = None
    tool_calls: list[ToolCall] | None = None
    tool_call_id: str | None = None

    @field_serializer("role")
    def serialize_role(self, role: MessageRole, _info) -> str:
        return role.value

    @field_serializer("tool_calls")
    def serialize_tool_calls(self, tool_calls: list[ToolCall] | None) -> list[dict] | None:
        if tool_calls is None:
            return None
        return [
            {
                "id": t.id,
                "type": "function",
                "function": {
                    "name": t.name,
                    "arguments": json.dumps(t.arguments),
                },
            }
            for t in tool_calls
        ]
