from pydantic import BaseModel, Field

from switchboard.errors import RequestValidationError
from switchboard.message import Message, MessageRole, ToolDefinition


class GenerateOptions(BaseModel):
    """Per-request generation settings.

    ``tool_choice`` may be ``"auto"``, ``"none"``, ``"required"`` or the
    name of one of ``tools``.
    """

    tools: list[ToolDefinition] = Field(default_factory=list)
    tool_choice: str | None = None
    max_tokens: int | None = None
    temperature: float | None = None
    top_p: float | None = None
    stop_sequences: list[str] | None = None


_TOOL_CHOICE_MODES = {"auto", "none", "required"}


def validate_request(
    messages: list[Message],
    options: GenerateOptions,
    vendor: str | None = None,
) -> None:
    """Reject malformed requests before any network call is made.

    Raises:
        RequestValidationError: On an empty conversation, duplicate tool
            names, a ``tool_choice`` naming an undefined tool, or a tool
            message that does not answer an earlier tool call.
    """
    if not messages:
        raise RequestValidationError("At least one message is required", vendor=vendor)

    names = [t.name for t in options.tools]
    duplicates = sorted({n for n in names if names.count(n) > 1})
    if duplicates:
        raise RequestValidationError(
            f"Duplicate tool names: {', '.join(duplicates)}", vendor=vendor,
        )

    choice = options.tool_choice
    if choice is not None and choice not in _TOOL_CHOICE_MODES and choice not in names:
        raise RequestValidationError(
            f"tool_choice '{choice}' does not match any tool definition", vendor=vendor,
        )

    seen_call_ids: set[str] = set()
    for position, message in enumerate(messages):
        if message.role == MessageRole.ASSISTANT and message.tool_calls:
            seen_call_ids.update(tc.id for tc in message.tool_calls)
        elif message.role == MessageRole.TOOL:
            if not message.tool_call_id:
                raise RequestValidationError(
                    f"Tool message at position {position} has no tool_call_id",
                    vendor=vendor,
                )
            if message.tool_call_id not in seen_call_ids:
                raise RequestValidationError(
                    f"Tool message at position {position} answers unknown "
                    f"tool call '{message.tool_call_id}'",
                    vendor=vendor,
                )
