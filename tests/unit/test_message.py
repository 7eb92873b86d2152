from switchboard.message import Message, MessageRole, ToolCall, ToolDefinition


def test_assistant_tool_calls_serialize_to_openai_shape():
    """Parsed arguments are re-encoded as a JSON string on the wire."""
    msg = Message(
        role=MessageRole.ASSISTANT,
        tool_calls=[ToolCall(id="call_abc", name="greet", arguments={"name": "world"})],
    )
    dumped = msg.model_dump(exclude_none=True)
    assert dumped == {
        "role": "assistant",
        "tool_calls": [
            {
                "id": "call_abc",
                "type": "function",
                "function": {
                    "name": "greet",
                    "arguments": '{"name": "world"}',
                },
            }
        ],
    }


def test_tool_message_keeps_call_id():
    msg = Message(role=MessageRole.TOOL, content="42", tool_call_id="call_abc")
    assert msg.model_dump(exclude_none=True) == {
        "role": "tool",
        "content": "42",
        "tool_call_id": "call_abc",
    }


def test_tool_call_is_frozen_and_comparable():
    a = ToolCall(id="c1", name="f", arguments={"x": 1})
    b = ToolCall(id="c1", name="f", arguments={"x": 1})
    assert a == b
    assert ToolCall(id="c2", name="g").arguments == {}


class TestToolDefinition:
    def test_default_parameters_is_empty_object(self):
        d = ToolDefinition(name="now")
        assert d.parameters == {"type": "object", "properties": {}}

    def test_openai_schema(self):
        d = ToolDefinition(name="f", description="Do f.", parameters={"type": "object"})
        assert d.openai_schema() == {
            "type": "function",
            "function": {
                "name": "f",
                "description": "Do f.",
                "parameters": {"type": "object"},
            },
        }

    def test_anthropic_schema(self):
        d = ToolDefinition(name="f", description="Do f.", parameters={"type": "object"})
        assert d.anthropic_schema() == {
            "name": "f",
            "description": "Do f.",
            "input_schema": {"type": "object"},
        }
