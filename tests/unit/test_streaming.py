"""Unit tests for tool-call reassembly."""

import json

import pytest

from switchboard.errors import MalformedStreamError, ToolArgumentDecodeError
from switchboard.message import ToolCall
from switchboard.streaming import ToolCallAccumulator, ToolCallFragment


class TestToolCallAccumulator:
    def test_single_tool_call_single_fragment(self):
        acc = ToolCallAccumulator()
        acc.feed(ToolCallFragment(index=0, call_id="c1", name="echo", arguments_delta='{"text": "hi"}'))
        result = acc.finish_stream()

        assert result == [(0, ToolCall(id="c1", name="echo", arguments={"text": "hi"}))]

    def test_arguments_accumulated_across_fragments(self):
        acc = ToolCallAccumulator()
        acc.feed(ToolCallFragment(index=0, call_id="c1", name="echo", arguments_delta='{"te'))
        acc.feed(ToolCallFragment(index=0, arguments_delta='xt": "hi"}'))
        call = acc.close(0)

        assert call.arguments == {"text": "hi"}

    def test_interleaved_tool_calls(self):
        acc = ToolCallAccumulator()
        acc.feed(ToolCallFragment(index=0, call_id="c1", name="foo", arguments_delta='{"a":'))
        acc.feed(ToolCallFragment(index=1, call_id="c2", name="bar", arguments_delta='{"b":'))
        acc.feed(ToolCallFragment(index=0, arguments_delta=' 1}'))
        acc.feed(ToolCallFragment(index=1, arguments_delta=' 2}'))

        assert acc.close(1) == ToolCall(id="c2", name="bar", arguments={"b": 2})
        assert acc.close(0) == ToolCall(id="c1", name="foo", arguments={"a": 1})

    def test_any_split_of_arguments_decodes_the_same(self):
        raw = json.dumps({"query": "weather in Paris", "limit": 3, "tags": ["a", "b"]})
        for cut in range(len(raw) + 1):
            acc = ToolCallAccumulator()
            acc.open(0, "c1", "search")
            acc.append_arguments(0, raw[:cut])
            acc.append_arguments(0, raw[cut:])
            assert acc.close(0).arguments == json.loads(raw)

    def test_finish_stream_returns_index_order(self):
        acc = ToolCallAccumulator()
        acc.feed(ToolCallFragment(index=7, call_id="c3", name="c"))
        acc.feed(ToolCallFragment(index=2, call_id="c1", name="a"))
        acc.feed(ToolCallFragment(index=5, call_id="c2", name="b"))
        result = acc.finish_stream()

        assert [index for index, _ in result] == [2, 5, 7]
        assert [tc.name for _, tc in result] == ["a", "b", "c"]

    def test_empty_arguments_decode_to_empty_object(self):
        acc = ToolCallAccumulator()
        acc.open(0, "c1", "now")
        acc.append_arguments(0, "  ")

        assert acc.close(0) == ToolCall(id="c1", name="now", arguments={})

    def test_empty_accumulator(self):
        acc = ToolCallAccumulator()
        assert acc.finish_stream() == []
        assert acc.pending == []

    def test_finish_stream_twice_yields_nothing_new(self):
        acc = ToolCallAccumulator()
        acc.open(0, "c1", "f")
        acc.append_arguments(0, "{}")

        assert len(acc.finish_stream()) == 1
        assert acc.finish_stream() == []

    def test_close_unknown_index_returns_none(self):
        acc = ToolCallAccumulator()
        assert acc.close(3) is None

    def test_closed_index_can_be_reused(self):
        acc = ToolCallAccumulator()
        acc.open(0, "c1", "f")
        acc.close(0)
        acc.open(0, "c2", "g")

        assert acc.pending == [0]


# ---------------------------------------------------------------------------
# Decode failures are isolated to the failing call
# ---------------------------------------------------------------------------

class TestDecodeFailures:
    def test_invalid_json_is_recorded_not_raised(self):
        acc = ToolCallAccumulator(vendor="openai")
        acc.open(0, "c1", "search")
        acc.append_arguments(0, '{"query": ')

        assert acc.close(0) is None
        assert len(acc.errors) == 1
        error = acc.errors[0]
        assert isinstance(error, ToolArgumentDecodeError)
        assert error.call_id == "c1"
        assert error.tool_name == "search"
        assert error.index == 0
        assert error.raw_arguments == '{"query": '
        assert error.vendor == "openai"

    def test_bad_call_does_not_affect_neighbours(self):
        acc = ToolCallAccumulator()
        acc.open(0, "c1", "a")
        acc.open(1, "c2", "b")
        acc.open(2, "c3", "c")
        acc.append_arguments(0, '{"x": 1}')
        acc.append_arguments(1, '{"x": ')
        acc.append_arguments(2, '{"x": 3}')
        result = acc.finish_stream()

        assert [tc.id for _, tc in result] == ["c1", "c3"]
        assert [e.call_id for e in acc.errors] == ["c2"]

    def test_decode_failure_is_logged(self, caplog):
        acc = ToolCallAccumulator()
        acc.open(0, "c1", "search")
        acc.append_arguments(0, "not json")
        with caplog.at_level("WARNING", logger="switchboard.streaming"):
            acc.close(0)

        assert any("Invalid JSON arguments" in r.message for r in caplog.records)


# ---------------------------------------------------------------------------
# Protocol violations
# ---------------------------------------------------------------------------

class TestProtocolViolations:
    def test_fragment_before_open_raises(self):
        acc = ToolCallAccumulator()
        with pytest.raises(MalformedStreamError) as exc_info:
            acc.append_arguments(4, '{"a": 1}')
        assert exc_info.value.index == 4

    def test_feed_without_id_generates_one(self):
        acc = ToolCallAccumulator()
        acc.feed(ToolCallFragment(index=0, name="search", arguments_delta='{"q": 1}'))
        acc.feed(ToolCallFragment(index=1, name="search", arguments_delta="{}"))

        first, second = (call for _, call in acc.finish_stream())
        assert first.id.startswith("call_")
        assert first.id != second.id
        assert first.name == "search"
        assert first.arguments == {"q": 1}

    def test_generated_id_is_kept_for_later_fragments(self):
        acc = ToolCallAccumulator()
        acc.feed(ToolCallFragment(index=0, name="f", arguments_delta='{"a"'))
        acc.feed(ToolCallFragment(index=0, arguments_delta=": 1}"))

        call = acc.close(0)
        assert call.id.startswith("call_")
        assert call.arguments == {"a": 1}

    def test_double_open_raises(self):
        acc = ToolCallAccumulator(vendor="anthropic")
        acc.open(1, "c1", "f")
        with pytest.raises(MalformedStreamError) as exc_info:
            acc.open(1, "c2", "g")
        assert exc_info.value.vendor == "anthropic"

    def test_new_id_on_open_index_raises(self):
        acc = ToolCallAccumulator()
        acc.feed(ToolCallFragment(index=0, call_id="c1", name="f"))
        with pytest.raises(MalformedStreamError):
            acc.feed(ToolCallFragment(index=0, call_id="c2", name="g"))

    def test_repeated_id_is_a_continuation(self):
        acc = ToolCallAccumulator()
        acc.feed(ToolCallFragment(index=0, call_id="c1", name="f", arguments_delta='{"a"'))
        acc.feed(ToolCallFragment(index=0, call_id="c1", arguments_delta=": 1}"))

        assert acc.close(0) == ToolCall(id="c1", name="f", arguments={"a": 1})
