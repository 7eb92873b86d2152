"""Unit tests for the instrumentation module.

Tests use unittest.mock for OTel interactions.  ``opentelemetry-api``
is a test dependency so we can import ``SpanKind`` / ``StatusCode``
directly for assertion accuracy.
"""

from unittest.mock import MagicMock, patch

import pytest
from opentelemetry.trace import SpanKind, StatusCode

import switchboard.instrumentation as inst
from switchboard.errors import ToolArgumentDecodeError, TransportError
from switchboard.events import Finish, FinishReason, Usage
from switchboard.instrumentation import (
    agent_span,
    completion_span,
    record_error,
    record_finish,
    tool_span,
    uninstrument,
)


@pytest.fixture(autouse=True)
def _reset_tracer():
    """Ensure _tracer is reset to None before and after each test."""
    inst._tracer = None
    yield
    inst._tracer = None


# -------------------------------------------------------------------
# instrument()
# -------------------------------------------------------------------


class TestInstrument:
    def test_raises_without_otel_installed(self):
        with patch(
            "importlib.util.find_spec", return_value=None
        ):
            with pytest.raises(
                ImportError, match="pip install switchboard"
            ):
                inst.instrument()

    def _mock_otel(self, mock_trace):
        modules = {
            "opentelemetry": MagicMock(trace=mock_trace),
            "opentelemetry.trace": mock_trace,
        }
        return (
            patch("importlib.util.find_spec", return_value=MagicMock()),
            patch.dict("sys.modules", modules),
        )

    def test_sets_global_tracer(self):
        mock_tracer = MagicMock()
        mock_trace = MagicMock()
        mock_trace.get_tracer.return_value = mock_tracer
        mock_trace.NoOpTracer = type("NoOpTracer", (), {})

        p1, p2 = self._mock_otel(mock_trace)
        with p1, p2:
            inst.instrument()

        assert inst._tracer is mock_tracer
        mock_trace.get_tracer.assert_called_once_with(
            "switchboard"
        )

    def test_uninstrument_clears_tracer(self):
        inst._tracer = MagicMock()
        uninstrument()
        assert inst._tracer is None


# -------------------------------------------------------------------
# Span helpers
# -------------------------------------------------------------------


class TestSpansUninstrumented:
    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "span_fn,args",
        [
            (agent_span, ("m", 3)),
            (completion_span, ("openai", "m")),
            (tool_span, ("t", "call_1")),
        ],
        ids=["agent_span", "completion_span", "tool_span"],
    )
    async def test_span_yields_none_without_tracer(
        self, span_fn, args
    ):
        async with span_fn(*args) as s:
            assert s is None


class TestSpansInstrumented:
    @pytest.fixture(autouse=True)
    def _set_mock_tracer(self):
        self.mock_span = MagicMock()
        self.mock_tracer = MagicMock()
        self.mock_tracer.start_as_current_span.return_value.__enter__ = (
            MagicMock(return_value=self.mock_span)
        )
        self.mock_tracer.start_as_current_span.return_value.__exit__ = (
            MagicMock(return_value=False)
        )
        inst._tracer = self.mock_tracer

    @pytest.mark.asyncio
    async def test_agent_span_creates_span(self):
        async with agent_span("gpt-4o", 5) as s:
            assert s is self.mock_span

        self.mock_tracer.start_as_current_span.assert_called_once_with(
            "invoke_agent gpt-4o",
            attributes={
                "gen_ai.operation.name": "invoke_agent",
                "gen_ai.request.model": "gpt-4o",
                "switchboard.max_steps": 5,
            },
        )

    @pytest.mark.asyncio
    async def test_completion_span_creates_span(self):
        async with completion_span("openai", "gpt-4o") as s:
            assert s is self.mock_span

        self.mock_tracer.start_as_current_span.assert_called_once_with(
            "chat gpt-4o",
            kind=SpanKind.CLIENT,
            attributes={
                "gen_ai.operation.name": "chat",
                "gen_ai.provider.name": "openai",
                "gen_ai.request.model": "gpt-4o",
            },
        )

    @pytest.mark.asyncio
    async def test_tool_span_creates_span(self):
        async with tool_span("lookup", "call_42") as s:
            assert s is self.mock_span

        self.mock_tracer.start_as_current_span.assert_called_once_with(
            "execute_tool lookup",
            attributes={
                "gen_ai.operation.name": "execute_tool",
                "gen_ai.tool.name": "lookup",
                "gen_ai.tool.call.id": "call_42",
            },
        )


# -------------------------------------------------------------------
# record_finish
# -------------------------------------------------------------------


class TestRecordFinish:
    def test_noop_on_none_span(self):
        record_finish(None, Finish())

    def test_sets_reason_and_token_counts(self):
        span = MagicMock()
        finish = Finish(
            reason=FinishReason.TOOL_CALLS,
            usage=Usage(input_tokens=100, output_tokens=50, total_tokens=150),
        )
        record_finish(span, finish)

        span.set_attribute.assert_any_call(
            "gen_ai.response.finish_reasons", ["tool_calls"]
        )
        span.set_attribute.assert_any_call(
            "gen_ai.usage.input_tokens", 100
        )
        span.set_attribute.assert_any_call(
            "gen_ai.usage.output_tokens", 50
        )

    def test_counts_undecodable_tool_calls(self):
        span = MagicMock()
        error = ToolArgumentDecodeError(
            "bad", index=1, call_id="c2", tool_name="f", raw_arguments="{",
        )
        record_finish(span, Finish(reason=FinishReason.TOOL_CALLS, tool_errors=[error]))

        span.set_attribute.assert_any_call("switchboard.tool_errors", 1)

    def test_skips_unreported_token_counts(self):
        span = MagicMock()
        record_finish(span, Finish(usage=Usage(output_tokens=7)))

        keys = [c.args[0] for c in span.set_attribute.call_args_list]
        assert "gen_ai.usage.input_tokens" not in keys
        assert "gen_ai.usage.output_tokens" in keys


# -------------------------------------------------------------------
# record_error
# -------------------------------------------------------------------


class TestRecordError:
    def test_sets_status_and_records_exception(self):
        span = MagicMock()
        exc = RuntimeError("boom")
        record_error(span, exc)

        span.set_status.assert_called_once_with(
            StatusCode.ERROR, "boom"
        )
        span.record_exception.assert_called_once_with(exc)
        span.set_attribute.assert_called_once_with(
            "error.type", "RuntimeError"
        )

    def test_records_vendor_of_switchboard_errors(self):
        span = MagicMock()
        record_error(span, TransportError("rate limited", vendor="anthropic", status_code=429))

        span.set_attribute.assert_any_call("error.type", "TransportError")
        span.set_attribute.assert_any_call("switchboard.vendor", "anthropic")
