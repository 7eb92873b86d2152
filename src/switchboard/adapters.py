"""Provider stream adapters.

Each adapter decodes one vendor's raw stream events (plain dicts, as
produced by the SDK's ``model_dump()``) into canonical events.  Tool
call fragments always go through a :class:`ToolCallAccumulator`; text
is surfaced immediately; exactly one :class:`Finish` ends the stream.

Use :func:`make_adapter` to pick the adapter for a vendor id.  A fresh
adapter is needed for every stream.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Any

from switchboard.errors import MalformedStreamError, RequestValidationError, TransportError
from switchboard.events import (
    Finish,
    FinishReason,
    StreamEvent,
    TextDelta,
    ToolCallDelta,
    Usage,
)
from switchboard.streaming import ToolCallAccumulator, ToolCallFragment

logger = logging.getLogger(__name__)


class StreamAdapter(ABC):
    """Decodes one vendor's stream protocol into canonical events.

    Args:
        vendor: Vendor id recorded on errors and log lines.
    """

    finish_reasons: dict[str, FinishReason] = {}

    def __init__(self, vendor: str):
        self.vendor = vendor
        self.accumulator = ToolCallAccumulator(vendor=vendor)
        self.finished = False
        self._reason: str | None = None
        self._usage: Usage | None = None

    @abstractmethod
    def decode(self, chunk: Any) -> list[StreamEvent]:
        """Decode one raw chunk.  Returns ``[]`` once finished."""
        ...

    def finish(self) -> list[StreamEvent]:
        """End the stream, emitting the ``Finish`` if not yet sent.

        Called when the vendor signals completion and again when the
        transport ends; only the first call produces events.
        """
        if self.finished:
            return []
        events: list[StreamEvent] = [
            ToolCallDelta(call=call, index=index)
            for index, call in self.accumulator.finish_stream()
        ]
        self.finished = True
        events.append(Finish(
            reason=self.map_finish_reason(self._reason),
            usage=self._usage,
            tool_errors=list(self.accumulator.errors),
        ))
        return events

    def map_finish_reason(self, reason: str | None) -> FinishReason:
        if reason is None:
            return FinishReason.OTHER
        mapped = self.finish_reasons.get(reason)
        if mapped is None:
            logger.info(f"Unrecognized {self.vendor} finish reason {reason!r}, mapping to OTHER")
            return FinishReason.OTHER
        return mapped

    def _require(self, body: dict, key: str, event: str) -> Any:
        value = body.get(key)
        if value is None:
            raise MalformedStreamError(
                f"{self.vendor} {event} event is missing {key!r}", vendor=self.vendor,
            )
        return value

    def _close(self, index: int) -> list[StreamEvent]:
        call = self.accumulator.close(index)
        if call is None:
            return []
        return [ToolCallDelta(call=call, index=index)]


class OpenAIStreamAdapter(StreamAdapter):
    """OpenAI chat-completions chunks (also OpenRouter, vLLM, and other
    OpenAI-compatible servers).

    Usage arrives on a trailing chunk with no choices, after the finish
    reason, so ``Finish`` waits for ``[DONE]`` or end of transport.
    """

    finish_reasons = {
        "stop": FinishReason.STOP,
        "length": FinishReason.LENGTH,
        "tool_calls": FinishReason.TOOL_CALLS,
        "function_call": FinishReason.TOOL_CALLS,
        "content_filter": FinishReason.CONTENT_FILTER,
    }

    def decode(self, chunk: Any) -> list[StreamEvent]:
        if self.finished:
            return []
        if chunk == "[DONE]":
            return self.finish()

        events: list[StreamEvent] = []
        usage = chunk.get("usage")
        if usage:
            self._usage = Usage(
                input_tokens=usage.get("prompt_tokens"),
                output_tokens=usage.get("completion_tokens"),
                total_tokens=usage.get("total_tokens"),
            )

        for choice in chunk.get("choices") or []:
            # Only the first choice is normalised.
            if choice.get("index", 0) != 0:
                continue
            delta = choice.get("delta") or {}
            if delta.get("content"):
                events.append(TextDelta(text=delta["content"]))
            for tc in delta.get("tool_calls") or []:
                function = tc.get("function") or {}
                self.accumulator.feed(ToolCallFragment(
                    index=tc.get("index", 0),
                    call_id=tc.get("id"),
                    name=function.get("name"),
                    arguments_delta=function.get("arguments"),
                ))
            if choice.get("finish_reason"):
                self._reason = choice["finish_reason"]
                # No more fragments arrive after a finish reason.
                for index in self.accumulator.pending:
                    events.extend(self._close(index))
        return events


class AnthropicStreamAdapter(StreamAdapter):
    """Anthropic Messages API server-sent events."""

    finish_reasons = {
        "end_turn": FinishReason.STOP,
        "stop_sequence": FinishReason.STOP,
        "pause_turn": FinishReason.STOP,
        "max_tokens": FinishReason.LENGTH,
        "tool_use": FinishReason.TOOL_CALLS,
        "refusal": FinishReason.CONTENT_FILTER,
    }

    def __init__(self, vendor: str):
        super().__init__(vendor)
        self._input_tokens: int | None = None
        self._output_tokens: int | None = None

    def decode(self, chunk: Any) -> list[StreamEvent]:
        if self.finished:
            return []
        event_type = chunk.get("type")

        if event_type == "message_start":
            self._record_usage((chunk.get("message") or {}).get("usage"))
            return []

        if event_type == "content_block_start":
            block = chunk.get("content_block") or {}
            if block.get("type") == "tool_use":
                self.accumulator.open(
                    self._require(chunk, "index", event_type),
                    self._require(block, "id", event_type),
                    self._require(block, "name", event_type),
                )
            elif block.get("type") == "text" and block.get("text"):
                return [TextDelta(text=block["text"])]
            return []

        if event_type == "content_block_delta":
            delta = chunk.get("delta") or {}
            if delta.get("type") == "text_delta" and delta.get("text"):
                return [TextDelta(text=delta["text"])]
            if delta.get("type") == "input_json_delta":
                self.accumulator.append_arguments(
                    self._require(chunk, "index", event_type), delta.get("partial_json") or "",
                )
            return []

        if event_type == "content_block_stop":
            return self._close(self._require(chunk, "index", event_type))

        if event_type == "message_delta":
            delta = chunk.get("delta") or {}
            if delta.get("stop_reason"):
                self._reason = delta["stop_reason"]
            self._record_usage(chunk.get("usage"))
            return []

        if event_type == "message_stop":
            return self.finish()

        if event_type == "error":
            error = chunk.get("error") or {}
            raise TransportError(
                f"{error.get('type', 'error')}: {error.get('message', 'stream error')}",
                vendor=self.vendor,
            )

        return []

    def _record_usage(self, usage: dict | None) -> None:
        if not usage:
            return
        if usage.get("input_tokens") is not None:
            self._input_tokens = usage["input_tokens"]
        if usage.get("output_tokens") is not None:
            self._output_tokens = usage["output_tokens"]
        total = None
        if self._input_tokens is not None and self._output_tokens is not None:
            total = self._input_tokens + self._output_tokens
        self._usage = Usage(
            input_tokens=self._input_tokens,
            output_tokens=self._output_tokens,
            total_tokens=total,
        )


class BedrockStreamAdapter(StreamAdapter):
    """Amazon Bedrock ConverseStream events.

    Each event is a single-key dict (``{"contentBlockDelta": {...}}``).
    ``metadata`` carrying usage follows ``messageStop``.
    """

    finish_reasons = {
        "end_turn": FinishReason.STOP,
        "stop_sequence": FinishReason.STOP,
        "max_tokens": FinishReason.LENGTH,
        "tool_use": FinishReason.TOOL_CALLS,
        "content_filtered": FinishReason.CONTENT_FILTER,
        "guardrail_intervened": FinishReason.CONTENT_FILTER,
    }

    def __init__(self, vendor: str):
        super().__init__(vendor)
        self._stopped = False

    def decode(self, chunk: Any) -> list[StreamEvent]:
        if self.finished:
            return []

        if "contentBlockStart" in chunk:
            body = chunk["contentBlockStart"]
            tool_use = (body.get("start") or {}).get("toolUse")
            if tool_use:
                self.accumulator.open(
                    self._require(body, "contentBlockIndex", "contentBlockStart"),
                    self._require(tool_use, "toolUseId", "contentBlockStart"),
                    self._require(tool_use, "name", "contentBlockStart"),
                )
            return []

        if "contentBlockDelta" in chunk:
            body = chunk["contentBlockDelta"]
            delta = body.get("delta") or {}
            if delta.get("text"):
                return [TextDelta(text=delta["text"])]
            if "toolUse" in delta:
                self.accumulator.append_arguments(
                    self._require(body, "contentBlockIndex", "contentBlockDelta"),
                    (delta["toolUse"] or {}).get("input") or "",
                )
            return []

        if "contentBlockStop" in chunk:
            return self._close(
                self._require(chunk["contentBlockStop"] or {}, "contentBlockIndex", "contentBlockStop"),
            )

        if "messageStop" in chunk:
            self._reason = chunk["messageStop"].get("stopReason")
            self._stopped = True
            return []

        if "metadata" in chunk:
            usage = chunk["metadata"].get("usage")
            if usage:
                self._usage = Usage(
                    input_tokens=usage.get("inputTokens"),
                    output_tokens=usage.get("outputTokens"),
                    total_tokens=usage.get("totalTokens"),
                )
            if self._stopped:
                return self.finish()
            return []

        for key, body in chunk.items():
            if key.endswith("Exception"):
                raise TransportError(
                    f"{key}: {(body or {}).get('message', 'stream error')}",
                    vendor=self.vendor,
                )
        return []


ADAPTERS: dict[str, type[StreamAdapter]] = {
    "openai": OpenAIStreamAdapter,
    "openrouter": OpenAIStreamAdapter,
    "vllm": OpenAIStreamAdapter,
    "openai-compatible": OpenAIStreamAdapter,
    "anthropic": AnthropicStreamAdapter,
    "bedrock": BedrockStreamAdapter,
}


def adapter_class(vendor: str) -> type[StreamAdapter]:
    """Return the adapter class that decodes *vendor*'s stream format.

    Raises:
        RequestValidationError: If no adapter handles the vendor id.
    """
    adapter_cls = ADAPTERS.get(vendor.lower())
    if adapter_cls is None:
        raise RequestValidationError(
            f"No stream adapter for vendor '{vendor}'. "
            f"Known vendors: {', '.join(sorted(ADAPTERS))}",
            vendor=vendor,
        )
    return adapter_cls


def make_adapter(vendor: str) -> StreamAdapter:
    """Create a fresh adapter for *vendor*."""
    return adapter_class(vendor)(vendor)
