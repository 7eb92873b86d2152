import logging
from collections.abc import AsyncIterator
from contextlib import aclosing

from switchboard.adapters import StreamAdapter, adapter_class
from switchboard.errors import SwitchboardError
from switchboard.events import Finish, StreamEvent, TextDelta, ToolCallDelta
from switchboard.instrumentation import completion_span, record_error, record_finish
from switchboard.message import Message
from switchboard.options import GenerateOptions, validate_request
from switchboard.provider import ModelProvider
from switchboard.result import GenerateResult

logger = logging.getLogger(__name__)


class LanguageModel:
    """Uniform generate/stream entry point for any vendor.

    The stream adapter is chosen from ``provider.vendor`` when the model
    is constructed; pass ``adapter_cls`` to decode a custom vendor.

    Args:
        provider: Transport that yields the vendor's raw stream events.
        model_id: Vendor model name, e.g. ``"gpt-4o"``.
        adapter_cls: Override for the vendor's stream adapter.
    """

    def __init__(
        self,
        provider: ModelProvider,
        model_id: str,
        adapter_cls: type[StreamAdapter] | None = None,
    ):
        self.provider = provider
        self.model_id = model_id
        self.vendor = provider.vendor
        self.adapter_cls = adapter_cls or adapter_class(self.vendor)

    def __repr__(self) -> str:
        return f"LanguageModel({self.vendor}/{self.model_id})"

    async def stream(
        self,
        messages: list[Message],
        options: GenerateOptions | None = None,
    ) -> AsyncIterator[StreamEvent]:
        """Yield canonical events as the vendor produces them.

        The request is validated before the provider is contacted.
        Closing the iterator early closes the underlying transport.
        """
        options = options or GenerateOptions()
        validate_request(messages, options, vendor=self.vendor)
        adapter = self.adapter_cls(self.vendor)
        logger.debug(f"Streaming {self.vendor}/{self.model_id} with {len(messages)} messages")

        async with completion_span(self.vendor, self.model_id) as span:
            try:
                raw_stream = self.provider.stream_raw(self.model_id, messages, options)
                async with aclosing(raw_stream):
                    async for chunk in raw_stream:
                        for event in adapter.decode(chunk):
                            if isinstance(event, Finish):
                                record_finish(span, event)
                            yield event
                        if adapter.finished:
                            break
                # Transport ended without the vendor's done signal.
                for event in adapter.finish():
                    if isinstance(event, Finish):
                        record_finish(span, event)
                    yield event
            except SwitchboardError as e:
                record_error(span, e)
                raise

    async def generate(
        self,
        messages: list[Message],
        options: GenerateOptions | None = None,
    ) -> GenerateResult:
        """Drain :meth:`stream` into a single buffered result."""
        text_parts: list[str] = []
        tool_calls = []
        indices = []
        finish: Finish | None = None
        async for event in self.stream(messages, options):
            if isinstance(event, TextDelta):
                text_parts.append(event.text)
            elif isinstance(event, ToolCallDelta):
                tool_calls.append(event.call)
                indices.append(event.index)
            elif isinstance(event, Finish):
                finish = event

        result = GenerateResult(
            text="".join(text_parts),
            tool_calls=tool_calls,
            tool_call_indices=indices,
            finish_reason=finish.reason,
            usage=finish.usage,
            tool_errors=finish.tool_errors,
        )
        if result.partial:
            logger.warning(
                f"{self.vendor}/{self.model_id} returned {len(result.tool_errors)} "
                f"tool call(s) with undecodable arguments"
            )
        return result
