"""Tool-call reassembly for streaming responses.

Vendors stream a tool call's arguments as raw JSON fragments addressed
by a response-local index.  The :class:`ToolCallAccumulator` buffers
each index independently and only hands out a :class:`ToolCall` once
the buffer parses as JSON.
"""

from __future__ import annotations

import json
import logging
import uuid
from dataclasses import dataclass, field

from switchboard.errors import MalformedStreamError, ToolArgumentDecodeError
from switchboard.message import ToolCall

logger = logging.getLogger(__name__)


@dataclass
class ToolCallFragment:
    """A fragment of a tool call from an OpenAI-style streaming chunk."""

    index: int
    call_id: str | None = None
    name: str | None = None
    arguments_delta: str | None = None


@dataclass
class _OpenCall:
    call_id: str
    name: str
    buffer: list[str] = field(default_factory=list)


class ToolCallAccumulator:
    """Assembles complete tool calls from index-addressed fragments.

    Indices need not be contiguous, zero-based or monotonic, and
    fragments for different indices may interleave.  Only the arrival
    order within one index is relied on.

    Decode failures are isolated to the failing call: they are
    collected in :attr:`errors` and the stream carries on.

    Args:
        vendor: Vendor id attached to any errors raised or recorded.
    """

    def __init__(self, vendor: str | None = None) -> None:
        self.vendor = vendor
        self.errors: list[ToolArgumentDecodeError] = []
        self._open: dict[int, _OpenCall] = {}

    @property
    def pending(self) -> list[int]:
        """Indices with a call still in flight."""
        return sorted(self._open)

    def open(self, index: int, call_id: str, name: str) -> None:
        if index in self._open:
            raise MalformedStreamError(
                f"Tool call index {index} opened twice "
                f"(open call {self._open[index].call_id!r}, new call {call_id!r})",
                index=index, vendor=self.vendor,
            )
        self._open[index] = _OpenCall(call_id=call_id, name=name)

    def append_arguments(self, index: int, fragment: str) -> None:
        slot = self._open.get(index)
        if slot is None:
            raise MalformedStreamError(
                f"Arguments received for tool call index {index} which is not open",
                index=index, vendor=self.vendor,
            )
        slot.buffer.append(fragment)

    def close(self, index: int) -> ToolCall | None:
        """Parse the buffer at *index* and free the slot.

        Returns ``None`` when the index is not open or the arguments
        are not valid JSON; the latter is recorded in :attr:`errors`.
        """
        slot = self._open.pop(index, None)
        if slot is None:
            return None
        raw = "".join(slot.buffer)
        if not raw.strip():
            # Zero-argument tools stream no fragments at all.
            return ToolCall(id=slot.call_id, name=slot.name, arguments={})
        try:
            arguments = json.loads(raw)
        except json.JSONDecodeError as e:
            logger.warning(
                f"Invalid JSON arguments for tool call {slot.call_id} ({slot.name}): {e}"
            )
            self.errors.append(ToolArgumentDecodeError(
                f"Invalid JSON arguments for tool '{slot.name}': {e}",
                index=index, call_id=slot.call_id, tool_name=slot.name,
                raw_arguments=raw, vendor=self.vendor,
            ))
            return None
        return ToolCall(id=slot.call_id, name=slot.name, arguments=arguments)

    def finish_stream(self) -> list[tuple[int, ToolCall]]:
        """Force-close every open index, in index order.

        Returns ``(index, call)`` pairs for the calls that parsed.
        A second call finds nothing open and returns ``[]``.
        """
        completed = []
        for index in self.pending:
            call = self.close(index)
            if call is not None:
                completed.append((index, call))
        return completed

    def feed(self, fragment: ToolCallFragment) -> None:
        """Apply an OpenAI-style fragment, opening the index implicitly.

        The first fragment of a call carries its id and name; later
        fragments carry only argument text.  Some servers repeat the
        id on every fragment, which is treated as a continuation.
        Servers that never send an id get one generated.
        """
        slot = self._open.get(fragment.index)
        if slot is None:
            call_id = fragment.call_id
            if call_id is None:
                call_id = f"call_{uuid.uuid4().hex}"
                logger.debug(f"Tool call at index {fragment.index} has no id, using {call_id}")
            self.open(fragment.index, call_id, fragment.name or "")
        elif fragment.call_id is not None and fragment.call_id != slot.call_id:
            self.open(fragment.index, fragment.call_id, fragment.name or "")
        if fragment.arguments_delta:
            self.append_arguments(fragment.index, fragment.arguments_delta)
