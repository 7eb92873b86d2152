"""Error taxonomy for switchboard.

Every error carries the vendor id and, where the vendor reported one,
the HTTP status code, so failures can be diagnosed without re-running
the request.
"""

from __future__ import annotations


class SwitchboardError(Exception):
    """Base class for all switchboard errors.

    Args:
        message: Human-readable description.
        vendor: Vendor id (e.g. ``"openai"``) the error originated from.
        status_code: HTTP status reported by the vendor, if any.
    """

    def __init__(
        self,
        message: str,
        *,
        vendor: str | None = None,
        status_code: int | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.vendor = vendor
        self.status_code = status_code

    def __str__(self) -> str:
        details = []
        if self.vendor:
            details.append(f"vendor={self.vendor}")
        if self.status_code is not None:
            details.append(f"status={self.status_code}")
        if not details:
            return self.message
        return f"{self.message} ({', '.join(details)})"


class RequestValidationError(SwitchboardError):
    """Invalid request input, detected before any network call."""


class TransportError(SwitchboardError):
    """Network or vendor API failure. Not retried here."""


class MalformedStreamError(SwitchboardError):
    """The vendor stream violated the tool-call protocol.

    Fatal to the current stream: accumulator state can no longer be
    trusted once this is raised.
    """

    def __init__(self, message: str, *, index: int | None = None, **kwargs):
        super().__init__(message, **kwargs)
        self.index = index


class ToolArgumentDecodeError(SwitchboardError):
    """A single tool call's accumulated arguments were not valid JSON.

    Isolated to that call. It is recorded on the stream's ``Finish``
    event and on the ``GenerateResult`` rather than raised.
    """

    def __init__(
        self,
        message: str,
        *,
        index: int,
        call_id: str,
        tool_name: str,
        raw_arguments: str,
        **kwargs,
    ):
        super().__init__(message, **kwargs)
        self.index = index
        self.call_id = call_id
        self.tool_name = tool_name
        self.raw_arguments = raw_arguments


class MissingExecutorError(SwitchboardError):
    """The model requested a tool with no registered executor."""

    def __init__(self, message: str, *, tool_name: str, call_id: str, **kwargs):
        super().__init__(message, **kwargs)
        self.tool_name = tool_name
        self.call_id = call_id


class ExecutorFailure(SwitchboardError):
    """A tool executor raised while the loop policy was ``ABORT``.

    The original exception is chained as ``__cause__``.
    """

    def __init__(self, message: str, *, tool_name: str, call_id: str, **kwargs):
        super().__init__(message, **kwargs)
        self.tool_name = tool_name
        self.call_id = call_id
