"""
Call error taxonomy

Every failure of a call is raised as a CallError subclass. The ``code`` of an
error is a gRPC status name so errors survive a trip over the wire unchanged.

End-of-stream is NOT an error: it is reported by ``CallStream.receive()``
returning the ``EOF`` sentinel.
"""

from typing import Optional


class CallError(Exception):
    """Base class for all terminal and synchronous call failures"""

    code = "UNKNOWN"

    def __init__(self, details: str = "", code: Optional[str] = None):
        super().__init__(details)
        self.details = details
        if code is not None:
            self.code = code

    def __str__(self):
        return f"{self.code}: {self.details}"


class TransportError(CallError):
    """The call's channel became unusable (connection loss, peer gone)"""

    code = "UNAVAILABLE"


class CallCancelledError(TransportError):
    """The call was cancelled by one of its sides or by the framework"""

    code = "CANCELLED"


class DeadlineExceededError(TransportError):
    """The framework aborted the call because its deadline expired"""

    code = "DEADLINE_EXCEEDED"


class ProtocolMisuseError(CallError):
    """The local side broke the call protocol, e.g. sent after half-close.

    Raised synchronously without contacting the peer.
    """

    code = "FAILED_PRECONDITION"


class HandlerError(CallError):
    """The server-side handler failed; propagated to the client as the
    call's terminal error"""

    code = "UNKNOWN"


class MethodNotFoundError(CallError):
    """No handler is registered for the requested method"""

    code = "UNIMPLEMENTED"
