"""
Call patterns and per-side call states

Describes the shape of message exchange for a call (its Pattern) and the state
vocabulary shared by every CallStream implementation.
"""

import enum
from dataclasses import dataclass

# Fully qualified gRPC service name of the Greeter service
SERVICE_NAME = "helloworld.Greeter"


@enum.unique
class Pattern(enum.Enum):
    """Streaming semantics of an RPC method"""

    UNARY = "unary"
    SERVER_STREAM = "server-stream"
    CLIENT_STREAM = "client-stream"
    BIDI_STREAM = "bidi-stream"

    @property
    def request_streaming(self) -> bool:
        return self in (Pattern.CLIENT_STREAM, Pattern.BIDI_STREAM)

    @property
    def response_streaming(self) -> bool:
        return self in (Pattern.SERVER_STREAM, Pattern.BIDI_STREAM)


@enum.unique
class SendState(enum.Enum):
    """Send side of one end of a call"""

    OPEN = "open"
    HALF_CLOSED = "half-closed"
    CLOSED = "closed"


@enum.unique
class ReceiveState(enum.Enum):
    """Receive side of one end of a call"""

    OPEN = "open"
    ENDED = "ended"
    ERRORED = "errored"


@dataclass(frozen=True)
class MethodSpec:
    """An RPC method: its name, pattern and owning service"""

    name: str
    pattern: Pattern
    service: str = SERVICE_NAME

    @property
    def path(self) -> str:
        """gRPC method path, e.g. ``/helloworld.Greeter/SayHello``"""
        return f"/{self.service}/{self.name}"
