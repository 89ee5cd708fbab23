"""
Streaming call core

Framework independent pieces of the Greeter service: message records, the
error taxonomy, the CallStream channel contract with its in-memory
implementation, pattern state machines, client drivers and the handler
registry with its dispatcher.
"""

from .channel import EOF, Call, CallContext, CallStream
from .contract import (
    GREETER_METHODS,
    SAY_HELLO,
    SAY_HELLO_AGAIN,
    SAY_HELLO_STREAM,
    SAY_HELLO_STREAM_ALL,
    GreeterClientInterface,
    GreeterServicerInterface,
)
from .drivers import GreeterClient
from .errors import (
    CallCancelledError,
    CallError,
    DeadlineExceededError,
    HandlerError,
    MethodNotFoundError,
    ProtocolMisuseError,
    TransportError,
)
from .handlers import BidiSession, ClientStreamCollector, Greeter, ServerStreamEmitter
from .messages import Reply, Request, greet
from .patterns import MethodSpec, Pattern, ReceiveState, SendState
from .registry import Dispatcher, HandlerRegistry

__all__ = [
    "EOF",
    "Call",
    "CallContext",
    "CallStream",
    "GREETER_METHODS",
    "SAY_HELLO",
    "SAY_HELLO_AGAIN",
    "SAY_HELLO_STREAM",
    "SAY_HELLO_STREAM_ALL",
    "GreeterClientInterface",
    "GreeterServicerInterface",
    "GreeterClient",
    "CallError",
    "TransportError",
    "CallCancelledError",
    "DeadlineExceededError",
    "ProtocolMisuseError",
    "HandlerError",
    "MethodNotFoundError",
    "BidiSession",
    "ClientStreamCollector",
    "ServerStreamEmitter",
    "Greeter",
    "Request",
    "Reply",
    "greet",
    "MethodSpec",
    "Pattern",
    "SendState",
    "ReceiveState",
    "Dispatcher",
    "HandlerRegistry",
]
