"""
Greeter capability contract

The four pattern-shaped operations of the Greeter service, defined once per
side. Server implementations are bound to a HandlerRegistry; client
implementations drive calls opened through a client adapter.
"""

import abc
from typing import Callable, Dict, Iterable, List, Optional

from greeter.core.channel import CallContext, CallStream
from greeter.core.messages import Reply, Request
from greeter.core.patterns import MethodSpec, Pattern

SAY_HELLO = MethodSpec("SayHello", Pattern.UNARY)
SAY_HELLO_AGAIN = MethodSpec("SayHelloAgain", Pattern.SERVER_STREAM)
SAY_HELLO_STREAM = MethodSpec("SayHelloStream", Pattern.CLIENT_STREAM)
SAY_HELLO_STREAM_ALL = MethodSpec("SayHelloStreamAll", Pattern.BIDI_STREAM)

GREETER_METHODS = (SAY_HELLO, SAY_HELLO_AGAIN, SAY_HELLO_STREAM, SAY_HELLO_STREAM_ALL)

# Servicer attribute implementing each method
SERVICER_ATTRIBUTES: Dict[str, str] = {
    SAY_HELLO.name: "say_hello",
    SAY_HELLO_AGAIN.name: "say_hello_again",
    SAY_HELLO_STREAM.name: "say_hello_stream",
    SAY_HELLO_STREAM_ALL.name: "say_hello_stream_all",
}


def method_for_pattern(pattern: Pattern) -> MethodSpec:
    """Return the Greeter method implementing ``pattern``"""
    for method in GREETER_METHODS:
        if method.pattern is pattern:
            return method
    raise ValueError(f"No Greeter method for pattern: {pattern}")


class GreeterServicerInterface(abc.ABC):
    """Server side of the Greeter service"""

    @abc.abstractmethod
    def say_hello(self, request: Request, context: CallContext) -> Reply:
        """Unary: one request in, one reply out"""

    @abc.abstractmethod
    def say_hello_again(self, request: Request, stream: CallStream) -> None:
        """Server-streaming: one request in, replies sent on ``stream``"""

    @abc.abstractmethod
    def say_hello_stream(self, stream: CallStream) -> Reply:
        """Client-streaming: requests received from ``stream``, one reply
        returned after the client half-closed"""

    @abc.abstractmethod
    def say_hello_stream_all(self, stream: CallStream) -> None:
        """Bidirectional streaming over ``stream``"""


class GreeterClientInterface(abc.ABC):
    """Client side of the Greeter service"""

    @abc.abstractmethod
    def say_hello(self, name: Optional[str] = None) -> Reply:
        pass

    @abc.abstractmethod
    def say_hello_again(self,
                        name: Optional[str] = None,
                        on_reply: Optional[Callable[[Reply], None]] = None) -> List[Reply]:
        pass

    @abc.abstractmethod
    def say_hello_stream(self, names: Optional[Iterable[str]] = None) -> Reply:
        pass

    @abc.abstractmethod
    def say_hello_stream_all(self, count: Optional[int] = None) -> List[Reply]:
        pass
