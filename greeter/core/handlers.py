"""
Server-side handlers

Per-pattern state machines layered over a CallStream, and the reference
Greeter servicer built from them.
"""

import enum
import logging
from typing import Any, Callable, List, Optional

from greeter.core.channel import EOF, CallContext, CallStream
from greeter.core.contract import GreeterServicerInterface
from greeter.core.errors import ProtocolMisuseError
from greeter.core.messages import Reply, Request, greet
from greeter.telemetry.metrics import increment_counter

logger = logging.getLogger(__name__)


@enum.unique
class EmitterState(enum.Enum):
    READY = "ready"
    EMITTING = "emitting"
    DONE = "done"


@enum.unique
class CollectorState(enum.Enum):
    COLLECTING = "collecting"
    RESPONDING = "responding"
    DONE = "done"


class ServerStreamEmitter:
    """Server-streaming state machine: READY -> EMITTING -> DONE

    Replies may only be emitted while EMITTING. ``finish()`` half-closes the
    stream, after which no further sends are permitted.
    """

    def __init__(self, stream: CallStream):
        self.stream = stream
        self.state = EmitterState.READY
        self.request: Optional[Request] = None
        self.emitted = 0

    def begin(self, request: Request) -> None:
        if self.state is not EmitterState.READY:
            raise ProtocolMisuseError(f"stream already started (state: {self.state.value})")
        self.request = request
        self.state = EmitterState.EMITTING

    def emit(self, reply: Reply) -> None:
        if self.state is not EmitterState.EMITTING:
            raise ProtocolMisuseError(f"cannot emit in state {self.state.value}")
        try:
            self.stream.send(reply)
        except Exception:
            # A failed send aborts the remaining emissions
            self.state = EmitterState.DONE
            raise
        self.emitted += 1
        increment_counter("rpc.stream.messages", 1, {"method": self.stream.context.method})

    def finish(self) -> None:
        if self.state is EmitterState.DONE:
            return
        self.state = EmitterState.DONE
        self.stream.close_send()


class ClientStreamCollector:
    """Client-streaming state machine: COLLECTING -> RESPONDING -> DONE

    Stays in COLLECTING until the client half-closes. Blocks indefinitely if it
    never does; a reply can only be produced once RESPONDING.

    Args:
        stream: Server end of the call
        on_request: Optional callback run for every collected request
    """

    def __init__(self,
                 stream: CallStream,
                 on_request: Optional[Callable[[Request], None]] = None):
        self.stream = stream
        self.on_request = on_request
        self.state = CollectorState.COLLECTING
        self.requests: List[Request] = []

    def collect(self) -> List[Request]:
        if self.state is not CollectorState.COLLECTING:
            raise ProtocolMisuseError(f"cannot collect in state {self.state.value}")
        for request in self.stream:
            self.requests.append(request)
            if self.on_request is not None:
                self.on_request(request)
        self.state = CollectorState.RESPONDING
        return list(self.requests)

    def respond(self, reply: Reply) -> Reply:
        if self.state is not CollectorState.RESPONDING:
            raise ProtocolMisuseError(
                f"cannot reply in state {self.state.value}: client has not half-closed"
            )
        self.state = CollectorState.DONE
        return reply


class BidiSession:
    """Bidirectional state: one ACTIVE state with two independent flags

    The session is done once its own send side is closed and the peer's
    end-of-stream has been received. Used by both the server handler and the
    client driver.
    """

    def __init__(self, stream: CallStream):
        self.stream = stream
        self.send_closed = False
        self.receive_ended = False
        self.sent = 0
        self.received = 0

    @property
    def done(self) -> bool:
        return self.send_closed and self.receive_ended

    def send(self, message: Any) -> None:
        self.stream.send(message)
        self.sent += 1

    def receive(self) -> Any:
        message = self.stream.receive()
        if message is EOF:
            self.receive_ended = True
        else:
            self.received += 1
        return message

    def close_send(self) -> None:
        self.stream.close_send()
        self.send_closed = True


class Greeter(GreeterServicerInterface):
    """Reference Greeter servicer

    Args:
        count: Number of replies emitted by the server-streaming method
        default_name: Name greeted when no request has been seen yet
        greeting: Greeting word
    """

    def __init__(self, count: int = 10, default_name: str = "duty", greeting: str = "Hello"):
        self.count = count
        self.default_name = default_name
        self.greeting = greeting

    def say_hello(self, request: Request, context: CallContext) -> Reply:
        logger.debug(f"SayHello from {request.name!r}")
        return greet(request.name, self.greeting)

    def say_hello_again(self, request: Request, stream: CallStream) -> None:
        emitter = ServerStreamEmitter(stream)
        emitter.begin(request)
        for _ in range(self.count):
            emitter.emit(greet(request.name, self.greeting))
        emitter.finish()

    def say_hello_stream(self, stream: CallStream) -> Reply:
        collector = ClientStreamCollector(
            stream, on_request=lambda request: logger.info(f"resp: {request}")
        )
        requests = collector.collect()
        # Distinct names in arrival order
        names = list(dict.fromkeys(request.name for request in requests))
        return collector.respond(greet(", ".join(names or [self.default_name]), self.greeting))

    def say_hello_stream_all(self, stream: CallStream) -> None:
        session = BidiSession(stream)
        name = self.default_name
        while True:
            session.send(greet(name, self.greeting))
            request = session.receive()
            if request is EOF:
                break
            name = request.name
            logger.info(f"resp: {request},{session.received}")
        session.close_send()
