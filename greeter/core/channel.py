"""
Call channel abstraction

A call is a bidirectional, ordered message pipe between a client end and a
server end. Each end can close its own send side independently ("half-close")
while it keeps receiving. End-of-stream is reported by ``receive()`` returning
the ``EOF`` sentinel; failures are raised as CallError subclasses.

CallStream is the contract every framework binding implements; Call/CallEnd
is the in-memory implementation used by the in-process framework and as the
bridge behind the gRPC server.
"""

import abc
import collections
import logging
import threading
import uuid
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

from greeter.core.errors import (
    CallCancelledError,
    CallError,
    DeadlineExceededError,
    ProtocolMisuseError,
)
from greeter.core.patterns import MethodSpec, Pattern, ReceiveState, SendState

logger = logging.getLogger(__name__)


class _EndOfStream:
    """Type of the EOF sentinel"""

    def __repr__(self):
        return "EOF"


# Returned by CallStream.receive() when the peer half-closed its send side
EOF = _EndOfStream()


@dataclass
class CallContext:
    """Per-call information visible to handlers and drivers"""

    method: str
    pattern: Pattern
    metadata: Dict[str, str] = field(default_factory=dict)
    call_id: str = ""


class CallStream(abc.ABC):
    """One end of a call, used identically by client and server"""

    context: CallContext

    @abc.abstractmethod
    def send(self, message: Any) -> None:
        """Enqueue one message on this end's direction

        Raises:
            ProtocolMisuseError: the send side is no longer open
            CallError: the call was aborted
        """

    @abc.abstractmethod
    def receive(self) -> Any:
        """Block until the next message, end-of-stream or failure

        Returns:
            The next message, or EOF once the peer half-closed

        Raises:
            CallError: the call was aborted
        """

    @abc.abstractmethod
    def close_send(self) -> None:
        """Half-close: no further messages will be sent. Idempotent."""

    @abc.abstractmethod
    def cancel(self, details: str = "cancelled") -> None:
        """Abort the whole call from this end"""

    @property
    @abc.abstractmethod
    def send_state(self) -> SendState:
        pass

    @property
    @abc.abstractmethod
    def receive_state(self) -> ReceiveState:
        pass

    def __iter__(self):
        while True:
            message = self.receive()
            if message is EOF:
                return
            yield message


class _Pipe:
    """One direction of a call: an ordered queue with close and failure"""

    def __init__(self, maxsize: int = 0):
        self._items = collections.deque()
        self._cond = threading.Condition()
        self._maxsize = maxsize
        self._closed = False
        self._discarding = False
        self._error: Optional[CallError] = None

    @property
    def discarding(self) -> bool:
        return self._discarding

    def put(self, item: Any) -> None:
        with self._cond:
            if self._error is not None:
                raise self._error
            if self._discarding:
                return
            if self._closed:
                raise ProtocolMisuseError("send after half-close")
            # Backpressure: wait for the receiver to drain
            while self._maxsize and len(self._items) >= self._maxsize:
                self._cond.wait()
                if self._error is not None:
                    raise self._error
                if self._discarding:
                    return
            self._items.append(item)
            self._cond.notify_all()

    def discard(self) -> int:
        """Drop queued items and every later put; returns the number dropped"""
        with self._cond:
            dropped = len(self._items)
            self._items.clear()
            self._discarding = True
            self._closed = True
            self._cond.notify_all()
            return dropped

    def close(self) -> bool:
        """Mark end-of-stream; returns False if already closed"""
        with self._cond:
            if self._closed:
                return False
            self._closed = True
            self._cond.notify_all()
            return True

    def fail(self, error: CallError) -> None:
        with self._cond:
            if self._error is None:
                self._error = error
            self._cond.notify_all()

    def get(self) -> Any:
        with self._cond:
            while not self._items and not self._closed and self._error is None:
                self._cond.wait()
            # Messages enqueued before a failure are still delivered
            if self._items:
                item = self._items.popleft()
                self._cond.notify_all()
                return item
            if self._error is not None:
                raise self._error
            return EOF


class CallEnd(CallStream):
    """The client or server end of an in-memory Call"""

    def __init__(self, call: "Call", role: str, inbound: _Pipe, outbound: _Pipe):
        self._call = call
        self.role = role
        self._inbound = inbound
        self._outbound = outbound
        self._send_state = SendState.OPEN
        self._receive_state = ReceiveState.OPEN
        self._half_closed = False

    @property
    def call(self) -> "Call":
        return self._call

    @property
    def context(self) -> CallContext:
        return self._call.context

    @property
    def send_state(self) -> SendState:
        return self._send_state

    @property
    def receive_state(self) -> ReceiveState:
        return self._receive_state

    def send(self, message: Any) -> None:
        error = self._call.error
        if error is not None:
            raise error
        if self._send_state is not SendState.OPEN:
            # The peer completed the call without reading this direction
            if self._outbound.discarding and not self._half_closed:
                logger.debug(f"[{self.context.call_id}] {self.role} dropped {message!r}")
                return
            raise ProtocolMisuseError(
                f"{self.role} cannot send on {self.context.method}: "
                f"send side is {self._send_state.value}"
            )
        self._outbound.put(message)
        logger.debug(f"[{self.context.call_id}] {self.role} sent {message!r}")

    def receive(self) -> Any:
        if self._receive_state is ReceiveState.ENDED:
            return EOF
        try:
            message = self._inbound.get()
        except CallError:
            self._receive_state = ReceiveState.ERRORED
            raise
        if message is EOF:
            self._receive_state = ReceiveState.ENDED
            logger.debug(f"[{self.context.call_id}] {self.role} observed end-of-stream")
            self._call._progress()
        return message

    def close_send(self) -> None:
        if self._send_state is not SendState.OPEN:
            return
        self._send_state = SendState.HALF_CLOSED
        self._half_closed = True
        if self._outbound.close():
            logger.debug(f"[{self.context.call_id}] {self.role} half-closed")
        self._call._progress()

    def cancel(self, details: str = "cancelled") -> None:
        self._call.cancel(f"{self.role}: {details}")

    def _mark_closed(self) -> None:
        self._send_state = SendState.CLOSED


class Call:
    """An in-memory call owning both directions and both ends

    The call finishes cleanly once both ends have half-closed and observed
    end-of-stream, or when the server completes it, or terminally on the
    first abort.

    Args:
        method: The method this call invokes
        metadata: Key/value call metadata (e.g. trace context)
        timeout: Deadline in seconds; on expiry the call is aborted with
            DeadlineExceededError
        maxsize: Per-direction buffer bound; 0 means unbounded
    """

    def __init__(self,
                 method: MethodSpec,
                 metadata: Optional[Dict[str, str]] = None,
                 timeout: Optional[float] = None,
                 maxsize: int = 0):
        self.id = uuid.uuid4().hex[:12]
        self.method = method
        self.context = CallContext(
            method=method.name,
            pattern=method.pattern,
            metadata=dict(metadata or {}),
            call_id=self.id,
        )

        self._lock = threading.Lock()
        self._finished = threading.Event()
        self._error: Optional[CallError] = None
        self._done_callbacks: List[Callable[["Call"], None]] = []

        upstream = _Pipe(maxsize)
        downstream = _Pipe(maxsize)
        self._pipes = (upstream, downstream)
        self.client = CallEnd(self, "client", inbound=downstream, outbound=upstream)
        self.server = CallEnd(self, "server", inbound=upstream, outbound=downstream)

        self._timer = None
        if timeout is not None:
            self._timer = threading.Timer(timeout, self._expire, args=(timeout,))
            self._timer.daemon = True
            self._timer.start()

        logger.debug(f"[{self.id}] opened {method.path} ({method.pattern.value})")

    @property
    def pattern(self) -> Pattern:
        return self.method.pattern

    @property
    def error(self) -> Optional[CallError]:
        return self._error

    @property
    def done(self) -> bool:
        return self._finished.is_set()

    def wait(self, timeout: Optional[float] = None) -> bool:
        """Block until the call finishes; returns False on timeout"""
        return self._finished.wait(timeout)

    def add_done_callback(self, callback: Callable[["Call"], None]) -> None:
        """Run ``callback(call)`` once the call finishes (immediately if it has)"""
        with self._lock:
            if not self._finished.is_set():
                self._done_callbacks.append(callback)
                return
        callback(self)

    def abort(self, error: CallError) -> bool:
        """Terminate the call with ``error``; the first terminal outcome wins

        Returns:
            bool: False if the call had already finished
        """
        if not self._finish(error):
            return False
        for pipe in self._pipes:
            pipe.fail(error)
        logger.warning(f"[{self.id}] {self.method.path} aborted: {error}")
        return True

    def cancel(self, details: str = "cancelled") -> bool:
        return self.abort(CallCancelledError(details))

    def complete(self) -> bool:
        """Finish the call successfully once the server side is done

        The server may stop before reading the client's end-of-stream. Its
        replies stay readable; requests still queued or sent afterwards are
        dropped.

        Returns:
            bool: False if the call had already finished
        """
        upstream, _ = self._pipes
        with self._lock:
            if self._finished.is_set():
                return False
            dropped = upstream.discard()
        if not self._finish(None):
            return False
        logger.debug(f"[{self.id}] {self.method.path} completed by server, {dropped} unread requests dropped")
        return True

    def _expire(self, timeout: float) -> None:
        self.abort(DeadlineExceededError(f"deadline of {timeout}s exceeded"))

    def _progress(self) -> None:
        ends = (self.client, self.server)
        if all(end.send_state is SendState.HALF_CLOSED and
               end.receive_state is ReceiveState.ENDED for end in ends):
            if self._finish(None):
                logger.debug(f"[{self.id}] {self.method.path} finished")

    def _finish(self, error: Optional[CallError]) -> bool:
        with self._lock:
            if self._finished.is_set():
                return False
            self._error = error
            self.client._mark_closed()
            self.server._mark_closed()
            self._finished.set()
            callbacks, self._done_callbacks = self._done_callbacks, []
        if self._timer is not None:
            self._timer.cancel()
        for callback in callbacks:
            try:
                callback(self)
            except Exception as e:
                logger.error(f"[{self.id}] done callback failed: {str(e)}")
        return True
