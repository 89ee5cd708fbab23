"""
Client-side drivers

GreeterClient opens calls through a client adapter (in-process or gRPC) and
drives the send/receive sequence of each pattern until it observes the call's
terminal state. Failures are raised to the caller as CallError subclasses;
the call is cancelled first so both sides release their resources.
"""

import logging
import threading
import time
from contextlib import contextmanager
from typing import Callable, Iterable, List, Optional

from greeter.core.channel import EOF, CallStream
from greeter.core.contract import (
    SAY_HELLO,
    SAY_HELLO_AGAIN,
    SAY_HELLO_STREAM,
    SAY_HELLO_STREAM_ALL,
    GreeterClientInterface,
)
from greeter.core.errors import CallError, ProtocolMisuseError
from greeter.core.handlers import BidiSession
from greeter.core.messages import Reply, Request
from greeter.core.patterns import MethodSpec
from greeter.telemetry.metrics import increment_counter, record_latency
from greeter.telemetry.tracer import create_span, inject_trace_context

logger = logging.getLogger(__name__)


def _expect_single_reply(stream: CallStream) -> Reply:
    """Receive exactly one reply followed by end-of-stream"""
    reply = stream.receive()
    if reply is EOF:
        raise ProtocolMisuseError("call ended without a reply")
    if stream.receive() is not EOF:
        raise ProtocolMisuseError("received more than one reply")
    return reply


@contextmanager
def _cancel_on_error(stream: CallStream):
    try:
        yield stream
    except BaseException as e:
        stream.cancel(f"client driver failed: {e}")
        raise


class GreeterClient(GreeterClientInterface):
    """Drives the four Greeter patterns

    Args:
        adapter: Client adapter used to open calls
        name: Name sent in every request unless overridden
        count: Number of requests (client-streaming) or send/receive pairs
            (bidirectional) driven by default
    """

    def __init__(self, adapter, name: str = "duty", count: int = 10):
        self.adapter = adapter
        self.name = name
        self.count = count

    def say_hello(self, name: Optional[str] = None) -> Reply:
        """Unary call: exactly one reply, or one raised CallError"""
        request = Request(name if name is not None else self.name)
        with self._tracked(SAY_HELLO):
            stream = self._open(SAY_HELLO, request)
            with _cancel_on_error(stream):
                reply = _expect_single_reply(stream)
        logger.info(f"Greeting: {reply.message}")
        return reply

    def say_hello_again(self,
                        name: Optional[str] = None,
                        on_reply: Optional[Callable[[Reply], None]] = None) -> List[Reply]:
        """Server-streaming call: receive replies until end-of-stream

        Args:
            name: Name to greet
            on_reply: Called with each reply as soon as it arrives

        Returns:
            List[Reply]: Every reply, in the order the server sent them
        """
        request = Request(name if name is not None else self.name)
        replies: List[Reply] = []
        with self._tracked(SAY_HELLO_AGAIN):
            stream = self._open(SAY_HELLO_AGAIN, request)
            with _cancel_on_error(stream):
                for reply in stream:
                    replies.append(reply)
                    logger.info(f"Greeting: {reply.message}")
                    if on_reply is not None:
                        on_reply(reply)
        return replies

    def say_hello_stream(self, names: Optional[Iterable[str]] = None) -> Reply:
        """Client-streaming call: send all requests, half-close, await the reply

        Args:
            names: Names to send; defaults to ``count`` copies of ``name``
        """
        if names is None:
            names = [self.name] * self.count
        with self._tracked(SAY_HELLO_STREAM):
            stream = self._open(SAY_HELLO_STREAM)
            with _cancel_on_error(stream):
                for name in names:
                    stream.send(Request(name))
                stream.close_send()
                reply = _expect_single_reply(stream)
        logger.info(f"Greeting: {reply.message}")
        return reply

    def say_hello_stream_all(self, count: Optional[int] = None) -> List[Reply]:
        """Bidirectional call, paired policy

        Performs ``count`` strict send-then-receive pairs, half-closes, then
        drains the replies the server sent before observing the half-close.

        Returns:
            List[Reply]: Every reply observed, in order
        """
        if count is None:
            count = self.count
        replies: List[Reply] = []
        with self._tracked(SAY_HELLO_STREAM_ALL):
            stream = self._open(SAY_HELLO_STREAM_ALL)
            session = BidiSession(stream)
            with _cancel_on_error(stream):
                for _ in range(count):
                    session.send(Request(self.name))
                    reply = session.receive()
                    if reply is EOF:
                        break
                    replies.append(reply)
                    logger.info(f"Greeting: {reply}")
                session.close_send()
                while not session.receive_ended:
                    reply = session.receive()
                    if reply is not EOF:
                        replies.append(reply)
                        logger.info(f"Greeting: {reply}")
        return replies

    def exchange(self,
                 requests: Iterable[Request],
                 on_reply: Optional[Callable[[Reply], None]] = None) -> List[Reply]:
        """Bidirectional call, independent policy

        A sender thread streams ``requests`` and half-closes while the caller
        receives until end-of-stream. No interleaving between the two
        directions is assumed.

        Raises:
            CallError: The call failed
            Exception: ``requests`` raised while being iterated; the call is
                cancelled and the original error is re-raised here
        """
        replies: List[Reply] = []
        sender_errors: List[Exception] = []
        with self._tracked(SAY_HELLO_STREAM_ALL):
            stream = self._open(SAY_HELLO_STREAM_ALL)
            session = BidiSession(stream)

            def send_all():
                try:
                    for request in requests:
                        session.send(request)
                    session.close_send()
                except Exception as e:
                    sender_errors.append(e)
                    stream.cancel(f"sender failed: {e}")

            sender = threading.Thread(target=send_all, name="greeter-sender", daemon=True)
            sender.start()
            try:
                with _cancel_on_error(stream):
                    for reply in iter(session.receive, EOF):
                        replies.append(reply)
                        if on_reply is not None:
                            on_reply(reply)
            except CallError:
                # A sender failure takes precedence over the cancellation it caused
                sender.join()
                if sender_errors:
                    raise sender_errors[0]
                raise
            sender.join()
            if sender_errors:
                raise sender_errors[0]
        return replies

    def _open(self, method: MethodSpec, request: Optional[Request] = None) -> CallStream:
        increment_counter("rpc.client.calls", 1, {"method": method.name})
        return self.adapter.open(method, request=request, metadata=inject_trace_context())

    @contextmanager
    def _tracked(self, method: MethodSpec):
        start_time = time.time()
        with create_span(f"greeter.client/{method.name}", {
            "rpc.method": method.name,
            "rpc.pattern": method.pattern.value,
        }):
            try:
                yield
            except CallError as e:
                logger.error(f"{method.name} failed: {e}")
                increment_counter("rpc.client.errors", 1, {"method": method.name, "code": e.code})
                raise
            finally:
                latency_ms = (time.time() - start_time) * 1000
                record_latency("rpc.client.latency", latency_ms, {"method": method.name})
