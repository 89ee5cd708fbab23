"""
Handler registry and call dispatch

HandlerRegistry maps method identifiers to handler callables; Dispatcher runs
the matching handler for every opened call on a worker pool. Both are explicit
objects constructed by the caller, never process-wide singletons.

Handler shapes per pattern:
    UNARY          handler(request, context) -> Reply
    SERVER_STREAM  handler(request, stream) -> None
    CLIENT_STREAM  handler(stream) -> Reply
    BIDI_STREAM    handler(stream) -> None
"""

import logging
import threading
import time
from concurrent import futures
from typing import Any, Callable, Dict, Iterable, Iterator, Optional, Union

from greeter.core.channel import EOF, Call, CallStream
from greeter.core.contract import GREETER_METHODS, SERVICER_ATTRIBUTES, method_for_pattern
from greeter.core.errors import (
    CallError,
    HandlerError,
    MethodNotFoundError,
    ProtocolMisuseError,
    TransportError,
)
from greeter.core.patterns import SERVICE_NAME, MethodSpec, Pattern
from greeter.telemetry.metrics import increment_counter, record_latency
from greeter.telemetry.tracer import create_span, with_trace_context

logger = logging.getLogger(__name__)


def _receive_single(stream: CallStream) -> Any:
    """Receive exactly one request followed by end-of-stream"""
    request = stream.receive()
    if request is EOF:
        raise ProtocolMisuseError("expected exactly one request, stream ended before any")
    if stream.receive() is not EOF:
        raise ProtocolMisuseError("expected exactly one request, received more")
    return request


class MethodHandler:
    """A registered method and the server-side framing for its pattern"""

    def __init__(self, method: MethodSpec, handler: Callable):
        self.method = method
        self.handler = handler

    @property
    def pattern(self) -> Pattern:
        return self.method.pattern

    def invoke(self, stream: CallStream) -> None:
        """Run the handler against the server end of a call

        Requests of unary-request patterns are read before the handler runs;
        the reply of unary-response patterns is sent after it returns. The
        send side is half-closed on normal completion; the dispatcher then
        completes the call even if the handler left requests unread.
        """
        pattern = self.method.pattern

        request = None
        if not pattern.request_streaming:
            request = _receive_single(stream)

        if pattern is Pattern.UNARY:
            self._send_reply(stream, self.handler(request, stream.context))
        elif pattern is Pattern.SERVER_STREAM:
            self.handler(request, stream)
        elif pattern is Pattern.CLIENT_STREAM:
            self._send_reply(stream, self.handler(stream))
        else:
            self.handler(stream)

        stream.close_send()

    def _send_reply(self, stream: CallStream, reply: Any) -> None:
        if reply is None:
            raise HandlerError(f"{self.method.name} returned no reply")
        stream.send(reply)


class HandlerRegistry:
    """Explicit method registry, keyed by gRPC method path"""

    def __init__(self):
        self._handlers: Dict[str, MethodHandler] = {}

    def register(self,
                 name: str,
                 pattern: Pattern,
                 handler: Callable,
                 service: str = SERVICE_NAME) -> MethodHandler:
        """Register a handler for a method

        Raises:
            ValueError: The method is already registered
        """
        return self.register_method(MethodSpec(name, pattern, service), handler)

    def register_method(self, method: MethodSpec, handler: Callable) -> MethodHandler:
        if method.path in self._handlers:
            raise ValueError(f"Method already registered: {method.path}")
        method_handler = MethodHandler(method, handler)
        self._handlers[method.path] = method_handler
        logger.debug(f"Registered {method.pattern.value} method {method.path}")
        return method_handler

    def register_handler(self, pattern: Pattern, handler: Callable) -> MethodHandler:
        """Bind a handler to the Greeter method of the given pattern"""
        return self.register_method(method_for_pattern(pattern), handler)

    def register_servicer(self,
                          servicer: Any,
                          methods: Iterable[MethodSpec] = GREETER_METHODS) -> None:
        """Bind every Greeter method to the matching servicer attribute"""
        for method in methods:
            self.register_method(method, getattr(servicer, SERVICER_ATTRIBUTES[method.name]))
        logger.info(f"Registered servicer {servicer.__class__.__name__}")

    def lookup(self, method: Union[MethodSpec, str]) -> MethodHandler:
        """Find the handler for a MethodSpec, a method path or a bare method name

        Raises:
            MethodNotFoundError: Nothing is registered under that identifier
        """
        if isinstance(method, MethodSpec):
            key = method.path
        else:
            key = method

        if key in self._handlers:
            return self._handlers[key]
        for method_handler in self._handlers.values():
            if method_handler.method.name == key:
                return method_handler
        raise MethodNotFoundError(f"Method not found: {key}")

    def services(self) -> Dict[str, list]:
        """Registered methods grouped by service name"""
        grouped: Dict[str, list] = {}
        for method_handler in self._handlers.values():
            grouped.setdefault(method_handler.method.service, []).append(method_handler)
        return grouped

    def __contains__(self, method) -> bool:
        try:
            self.lookup(method)
        except MethodNotFoundError:
            return False
        return True

    def __iter__(self) -> Iterator[MethodHandler]:
        return iter(list(self._handlers.values()))

    def __len__(self) -> int:
        return len(self._handlers)


class Dispatcher:
    """Runs the registered handler of every opened call on a thread pool

    Each call's handler is an independently scheduled unit of work talking to
    its client only through the call's channel.

    Args:
        registry: Handlers to dispatch to
        max_workers: Maximum number of concurrently running handlers
    """

    def __init__(self, registry: HandlerRegistry, max_workers: int = 10):
        self.registry = registry
        self.max_workers = max_workers
        self._executor: Optional[futures.ThreadPoolExecutor] = None
        self._active: Dict[str, Call] = {}
        self._lock = threading.Lock()

    @property
    def running(self) -> bool:
        return self._executor is not None

    def start(self) -> None:
        with self._lock:
            if self._executor is not None:
                logger.warning("Dispatcher already running")
                return
            self._executor = futures.ThreadPoolExecutor(
                max_workers=self.max_workers,
                thread_name_prefix="greeter-handler",
            )
        logger.info(f"Dispatcher started with {self.max_workers} workers, {len(self.registry)} methods")

    def stop(self, wait: bool = True) -> None:
        """Stop dispatching; calls still in flight are cancelled"""
        with self._lock:
            executor, self._executor = self._executor, None
            active = list(self._active.values())
        if executor is None:
            logger.warning("Dispatcher not running")
            return
        for call in active:
            call.cancel("server shutting down")
        executor.shutdown(wait=wait)
        logger.info("Dispatcher stopped")

    def open_call(self,
                  method: Union[MethodSpec, str],
                  metadata: Optional[Dict[str, str]] = None,
                  timeout: Optional[float] = None,
                  maxsize: int = 0) -> Call:
        """Create a call and schedule its handler

        Raises:
            MethodNotFoundError: No handler is registered for ``method``
            TransportError: The dispatcher is not running
        """
        method_handler = self.registry.lookup(method)
        if not self.running:
            raise TransportError("server is not running")
        call = Call(method_handler.method, metadata=metadata, timeout=timeout, maxsize=maxsize)

        with self._lock:
            if self._executor is None:
                call.cancel("server stopped")
                raise TransportError("server is not running")
            self._active[call.id] = call
            self._executor.submit(self._serve, call, method_handler)
        call.add_done_callback(self._forget)

        increment_counter("rpc.server.calls", 1, {"method": method_handler.method.name})
        return call

    @property
    def active_calls(self) -> int:
        with self._lock:
            return len(self._active)

    def _forget(self, call: Call) -> None:
        with self._lock:
            self._active.pop(call.id, None)

    def _serve(self, call: Call, method_handler: MethodHandler) -> None:
        method_name = method_handler.method.name
        start_time = time.time()
        try:
            with with_trace_context(call.context.metadata):
                with create_span(f"greeter.server/{method_name}", {
                    "rpc.method": method_name,
                    "rpc.pattern": call.pattern.value,
                }):
                    method_handler.invoke(call.server)
            call.complete()
        except CallError as e:
            if call.abort(e):
                logger.error(f"Call {call.id} to {method_name} failed: {e}")
                increment_counter("rpc.server.errors", 1, {"method": method_name, "code": e.code})
        except Exception as e:
            logger.error(f"Handler for {method_name} raised: {str(e)}")
            increment_counter("rpc.server.errors", 1, {"method": method_name, "code": HandlerError.code})
            call.abort(HandlerError(f"{type(e).__name__}: {e}"))
        finally:
            latency_ms = (time.time() - start_time) * 1000
            record_latency("rpc.server.call.latency", latency_ms, {"method": method_name})
