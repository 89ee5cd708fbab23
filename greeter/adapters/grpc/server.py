"""
gRPC server adapter

Serves a HandlerRegistry over gRPC. Every incoming RPC is bridged onto an
in-memory Call run by the Dispatcher, so handlers see the same CallStream on
the wire as they do in-process. The gRPC side of the bridge acts as the
call's client end: it forwards requests in, relays replies out and maps
CallErrors to grpc status codes.
"""

import functools
import logging
import threading
from concurrent import futures
from typing import Dict, Optional

import grpc

from greeter.adapters.adapter_interface import ServerAdapterInterface
from greeter.adapters.grpc.client import CHANNEL_OPTIONS
from greeter.adapters.grpc.status import status_for_error
from greeter.core.channel import EOF, Call
from greeter.core.errors import CallError, ProtocolMisuseError, TransportError
from greeter.core.messages import Reply, Request
from greeter.core.patterns import MethodSpec, Pattern
from greeter.core.registry import Dispatcher, HandlerRegistry
from greeter.telemetry.metrics import increment_counter
from greeter.utils.serialization import deserializer_for, serializer_for

logger = logging.getLogger(__name__)

_RPC_METHOD_HANDLERS = {
    Pattern.UNARY: grpc.unary_unary_rpc_method_handler,
    Pattern.SERVER_STREAM: grpc.unary_stream_rpc_method_handler,
    Pattern.CLIENT_STREAM: grpc.stream_unary_rpc_method_handler,
    Pattern.BIDI_STREAM: grpc.stream_stream_rpc_method_handler,
}


class GrpcServer(ServerAdapterInterface):
    """
    gRPC server adapter serving every method of a HandlerRegistry
    """

    def __init__(self,
                 registry: HandlerRegistry,
                 bind_address: str = "[::]:8080",
                 max_workers: int = 10,
                 use_uds: bool = False):
        """Initialize gRPC server

        Args:
            registry: Methods to serve
            bind_address: Bind address (host:port or UDS path); port 0 picks a free port
            max_workers: Maximum number of concurrently served calls
            use_uds: Whether to use Unix Domain Socket
        """
        self.registry = registry
        self.bind_address = bind_address
        self.max_workers = max_workers
        self.use_uds = use_uds
        self.dispatcher = Dispatcher(registry, max_workers=max_workers)

        # Server state
        self.server = None
        self.bound_port: Optional[int] = None
        self.running = False

        logger.info(f"gRPC server created, bind address: {bind_address}, UDS mode: {use_uds}")

    @property
    def is_running(self) -> bool:
        return self.running

    def start(self) -> None:
        """Start serving; returns once the port is bound"""
        if self.running:
            logger.warning("gRPC server already running")
            return

        self.dispatcher.start()
        try:
            # The bridge holds one grpc thread per call while its handler runs
            self.server = grpc.server(
                futures.ThreadPoolExecutor(max_workers=self.max_workers),
                options=CHANNEL_OPTIONS,
            )
            self.server.add_generic_rpc_handlers(tuple(self._generic_handlers()))

            if self.use_uds:
                self.bound_port = self.server.add_insecure_port(f"unix:{self.bind_address}")
            else:
                self.bound_port = self.server.add_insecure_port(self.bind_address)

            self.server.start()
        except Exception as e:
            logger.error(f"Failed to start gRPC server: {str(e)}")
            self.dispatcher.stop(wait=False)
            self.server = None
            raise

        self.running = True
        logger.info(f"gRPC server started, bind address: {self.bind_address}, port: {self.bound_port}")
        increment_counter("rpc.server.started", 1)

    def stop(self, grace: Optional[float] = 5.0) -> None:
        """Stop the server

        New RPCs are refused at once; RPCs still running after ``grace``
        seconds are cancelled.
        """
        if not self.running:
            logger.warning("gRPC server not running")
            return

        self.running = False
        self.server.stop(grace).wait()
        self.dispatcher.stop(wait=True)
        self.server = None
        logger.info(f"gRPC server stopped, grace period: {grace}s")

    def wait_for_termination(self, timeout: Optional[float] = None) -> bool:
        """Block until the server stops; returns True on timeout"""
        if self.server is None:
            return False
        return self.server.wait_for_termination(timeout)

    def _generic_handlers(self):
        for service, method_handlers in self.registry.services().items():
            rpc_handlers = {}
            for method_handler in method_handlers:
                method = method_handler.method
                if method.pattern.response_streaming:
                    behavior = functools.partial(self._relay_stream, method)
                else:
                    behavior = functools.partial(self._relay_unary, method)
                rpc_handlers[method.name] = _RPC_METHOD_HANDLERS[method.pattern](
                    behavior,
                    request_deserializer=deserializer_for(Request),
                    response_serializer=serializer_for(Reply),
                )
            logger.debug(f"Serving {service} with {len(rpc_handlers)} methods")
            yield grpc.method_handlers_generic_handler(service, rpc_handlers)

    def _open(self, method: MethodSpec, request_or_iterator, context) -> Call:
        metadata: Dict[str, str] = {
            key: value for key, value in context.invocation_metadata()
            if isinstance(value, str)
        }
        timeout = context.time_remaining()
        # RPCs without a deadline report an effectively infinite remaining time
        if timeout is not None and timeout >= threading.TIMEOUT_MAX:
            timeout = None
        try:
            call = self.dispatcher.open_call(
                method,
                metadata=metadata,
                timeout=timeout,
            )
        except CallError as e:
            context.abort(status_for_error(e), e.details)

        # Fires on every RPC termination; a no-op once the call has finished
        context.add_callback(lambda: call.cancel("rpc terminated by peer"))

        if method.pattern.request_streaming:
            pump = threading.Thread(
                target=self._pump,
                args=(call, request_or_iterator),
                name=f"greeter-pump-{call.id}",
                daemon=True,
            )
            pump.start()
        else:
            call.client.send(request_or_iterator)
            call.client.close_send()
        return call

    def _pump(self, call: Call, request_iterator) -> None:
        """Forward the incoming request stream into the call"""
        try:
            for request in request_iterator:
                call.client.send(request)
            call.client.close_send()
        except CallError as e:
            logger.debug(f"[{call.id}] stopped forwarding requests: {e}")
        except grpc.RpcError as e:
            call.abort(TransportError(f"request stream broken: {e}"))

    def _relay_unary(self, method: MethodSpec, request_or_iterator, context):
        call = self._open(method, request_or_iterator, context)
        try:
            reply = call.client.receive()
            if reply is EOF:
                raise ProtocolMisuseError(f"{method.name} ended without a reply")
            if call.client.receive() is not EOF:
                raise ProtocolMisuseError(f"{method.name} sent more than one reply")
        except CallError as e:
            context.abort(status_for_error(e), e.details)
        return reply

    def _relay_stream(self, method: MethodSpec, request_or_iterator, context):
        call = self._open(method, request_or_iterator, context)
        try:
            for reply in call.client:
                yield reply
        except CallError as e:
            context.abort(status_for_error(e), e.details)
