"""
gRPC client adapter

Opens Greeter calls over a grpc channel. GrpcClientStream presents every
pattern as a CallStream: streamed requests are fed to grpc through a queue
backed request iterator, replies are read from the response iterator
(streaming responses) or the call future (single responses).
"""

import logging
import queue
import threading
from typing import Any, Dict, Optional, Union

import grpc

from greeter.adapters.adapter_interface import (
    ClientAdapterInterface,
    check_request,
    resolve_method,
)
from greeter.adapters.grpc.status import error_from_rpc
from greeter.core.channel import EOF, CallContext, CallStream
from greeter.core.errors import CallCancelledError, ProtocolMisuseError, TransportError
from greeter.core.messages import Reply, Request
from greeter.core.patterns import MethodSpec, Pattern, ReceiveState, SendState
from greeter.utils.serialization import deserializer_for, serializer_for

logger = logging.getLogger(__name__)

# grpc.Channel factory method per pattern
_MULTICALLABLES = {
    Pattern.UNARY: "unary_unary",
    Pattern.SERVER_STREAM: "unary_stream",
    Pattern.CLIENT_STREAM: "stream_unary",
    Pattern.BIDI_STREAM: "stream_stream",
}

# Marks the end of the outgoing request iterator
_CLOSE = object()

# Message size limits shared with the server
CHANNEL_OPTIONS = [
    ('grpc.max_receive_message_length', 100 * 1024 * 1024),  # 100MB
    ('grpc.max_send_message_length', 100 * 1024 * 1024)      # 100MB
]


class GrpcClientStream(CallStream):
    """Client end of one gRPC call

    Args:
        channel: Open grpc channel
        method: Method to invoke
        request: The single request of unary-request patterns
        timeout: Call deadline in seconds
        metadata: Call metadata
    """

    def __init__(self,
                 channel: grpc.Channel,
                 method: MethodSpec,
                 request: Optional[Request] = None,
                 timeout: Optional[float] = None,
                 metadata: Optional[Dict[str, str]] = None):
        self.method = method
        self.context = CallContext(
            method=method.name,
            pattern=method.pattern,
            metadata=dict(metadata or {}),
        )
        self._send_state = SendState.OPEN
        self._receive_state = ReceiveState.OPEN
        self._replied = False
        self._half_closed = False
        self._lock = threading.Lock()
        self._outbox: Optional[queue.Queue] = None

        pattern = method.pattern
        if pattern.request_streaming:
            self._outbox = queue.Queue()
            request_arg = self._outgoing()
        else:
            # The single request goes out with call setup
            request_arg = request
            self._send_state = SendState.HALF_CLOSED
            self._half_closed = True

        multicallable = getattr(channel, _MULTICALLABLES[pattern])(
            method.path,
            request_serializer=serializer_for(Request),
            response_deserializer=deserializer_for(Reply),
        )
        call_metadata = tuple(self.context.metadata.items()) or None
        if pattern.response_streaming:
            self._rpc = multicallable(request_arg, timeout=timeout, metadata=call_metadata)
        else:
            self._rpc = multicallable.future(request_arg, timeout=timeout, metadata=call_metadata)

        logger.debug(f"Opened gRPC call {method.path}")

    @property
    def send_state(self) -> SendState:
        return self._send_state

    @property
    def receive_state(self) -> ReceiveState:
        return self._receive_state

    def send(self, message: Any) -> None:
        if self._rpc.done() and self._rpc.code() is not grpc.StatusCode.OK:
            raise error_from_rpc(self._rpc)
        with self._lock:
            if self._rpc.done() and not self._half_closed:
                # The server completed the call without reading further requests
                logger.debug(f"Dropped request on completed call {self.method.path}")
                return
            if self._send_state is not SendState.OPEN:
                raise ProtocolMisuseError(
                    f"cannot send on {self.method.name}: send side is {self._send_state.value}"
                )
            self._outbox.put(message)

    def receive(self) -> Any:
        if self._receive_state is ReceiveState.ENDED:
            return EOF
        try:
            if self.method.pattern.response_streaming:
                message = next(self._rpc)
            elif self._replied:
                message = EOF
            else:
                message = self._rpc.result()
                self._replied = True
        except StopIteration:
            message = EOF
        except grpc.FutureCancelledError:
            self._terminate(ReceiveState.ERRORED)
            raise CallCancelledError(f"{self.method.name} cancelled locally")
        except grpc.RpcError as e:
            self._terminate(ReceiveState.ERRORED)
            raise error_from_rpc(e) from e

        if message is EOF:
            self._terminate(ReceiveState.ENDED)
        return message

    def close_send(self) -> None:
        with self._lock:
            if self._send_state is not SendState.OPEN:
                return
            self._send_state = SendState.HALF_CLOSED
            self._half_closed = True
            self._outbox.put(_CLOSE)

    def cancel(self, details: str = "cancelled") -> None:
        logger.debug(f"Cancelling {self.method.path}: {details}")
        self._rpc.cancel()
        self._terminate(self._receive_state)

    def _terminate(self, receive_state: ReceiveState) -> None:
        self._receive_state = receive_state
        with self._lock:
            self._send_state = SendState.CLOSED
            # Release grpc's request consumer
            if self._outbox is not None:
                self._outbox.put(_CLOSE)

    def _outgoing(self):
        while True:
            message = self._outbox.get()
            if message is _CLOSE:
                return
            yield message


class GrpcClient(ClientAdapterInterface):
    """
    gRPC client adapter opening Greeter calls on a remote server
    """

    def __init__(self,
                 server_address: str = "localhost:8080",
                 timeout_ms: Optional[int] = 5000,
                 use_uds: bool = False):
        """Initialize gRPC client

        Args:
            server_address: gRPC server address (host:port or UDS path)
            timeout_ms: Per-call deadline in milliseconds; None for no deadline
            use_uds: Whether to use Unix Domain Socket
        """
        self.server_address = server_address
        self.timeout_ms = timeout_ms
        self.use_uds = use_uds
        self.timeout_seconds = timeout_ms / 1000.0 if timeout_ms else None

        # Created on first use
        self.channel = None
        self.is_connected = False

        logger.info(f"gRPC client created, server address: {server_address}, UDS mode: {use_uds}")

    def _ensure_connected(self):
        """Ensure the grpc channel exists"""
        if self.is_connected and self.channel is not None:
            return

        target = f"unix:{self.server_address}" if self.use_uds else self.server_address
        self.channel = grpc.insecure_channel(target, options=CHANNEL_OPTIONS)
        self.is_connected = True
        logger.info(f"gRPC channel opened to: {target}")

    def connect(self, timeout_ms: Optional[int] = None) -> None:
        """Wait until the server is reachable

        Raises:
            TransportError: The server could not be reached in time
        """
        self._ensure_connected()
        timeout_ms = timeout_ms or self.timeout_ms or 5000
        try:
            grpc.channel_ready_future(self.channel).result(timeout=timeout_ms / 1000.0)
        except grpc.FutureTimeoutError:
            logger.error(f"Could not connect to gRPC server {self.server_address} within {timeout_ms}ms")
            raise TransportError(f"could not connect to {self.server_address} within {timeout_ms}ms")
        logger.info(f"Connected to gRPC server: {self.server_address}")

    def open(self,
             method: Union[MethodSpec, str],
             request: Optional[Request] = None,
             metadata: Optional[Dict[str, str]] = None) -> GrpcClientStream:
        spec = resolve_method(method)
        check_request(spec, request)
        self._ensure_connected()
        return GrpcClientStream(
            self.channel,
            spec,
            request=request,
            timeout=self.timeout_seconds,
            metadata=metadata,
        )

    def close(self) -> None:
        """Close the channel; calls still in flight are cancelled"""
        if self.channel is not None:
            self.channel.close()
            self.channel = None
        self.is_connected = False
        logger.info("gRPC client closed")
