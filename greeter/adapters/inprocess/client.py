"""
In-process client adapter

Opens in-memory calls on an InProcessServer living in the same process.
"""

import logging
import threading
from typing import Dict, Optional, Union

from greeter.adapters.adapter_interface import (
    ClientAdapterInterface,
    check_request,
    resolve_method,
)
from greeter.adapters.inprocess.server import InProcessServer
from greeter.core.channel import Call, CallStream
from greeter.core.errors import TransportError
from greeter.core.messages import Request
from greeter.core.patterns import MethodSpec

logger = logging.getLogger(__name__)


class InProcessClient(ClientAdapterInterface):
    """In-process client adapter

    Args:
        server: Server to open calls on
        timeout_ms: Per-call deadline in milliseconds; None for no deadline
        maxsize: Per-direction buffer bound of each call; 0 means unbounded
    """

    def __init__(self,
                 server: InProcessServer,
                 timeout_ms: Optional[int] = None,
                 maxsize: int = 0):
        self.server = server
        self.timeout_ms = timeout_ms
        self.timeout_seconds = timeout_ms / 1000.0 if timeout_ms else None
        self.maxsize = maxsize

        self._calls: Dict[str, Call] = {}
        self._lock = threading.Lock()
        self._closed = False

    def open(self,
             method: Union[MethodSpec, str],
             request: Optional[Request] = None,
             metadata: Optional[Dict[str, str]] = None) -> CallStream:
        if self._closed:
            raise TransportError("client is closed")

        spec = resolve_method(method, self.server.registry)
        check_request(spec, request)

        call = self.server.open_call(
            spec,
            metadata=metadata,
            timeout=self.timeout_seconds,
            maxsize=self.maxsize,
        )
        with self._lock:
            self._calls[call.id] = call
        call.add_done_callback(self._forget)

        stream = call.client
        if request is not None:
            # The single request is part of call setup
            stream.send(request)
            stream.close_send()
        return stream

    def close(self) -> None:
        """Cancel calls still in flight and refuse new ones"""
        self._closed = True
        with self._lock:
            calls = list(self._calls.values())
        for call in calls:
            call.cancel("client closed")
        logger.info("In-process client closed")

    def _forget(self, call: Call) -> None:
        with self._lock:
            self._calls.pop(call.id, None)
