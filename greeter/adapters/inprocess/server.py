"""
In-process server adapter

Serves a HandlerRegistry to clients living in the same process. Every call is
an in-memory Call whose handler runs on the dispatcher's worker pool.
"""

import logging
import time
from typing import Dict, Optional, Union

from greeter.adapters.adapter_interface import ServerAdapterInterface
from greeter.core.channel import Call
from greeter.core.patterns import MethodSpec
from greeter.core.registry import Dispatcher, HandlerRegistry

logger = logging.getLogger(__name__)


class InProcessServer(ServerAdapterInterface):
    """In-process server adapter

    Args:
        registry: Methods to serve
        max_workers: Maximum number of concurrently running handlers
    """

    def __init__(self, registry: HandlerRegistry, max_workers: int = 10):
        self.registry = registry
        self.dispatcher = Dispatcher(registry, max_workers=max_workers)
        logger.info(f"In-process server created with {len(registry)} methods")

    @property
    def is_running(self) -> bool:
        return self.dispatcher.running

    def start(self) -> None:
        self.dispatcher.start()

    def stop(self, grace: Optional[float] = None) -> None:
        if not self.is_running:
            logger.warning("In-process server not running")
            return

        if grace:
            # Let calls in flight finish before cancelling the rest
            deadline = time.time() + grace
            while self.dispatcher.active_calls and time.time() < deadline:
                time.sleep(0.01)

        self.dispatcher.stop(wait=True)

    def open_call(self,
                  method: Union[MethodSpec, str],
                  metadata: Optional[Dict[str, str]] = None,
                  timeout: Optional[float] = None,
                  maxsize: int = 0) -> Call:
        return self.dispatcher.open_call(method, metadata=metadata, timeout=timeout, maxsize=maxsize)
