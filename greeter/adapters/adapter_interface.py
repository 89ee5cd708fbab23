"""
Framework adapter interface

Defines the interface every RPC framework binding (in-process, gRPC)
implements. Drivers and handlers only see CallStreams, so they run unchanged
over any adapter.
"""

import abc
from typing import Dict, Optional, Union

from greeter.core.channel import CallStream
from greeter.core.contract import GREETER_METHODS
from greeter.core.errors import MethodNotFoundError, ProtocolMisuseError
from greeter.core.messages import Request
from greeter.core.patterns import MethodSpec
from greeter.core.registry import HandlerRegistry


class ClientAdapterInterface(abc.ABC):
    """Client adapter interface, defining methods all client adapters must implement"""

    @abc.abstractmethod
    def open(self,
             method: Union[MethodSpec, str],
             request: Optional[Request] = None,
             metadata: Optional[Dict[str, str]] = None) -> CallStream:
        """Open a call and return its client end

        For unary-request patterns ``request`` is sent and the send side is
        half-closed as part of call setup; streaming-request patterns must not
        pass one.

        Args:
            method: Method to call
            request: The single request of unary-request patterns
            metadata: Call metadata (e.g. trace context)

        Raises:
            ProtocolMisuseError: ``request`` does not match the method's pattern
            TransportError: The call could not be established
            MethodNotFoundError: The method is unknown
        """
        pass

    @abc.abstractmethod
    def close(self) -> None:
        """Close connection and release resources"""
        pass


class ServerAdapterInterface(abc.ABC):
    """Server adapter interface, defining methods all server adapters must implement"""

    registry: HandlerRegistry

    @abc.abstractmethod
    def start(self) -> None:
        """Start serving the registry's methods"""
        pass

    @abc.abstractmethod
    def stop(self, grace: Optional[float] = None) -> None:
        """Stop the server; calls still running after ``grace`` seconds are cancelled"""
        pass

    @property
    @abc.abstractmethod
    def is_running(self) -> bool:
        pass


def resolve_method(method: Union[MethodSpec, str], registry: Optional[HandlerRegistry] = None) -> MethodSpec:
    """Turn a method identifier into a MethodSpec

    Bare names and paths are looked up in ``registry`` when given, otherwise
    among the Greeter methods.
    """
    if isinstance(method, MethodSpec):
        return method
    if registry is not None:
        return registry.lookup(method).method

    for spec in GREETER_METHODS:
        if method in (spec.name, spec.path):
            return spec
    raise MethodNotFoundError(f"Method not found: {method}")


def check_request(method: MethodSpec, request: Optional[Request]) -> None:
    """Validate that ``request`` is passed exactly for unary-request patterns"""
    if method.pattern.request_streaming and request is not None:
        raise ProtocolMisuseError(f"{method.name} streams its requests; send them on the call")
    if not method.pattern.request_streaming and request is None:
        raise ProtocolMisuseError(f"{method.name} takes exactly one request at call setup")
