"""
Framework Adapters Module

Adapter implementations giving every RPC framework the same CallStream
interface:
- inprocess: in-memory calls between a client and server in one process
- grpc: grpcio binding, wire compatible with the helloworld.Greeter service
"""

from .adapter_factory import AdapterFactory, AdapterType
from .adapter_interface import ClientAdapterInterface, ServerAdapterInterface

__all__ = [
    "AdapterFactory",
    "AdapterType",
    "ClientAdapterInterface",
    "ServerAdapterInterface"
]
