"""
Adapter factory

Creates client and server adapters (in-process, gRPC) from a configuration
dictionary, so callers pick the framework at runtime.
"""

from typing import Any, Dict

from greeter.adapters.adapter_interface import ClientAdapterInterface, ServerAdapterInterface
from greeter.adapters.grpc.client import GrpcClient
from greeter.adapters.grpc.server import GrpcServer
from greeter.adapters.inprocess.client import InProcessClient
from greeter.adapters.inprocess.server import InProcessServer
from greeter.core.registry import HandlerRegistry


class AdapterType:
    """Adapter type constants"""
    INPROCESS = "inprocess"
    GRPC = "grpc"


class AdapterFactory:
    """Adapter factory, creating framework adapter instances"""

    @staticmethod
    def create_client(adapter_type: str, config: Dict[str, Any] = None) -> ClientAdapterInterface:
        """Create a client adapter

        Args:
            adapter_type: Adapter type, "inprocess" or "grpc"
            config: Adapter configuration; the in-process client needs the
                server to call under "server"

        Returns:
            ClientAdapterInterface: Client adapter instance

        Raises:
            ValueError: Invalid adapter type or missing in-process server
        """
        if config is None:
            config = {}

        if adapter_type.lower() == AdapterType.INPROCESS:
            server = config.get("server")
            if server is None:
                raise ValueError("in-process client requires config['server']")
            return InProcessClient(
                server,
                timeout_ms=config.get("timeout_ms"),
                maxsize=config.get("maxsize", 0)
            )
        elif adapter_type.lower() == AdapterType.GRPC:
            return GrpcClient(
                server_address=config.get("server_address", "localhost:8080"),
                timeout_ms=config.get("timeout_ms", 5000),
                use_uds=config.get("use_uds", False)
            )
        else:
            raise ValueError(f"Invalid adapter type: {adapter_type}")

    @staticmethod
    def create_server(adapter_type: str,
                      registry: HandlerRegistry,
                      config: Dict[str, Any] = None) -> ServerAdapterInterface:
        """Create a server adapter

        Args:
            adapter_type: Adapter type, "inprocess" or "grpc"
            registry: Methods the server serves
            config: Adapter configuration

        Returns:
            ServerAdapterInterface: Server adapter instance

        Raises:
            ValueError: Invalid adapter type
        """
        if config is None:
            config = {}

        if adapter_type.lower() == AdapterType.INPROCESS:
            return InProcessServer(
                registry,
                max_workers=config.get("max_workers", 10)
            )
        elif adapter_type.lower() == AdapterType.GRPC:
            return GrpcServer(
                registry,
                bind_address=config.get("bind_address", "[::]:8080"),
                max_workers=config.get("max_workers", 10),
                use_uds=config.get("use_uds", False)
            )
        else:
            raise ValueError(f"Invalid adapter type: {adapter_type}")
