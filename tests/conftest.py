"""
Shared fixtures: a Greeter registry served in-process and over gRPC
"""

import pytest

from greeter.adapters.grpc.client import GrpcClient
from greeter.adapters.grpc.server import GrpcServer
from greeter.adapters.inprocess.client import InProcessClient
from greeter.adapters.inprocess.server import InProcessServer
from greeter.core.drivers import GreeterClient
from greeter.core.handlers import Greeter
from greeter.core.registry import HandlerRegistry

# Bind to an ephemeral port so parallel runs never collide
TEST_BIND_ADDRESS = "127.0.0.1:0"


def start_grpc_server(registry: HandlerRegistry) -> GrpcServer:
    server = GrpcServer(registry, bind_address=TEST_BIND_ADDRESS, max_workers=16)
    server.start()
    return server


def grpc_client_for(server: GrpcServer, timeout_ms: int = 5000) -> GrpcClient:
    client = GrpcClient(server_address=f"127.0.0.1:{server.bound_port}", timeout_ms=timeout_ms)
    client.connect()
    return client


@pytest.fixture
def registry():
    """Registry with the reference Greeter bound to every method"""
    registry = HandlerRegistry()
    registry.register_servicer(Greeter())
    return registry


@pytest.fixture
def inprocess_server(registry):
    server = InProcessServer(registry, max_workers=16)
    server.start()
    yield server
    server.stop()


@pytest.fixture
def inprocess_client(inprocess_server):
    client = InProcessClient(inprocess_server, timeout_ms=5000)
    yield client
    client.close()


@pytest.fixture
def grpc_server(registry):
    server = start_grpc_server(registry)
    yield server
    server.stop(grace=0.5)


@pytest.fixture
def grpc_client(grpc_server):
    client = grpc_client_for(grpc_server)
    yield client
    client.close()


@pytest.fixture(params=["inprocess", "grpc"])
def adapter(request):
    """A connected client adapter for each framework"""
    return request.getfixturevalue(f"{request.param}_client")


@pytest.fixture
def greeter_client(adapter):
    return GreeterClient(adapter)


@pytest.fixture(params=["inprocess", "grpc"])
def serve(request):
    """Factory serving a custom registry over each framework

    Returns a connected client adapter; servers and clients are shut down
    after the test.
    """
    started = []

    def factory(registry: HandlerRegistry, timeout_ms: int = 5000):
        if request.param == "inprocess":
            server = InProcessServer(registry, max_workers=16)
            server.start()
            client = InProcessClient(server, timeout_ms=timeout_ms)
        else:
            server = start_grpc_server(registry)
            client = grpc_client_for(server, timeout_ms=timeout_ms)
        started.append((client, server))
        return client

    yield factory

    for client, server in started:
        client.close()
        server.stop(grace=0.5)
