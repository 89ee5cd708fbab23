"""
In-process adapter and adapter factory tests
"""

import time

import pytest

from greeter.adapters.adapter_factory import AdapterFactory, AdapterType
from greeter.adapters.grpc.client import GrpcClient
from greeter.adapters.grpc.server import GrpcServer
from greeter.adapters.inprocess.client import InProcessClient
from greeter.adapters.inprocess.server import InProcessServer
from greeter.core.channel import EOF
from greeter.core.contract import SAY_HELLO, SAY_HELLO_STREAM, SAY_HELLO_STREAM_ALL
from greeter.core.errors import CallCancelledError, MethodNotFoundError, TransportError
from greeter.core.messages import Reply, Request
from greeter.core.patterns import Pattern
from greeter.core.registry import HandlerRegistry


class TestInProcessAdapter:
    """Lifecycle of the in-process client and server"""

    def test_closed_client_refuses_calls(self, inprocess_server):
        client = InProcessClient(inprocess_server)
        client.close()

        with pytest.raises(TransportError, match="closed"):
            client.open(SAY_HELLO, request=Request("duty"))

    def test_close_cancels_calls_in_flight(self, inprocess_server):
        client = InProcessClient(inprocess_server)
        stream = client.open(SAY_HELLO_STREAM)
        stream.send(Request("waiting"))

        client.close()

        with pytest.raises(CallCancelledError):
            stream.receive()

    def test_stopped_server_refuses_calls(self, registry):
        server = InProcessServer(registry)
        client = InProcessClient(server)

        with pytest.raises(TransportError):
            client.open(SAY_HELLO, request=Request("duty"))

        server.start()
        assert client.open(SAY_HELLO, request=Request("duty")).receive() == Reply("Hello duty")
        server.stop()
        assert not server.is_running

    def test_stop_with_grace_lets_calls_finish(self, registry):
        server = InProcessServer(registry)
        server.start()
        stream = InProcessClient(server).open(SAY_HELLO, request=Request("duty"))

        assert stream.receive() == Reply("Hello duty")
        assert stream.receive() is EOF
        server.stop(grace=1.0)

    def test_stop_does_not_wait_for_completed_bidi_call(self):
        registry = HandlerRegistry()
        registry.register_handler(Pattern.BIDI_STREAM, lambda stream: stream.send(Reply("bye")))
        server = InProcessServer(registry)
        server.start()
        stream = InProcessClient(server).open(SAY_HELLO_STREAM_ALL)
        stream.send(Request("a"))

        assert stream.receive() == Reply("bye")
        assert stream.receive() is EOF

        start = time.time()
        server.stop(grace=5.0)
        assert time.time() - start < 1.0

    def test_unknown_method(self, inprocess_client):
        with pytest.raises(MethodNotFoundError):
            inprocess_client.open("/helloworld.Greeter/SayGoodbye", request=Request("x"))


class TestAdapterFactory:
    """Framework selection by adapter type"""

    def test_create_inprocess(self, registry):
        server = AdapterFactory.create_server(AdapterType.INPROCESS, registry, {"max_workers": 2})
        client = AdapterFactory.create_client(AdapterType.INPROCESS, {"server": server, "timeout_ms": 1000})

        assert isinstance(server, InProcessServer)
        assert isinstance(client, InProcessClient)
        assert client.timeout_seconds == 1.0

    def test_create_grpc(self, registry):
        server = AdapterFactory.create_server("GRPC", registry, {"bind_address": "127.0.0.1:0"})
        client = AdapterFactory.create_client(AdapterType.GRPC, {"server_address": "127.0.0.1:9"})

        assert isinstance(server, GrpcServer)
        assert isinstance(client, GrpcClient)
        assert server.bind_address == "127.0.0.1:0"
        assert client.server_address == "127.0.0.1:9"
        assert not server.is_running

    def test_inprocess_client_requires_server(self):
        with pytest.raises(ValueError, match="server"):
            AdapterFactory.create_client(AdapterType.INPROCESS)

    def test_invalid_adapter_type(self, registry):
        with pytest.raises(ValueError, match="Invalid adapter type"):
            AdapterFactory.create_client("zeromq")
        with pytest.raises(ValueError, match="Invalid adapter type"):
            AdapterFactory.create_server("zeromq", registry)
