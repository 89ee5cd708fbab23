"""
gRPC adapter tests

Connection handling, status mapping and a unary latency benchmark. The
pattern semantics themselves are covered for both frameworks in
tests/core/test_drivers.py.
"""

import socket

import grpc
import pytest

from greeter.adapters.grpc.client import GrpcClient
from greeter.adapters.grpc.status import error_from_rpc, status_for_error
from greeter.core.contract import SAY_HELLO
from greeter.core.drivers import GreeterClient
from greeter.core.errors import (
    CallCancelledError,
    DeadlineExceededError,
    HandlerError,
    MethodNotFoundError,
    ProtocolMisuseError,
    TransportError,
)
from greeter.core.messages import Reply, Request
from greeter.proto import helloworld_pb2, helloworld_pb2_grpc


class FakeRpcError(grpc.RpcError):
    """RpcError carrying a status, as raised by grpc calls"""

    def __init__(self, code, details):
        super().__init__()
        self._code = code
        self._details = details

    def code(self):
        return self._code

    def details(self):
        return self._details


def unused_port() -> int:
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.bind(("127.0.0.1", 0))
        return sock.getsockname()[1]


@pytest.mark.parametrize("code, error_type", [
    (grpc.StatusCode.CANCELLED, CallCancelledError),
    (grpc.StatusCode.DEADLINE_EXCEEDED, DeadlineExceededError),
    (grpc.StatusCode.UNAVAILABLE, TransportError),
    (grpc.StatusCode.UNIMPLEMENTED, MethodNotFoundError),
    (grpc.StatusCode.FAILED_PRECONDITION, ProtocolMisuseError),
    (grpc.StatusCode.INTERNAL, HandlerError),
    (grpc.StatusCode.UNKNOWN, HandlerError),
])
def test_error_from_rpc(code, error_type):
    error = error_from_rpc(FakeRpcError(code, "details here"))

    assert type(error) is error_type
    assert error.code == code.name
    assert error.details == "details here"


def test_status_round_trip():
    for error in (CallCancelledError("x"), DeadlineExceededError("x"), TransportError("x"),
                  MethodNotFoundError("x"), ProtocolMisuseError("x"), HandlerError("x")):
        status = status_for_error(error)
        assert type(error_from_rpc(FakeRpcError(status, "x"))) is type(error)


def test_unmapped_code_falls_back_to_unknown():
    assert status_for_error(HandlerError("x", code="NOT_A_STATUS")) is grpc.StatusCode.UNKNOWN


def test_server_binds_ephemeral_port(grpc_server):
    assert grpc_server.is_running
    assert grpc_server.bound_port > 0


def test_connect_unreachable_server():
    client = GrpcClient(server_address=f"127.0.0.1:{unused_port()}", timeout_ms=300)

    with pytest.raises(TransportError):
        client.connect()
    client.close()


def test_call_to_unreachable_server_is_unavailable():
    client = GrpcClient(server_address=f"127.0.0.1:{unused_port()}", timeout_ms=1000)

    with pytest.raises(TransportError) as excinfo:
        GreeterClient(client).say_hello()
    assert excinfo.value.code in ("UNAVAILABLE", "DEADLINE_EXCEEDED")
    client.close()


def test_stopped_server_refuses_calls(grpc_server, grpc_client):
    assert GreeterClient(grpc_client).say_hello() == Reply("Hello duty")

    grpc_server.stop(grace=0)
    assert not grpc_server.is_running

    with pytest.raises(TransportError):
        GreeterClient(grpc_client).say_hello()


def test_open_accepts_method_names(grpc_client):
    stream = grpc_client.open("SayHello", request=Request("by name"))
    assert stream.receive() == Reply("Hello by name")

    with pytest.raises(MethodNotFoundError):
        grpc_client.open("NoSuchMethod", request=Request("x"))


def test_stream_context(grpc_client):
    stream = grpc_client.open(SAY_HELLO, request=Request("duty"), metadata={"x-greeting": "hi"})

    assert stream.context.method == "SayHello"
    assert stream.context.metadata == {"x-greeting": "hi"}
    assert stream.receive() == Reply("Hello duty")


def test_generated_stub_talks_to_server(grpc_server):
    with grpc.insecure_channel(f"127.0.0.1:{grpc_server.bound_port}") as channel:
        stub = helloworld_pb2_grpc.GreeterStub(channel)

        reply = stub.SayHello(helloworld_pb2.HelloRequest(name="duty"), timeout=5)
        assert reply.message == "Hello duty"

        replies = list(stub.SayHelloAgain(helloworld_pb2.HelloRequest(name="duty"), timeout=5))
        assert [reply.message for reply in replies] == ["Hello duty"] * 10

        names = iter([helloworld_pb2.HelloRequest(name=name) for name in ("a", "b", "a")])
        assert stub.SayHelloStream(names, timeout=5).message == "Hello a, b"


@pytest.mark.benchmark
def test_unary_latency_benchmark(grpc_client, benchmark):
    """Unary call latency over a local TCP connection"""
    client = GreeterClient(grpc_client)

    result = benchmark(client.say_hello)

    assert result == Reply("Hello duty")
