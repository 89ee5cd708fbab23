"""
Tests for record/protobuf conversion and the wire codec
"""
import pytest

from greeter.core.messages import Reply, Request
from greeter.proto import helloworld_pb2
from greeter.utils.serialization import (
    deserializer_for,
    dict_to_protobuf,
    protobuf_to_dict,
    protobuf_to_record,
    record_to_protobuf,
    serializer_for,
)


def test_descriptor_matches_helloworld_proto():
    service = helloworld_pb2.DESCRIPTOR.services_by_name["Greeter"]

    assert service.full_name == "helloworld.Greeter"
    streaming = {
        method.name: (method.client_streaming, method.server_streaming)
        for method in service.methods
    }
    assert streaming == {
        "SayHello": (False, False),
        "SayHelloAgain": (False, True),
        "SayHelloStream": (True, False),
        "SayHelloStreamAll": (True, True),
    }


def test_record_to_protobuf():
    message = record_to_protobuf(Request("duty"))

    assert isinstance(message, helloworld_pb2.HelloRequest)
    assert message.name == "duty"
    assert protobuf_to_record(message, Request) == Request("duty")


def test_default_fields_map_to_record_defaults():
    assert protobuf_to_dict(helloworld_pb2.HelloReply()) == {}
    assert protobuf_to_record(helloworld_pb2.HelloReply(), Reply) == Reply("")


def test_dict_to_protobuf():
    message = dict_to_protobuf({"message": "Hello duty"}, helloworld_pb2.HelloReply)
    assert message.message == "Hello duty"


def test_wire_format_is_protobuf():
    data = serializer_for(Request)(Request("duty"))

    # Field 1, length-delimited, 4 bytes
    assert data == b"\x0a\x04duty"
    assert helloworld_pb2.HelloRequest.FromString(data).name == "duty"
    assert deserializer_for(Request)(data) == Request("duty")


def test_serializer_rejects_wrong_record():
    with pytest.raises(TypeError):
        serializer_for(Reply)(Request("duty"))


def test_unknown_record_type():
    with pytest.raises(TypeError, match="No protobuf message type"):
        record_to_protobuf("not a record")
