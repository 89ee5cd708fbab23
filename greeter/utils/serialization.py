"""
Protobuf serialization/deserialization tools

Converts between the immutable Greeter records, their protobuf messages and
wire bytes. The serializer/deserializer factories plug straight into grpc
multi-callables and rpc method handlers.
"""

from dataclasses import asdict
from typing import Any, Callable, Dict, Type

from google.protobuf.json_format import MessageToDict, ParseDict
from google.protobuf.message import Message

from greeter.core.messages import Reply, Request
from greeter.proto import helloworld_pb2

# Record type -> protobuf message type
PROTOBUF_TYPES: Dict[type, Type[Message]] = {
    Request: helloworld_pb2.HelloRequest,
    Reply: helloworld_pb2.HelloReply,
}


def protobuf_to_dict(message: Message) -> Dict[str, Any]:
    """Convert Protobuf message to dictionary

    Fields holding their default value are omitted.
    """
    if message is None:
        return {}

    return MessageToDict(message, preserving_proto_field_name=True)


def dict_to_protobuf(data: Dict[str, Any], message_type: Type[Message]) -> Message:
    """Convert dictionary to Protobuf message"""
    message = message_type()
    if data:
        ParseDict(data, message)
    return message


def record_to_protobuf(record: Any) -> Message:
    """Convert a Request/Reply record to its protobuf message

    Raises:
        TypeError: No protobuf type is known for the record
    """
    message_type = PROTOBUF_TYPES.get(type(record))
    if message_type is None:
        raise TypeError(f"No protobuf message type for {type(record).__name__}")
    return dict_to_protobuf(asdict(record), message_type)


def protobuf_to_record(message: Message, record_type: type) -> Any:
    """Convert a protobuf message to a record; absent fields take the record defaults"""
    return record_type(**protobuf_to_dict(message))


def serializer_for(record_type: type) -> Callable[[Any], bytes]:
    """Return a function serializing ``record_type`` records to wire bytes"""
    def serialize(record: Any) -> bytes:
        if not isinstance(record, record_type):
            raise TypeError(f"Expected {record_type.__name__}, got {type(record).__name__}")
        return record_to_protobuf(record).SerializeToString()

    return serialize


def deserializer_for(record_type: type) -> Callable[[bytes], Any]:
    """Return a function parsing wire bytes into ``record_type`` records"""
    message_type = PROTOBUF_TYPES[record_type]

    def deserialize(data: bytes) -> Any:
        return protobuf_to_record(message_type.FromString(data), record_type)

    return deserialize
