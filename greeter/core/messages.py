"""
Greeter message records

Plain, immutable records exchanged by the Greeter service. They map 1:1 onto
the protobuf messages in greeter/proto/helloworld.proto.
"""

from dataclasses import dataclass


@dataclass(frozen=True)
class Request:
    """A greeting request carrying the name to greet"""
    name: str = ""


@dataclass(frozen=True)
class Reply:
    """A greeting reply carrying the rendered greeting"""
    message: str = ""


def greet(name: str, greeting: str = "Hello") -> Reply:
    """Build the reply greeting a name, e.g. ``Reply("Hello duty")``"""
    return Reply(message=f"{greeting} {name}")
