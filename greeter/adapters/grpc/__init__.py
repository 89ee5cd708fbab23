"""
gRPC adapter: Greeter calls over grpcio
"""

from .client import GrpcClient, GrpcClientStream
from .server import GrpcServer

__all__ = ["GrpcClient", "GrpcClientStream", "GrpcServer"]
