"""
Greeter wire format

helloworld.proto is the interface description shared with non-Python peers.
Its message and service modules are generated from it by grpcio-tools when
this package is imported; nothing generated is checked in. To write them out
instead:

    python -m grpc_tools.protoc -I. --python_out=. --grpc_python_out=. \
        greeter/proto/helloworld.proto
"""

import grpc

# Resolved against sys.path, as the installed package ships the .proto file
helloworld_pb2, helloworld_pb2_grpc = grpc.protos_and_services("greeter/proto/helloworld.proto")
