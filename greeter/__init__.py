"""
Greeter: streaming RPC patterns over interchangeable frameworks

Implements the helloworld.Greeter service in its four call patterns:

1. Unary: one request, one reply (SayHello)
2. Server streaming: one request, a stream of replies (SayHelloAgain)
3. Client streaming: a stream of requests, one reply (SayHelloStream)
4. Bidirectional streaming: independent request and reply streams (SayHelloStreamAll)

Handlers and client drivers only see the CallStream abstraction and run
unchanged over the in-process adapter or gRPC.
"""

__version__ = "0.1.0"
