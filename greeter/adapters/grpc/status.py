"""
gRPC status mapping

Translates between grpc status codes and the CallError taxonomy in both
directions, so a failure keeps its kind across the wire.
"""

import grpc

from greeter.core.errors import (
    CallCancelledError,
    CallError,
    DeadlineExceededError,
    HandlerError,
    MethodNotFoundError,
    ProtocolMisuseError,
    TransportError,
)

_ERRORS_BY_CODE = {
    grpc.StatusCode.CANCELLED: CallCancelledError,
    grpc.StatusCode.DEADLINE_EXCEEDED: DeadlineExceededError,
    grpc.StatusCode.UNAVAILABLE: TransportError,
    grpc.StatusCode.UNIMPLEMENTED: MethodNotFoundError,
    grpc.StatusCode.FAILED_PRECONDITION: ProtocolMisuseError,
}


def error_from_rpc(rpc_error: grpc.RpcError) -> CallError:
    """Build the CallError matching a failed RPC's status"""
    code = rpc_error.code() if hasattr(rpc_error, "code") else grpc.StatusCode.UNKNOWN
    details = rpc_error.details() if hasattr(rpc_error, "details") else str(rpc_error)
    error_type = _ERRORS_BY_CODE.get(code, HandlerError)
    return error_type(details or code.name, code=code.name)


def status_for_error(error: CallError) -> grpc.StatusCode:
    """Status code to terminate an RPC with for ``error``"""
    try:
        return grpc.StatusCode[error.code]
    except KeyError:
        return grpc.StatusCode.UNKNOWN
