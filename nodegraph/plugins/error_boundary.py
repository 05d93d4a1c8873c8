"""Common error-boundary helpers for inbound RPC dispatch.

Every failure inside dispatch becomes an ``rpc:response`` with ``ok: false``;
nothing escapes into the channel's receive loop.
"""

from __future__ import annotations

from typing import Any, Callable

from nodegraph.plugins.core.protocol import RpcResponse
from nodegraph.utils.exceptions import (
    NodeGraphError,
    classify_exception,
    describe_exception,
)


def unknown_method_response(*, request_id: str, method: str) -> RpcResponse:
    """Build standardized unknown-method response."""
    return RpcResponse(request_id=request_id, ok=False, error=f"Unknown method: {method}")


def success_response(*, request_id: str, result: Any) -> RpcResponse:
    return RpcResponse(request_id=request_id, ok=True, result=result)


def nodegraph_error_response(
    *,
    request_id: str,
    method: str,
    exc: NodeGraphError,
    log_warning: Callable[..., None],
) -> RpcResponse:
    """Map NodeGraphError to an error response."""
    log_warning("RPC method {} failed with {}: {}", method, exc.code, exc.message)
    return RpcResponse(request_id=request_id, ok=False, error=describe_exception(exc))


def unhandled_exception_response(
    *,
    request_id: str,
    method: str,
    exc: BaseException,
    log_exception: Callable[..., None],
) -> RpcResponse:
    """Map unexpected handler exceptions to an error response."""
    code, _, _ = classify_exception(exc)
    message = describe_exception(exc)
    log_exception("RPC method {} failed with [{}]: {}", method, code, message)
    return RpcResponse(request_id=request_id, ok=False, error=message)


def unserializable_result_response(*, request_id: str, method: str) -> RpcResponse:
    return RpcResponse(
        request_id=request_id,
        ok=False,
        error=f"Result of {method} is not serializable",
    )


def malformed_request_response(*, request_id: str) -> RpcResponse:
    return RpcResponse(request_id=request_id, ok=False, error="Malformed request")
