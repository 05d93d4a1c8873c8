"""Utility functions for nodegraph."""

from nodegraph.utils.helpers import maybe_await, safe_dict
from nodegraph.utils.exceptions import (
    NodeGraphError,
    RpcTimeoutError,
    RemoteCallError,
    SessionClosedError,
    SessionNotReadyError,
    HandshakeError,
    PermissionDeniedError,
    ValidationError,
    ErrorCategory,
    classify_exception,
    describe_exception,
    sanitize_error_message,
)

__all__ = [
    "maybe_await",
    "safe_dict",
    "NodeGraphError",
    "RpcTimeoutError",
    "RemoteCallError",
    "SessionClosedError",
    "SessionNotReadyError",
    "HandshakeError",
    "PermissionDeniedError",
    "ValidationError",
    "ErrorCategory",
    "classify_exception",
    "describe_exception",
    "sanitize_error_message",
]
