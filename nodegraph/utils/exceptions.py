"""
Exception hierarchy and error handling utilities for nodegraph.

Provides:
- Custom exception classes with error codes
- Error categorization (recoverable, retryable, fatal)
- Safe error message formatting (no token leak across the trust boundary)
"""

from __future__ import annotations

import asyncio
import json
import re
from enum import Enum
from typing import Any


class ErrorCategory(Enum):
    """Error categories for classification."""
    RECOVERABLE = "recoverable"
    RETRYABLE = "retryable"
    FATAL = "fatal"
    VALIDATION = "validation"
    NOT_FOUND = "not_found"
    PERMISSION = "permission"
    TIMEOUT = "timeout"


class NodeGraphError(Exception):
    """Base exception for all nodegraph errors."""

    def __init__(
        self,
        message: str,
        code: str = "UNKNOWN_ERROR",
        category: ErrorCategory = ErrorCategory.FATAL,
        details: dict[str, Any] | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.code = code
        self.category = category
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        return {
            "error": self.code,
            "message": self.message,
            "category": self.category.value,
            "details": self.details,
        }

    def __str__(self) -> str:
        return f"[{self.code}] {self.message}"


class RpcTimeoutError(NodeGraphError):
    """No response arrived before the call deadline."""

    def __init__(self, method: str, timeout_seconds: float):
        super().__init__(
            f"RPC timeout for {method} after {timeout_seconds}s",
            code="RPC_TIMEOUT",
            category=ErrorCategory.TIMEOUT,
            details={"method": method, "timeout_seconds": timeout_seconds},
        )


class RemoteCallError(NodeGraphError):
    """The counterpart answered with ok=false."""

    def __init__(self, method: str, message: str):
        super().__init__(
            message,
            code="REMOTE_ERROR",
            category=ErrorCategory.RECOVERABLE,
            details={"method": method},
        )


class SessionClosedError(NodeGraphError):
    """The session was torn down while the call was outstanding."""

    def __init__(self, reason: str = "session closed"):
        super().__init__(reason, code="SESSION_CLOSED", category=ErrorCategory.FATAL)


class SessionNotReadyError(NodeGraphError):
    """A call was attempted before the handshake completed."""

    def __init__(self, message: str = "session handshake has not completed"):
        super().__init__(message, code="SESSION_NOT_READY", category=ErrorCategory.RETRYABLE)


class HandshakeError(NodeGraphError):
    """Handshake failed or timed out."""

    def __init__(self, plugin_id: str, message: str):
        super().__init__(
            f"Plugin '{plugin_id}' handshake failed: {message}",
            code="HANDSHAKE_FAILED",
            category=ErrorCategory.FATAL,
            details={"plugin_id": plugin_id},
        )


class PermissionDeniedError(NodeGraphError):
    """Plugin lacks a permission required by a host method."""

    def __init__(self, permission: str):
        super().__init__(
            f'Plugin lacks required permission "{permission}"',
            code="PERMISSION_DENIED",
            category=ErrorCategory.PERMISSION,
            details={"permission": permission},
        )


class ValidationError(NodeGraphError):
    """Input validation error."""

    def __init__(self, message: str, field: str | None = None):
        details = {"field": field} if field else {}
        super().__init__(message, code="VALIDATION_ERROR", category=ErrorCategory.VALIDATION, details=details)


_SENSITIVE_PATTERNS = [
    re.compile(r"(api[_-]?key|token|secret|password|auth)[=:]\s*['\"]?([^\s'\"]+)['\"]?", re.IGNORECASE),
    re.compile(r"bearer\s+[a-zA-Z0-9\-._~+/]+=*", re.IGNORECASE),
    re.compile(r"[a-zA-Z0-9]{32,}"),
]


def sanitize_error_message(message: str, replacement: str = "[REDACTED]") -> str:
    """Remove sensitive information from error messages."""
    sanitized = message
    for pattern in _SENSITIVE_PATTERNS:
        sanitized = pattern.sub(replacement, sanitized)
    return sanitized


def classify_exception(exc: BaseException) -> tuple[str, ErrorCategory, bool]:
    """
    Classify an exception and return (error_code, category, should_retry).
    """
    if isinstance(exc, NodeGraphError):
        return exc.code, exc.category, exc.category is ErrorCategory.RETRYABLE

    if isinstance(exc, asyncio.TimeoutError):
        return "TIMEOUT", ErrorCategory.TIMEOUT, True

    if isinstance(exc, LookupError):
        return "NOT_FOUND", ErrorCategory.NOT_FOUND, False

    if isinstance(exc, json.JSONDecodeError):
        return "JSON_PARSE_ERROR", ErrorCategory.VALIDATION, False

    if isinstance(exc, (ValueError, TypeError)):
        return "INVALID_VALUE", ErrorCategory.VALIDATION, False

    if isinstance(exc, ConnectionError):
        return "CONNECTION_ERROR", ErrorCategory.RETRYABLE, True

    return "INTERNAL_ERROR", ErrorCategory.FATAL, False


def describe_exception(exc: BaseException, fallback: str = "Plugin error") -> str:
    """Message suitable for an error frame: the exception text, sanitized."""
    if isinstance(exc, NodeGraphError):
        text = exc.message
    else:
        text = str(exc)
    text = sanitize_error_message(text).strip()
    return text or fallback
