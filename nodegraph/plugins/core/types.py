"""Types for host/plugin session bookkeeping."""

from __future__ import annotations

import secrets
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from nodegraph.utils.exceptions import (
    NodeGraphError,
    RpcTimeoutError,
    SessionClosedError,
    SessionNotReadyError,
    ValidationError,
)


def generate_token() -> str:
    """Unguessable session token."""
    return secrets.token_urlsafe(24)


class SessionStatus(str, Enum):
    """Host-side lifecycle of one plugin context."""

    IDLE = "idle"
    LOADING = "loading"
    READY = "ready"
    ERROR = "error"
    DESTROYED = "destroyed"


class CallErrorKind(str, Enum):
    OK = "ok"
    REMOTE = "remote"
    TIMEOUT = "timeout"
    TEARDOWN = "teardown"
    NOT_READY = "not_ready"
    INVALID = "invalid"


@dataclass(slots=True)
class Session:
    """Authenticated pairing created by a successful handshake."""

    token: str
    methods: list[str] = field(default_factory=list)
    capabilities: dict[str, Any] = field(default_factory=dict)

    def exposes(self, method: str) -> bool:
        return method in self.methods


@dataclass(slots=True)
class CallOutcome:
    """Result of an RPC that never raises: either a value or a typed error."""

    kind: CallErrorKind
    value: Any = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.kind is CallErrorKind.OK

    @classmethod
    def success(cls, value: Any) -> CallOutcome:
        return cls(kind=CallErrorKind.OK, value=value)

    @classmethod
    def from_exception(cls, exc: BaseException) -> CallOutcome:
        if isinstance(exc, RpcTimeoutError):
            kind = CallErrorKind.TIMEOUT
        elif isinstance(exc, SessionClosedError):
            kind = CallErrorKind.TEARDOWN
        elif isinstance(exc, SessionNotReadyError):
            kind = CallErrorKind.NOT_READY
        elif isinstance(exc, ValidationError):
            kind = CallErrorKind.INVALID
        else:
            kind = CallErrorKind.REMOTE
        message = exc.message if isinstance(exc, NodeGraphError) else str(exc)
        return cls(kind=kind, error=message)

