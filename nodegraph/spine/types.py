"""Data types for the intent-commit pipeline."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from types import MappingProxyType
from typing import Any, Mapping

from nodegraph.spine.cancellation import CancellationToken

Delta = Any


class ExecutionMode(str, Enum):
    """Decided once per intent before any listener runs."""

    DRAFT = "draft"
    COMMITTING = "committing"


class SpineStatus(str, Enum):
    CANCELED = "canceled"
    DRAFT = "draft"
    BLOCKED = "blocked"
    COMMITTED = "committed"


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass(frozen=True, slots=True)
class Intent:
    """Immutable description of a requested document change."""

    kind: str
    payload: Mapping[str, Any] = field(default_factory=dict)
    token: CancellationToken = field(default_factory=CancellationToken, compare=False)
    id: str = field(default_factory=lambda: uuid.uuid4().hex)
    timestamp: str = field(default_factory=_now_iso)

    def __post_init__(self) -> None:
        object.__setattr__(self, "payload", MappingProxyType(dict(self.payload)))

    def to_wire(self) -> dict[str, Any]:
        """Plain structure for sending the intent to a plugin."""
        return {
            "id": self.id,
            "kind": self.kind,
            "payload": dict(self.payload),
            "timestamp": self.timestamp,
        }


@dataclass(slots=True)
class ValidationResult:
    ok: bool
    errors: list[Any] = field(default_factory=list)

    @classmethod
    def coerce(cls, value: Any) -> ValidationResult:
        """Accept a ValidationResult, a ``{ok, errors}`` mapping, a bool, or None (ok)."""
        if value is None:
            return cls(ok=True)
        if isinstance(value, cls):
            return value
        if isinstance(value, bool):
            return cls(ok=value)
        if isinstance(value, Mapping):
            if value.get("ok") is False:
                errors = value.get("errors")
                return cls(ok=False, errors=list(errors) if isinstance(errors, (list, tuple)) else [])
            return cls(ok=True)
        ok = getattr(value, "ok", True)
        if ok is False:
            errors = getattr(value, "errors", None)
            return cls(ok=False, errors=list(errors) if isinstance(errors, (list, tuple)) else [])
        return cls(ok=True)


@dataclass(slots=True)
class SpineResult:
    """Outcome reported to the caller of the spine."""

    status: SpineStatus
    intent_id: str
    deltas: list[Delta] = field(default_factory=list)
    errors: list[Any] = field(default_factory=list)
