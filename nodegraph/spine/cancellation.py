"""Cooperative cancellation tokens threaded through intent execution."""

from __future__ import annotations

import uuid


class CancellationToken:
    """Shared flag checked at fixed checkpoints; cancelling never interrupts running code."""

    __slots__ = ("id", "_canceled", "reason")

    def __init__(self, token_id: str | None = None):
        self.id = token_id or uuid.uuid4().hex[:12]
        self._canceled = False
        self.reason: str | None = None

    @property
    def canceled(self) -> bool:
        return self._canceled

    def cancel(self, reason: str | None = None) -> None:
        if self._canceled:
            return
        self._canceled = True
        self.reason = reason

    def __repr__(self) -> str:
        return f"CancellationToken(id={self.id!r}, canceled={self._canceled})"
