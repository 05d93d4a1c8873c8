"""Helpers for turning user/system actions into intents."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from nodegraph.spine.cancellation import CancellationToken
from nodegraph.spine.types import Intent


def build_intent(trigger: str, *, token: CancellationToken | None = None, **metadata: Any) -> Intent:
    """Build an intent whose payload carries the trigger and a timestamp."""
    if not trigger:
        raise ValueError("intent trigger is required")
    timestamp = metadata.pop("timestamp", None) or datetime.now(timezone.utc).isoformat()
    payload = {"trigger": trigger, "timestamp": timestamp, **metadata}
    return Intent(kind=trigger, payload=payload, token=token or CancellationToken(), timestamp=timestamp)
