"""Serialization helpers for frames crossing the channel."""

from __future__ import annotations

import json
from typing import Any

from .protocol import Frame


def to_wire(message: Frame | dict[str, Any]) -> dict[str, Any]:
    """Frame or plain dict -> plain dict."""
    if isinstance(message, Frame):
        return message.to_wire()
    return dict(message)


def structured_clone(value: Any) -> Any:
    """Deep copy through JSON so no mutable reference crosses the boundary.

    Raises TypeError/ValueError for values that are not JSON-serializable.
    """
    return json.loads(json.dumps(value, ensure_ascii=False, allow_nan=False))


def with_token(message: Frame | dict[str, Any], token: str | None) -> dict[str, Any]:
    """Wire dict with the session token stamped in."""
    payload = to_wire(message)
    payload["token"] = token
    return payload
