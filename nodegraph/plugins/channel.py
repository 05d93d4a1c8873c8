"""In-process message channel between two isolated contexts.

Delivery is fire-and-forget and scheduled on the running event loop, so the
order of frames sent in one direction is preserved. Each endpoint checks the
sender origin against its allow-list before the registered handler sees the
frame.
"""

from __future__ import annotations

import asyncio
import inspect
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from typing import Any

from loguru import logger

from nodegraph.plugins.core.protocol import Frame
from nodegraph.plugins.core.serialization import structured_clone, to_wire

ANY_ORIGIN = "*"

ReceiveHandler = Callable[[Any], Any]


@dataclass(slots=True, frozen=True)
class Envelope:
    """Inbound value plus the origin of the context that sent it."""

    origin: str
    data: Any


class ChannelEndpoint:
    """One side of a channel. Use :func:`create_channel_pair` to link two."""

    def __init__(self, origin: str, allowed_origins: Iterable[str] = (), *, name: str | None = None):
        self.origin = origin
        self.name = name or origin
        self.allowed_origins: frozenset[str] = frozenset(o for o in allowed_origins if o)
        self.peer: ChannelEndpoint | None = None
        self._handler: ReceiveHandler | None = None
        self._tasks: set[asyncio.Task[Any]] = set()
        self.closed = False

    def on_receive(self, handler: ReceiveHandler | None) -> None:
        """Register the single inbound handler (replaces any previous one)."""
        self._handler = handler

    def send(self, message: Frame | dict[str, Any]) -> None:
        """Best-effort send to the peer. Never raises."""
        peer = self.peer
        if self.closed or peer is None or peer.closed:
            logger.debug("[{}] dropping frame: peer unavailable", self.name)
            return
        try:
            data = structured_clone(to_wire(message))
        except (TypeError, ValueError) as exc:
            logger.warning("[{}] dropping non-serializable frame: {}", self.name, exc)
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.warning("[{}] dropping frame: no running event loop", self.name)
            return
        loop.call_soon(peer._deliver, Envelope(origin=self.origin, data=data))

    def receive(self, origin: str, data: Any) -> None:
        """Feed a raw inbound value (transport adapters call this)."""
        self._deliver(Envelope(origin=origin, data=data))

    def is_allowed(self, origin: str) -> bool:
        return ANY_ORIGIN in self.allowed_origins or origin in self.allowed_origins

    def close(self) -> None:
        self.closed = True
        self._handler = None
        for task in list(self._tasks):
            task.cancel()
        self._tasks.clear()

    def _deliver(self, envelope: Envelope) -> None:
        if self.closed:
            return
        if not self.is_allowed(envelope.origin):
            logger.warning("[{}] dropped frame from disallowed origin {!r}", self.name, envelope.origin)
            return
        handler = self._handler
        if handler is None:
            return
        try:
            outcome = handler(envelope.data)
        except Exception:
            logger.exception("[{}] receive handler failed", self.name)
            return
        if inspect.isawaitable(outcome):
            task = asyncio.ensure_future(outcome)
            self._tasks.add(task)
            task.add_done_callback(self._on_task_done)

    def _on_task_done(self, task: asyncio.Task[Any]) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("[{}] async receive handler failed: {}", self.name, exc)


def create_channel_pair(
    host_origin: str = "host://local",
    plugin_origin: str = "plugin://sandbox",
    *,
    host_allowed: Iterable[str] | None = None,
    plugin_allowed: Iterable[str] | None = None,
) -> tuple[ChannelEndpoint, ChannelEndpoint]:
    """Create linked (host, plugin) endpoints.

    Each side only admits the other side's origin unless an explicit allow-list is given.
    """
    host = ChannelEndpoint(
        host_origin,
        host_allowed if host_allowed else (plugin_origin,),
        name="host",
    )
    plugin = ChannelEndpoint(
        plugin_origin,
        plugin_allowed if plugin_allowed else (host_origin,),
        name="plugin",
    )
    host.peer = plugin
    plugin.peer = host
    return host, plugin
