"""Renderer sub-protocol for presentation-only plugin contexts.

The renderer side receives ``node:init`` / ``node:update`` payloads, re-runs
its render callback and reports readiness, size, errors and UI events. There is
no method registry; the host side (:class:`RendererHost`) only pushes data.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
from typing import Any

from loguru import logger

from nodegraph.plugins.channel import ChannelEndpoint
from nodegraph.plugins.core.protocol import (
    Frame,
    NodeInit,
    NodeUpdate,
    RendererError,
    RendererEvent,
    RendererHeight,
    RendererHello,
    RendererReady,
    parse_message,
)
from nodegraph.plugins.core.serialization import with_token
from nodegraph.plugins.core.types import generate_token
from nodegraph.utils.exceptions import describe_exception
from nodegraph.utils.helpers import maybe_await


class RendererState(str, Enum):
    UNINITIALIZED = "uninitialized"
    READY = "ready"
    ERROR = "error"


@dataclass(slots=True)
class RenderControls:
    """Helpers handed to the render callback."""

    update_height: Callable[[], None]
    emit_event: Callable[[str, Any], None]


RenderCallback = Callable[[Any, RenderControls], Any]


class NodeRenderer:
    """Renderer side: render on every accepted payload, keep going after errors."""

    log_prefix = "[NodeRenderer]"

    def __init__(
        self,
        endpoint: ChannelEndpoint,
        render: RenderCallback,
        *,
        on_ready: Callable[[Any], Any] | None = None,
        on_error: Callable[[str], Any] | None = None,
        auto_height: bool = True,
        measure: Callable[[], float | None] | None = None,
    ):
        if not callable(render):
            raise TypeError("render callback is required")
        self.endpoint = endpoint
        self.render = render
        self.on_ready = on_ready
        self.on_error = on_error
        self.auto_height = auto_height
        self.measure = measure
        self.state = RendererState.UNINITIALIZED
        self.token: str | None = None
        self.latest_payload: Any = None
        self.last_error: str | None = None
        self.render_count = 0
        self._lock = asyncio.Lock()
        self._controls = RenderControls(update_height=self.update_height, emit_event=self.emit_event)

    def start(self) -> None:
        """Attach to the channel and announce the renderer."""
        self.endpoint.on_receive(self._on_raw)
        self.endpoint.send(RendererHello())

    def destroy(self) -> None:
        self.endpoint.on_receive(None)
        self.endpoint.close()

    def update_height(self) -> None:
        """Measure and report the rendered height. Best effort."""
        if not self.auto_height or self.measure is None:
            return
        try:
            height = self.measure()
        except Exception as exc:
            logger.debug("{} measure failed: {}", self.log_prefix, exc)
            return
        if isinstance(height, (int, float)) and not isinstance(height, bool) and height > 0:
            self._post(RendererHeight(height=height))

    def emit_event(self, event: str, detail: Any = None) -> None:
        if not event:
            return
        self._post(RendererEvent(event=event, detail=detail))

    def _post(self, frame: Frame) -> None:
        if self.token is None:
            return
        self.endpoint.send(with_token(frame, self.token))

    async def _on_raw(self, raw: Any) -> None:
        message = parse_message(raw)
        if message is None:
            return
        async with self._lock:
            if isinstance(message, NodeInit):
                await self._handle_init(message)
            elif isinstance(message, NodeUpdate):
                if self.token is None or message.token != self.token:
                    logger.debug("{} ignoring update with unknown token", self.log_prefix)
                    return
                await self._handle_payload(message.payload)

    async def _handle_init(self, message: NodeInit) -> None:
        if self.token is not None and message.token != self.token:
            logger.warning("{} ignoring node:init with a different token", self.log_prefix)
            return
        self.token = message.token
        await self._handle_payload(message.payload)
        self._post(RendererReady())
        if self.on_ready is not None:
            try:
                await maybe_await(self.on_ready(self.latest_payload))
            except Exception:
                logger.exception("{} on_ready callback failed", self.log_prefix)

    async def _handle_payload(self, payload: Any) -> None:
        self.latest_payload = payload
        try:
            await maybe_await(self.render(payload, self._controls))
        except Exception as exc:
            self._report_error(exc)
            return
        self.render_count += 1
        self.state = RendererState.READY
        self.last_error = None
        self.update_height()

    def _report_error(self, exc: BaseException) -> None:
        message = describe_exception(exc, fallback="Renderer error")
        self.state = RendererState.ERROR
        self.last_error = message
        self._post(RendererError(error=message))
        if self.on_error is not None:
            try:
                self.on_error(message)
            except Exception:
                logger.exception("{} on_error callback failed", self.log_prefix)


class RendererHost:
    """Host side of a renderer: owns the token and pushes payloads."""

    log_prefix = "[RendererHost]"

    def __init__(
        self,
        endpoint: ChannelEndpoint,
        *,
        payload: Any = None,
        on_ready: Callable[[], Any] | None = None,
        on_height: Callable[[float], Any] | None = None,
        on_error: Callable[[str], Any] | None = None,
        on_event: Callable[[str, Any], Any] | None = None,
    ):
        self.endpoint = endpoint
        self.token = generate_token()
        self.latest_payload: Any = payload if payload is not None else {}
        self.ready = False
        self.height: float | None = None
        self.errors: list[str] = []
        self.on_ready = on_ready
        self.on_height = on_height
        self.on_error = on_error
        self.on_event = on_event
        endpoint.on_receive(self._on_raw)

    def init(self, payload: Any = None) -> None:
        if payload is not None:
            self.latest_payload = payload
        self._post(NodeInit(token=self.token, payload=self.latest_payload))

    def update(self, payload: Any) -> None:
        self.latest_payload = payload
        self._post(NodeUpdate(token=self.token, payload=payload))

    def reset(self) -> None:
        """Rotate the token; the next init starts a fresh renderer session."""
        self.token = generate_token()
        self.ready = False
        self.height = None

    def destroy(self) -> None:
        self.endpoint.on_receive(None)
        self.endpoint.close()

    def _post(self, frame: Frame) -> None:
        self.endpoint.send(with_token(frame, self.token))

    def _on_raw(self, raw: Any) -> None:
        message = parse_message(raw)
        if message is None:
            return
        if isinstance(message, RendererHello):
            # Renderer (re)loaded before it knows the token: answer with init.
            self.init()
            return
        if getattr(message, "token", None) != self.token:
            logger.debug("{} dropping {} with mismatched token", self.log_prefix, message.type)
            return
        if isinstance(message, RendererReady):
            self.ready = True
            self._notify(self.on_ready)
            self.update(self.latest_payload)
        elif isinstance(message, RendererHeight):
            self.height = message.height
            self._notify(self.on_height, message.height)
        elif isinstance(message, RendererError):
            logger.warning("{} renderer reported error: {}", self.log_prefix, message.error)
            self.errors.append(message.error)
            self._notify(self.on_error, message.error)
        elif isinstance(message, RendererEvent):
            self._notify(self.on_event, message.event, message.detail)

    def _notify(self, callback: Callable[..., Any] | None, *args: Any) -> None:
        if callback is None:
            return
        try:
            callback(*args)
        except Exception:
            logger.exception("{} callback failed", self.log_prefix)
