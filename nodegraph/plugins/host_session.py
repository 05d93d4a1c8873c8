"""Host side of one plugin context: handshake, calls into the plugin, host methods."""

from __future__ import annotations

import asyncio
from collections.abc import Callable, Mapping
from typing import Any

from loguru import logger

from nodegraph.config.schema import RuntimeConfig
from nodegraph.plugins.channel import ChannelEndpoint
from nodegraph.plugins.core.contracts import GraphApi
from nodegraph.plugins.core.protocol import Frame, Handshake, HandshakeProbe, SandboxCrash, TelemetryFrame
from nodegraph.plugins.core.types import CallOutcome, Session, SessionStatus, generate_token
from nodegraph.plugins.host_methods import build_default_host_methods, build_host_capabilities
from nodegraph.plugins.manifest import PluginManifest
from nodegraph.plugins.peer import RpcPeer
from nodegraph.plugins.registry import MethodHandler
from nodegraph.utils.exceptions import HandshakeError, SessionClosedError

StatusCallback = Callable[[dict[str, Any]], Any]
TelemetryCallback = Callable[[dict[str, Any]], Any]


def _noop(_: dict[str, Any]) -> None:
    return None


class PluginSession(RpcPeer):
    """Host-side endpoint for one sandboxed plugin.

    Lifecycle: idle -> loading (probe sent) -> ready (handshake accepted);
    error on handshake timeout/invalid handshake/crash; destroyed on teardown.
    """

    log_prefix = "[PluginSession]"
    request_prefix = "rpc"

    def __init__(
        self,
        plugin: PluginManifest,
        endpoint: ChannelEndpoint,
        *,
        config: RuntimeConfig | None = None,
        host_methods: Mapping[str, MethodHandler] | None = None,
        get_graph_api: Callable[[], GraphApi | None] | None = None,
        get_selection_state: Callable[[], dict[str, Any]] | None = None,
        emit_event: Callable[[str, Any], Any] | None = None,
        on_status_change: StatusCallback | None = None,
        on_telemetry: TelemetryCallback | None = None,
    ):
        self.config = config or RuntimeConfig()
        if host_methods is None:
            host_methods = build_default_host_methods(
                plugin.permissions,
                get_graph_api=get_graph_api,
                get_selection_state=get_selection_state,
                emit_event=emit_event,
            )
        super().__init__(endpoint, methods=host_methods, call_timeout=self.config.rpc_timeout)
        self.plugin = plugin
        self.capabilities = build_host_capabilities(self.registry.names(), plugin.permissions)
        self.on_status_change = on_status_change or _noop
        self.on_telemetry = on_telemetry or _noop
        self.status = SessionStatus.IDLE
        self.session: Session | None = None
        self.token = generate_token()
        self._handshake: asyncio.Future[Session] | None = None
        self._handshake_timer: asyncio.TimerHandle | None = None

    @property
    def plugin_id(self) -> str:
        return self.plugin.id

    @property
    def session_ready(self) -> bool:
        return self.status is SessionStatus.READY and self.session is not None

    @property
    def available_methods(self) -> list[str]:
        return list(self.session.methods) if self.session else []

    async def ensure_ready(self) -> Session:
        """Run (or join) the handshake and return the negotiated session."""
        if self.status is SessionStatus.DESTROYED:
            raise SessionClosedError("Plugin runtime destroyed")
        session = self.session
        if self.status is SessionStatus.READY and session is not None:
            return session
        if self._handshake is None:
            loop = asyncio.get_running_loop()
            self._handshake = loop.create_future()
            self._set_status(SessionStatus.LOADING)
            self._handshake_timer = loop.call_later(
                self.config.handshake_timeout, self._fail, "Handshake timed out"
            )
            self._post(HandshakeProbe(capabilities=self.capabilities))
            self._emit_telemetry("info", "handshake-probe")
        return await asyncio.shield(self._handshake)

    async def call(self, method: str, args: Any = None, timeout: float | None = None) -> Any:
        """Call a plugin method. Raises RemoteCallError / RpcTimeoutError / SessionClosedError."""
        await self.ensure_ready()
        return await self._call(method, args, timeout)

    async def call_result(self, method: str, args: Any = None, timeout: float | None = None) -> CallOutcome:
        try:
            await self.ensure_ready()
        except (HandshakeError, SessionClosedError) as exc:
            return CallOutcome.from_exception(exc)
        return await super().call_result(method, args, timeout)

    async def reload(self) -> Session:
        """Drop the current session and negotiate a new one under a fresh token."""
        if self.status is SessionStatus.DESTROYED:
            raise SessionClosedError("Plugin runtime destroyed")
        self._reset("Plugin runtime reloading")
        self.token = generate_token()
        self._set_status(SessionStatus.IDLE)
        return await self.ensure_ready()

    def destroy(self) -> None:
        if self.status is SessionStatus.DESTROYED:
            return
        self._reset("Plugin runtime destroyed")
        self.registry.clear()
        self.endpoint.close()
        self._set_status(SessionStatus.DESTROYED)

    # Frame handling ------------------------------------------------------

    def _handle_message(self, message: Frame) -> None:
        if self.status is SessionStatus.DESTROYED:
            return
        if isinstance(message, Handshake):
            self._handle_handshake(message)
        elif isinstance(message, TelemetryFrame):
            if self._token_matches(message):
                self._emit_telemetry(message.level or "info", "telemetry", message.detail)
        elif isinstance(message, SandboxCrash):
            if self._token_matches(message):
                self._fail("Plugin reported crash", message.detail)
        elif not self._handle_session_frame(message):
            logger.debug("{} ignoring {} from {}", self.log_prefix, message.type, self.plugin_id)

    def _handle_malformed(self, raw: dict[str, Any]) -> None:
        if raw.get("type") == "handshake":
            if self.status is SessionStatus.LOADING and self.token is not None and raw.get("token") == self.token:
                self._fail("Invalid handshake payload", {"frame": "handshake"})
            return
        super()._handle_malformed(raw)

    def _handle_handshake(self, message: Handshake) -> None:
        if self.status is not SessionStatus.LOADING:
            logger.debug("{} ignoring handshake for {} in state {}", self.log_prefix, self.plugin_id, self.status.value)
            return
        if not self._token_matches(message):
            logger.warning("{} dropped handshake with mismatched token from {}", self.log_prefix, self.plugin_id)
            return
        self._cancel_handshake_timer()
        self.session = Session(token=self.token or "", methods=list(message.methods), capabilities=dict(message.capabilities))
        self._set_status(SessionStatus.READY, methods=self.session.methods)
        self._emit_telemetry("info", "handshake-success", {"methods": self.session.methods})
        waiter, self._handshake = self._handshake, None
        if waiter is not None and not waiter.done():
            waiter.set_result(self.session)

    # Internals -----------------------------------------------------------

    def _fail(self, message: str, detail: Any = None) -> None:
        self._cancel_handshake_timer()
        logger.warning("{} plugin {} failed: {}", self.log_prefix, self.plugin_id, message)
        self._set_status(SessionStatus.ERROR, error=message)
        self._emit_telemetry("error", "sandbox-error", detail if detail is not None else message)
        self.session = None
        waiter, self._handshake = self._handshake, None
        if waiter is not None and not waiter.done():
            waiter.set_exception(HandshakeError(self.plugin_id, message))
        self._shutdown(message)

    def _reset(self, reason: str) -> None:
        self._cancel_handshake_timer()
        self.session = None
        waiter, self._handshake = self._handshake, None
        if waiter is not None and not waiter.done():
            waiter.set_exception(SessionClosedError(reason))
        self._shutdown(reason)

    def _cancel_handshake_timer(self) -> None:
        if self._handshake_timer is not None:
            self._handshake_timer.cancel()
            self._handshake_timer = None

    def _set_status(self, status: SessionStatus, **extra: Any) -> None:
        self.status = status
        self._notify(self.on_status_change, {"pluginId": self.plugin_id, "status": status.value, **extra})

    def _emit_telemetry(self, level: str, event: str, detail: Any = None) -> None:
        payload: dict[str, Any] = {"pluginId": self.plugin_id, "level": level, "event": event}
        if detail is not None:
            payload["detail"] = detail
        self._notify(self.on_telemetry, payload)

    def _notify(self, callback: Callable[[dict[str, Any]], Any], payload: dict[str, Any]) -> None:
        try:
            callback(payload)
        except Exception:
            logger.exception("{} callback failed for {}", self.log_prefix, self.plugin_id)
