"""Plugin runtime: the untrusted side of a host/plugin session."""

from __future__ import annotations

from collections.abc import Callable, Mapping
from typing import Any

from loguru import logger

from nodegraph.plugins.channel import ChannelEndpoint
from nodegraph.plugins.core.protocol import Frame, Handshake, HandshakeProbe, TelemetryFrame
from nodegraph.plugins.core.types import generate_token
from nodegraph.plugins.peer import RpcPeer
from nodegraph.plugins.registry import MethodHandler

DEFAULT_HOST_CALL_TIMEOUT = 5.0


class PluginRuntime(RpcPeer):
    """Registers plugin methods, answers host calls and calls back into the host.

    RPC requests are ignored until a ``handshake:probe`` has been answered.
    """

    log_prefix = "[PluginRuntime]"
    request_prefix = "host"

    def __init__(
        self,
        endpoint: ChannelEndpoint,
        *,
        methods: Mapping[str, MethodHandler] | None = None,
        capabilities: dict[str, Any] | None = None,
        on_handshake: Callable[[HandshakeProbe], Any] | None = None,
        call_timeout: float = DEFAULT_HOST_CALL_TIMEOUT,
    ):
        super().__init__(endpoint, methods=methods, call_timeout=call_timeout)
        self.capabilities = dict(capabilities or {})
        self.host_capabilities: dict[str, Any] = {}
        self.on_handshake = on_handshake
        self.destroyed = False

    @property
    def session_ready(self) -> bool:
        return self.token is not None and not self.destroyed

    @property
    def session_token(self) -> str | None:
        return self.token

    async def call_host(self, method: str, args: Any = None, timeout: float | None = None) -> Any:
        """Call a host method; raises on remote error, timeout or teardown."""
        return await self._call(method, args, timeout)

    def emit_telemetry(self, detail: Any, level: str = "info") -> None:
        if not self.session_ready:
            return
        self._post(TelemetryFrame(level=level, detail=detail))

    async def emit_event(self, event: str, payload: Any = None) -> Any:
        """Ask the host to publish an event (``events:emit`` host method)."""
        return await self.call_host("events:emit", {"event": event, "payload": payload})

    def destroy(self) -> None:
        if self.destroyed:
            return
        self.destroyed = True
        self._shutdown("Plugin runtime destroyed")
        self.registry.clear()
        self.endpoint.close()

    def _handle_message(self, message: Frame) -> None:
        if self.destroyed:
            return
        if isinstance(message, HandshakeProbe):
            self._handle_probe(message)
            return
        if not self._handle_session_frame(message):
            logger.debug("{} ignoring {}", self.log_prefix, message.type)

    def _handle_probe(self, probe: HandshakeProbe) -> None:
        new_token = probe.token or generate_token()
        if self.token is not None and self.token != new_token:
            # Host re-negotiated: calls issued under the old token can no longer be answered.
            self._shutdown("Session re-negotiated")
        self.token = new_token
        self.host_capabilities = dict(probe.capabilities)
        if self.on_handshake is not None:
            try:
                self.on_handshake(probe)
            except Exception:
                logger.exception("{} on_handshake callback failed", self.log_prefix)
        self._post(
            Handshake(
                methods=self.registry.names(),
                capabilities=self.capabilities,
            )
        )
