"""Host RPC gateway: owns the session map for every loaded plugin context."""

from __future__ import annotations

from collections.abc import Callable, Mapping
from typing import Any

from loguru import logger

from nodegraph.config.schema import RuntimeConfig
from nodegraph.plugins.channel import ChannelEndpoint
from nodegraph.plugins.core.contracts import GraphApi
from nodegraph.plugins.core.types import CallOutcome, CallErrorKind, Session
from nodegraph.plugins.host_session import PluginSession, StatusCallback, TelemetryCallback
from nodegraph.plugins.manifest import PluginManifest
from nodegraph.plugins.registry import MethodHandler
from nodegraph.utils.exceptions import NodeGraphError


class HostGateway:
    """Creates, tracks and tears down one PluginSession per plugin context."""

    def __init__(
        self,
        config: RuntimeConfig | None = None,
        *,
        get_graph_api: Callable[[], GraphApi | None] | None = None,
        get_selection_state: Callable[[], dict[str, Any]] | None = None,
        emit_event: Callable[[str, Any], Any] | None = None,
        on_status_change: StatusCallback | None = None,
        on_telemetry: TelemetryCallback | None = None,
    ):
        self.config = config or RuntimeConfig()
        self.get_graph_api = get_graph_api
        self.get_selection_state = get_selection_state
        self.emit_event = emit_event
        self.on_status_change = on_status_change
        self.on_telemetry = on_telemetry
        self.sessions: dict[str, PluginSession] = {}

    def attach(
        self,
        plugin: PluginManifest | Mapping[str, Any],
        endpoint: ChannelEndpoint,
        *,
        host_methods: Mapping[str, MethodHandler] | None = None,
    ) -> PluginSession:
        """Register a plugin context without waiting for the handshake."""
        manifest = plugin if isinstance(plugin, PluginManifest) else PluginManifest.model_validate(plugin)
        existing = self.sessions.get(manifest.id)
        if existing is not None:
            logger.info("Replacing plugin session {}", manifest.id)
            existing.destroy()
        session = PluginSession(
            manifest,
            endpoint,
            config=self.config,
            host_methods=host_methods,
            get_graph_api=self.get_graph_api,
            get_selection_state=self.get_selection_state,
            emit_event=self.emit_event,
            on_status_change=self.on_status_change,
            on_telemetry=self.on_telemetry,
        )
        self.sessions[manifest.id] = session
        return session

    async def connect(
        self,
        plugin: PluginManifest | Mapping[str, Any],
        endpoint: ChannelEndpoint,
        *,
        host_methods: Mapping[str, MethodHandler] | None = None,
    ) -> Session:
        """Attach a plugin context and complete its handshake."""
        session = self.attach(plugin, endpoint, host_methods=host_methods)
        try:
            return await session.ensure_ready()
        except NodeGraphError:
            self.teardown(session.plugin_id)
            raise

    def get(self, plugin_id: str) -> PluginSession | None:
        return self.sessions.get(plugin_id)

    async def call(self, plugin_id: str, method: str, args: Any = None, timeout: float | None = None) -> Any:
        session = self.sessions.get(plugin_id)
        if session is None:
            raise NodeGraphError(f"Plugin not loaded: {plugin_id}", code="PLUGIN_NOT_FOUND")
        return await session.call(method, args, timeout)

    async def call_result(
        self, plugin_id: str, method: str, args: Any = None, timeout: float | None = None
    ) -> CallOutcome:
        session = self.sessions.get(plugin_id)
        if session is None:
            return CallOutcome(kind=CallErrorKind.NOT_READY, error=f"Plugin not loaded: {plugin_id}")
        return await session.call_result(method, args, timeout)

    async def reload(self, plugin_id: str) -> Session:
        session = self.sessions.get(plugin_id)
        if session is None:
            raise NodeGraphError(f"Plugin not loaded: {plugin_id}", code="PLUGIN_NOT_FOUND")
        return await session.reload()

    def teardown(self, plugin_id: str) -> bool:
        session = self.sessions.pop(plugin_id, None)
        if session is None:
            return False
        session.destroy()
        return True

    def teardown_all(self) -> int:
        plugin_ids = list(self.sessions)
        for plugin_id in plugin_ids:
            self.teardown(plugin_id)
        return len(plugin_ids)

    def status(self) -> list[dict[str, Any]]:
        """Snapshot of every session for status views."""
        return [
            {
                "pluginId": plugin_id,
                "status": session.status.value,
                "methods": session.available_methods,
                "pending": len(session.pending),
            }
            for plugin_id, session in self.sessions.items()
        ]
