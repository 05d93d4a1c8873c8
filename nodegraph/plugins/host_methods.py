"""Default host methods exposed to plugins, gated by manifest permissions."""

from __future__ import annotations

from collections.abc import Callable, Iterable
from typing import Any

from nodegraph.plugins.core.contracts import GraphApi
from nodegraph.plugins.core.serialization import structured_clone
from nodegraph.plugins.registry import MethodHandler
from nodegraph.utils.exceptions import NodeGraphError, PermissionDeniedError, ValidationError
from nodegraph.utils.helpers import safe_dict

HOST_CAPABILITIES_VERSION = 1

PERM_GRAPH_READ = "graph.read"
PERM_GRAPH_WRITE = "graph.write"
PERM_SELECTION_READ = "selection.read"
PERM_EVENTS_EMIT = "events.emit"


def _empty_selection() -> dict[str, list[str]]:
    return {"nodeIds": [], "edgeIds": [], "groupIds": []}


def build_default_host_methods(
    permissions: Iterable[str],
    *,
    get_graph_api: Callable[[], GraphApi | None] | None = None,
    get_selection_state: Callable[[], dict[str, Any]] | None = None,
    emit_event: Callable[[str, Any], Any] | None = None,
) -> dict[str, MethodHandler]:
    """Build the whitelisted host method table for one plugin.

    With ``graph.write`` granted, ``graph:updateNode`` / ``graph:updateEdge`` call
    straight into ``GraphApi.update_*``. The editor must implement those by
    turning the update into an intent for ``ExecutionSpine``, so the spine's
    commit step stays the only writer of the document.
    """
    granted = set(permissions)

    def require(permission: str) -> None:
        if permission not in granted:
            raise PermissionDeniedError(permission)

    def graph_api() -> GraphApi:
        api = get_graph_api() if get_graph_api else None
        if api is None:
            raise NodeGraphError("Graph API surface is not available yet", code="GRAPH_UNAVAILABLE")
        return api

    def unwrap(result: Any, fallback: str) -> Any:
        row = safe_dict(result)
        if not row.get("success"):
            raise NodeGraphError(str(row.get("error") or fallback), code="GRAPH_ERROR")
        return structured_clone(row.get("data"))

    def require_id(args: Any, method: str) -> str:
        item_id = safe_dict(args).get("id")
        if not item_id or not isinstance(item_id, str):
            raise ValidationError(f"{method} requires id", field="id")
        return item_id

    def get_nodes(args: Any) -> Any:
        require(PERM_GRAPH_READ)
        return unwrap(graph_api().read_node(), "Failed to read nodes") or []

    def get_node(args: Any) -> Any:
        require(PERM_GRAPH_READ)
        node_id = require_id(args, "graph:getNode")
        return unwrap(graph_api().read_node(node_id), f"Failed to read node {node_id}")

    def get_edges(args: Any) -> Any:
        require(PERM_GRAPH_READ)
        return unwrap(graph_api().read_edge(), "Failed to read edges") or []

    def get_edge(args: Any) -> Any:
        require(PERM_GRAPH_READ)
        edge_id = require_id(args, "graph:getEdge")
        return unwrap(graph_api().read_edge(edge_id), f"Failed to read edge {edge_id}")

    def get_selection(args: Any) -> Any:
        require(PERM_SELECTION_READ)
        state = get_selection_state() if get_selection_state else None
        return structured_clone(state or _empty_selection())

    def emit(args: Any) -> bool:
        require(PERM_EVENTS_EMIT)
        row = safe_dict(args)
        event = row.get("event")
        if not event or not isinstance(event, str):
            raise ValidationError("events:emit requires an event name", field="event")
        if emit_event is not None:
            emit_event(event, row.get("payload"))
        return True

    methods: dict[str, MethodHandler] = {
        "graph:getNodes": get_nodes,
        "graph:getNode": get_node,
        "graph:getEdges": get_edges,
        "graph:getEdge": get_edge,
        "selection:get": get_selection,
        "events:emit": emit,
    }

    if PERM_GRAPH_WRITE in granted:
        def update_node(args: Any) -> Any:
            node_id = require_id(args, "graph:updateNode")
            updates = safe_dict(safe_dict(args).get("updates"))
            return unwrap(graph_api().update_node(node_id, updates), f"Failed to update node {node_id}")

        def update_edge(args: Any) -> Any:
            edge_id = require_id(args, "graph:updateEdge")
            updates = safe_dict(safe_dict(args).get("updates"))
            return unwrap(graph_api().update_edge(edge_id, updates), f"Failed to update edge {edge_id}")

        methods["graph:updateNode"] = update_node
        methods["graph:updateEdge"] = update_edge

    return methods


def build_host_capabilities(host_methods: Iterable[str], permissions: Iterable[str]) -> dict[str, Any]:
    """Capabilities advertised to the plugin in the handshake probe."""
    return {
        "version": HOST_CAPABILITIES_VERSION,
        "hostMethods": list(host_methods),
        "permissions": list(permissions),
    }
