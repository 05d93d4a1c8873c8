"""Runtime contracts for collaborators supplied by the graph editor."""

from __future__ import annotations

from typing import Any, Protocol, runtime_checkable


@runtime_checkable
class GraphApi(Protocol):
    """Graph CRUD surface exposed (through host methods) to plugins.

    Each call returns ``{"success": bool, "data": ..., "error": str | None}``.
    """

    def read_node(self, node_id: str | None = None) -> dict[str, Any]: ...
    def read_edge(self, edge_id: str | None = None) -> dict[str, Any]: ...
    def update_node(self, node_id: str, updates: dict[str, Any]) -> dict[str, Any]: ...
    def update_edge(self, edge_id: str, updates: dict[str, Any]) -> dict[str, Any]: ...
