"""Pytest hooks and fixtures."""

import asyncio

import pytest

from nodegraph.plugins.channel import create_channel_pair


def pytest_configure(config):
    """Register custom markers (also in pyproject.toml)."""
    config.addinivalue_line(
        "markers",
        "slow: exercises real timers (handshake / rpc deadlines)",
    )


async def flush(rounds: int = 20) -> None:
    """Let queued channel deliveries and spawned handler tasks run."""
    for _ in range(rounds):
        await asyncio.sleep(0)


@pytest.fixture
def channel_pair():
    host, plugin = create_channel_pair()
    yield host, plugin
    host.close()
    plugin.close()


@pytest.fixture
def manifest():
    return {
        "id": "demo",
        "name": "Demo",
        "permissions": ["graph.read", "selection.read", "events.emit"],
    }


class FakeGraphApi:
    """In-memory graph surface returning {success, data, error} rows."""

    def __init__(self, nodes=None, edges=None):
        self.nodes = dict(nodes or {})
        self.edges = dict(edges or {})

    def read_node(self, node_id=None):
        if node_id is None:
            return {"success": True, "data": list(self.nodes.values())}
        if node_id not in self.nodes:
            return {"success": False, "error": f"node {node_id} not found"}
        return {"success": True, "data": self.nodes[node_id]}

    def read_edge(self, edge_id=None):
        if edge_id is None:
            return {"success": True, "data": list(self.edges.values())}
        if edge_id not in self.edges:
            return {"success": False, "error": f"edge {edge_id} not found"}
        return {"success": True, "data": self.edges[edge_id]}

    def update_node(self, node_id, updates):
        if node_id not in self.nodes:
            return {"success": False, "error": f"node {node_id} not found"}
        self.nodes[node_id] = {**self.nodes[node_id], **updates}
        return {"success": True, "data": self.nodes[node_id]}

    def update_edge(self, edge_id, updates):
        if edge_id not in self.edges:
            return {"success": False, "error": f"edge {edge_id} not found"}
        self.edges[edge_id] = {**self.edges[edge_id], **updates}
        return {"success": True, "data": self.edges[edge_id]}


@pytest.fixture
def graph_api():
    return FakeGraphApi(
        nodes={"n1": {"id": "n1", "label": "Start"}, "n2": {"id": "n2", "label": "End"}},
        edges={"e1": {"id": "e1", "source": "n1", "target": "n2"}},
    )
