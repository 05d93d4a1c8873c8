import asyncio

import pytest

from conftest import flush
from nodegraph.config.schema import RuntimeConfig
from nodegraph.plugins.core.contracts import GraphApi
from nodegraph.plugins.core.protocol import RpcRequest, SandboxCrash
from nodegraph.plugins.core.serialization import with_token
from nodegraph.plugins.core.types import CallErrorKind, SessionStatus
from nodegraph.plugins.gateway import HostGateway
from nodegraph.plugins.host_session import PluginSession
from nodegraph.plugins.manifest import PluginManifest
from nodegraph.plugins.peer import RpcPeer
from nodegraph.plugins.runtime import PluginRuntime
from nodegraph.utils.exceptions import (
    HandshakeError,
    NodeGraphError,
    RemoteCallError,
    RpcTimeoutError,
    SessionClosedError,
    SessionNotReadyError,
)


async def _connect(channel_pair, methods=None, *, permissions=None, **session_kwargs):
    host_end, plugin_end = channel_pair
    runtime = PluginRuntime(plugin_end, methods=methods)
    plugin = PluginManifest(id="demo", permissions=permissions or ["graph.read", "events.emit"])
    session = PluginSession(plugin, host_end, **session_kwargs)
    await session.ensure_ready()
    return session, runtime


@pytest.mark.asyncio
async def test_handshake_negotiates_methods_and_token(channel_pair):
    statuses = []
    session, runtime = await _connect(
        channel_pair,
        {"ping": lambda args: "pong"},
        on_status_change=lambda payload: statuses.append(payload["status"]),
    )
    assert session.status is SessionStatus.READY
    assert session.available_methods == ["ping"]
    assert runtime.session_token == session.token
    assert statuses == ["loading", "ready"]
    assert "graph:getNode" in runtime.host_capabilities["hostMethods"]


@pytest.mark.asyncio
async def test_unknown_method_after_handshake(channel_pair):
    session, _ = await _connect(channel_pair, {"ping": lambda args: "pong"})
    assert await session.call("ping") == "pong"
    with pytest.raises(RemoteCallError) as exc_info:
        await session.call("pong")
    assert exc_info.value.message == "Unknown method: pong"


@pytest.mark.asyncio
async def test_round_trip_preserves_structure(channel_pair):
    session, _ = await _connect(channel_pair, {"echo": lambda args: args})
    payload = {"nodes": [{"id": "n1", "pos": [1.5, 2]}], "flag": True, "none": None}
    assert await session.call("echo", payload) == payload


@pytest.mark.asyncio
@pytest.mark.parametrize("payload", [None, 0, "", [], False, [None], {}, "text", {"a": None}])
async def test_echo_returns_payload_unchanged(channel_pair, payload):
    session, _ = await _connect(channel_pair, {"echo": lambda args: args})
    result = await session.call("echo", payload)
    assert result == payload
    assert type(result) is type(payload)


@pytest.mark.asyncio
async def test_concurrent_calls_are_correlated(channel_pair):
    async def _delayed(args):
        await asyncio.sleep(args["delay"])
        return args["n"]

    session, _ = await _connect(channel_pair, {"delayed": _delayed})
    results = await asyncio.gather(
        session.call("delayed", {"n": 1, "delay": 0.03}),
        session.call("delayed", {"n": 2, "delay": 0.0}),
        session.call("delayed", {"n": 3, "delay": 0.01}),
    )
    assert results == [1, 2, 3]
    assert len(session.pending) == 0


@pytest.mark.asyncio
@pytest.mark.slow
async def test_call_timeout_and_late_response_is_ignored(channel_pair):
    async def _slow(args):
        await asyncio.sleep(0.1)
        return "late"

    session, _ = await _connect(channel_pair, {"slow": _slow, "ping": lambda args: "pong"})
    loop = asyncio.get_running_loop()
    started = loop.time()
    with pytest.raises(RpcTimeoutError):
        await session.call("slow", {}, timeout=0.05)
    elapsed = loop.time() - started
    assert 0.04 <= elapsed < 0.5
    await asyncio.sleep(0.1)
    await flush()
    assert len(session.pending) == 0
    assert await session.call("ping") == "pong"


@pytest.mark.asyncio
async def test_mismatched_token_is_never_dispatched(channel_pair):
    host_end, _ = channel_pair
    calls = []
    session, runtime = await _connect(channel_pair, {"count": lambda args: calls.append(args)})
    host_end.send(with_token(RpcRequest(request_id="forged", method="count"), "wrong-token"))
    host_end.send(RpcRequest(request_id="untokened", method="count").to_wire())
    await flush()
    assert calls == []
    await session.call("count", {"n": 1})
    assert calls == [{"n": 1}]


@pytest.mark.asyncio
async def test_requests_before_handshake_are_dropped(channel_pair):
    host_end, plugin_end = channel_pair
    calls = []
    runtime = PluginRuntime(plugin_end, methods={"count": lambda args: calls.append(args)})
    host_end.send(with_token(RpcRequest(request_id="early", method="count"), "any"))
    await flush()
    assert calls == []
    with pytest.raises(SessionNotReadyError):
        await runtime.call_host("graph:getNodes")


@pytest.mark.asyncio
@pytest.mark.slow
async def test_handshake_timeout_sets_error(channel_pair):
    host_end, _ = channel_pair
    telemetry = []
    session = PluginSession(
        PluginManifest(id="silent"),
        host_end,
        config=RuntimeConfig(handshake_timeout_ms=50),
        on_telemetry=telemetry.append,
    )
    with pytest.raises(HandshakeError):
        await session.ensure_ready()
    assert session.status is SessionStatus.ERROR
    assert any(item["event"] == "sandbox-error" for item in telemetry)


@pytest.mark.asyncio
async def test_teardown_rejects_outstanding_calls(channel_pair):
    never = asyncio.Event()

    async def _hang(args):
        await never.wait()

    session, _ = await _connect(channel_pair, {"hang": _hang})
    task = asyncio.ensure_future(session.call("hang"))
    await flush()
    assert len(session.pending) == 1
    session.destroy()
    with pytest.raises(SessionClosedError):
        await task
    assert session.status is SessionStatus.DESTROYED
    with pytest.raises(SessionClosedError):
        await session.ensure_ready()


@pytest.mark.asyncio
async def test_runtime_destroy_rejects_host_calls(channel_pair):
    host_end, plugin_end = channel_pair
    never = asyncio.Event()

    async def _hang(args):
        await never.wait()

    runtime = PluginRuntime(plugin_end)
    session = PluginSession(PluginManifest(id="demo"), host_end, host_methods={"hang": _hang})
    await session.ensure_ready()
    task = asyncio.ensure_future(runtime.call_host("hang"))
    await flush()
    runtime.destroy()
    with pytest.raises(SessionClosedError):
        await task


@pytest.mark.asyncio
async def test_sandbox_crash_fails_session(channel_pair):
    _, plugin_end = channel_pair
    never = asyncio.Event()

    async def _hang(args):
        await never.wait()

    statuses = []
    session, runtime = await _connect(
        channel_pair, {"hang": _hang}, on_status_change=lambda p: statuses.append(p["status"])
    )
    task = asyncio.ensure_future(session.call("hang"))
    await flush()
    plugin_end.send(with_token(SandboxCrash(detail="oops"), runtime.session_token))
    with pytest.raises(SessionClosedError):
        await task
    assert session.status is SessionStatus.ERROR
    assert statuses[-1] == "error"


@pytest.mark.asyncio
async def test_reload_issues_new_token(channel_pair):
    session, runtime = await _connect(channel_pair, {"ping": lambda args: "pong"})
    first = session.token
    await session.reload()
    assert session.token != first
    assert runtime.session_token == session.token
    assert await session.call("ping") == "pong"


@pytest.mark.asyncio
async def test_call_result_kinds(channel_pair):
    async def _slow(args):
        await asyncio.sleep(1)

    session, _ = await _connect(channel_pair, {"echo": lambda args: args, "slow": _slow})
    ok = await session.call_result("echo", {"a": 1})
    assert ok.ok and ok.value == {"a": 1}
    remote = await session.call_result("missing")
    assert remote.kind is CallErrorKind.REMOTE
    assert remote.error == "Unknown method: missing"
    timeout = await session.call_result("slow", {}, timeout=0.02)
    assert timeout.kind is CallErrorKind.TIMEOUT
    invalid = await session.call_result("echo", {"bad": object()})
    assert invalid.kind is CallErrorKind.INVALID
    session.destroy()
    closed = await session.call_result("echo")
    assert closed.kind is CallErrorKind.TEARDOWN


@pytest.mark.asyncio
async def test_plugin_calls_host_methods(channel_pair, graph_api):
    session, runtime = await _connect(channel_pair, get_graph_api=lambda: graph_api)
    assert await runtime.call_host("graph:getNode", {"id": "n1"}) == {"id": "n1", "label": "Start"}
    nodes = await runtime.call_host("graph:getNodes")
    assert [n["id"] for n in nodes] == ["n1", "n2"]
    with pytest.raises(RemoteCallError) as exc_info:
        await runtime.call_host("graph:getNode", {"id": "zz"})
    assert "zz" in exc_info.value.message


@pytest.mark.asyncio
async def test_host_methods_enforce_permissions(channel_pair, graph_api):
    session, runtime = await _connect(channel_pair, permissions=["graph.read"], get_graph_api=lambda: graph_api)
    with pytest.raises(RemoteCallError) as exc_info:
        await runtime.call_host("selection:get")
    assert exc_info.value.message == 'Plugin lacks required permission "selection.read"'
    with pytest.raises(RemoteCallError) as exc_info:
        await runtime.call_host("graph:updateNode", {"id": "n1", "updates": {"label": "x"}})
    assert exc_info.value.message == "Unknown method: graph:updateNode"


@pytest.mark.asyncio
async def test_write_permission_exposes_updates(channel_pair, graph_api):
    session, runtime = await _connect(
        channel_pair, permissions=["graph.read", "graph.write"], get_graph_api=lambda: graph_api
    )
    updated = await runtime.call_host("graph:updateNode", {"id": "n1", "updates": {"label": "Renamed"}})
    assert updated["label"] == "Renamed"
    assert graph_api.nodes["n1"]["label"] == "Renamed"


@pytest.mark.asyncio
async def test_selection_defaults_to_empty(channel_pair):
    session, runtime = await _connect(channel_pair, permissions=["selection.read"])
    assert await runtime.call_host("selection:get") == {"nodeIds": [], "edgeIds": [], "groupIds": []}


@pytest.mark.asyncio
async def test_emit_event_reaches_host(channel_pair):
    emitted = []
    session, runtime = await _connect(channel_pair, emit_event=lambda event, payload: emitted.append((event, payload)))
    assert await runtime.emit_event("saved", {"id": "n1"}) is True
    assert emitted == [("saved", {"id": "n1"})]


@pytest.mark.asyncio
async def test_one_way_events_and_unsubscribe(channel_pair):
    session, runtime = await _connect(channel_pair)
    seen = []
    unsubscribe = runtime.on_event("selection:changed", lambda event, payload: seen.append(payload))
    runtime.on_event("*", lambda event, payload: seen.append(("*", event)))
    session.emit("selection:changed", {"ids": ["n1"]})
    await flush()
    assert seen == [{"ids": ["n1"]}, ("*", "selection:changed")]
    unsubscribe()
    session.emit("selection:changed", {"ids": []})
    await flush()
    assert seen[-1] == ("*", "selection:changed")
    assert len(seen) == 3


@pytest.mark.asyncio
async def test_plugin_telemetry_is_forwarded(channel_pair):
    telemetry = []
    session, runtime = await _connect(channel_pair, on_telemetry=telemetry.append)
    runtime.emit_telemetry({"phase": "layout"}, level="debug")
    await flush()
    forwarded = [item for item in telemetry if item["event"] == "telemetry"]
    assert forwarded == [{"pluginId": "demo", "level": "debug", "event": "telemetry", "detail": {"phase": "layout"}}]


@pytest.mark.asyncio
async def test_gateway_connect_call_and_teardown(channel_pair, graph_api):
    host_end, plugin_end = channel_pair
    statuses = []
    runtime = PluginRuntime(plugin_end, methods={"echo": lambda args: args})
    gateway = HostGateway(get_graph_api=lambda: graph_api, on_status_change=statuses.append)
    assert isinstance(graph_api, GraphApi)

    session = await gateway.connect({"id": "demo", "permissions": ["graph.read"]}, host_end)
    assert session.methods == ["echo"]
    assert await gateway.call("demo", "echo", {"v": 1}) == {"v": 1}
    assert await runtime.call_host("graph:getEdge", {"id": "e1"}) == {"id": "e1", "source": "n1", "target": "n2"}
    assert gateway.status() == [{"pluginId": "demo", "status": "ready", "methods": ["echo"], "pending": 0}]

    with pytest.raises(NodeGraphError) as exc_info:
        await gateway.call("other", "echo")
    assert exc_info.value.code == "PLUGIN_NOT_FOUND"
    outcome = await gateway.call_result("other", "echo")
    assert outcome.kind is CallErrorKind.NOT_READY

    assert gateway.teardown_all() == 1
    assert gateway.get("demo") is None
    assert statuses[-1]["status"] == "destroyed"


@pytest.mark.asyncio
@pytest.mark.slow
async def test_gateway_connect_failure_removes_session(channel_pair):
    host_end, _ = channel_pair
    gateway = HostGateway(RuntimeConfig(handshake_timeout_ms=30))
    with pytest.raises(HandshakeError):
        await gateway.connect({"id": "silent"}, host_end)
    assert gateway.sessions == {}


@pytest.mark.asyncio
async def test_malformed_request_with_id_gets_error_response(channel_pair):
    host_end, _ = channel_pair
    session, runtime = await _connect(channel_pair, {"echo": lambda args: args})
    replies = []
    host_end.on_receive(replies.append)
    host_end.send({"type": "rpc:request", "requestId": "bad1", "method": 42, "token": session.token})
    host_end.send({"type": "rpc:request", "requestId": "bad2", "token": session.token})
    host_end.send({"type": "rpc:request", "requestId": "bad3", "method": 42, "token": "wrong"})
    host_end.send({"type": "rpc:request", "method": 42, "token": session.token})
    await flush()
    assert [(r["requestId"], r["ok"], r["error"]) for r in replies] == [
        ("bad1", False, "Malformed request"),
        ("bad2", False, "Malformed request"),
    ]
    assert all(r["token"] == runtime.session_token for r in replies)


@pytest.mark.asyncio
async def test_host_answers_malformed_plugin_request(channel_pair):
    _, plugin_end = channel_pair
    session, runtime = await _connect(channel_pair)
    replies = []
    plugin_end.on_receive(replies.append)
    plugin_end.send({"type": "rpc:request", "requestId": "host_bad", "method": ["x"], "token": session.token})
    await flush()
    assert len(replies) == 1
    assert replies[0]["ok"] is False and replies[0]["requestId"] == "host_bad"


@pytest.mark.asyncio
async def test_invalid_handshake_fails_without_waiting_for_timeout(channel_pair):
    host_end, plugin_end = channel_pair
    plugin_end.on_receive(
        lambda raw: plugin_end.send({"type": "handshake", "token": raw["token"], "methods": "ping"})
    )
    session = PluginSession(PluginManifest(id="bad-handshake"), host_end)
    assert session.config.handshake_timeout == 8.0
    with pytest.raises(HandshakeError) as exc_info:
        await asyncio.wait_for(session.ensure_ready(), timeout=1.0)
    assert "Invalid handshake payload" in exc_info.value.message
    assert session.status is SessionStatus.ERROR


@pytest.mark.asyncio
async def test_invalid_handshake_with_foreign_token_is_ignored(channel_pair):
    host_end, plugin_end = channel_pair
    plugin_end.on_receive(lambda raw: plugin_end.send({"type": "handshake", "token": "other", "methods": "ping"}))
    session = PluginSession(PluginManifest(id="demo"), host_end, config=RuntimeConfig(handshake_timeout_ms=5000))
    task = asyncio.ensure_future(session.ensure_ready())
    await flush()
    assert session.status is SessionStatus.LOADING
    session.destroy()
    with pytest.raises(SessionClosedError):
        await task


def test_rpc_peer_is_abstract(channel_pair):
    host_end, _ = channel_pair
    with pytest.raises(TypeError):
        RpcPeer(host_end)
