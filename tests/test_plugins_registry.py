import pytest

from nodegraph.plugins.core.protocol import RpcRequest
from nodegraph.plugins.error_boundary import unknown_method_response
from nodegraph.plugins.registry import MethodRegistry
from nodegraph.utils.exceptions import PermissionDeniedError


def _request(method, args=None):
    return RpcRequest(request_id="r1", method=method, args=args if args is not None else {})


def test_register_rejects_bad_input():
    registry = MethodRegistry()
    with pytest.raises(ValueError):
        registry.register("", lambda args: None)
    with pytest.raises(ValueError):
        registry.register("x", "not callable")


def test_register_replaces_and_lists_names():
    registry = MethodRegistry({"a": lambda args: 1})
    registry.register("b", lambda args: 2)
    registry.register("a", lambda args: 3)
    assert registry.names() == ["a", "b"]
    assert "a" in registry
    assert len(registry) == 2
    registry.clear()
    assert len(registry) == 0


def test_unknown_method_response():
    res = unknown_method_response(request_id="r9", method="nope")
    assert res.ok is False
    assert res.error == "Unknown method: nope"
    assert res.request_id == "r9"


@pytest.mark.asyncio
async def test_dispatch_sync_and_async_handlers():
    async def _async_echo(args):
        return {"echo": args}

    registry = MethodRegistry({"sync": lambda args: args["n"] * 2, "async": _async_echo})
    res = await registry.dispatch(_request("sync", {"n": 4}))
    assert res.ok and res.result == 8
    res = await registry.dispatch(_request("async", {"v": 1}))
    assert res.ok and res.result == {"echo": {"v": 1}}


@pytest.mark.asyncio
async def test_dispatch_unknown_method():
    res = await MethodRegistry().dispatch(_request("missing"))
    assert res.ok is False
    assert res.error == "Unknown method: missing"


@pytest.mark.asyncio
async def test_dispatch_handler_errors_become_responses():
    def _boom(args):
        raise RuntimeError("boom")

    def _denied(args):
        raise PermissionDeniedError("graph.write")

    def _blank(args):
        raise RuntimeError()

    registry = MethodRegistry({"boom": _boom, "denied": _denied, "blank": _blank})
    res = await registry.dispatch(_request("boom"))
    assert res.ok is False and res.error == "boom"
    res = await registry.dispatch(_request("denied"))
    assert res.error == 'Plugin lacks required permission "graph.write"'
    res = await registry.dispatch(_request("blank"))
    assert res.error == "Plugin error"


@pytest.mark.asyncio
async def test_dispatch_rejects_unserializable_result():
    registry = MethodRegistry({"bad": lambda args: {"obj": object()}})
    res = await registry.dispatch(_request("bad"))
    assert res.ok is False
    assert "not serializable" in res.error


@pytest.mark.asyncio
async def test_dispatch_sanitizes_secrets():
    def _leak(args):
        raise RuntimeError("failed with token=abc123")

    res = await MethodRegistry({"leak": _leak}).dispatch(_request("leak"))
    assert "abc123" not in res.error
