"""Method registry and inbound request dispatch."""

from __future__ import annotations

from collections.abc import Callable, Iterator, Mapping
from typing import Any

from loguru import logger

from nodegraph.plugins.core.protocol import RpcRequest, RpcResponse
from nodegraph.plugins.core.serialization import structured_clone
from nodegraph.plugins.error_boundary import (
    nodegraph_error_response,
    success_response,
    unhandled_exception_response,
    unknown_method_response,
    unserializable_result_response,
)
from nodegraph.utils.exceptions import NodeGraphError
from nodegraph.utils.helpers import maybe_await

MethodHandler = Callable[[Any], Any]


class MethodRegistry:
    """Name -> handler mapping owned by one side of a session."""

    def __init__(self, methods: Mapping[str, MethodHandler] | None = None):
        self._methods: dict[str, MethodHandler] = {}
        for name, handler in (methods or {}).items():
            self.register(name, handler)

    def register(self, name: str, handler: MethodHandler) -> None:
        if not name or not isinstance(name, str) or not callable(handler):
            raise ValueError("register requires a name and a callable")
        self._methods[name] = handler

    def get(self, name: str) -> MethodHandler | None:
        return self._methods.get(name)

    def names(self) -> list[str]:
        return list(self._methods)

    def clear(self) -> None:
        self._methods.clear()

    def __contains__(self, name: object) -> bool:
        return name in self._methods

    def __iter__(self) -> Iterator[str]:
        return iter(self._methods)

    def __len__(self) -> int:
        return len(self._methods)

    async def dispatch(self, request: RpcRequest) -> RpcResponse:
        """Invoke the handler for a request and always return a response."""
        handler = self._methods.get(request.method)
        if handler is None:
            return unknown_method_response(request_id=request.request_id, method=request.method)
        try:
            result = await maybe_await(handler(request.args))
        except NodeGraphError as exc:
            return nodegraph_error_response(
                request_id=request.request_id,
                method=request.method,
                exc=exc,
                log_warning=logger.warning,
            )
        except Exception as exc:
            return unhandled_exception_response(
                request_id=request.request_id,
                method=request.method,
                exc=exc,
                log_exception=logger.exception,
            )
        try:
            structured_clone(result)
        except (TypeError, ValueError):
            return unserializable_result_response(request_id=request.request_id, method=request.method)
        return success_response(request_id=request.request_id, result=result)
