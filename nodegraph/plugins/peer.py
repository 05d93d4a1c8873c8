"""Request/response and event plumbing shared by host and plugin sides."""

from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from collections.abc import Callable, Coroutine, Mapping
from typing import Any

from loguru import logger

from nodegraph.plugins.channel import ChannelEndpoint
from nodegraph.plugins.core.protocol import EventFrame, Frame, RpcRequest, RpcResponse, parse_message
from nodegraph.plugins.core.serialization import structured_clone, with_token
from nodegraph.plugins.core.types import CallOutcome
from nodegraph.plugins.correlation import PendingCallTable
from nodegraph.plugins.error_boundary import malformed_request_response
from nodegraph.plugins.registry import MethodHandler, MethodRegistry
from nodegraph.utils.exceptions import NodeGraphError, SessionNotReadyError, ValidationError
from nodegraph.utils.helpers import maybe_await

EventHandler = Callable[[str, Any], Any]
WILDCARD_EVENT = "*"


class RpcPeer(ABC):
    """One side of a session: exposes methods, issues calls, routes events.

    Subclasses decide when the session is ready and handle the frames that are
    specific to their side (handshake, telemetry, ...).
    """

    log_prefix = "[RpcPeer]"
    request_prefix = "rpc"

    def __init__(
        self,
        endpoint: ChannelEndpoint,
        *,
        methods: Mapping[str, MethodHandler] | None = None,
        call_timeout: float = 6.0,
    ):
        self.endpoint = endpoint
        self.registry = MethodRegistry(methods)
        self.pending = PendingCallTable(prefix=self.request_prefix)
        self.call_timeout = call_timeout
        self.token: str | None = None
        self._event_handlers: dict[str, list[EventHandler]] = {}
        self._tasks: set[asyncio.Task[Any]] = set()
        endpoint.on_receive(self._on_raw)

    # Subclass hooks ------------------------------------------------------

    @property
    @abstractmethod
    def session_ready(self) -> bool:
        """True once the handshake completed and the session is usable."""

    def _handle_message(self, message: Frame) -> None:
        self._handle_session_frame(message)

    # Public API ----------------------------------------------------------

    def register_method(self, name: str, handler: MethodHandler) -> None:
        self.registry.register(name, handler)

    def on_event(self, event: str, handler: EventHandler) -> Callable[[], None]:
        """Subscribe to one-way events (``"*"`` for all). Returns an unsubscribe callable."""
        handlers = self._event_handlers.setdefault(event, [])
        handlers.append(handler)

        def _unsubscribe() -> None:
            if handler in handlers:
                handlers.remove(handler)

        return _unsubscribe

    def emit(self, event: str, payload: Any = None) -> None:
        """Fire-and-forget event to the counterpart."""
        if not self.session_ready:
            logger.debug("{} dropping event {} before handshake", self.log_prefix, event)
            return
        self._post(EventFrame(event=event, payload=payload))

    async def call_result(self, method: str, args: Any = None, timeout: float | None = None) -> CallOutcome:
        """Like the raising call, but returns a CallOutcome and never raises."""
        try:
            value = await self._call(method, args, timeout)
        except NodeGraphError as exc:
            return CallOutcome.from_exception(exc)
        return CallOutcome.success(value)

    # Internals -----------------------------------------------------------

    async def _call(self, method: str, args: Any = None, timeout: float | None = None) -> Any:
        if not method:
            raise ValidationError("RPC requires a method name", field="method")
        if not self.session_ready:
            raise SessionNotReadyError()
        try:
            structured_clone(args)
        except (TypeError, ValueError) as exc:
            raise ValidationError(f"RPC args for {method} are not serializable: {exc}", field="args") from exc
        call = self.pending.open(method, args, timeout if timeout is not None else self.call_timeout)
        request = RpcRequest(request_id=call.request_id, method=method).to_wire()
        # args travel as given, null included
        request["args"] = args
        self._post(request)
        return await call.future

    def _post(self, frame: Frame | dict[str, Any]) -> None:
        self.endpoint.send(with_token(frame, self.token))

    def _on_raw(self, raw: Any) -> None:
        message = parse_message(raw)
        if message is None:
            kind = raw.get("type") if isinstance(raw, dict) else type(raw).__name__
            logger.debug("{} dropping malformed frame ({})", self.log_prefix, kind)
            if isinstance(raw, dict):
                self._handle_malformed(raw)
            return
        self._handle_message(message)

    def _handle_malformed(self, raw: dict[str, Any]) -> None:
        """Reply ok:false to an unparseable request that still carries a usable id."""
        if raw.get("type") != "rpc:request":
            return
        request_id = raw.get("requestId")
        if not isinstance(request_id, str) or not request_id:
            return
        if not self.session_ready or self.token is None or raw.get("token") != self.token:
            return
        self._post(malformed_request_response(request_id=request_id))

    def _token_matches(self, message: Frame) -> bool:
        return self.token is not None and getattr(message, "token", None) == self.token

    def _handle_session_frame(self, message: Frame) -> bool:
        """Route rpc/event frames. Returns True when the frame was consumed."""
        if not isinstance(message, (RpcRequest, RpcResponse, EventFrame)):
            return False
        if not self.session_ready:
            logger.debug("{} dropping {} before handshake", self.log_prefix, message.type)
            return True
        if not self._token_matches(message):
            logger.warning("{} dropped {} with mismatched token", self.log_prefix, message.type)
            return True
        if isinstance(message, RpcRequest):
            self._spawn(self._serve(message))
        elif isinstance(message, RpcResponse):
            self.pending.resolve(message)
        else:
            self._dispatch_event(message.event, message.payload)
        return True

    async def _serve(self, request: RpcRequest) -> None:
        response = await self.registry.dispatch(request)
        self._post(response)

    def _dispatch_event(self, event: str, payload: Any) -> None:
        handlers = [*self._event_handlers.get(event, ()), *self._event_handlers.get(WILDCARD_EVENT, ())]
        for handler in handlers:
            self._spawn(self._run_event_handler(handler, event, payload))

    async def _run_event_handler(self, handler: EventHandler, event: str, payload: Any) -> None:
        try:
            await maybe_await(handler(event, payload))
        except Exception:
            logger.exception("{} event handler for {} failed", self.log_prefix, event)

    def _spawn(self, coro: Coroutine[Any, Any, Any]) -> None:
        task = asyncio.ensure_future(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    def _shutdown(self, reason: str) -> int:
        """Reject outstanding calls and stop in-flight handlers."""
        rejected = self.pending.reject_all(reason)
        for task in list(self._tasks):
            task.cancel()
        self._tasks.clear()
        return rejected
