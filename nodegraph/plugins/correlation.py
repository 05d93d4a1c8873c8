"""Request/response correlation for outstanding RPC calls."""

from __future__ import annotations

import asyncio
import itertools
import secrets
from dataclasses import dataclass
from typing import Any

from loguru import logger

from nodegraph.plugins.core.protocol import RpcResponse
from nodegraph.utils.exceptions import RemoteCallError, RpcTimeoutError, SessionClosedError


@dataclass(slots=True)
class PendingCall:
    """One outstanding call awaiting its response."""

    request_id: str
    method: str
    args: Any
    deadline: float
    future: asyncio.Future[Any]
    timer: asyncio.TimerHandle | None = None


class PendingCallTable:
    """Tracks outstanding calls for one session.

    A call is settled by exactly one of: matching response, deadline, teardown.
    Whichever pops the entry first settles it; later attempts find nothing.
    """

    def __init__(self, prefix: str = "rpc"):
        self.prefix = prefix
        self._counter = itertools.count(1)
        self._salt = secrets.token_hex(3)
        self._pending: dict[str, PendingCall] = {}

    def __len__(self) -> int:
        return len(self._pending)

    def __contains__(self, request_id: object) -> bool:
        return request_id in self._pending

    def next_request_id(self) -> str:
        # Monotonic counter: ids are never reused for the table's lifetime.
        return f"{self.prefix}_{self._salt}_{next(self._counter)}"

    def open(self, method: str, args: Any, timeout: float) -> PendingCall:
        """Register a new call and arm its deadline."""
        loop = asyncio.get_running_loop()
        request_id = self.next_request_id()
        future: asyncio.Future[Any] = loop.create_future()
        call = PendingCall(
            request_id=request_id,
            method=method,
            args=args,
            deadline=loop.time() + timeout,
            future=future,
        )
        call.timer = loop.call_later(timeout, self._expire, request_id, timeout)
        self._pending[request_id] = call
        future.add_done_callback(lambda f, rid=request_id: self._on_future_done(rid, f))
        return call

    def resolve(self, response: RpcResponse) -> bool:
        """Settle the call matching the response. False when nothing is pending."""
        call = self._pending.pop(response.request_id, None)
        if call is None:
            logger.debug("Ignoring response for unknown request {}", response.request_id)
            return False
        self._cancel_timer(call)
        if call.future.done():
            return False
        if response.ok:
            call.future.set_result(response.result)
        else:
            call.future.set_exception(RemoteCallError(call.method, response.error or "RPC error"))
        return True

    def reject_all(self, reason: str) -> int:
        """Reject every outstanding call with SessionClosedError."""
        calls = list(self._pending.values())
        self._pending.clear()
        for call in calls:
            self._cancel_timer(call)
            if not call.future.done():
                call.future.set_exception(SessionClosedError(reason))
        return len(calls)

    def _expire(self, request_id: str, timeout: float) -> None:
        call = self._pending.pop(request_id, None)
        if call is None:
            return
        call.timer = None
        if not call.future.done():
            logger.debug("RPC {} ({}) timed out after {}s", call.method, request_id, timeout)
            call.future.set_exception(RpcTimeoutError(call.method, timeout))

    def _on_future_done(self, request_id: str, future: asyncio.Future[Any]) -> None:
        # Caller gave up (task cancelled): forget the entry so a late response is ignored.
        if future.cancelled():
            call = self._pending.pop(request_id, None)
            if call is not None:
                self._cancel_timer(call)

    @staticmethod
    def _cancel_timer(call: PendingCall) -> None:
        if call.timer is not None:
            call.timer.cancel()
            call.timer = None
