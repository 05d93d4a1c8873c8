"""Listener contract and the native / plugin-backed implementations."""

from __future__ import annotations

from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from typing import Any, Protocol, runtime_checkable

from nodegraph.spine.cancellation import CancellationToken
from nodegraph.spine.types import Intent


@runtime_checkable
class Listener(Protocol):
    """Participant in the spine. ``handle`` may be sync or async."""

    id: str

    def matches(self, intent: Intent, context: dict[str, Any]) -> bool: ...
    def handle(self, intent: Intent, token: CancellationToken, context: dict[str, Any]) -> Any: ...


def _matches(
    intents: frozenset[str] | None,
    predicate: Callable[[Intent, dict[str, Any]], bool] | None,
    intent: Intent,
    context: dict[str, Any],
) -> bool:
    if intents is not None and intent.kind not in intents:
        return False
    if predicate is not None:
        return bool(predicate(intent, context))
    return True


class FunctionListener:
    """Native listener wrapping a plain (sync or async) function."""

    def __init__(
        self,
        id: str,
        handler: Callable[[Intent, CancellationToken, dict[str, Any]], Any],
        intents: Iterable[str] | None = None,
        predicate: Callable[[Intent, dict[str, Any]], bool] | None = None,
    ):
        self.id = id
        self.handler = handler
        self.intents = frozenset(intents) if intents is not None else None
        self.predicate = predicate

    def matches(self, intent: Intent, context: dict[str, Any]) -> bool:
        return _matches(self.intents, self.predicate, intent, context)

    def handle(self, intent: Intent, token: CancellationToken, context: dict[str, Any]) -> Any:
        return self.handler(intent, token, context)


class PluginCaller(Protocol):
    async def call(self, method: str, args: Any = None, timeout: float | None = None) -> Any: ...


@dataclass(slots=True)
class PluginListener:
    """Listener whose handler is a method exposed by a plugin session.

    The plugin receives ``{"intent": ..., "context": ...}`` and answers with a
    delta list or ``{"deltas": [...]}``. Remote errors and timeouts surface as
    exceptions, which the spine treats as "no contribution".
    """

    id: str
    session: PluginCaller
    method: str
    intents: frozenset[str] | None = None
    predicate: Callable[[Intent, dict[str, Any]], bool] | None = None
    timeout: float | None = None
    calls: int = field(default=0)

    def __post_init__(self) -> None:
        if self.intents is not None and not isinstance(self.intents, frozenset):
            self.intents = frozenset(self.intents)

    def matches(self, intent: Intent, context: dict[str, Any]) -> bool:
        return _matches(self.intents, self.predicate, intent, context)

    async def handle(self, intent: Intent, token: CancellationToken, context: dict[str, Any]) -> Any:
        self.calls += 1
        return await self.session.call(
            self.method,
            {"intent": intent.to_wire(), "context": context},
            self.timeout,
        )
