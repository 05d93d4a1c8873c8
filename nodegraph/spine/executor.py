"""Execution spine: intent -> listener proposals -> validation -> atomic commit.

Listeners run one at a time in registration order. Their proposals are
collected into a single batch; the document is only written by the commit
step, and only after the whole batch validated.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable, Mapping
from typing import Any

from loguru import logger

from nodegraph.spine.cancellation import CancellationToken
from nodegraph.spine.listeners import Listener
from nodegraph.spine.types import (
    Delta,
    ExecutionMode,
    Intent,
    SpineResult,
    SpineStatus,
    ValidationResult,
)
from nodegraph.utils.exceptions import describe_exception
from nodegraph.utils.helpers import maybe_await

TelemetrySink = Callable[[str, Intent, dict[str, Any] | None], Any]


def coerce_deltas(result: Any) -> list[Delta]:
    """A bare list, or an object/mapping carrying a ``deltas`` list; anything else is empty."""
    if result is None:
        return []
    if isinstance(result, (list, tuple)):
        return list(result)
    if isinstance(result, Mapping):
        deltas = result.get("deltas")
    else:
        deltas = getattr(result, "deltas", None)
    if isinstance(deltas, (list, tuple)):
        return list(deltas)
    return []


class ExecutionSpine:
    """Runs intents through the listener / validate / commit pipeline.

    Collaborators (all optional, sync or async):
        resolve_context(intent) -> dict
        is_draft_mode(intent) -> bool
        validate(intent=, deltas=, context=) -> ValidationResult | {ok, errors} | None
        normalize(deltas, context) -> deltas
        commit_deltas(deltas, context)  # applies the batch as one atomic unit
        on_commit(intent=, deltas=, context=, draft=)
        on_reject(intent=, context=, errors=, reason=)
        emit_telemetry(stage, intent, detail)
    """

    def __init__(
        self,
        listeners: Iterable[Listener] = (),
        *,
        resolve_context: Callable[[Intent], Any] | None = None,
        is_draft_mode: Callable[[Intent], Any] | None = None,
        validate: Callable[..., Any] | None = None,
        normalize: Callable[[list[Delta], dict[str, Any]], Any] | None = None,
        commit_deltas: Callable[[list[Delta], dict[str, Any]], Any] | None = None,
        on_commit: Callable[..., Any] | None = None,
        on_reject: Callable[..., Any] | None = None,
        emit_telemetry: TelemetrySink | None = None,
    ):
        self._listeners: list[Listener] = []
        for listener in listeners:
            self.register(listener)
        self.resolve_context = resolve_context
        self.is_draft_mode = is_draft_mode
        self.validate = validate
        self.normalize = normalize
        self.commit_deltas = commit_deltas
        self.on_commit = on_commit
        self.on_reject = on_reject
        self.emit_telemetry = emit_telemetry

    @property
    def listeners(self) -> list[Listener]:
        return list(self._listeners)

    def register(self, listener: Listener) -> None:
        if any(existing.id == listener.id for existing in self._listeners):
            raise ValueError(f"listener already registered: {listener.id}")
        self._listeners.append(listener)

    def unregister(self, listener_id: str) -> bool:
        before = len(self._listeners)
        self._listeners = [item for item in self._listeners if item.id != listener_id]
        return len(self._listeners) != before

    async def execute_intent(self, intent: Intent, token: CancellationToken | None = None) -> SpineResult:
        token = token or intent.token
        if token.canceled:
            return await self._canceled(intent)

        await self._telemetry("received", intent)
        await self._telemetry("flow_control", intent, {"tokenId": token.id})

        context = await self._resolve_context(intent)
        mode = await self._resolve_mode(intent)
        proposed: list[Delta] = []

        for listener in list(self._listeners):
            if token.canceled:
                return await self._canceled(intent)
            if not self._listener_matches(listener, intent, context):
                continue
            await self._telemetry("skill_start", intent, {"skill": listener.id})
            proposed.extend(await self._invoke(listener, intent, token, context))
            await self._telemetry("skill_finish", intent, {"skill": listener.id})
            if token.canceled:
                return await self._canceled(intent)

        if token.canceled:
            return await self._canceled(intent)

        if mode is ExecutionMode.DRAFT:
            await self._telemetry("validator", intent, {"skipped": True, "reason": "draft"})
            if self.on_commit is not None:
                await maybe_await(self.on_commit(intent=intent, deltas=proposed, context=context, draft=True))
            await self._telemetry("done", intent)
            return SpineResult(status=SpineStatus.DRAFT, intent_id=intent.id, deltas=proposed)

        await self._telemetry("validator", intent)
        validation = await self._validate(intent, proposed, context)
        if not validation.ok:
            if self.on_reject is not None:
                await maybe_await(
                    self.on_reject(intent=intent, context=context, errors=validation.errors, reason="validation")
                )
            return SpineResult(status=SpineStatus.BLOCKED, intent_id=intent.id, errors=validation.errors)

        normalized = proposed
        if self.normalize is not None:
            normalized = list(await maybe_await(self.normalize(proposed, context)) or [])

        if normalized and self.commit_deltas is not None:
            await maybe_await(self.commit_deltas(normalized, context))

        if self.on_commit is not None:
            await maybe_await(self.on_commit(intent=intent, deltas=normalized, context=context, draft=False))
        await self._telemetry("done", intent)
        return SpineResult(status=SpineStatus.COMMITTED, intent_id=intent.id, deltas=normalized)

    # Internals -----------------------------------------------------------

    async def _invoke(
        self, listener: Listener, intent: Intent, token: CancellationToken, context: dict[str, Any]
    ) -> list[Delta]:
        try:
            result = await maybe_await(listener.handle(intent, token, context))
        except Exception:
            logger.exception("[ExecutionSpine] listener {} failed", listener.id)
            return []
        return coerce_deltas(result)

    def _listener_matches(self, listener: Listener, intent: Intent, context: dict[str, Any]) -> bool:
        try:
            return bool(listener.matches(intent, context))
        except Exception as exc:
            logger.warning("[ExecutionSpine] listener {} predicate failed: {}", listener.id, exc)
            return False

    async def _resolve_context(self, intent: Intent) -> dict[str, Any]:
        if self.resolve_context is None:
            return {}
        context = await maybe_await(self.resolve_context(intent))
        return dict(context) if isinstance(context, Mapping) else {}

    async def _resolve_mode(self, intent: Intent) -> ExecutionMode:
        if self.is_draft_mode is not None and await maybe_await(self.is_draft_mode(intent)):
            return ExecutionMode.DRAFT
        return ExecutionMode.COMMITTING

    async def _validate(self, intent: Intent, deltas: list[Delta], context: dict[str, Any]) -> ValidationResult:
        if self.validate is None:
            return ValidationResult(ok=True)
        try:
            raw = await maybe_await(self.validate(intent=intent, deltas=list(deltas), context=context))
        except Exception as exc:
            logger.warning("[ExecutionSpine] validator raised for intent {}: {}", intent.kind, exc)
            return ValidationResult(ok=False, errors=[describe_exception(exc, fallback="validation failed")])
        return ValidationResult.coerce(raw)

    async def _canceled(self, intent: Intent) -> SpineResult:
        await self._telemetry("canceled", intent)
        return SpineResult(status=SpineStatus.CANCELED, intent_id=intent.id)

    async def _telemetry(self, stage: str, intent: Intent, detail: dict[str, Any] | None = None) -> None:
        if self.emit_telemetry is None:
            return
        try:
            await maybe_await(self.emit_telemetry(stage, intent, detail))
        except Exception:
            logger.exception("[ExecutionSpine] telemetry sink failed at {}", stage)
