"""Execution spine: intent fan-out, validation and atomic commit."""

from nodegraph.spine.cancellation import CancellationToken
from nodegraph.spine.executor import ExecutionSpine, coerce_deltas
from nodegraph.spine.intents import build_intent
from nodegraph.spine.listeners import FunctionListener, Listener, PluginListener
from nodegraph.spine.types import ExecutionMode, Intent, SpineResult, SpineStatus, ValidationResult

__all__ = [
    "CancellationToken",
    "ExecutionSpine",
    "coerce_deltas",
    "build_intent",
    "FunctionListener",
    "Listener",
    "PluginListener",
    "ExecutionMode",
    "Intent",
    "SpineResult",
    "SpineStatus",
    "ValidationResult",
]
