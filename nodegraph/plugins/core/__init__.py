"""Shared plugin types and helpers."""

from .contracts import GraphApi
from .protocol import (
    EventFrame,
    Frame,
    Handshake,
    HandshakeProbe,
    Message,
    NodeInit,
    NodeUpdate,
    RendererError,
    RendererEvent,
    RendererHeight,
    RendererHello,
    RendererReady,
    RpcRequest,
    RpcResponse,
    SandboxCrash,
    TelemetryFrame,
    parse_message,
)
from .serialization import structured_clone, to_wire, with_token
from .types import CallErrorKind, CallOutcome, Session, SessionStatus, generate_token

__all__ = [
    "GraphApi",
    "Frame",
    "Message",
    "HandshakeProbe",
    "Handshake",
    "RpcRequest",
    "RpcResponse",
    "EventFrame",
    "TelemetryFrame",
    "SandboxCrash",
    "NodeInit",
    "NodeUpdate",
    "RendererHello",
    "RendererReady",
    "RendererError",
    "RendererHeight",
    "RendererEvent",
    "parse_message",
    "structured_clone",
    "to_wire",
    "with_token",
    "CallErrorKind",
    "CallOutcome",
    "Session",
    "SessionStatus",
    "generate_token",
]
