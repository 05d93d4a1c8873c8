"""Wire frames exchanged across the host/plugin trust boundary.

Every frame is one variant of a closed union keyed by ``type``. Raw inbound
values are parsed with :func:`parse_message`; anything that is not a known,
well-formed variant comes back as ``None`` and never reaches dispatch.
"""

from __future__ import annotations

from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter
from pydantic import ValidationError as PydanticValidationError


class Frame(BaseModel):
    """Base for all frames; ``requestId`` style aliases on the wire."""

    model_config = ConfigDict(populate_by_name=True, frozen=True, extra="ignore")

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)


class HandshakeProbe(Frame):
    """Host -> plugin. Carries the host-issued session token."""

    type: Literal["handshake:probe"] = "handshake:probe"
    token: str | None = None
    capabilities: dict[str, Any] = Field(default_factory=dict)


class Handshake(Frame):
    """Plugin -> host. Advertises exposed method names."""

    type: Literal["handshake"] = "handshake"
    token: str | None = None
    methods: list[str]
    capabilities: dict[str, Any] = Field(default_factory=dict)


class RpcRequest(Frame):
    """Request frame; valid in both directions."""

    type: Literal["rpc:request"] = "rpc:request"
    request_id: str = Field(alias="requestId", min_length=1)
    method: str = Field(min_length=1)
    args: Any = Field(default_factory=dict)
    token: str | None = None


class RpcResponse(Frame):
    """Response frame correlated by ``requestId``."""

    type: Literal["rpc:response"] = "rpc:response"
    request_id: str = Field(alias="requestId", min_length=1)
    ok: bool
    result: Any = None
    error: str | None = None
    token: str | None = None


class EventFrame(Frame):
    """One-way event; no response expected."""

    type: Literal["event"] = "event"
    event: str = Field(min_length=1)
    payload: Any = None
    token: str | None = None


class TelemetryFrame(Frame):
    type: Literal["telemetry"] = "telemetry"
    level: str = "info"
    detail: Any = None
    token: str | None = None


class SandboxCrash(Frame):
    type: Literal["sandbox:crash"] = "sandbox:crash"
    detail: Any = None
    token: str | None = None


class NodeInit(Frame):
    type: Literal["node:init"] = "node:init"
    token: str = Field(min_length=1)
    payload: Any = Field(default_factory=dict)


class NodeUpdate(Frame):
    type: Literal["node:update"] = "node:update"
    token: str = Field(min_length=1)
    payload: Any = Field(default_factory=dict)


class RendererHello(Frame):
    type: Literal["renderer:hello"] = "renderer:hello"
    token: str | None = None


class RendererReady(Frame):
    type: Literal["renderer:ready"] = "renderer:ready"
    token: str | None = None


class RendererError(Frame):
    type: Literal["renderer:error"] = "renderer:error"
    error: str
    token: str | None = None


class RendererHeight(Frame):
    type: Literal["renderer:height"] = "renderer:height"
    height: float = Field(gt=0)
    token: str | None = None


class RendererEvent(Frame):
    type: Literal["renderer:event"] = "renderer:event"
    event: str = Field(min_length=1)
    detail: Any = None
    token: str | None = None


Message = Annotated[
    Union[
        HandshakeProbe,
        Handshake,
        RpcRequest,
        RpcResponse,
        EventFrame,
        TelemetryFrame,
        SandboxCrash,
        NodeInit,
        NodeUpdate,
        RendererHello,
        RendererReady,
        RendererError,
        RendererHeight,
        RendererEvent,
    ],
    Field(discriminator="type"),
]

_MESSAGE_ADAPTER: TypeAdapter[Message] = TypeAdapter(Message)


def parse_message(raw: Any) -> Message | None:
    """Parse a raw structured value into a frame, or None when malformed/unknown."""
    if not isinstance(raw, dict):
        return None
    try:
        return _MESSAGE_ADAPTER.validate_python(raw)
    except PydanticValidationError:
        return None
