"""Configuration schema using Pydantic.

Single data model and defaults for the plugin runtime; persisted to ~/.nodegraph/config.json.
"""

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic_settings import BaseSettings


class RuntimeConfig(BaseModel):
    """Plugin runtime / RPC timing and trust settings."""
    handshake_timeout_ms: int = Field(default=8000, gt=0)
    rpc_timeout_ms: int = Field(default=6000, gt=0)  # host -> plugin calls
    host_call_timeout_ms: int = Field(default=5000, gt=0)  # plugin -> host calls
    allowed_origins: list[str] = Field(default_factory=list)  # empty: only the linked peer
    auto_height: bool = True  # renderer:height reporting

    @property
    def handshake_timeout(self) -> float:
        return self.handshake_timeout_ms / 1000.0

    @property
    def rpc_timeout(self) -> float:
        return self.rpc_timeout_ms / 1000.0

    @property
    def host_call_timeout(self) -> float:
        return self.host_call_timeout_ms / 1000.0


class LoggingConfig(BaseModel):
    """Logging configuration."""
    level: Literal["TRACE", "DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    file: str | None = None  # rotating log file path; None disables


class Config(BaseSettings):
    """Root configuration for nodegraph."""
    runtime: RuntimeConfig = Field(default_factory=RuntimeConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    model_config = ConfigDict(
        env_prefix="NODEGRAPH_",
        env_nested_delimiter="__"
    )
