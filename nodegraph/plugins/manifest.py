"""Plugin manifest model used by the host gateway."""

from __future__ import annotations

import re
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

_SRI_PATTERN = re.compile(r"^(sha256|sha384|sha512)-[A-Za-z0-9+/=]+$")


class PluginBundle(BaseModel):
    """Where the plugin code lives and how it is sandboxed."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    url: str = ""
    sandbox: Literal["iframe", "worker"] = "iframe"
    integrity: str | None = None

    @field_validator("sandbox", mode="before")
    @classmethod
    def _normalize_sandbox(cls, value: object) -> object:
        if isinstance(value, str) and value.strip().lower() in ("iframe", "worker"):
            return value.strip().lower()
        return "iframe"

    @field_validator("url")
    @classmethod
    def _check_url(cls, value: str) -> str:
        value = value.strip()
        if value and not value.startswith(("http://", "https://", "/", "./")):
            raise ValueError("bundle url must be http(s) or a relative path")
        return value

    @field_validator("integrity", mode="before")
    @classmethod
    def _pick_integrity(cls, value: object) -> str | None:
        # Keep the first well-formed SRI fragment.
        if not isinstance(value, str):
            return None
        for fragment in value.split():
            if _SRI_PATTERN.match(fragment):
                return fragment
        return None


class PluginManifest(BaseModel):
    """Validated plugin record."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    id: str = Field(min_length=1)
    name: str = ""
    version: str = "0.0.0"
    description: str | None = None
    permissions: list[str] = Field(default_factory=list)
    bundle: PluginBundle = Field(default_factory=PluginBundle)

    @field_validator("id", "name", "version", mode="before")
    @classmethod
    def _strip(cls, value: object) -> object:
        return value.strip() if isinstance(value, str) else value

    @field_validator("permissions", mode="before")
    @classmethod
    def _normalize_permissions(cls, value: object) -> list[str]:
        if not isinstance(value, list):
            return []
        seen: list[str] = []
        for perm in value:
            if isinstance(perm, str) and perm.strip():
                normalized = perm.strip().lower()
                if normalized not in seen:
                    seen.append(normalized)
        return seen
