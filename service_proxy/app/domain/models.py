"""
Data models for the Proxy service.
"""

import re
from typing import Optional
from dataclasses import dataclass
from datetime import datetime, timezone

from pydantic import AliasChoices, BaseModel, ConfigDict, Field

SLUG_PATTERN = re.compile(r"^[a-z0-9-]+$")


class SlugMapping(BaseModel):
    """One tenant binding from a public slug to a backend application."""

    model_config = ConfigDict(populate_by_name=True)

    slug: str = Field(..., description="Public path segment")
    backend_base_url: str = Field(
        ...,
        validation_alias=AliasChoices("backendBaseUrl", "appsScriptUrl", "backend_base_url"),
        serialization_alias="backendBaseUrl",
        description="Backend entry URL including its fixed suffix",
    )
    display_name: str = Field(
        "",
        validation_alias=AliasChoices("appName", "displayName", "display_name"),
        serialization_alias="appName",
    )
    created_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        validation_alias=AliasChoices("createdAt", "created_at"),
        serialization_alias="createdAt",
    )
    access_count: int = Field(
        0,
        validation_alias=AliasChoices("accessCount", "access_count"),
        serialization_alias="accessCount",
    )

    def to_store(self) -> str:
        """Serialize using the store's camelCase field names."""
        return self.model_dump_json(by_alias=True)


@dataclass
class ResolvedSlug:
    """Outcome of resolving a request path against the mapping store."""
    slug: str
    subpath: str
    mapping: SlugMapping


@dataclass
class RateLimitDecision:
    """Admission decision for one request."""
    allowed: bool
    limit: int
    remaining: int
    reset_seconds: int
    current_count: int
    error: Optional[str] = None
