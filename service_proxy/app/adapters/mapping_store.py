"""
Redis-backed store for slug mappings and access counters.
"""

import json
from typing import Optional
from urllib.parse import urlparse

import redis.asyncio as redis
from pydantic import ValidationError as SchemaValidationError
from redis.exceptions import RedisError

from shared.logging import get_logger
from shared.errors import SlugConflictError, StoreUnavailableError, ValidationError
from ..domain.models import SLUG_PATTERN, SlugMapping


def validate_mapping(mapping: SlugMapping, backend_suffix: str) -> None:
    """Check slug and backend URL format. Only called on creation."""
    if not SLUG_PATTERN.match(mapping.slug):
        raise ValidationError(
            "Slug may only contain lowercase letters, digits and hyphens",
            details={"slug": mapping.slug}
        )

    parsed = urlparse(mapping.backend_base_url)
    if parsed.scheme != "https" or not parsed.netloc:
        raise ValidationError(
            "Backend URL must be an absolute https URL",
            details={"backend_base_url": mapping.backend_base_url}
        )
    if backend_suffix and not parsed.path.endswith(backend_suffix):
        raise ValidationError(
            f"Backend URL must end with {backend_suffix}",
            details={"backend_base_url": mapping.backend_base_url}
        )


class MappingStore:
    """Read/write access to slug mappings and their counters."""

    SLUG_PREFIX = "slug:"

    def __init__(self, redis_client: redis.Redis, backend_suffix: str = "/exec"):
        self.redis = redis_client
        self.backend_suffix = backend_suffix
        self.logger = get_logger("proxy.mapping_store")

    def _mapping_key(self, slug: str) -> str:
        return f"{self.SLUG_PREFIX}{slug}"

    def _count_key(self, slug: str) -> str:
        return f"{self.SLUG_PREFIX}{slug}:count"

    async def get_mapping(self, slug: str) -> Optional[SlugMapping]:
        """Fetch the mapping for a slug, or None when it is not registered."""
        key = self._mapping_key(slug)
        try:
            raw = await self.redis.get(key)
        except (RedisError, OSError) as e:
            self.logger.error("Mapping lookup failed", slug=slug, error=str(e))
            raise StoreUnavailableError(details={"key": key, "error": str(e)}) from e

        if raw is None:
            return None

        if isinstance(raw, bytes):
            raw = raw.decode("utf-8")

        try:
            return SlugMapping.model_validate(json.loads(raw))
        except (ValueError, SchemaValidationError) as e:
            self.logger.error("Stored mapping is malformed", slug=slug, error=str(e))
            raise StoreUnavailableError(
                "Stored mapping is malformed",
                details={"key": key}
            ) from e

    async def create_mapping(self, mapping: SlugMapping) -> SlugMapping:
        """Register a new mapping; the slug must not exist yet."""
        validate_mapping(mapping, self.backend_suffix)

        try:
            created = await self.redis.set(self._mapping_key(mapping.slug), mapping.to_store(), nx=True)
            if not created:
                raise SlugConflictError(mapping.slug)
            await self.redis.set(self._count_key(mapping.slug), 0)
        except (RedisError, OSError) as e:
            self.logger.error("Mapping creation failed", slug=mapping.slug, error=str(e))
            raise StoreUnavailableError(details={"error": str(e)}) from e

        self.logger.info("Mapping created", slug=mapping.slug, backend=mapping.backend_base_url)
        return mapping

    async def increment_access_count(self, slug: str) -> int:
        """Bump the independent access counter of a slug."""
        return int(await self.redis.incr(self._count_key(slug)))

    async def get_access_count(self, slug: str) -> int:
        """Read the access counter of a slug (0 when never counted)."""
        try:
            value = await self.redis.get(self._count_key(slug))
        except (RedisError, OSError) as e:
            raise StoreUnavailableError(details={"error": str(e)}) from e
        if isinstance(value, bytes):
            value = value.decode("utf-8")
        return int(value) if value else 0

    async def health_check(self) -> bool:
        """Check Redis health."""
        try:
            await self.redis.ping()
            return True
        except (RedisError, OSError):
            return False
