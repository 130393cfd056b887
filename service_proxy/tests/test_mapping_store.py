"""
Unit tests for the Redis mapping store.
"""

import json

import pytest

from service_proxy.app.adapters.mapping_store import MappingStore, validate_mapping
from service_proxy.app.domain.models import SlugMapping
from shared.errors import SlugConflictError, StoreUnavailableError, ValidationError


def _mapping(slug="my-app", url="https://backend.example/app/123/exec", name="My App"):
    return SlugMapping(slug=slug, backend_base_url=url, display_name=name)


class TestValidateMapping:
    """Test cases for validate_mapping."""

    def test_valid_mapping(self):
        validate_mapping(_mapping(), "/exec")

    @pytest.mark.parametrize("slug", ["My-App", "my_app", "my app", ""])
    def test_invalid_slug(self, slug):
        with pytest.raises(ValidationError):
            validate_mapping(_mapping(slug=slug), "/exec")

    @pytest.mark.parametrize("url", [
        "http://backend.example/app/exec",
        "https:///exec",
        "https://backend.example/app/dev",
        "backend.example/app/exec",
    ])
    def test_invalid_backend_url(self, url):
        with pytest.raises(ValidationError):
            validate_mapping(_mapping(url=url), "/exec")


class TestMappingStore:
    """Test cases for MappingStore."""

    @pytest.fixture
    def store(self, fake_redis):
        return MappingStore(fake_redis)

    @pytest.mark.asyncio
    async def test_get_missing_mapping(self, store):
        assert await store.get_mapping("nope") is None

    @pytest.mark.asyncio
    async def test_create_and_get(self, store, fake_redis):
        """Test a created mapping is stored with camelCase fields and a zero counter."""
        await store.create_mapping(_mapping())

        stored = json.loads(fake_redis.values["slug:my-app"])
        assert stored["backendBaseUrl"] == "https://backend.example/app/123/exec"
        assert stored["appName"] == "My App"
        assert fake_redis.values["slug:my-app:count"] == "0"

        mapping = await store.get_mapping("my-app")
        assert mapping.backend_base_url == "https://backend.example/app/123/exec"
        assert mapping.display_name == "My App"

    @pytest.mark.asyncio
    async def test_create_duplicate_conflicts(self, store):
        await store.create_mapping(_mapping())

        with pytest.raises(SlugConflictError) as exc_info:
            await store.create_mapping(_mapping(url="https://other.example/x/exec"))

        assert exc_info.value.status_code == 409

    @pytest.mark.asyncio
    async def test_create_invalid_rejected(self, store, fake_redis):
        with pytest.raises(ValidationError):
            await store.create_mapping(_mapping(slug="Bad Slug"))

        assert fake_redis.values == {}

    @pytest.mark.asyncio
    async def test_access_counter(self, store):
        await store.create_mapping(_mapping())

        assert await store.increment_access_count("my-app") == 1
        assert await store.increment_access_count("my-app") == 2
        assert await store.get_access_count("my-app") == 2

    @pytest.mark.asyncio
    async def test_access_count_defaults_to_zero(self, store):
        assert await store.get_access_count("never-seen") == 0

    @pytest.mark.asyncio
    async def test_malformed_mapping(self, store, fake_redis):
        fake_redis.values["slug:broken"] = "{not json"

        with pytest.raises(StoreUnavailableError):
            await store.get_mapping("broken")

    @pytest.mark.asyncio
    async def test_transport_error(self, store, fake_redis):
        fake_redis.fail = True

        with pytest.raises(StoreUnavailableError):
            await store.get_mapping("my-app")

    @pytest.mark.asyncio
    async def test_health_check(self, store, fake_redis):
        assert await store.health_check() is True

        fake_redis.fail = True
        assert await store.health_check() is False
