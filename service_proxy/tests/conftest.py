"""
Shared fixtures for Proxy service tests.
"""

import json
import math
from typing import Any, Dict, List, Optional

import httpx
import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

BACKEND_BASE_URL = "https://backend.example/app/123/exec"


class FakePipeline:
    """Queues sorted-set commands and runs them on execute, like MULTI/EXEC."""

    def __init__(self, redis: "FakeRedis"):
        self.redis = redis
        self.commands: List[tuple] = []

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        self.commands = []
        return False

    def _queue(self, name: str, *args, **kwargs):
        self.commands.append((name, args, kwargs))
        return self

    def zadd(self, key, mapping):
        return self._queue("zadd", key, mapping)

    def zremrangebyscore(self, key, min, max):
        return self._queue("zremrangebyscore", key, min, max)

    def zcard(self, key):
        return self._queue("zcard", key)

    def expire(self, key, seconds):
        return self._queue("expire", key, seconds)

    def zrange(self, key, start, end, withscores=False):
        return self._queue("zrange", key, start, end, withscores=withscores)

    async def execute(self):
        self.redis._check()
        self.redis.executed_pipelines.append([name for name, _, _ in self.commands])
        results = [getattr(self.redis, f"_{name}")(*args, **kwargs) for name, args, kwargs in self.commands]
        self.commands = []
        return results


class FakeRedis:
    """In-memory stand-in for the redis.asyncio commands the proxy uses."""

    def __init__(self):
        self.values: Dict[str, Any] = {}
        self.sorted_sets: Dict[str, Dict[str, float]] = {}
        self.ttls: Dict[str, int] = {}
        self.executed_pipelines: List[List[str]] = []
        self.fail = False
        self.closed = False

    def _check(self):
        if self.fail:
            raise RedisConnectionError("Connection refused")

    async def get(self, key: str) -> Optional[str]:
        self._check()
        return self.values.get(key)

    async def set(self, key: str, value: Any, nx: bool = False):
        self._check()
        if nx and key in self.values:
            return None
        self.values[key] = str(value)
        return True

    async def incr(self, key: str) -> int:
        self._check()
        value = int(self.values.get(key, 0)) + 1
        self.values[key] = str(value)
        return value

    async def delete(self, *keys: str) -> int:
        self._check()
        removed = 0
        for key in keys:
            removed += int(self.values.pop(key, None) is not None)
            removed += int(self.sorted_sets.pop(key, None) is not None)
        return removed

    async def ping(self) -> bool:
        self._check()
        return True

    async def aclose(self):
        self.closed = True

    def pipeline(self, transaction: bool = True) -> FakePipeline:
        return FakePipeline(self)

    # Sorted-set commands, executed through the pipeline

    def _zadd(self, key, mapping):
        members = self.sorted_sets.setdefault(key, {})
        added = sum(1 for member in mapping if member not in members)
        members.update({member: float(score) for member, score in mapping.items()})
        return added

    @staticmethod
    def _bound(value):
        text = str(value)
        if text in ("-inf", "+inf", "inf"):
            return (-math.inf if text == "-inf" else math.inf), False
        if text.startswith("("):
            return float(text[1:]), True
        return float(text), False

    def _zremrangebyscore(self, key, min, max):
        members = self.sorted_sets.get(key, {})
        low, low_exclusive = self._bound(min)
        high, high_exclusive = self._bound(max)

        def in_range(score):
            above = score > low if low_exclusive else score >= low
            below = score < high if high_exclusive else score <= high
            return above and below

        doomed = [member for member, score in members.items() if in_range(score)]
        for member in doomed:
            del members[member]
        return len(doomed)

    def _zcard(self, key):
        return len(self.sorted_sets.get(key, {}))

    def _expire(self, key, seconds):
        self.ttls[key] = seconds
        return key in self.sorted_sets

    def _zrange(self, key, start, end, withscores=False):
        ordered = sorted(self.sorted_sets.get(key, {}).items(), key=lambda item: item[1])
        stop = None if end == -1 else end + 1
        selected = ordered[start:stop]
        if withscores:
            return [(member, score) for member, score in selected]
        return [member for member, _ in selected]


class RecordingBackend:
    """httpx.MockTransport handler that records requests and replays canned responses."""

    def __init__(self):
        self.requests: List[httpx.Request] = []
        self.bodies: List[bytes] = []
        self.status_code = 200
        self.content = b"ok"
        self.headers: List[tuple] = [("content-type", "text/plain")]
        self.error: Optional[Exception] = None

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        self.bodies.append(request.content)
        if self.error is not None:
            raise self.error
        return httpx.Response(self.status_code, content=self.content, headers=self.headers)

    @property
    def last_request(self) -> httpx.Request:
        return self.requests[-1]

    def respond(self, status_code: int = 200, content: bytes = b"", headers: Optional[List[tuple]] = None):
        self.status_code = status_code
        self.content = content
        self.headers = list(headers or [])


def store_mapping(redis: FakeRedis, slug: str = "my-app", backend_base_url: str = BACKEND_BASE_URL, **extra):
    """Put a mapping in the fake store the way the registration flow writes it."""
    document = {
        "slug": slug,
        "backendBaseUrl": backend_base_url,
        "appName": extra.pop("app_name", "My App"),
        "createdAt": "2024-01-01T00:00:00Z",
        "accessCount": 0,
    }
    document.update(extra)
    redis.values[f"slug:{slug}"] = json.dumps(document)


@pytest.fixture
def fake_redis():
    return FakeRedis()


@pytest.fixture
def backend():
    return RecordingBackend()


@pytest.fixture
def backend_transport(backend):
    return httpx.MockTransport(backend)


@pytest.fixture
def add_mapping(fake_redis):
    """Register a mapping in the fake store."""
    def _add(slug: str = "my-app", backend_base_url: str = BACKEND_BASE_URL, **extra):
        store_mapping(fake_redis, slug, backend_base_url, **extra)
    return _add
