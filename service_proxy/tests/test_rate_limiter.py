"""
Unit tests for the sliding window rate limiter.
"""

import pytest
from unittest.mock import AsyncMock, MagicMock, patch

from redis.exceptions import ConnectionError as RedisConnectionError

from service_proxy.app.ratelimit.sliding_window import SlidingWindowRateLimiter, client_identifier
from shared.errors import StoreUnavailableError

NOW_MS = 1_700_000_000_000


class TestSlidingWindowRateLimiter:
    """Test cases for SlidingWindowRateLimiter."""

    @pytest.fixture
    def rate_limiter(self, fake_redis):
        """Create SlidingWindowRateLimiter instance."""
        return SlidingWindowRateLimiter(fake_redis, prefix="proxy", default_limit=60, default_window_seconds=60)

    def test_make_key(self, rate_limiter):
        """Test rate limit key generation."""
        assert rate_limiter._make_key("10.0.0.1") == "ratelimit:proxy:10.0.0.1"

    @pytest.mark.asyncio
    async def test_first_request_allowed(self, rate_limiter):
        """Test a fresh client is admitted with the full budget minus one."""
        with patch.object(rate_limiter, "_now_ms", return_value=NOW_MS):
            decision = await rate_limiter.admit("10.0.0.1")

        assert decision.allowed is True
        assert decision.current_count == 1
        assert decision.limit == 60
        assert decision.remaining == 59
        assert decision.reset_seconds == 60

    @pytest.mark.asyncio
    async def test_sixty_first_request_rejected(self, rate_limiter):
        """Test the request that exceeds the limit is the only one rejected."""
        with patch.object(rate_limiter, "_now_ms", return_value=NOW_MS):
            decisions = [await rate_limiter.admit("10.0.0.1") for _ in range(61)]

        assert all(decision.allowed for decision in decisions[:60])
        assert decisions[59].remaining == 0
        assert decisions[60].allowed is False
        assert decisions[60].remaining == 0
        assert decisions[60].current_count == 61

    @pytest.mark.asyncio
    async def test_entries_older_than_window_do_not_count(self, rate_limiter):
        """Test requests made more than a window ago are pruned."""
        with patch.object(rate_limiter, "_now_ms", return_value=NOW_MS):
            for _ in range(60):
                await rate_limiter.admit("10.0.0.1")

        with patch.object(rate_limiter, "_now_ms", return_value=NOW_MS + 60_001):
            decision = await rate_limiter.admit("10.0.0.1")

        assert decision.allowed is True
        assert decision.current_count == 1

    @pytest.mark.asyncio
    async def test_entry_exactly_at_window_edge_still_counts(self, rate_limiter):
        """Test only strictly older entries are pruned."""
        with patch.object(rate_limiter, "_now_ms", return_value=NOW_MS):
            for _ in range(60):
                await rate_limiter.admit("10.0.0.1")

        with patch.object(rate_limiter, "_now_ms", return_value=NOW_MS + 60_000):
            decision = await rate_limiter.admit("10.0.0.1")

        assert decision.allowed is False

    @pytest.mark.asyncio
    async def test_reset_derived_from_oldest_entry(self, rate_limiter):
        """Test reset seconds count down from the oldest retained request."""
        with patch.object(rate_limiter, "_now_ms", return_value=NOW_MS):
            await rate_limiter.admit("10.0.0.1")

        with patch.object(rate_limiter, "_now_ms", return_value=NOW_MS + 15_500):
            decision = await rate_limiter.admit("10.0.0.1")

        # ceil((oldest + 60000 - now) / 1000) = ceil(44.5)
        assert decision.reset_seconds == 45

    @pytest.mark.asyncio
    async def test_clients_are_isolated(self, rate_limiter):
        """Test one client's usage does not affect another."""
        with patch.object(rate_limiter, "_now_ms", return_value=NOW_MS):
            for _ in range(61):
                await rate_limiter.admit("10.0.0.1")
            decision = await rate_limiter.admit("10.0.0.2")

        assert decision.allowed is True
        assert decision.current_count == 1

    @pytest.mark.asyncio
    async def test_single_transaction_per_check(self, rate_limiter, fake_redis):
        """Test all commands of one check run in one MULTI/EXEC."""
        await rate_limiter.admit("10.0.0.1")

        assert fake_redis.executed_pipelines == [
            ["zadd", "zremrangebyscore", "zcard", "expire", "zrange"]
        ]
        assert fake_redis.ttls["ratelimit:proxy:10.0.0.1"] == 60

    @pytest.mark.asyncio
    async def test_custom_limit_and_window(self, rate_limiter):
        """Test per-call overrides of limit and window."""
        with patch.object(rate_limiter, "_now_ms", return_value=NOW_MS):
            first = await rate_limiter.admit("10.0.0.1", limit=1, window_seconds=10)
            second = await rate_limiter.admit("10.0.0.1", limit=1, window_seconds=10)

        assert first.allowed is True
        assert second.allowed is False
        assert second.reset_seconds == 10

    @pytest.mark.asyncio
    async def test_fail_open_when_redis_unavailable(self, rate_limiter, fake_redis):
        """Test requests are admitted when Redis is down."""
        fake_redis.fail = True

        decision = await rate_limiter.admit("10.0.0.1")

        assert decision.allowed is True
        assert decision.error == "Redis unavailable"

    @pytest.mark.asyncio
    async def test_fail_closed_raises(self, fake_redis):
        """Test fail-closed limiter surfaces the store failure."""
        fake_redis.fail = True
        rate_limiter = SlidingWindowRateLimiter(fake_redis, fail_open=False)

        with pytest.raises(StoreUnavailableError):
            await rate_limiter.admit("10.0.0.1")

    @pytest.mark.asyncio
    async def test_pipeline_error_with_mocked_redis(self):
        """Test transport errors raised by execute are handled."""
        mock_redis = MagicMock()
        mock_pipeline = MagicMock()
        mock_pipeline.execute = AsyncMock(side_effect=RedisConnectionError("Connection refused"))
        mock_redis.pipeline.return_value.__aenter__.return_value = mock_pipeline

        rate_limiter = SlidingWindowRateLimiter(mock_redis)
        decision = await rate_limiter.admit("10.0.0.1")

        assert decision.allowed is True
        mock_redis.pipeline.assert_called_once_with(transaction=True)

    @pytest.mark.asyncio
    async def test_reset(self, rate_limiter, fake_redis):
        """Test resetting a client's window."""
        await rate_limiter.admit("10.0.0.1")

        assert await rate_limiter.reset("10.0.0.1") is True
        assert "ratelimit:proxy:10.0.0.1" not in fake_redis.sorted_sets


class TestClientIdentifier:
    """Test cases for client_identifier."""

    def _request(self, headers=None, host="127.0.0.1"):
        request = MagicMock()
        request.headers = headers or {}
        request.client.host = host
        return request

    def test_forwarded_for_first_hop(self):
        request = self._request({"X-Forwarded-For": "203.0.113.7, 10.0.0.1"})
        assert client_identifier(request) == "203.0.113.7"

    def test_real_ip(self):
        request = self._request({"X-Real-IP": "203.0.113.8"})
        assert client_identifier(request) == "203.0.113.8"

    def test_socket_peer(self):
        assert client_identifier(self._request()) == "127.0.0.1"

    def test_unknown_without_client(self):
        request = self._request()
        request.client = None
        assert client_identifier(request) == "unknown"
