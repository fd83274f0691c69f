"""Unit tests for the Redis client wrapper."""

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from studioflow.core.redis_client import RedisClient, with_retry


@pytest.mark.unit
class TestWithRetry:
    async def test_retries_then_succeeds(self):
        """Test that with_retry retries transient failures."""
        calls = []

        @with_retry(max_retries=3, base_delay=0)
        async def flaky():
            calls.append(1)
            if len(calls) < 3:
                raise RedisConnectionError("reset")
            return "ok"

        assert await flaky() == "ok"
        assert len(calls) == 3

    async def test_gives_up_after_max_retries(self):
        """Test that with_retry gives up after the maximum attempts."""
        @with_retry(max_retries=2, base_delay=0)
        async def always_down():
            raise RedisConnectionError("down")

        with pytest.raises(RedisConnectionError, match="down"):
            await always_down()


@pytest.mark.unit
class TestDisabledClient:
    async def test_publish_and_ping_without_url(self):
        """Test that a client without URL is disabled and harmless."""
        client = RedisClient(url=None)

        assert not client.is_available
        assert await client.publish("notifications:user:u1", "{}") is None
        assert await client.ping() is False
        assert client.get_health_status() == {
            "enabled": False,
            "connected": False,
            "last_successful_operation": None,
            "failure_count": 0,
            "total_operations": 0,
        }
