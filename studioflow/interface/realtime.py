"""Real-time push channel for delivering notifications to connected users."""

import json
import logging
from typing import Any, Protocol

from studioflow.core.config import Constants
from studioflow.core.redis_client import RedisClient, redis_client


logger = logging.getLogger(__name__)


class PushChannel(Protocol):
    """Delivers a payload to one recipient user, best effort."""

    async def deliver(self, user_id: str, payload: dict[str, Any]) -> bool: ...


class RedisPushChannel:
    """Publishes notification events on a per-user Redis pub/sub channel.

    Socket gateways subscribe to ``notifications:user:<user_id>`` and forward
    each ``new_notification`` event to the user's open connections.
    """

    def __init__(self, client: RedisClient) -> None:
        self._client = client

    @staticmethod
    def channel_for(user_id: str) -> str:
        return f"{Constants.PUSH_CHANNEL_PREFIX}{user_id}"

    async def deliver(self, user_id: str, payload: dict[str, Any]) -> bool:
        if not self._client.is_available:
            logger.debug("Push skipped for user %s: Redis unavailable", user_id)
            return False

        message = json.dumps({"event": Constants.PUSH_EVENT_NAME, "data": payload}, default=str)
        receivers = await self._client.publish(self.channel_for(user_id), message)
        return receivers is not None


# Global push channel instance
push_channel: PushChannel = RedisPushChannel(redis_client)
