"""
Live notification broker.

publish(topic, message) / subscribe(topic) contract with two
implementations: an in-process broadcast for single-process deployments and
Redis pub/sub for multi-process ones. The broker instance is created at
startup and handed to consumers through FastAPI dependencies.
"""

import json
import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Any, AsyncIterator, Dict, Set

logger = logging.getLogger(__name__)


def user_topic(user_id: int) -> str:
    """Topic carrying live notifications for one user."""
    return f"notifications:{user_id}"


class EventBroker(ABC):
    """Abstract publish/subscribe broker."""

    @abstractmethod
    async def publish(self, topic: str, message: Dict[str, Any]) -> None:
        raise NotImplementedError()

    @abstractmethod
    def subscribe(self, topic: str) -> AsyncIterator[Dict[str, Any]]:
        """Async iterator of messages published on topic after subscribing."""
        raise NotImplementedError()

    async def close(self) -> None:
        pass


class InMemoryBroker(EventBroker):
    """Broadcast to asyncio queues within one process."""

    def __init__(self, max_queue_size: int = 100):
        self.max_queue_size = max_queue_size
        self._subscribers: Dict[str, Set[asyncio.Queue]] = {}

    def subscriber_count(self, topic: str) -> int:
        return len(self._subscribers.get(topic, ()))

    async def publish(self, topic: str, message: Dict[str, Any]) -> None:
        for queue in list(self._subscribers.get(topic, ())):
            try:
                queue.put_nowait(message)
            except asyncio.QueueFull:
                logger.warning("Dropping message on %s: subscriber queue full", topic)

    async def subscribe(self, topic: str) -> AsyncIterator[Dict[str, Any]]:
        queue: asyncio.Queue = asyncio.Queue(maxsize=self.max_queue_size)
        self._subscribers.setdefault(topic, set()).add(queue)
        try:
            while True:
                yield await queue.get()
        finally:
            subscribers = self._subscribers.get(topic)
            if subscribers is not None:
                subscribers.discard(queue)
                if not subscribers:
                    del self._subscribers[topic]


class RedisBroker(EventBroker):
    """Redis pub/sub; every process subscribed to a topic receives each message."""

    def __init__(self, redis_client):
        self.redis = redis_client

    async def publish(self, topic: str, message: Dict[str, Any]) -> None:
        await self.redis.publish(topic, json.dumps(message, default=str))

    async def subscribe(self, topic: str) -> AsyncIterator[Dict[str, Any]]:
        pubsub = self.redis.pubsub()
        await pubsub.subscribe(topic)
        try:
            async for raw in pubsub.listen():
                if raw.get("type") != "message":
                    continue
                try:
                    yield json.loads(raw["data"])
                except (TypeError, ValueError):
                    logger.warning("Ignoring malformed message on %s", topic)
        finally:
            await pubsub.unsubscribe(topic)
            await pubsub.aclose()

    async def close(self) -> None:
        await self.redis.aclose()
