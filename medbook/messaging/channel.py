"""At-least-once message channel on Redis lists.

A message moves from the queue list to a processing list when received and
stays there until it is acknowledged. Unacknowledged messages are requeued
by ``nack`` until they reach the delivery limit, then parked on a dead-letter
list.
"""

import json
from dataclasses import dataclass, field
from typing import Protocol
from uuid import uuid4

import redis.asyncio as redis
import structlog
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import TimeoutError as RedisTimeoutError

from medbook.core.exceptions import StoreUnavailable

logger = structlog.get_logger(__name__)

# Errors raised by entries that are not channel elements
UNDECODABLE = (ValueError, KeyError, TypeError, AttributeError)


@dataclass(frozen=True)
class ChannelMessage:
    """A received message and its delivery bookkeeping."""

    message_id: str
    body: str
    receive_count: int
    last_delivery: bool
    raw: str = ""


@dataclass
class BatchResult:
    """Per-message outcome of one batch."""

    processed: list[str] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)
    retry: list[str] = field(default_factory=list)
    dropped: list[str] = field(default_factory=list)

    @property
    def total(self) -> int:
        """Number of messages in the batch."""
        return len(self.processed) + len(self.failed) + len(self.retry) + len(self.dropped)

    def summary(self) -> dict[str, int]:
        """Counts by outcome, for logging."""
        return {
            "total_messages": self.total,
            "successful": len(self.processed),
            "failed": len(self.failed),
            "retry": len(self.retry),
            "dropped": len(self.dropped),
        }


class Channel(Protocol):
    """Operations the services need from a channel."""

    name: str

    async def publish(self, body: str) -> str: ...

    async def receive(self, max_messages: int = 10, wait_seconds: int = 5) -> list[ChannelMessage]: ...

    async def ack(self, message: ChannelMessage) -> None: ...

    async def nack(self, message: ChannelMessage) -> bool: ...

    async def recover(self) -> int: ...


class RedisChannel:
    """Point-to-point queue backed by Redis lists."""

    def __init__(self, redis_client: redis.Redis, name: str, max_deliveries: int = 3):
        """Initialize channel with Redis client and queue name."""
        self.redis = redis_client
        self.name = name
        self.max_deliveries = max_deliveries

    @property
    def processing_key(self) -> str:
        """List holding received but unacknowledged messages."""
        return f"{self.name}:processing"

    @property
    def dead_letter_key(self) -> str:
        """List holding messages that exhausted their deliveries."""
        return f"{self.name}:dead-letter"

    @staticmethod
    def _encode(message_id: str, body: str, receive_count: int) -> str:
        return json.dumps({"messageId": message_id, "body": body, "receiveCount": receive_count})

    @staticmethod
    def _text(raw: str | bytes) -> str:
        return raw.decode("utf-8", errors="replace") if isinstance(raw, bytes) else raw

    def _decode(self, raw: str | bytes) -> ChannelMessage:
        text = self._text(raw)
        data = json.loads(text)
        receive_count = int(data.get("receiveCount", 0)) + 1
        return ChannelMessage(
            message_id=data["messageId"],
            body=data["body"],
            receive_count=receive_count,
            last_delivery=receive_count >= self.max_deliveries,
            raw=text,
        )

    async def publish(self, body: str) -> str:
        """
        Append a message to the queue.

        Args:
            body: Message body (JSON text)

        Returns:
            Generated message ID

        Raises:
            StoreUnavailable: If Redis cannot be reached
        """
        message_id = str(uuid4())
        try:
            await self.redis.lpush(self.name, self._encode(message_id, body, 0))
        except (RedisConnectionError, RedisTimeoutError) as e:
            raise StoreUnavailable(f"Channel {self.name} unavailable: {e}") from e
        return message_id

    async def receive(self, max_messages: int = 10, wait_seconds: int = 5) -> list[ChannelMessage]:
        """
        Receive up to ``max_messages`` messages, blocking for the first one.

        Args:
            max_messages: Batch size
            wait_seconds: How long to wait for the first message

        Returns:
            Received messages, oldest first
        """
        try:
            first = await self.redis.blmove(
                self.name, self.processing_key, wait_seconds, src="RIGHT", dest="LEFT"
            )
            if first is None:
                return []
            raw_messages = [first]
            while len(raw_messages) < max_messages:
                item = await self.redis.lmove(self.name, self.processing_key, src="RIGHT", dest="LEFT")
                if item is None:
                    break
                raw_messages.append(item)
        except (RedisConnectionError, RedisTimeoutError) as e:
            raise StoreUnavailable(f"Channel {self.name} unavailable: {e}") from e

        messages = []
        for raw in raw_messages:
            try:
                messages.append(self._decode(raw))
            except UNDECODABLE:
                await self._dead_letter_undecodable(raw)
        return messages

    async def _dead_letter_undecodable(self, raw: str | bytes) -> None:
        text = self._text(raw)
        try:
            await self.redis.lpush(self.dead_letter_key, text)
            await self.redis.lrem(self.processing_key, -1, raw)
        except (RedisConnectionError, RedisTimeoutError) as e:
            raise StoreUnavailable(f"Channel {self.name} unavailable: {e}") from e
        logger.error("undecodable_message_dead_lettered", channel=self.name, raw=text[:200])

    async def ack(self, message: ChannelMessage) -> None:
        """Remove a processed message from the processing list."""
        try:
            await self.redis.lrem(self.processing_key, 1, message.raw)
        except (RedisConnectionError, RedisTimeoutError) as e:
            raise StoreUnavailable(f"Channel {self.name} unavailable: {e}") from e

    async def nack(self, message: ChannelMessage) -> bool:
        """
        Return a message for redelivery, or dead-letter it after the last delivery.

        Returns:
            True if the message was requeued, False if it was dead-lettered
        """
        try:
            return await self._release(message)
        except (RedisConnectionError, RedisTimeoutError) as e:
            raise StoreUnavailable(f"Channel {self.name} unavailable: {e}") from e

    async def _release(self, message: ChannelMessage) -> bool:
        encoded = self._encode(message.message_id, message.body, message.receive_count)

        if message.last_delivery:
            await self.redis.lpush(self.dead_letter_key, encoded)
            await self.redis.lrem(self.processing_key, 1, message.raw)
            logger.warning(
                "message_dead_lettered",
                channel=self.name,
                message_id=message.message_id,
                receive_count=message.receive_count,
            )
            return False

        # Requeue at the consuming end so it is redelivered next
        await self.redis.rpush(self.name, encoded)
        await self.redis.lrem(self.processing_key, 1, message.raw)
        return True

    async def recover(self) -> int:
        """
        Return messages left on the processing list by a stopped consumer.

        Each entry counts as a delivery, so a message that keeps crashing its
        consumer is dead-lettered once it reaches the delivery limit. The
        entry is copied before it is removed; a crash in between duplicates
        the message rather than losing it.

        Returns:
            Number of entries moved off the processing list
        """
        recovered = 0
        try:
            while True:
                raw = await self.redis.lindex(self.processing_key, -1)
                if raw is None:
                    break
                try:
                    message = self._decode(raw)
                except UNDECODABLE:
                    await self._dead_letter_undecodable(raw)
                else:
                    await self._release(message)
                recovered += 1
        except (RedisConnectionError, RedisTimeoutError) as e:
            raise StoreUnavailable(f"Channel {self.name} unavailable: {e}") from e

        if recovered:
            logger.warning("inflight_messages_recovered", channel=self.name, count=recovered)
        return recovered
