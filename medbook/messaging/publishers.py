"""Publishers for the notification and event channels."""

import json
from collections.abc import Mapping
from datetime import UTC, datetime
from uuid import uuid4

import redis.asyncio as redis
import structlog

from medbook.config import settings
from medbook.core.lifecycle import ensure_supported_country
from medbook.messaging.channel import Channel, RedisChannel
from medbook.schemas.appointments import CountryISO
from medbook.schemas.events import (
    DETAIL_TYPES,
    EventKind,
    LifecycleEvent,
    ProcessingCompleted,
    ProcessingFailed,
    ScheduleRequested,
)

logger = structlog.get_logger(__name__)


def country_queue_name(country: CountryISO) -> str:
    """Queue consumed by a country's reservation worker."""
    return f"{settings.channel_prefix}:appointments:{country.value.lower()}"


def events_queue_name() -> str:
    """Queue consumed by the reconciliation worker."""
    return f"{settings.channel_prefix}:appointment-events"


class NotificationPublisher:
    """Fans scheduling requests out to the queue of the appointment's country."""

    def __init__(self, channels: Mapping[CountryISO, Channel]):
        """Initialize publisher with one channel per country."""
        self.channels = channels

    async def publish_schedule_requested(self, event: ScheduleRequested) -> str:
        """
        Publish a ScheduleRequested event wrapped in a notification envelope.

        Args:
            event: Scheduling request

        Returns:
            Channel message ID
        """
        country = ensure_supported_country(event.country_iso)
        envelope = {
            "Type": "Notification",
            "MessageId": str(uuid4()),
            "Message": json.dumps(event.to_wire()),
            "MessageAttributes": {
                "countryISO": {"DataType": "String", "StringValue": country.value},
                "eventType": {
                    "DataType": "String",
                    "StringValue": EventKind.SCHEDULE_REQUESTED.value,
                },
            },
            "Timestamp": datetime.now(UTC).isoformat(),
        }

        message_id = await self.channels[country].publish(json.dumps(envelope))

        logger.info(
            "schedule_requested_published",
            appointment_id=event.appointment_id,
            country=country.value,
            message_id=message_id,
        )
        return message_id


class EventPublisher:
    """Emits processing outcomes on the event channel."""

    def __init__(self, channel: Channel, source: str | None = None):
        """Initialize publisher with the event channel."""
        self.channel = channel
        self.source = source or settings.event_source

    async def _emit(self, kind: EventKind, event: LifecycleEvent) -> str:
        envelope = {
            "id": str(uuid4()),
            "source": self.source,
            "detail-type": DETAIL_TYPES[kind],
            "time": datetime.now(UTC).isoformat(),
            "detail": event.to_wire(),
        }
        return await self.channel.publish(json.dumps(envelope))

    async def emit_completed(self, event: ProcessingCompleted) -> str:
        """Emit a ProcessingCompleted event."""
        message_id = await self._emit(EventKind.COMPLETED, event)
        logger.info(
            "appointment_completed_emitted",
            appointment_id=event.appointment_id,
            country=event.country_iso,
        )
        return message_id

    async def emit_failed(self, event: ProcessingFailed) -> str:
        """Emit a ProcessingFailed event."""
        message_id = await self._emit(EventKind.FAILED, event)
        logger.info(
            "appointment_failed_emitted",
            appointment_id=event.appointment_id,
            country=event.country_iso,
            error=event.error,
        )
        return message_id


def build_notification_publisher(redis_client: redis.Redis) -> NotificationPublisher:
    """Create a notification publisher over Redis channels."""
    return NotificationPublisher(
        {
            country: RedisChannel(
                redis_client, country_queue_name(country), settings.channel_max_deliveries
            )
            for country in CountryISO
        }
    )


def build_event_publisher(redis_client: redis.Redis) -> EventPublisher:
    """Create an event publisher over the Redis event channel."""
    return EventPublisher(
        RedisChannel(redis_client, events_queue_name(), settings.channel_max_deliveries)
    )
