"""Test doubles and data builders shared across tests."""

import json
from collections import deque
from datetime import UTC, datetime, timedelta
from typing import Any

from sqlalchemy import insert
from sqlalchemy.ext.asyncio import AsyncEngine

from medbook.core.exceptions import StoreUnavailable
from medbook.messaging.channel import ChannelMessage
from medbook.models.schedules import doctors, medical_centers, medical_schedules, specialities


class FakeChannel:
    """In-memory channel with the same delivery semantics as RedisChannel."""

    def __init__(self, name: str = "test-channel", max_deliveries: int = 3):
        self.name = name
        self.max_deliveries = max_deliveries
        self.queue: deque[tuple[str, str, int]] = deque()
        self.published: list[str] = []
        self.acked: list[str] = []
        self.nacked: list[str] = []
        self.dead_letters: list[ChannelMessage] = []
        self.fail_publish = False
        self.fail_ack = False
        self.recover_calls = 0

    async def publish(self, body: str) -> str:
        if self.fail_publish:
            raise StoreUnavailable(f"Channel {self.name} unavailable")
        message_id = f"{self.name}-{len(self.published) + 1}"
        self.published.append(body)
        self.queue.append((message_id, body, 0))
        return message_id

    async def receive(self, max_messages: int = 10, wait_seconds: int = 0) -> list[ChannelMessage]:
        messages = []
        while self.queue and len(messages) < max_messages:
            message_id, body, count = self.queue.popleft()
            count += 1
            messages.append(
                ChannelMessage(
                    message_id=message_id,
                    body=body,
                    receive_count=count,
                    last_delivery=count >= self.max_deliveries,
                )
            )
        return messages

    async def ack(self, message: ChannelMessage) -> None:
        if self.fail_ack:
            raise StoreUnavailable(f"Channel {self.name} unavailable")
        self.acked.append(message.message_id)

    async def nack(self, message: ChannelMessage) -> bool:
        self.nacked.append(message.message_id)
        if message.last_delivery:
            self.dead_letters.append(message)
            return False
        self.queue.append((message.message_id, message.body, message.receive_count))
        return True

    async def recover(self) -> int:
        self.recover_calls += 1
        return 0

    def envelopes(self) -> list[dict[str, Any]]:
        """Published bodies, decoded."""
        return [json.loads(body) for body in self.published]


def message(body: Any, message_id: str = "msg-1", receive_count: int = 1, last: bool = False):
    """Build a received channel message around a body."""
    if not isinstance(body, str):
        body = json.dumps(body)
    return ChannelMessage(
        message_id=message_id,
        body=body,
        receive_count=receive_count,
        last_delivery=last,
    )


async def seed_schedule(
    engine: AsyncEngine,
    schedule_id: int,
    country_iso: str = "PE",
    is_available: bool = True,
    with_details: bool = True,
) -> datetime:
    """Insert a slot, and unless disabled its center, speciality and doctor."""
    appointment_date = datetime.now(UTC) + timedelta(days=3)
    async with engine.begin() as conn:
        if with_details:
            await conn.execute(
                insert(medical_centers).values(
                    id=schedule_id, name=f"Center {schedule_id}", address="Av. Arequipa 100"
                )
            )
            await conn.execute(insert(specialities).values(id=schedule_id, name="Cardiology"))
            await conn.execute(
                insert(doctors).values(
                    id=schedule_id,
                    first_name="Ana",
                    last_name="Torres",
                    license_number=f"{country_iso}-{schedule_id}",
                )
            )
        await conn.execute(
            insert(medical_schedules).values(
                id=schedule_id,
                country_iso=country_iso,
                center_id=schedule_id if with_details else None,
                speciality_id=schedule_id if with_details else None,
                medic_id=schedule_id if with_details else None,
                appointment_date=appointment_date,
                is_available=is_available,
            )
        )
    return appointment_date


def schedule_requested(
    appointment_id: str = "APT-1700000000000-abc123def456",
    insured_id: str = "01234",
    schedule_id: int = 100,
    country_iso: str = "PE",
) -> dict[str, Any]:
    """ScheduleRequested body wrapped in a notification envelope."""
    payload = {
        "appointmentId": appointment_id,
        "insuredId": insured_id,
        "scheduleId": schedule_id,
        "countryISO": country_iso,
        "createdAt": datetime.now(UTC).isoformat(),
        "eventType": "APPOINTMENT_SCHEDULED",
    }
    return {"Type": "Notification", "Message": json.dumps(payload)}
