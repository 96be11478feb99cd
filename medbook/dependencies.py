"""FastAPI dependencies."""

from typing import Annotated

import redis.asyncio as redis
from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from medbook.core.redis_client import get_redis_client
from medbook.database import get_db
from medbook.messaging.publishers import NotificationPublisher, build_notification_publisher
from medbook.services.appointment_service import AppointmentService


def get_notification_publisher(
    redis_client: Annotated[redis.Redis, Depends(get_redis_client)],
) -> NotificationPublisher:
    """Publisher fanning scheduling requests out to the country queues."""
    return build_notification_publisher(redis_client)


def get_appointment_service(
    db: Annotated[AsyncSession, Depends(get_db)],
    publisher: Annotated[NotificationPublisher, Depends(get_notification_publisher)],
) -> AppointmentService:
    """
    Build the appointment service for one request.

    Args:
        db: Database session
        publisher: Notification publisher

    Returns:
        Appointment service bound to the request session
    """
    return AppointmentService(db, publisher)


# Type aliases for dependency injection
AppointmentServiceDep = Annotated[AppointmentService, Depends(get_appointment_service)]
