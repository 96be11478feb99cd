"""Worker entry points.

Run a country reservation worker or the reconciliation worker::

    python -m medbook.workers.runner reservation --country PE
    python -m medbook.workers.runner reconciliation
"""

import argparse
import asyncio
from collections.abc import Awaitable, Callable

import structlog

from medbook.config import settings
from medbook.core.country_databases import CountryEnginePool
from medbook.core.exceptions import StoreUnavailable
from medbook.core.lifecycle import ensure_supported_country
from medbook.core.redis_client import close_redis_connection, get_redis_client
from medbook.database import AsyncSessionLocal, engine
from medbook.messaging.channel import BatchResult, Channel, ChannelMessage, RedisChannel
from medbook.messaging.publishers import (
    build_event_publisher,
    country_queue_name,
    events_queue_name,
)
from medbook.middleware.logging import configure_logging
from medbook.repositories.appointment_repository import AppointmentRepository
from medbook.services.reconciliation_service import ReconciliationService
from medbook.services.reservation_service import CountryReservationWorker

logger = structlog.get_logger(__name__)

BatchHandler = Callable[[list[ChannelMessage]], Awaitable[BatchResult]]


async def settle_batch(channel: Channel, messages: list[ChannelMessage], result: BatchResult) -> None:
    """
    Acknowledge or return each message of a handled batch.

    Messages marked for retry are returned to the channel; every other
    outcome is final and acknowledged.
    """
    retry = set(result.retry)
    for message in messages:
        if message.message_id in retry:
            await channel.nack(message)
        else:
            await channel.ack(message)


async def consume(
    channel: Channel,
    handler: BatchHandler,
    stop: asyncio.Event | None = None,
    idle_backoff: float = 1.0,
) -> None:
    """
    Receive batches from a channel until stopped.

    Messages a previous consumer left unsettled are returned to the queue
    first. A batch that cannot be settled stays on the processing list and
    is recovered on the next start.

    Args:
        channel: Channel to consume
        handler: Batch handler returning per-message outcomes
        stop: Event ending the loop once set
        idle_backoff: Seconds to wait after the channel became unreachable
    """
    stop = stop or asyncio.Event()
    logger.info("worker_started", channel=channel.name)

    try:
        await channel.recover()
    except StoreUnavailable as e:
        logger.error("channel_recover_failed", channel=channel.name, error=e.message)

    while not stop.is_set():
        try:
            messages = await channel.receive(settings.worker_batch_size, settings.worker_wait_seconds)
        except StoreUnavailable as e:
            logger.error("channel_receive_failed", channel=channel.name, error=e.message)
            await asyncio.sleep(idle_backoff)
            continue

        if not messages:
            continue

        result = await handler(messages)
        try:
            await settle_batch(channel, messages, result)
        except StoreUnavailable as e:
            logger.error("channel_settle_failed", channel=channel.name, error=e.message)
            await asyncio.sleep(idle_backoff)

    logger.info("worker_stopped", channel=channel.name)


async def run_reservation_worker(country_iso: str, stop: asyncio.Event | None = None) -> None:
    """Run the reservation worker of one country."""
    country = ensure_supported_country(country_iso)
    redis_client = get_redis_client()
    engine_pool = CountryEnginePool()
    worker = CountryReservationWorker(country.value, engine_pool, build_event_publisher(redis_client))
    channel = RedisChannel(redis_client, country_queue_name(country), settings.channel_max_deliveries)

    try:
        await consume(channel, worker.handle_batch, stop)
    finally:
        await engine_pool.release_all()
        await close_redis_connection()


async def reconcile_batch(messages: list[ChannelMessage]) -> BatchResult:
    """Apply a batch of outcome events with a fresh appointment store session."""
    async with AsyncSessionLocal() as session:
        service = ReconciliationService(AppointmentRepository(session))
        return await service.handle_batch(messages)


async def run_reconciliation_worker(stop: asyncio.Event | None = None) -> None:
    """Run the reconciliation worker."""
    channel = RedisChannel(get_redis_client(), events_queue_name(), settings.channel_max_deliveries)

    try:
        await consume(channel, reconcile_batch, stop)
    finally:
        await engine.dispose()
        await close_redis_connection()


def main(argv: list[str] | None = None) -> None:
    """Command line entry point."""
    parser = argparse.ArgumentParser(description="Run an appointment lifecycle worker")
    subparsers = parser.add_subparsers(dest="worker", required=True)

    reservation = subparsers.add_parser("reservation", help="Book schedule slots for one country")
    reservation.add_argument("--country", required=True, choices=["PE", "CL"], type=str.upper)

    subparsers.add_parser("reconciliation", help="Apply processing outcomes to appointments")

    args = parser.parse_args(argv)
    configure_logging()

    try:
        if args.worker == "reservation":
            asyncio.run(run_reservation_worker(args.country))
        else:
            asyncio.run(run_reconciliation_worker())
    except KeyboardInterrupt:
        logger.info("worker_interrupted", worker=args.worker)


if __name__ == "__main__":
    main()
