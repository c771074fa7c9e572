"""Standalone runner for the award consumer.

Reads learning and community events from Redis Streams and turns each one
into a single idempotent ledger award. Redelivered events are harmless: the
ledger's idempotency key absorbs them.

Usage: python -m rada.workers.award_consumer
"""

from __future__ import annotations

import asyncio
import json
import logging
import signal

import redis.asyncio as aioredis
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from rada.config import Settings, get_settings
from rada.database import close_db, get_session_factory, init_db
from rada.exceptions import InvalidAward, UnknownUser
from rada.gamification.events import STREAMS, MalformedEvent, translate_event
from rada.gamification.ledger_service import award
from rada.middleware.logging import setup_logging
from rada.redis_client import build_redis

logger = logging.getLogger(__name__)

CONSUMER_GROUP = "ledger-consumers"

# Stream id that replays this consumer's unacknowledged entries; ">" reads new ones.
PENDING_FROM_START = "0"
RETRY_DELAY_SECONDS = 1.0

_running = True


def parse_event_data(raw_data: dict) -> dict:
    """Event body is JSON in the ``data`` field; fall back to the flat fields."""
    data_str = raw_data.get("data")
    if isinstance(data_str, str):
        try:
            data = json.loads(data_str)
        except json.JSONDecodeError:
            return dict(raw_data)
        return data if isinstance(data, dict) else dict(raw_data)
    return dict(raw_data)


async def process_message(
    session_factory: async_sessionmaker[AsyncSession],
    stream: str,
    msg_id: str,
    raw_data: dict,
    settings: Settings,
) -> str:
    """Apply one stream entry. Returns "awarded", "duplicate" or "rejected".

    Rejected events are permanent failures (bad payload, unknown user) and are
    acknowledged by the caller. Anything else propagates and stays pending.
    """
    try:
        request = translate_event(stream, parse_event_data(raw_data), settings)
    except MalformedEvent as e:
        logger.warning("Dropping malformed event %s from %s: %s", msg_id, stream, e)
        return "rejected"

    async with session_factory() as db:
        try:
            result = await award(
                db,
                request.user,
                request.source_type,
                request.reference_id,
                request.amount,
                description=request.description,
            )
        except (UnknownUser, InvalidAward) as e:
            await db.rollback()
            logger.warning("Rejected event %s from %s: %s", msg_id, stream, e.detail)
            return "rejected"
        await db.commit()

    if not result.accepted:
        return "duplicate"
    logger.info(
        "Awarded %d XP (source=%s ref=%s entry=%s event=%s)",
        request.amount, request.source_type.value, request.reference_id, result.entry_id, msg_id,
    )
    return "awarded"


async def consume(
    redis_client: aioredis.Redis,
    session_factory: async_sessionmaker[AsyncSession],
    consumer_name: str,
    settings: Settings,
) -> None:
    """Main consumer loop.

    Every stream starts on this consumer's pending entries and switches to new
    entries once that backlog is drained. A failure leaves the entry unacked
    and sends its stream back to the backlog, so the entry is read again.
    Backlog reads advance past entries that fail a second time; those wait for
    the next failure or restart.
    """
    cursors = {s: PENDING_FROM_START for s in STREAMS}

    while _running:
        try:
            events = await redis_client.xreadgroup(
                groupname=CONSUMER_GROUP,
                consumername=consumer_name,
                streams=cursors,
                count=100,
                block=5000,
            )
        except aioredis.ResponseError as e:
            logger.error("XREADGROUP error: %s", e)
            await asyncio.sleep(RETRY_DELAY_SECONDS)
            continue

        received: set[str] = set()
        failed: set[str] = set()

        for stream_name, messages in events or []:
            stream_str = stream_name if isinstance(stream_name, str) else stream_name.decode()

            for msg_id, raw_data in messages:
                received.add(stream_str)
                if cursors[stream_str] != ">":
                    cursors[stream_str] = msg_id
                if not raw_data:
                    # Trimmed from the stream while still pending
                    await redis_client.xack(stream_str, CONSUMER_GROUP, msg_id)
                    continue
                try:
                    await process_message(session_factory, stream_str, msg_id, raw_data, settings)
                    await redis_client.xack(stream_str, CONSUMER_GROUP, msg_id)
                except Exception:
                    logger.exception("Failed to process %s from %s", msg_id, stream_str)
                    failed.add(stream_str)

        for stream, cursor in cursors.items():
            if cursor == ">":
                if stream in failed:
                    cursors[stream] = PENDING_FROM_START
            elif stream not in received:
                cursors[stream] = ">"

        if failed:
            await asyncio.sleep(RETRY_DELAY_SECONDS)


async def ensure_groups(redis_client: aioredis.Redis) -> None:
    """Create the consumer group on every stream (idempotent)."""
    for stream in STREAMS:
        try:
            await redis_client.xgroup_create(stream, CONSUMER_GROUP, id="0", mkstream=True)
            logger.info("Created consumer group %s for %s", CONSUMER_GROUP, stream)
        except aioredis.ResponseError as e:
            if "BUSYGROUP" not in str(e):
                raise


async def main() -> None:
    """Run the award consumer until SIGINT/SIGTERM."""
    global _running  # noqa: PLW0603

    settings = get_settings()
    setup_logging(settings)
    await init_db(settings.database_url)

    redis_client = build_redis(settings.redis_url, max_connections=20)
    await ensure_groups(redis_client)

    loop = asyncio.get_running_loop()

    def _stop() -> None:
        global _running  # noqa: PLW0603
        _running = False

    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, _stop)

    logger.info("Starting award consumer (consumer=%s)", settings.ledger_consumer_name)

    try:
        await consume(redis_client, get_session_factory(), settings.ledger_consumer_name, settings)
    finally:
        await redis_client.aclose()
        await close_db()
        logger.info("Award consumer stopped")


if __name__ == "__main__":
    asyncio.run(main())
