"""Worker task: fail bookings whose calendar event never got created."""

import logging

from klarity.config import settings
from klarity.database import async_session_factory
from klarity.services.booking_service import expire_pending_bookings
from klarity.utils.metrics import bookings_total

logger = logging.getLogger(__name__)


async def expire_pending_bookings_task(ctx: dict) -> int:
    """Mark PENDING_CALENDAR bookings older than the configured TTL as FAILED."""
    async with async_session_factory() as session:
        count = await expire_pending_bookings(session, settings.pending_booking_ttl_minutes)
        await session.commit()

    if count:
        bookings_total.labels(status="failed").inc(count)
        logger.warning("Marked %d stale pending bookings as FAILED", count)
    return count
