"""Availability rule lookup: DB default rule with settings fallback."""

import logging

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from klarity.config import settings
from klarity.models.availability_rule import AvailabilityRule
from klarity.services.slots import AvailabilityPolicy

logger = logging.getLogger(__name__)


def policy_from_settings() -> AvailabilityPolicy:
    return AvailabilityPolicy(
        practitioner_timezone=settings.practitioner_timezone,
        weekly_availability=settings.weekly_availability,
        max_advance_days=settings.max_advance_days,
        min_notice_hours=settings.min_notice_hours,
        buffer_time_minutes=settings.buffer_time_minutes,
        max_bookings_per_day=settings.max_bookings_per_day,
        slot_increment_minutes=settings.slot_increment_minutes,
    )


def policy_from_rule(rule: AvailabilityRule) -> AvailabilityPolicy:
    return AvailabilityPolicy(
        practitioner_timezone=rule.practitioner_timezone,
        weekly_availability=rule.weekly_availability or {},
        max_advance_days=rule.max_advance_days,
        min_notice_hours=rule.min_notice_hours,
        buffer_time_minutes=rule.buffer_time_minutes,
        max_bookings_per_day=rule.max_bookings_per_day,
        slot_increment_minutes=rule.slot_increment_minutes,
    )


async def get_default_rule(session: AsyncSession) -> AvailabilityRule | None:
    result = await session.execute(
        select(AvailabilityRule).where(AvailabilityRule.is_default.is_(True)).limit(1)
    )
    return result.scalar_one_or_none()


async def load_availability_policy(session_factory: async_sessionmaker[AsyncSession]) -> AvailabilityPolicy:
    """Return the default availability rule, or the configured fallback when none is stored."""
    async with session_factory() as session:
        rule = await get_default_rule(session)
    if rule is None:
        logger.info("[availability] no default rule in DB, using settings fallback")
        return policy_from_settings()
    return policy_from_rule(rule)
