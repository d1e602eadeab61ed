import uuid

from sqlalchemy import Boolean, Integer, String
from sqlalchemy.dialects.postgresql import JSONB, UUID
from sqlalchemy.orm import Mapped, mapped_column

from klarity.models.base import Base


class AvailabilityRule(Base):
    """Practitioner working hours and booking constraints."""

    __tablename__ = "availability_rules"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    is_default: Mapped[bool] = mapped_column(Boolean, default=False)
    # {"MON": [{"start": "10:00", "end": "16:00"}], ...}
    weekly_availability: Mapped[dict] = mapped_column(JSONB, default=dict)
    practitioner_timezone: Mapped[str] = mapped_column(String(64), default="America/Chicago")
    max_advance_days: Mapped[int] = mapped_column(Integer, default=60)
    min_notice_hours: Mapped[int] = mapped_column(Integer, default=24)
    buffer_time_minutes: Mapped[int] = mapped_column(Integer, default=30)
    max_bookings_per_day: Mapped[int] = mapped_column(Integer, default=4)
    slot_increment_minutes: Mapped[int] = mapped_column(Integer, default=15)
