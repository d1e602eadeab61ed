from datetime import datetime

from sqlalchemy import BigInteger, Boolean, DateTime, Integer, String, func
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column, relationship

from klarity.models.base import Base


class User(Base):
    __tablename__ = "users"

    # Telegram user_id as PK (BIGINT, not UUID)
    id: Mapped[int] = mapped_column(BigInteger, primary_key=True)

    username: Mapped[str | None] = mapped_column(String(255), nullable=True)
    first_name: Mapped[str] = mapped_column(String(255), default="")
    last_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    email: Mapped[str | None] = mapped_column(String(255), nullable=True)
    phone_number: Mapped[str | None] = mapped_column(String(50), nullable=True)

    # Conversation / booking flow state
    state: Mapped[str] = mapped_column(String(50), default="NONE")
    session_type: Mapped[str | None] = mapped_column(String(100), nullable=True)
    booking_slot: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    conversation_history: Mapped[list | None] = mapped_column(JSONB, nullable=True)
    edit_msg_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    active_session_id: Mapped[str | None] = mapped_column(String(64), nullable=True)

    is_active: Mapped[bool] = mapped_column(Boolean, default=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    updated_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), onupdate=func.now(), nullable=True
    )

    bookings: Mapped[list["Booking"]] = relationship(back_populates="user", cascade="all, delete-orphan")  # type: ignore[name-defined]  # noqa: F821
