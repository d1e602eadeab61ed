from klarity.models.agent_log import AgentLog
from klarity.models.availability_rule import AvailabilityRule
from klarity.models.base import Base
from klarity.models.booking import Booking, BookingStatus
from klarity.models.user import User

__all__ = [
    "AgentLog",
    "AvailabilityRule",
    "Base",
    "Booking",
    "BookingStatus",
    "User",
]
