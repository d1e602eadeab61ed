"""Booking client lookup and registration."""

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from klarity.models.user import User
from klarity.schemas.user import UserCreate

# Telegram profile fields mirrored onto the user row when they change
_PROFILE_FIELDS = ("username", "first_name", "last_name")


async def get_user(session: AsyncSession, user_id: int) -> User | None:
    result = await session.execute(select(User).where(User.id == user_id))
    return result.scalar_one_or_none()


async def get_or_create_user(session: AsyncSession, data: UserCreate) -> tuple[User, bool]:
    """Return ``(user, created)``, refreshing the Telegram profile of known users."""
    user = await get_user(session, data.id)
    if user is None:
        user = User(id=data.id, **{name: getattr(data, name) for name in _PROFILE_FIELDS})
        session.add(user)
        await session.flush()
        return user, True

    changed = [
        name for name in _PROFILE_FIELDS
        if getattr(data, name) and getattr(user, name) != getattr(data, name)
    ]
    for name in changed:
        setattr(user, name, getattr(data, name))
    if changed:
        await session.flush()
    return user, False


def display_name(user: User) -> str:
    """Full name for calendar summaries and prompts; empty when Telegram gave none."""
    return " ".join(part for part in (user.first_name, user.last_name) if part).strip()
