"""
Profile Service

Makes sure a profile row exists before anything references it. Offers,
transactions and tickets all carry foreign keys to profiles, so the ensure
step is retried instead of writing rows against a dangling reference.
"""
import logging
from datetime import datetime
from typing import Optional

from sqlalchemy import delete
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from ..config import settings
from ..db.models import ProfileModel
from ..exceptions import DependencyError

logger = logging.getLogger(__name__)


async def ensure_profile(
    db: AsyncSession,
    user_id: str,
    email: Optional[str] = None,
    attempts: Optional[int] = None
) -> bool:
    """
    Create a minimal profile for user_id if none exists.

    Args:
        db: Database session
        user_id: User identifier
        email: Optional email stored on a newly created profile
        attempts: Override for settings.profile_ensure_attempts

    Returns:
        True if this call created the profile, False if it already existed

    Raises:
        DependencyError: If the profile could not be read or created
    """
    attempts = max(1, attempts or settings.profile_ensure_attempts)
    last_error: Optional[Exception] = None

    for attempt in range(1, attempts + 1):
        try:
            if await db.get(ProfileModel, user_id) is not None:
                return False

            db.add(ProfileModel(id=user_id, email=email, created_at=datetime.utcnow()))
            await db.commit()
            logger.info(f"Created profile for user {user_id}")
            return True

        except IntegrityError as e:
            # Created concurrently by another request; the next read finds it
            await db.rollback()
            last_error = e
            logger.info(f"Profile for user {user_id} created concurrently, re-reading")

        except SQLAlchemyError as e:
            await db.rollback()
            last_error = e
            logger.warning(f"Ensuring profile for user {user_id} failed (attempt {attempt}/{attempts}): {e}")

    raise DependencyError(
        "Could not create user profile",
        details={"user_id": user_id, "attempts": attempts, "error_type": type(last_error).__name__}
    )


async def remove_profile(db: AsyncSession, user_id: str) -> None:
    """Delete a profile created earlier in a failed multi-step operation."""
    await db.execute(delete(ProfileModel).where(ProfileModel.id == user_id))
    await db.commit()
    logger.info(f"Removed profile for user {user_id}")


async def get_display_name(db: AsyncSession, user_id: str) -> Optional[str]:
    """'First Last' for a profile, or None when no name is known."""
    profile = await db.get(ProfileModel, user_id)
    if profile is None:
        return None
    name = " ".join(part for part in (profile.first_name, profile.last_name) if part)
    return name or None
