"""Read-only trusted contact lookups for the delivery dispatcher.

Every query is scoped to a single owner and only considers contacts that
opted in to high-threat alerts. The dispatcher never writes contact rows.
"""

import uuid

from sqlalchemy import and_, exists, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from src.logging_config import get_logger
from src.models.trusted_contact import TrustedContact

logger = get_logger(__name__)


class ContactStoreError(Exception):
    """The contact store could not be queried."""


async def get_contacts_for_tier(
    db: AsyncSession,
    user_id: uuid.UUID,
    tier: int,
) -> list[TrustedContact]:
    """Get the owner's high-threat contacts in one tier.

    Args:
        db: Database session.
        user_id: Owner's UUID.
        tier: Tier number (1..3).

    Returns:
        Contacts in that tier, ordered by name.

    Raises:
        ContactStoreError: If the query fails.
    """
    try:
        result = await db.execute(
            select(TrustedContact)
            .where(
                and_(
                    TrustedContact.user_id == user_id,
                    TrustedContact.notify_on_high_threat.is_(True),
                    TrustedContact.tier == tier,
                )
            )
            .order_by(TrustedContact.name)
        )
    except SQLAlchemyError as exc:
        logger.error(
            "Failed to fetch contacts for tier",
            user_id=str(user_id),
            tier=tier,
            exc_info=True,
        )
        raise ContactStoreError("Failed to fetch trusted contacts") from exc

    return list(result.scalars().all())


async def has_any_contacts(db: AsyncSession, user_id: uuid.UUID) -> bool:
    """Return True if the owner has at least one high-threat contact in any tier.

    Raises:
        ContactStoreError: If the query fails.
    """
    return await _exists(
        db,
        user_id,
        and_(
            TrustedContact.user_id == user_id,
            TrustedContact.notify_on_high_threat.is_(True),
        ),
    )


async def has_contacts_above_tier(
    db: AsyncSession,
    user_id: uuid.UUID,
    tier: int,
) -> bool:
    """Return True if any high-threat contact sits in a tier strictly above ``tier``.

    This is the only source of the "more tiers available" signal. An empty
    tier says nothing about the tiers after it.

    Raises:
        ContactStoreError: If the query fails.
    """
    return await _exists(
        db,
        user_id,
        and_(
            TrustedContact.user_id == user_id,
            TrustedContact.notify_on_high_threat.is_(True),
            TrustedContact.tier > tier,
        ),
    )


async def _exists(db: AsyncSession, user_id: uuid.UUID, criteria) -> bool:
    try:
        result = await db.execute(select(exists().where(criteria)))
    except SQLAlchemyError as exc:
        logger.error(
            "Failed to query trusted contacts",
            user_id=str(user_id),
            exc_info=True,
        )
        raise ContactStoreError("Failed to query trusted contacts") from exc

    return bool(result.scalar())
