"""Trusted contact model.

Contacts are managed by the account owner elsewhere; the escalation engine
only reads them. Each contact sits in one of three escalation tiers and must
be reachable by at least one channel.
"""

import uuid

from sqlalchemy import Boolean, CheckConstraint, ForeignKey, Index, Integer, String
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from src.models.base import Base, TimestampMixin

MIN_TIER = 1
MAX_TIER = 3


class TrustedContact(Base, TimestampMixin):
    """A person notified when the owner raises a panic alert.

    Tier 1 is notified immediately; tiers 2 and 3 only after the previous
    tier's delay elapses without the owner cancelling.
    """

    __tablename__ = "trusted_contacts"
    __table_args__ = (
        CheckConstraint(
            f"tier BETWEEN {MIN_TIER} AND {MAX_TIER}",
            name="ck_trusted_contacts_tier_range",
        ),
        CheckConstraint(
            "phone IS NOT NULL OR email IS NOT NULL",
            name="ck_trusted_contacts_reachable",
        ),
        Index("ix_trusted_contacts_user_tier", "user_id", "tier"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )

    user_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
    )

    name: Mapped[str] = mapped_column(
        String(100),
        nullable=False,
    )

    phone: Mapped[str | None] = mapped_column(
        String(32),
        nullable=True,
    )

    email: Mapped[str | None] = mapped_column(
        String(255),
        nullable=True,
    )

    relationship_label: Mapped[str | None] = mapped_column(
        "relationship",
        String(50),
        nullable=True,
    )

    tier: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=MIN_TIER,
    )

    notify_on_high_threat: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=True,
    )

    notify_on_incident: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=True,
    )

    user = relationship("User", back_populates="trusted_contacts")

    def __repr__(self) -> str:
        return (
            f"<TrustedContact(name={self.name!r}, tier={self.tier}, "
            f"email={self.email is not None}, phone={self.phone is not None})>"
        )
