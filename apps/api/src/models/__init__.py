# Database Models
from src.models.base import Base, TimestampMixin
from src.models.trusted_contact import MAX_TIER, MIN_TIER, TrustedContact
from src.models.user import User

__all__ = [
    "Base",
    "MAX_TIER",
    "MIN_TIER",
    "TimestampMixin",
    "TrustedContact",
    "User",
]
