"""Escalation session enums."""

from enum import StrEnum, auto


class SessionStatus(StrEnum):
    """Lifecycle of one escalation session.

    ``cancelled`` and ``exhausted`` are terminal. A new activation always
    starts a fresh session.
    """

    idle = auto()
    tier_active = auto()
    cancelled = auto()
    exhausted = auto()


class SessionEndReason(StrEnum):
    """Why a session stopped.

    ``no_contacts`` and ``tiers_exhausted`` must be reported differently to
    the user: the first means nobody was ever configured, the second that
    contacts were notified but escalation ran out of tiers.
    """

    user_cancelled = auto()
    tiers_exhausted = auto()
    no_contacts = auto()
    dispatch_failed = auto()


class CameraFacing(StrEnum):
    """Preferred camera for photo capture."""

    environment = auto()
    user = auto()
