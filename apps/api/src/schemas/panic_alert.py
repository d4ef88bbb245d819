"""Panic alert request/response schemas.

Wire format is camelCase, shared by the dispatcher endpoint and the device
client that calls it.
"""

import base64
import binascii
import uuid

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from src.models.trusted_contact import MAX_TIER, MIN_TIER

MAX_MESSAGE_LENGTH = 1000
MAX_LOCATION_LENGTH = 500


def _validate_base64(value: str | None) -> str | None:
    if value is None:
        return None
    value = value.strip()
    if not value:
        return None
    try:
        base64.b64decode(value, validate=True)
    except (binascii.Error, ValueError):
        msg = "Media must be valid base64"
        raise ValueError(msg)  # noqa: B904
    return value


class PanicAlertRequest(BaseModel):
    """Request to notify one escalation tier.

    Media fields are base64-encoded and only live for the duration of the
    outbound sends.
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    user_id: uuid.UUID
    user_name: str | None = Field(default=None, max_length=100)
    user_email: str | None = Field(default=None, max_length=255)
    message: str | None = Field(default=None, max_length=MAX_MESSAGE_LENGTH)
    location: str | None = Field(default=None, max_length=MAX_LOCATION_LENGTH)
    audio_base64: str | None = None
    audio_mime_type: str | None = Field(default=None, max_length=64)
    image_base64: str | None = None
    tier: int = Field(default=MIN_TIER, ge=MIN_TIER, le=MAX_TIER)

    @field_validator("message", "location", "user_name")
    @classmethod
    def blank_to_none(cls, v: str | None) -> str | None:
        if v is None:
            return None
        v = v.strip()
        return v or None

    @field_validator("audio_base64", "image_base64")
    @classmethod
    def validate_media(cls, v: str | None) -> str | None:
        return _validate_base64(v)


class PanicAlertResponse(BaseModel):
    """Outcome of one tier notification.

    ``success`` is False only for the hard "no trusted contacts configured"
    failure, in which case ``message`` explains it and the counts are zero.
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    success: bool
    message: str | None = None
    tier: int | None = None
    next_tiers_available: bool = False
    email_success_count: int = 0
    email_failed_count: int = 0
    sms_success_count: int = 0
    sms_failed_count: int = 0
    contacts_in_tier: int = 0
    contacts_reached: int = 0
    sms_channel_available: bool = False
