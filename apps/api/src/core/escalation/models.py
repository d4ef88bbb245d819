"""Escalation data models.

Pure, immutable value objects shared by the capture buffer, the coordinator
and the dispatcher client. No I/O here.
"""

import base64
from typing import Final

from pydantic import BaseModel, ConfigDict, Field

from src.schemas.panic_alert import MAX_LOCATION_LENGTH, MAX_MESSAGE_LENGTH

DEFAULT_AUDIO_MIME_TYPE: Final[str] = "audio/webm"


class ConsentFlags(BaseModel):
    """What the user agreed to share when activating."""

    model_config = ConfigDict(frozen=True)

    location: bool = False
    audio: bool = False
    photo: bool = False


class GeoPosition(BaseModel):
    """A device position fix."""

    model_config = ConfigDict(frozen=True)

    latitude: float = Field(ge=-90, le=90)
    longitude: float = Field(ge=-180, le=180)
    accuracy_m: float | None = Field(default=None, ge=0)

    def as_location(self) -> str:
        """Render as the ``"lat,lng"`` string the dispatcher turns into a map link."""
        return f"{self.latitude:.6f},{self.longitude:.6f}"


class CapturedMedia(BaseModel):
    """Raw media grabbed by the capture buffer. Either part may be missing."""

    model_config = ConfigDict(frozen=True)

    audio: bytes | None = None
    audio_mime_type: str | None = None
    photo: bytes | None = None


class EscalationContext(BaseModel):
    """Situational payload attached to every tier of one activation.

    Built once, never mutated, discarded with the session. ``None`` means
    the field was not captured.
    """

    model_config = ConfigDict(frozen=True)

    message: str | None = Field(default=None, max_length=MAX_MESSAGE_LENGTH)
    location: str | None = Field(default=None, max_length=MAX_LOCATION_LENGTH)
    audio_base64: str | None = None
    audio_mime_type: str | None = None
    image_base64: str | None = None

    @classmethod
    def from_capture(
        cls,
        message: str | None,
        position: GeoPosition | None,
        media: CapturedMedia | None,
    ) -> "EscalationContext":
        """Build the context from whatever was captured."""
        message = message.strip()[:MAX_MESSAGE_LENGTH] if message else None
        audio_base64 = None
        audio_mime_type = None
        image_base64 = None
        if media is not None:
            if media.audio:
                audio_base64 = base64.b64encode(media.audio).decode("ascii")
                audio_mime_type = media.audio_mime_type or DEFAULT_AUDIO_MIME_TYPE
            if media.photo:
                image_base64 = base64.b64encode(media.photo).decode("ascii")

        return cls(
            message=message or None,
            location=position.as_location() if position is not None else None,
            audio_base64=audio_base64,
            audio_mime_type=audio_mime_type,
            image_base64=image_base64,
        )

    def captured_fields(self) -> list[str]:
        """Names of the fields that were captured, for logging."""
        return [name for name, value in self if value is not None]
