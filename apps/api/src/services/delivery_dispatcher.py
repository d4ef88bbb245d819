"""Tier notification dispatcher.

Resolves one escalation tier's trusted contacts and notifies each of them over
every channel they have. All sends for a tier run concurrently, so the tier
completes in roughly the time of its slowest send. Individual send failures
are logged and counted; only contact-store failures propagate.
"""

import asyncio
import uuid
from dataclasses import dataclass
from datetime import UTC, datetime

from sqlalchemy.ext.asyncio import AsyncSession

from src.logging_config import get_logger
from src.models.trusted_contact import TrustedContact
from src.models.user import User
from src.schemas.panic_alert import PanicAlertRequest
from src.services import sms_channel
from src.services.alert_formatter import (
    AlertContent,
    build_alert_content,
    format_email_html,
    format_email_subject,
    format_sms_text,
)
from src.services.contact_store import (
    get_contacts_for_tier,
    has_any_contacts,
    has_contacts_above_tier,
)
from src.services.email_channel import EmailAttachment, EmailChannelError, send_email
from src.services.sms_channel import SmsChannelError, send_sms

logger = get_logger(__name__)

NO_CONTACTS_MESSAGE = "No trusted contacts configured"

EMAIL = "email"
SMS = "sms"

# Audio mime type -> attachment file extension
AUDIO_EXTENSIONS: dict[str, str] = {
    "audio/webm": "webm",
    "audio/ogg": "ogg",
    "audio/mp4": "m4a",
    "audio/mpeg": "mp3",
    "audio/wav": "wav",
}


class NoTrustedContactsError(Exception):
    """The user has no high-threat contacts in any tier."""

    def __init__(self, message: str = NO_CONTACTS_MESSAGE):
        super().__init__(message)
        self.message = message


@dataclass(frozen=True)
class DeliveryAttempt:
    """Result of one send to one contact over one channel."""

    contact_id: uuid.UUID
    channel: str
    succeeded: bool


@dataclass
class DeliveryOutcome:
    """Aggregated result of notifying one tier."""

    tier: int
    next_tiers_available: bool
    sms_channel_available: bool
    contacts_in_tier: int = 0
    contacts_reached: int = 0
    email_success_count: int = 0
    email_failed_count: int = 0
    sms_success_count: int = 0
    sms_failed_count: int = 0

    @classmethod
    def from_attempts(
        cls,
        tier: int,
        contacts_in_tier: int,
        attempts: list[DeliveryAttempt],
        next_tiers_available: bool,
        sms_channel_available: bool,
    ) -> "DeliveryOutcome":
        outcome = cls(
            tier=tier,
            next_tiers_available=next_tiers_available,
            sms_channel_available=sms_channel_available,
            contacts_in_tier=contacts_in_tier,
        )
        reached: set[uuid.UUID] = set()
        for attempt in attempts:
            if attempt.succeeded:
                reached.add(attempt.contact_id)
            if attempt.channel == EMAIL:
                if attempt.succeeded:
                    outcome.email_success_count += 1
                else:
                    outcome.email_failed_count += 1
            elif attempt.succeeded:
                outcome.sms_success_count += 1
            else:
                outcome.sms_failed_count += 1
        outcome.contacts_reached = len(reached)
        return outcome


def build_attachments(request: PanicAlertRequest) -> list[EmailAttachment]:
    """Build in-memory email attachments from the request's media."""
    attachments = []
    if request.image_base64:
        attachments.append(EmailAttachment(filename="photo.jpg", content=request.image_base64))
    if request.audio_base64:
        mime = (request.audio_mime_type or "audio/webm").split(";")[0].strip().lower()
        extension = AUDIO_EXTENSIONS.get(mime, "webm")
        attachments.append(
            EmailAttachment(filename=f"audio.{extension}", content=request.audio_base64)
        )
    return attachments


async def _deliver_email(
    contact: TrustedContact,
    subject: str,
    html_body: str,
    attachments: list[EmailAttachment],
    tier: int,
) -> DeliveryAttempt:
    try:
        await send_email(contact.email, subject, html_body, attachments or None)
    except EmailChannelError:
        logger.warning(
            "Failed to send panic alert email",
            contact_id=str(contact.id),
            tier=tier,
            exc_info=True,
        )
        return DeliveryAttempt(contact.id, EMAIL, False)
    except Exception:
        logger.exception(
            "Unexpected error sending panic alert email",
            contact_id=str(contact.id),
            tier=tier,
        )
        return DeliveryAttempt(contact.id, EMAIL, False)

    logger.info("Panic alert email sent", contact_id=str(contact.id), tier=tier)
    return DeliveryAttempt(contact.id, EMAIL, True)


async def _deliver_sms(
    contact: TrustedContact,
    text: str,
    tier: int,
) -> DeliveryAttempt:
    try:
        await send_sms(contact.phone, text)
    except SmsChannelError:
        logger.warning(
            "Failed to send panic alert SMS",
            contact_id=str(contact.id),
            tier=tier,
            exc_info=True,
        )
        return DeliveryAttempt(contact.id, SMS, False)
    except Exception:
        logger.exception(
            "Unexpected error sending panic alert SMS",
            contact_id=str(contact.id),
            tier=tier,
        )
        return DeliveryAttempt(contact.id, SMS, False)

    logger.info("Panic alert SMS sent", contact_id=str(contact.id), tier=tier)
    return DeliveryAttempt(contact.id, SMS, True)


async def deliver_to_contacts(
    contacts: list[TrustedContact],
    content: AlertContent,
    attachments: list[EmailAttachment],
    sms_available: bool,
) -> list[DeliveryAttempt]:
    """Fan out one alert to every channel of every contact, concurrently.

    Contacts with an email get an email; contacts with a phone get an SMS
    when the SMS channel is available. Sends are independent of each other.
    """
    subject = format_email_subject(content)
    html_body = format_email_html(content)
    sms_text = format_sms_text(content)

    sends = []
    for contact in contacts:
        if contact.email:
            sends.append(
                _deliver_email(contact, subject, html_body, attachments, content.tier)
            )
        if contact.phone and sms_available:
            sends.append(_deliver_sms(contact, sms_text, content.tier))

    if not sends:
        return []
    return list(await asyncio.gather(*sends))


async def notify_tier(
    db: AsyncSession,
    user: User,
    request: PanicAlertRequest,
    sent_at: datetime | None = None,
) -> DeliveryOutcome:
    """Notify every contact in the requested tier.

    Tier membership is read fresh on every call. An empty tier is a
    zero-notified success; whether escalation can continue comes only from
    the explicit "contacts above this tier" lookup.

    Args:
        db: Database session.
        user: Authenticated owner raising the alert.
        request: Validated panic alert request.
        sent_at: Server-side timestamp (defaults to now).

    Returns:
        DeliveryOutcome for the tier.

    Raises:
        NoTrustedContactsError: If the owner has no contacts in any tier.
        ContactStoreError: If the contact store cannot be queried.
    """
    tier = request.tier
    contacts = await get_contacts_for_tier(db, user.id, tier)
    next_tiers_available = await has_contacts_above_tier(db, user.id, tier)
    sms_available = sms_channel.is_available()

    if not contacts:
        if not next_tiers_available and not await has_any_contacts(db, user.id):
            logger.warning("No trusted contacts configured", user_id=str(user.id))
            raise NoTrustedContactsError()

        logger.info(
            "Tier has no contacts, escalation may continue",
            user_id=str(user.id),
            tier=tier,
            next_tiers_available=next_tiers_available,
        )
        return DeliveryOutcome(
            tier=tier,
            next_tiers_available=next_tiers_available,
            sms_channel_available=sms_available,
        )

    if not sms_available:
        logger.info("SMS channel not configured, skipping SMS", tier=tier)

    content = build_alert_content(
        tier=tier,
        sender_name=request.user_name or user.display_name,
        sender_email=request.user_email or user.email,
        message=request.message,
        location=request.location,
        sent_at=sent_at or datetime.now(UTC),
        tz_name=user.timezone,
        has_audio=request.audio_base64 is not None,
        has_photo=request.image_base64 is not None,
    )

    attempts = await deliver_to_contacts(
        contacts, content, build_attachments(request), sms_available
    )
    outcome = DeliveryOutcome.from_attempts(
        tier=tier,
        contacts_in_tier=len(contacts),
        attempts=attempts,
        next_tiers_available=next_tiers_available,
        sms_channel_available=sms_available,
    )

    logger.info(
        "Tier notification completed",
        user_id=str(user.id),
        tier=tier,
        contacts_in_tier=outcome.contacts_in_tier,
        contacts_reached=outcome.contacts_reached,
        email_success=outcome.email_success_count,
        email_failed=outcome.email_failed_count,
        sms_success=outcome.sms_success_count,
        sms_failed=outcome.sms_failed_count,
        next_tiers_available=next_tiers_available,
    )

    return outcome
