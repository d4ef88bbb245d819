"""Panic alert message formatting for the email and SMS channels.

Both channels carry the same substance: who raised the alert, when (in the
sender's timezone), their optional message, and a clickable map link when a
location was shared. Alerts for tier 2 and above are visibly marked as
escalations.
"""

import html
import re
from dataclasses import dataclass
from datetime import datetime
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from src.config import settings
from src.logging_config import get_logger

logger = get_logger(__name__)

DEFAULT_SENDER_NAME = "A GuardianNet user"
MAPS_URL = "https://www.google.com/maps?q={lat:.6f},{lng:.6f}"

_COORDINATES_RE = re.compile(
    r"^\s*(?P<lat>[-+]?\d{1,2}(?:\.\d+)?)\s*,\s*(?P<lng>[-+]?\d{1,3}(?:\.\d+)?)\s*$"
)

# Tier -> label used in the escalation banner
TIER_LABEL: dict[int, str] = {
    1: "Immediate (Family/Partner)",
    2: "Secondary (Friends/Colleagues)",
    3: "Tertiary (Neighbors/Others)",
}


@dataclass(frozen=True)
class AlertContent:
    """Everything a channel needs to render one panic alert."""

    tier: int
    sender_name: str
    timestamp: str
    sender_email: str | None = None
    message: str | None = None
    location: str | None = None
    map_link: str | None = None
    has_audio: bool = False
    has_photo: bool = False


def resolve_timezone(tz_name: str | None) -> ZoneInfo:
    """Return the sender's timezone, falling back to the configured default."""
    for candidate in (tz_name, settings.default_timezone):
        if not candidate:
            continue
        try:
            return ZoneInfo(candidate)
        except (ZoneInfoNotFoundError, ValueError):
            logger.warning("Unknown timezone, falling back", timezone=candidate)
    return ZoneInfo("UTC")


def render_timestamp(moment: datetime, tz_name: str | None) -> str:
    """Render a server-side timestamp in the sender's local time.

    Example: ``Monday, 19 October 2026 at 14:05 SAST``.
    """
    local = moment.astimezone(resolve_timezone(tz_name))
    return local.strftime("%A, %d %B %Y at %H:%M %Z")


def build_map_link(location: str | None) -> str | None:
    """Turn a shared location into a navigable map URL.

    Accepts ``"lat,lng"`` coordinates or an existing http(s) link. Anything
    else is not linkable and returns None.
    """
    if not location:
        return None

    match = _COORDINATES_RE.match(location)
    if match:
        lat = float(match.group("lat"))
        lng = float(match.group("lng"))
        if -90 <= lat <= 90 and -180 <= lng <= 180:
            return MAPS_URL.format(lat=lat, lng=lng)
        return None

    stripped = location.strip()
    if stripped.startswith(("https://", "http://")):
        return stripped
    return None


def tier_banner(tier: int) -> str | None:
    """Escalation banner for tiers above 1, None for the first tier."""
    if tier <= 1:
        return None
    return f"Tier {tier} escalation: no response from higher-priority contacts"


def build_alert_content(
    tier: int,
    sender_name: str | None,
    sender_email: str | None,
    message: str | None,
    location: str | None,
    sent_at: datetime,
    tz_name: str | None,
    has_audio: bool = False,
    has_photo: bool = False,
) -> AlertContent:
    """Assemble channel-independent alert content."""
    return AlertContent(
        tier=tier,
        sender_name=sender_name or DEFAULT_SENDER_NAME,
        sender_email=sender_email,
        timestamp=render_timestamp(sent_at, tz_name),
        message=message,
        location=location,
        map_link=build_map_link(location),
        has_audio=has_audio,
        has_photo=has_photo,
    )


def format_email_subject(content: AlertContent) -> str:
    if content.tier > 1:
        return (
            f"\U0001f6a8 ESCALATION (Tier {content.tier}): "
            "Safety Alert from GuardianNet AI"
        )
    return "\U0001f6a8 URGENT: Safety Alert from GuardianNet AI"


def format_email_html(content: AlertContent) -> str:
    """Format the HTML email body.

    All user-supplied values are HTML-escaped.
    """
    name = html.escape(content.sender_name)
    rows = [f"<p style=\"margin: 5px 0;\"><strong>Time:</strong> {html.escape(content.timestamp)}</p>"]

    if content.sender_email:
        rows.append(
            f"<p style=\"margin: 5px 0;\"><strong>Contact Email:</strong> "
            f"{html.escape(content.sender_email)}</p>"
        )

    if content.map_link:
        link = html.escape(content.map_link, quote=True)
        rows.append(
            f"<p style=\"margin: 5px 0;\"><strong>Location:</strong> "
            f"<a href=\"{link}\">Open in Maps</a></p>"
        )
    elif content.location:
        rows.append(
            f"<p style=\"margin: 5px 0;\"><strong>Location:</strong> "
            f"{html.escape(content.location)}</p>"
        )

    if content.message:
        rows.append(
            f"<p style=\"margin: 5px 0;\"><strong>Message:</strong> "
            f"{html.escape(content.message)}</p>"
        )

    attached = _attachment_note(content)
    if attached:
        rows.append(f"<p style=\"margin: 5px 0;\"><strong>Attached:</strong> {attached}</p>")

    banner = tier_banner(content.tier)
    banner_html = ""
    if banner:
        banner_html = (
            "<div style=\"background-color: #ffedd5; padding: 12px; "
            "border: 1px solid #fdba74; border-radius: 8px; margin-bottom: 15px;\">"
            f"<strong>{html.escape(banner)}</strong><br>"
            f"You are listed as a {html.escape(TIER_LABEL.get(content.tier, 'trusted'))} contact."
            "</div>"
        )

    guidance = "".join(
        f"<li>{html.escape(number)}</li>" for number in settings.emergency_numbers
    )

    return (
        "<div style=\"font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto; padding: 20px;\">"
        "<div style=\"background-color: #dc2626; color: white; padding: 20px; "
        "border-radius: 8px 8px 0 0; text-align: center;\">"
        "<h1 style=\"margin: 0; font-size: 24px;\">\U0001f6a8 EMERGENCY SAFETY ALERT</h1>"
        "</div>"
        "<div style=\"background-color: #fef2f2; padding: 20px; border: 1px solid #fecaca;\">"
        f"{banner_html}"
        "<p style=\"font-size: 16px; color: #991b1b; margin: 0 0 15px 0;\">"
        f"<strong>{name}</strong> has activated their panic button and may need "
        "immediate assistance.</p>"
        "<div style=\"background-color: white; padding: 15px; border-radius: 8px; margin: 15px 0;\">"
        f"{''.join(rows)}"
        "</div>"
        "<div style=\"background-color: #fef9c3; padding: 15px; border-radius: 8px; "
        "border: 1px solid #fde047;\">"
        "<p style=\"margin: 0; color: #854d0e; font-weight: bold;\">What to do:</p>"
        "<ul style=\"color: #854d0e; margin: 10px 0; padding-left: 20px;\">"
        f"<li>Try to contact {name} immediately</li>"
        "<li>If you cannot reach them, consider contacting local authorities</li>"
        f"{guidance}"
        "</ul>"
        "</div>"
        "</div>"
        "<div style=\"background-color: #f3f4f6; padding: 15px; border-radius: 0 0 8px 8px; "
        "text-align: center;\">"
        "<p style=\"margin: 0; color: #6b7280; font-size: 12px;\">"
        "This alert was sent by GuardianNet AI</p>"
        "</div>"
        "</div>"
    )


def format_sms_text(content: AlertContent) -> str:
    """Format the condensed plain-text SMS body."""
    lines = []

    banner = tier_banner(content.tier)
    if banner:
        lines.append(f"[{banner}]")

    lines.append(
        f"\U0001f6a8 SAFETY ALERT: {content.sender_name} activated their panic "
        "button and may need help."
    )
    lines.append(f"Time: {content.timestamp}")

    if content.message:
        lines.append(f"Message: {content.message}")

    if content.map_link:
        lines.append(f"Location: {content.map_link}")
    elif content.location:
        lines.append(f"Location: {content.location}")

    attached = _attachment_note(content)
    if attached:
        lines.append(f"{attached} sent by email.")

    if settings.emergency_numbers:
        lines.append(settings.emergency_numbers[0])

    return "\n".join(lines)


def _attachment_note(content: AlertContent) -> str | None:
    parts = []
    if content.has_photo:
        parts.append("Photo")
    if content.has_audio:
        parts.append("Audio clip")
    if not parts:
        return None
    return " and ".join(parts)
