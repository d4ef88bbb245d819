"""Email delivery channel backed by the Resend HTTP API.

One call sends one message. Success or a raised ``EmailChannelError`` is the
whole contract; retries are not attempted.
"""

from dataclasses import dataclass

import httpx

from src.config import settings


class EmailChannelError(Exception):
    """Error delivering an email through the provider."""


@dataclass(frozen=True)
class EmailAttachment:
    """In-memory attachment. ``content`` is already base64-encoded."""

    filename: str
    content: str


async def send_email(
    to_address: str,
    subject: str,
    html_body: str,
    attachments: list[EmailAttachment] | None = None,
) -> str | None:
    """Send one HTML email.

    Args:
        to_address: Recipient email address.
        subject: Subject line.
        html_body: HTML body.
        attachments: Optional base64 attachments.

    Returns:
        The provider's message id, if it returned one.

    Raises:
        EmailChannelError: If the provider is not configured, unreachable,
            or rejects the message.
    """
    if not settings.resend_api_key:
        raise EmailChannelError("Email provider API key is not configured")

    payload: dict = {
        "from": settings.alert_from_address,
        "to": [to_address],
        "subject": subject,
        "html": html_body,
    }
    if attachments:
        payload["attachments"] = [
            {"filename": a.filename, "content": a.content} for a in attachments
        ]

    try:
        async with httpx.AsyncClient(timeout=settings.channel_timeout_seconds) as client:
            response = await client.post(
                settings.resend_api_url,
                headers={"Authorization": f"Bearer {settings.resend_api_key}"},
                json=payload,
            )
    except httpx.HTTPError as exc:
        raise EmailChannelError(f"Email provider unreachable: {exc}") from exc

    if response.status_code not in (200, 201, 202):
        raise EmailChannelError(
            f"Failed to send email: {response.status_code} {response.text}"
        )

    try:
        data = response.json()
    except ValueError:
        return None
    return data.get("id") if isinstance(data, dict) else None
