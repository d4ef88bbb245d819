"""SMS delivery channel backed by the Twilio Messages REST API.

The channel is optional: when the Twilio credentials are not all configured
``is_available()`` returns False and callers skip SMS entirely.
"""

import httpx

from src.config import settings, sms_channel_configured


# Twilio rejects bodies over 1600 characters
MAX_SMS_LENGTH = 1600


class SmsChannelError(Exception):
    """Error delivering an SMS through the provider."""


def is_available() -> bool:
    """Return True when SMS credentials are configured."""
    return sms_channel_configured()


def _messages_url() -> str:
    return (
        f"{settings.twilio_api_base}/Accounts/"
        f"{settings.twilio_account_sid}/Messages.json"
    )


async def send_sms(to_number: str, body: str, from_number: str | None = None) -> str | None:
    """Send one text message.

    Args:
        to_number: Recipient phone number (E.164 preferred).
        body: Message text, truncated to the provider limit.
        from_number: Sender number; defaults to the configured number.

    Returns:
        The provider's message SID, if it returned one.

    Raises:
        SmsChannelError: If SMS is not configured, the provider is
            unreachable, or it rejects the message.
    """
    if not is_available():
        raise SmsChannelError("SMS provider credentials are not configured")

    data = {
        "To": to_number,
        "From": from_number or settings.twilio_from_number,
        "Body": body[:MAX_SMS_LENGTH],
    }

    try:
        async with httpx.AsyncClient(timeout=settings.channel_timeout_seconds) as client:
            response = await client.post(
                _messages_url(),
                data=data,
                auth=(settings.twilio_account_sid, settings.twilio_auth_token),
            )
    except httpx.HTTPError as exc:
        raise SmsChannelError(f"SMS provider unreachable: {exc}") from exc

    if response.status_code not in (200, 201):
        raise SmsChannelError(
            f"Failed to send SMS: {response.status_code} {response.text}"
        )

    try:
        payload = response.json()
    except ValueError:
        return None
    return payload.get("sid") if isinstance(payload, dict) else None
