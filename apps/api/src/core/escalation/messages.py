"""User-facing text for escalation outcomes.

Shown by the trigger UI. SMS counts are only mentioned when the SMS channel
was actually available for that tier.
"""

from src.config import settings
from src.core.escalation.enums import SessionEndReason
from src.schemas.panic_alert import PanicAlertResponse


def _plural(count: int, noun: str) -> str:
    return f"{count} {noun}" if count == 1 else f"{count} {noun}s"


def _emergency_numbers() -> str:
    return "; ".join(settings.emergency_numbers)


def tier_notified_message(outcome: PanicAlertResponse) -> str:
    """Confirmation after a tier was notified."""
    tier = outcome.tier or 1
    if outcome.contacts_in_tier == 0:
        if outcome.next_tiers_available:
            return f"No contacts in tier {tier}, escalating to the next tier."
        return f"No contacts in tier {tier}."

    channels = [_plural(outcome.email_success_count, "email")]
    if outcome.sms_channel_available:
        channels.append(f"{outcome.sms_success_count} SMS")

    text = (
        f"Emergency alert sent to {_plural(outcome.contacts_reached, 'contact')} "
        f"in tier {tier} ({', '.join(channels)})."
    )
    if outcome.contacts_reached == 0:
        text = f"Could not reach any tier {tier} contact. Please call emergency services."
    elif outcome.next_tiers_available:
        text += " The next tier will be alerted if you do not respond."
    return text


def no_contacts_message() -> str:
    return (
        "No trusted contacts configured. Add trusted contacts, or call "
        f"emergency services now: {_emergency_numbers()}"
    )


def dispatch_failed_message() -> str:
    return (
        "Failed to send alert. Please try calling emergency services directly: "
        f"{_emergency_numbers()}"
    )


def exhausted_message(tiers_notified: int) -> str:
    return (
        f"All contacts across {_plural(tiers_notified, 'tier')} have been alerted. "
        f"If you still need help, call {_emergency_numbers()}"
    )


def cancelled_message() -> str:
    return "Escalation cancelled. No further contacts will be alerted."


def session_ended_message(end_reason: SessionEndReason, tiers_notified: int = 0) -> str:
    """Text for whichever way the session ended."""
    if end_reason is SessionEndReason.user_cancelled:
        return cancelled_message()
    if end_reason is SessionEndReason.no_contacts:
        return no_contacts_message()
    if end_reason is SessionEndReason.dispatch_failed:
        return dispatch_failed_message()
    return exhausted_message(tiers_notified)
