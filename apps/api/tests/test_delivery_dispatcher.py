"""Tests for the tier notification dispatcher."""

import asyncio
import time
import uuid
from datetime import UTC, datetime
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from src.models.trusted_contact import TrustedContact
from src.models.user import User
from src.schemas.panic_alert import PanicAlertRequest
from src.services.contact_store import ContactStoreError
from src.services.delivery_dispatcher import (
    NO_CONTACTS_MESSAGE,
    DeliveryAttempt,
    DeliveryOutcome,
    NoTrustedContactsError,
    build_attachments,
    notify_tier,
)
from src.services.email_channel import EmailChannelError
from src.services.sms_channel import SmsChannelError

DISPATCHER = "src.services.delivery_dispatcher"


def make_user() -> MagicMock:
    user = MagicMock(spec=User)
    user.id = uuid.uuid4()
    user.email = "thandi@example.com"
    user.display_name = "Thandi"
    user.timezone = "Africa/Johannesburg"
    return user


def make_contact(
    name: str = "Jane Doe",
    email: str | None = "jane@example.com",
    phone: str | None = None,
    tier: int = 1,
) -> MagicMock:
    contact = MagicMock(spec=TrustedContact)
    contact.id = uuid.uuid4()
    contact.name = name
    contact.email = email
    contact.phone = phone
    contact.tier = tier
    contact.notify_on_high_threat = True
    return contact


def make_request(user: MagicMock, tier: int = 1, **fields) -> PanicAlertRequest:
    return PanicAlertRequest(user_id=user.id, user_name="Thandi", tier=tier, **fields)


def patch_store(contacts=None, above=False, any_contacts=True):
    """Patch the three contact store lookups used by notify_tier."""
    return (
        patch(
            f"{DISPATCHER}.get_contacts_for_tier",
            new_callable=AsyncMock,
            return_value=contacts or [],
        ),
        patch(
            f"{DISPATCHER}.has_contacts_above_tier",
            new_callable=AsyncMock,
            return_value=above,
        ),
        patch(
            f"{DISPATCHER}.has_any_contacts",
            new_callable=AsyncMock,
            return_value=any_contacts,
        ),
    )


class TestDeliveryOutcome:
    def test_from_attempts_counts_channels_and_reached_contacts(self):
        reached, unreached = uuid.uuid4(), uuid.uuid4()
        outcome = DeliveryOutcome.from_attempts(
            tier=1,
            contacts_in_tier=2,
            attempts=[
                DeliveryAttempt(reached, "email", False),
                DeliveryAttempt(reached, "sms", True),
                DeliveryAttempt(unreached, "email", False),
            ],
            next_tiers_available=True,
            sms_channel_available=True,
        )

        assert outcome.email_success_count == 0
        assert outcome.email_failed_count == 2
        assert outcome.sms_success_count == 1
        assert outcome.sms_failed_count == 0
        assert outcome.contacts_reached == 1
        assert outcome.contacts_in_tier == 2


class TestBuildAttachments:
    def test_no_media_no_attachments(self):
        assert build_attachments(make_request(make_user())) == []

    def test_photo_and_audio_become_attachments(self):
        request = make_request(
            make_user(),
            image_base64="aGk=",
            audio_base64="aGk=",
            audio_mime_type="audio/ogg;codecs=opus",
        )

        attachments = build_attachments(request)

        assert [a.filename for a in attachments] == ["photo.jpg", "audio.ogg"]

    def test_unknown_audio_type_defaults_to_webm(self):
        request = make_request(make_user(), audio_base64="aGk=", audio_mime_type="audio/x-weird")

        assert build_attachments(request)[0].filename == "audio.webm"


class TestNotifyTier:
    """Tests for notify_tier."""

    @pytest.mark.asyncio
    async def test_no_contacts_anywhere_is_hard_failure(self):
        user = make_user()
        get_tier, above, any_contacts = patch_store(contacts=[], above=False, any_contacts=False)

        with get_tier, above, any_contacts:
            with pytest.raises(NoTrustedContactsError) as exc_info:
                await notify_tier(AsyncMock(), user, make_request(user))

        assert exc_info.value.message == NO_CONTACTS_MESSAGE

    @pytest.mark.asyncio
    async def test_empty_tier_with_later_tier_is_zero_notified_success(self):
        """Tier 1 empty, tier 2 populated: escalation must still progress."""
        user = make_user()
        get_tier, above, any_contacts = patch_store(contacts=[], above=True)

        with get_tier, above, any_contacts as mock_any, patch(
            f"{DISPATCHER}.send_email", new_callable=AsyncMock
        ) as mock_email:
            outcome = await notify_tier(AsyncMock(), user, make_request(user))

        assert outcome.contacts_in_tier == 0
        assert outcome.contacts_reached == 0
        assert outcome.next_tiers_available is True
        mock_email.assert_not_called()
        mock_any.assert_not_called()

    @pytest.mark.asyncio
    async def test_empty_last_tier_with_earlier_contacts_is_success(self):
        user = make_user()
        get_tier, above, any_contacts = patch_store(contacts=[], above=False, any_contacts=True)

        with get_tier, above, any_contacts:
            outcome = await notify_tier(AsyncMock(), user, make_request(user, tier=3))

        assert outcome.tier == 3
        assert outcome.next_tiers_available is False
        assert outcome.contacts_in_tier == 0

    @pytest.mark.asyncio
    async def test_queries_are_scoped_to_user_and_tier(self):
        user = make_user()
        db = AsyncMock()
        get_tier, above, any_contacts = patch_store(contacts=[], above=True)

        with get_tier as mock_get, above as mock_above, any_contacts:
            await notify_tier(db, user, make_request(user, tier=2))

        mock_get.assert_awaited_once_with(db, user.id, 2)
        mock_above.assert_awaited_once_with(db, user.id, 2)

    @pytest.mark.asyncio
    async def test_email_only_contact_single_tier(self):
        user = make_user()
        contact = make_contact()
        get_tier, above, any_contacts = patch_store(contacts=[contact], above=False)

        with (
            get_tier,
            above,
            any_contacts,
            patch("src.services.sms_channel.is_available", return_value=False),
            patch(f"{DISPATCHER}.send_email", new_callable=AsyncMock) as mock_email,
            patch(f"{DISPATCHER}.send_sms", new_callable=AsyncMock) as mock_sms,
        ):
            outcome = await notify_tier(AsyncMock(), user, make_request(user))

        assert outcome.email_success_count == 1
        assert outcome.sms_success_count == 0
        assert outcome.next_tiers_available is False
        assert outcome.sms_channel_available is False
        assert outcome.contacts_reached == 1
        mock_email.assert_awaited_once()
        assert mock_email.call_args.args[0] == "jane@example.com"
        mock_sms.assert_not_called()

    @pytest.mark.asyncio
    async def test_phone_contact_skipped_when_sms_unavailable(self):
        user = make_user()
        contact = make_contact(email=None, phone="+27111111111")
        get_tier, above, any_contacts = patch_store(contacts=[contact])

        with (
            get_tier,
            above,
            any_contacts,
            patch("src.services.sms_channel.is_available", return_value=False),
            patch(f"{DISPATCHER}.send_sms", new_callable=AsyncMock) as mock_sms,
        ):
            outcome = await notify_tier(AsyncMock(), user, make_request(user))

        mock_sms.assert_not_called()
        assert outcome.sms_success_count == 0
        assert outcome.sms_failed_count == 0
        assert outcome.contacts_in_tier == 1
        assert outcome.contacts_reached == 0

    @pytest.mark.asyncio
    async def test_contact_with_both_channels_gets_both(self):
        user = make_user()
        contact = make_contact(phone="+27111111111")
        get_tier, above, any_contacts = patch_store(contacts=[contact])

        with (
            get_tier,
            above,
            any_contacts,
            patch("src.services.sms_channel.is_available", return_value=True),
            patch(f"{DISPATCHER}.send_email", new_callable=AsyncMock),
            patch(f"{DISPATCHER}.send_sms", new_callable=AsyncMock) as mock_sms,
        ):
            outcome = await notify_tier(AsyncMock(), user, make_request(user))

        assert outcome.email_success_count == 1
        assert outcome.sms_success_count == 1
        assert outcome.contacts_reached == 1
        assert mock_sms.call_args.args[0] == "+27111111111"

    @pytest.mark.asyncio
    async def test_individual_failures_are_counted_not_raised(self):
        user = make_user()
        good = make_contact(name="Good", email="good@example.com")
        bad = make_contact(name="Bad", email="bad@example.com")
        texter = make_contact(name="Texter", email=None, phone="+27111111111")
        get_tier, above, any_contacts = patch_store(contacts=[good, bad, texter], above=True)

        async def flaky_email(to_address, *args, **kwargs):
            if to_address == "bad@example.com":
                raise EmailChannelError("rejected")
            return "email-id"

        with (
            get_tier,
            above,
            any_contacts,
            patch("src.services.sms_channel.is_available", return_value=True),
            patch(f"{DISPATCHER}.send_email", side_effect=flaky_email),
            patch(
                f"{DISPATCHER}.send_sms",
                new_callable=AsyncMock,
                side_effect=SmsChannelError("carrier rejected"),
            ),
        ):
            outcome = await notify_tier(AsyncMock(), user, make_request(user))

        assert outcome.email_success_count == 1
        assert outcome.email_failed_count == 1
        assert outcome.sms_success_count == 0
        assert outcome.sms_failed_count == 1
        assert outcome.contacts_reached == 1
        assert outcome.next_tiers_available is True

    @pytest.mark.asyncio
    async def test_unexpected_send_error_is_counted(self):
        user = make_user()
        get_tier, above, any_contacts = patch_store(contacts=[make_contact()])

        with (
            get_tier,
            above,
            any_contacts,
            patch(
                f"{DISPATCHER}.send_email",
                new_callable=AsyncMock,
                side_effect=RuntimeError("boom"),
            ),
        ):
            outcome = await notify_tier(AsyncMock(), user, make_request(user))

        assert outcome.email_failed_count == 1

    @pytest.mark.asyncio
    async def test_sends_run_concurrently(self):
        """3 email-only + 2 phone-only contacts: 5 sends, bounded by the slowest."""
        user = make_user()
        contacts = [make_contact(name=f"E{i}", email=f"e{i}@example.com") for i in range(3)]
        contacts += [
            make_contact(name=f"P{i}", email=None, phone=f"+2711111111{i}")
            for i in range(2)
        ]
        get_tier, above, any_contacts = patch_store(contacts=contacts)
        delay = 0.2

        async def slow_send(*args, **kwargs):
            await asyncio.sleep(delay)
            return "id"

        with (
            get_tier,
            above,
            any_contacts,
            patch("src.services.sms_channel.is_available", return_value=True),
            patch(f"{DISPATCHER}.send_email", side_effect=slow_send) as mock_email,
            patch(f"{DISPATCHER}.send_sms", side_effect=slow_send) as mock_sms,
        ):
            started = time.perf_counter()
            outcome = await notify_tier(AsyncMock(), user, make_request(user))
            elapsed = time.perf_counter() - started

        assert mock_email.call_count == 3
        assert mock_sms.call_count == 2
        assert outcome.email_success_count == 3
        assert outcome.sms_success_count == 2
        assert outcome.contacts_reached == 5
        assert elapsed < delay * 2.5

    @pytest.mark.asyncio
    async def test_escalation_tier_is_marked_and_media_attached(self):
        user = make_user()
        get_tier, above, any_contacts = patch_store(contacts=[make_contact(tier=2)])
        request = make_request(user, tier=2, image_base64="aGk=", location="-26.2,28.0")

        with (
            get_tier,
            above,
            any_contacts,
            patch(f"{DISPATCHER}.send_email", new_callable=AsyncMock) as mock_email,
        ):
            await notify_tier(
                AsyncMock(),
                user,
                request,
                sent_at=datetime(2026, 10, 19, 12, 5, tzinfo=UTC),
            )

        to_address, subject, html_body, attachments = mock_email.call_args.args
        assert "Tier 2" in subject
        assert "Tier 2 escalation" in html_body
        assert "https://www.google.com/maps?q=-26.200000,28.000000" in html_body
        assert [a.filename for a in attachments] == ["photo.jpg"]

    @pytest.mark.asyncio
    async def test_store_failure_propagates(self):
        user = make_user()

        with patch(
            f"{DISPATCHER}.get_contacts_for_tier",
            new_callable=AsyncMock,
            side_effect=ContactStoreError("down"),
        ):
            with pytest.raises(ContactStoreError):
                await notify_tier(AsyncMock(), user, make_request(user))
