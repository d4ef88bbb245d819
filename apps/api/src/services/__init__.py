# Business Logic Services
from src.services.contact_store import ContactStoreError
from src.services.delivery_dispatcher import (
    DeliveryOutcome,
    NoTrustedContactsError,
    notify_tier,
)
from src.services.email_channel import EmailChannelError
from src.services.sms_channel import SmsChannelError

__all__ = [
    "ContactStoreError",
    "DeliveryOutcome",
    "EmailChannelError",
    "NoTrustedContactsError",
    "SmsChannelError",
    "notify_tier",
]
