from .models import (
    Card,
    ConnectionMetrics,
    Contact,
    ContactLocation,
    DeliveryLogEntry,
    DeliveryStatus,
    Location,
    Profile,
    RecentContact,
)
from .vcard import generate_vcard, vcard_filename

__all__ = [
    "Card",
    "ConnectionMetrics",
    "Contact",
    "ContactLocation",
    "DeliveryLogEntry",
    "DeliveryStatus",
    "Location",
    "Profile",
    "RecentContact",
    "generate_vcard",
    "vcard_filename",
]
