"""
Domain Records - Cards, Contacts and Connection Metrics
========================================================

Plain dataclasses shared by every layer. The persistence layer builds these
from rows; nothing here talks to the network or the database.
"""

import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional

DEFAULT_THEME_COLOR = "#4F46E5"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def to_timestamp(moment: datetime) -> str:
    """Serialize a datetime as a sortable UTC ISO-8601 string."""
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc).isoformat(timespec="microseconds")


def digits_only(value: Optional[str]) -> str:
    return re.sub(r"\D", "", value or "")


class DeliveryStatus(Enum):
    """Outcome of attempting to send an introduction."""
    PENDING = "pending"
    SENT = "sent"
    FAILED = "failed"


@dataclass
class Location:
    """Coarse location resolved from a network address."""
    city: Optional[str] = None
    state: Optional[str] = None
    country: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None


@dataclass
class Profile:
    """Card owner account."""
    id: str
    email: str
    full_name: str
    password_hash: str
    created_at: str = ""


@dataclass
class Card:
    """A published digital business card."""
    id: str
    user_id: str
    card_name: str
    first_name: str
    last_name: str
    job_title: Optional[str] = None
    company_name: Optional[str] = None
    work_address: Optional[str] = None
    mobile_number: Optional[str] = None
    company_number: Optional[str] = None
    profile_photo_url: Optional[str] = None
    company_logo_url: Optional[str] = None
    theme_color: str = DEFAULT_THEME_COLOR
    is_active: bool = True
    created_at: str = ""
    view_count: int = 0

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()

    @property
    def mobile_digits(self) -> str:
        """Mobile number in the digits-only form the SMS gateway expects."""
        return digits_only(self.mobile_number)


@dataclass
class Contact:
    """A connection request submitted from a public card."""
    id: str
    card_id: str
    card_owner_id: str
    name: str
    phone: str
    sent_status: DeliveryStatus = DeliveryStatus.PENDING
    city: Optional[str] = None
    state: Optional[str] = None
    country: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    error_message: Optional[str] = None
    sent_at: Optional[str] = None
    created_at: str = ""

    @property
    def location(self) -> Optional[Location]:
        if not any((self.city, self.state, self.country)) and self.latitude is None:
            return None
        return Location(
            city=self.city,
            state=self.state,
            country=self.country,
            latitude=self.latitude,
            longitude=self.longitude,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "card_id": self.card_id,
            "name": self.name,
            "phone": self.phone,
            "sent_status": self.sent_status.value,
            "city": self.city,
            "state": self.state,
            "country": self.country,
            "latitude": self.latitude,
            "longitude": self.longitude,
            "error_message": self.error_message,
            "sent_at": self.sent_at,
            "created_at": self.created_at,
        }


@dataclass
class DeliveryLogEntry:
    """Audit record of one SMS delivery attempt. Never updated."""
    id: str
    contact_id: str
    status: DeliveryStatus
    message_id: Optional[str] = None
    api_response: Dict[str, Any] = field(default_factory=dict)
    created_at: str = ""


@dataclass
class RecentContact:
    name: str
    created_at: str


@dataclass
class ConnectionMetrics:
    """Dashboard summary, recomputed on every request."""
    total: int = 0
    this_month: int = 0
    top_city: Optional[str] = None
    top_city_count: int = 0
    most_recent_contact: Optional[RecentContact] = None

    def to_dict(self) -> Dict[str, Any]:
        recent = None
        if self.most_recent_contact:
            recent = {
                "name": self.most_recent_contact.name,
                "date": self.most_recent_contact.created_at,
            }
        return {
            "total": self.total,
            "this_month": self.this_month,
            "top_city": self.top_city,
            "top_city_count": self.top_city_count,
            "recent_contact": recent,
        }


@dataclass
class ContactLocation:
    """A geolocated contact, as plotted on the owner's map."""
    id: str
    name: str
    phone: str
    latitude: float
    longitude: float
    created_at: str
    city: Optional[str] = None
    state: Optional[str] = None
    card_name: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "phone": self.phone,
            "city": self.city,
            "state": self.state,
            "latitude": self.latitude,
            "longitude": self.longitude,
            "created_at": self.created_at,
            "card_name": self.card_name,
        }
