"""
SQLite Database Repository - Cards, Contacts and Delivery Logs
===============================================================

Stores cards per-owner so each owner only sees their own connections.
Rows are converted into domain records at this boundary; a row with an
unexpected shape raises DeserializationError instead of leaking a dict.
"""

import json
import logging
import secrets
import sqlite3
import uuid
from contextlib import contextmanager
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from ...domain.models import (
    DEFAULT_THEME_COLOR,
    Card,
    Contact,
    ContactLocation,
    DeliveryLogEntry,
    DeliveryStatus,
    Location,
    Profile,
    RecentContact,
    to_timestamp,
    utcnow,
)

logger = logging.getLogger(__name__)

DATABASE_FILE = "cardlink.db"

# Columns an owner may change through update_card()
CARD_FIELDS = (
    "card_name",
    "first_name",
    "last_name",
    "job_title",
    "company_name",
    "work_address",
    "mobile_number",
    "company_number",
    "profile_photo_url",
    "company_logo_url",
    "theme_color",
    "is_active",
)


class DatabaseError(Exception):
    """Base exception for persistence errors."""
    pass


class DeserializationError(DatabaseError):
    """Raised when a stored row does not have the shape of its record."""
    pass


def _new_id() -> str:
    return uuid.uuid4().hex


def _optional_float(value) -> Optional[float]:
    return None if value is None else float(value)


class Database:
    """
    SQLite database for CardLink.

    Usage:
        db = Database()
        db.init()

        owner = db.create_profile("ada@example.com", "Ada Lovelace", password_hash)
        card = db.create_card(owner.id, card_name="Work", first_name="Ada", last_name="Lovelace")

        # Pipeline side
        contact = db.insert_contact(card.id, owner.id, "Grace", "555-0100", location)
        db.update_contact_status(contact.id, DeliveryStatus.SENT, sent_at=...)
    """

    def __init__(self, db_path: str = DATABASE_FILE):
        self.db_path = db_path

    @contextmanager
    def _get_connection(self):
        """Get database connection with context manager."""
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        try:
            yield conn
            conn.commit()
        finally:
            conn.close()

    def init(self):
        """Initialize database tables."""
        with self._get_connection() as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS profiles (
                    id TEXT PRIMARY KEY,
                    email TEXT UNIQUE NOT NULL,
                    full_name TEXT NOT NULL,
                    password_hash TEXT NOT NULL,
                    created_at TEXT NOT NULL
                )
            """)

            conn.execute("""
                CREATE TABLE IF NOT EXISTS sessions (
                    token TEXT PRIMARY KEY,
                    profile_id TEXT NOT NULL,
                    created_at TEXT NOT NULL
                )
            """)

            conn.execute("""
                CREATE TABLE IF NOT EXISTS cards (
                    id TEXT PRIMARY KEY,
                    user_id TEXT NOT NULL,
                    card_name TEXT NOT NULL,
                    first_name TEXT NOT NULL,
                    last_name TEXT NOT NULL,
                    job_title TEXT,
                    company_name TEXT,
                    work_address TEXT,
                    mobile_number TEXT,
                    company_number TEXT,
                    profile_photo_url TEXT,
                    company_logo_url TEXT,
                    theme_color TEXT NOT NULL DEFAULT '#4F46E5',
                    is_active INTEGER NOT NULL DEFAULT 1,
                    created_at TEXT NOT NULL
                )
            """)

            conn.execute("""
                CREATE TABLE IF NOT EXISTS card_analytics (
                    card_id TEXT PRIMARY KEY,
                    view_count INTEGER NOT NULL DEFAULT 0,
                    last_viewed_at TEXT
                )
            """)

            # Contacts outlive their card, so no cascading foreign key here
            conn.execute("""
                CREATE TABLE IF NOT EXISTS contacts (
                    id TEXT PRIMARY KEY,
                    card_id TEXT NOT NULL,
                    card_owner_id TEXT NOT NULL,
                    name TEXT NOT NULL,
                    phone TEXT NOT NULL,
                    sent_status TEXT NOT NULL DEFAULT 'pending',
                    city TEXT,
                    state TEXT,
                    country TEXT,
                    latitude REAL,
                    longitude REAL,
                    error_message TEXT,
                    sent_at TEXT,
                    created_at TEXT NOT NULL
                )
            """)
            conn.execute(
                "CREATE INDEX IF NOT EXISTS idx_contacts_owner_created "
                "ON contacts (card_owner_id, created_at)"
            )

            conn.execute("""
                CREATE TABLE IF NOT EXISTS message_logs (
                    id TEXT PRIMARY KEY,
                    contact_id TEXT NOT NULL,
                    status TEXT NOT NULL,
                    message_id TEXT,
                    api_response TEXT NOT NULL DEFAULT '{}',
                    created_at TEXT NOT NULL
                )
            """)

            logger.info(f"Database initialized: {self.db_path}")

    # ── Profiles & Sessions ────────────────────────────────────────

    def create_profile(self, email: str, full_name: str, password_hash: str) -> Optional[Profile]:
        """Create a card owner. Returns None if the email is taken."""
        profile = Profile(
            id=_new_id(),
            email=email,
            full_name=full_name,
            password_hash=password_hash,
            created_at=to_timestamp(utcnow()),
        )
        try:
            with self._get_connection() as conn:
                conn.execute(
                    """INSERT INTO profiles (id, email, full_name, password_hash, created_at)
                       VALUES (?, ?, ?, ?, ?)""",
                    (profile.id, profile.email, profile.full_name,
                     profile.password_hash, profile.created_at)
                )
            return profile
        except sqlite3.IntegrityError:
            logger.warning(f"Profile with email {email} already exists")
            return None

    def get_profile(self, profile_id: str) -> Optional[Profile]:
        with self._get_connection() as conn:
            row = conn.execute("SELECT * FROM profiles WHERE id = ?", (profile_id,)).fetchone()
            return self._row_to_profile(row) if row else None

    def get_profile_by_email(self, email: str) -> Optional[Profile]:
        with self._get_connection() as conn:
            row = conn.execute("SELECT * FROM profiles WHERE email = ?", (email,)).fetchone()
            return self._row_to_profile(row) if row else None

    def create_session(self, profile_id: str) -> str:
        """Issue a new opaque session token for a profile."""
        token = secrets.token_urlsafe(32)
        with self._get_connection() as conn:
            conn.execute(
                "INSERT INTO sessions (token, profile_id, created_at) VALUES (?, ?, ?)",
                (token, profile_id, to_timestamp(utcnow()))
            )
        return token

    def get_profile_by_token(self, token: str) -> Optional[Profile]:
        with self._get_connection() as conn:
            row = conn.execute(
                """SELECT p.* FROM profiles p
                   JOIN sessions s ON s.profile_id = p.id
                   WHERE s.token = ?""",
                (token,)
            ).fetchone()
            return self._row_to_profile(row) if row else None

    def delete_session(self, token: str) -> bool:
        with self._get_connection() as conn:
            cursor = conn.execute("DELETE FROM sessions WHERE token = ?", (token,))
            return cursor.rowcount > 0

    def _row_to_profile(self, row: sqlite3.Row) -> Profile:
        try:
            return Profile(
                id=row["id"],
                email=row["email"],
                full_name=row["full_name"],
                password_hash=row["password_hash"],
                created_at=row["created_at"] or "",
            )
        except (KeyError, IndexError) as e:
            raise DeserializationError(f"Malformed profile row: {e}") from e

    # ── Card CRUD ──────────────────────────────────────────────────

    def create_card(self, user_id: str, card_name: str, first_name: str, last_name: str,
                    **fields) -> Card:
        """Create a card (and its analytics row) for an owner."""
        unknown = set(fields) - set(CARD_FIELDS)
        if unknown:
            raise ValueError(f"Unknown card fields: {', '.join(sorted(unknown))}")

        card = Card(
            id=_new_id(),
            user_id=user_id,
            card_name=card_name,
            first_name=first_name,
            last_name=last_name,
            job_title=fields.get("job_title"),
            company_name=fields.get("company_name"),
            work_address=fields.get("work_address"),
            mobile_number=fields.get("mobile_number"),
            company_number=fields.get("company_number"),
            profile_photo_url=fields.get("profile_photo_url"),
            company_logo_url=fields.get("company_logo_url"),
            theme_color=fields.get("theme_color") or DEFAULT_THEME_COLOR,
            is_active=bool(fields.get("is_active", True)),
            created_at=to_timestamp(utcnow()),
        )

        with self._get_connection() as conn:
            conn.execute(
                """INSERT INTO cards (id, user_id, card_name, first_name, last_name, job_title,
                       company_name, work_address, mobile_number, company_number,
                       profile_photo_url, company_logo_url, theme_color, is_active, created_at)
                   VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
                (card.id, card.user_id, card.card_name, card.first_name, card.last_name,
                 card.job_title, card.company_name, card.work_address, card.mobile_number,
                 card.company_number, card.profile_photo_url, card.company_logo_url,
                 card.theme_color, int(card.is_active), card.created_at)
            )
            conn.execute(
                "INSERT INTO card_analytics (card_id, view_count) VALUES (?, 0)",
                (card.id,)
            )

        logger.info(f"Card {card.id} created for owner {user_id}")
        return card

    def get_card(self, card_id: str) -> Optional[Card]:
        """Get card by ID, active or not."""
        with self._get_connection() as conn:
            row = conn.execute(
                """SELECT c.*, COALESCE(a.view_count, 0) AS view_count
                   FROM cards c LEFT JOIN card_analytics a ON a.card_id = c.id
                   WHERE c.id = ?""",
                (card_id,)
            ).fetchone()
            return self._row_to_card(row) if row else None

    def get_active_card(self, card_id: str) -> Optional[Card]:
        """Get card by ID only if it is published."""
        card = self.get_card(card_id)
        if card is None or not card.is_active:
            return None
        return card

    def list_cards(self, user_id: str) -> List[Card]:
        """Get all cards of an owner, newest first, with view counts."""
        with self._get_connection() as conn:
            rows = conn.execute(
                """SELECT c.*, COALESCE(a.view_count, 0) AS view_count
                   FROM cards c LEFT JOIN card_analytics a ON a.card_id = c.id
                   WHERE c.user_id = ?
                   ORDER BY c.created_at DESC""",
                (user_id,)
            ).fetchall()
            return [self._row_to_card(row) for row in rows]

    def update_card(self, card_id: str, **updates) -> bool:
        """Update card fields."""
        updates = {k: v for k, v in updates.items() if k in CARD_FIELDS}
        if not updates:
            return False

        if "is_active" in updates:
            updates["is_active"] = int(bool(updates["is_active"]))

        set_clause = ", ".join(f"{k} = ?" for k in updates.keys())
        values = list(updates.values()) + [card_id]

        with self._get_connection() as conn:
            cursor = conn.execute(
                f"UPDATE cards SET {set_clause} WHERE id = ?",
                values
            )
            return cursor.rowcount > 0

    def set_card_active(self, card_id: str, active: bool) -> bool:
        return self.update_card(card_id, is_active=active)

    def delete_card(self, card_id: str) -> bool:
        """Delete a card. Its contacts are kept."""
        with self._get_connection() as conn:
            cursor = conn.execute("DELETE FROM cards WHERE id = ?", (card_id,))
            conn.execute("DELETE FROM card_analytics WHERE card_id = ?", (card_id,))
            return cursor.rowcount > 0

    def record_card_view(self, card_id: str):
        """Bump the public view counter of a card."""
        with self._get_connection() as conn:
            conn.execute(
                """UPDATE card_analytics
                   SET view_count = view_count + 1, last_viewed_at = ?
                   WHERE card_id = ?""",
                (to_timestamp(utcnow()), card_id)
            )

    def _row_to_card(self, row: sqlite3.Row) -> Card:
        """Convert database row to Card object."""
        try:
            view_count = row["view_count"]
        except (KeyError, IndexError):
            view_count = 0

        try:
            return Card(
                id=row["id"],
                user_id=row["user_id"],
                card_name=row["card_name"],
                first_name=row["first_name"],
                last_name=row["last_name"],
                job_title=row["job_title"],
                company_name=row["company_name"],
                work_address=row["work_address"],
                mobile_number=row["mobile_number"],
                company_number=row["company_number"],
                profile_photo_url=row["profile_photo_url"],
                company_logo_url=row["company_logo_url"],
                theme_color=row["theme_color"] or DEFAULT_THEME_COLOR,
                is_active=bool(row["is_active"]),
                created_at=row["created_at"] or "",
                view_count=int(view_count or 0),
            )
        except (KeyError, IndexError, TypeError, ValueError) as e:
            raise DeserializationError(f"Malformed card row: {e}") from e

    # ── Contacts ───────────────────────────────────────────────────

    def insert_contact(self, card_id: str, card_owner_id: str, name: str, phone: str,
                       location: Optional[Location] = None,
                       created_at: Optional[datetime] = None) -> Contact:
        """Insert a pending contact. Raises DatabaseError if the row is not written."""
        location = location or Location()
        contact = Contact(
            id=_new_id(),
            card_id=card_id,
            card_owner_id=card_owner_id,
            name=name,
            phone=phone,
            sent_status=DeliveryStatus.PENDING,
            city=location.city,
            state=location.state,
            country=location.country,
            latitude=location.latitude,
            longitude=location.longitude,
            created_at=to_timestamp(created_at or utcnow()),
        )

        try:
            with self._get_connection() as conn:
                conn.execute(
                    """INSERT INTO contacts (id, card_id, card_owner_id, name, phone, sent_status,
                           city, state, country, latitude, longitude, created_at)
                       VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
                    (contact.id, contact.card_id, contact.card_owner_id, contact.name,
                     contact.phone, contact.sent_status.value, contact.city, contact.state,
                     contact.country, contact.latitude, contact.longitude, contact.created_at)
                )
        except sqlite3.Error as e:
            raise DatabaseError(f"Failed to save contact: {e}") from e

        return contact

    def update_contact_status(self, contact_id: str, status: DeliveryStatus,
                              error_message: Optional[str] = None,
                              sent_at: Optional[str] = None) -> bool:
        """
        Move a pending contact to its final delivery status.

        Only pending rows are touched, so a status is never reverted.
        Returns False if the contact was missing or already final.
        """
        if status is DeliveryStatus.PENDING:
            raise ValueError("Contacts can only move out of pending")

        with self._get_connection() as conn:
            cursor = conn.execute(
                """UPDATE contacts
                   SET sent_status = ?, error_message = ?, sent_at = ?
                   WHERE id = ? AND sent_status = ?""",
                (status.value, error_message, sent_at, contact_id, DeliveryStatus.PENDING.value)
            )
            return cursor.rowcount > 0

    def get_contact(self, contact_id: str) -> Optional[Contact]:
        with self._get_connection() as conn:
            row = conn.execute("SELECT * FROM contacts WHERE id = ?", (contact_id,)).fetchone()
            return self._row_to_contact(row) if row else None

    def list_contacts(self, owner_id: str) -> List[Tuple[Contact, Optional[str]]]:
        """Get all contacts of an owner, newest first, with the card name they came from."""
        with self._get_connection() as conn:
            rows = conn.execute(
                """SELECT ct.*, c.card_name AS card_name
                   FROM contacts ct LEFT JOIN cards c ON c.id = ct.card_id
                   WHERE ct.card_owner_id = ?
                   ORDER BY ct.created_at DESC""",
                (owner_id,)
            ).fetchall()
            return [(self._row_to_contact(row), row["card_name"]) for row in rows]

    def _row_to_contact(self, row: sqlite3.Row) -> Contact:
        """Convert database row to Contact object."""
        try:
            return Contact(
                id=row["id"],
                card_id=row["card_id"],
                card_owner_id=row["card_owner_id"],
                name=row["name"],
                phone=row["phone"],
                sent_status=DeliveryStatus(row["sent_status"]),
                city=row["city"],
                state=row["state"],
                country=row["country"],
                latitude=_optional_float(row["latitude"]),
                longitude=_optional_float(row["longitude"]),
                error_message=row["error_message"],
                sent_at=row["sent_at"],
                created_at=row["created_at"],
            )
        except (KeyError, IndexError, TypeError, ValueError) as e:
            raise DeserializationError(f"Malformed contact row: {e}") from e

    # ── Delivery Logs ──────────────────────────────────────────────

    def add_delivery_log(self, contact_id: str, status: DeliveryStatus,
                         message_id: Optional[str] = None,
                         api_response: Optional[Dict[str, Any]] = None) -> DeliveryLogEntry:
        """Append an audit entry for one delivery attempt."""
        entry = DeliveryLogEntry(
            id=_new_id(),
            contact_id=contact_id,
            status=status,
            message_id=message_id,
            api_response=api_response or {},
            created_at=to_timestamp(utcnow()),
        )
        with self._get_connection() as conn:
            conn.execute(
                """INSERT INTO message_logs (id, contact_id, status, message_id, api_response, created_at)
                   VALUES (?, ?, ?, ?, ?, ?)""",
                (entry.id, entry.contact_id, entry.status.value, entry.message_id,
                 json.dumps(entry.api_response, default=str), entry.created_at)
            )
        return entry

    def get_delivery_logs(self, contact_id: str) -> List[DeliveryLogEntry]:
        with self._get_connection() as conn:
            rows = conn.execute(
                "SELECT * FROM message_logs WHERE contact_id = ? ORDER BY created_at",
                (contact_id,)
            ).fetchall()
            return [self._row_to_delivery_log(row) for row in rows]

    def _row_to_delivery_log(self, row: sqlite3.Row) -> DeliveryLogEntry:
        try:
            api_response = json.loads(row["api_response"] or "{}")
            if not isinstance(api_response, dict):
                raise ValueError("api_response is not a JSON object")
            return DeliveryLogEntry(
                id=row["id"],
                contact_id=row["contact_id"],
                status=DeliveryStatus(row["status"]),
                message_id=row["message_id"],
                api_response=api_response,
                created_at=row["created_at"],
            )
        except (KeyError, IndexError, TypeError, ValueError) as e:
            raise DeserializationError(f"Malformed message log row: {e}") from e

    # ── Connection Analytics ───────────────────────────────────────

    def count_contacts(self, owner_id: str, since: Optional[datetime] = None) -> int:
        """Count an owner's contacts, optionally only those created at or after `since`."""
        with self._get_connection() as conn:
            if since is None:
                row = conn.execute(
                    "SELECT COUNT(*) FROM contacts WHERE card_owner_id = ?",
                    (owner_id,)
                ).fetchone()
            else:
                row = conn.execute(
                    "SELECT COUNT(*) FROM contacts WHERE card_owner_id = ? AND created_at >= ?",
                    (owner_id, to_timestamp(since))
                ).fetchone()
            return int(row[0])

    def get_top_city(self, owner_id: str) -> Optional[Tuple[str, int]]:
        """
        Most frequent contact city for an owner.

        Ties go to the alphabetically first city name.
        """
        with self._get_connection() as conn:
            row = conn.execute(
                """SELECT city, COUNT(*) AS n FROM contacts
                   WHERE card_owner_id = ? AND city IS NOT NULL AND city != ''
                   GROUP BY city
                   ORDER BY n DESC, city ASC
                   LIMIT 1""",
                (owner_id,)
            ).fetchone()
            if not row:
                return None
            return row["city"], int(row["n"])

    def get_most_recent_contact(self, owner_id: str) -> Optional[RecentContact]:
        with self._get_connection() as conn:
            row = conn.execute(
                """SELECT name, created_at FROM contacts
                   WHERE card_owner_id = ?
                   ORDER BY created_at DESC
                   LIMIT 1""",
                (owner_id,)
            ).fetchone()
            if not row:
                return None
            try:
                return RecentContact(name=row["name"], created_at=row["created_at"])
            except (KeyError, IndexError) as e:
                raise DeserializationError(f"Malformed contact row: {e}") from e

    def list_geolocated_contacts(self, owner_id: str) -> List[ContactLocation]:
        """Contacts with both coordinates, newest first, for the map."""
        with self._get_connection() as conn:
            rows = conn.execute(
                """SELECT ct.id, ct.name, ct.phone, ct.city, ct.state, ct.latitude,
                          ct.longitude, ct.created_at, c.card_name AS card_name
                   FROM contacts ct LEFT JOIN cards c ON c.id = ct.card_id
                   WHERE ct.card_owner_id = ?
                     AND ct.latitude IS NOT NULL AND ct.longitude IS NOT NULL
                   ORDER BY ct.created_at DESC""",
                (owner_id,)
            ).fetchall()
            return [self._row_to_contact_location(row) for row in rows]

    def _row_to_contact_location(self, row: sqlite3.Row) -> ContactLocation:
        try:
            return ContactLocation(
                id=row["id"],
                name=row["name"],
                phone=row["phone"],
                latitude=float(row["latitude"]),
                longitude=float(row["longitude"]),
                created_at=row["created_at"],
                city=row["city"],
                state=row["state"],
                card_name=row["card_name"],
            )
        except (KeyError, IndexError, TypeError, ValueError) as e:
            raise DeserializationError(f"Malformed contact location row: {e}") from e
