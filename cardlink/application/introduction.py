"""
Introduction Pipeline - Connection Request to SMS Introduction
===============================================================

Flow for one submission from a public card:

    validate -> active card -> owner name -> geolocate -> save contact (pending)
             -> credentials check -> compose -> send SMS -> update status -> log

ARCHITECTURAL DECISION:
- Failures before the contact is saved leave no trace and raise
- Once the contact exists, every outcome is written back to it; the status
  update runs even if something unexpected blows up mid-delivery
- No retry and no deduplication: each submission is its own contact and
  its own SMS attempt
"""

import logging
from dataclasses import dataclass
from typing import Optional

from ..domain.models import Card, Contact, DeliveryStatus, Location, to_timestamp, utcnow
from ..infrastructure.geolocation import IPLocator
from ..infrastructure.persistence import Database, DatabaseError
from ..infrastructure.sms import DeliveryReport, MessagingProvider

logger = logging.getLogger(__name__)

OWNER_NAME_PLACEHOLDER = "A contact"
NOT_CONFIGURED_MESSAGE = "SMS service not configured"
NO_MOBILE_MESSAGE = "Card has no mobile number"

INTRODUCTION_TEMPLATE = "Hi {first_name}, {owner_name} ({name}) would like to connect! Phone: {phone}"

SUCCESS_MESSAGE = "Introduction sent!"
FAILURE_MESSAGE = "Failed to send SMS"


class IntroductionError(Exception):
    """Base exception for introduction pipeline errors."""

    message = "An error occurred"

    def __init__(self, message: Optional[str] = None):
        super().__init__(message or self.message)
        self.message = message or self.message


class InvalidRequest(IntroductionError):
    """Card id, name or phone missing. Nothing was saved."""
    message = "Card, name and phone are required"


class CardNotFound(IntroductionError):
    """Card missing or deactivated. Nothing was saved."""
    message = "Card not found"


class PersistenceError(IntroductionError):
    """The contact could not be saved, so no SMS was attempted."""
    message = "Failed to save contact"


class ConfigurationError(IntroductionError):
    """SMS credentials missing. The contact was saved and marked failed."""
    message = NOT_CONFIGURED_MESSAGE

    def __init__(self, message: Optional[str] = None, contact_id: Optional[str] = None):
        super().__init__(message)
        self.contact_id = contact_id


@dataclass
class IntroductionOutcome:
    success: bool
    message: str
    contact_id: Optional[str] = None
    error: Optional[str] = None


class IntroductionPipeline:
    """
    Turns a connection request into a saved contact and an SMS to the card owner.

    USAGE:
        pipeline = IntroductionPipeline(db, IPLocator(), VonageProvider())
        outcome = pipeline.submit(card_id, "Grace Hopper", "(555) 010-0000", "203.0.113.7")
    """

    def __init__(self, db: Database, locator: IPLocator, sms_provider: MessagingProvider):
        self._db = db
        self._locator = locator
        self._sms = sms_provider

    def submit(self, card_id: str, submitter_name: str, submitter_phone: str,
               source_address: str) -> IntroductionOutcome:
        """
        Run the full introduction flow.

        Raises:
            InvalidRequest, CardNotFound, PersistenceError: nothing was saved.
            ConfigurationError: contact saved and marked failed, no SMS sent.
        """
        name = (submitter_name or "").strip()
        phone = (submitter_phone or "").strip()
        if not card_id or not name or not phone:
            raise InvalidRequest()

        card = self._db.get_active_card(card_id)
        if card is None:
            logger.warning(f"Introduction for unknown or inactive card {card_id}")
            raise CardNotFound()

        owner_name = self._owner_display_name(card)
        location = self._locator.resolve(source_address)
        logger.info(f"Location for card {card_id} submission: {location}")

        contact = self._save_contact(card, name, phone, location)
        return self._deliver(card, contact, owner_name)

    # ── Steps ──────────────────────────────────────────────────────

    def _owner_display_name(self, card: Card) -> str:
        profile = self._db.get_profile(card.user_id)
        if profile is None or not profile.full_name:
            logger.warning(f"No profile name for card owner {card.user_id}, using placeholder")
            return OWNER_NAME_PLACEHOLDER
        return profile.full_name

    def _save_contact(self, card: Card, name: str, phone: str,
                      location: Optional[Location]) -> Contact:
        try:
            contact = self._db.insert_contact(card.id, card.user_id, name, phone, location)
        except DatabaseError as e:
            logger.error(f"Error saving contact for card {card.id}: {e}")
            raise PersistenceError() from e

        logger.info(f"Contact saved: {contact.id}")
        return contact

    def _deliver(self, card: Card, contact: Contact, owner_name: str) -> IntroductionOutcome:
        """Everything after the contact insert. The contact always ends up final."""
        finalized = False
        delivered = False
        try:
            if not self._sms.is_configured():
                logger.error("SMS credentials not configured")
                self._db.update_contact_status(
                    contact.id, DeliveryStatus.FAILED, error_message=NOT_CONFIGURED_MESSAGE
                )
                finalized = True
                raise ConfigurationError(contact_id=contact.id)

            text = INTRODUCTION_TEMPLATE.format(
                first_name=card.first_name,
                owner_name=owner_name,
                name=contact.name,
                phone=contact.phone,
            )
            report = self._send(card, text)
            delivered = report.success

            if report.success:
                status = DeliveryStatus.SENT
                self._db.update_contact_status(
                    contact.id, status, sent_at=to_timestamp(utcnow())
                )
            else:
                status = DeliveryStatus.FAILED
                self._db.update_contact_status(
                    contact.id, status, error_message=report.error_text
                )
            finalized = True

            self._db.add_delivery_log(
                contact.id,
                status,
                message_id=report.message_id,
                api_response=report.raw_response,
            )

        except Exception as e:
            if finalized:
                raise
            if delivered:
                # SMS already accepted by the provider, never record it as failed
                logger.exception(f"SMS delivered for contact {contact.id} but status update failed: {e}")
                self._db.update_contact_status(
                    contact.id, DeliveryStatus.SENT, sent_at=to_timestamp(utcnow())
                )
            else:
                logger.exception(f"Introduction for contact {contact.id} aborted: {e}")
                self._db.update_contact_status(
                    contact.id, DeliveryStatus.FAILED, error_message=str(e) or type(e).__name__
                )
            raise

        if report.success:
            logger.info(f"Introduction sent for contact {contact.id}")
            return IntroductionOutcome(True, SUCCESS_MESSAGE, contact_id=contact.id)

        logger.warning(f"Introduction failed for contact {contact.id}: {report.error_text}")
        return IntroductionOutcome(
            False, FAILURE_MESSAGE, contact_id=contact.id, error=report.error_text
        )

    def _send(self, card: Card, text: str) -> DeliveryReport:
        to = card.mobile_digits
        if not to:
            return DeliveryReport(
                success=False,
                error_text=NO_MOBILE_MESSAGE,
                raw_response={"error": NO_MOBILE_MESSAGE},
            )

        logger.info(f"Sending SMS to: {to}")
        try:
            return self._sms.send_message(to, text)
        except Exception as e:
            logger.exception(f"SMS provider raised: {e}")
            return DeliveryReport(
                success=False,
                error_text=str(e) or type(e).__name__,
                raw_response={"error": str(e)},
            )
