"""
Messaging Provider - Abstraction Layer for SMS Introductions
=============================================================

Provides a unified interface for sending an SMS to a card owner.
Currently supports the Vonage (Nexmo) SMS API.

USAGE:
    provider = VonageProvider()
    if provider.is_configured():
        report = provider.send_message("15551234567", "Hello!")
        print(report.success, report.message_id)
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

import requests

from ..config import get_settings

logger = logging.getLogger(__name__)

# Vonage reports per-message status codes as strings; "0" means delivered to the carrier
VONAGE_SUCCESS_STATUS = "0"


class SmsProviderError(Exception):
    """Base exception for SMS provider errors."""
    pass


@dataclass
class DeliveryReport:
    """Outcome of a single send attempt, including the raw provider payload."""
    success: bool
    message_id: Optional[str] = None
    error_text: Optional[str] = None
    raw_response: Dict[str, Any] = field(default_factory=dict)


class MessagingProvider(ABC):
    """
    Abstract base class for SMS providers.
    Implement this interface to add new messaging backends.
    """

    @abstractmethod
    def is_configured(self) -> bool:
        """Check that credentials are present. No network call."""
        ...

    @abstractmethod
    def send_message(self, phone: str, text: str) -> DeliveryReport:
        """Send a text message to a digits-only phone number. Single attempt."""
        ...


class VonageProvider(MessagingProvider):
    """
    Vonage SMS API provider.

    Configuration needed:
        - api_key / api_secret: Vonage account credentials
        - sender_id: alphanumeric "from" shown to the recipient
        - api_url: defaults to https://rest.nexmo.com/sms/json
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        api_secret: Optional[str] = None,
        sender_id: Optional[str] = None,
        api_url: Optional[str] = None,
        timeout: Optional[float] = None,
    ):
        settings = get_settings().sms
        self._api_key = settings.api_key if api_key is None else api_key
        self._api_secret = settings.api_secret if api_secret is None else api_secret
        self._sender_id = sender_id or settings.sender_id
        self._api_url = api_url or settings.api_url
        self._timeout = timeout if timeout is not None else settings.timeout_seconds

    def is_configured(self) -> bool:
        return bool(self._api_key and self._api_secret)

    def send_message(self, phone: str, text: str) -> DeliveryReport:
        """
        Send message via Vonage.

        Transport errors are reported as a failed DeliveryReport rather than
        raised; the error text ends up on the contact record.
        """
        if not self.is_configured():
            raise SmsProviderError("Vonage credentials not configured")

        payload = {
            "from": self._sender_id,
            "to": phone,
            "text": text,
            "api_key": self._api_key,
            "api_secret": self._api_secret,
        }

        try:
            response = requests.post(
                self._api_url,
                json=payload,
                timeout=self._timeout
            )

        except requests.Timeout:
            logger.warning(f"Vonage timeout sending to {phone}")
            return DeliveryReport(
                success=False,
                error_text="SMS provider timed out",
                raw_response={"error": "timeout"},
            )

        except requests.RequestException as e:
            logger.warning(f"Vonage request failed: {e}")
            return DeliveryReport(
                success=False,
                error_text=str(e),
                raw_response={"error": str(e)},
            )

        try:
            data = response.json()
        except ValueError as e:
            logger.warning(f"Vonage returned a non-JSON response ({response.status_code}): {e}")
            return DeliveryReport(
                success=False,
                error_text="Malformed SMS provider response",
                raw_response={"error": str(e), "status_code": response.status_code},
            )

        return self.parse_response(data)

    @staticmethod
    def parse_response(data: Any) -> DeliveryReport:
        """Interpret a Vonage response body."""
        if not isinstance(data, dict):
            return DeliveryReport(
                success=False,
                error_text="Malformed SMS provider response",
                raw_response={"body": data},
            )

        messages = data.get("messages") or []
        first = messages[0] if messages and isinstance(messages[0], dict) else {}

        success = first.get("status") == VONAGE_SUCCESS_STATUS
        error_text = None
        if not success:
            error_text = first.get("error-text") or "Unknown SMS provider error"

        logger.debug(f"Vonage response: {data}")
        return DeliveryReport(
            success=success,
            message_id=first.get("message-id"),
            error_text=error_text,
            raw_response=data,
        )
