"""
Settings Module - Centralized Configuration Management
=======================================================

ARCHITECTURAL DECISION:
- All configuration is loaded from environment variables (no hardcoded secrets)
- Settings are immutable dataclass for safety and clarity
- Single source of truth for all configurable values

EXTENSIBILITY:
- To switch SMS gateway: add provider-specific settings next to SmsSettings
- To switch geolocation lookup: point GEOLOCATION_API_URL at a compatible API
"""

import os
from dataclasses import dataclass, field
from functools import lru_cache

# Load .env file if present (development convenience)
try:
    from dotenv import load_dotenv
    load_dotenv()
except ImportError:
    pass  # python-dotenv is optional


def _env_float(name: str, default: float) -> float:
    value = os.getenv(name)
    if not value:
        return default
    try:
        return float(value)
    except ValueError:
        return default


@dataclass(frozen=True)
class SmsSettings:
    """Vonage (Nexmo) SMS gateway settings."""

    api_key: str = field(default_factory=lambda: os.getenv("VONAGE_API_KEY", ""))
    api_secret: str = field(default_factory=lambda: os.getenv("VONAGE_API_SECRET", ""))
    api_url: str = field(
        default_factory=lambda: os.getenv("SMS_API_URL", "https://rest.nexmo.com/sms/json")
    )

    # Alphanumeric sender id shown on the owner's phone
    sender_id: str = field(default_factory=lambda: os.getenv("SMS_SENDER_ID", "CardLink"))

    timeout_seconds: float = field(
        default_factory=lambda: _env_float("SMS_TIMEOUT_SECONDS", 10.0)
    )

    @property
    def is_configured(self) -> bool:
        return bool(self.api_key and self.api_secret)


@dataclass(frozen=True)
class GeolocationSettings:
    """ipapi.co lookup settings (free tier, 1000 requests/day)."""

    api_url: str = field(
        default_factory=lambda: os.getenv("GEOLOCATION_API_URL", "https://ipapi.co")
    )
    timeout_seconds: float = field(
        default_factory=lambda: _env_float("GEOLOCATION_TIMEOUT_SECONDS", 5.0)
    )


@dataclass(frozen=True)
class Settings:
    """
    Root settings container - Single source of truth for all configuration.

    Usage:
        from cardlink.infrastructure.config import get_settings
        settings = get_settings()
        print(settings.sms.sender_id)
    """

    # Sub-settings groups
    sms: SmsSettings = field(default_factory=SmsSettings)
    geolocation: GeolocationSettings = field(default_factory=GeolocationSettings)

    database_file: str = field(
        default_factory=lambda: os.getenv("CARDLINK_DATABASE_FILE", "cardlink.db")
    )

    # Used to build the shareable /c/<card_id> links and QR codes
    public_base_url: str = field(
        default_factory=lambda: os.getenv("PUBLIC_BASE_URL", "http://127.0.0.1:8000").rstrip("/")
    )

    def card_url(self, card_id: str) -> str:
        return f"{self.public_base_url}/c/{card_id}"

    def validate(self) -> list[str]:
        """
        Validate settings and return list of warnings/errors.
        Returns empty list if all settings are valid.
        """
        issues = []

        if not self.sms.is_configured:
            issues.append(
                "WARNING: VONAGE_API_KEY / VONAGE_API_SECRET not set. "
                "Introductions will be saved but marked as failed."
            )

        if not self.public_base_url.startswith(("http://", "https://")):
            issues.append(
                f"WARNING: PUBLIC_BASE_URL looks invalid: {self.public_base_url}. "
                "Shared links and QR codes will not resolve."
            )

        return issues


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """
    Get singleton Settings instance.
    Cached to ensure consistent settings throughout application lifecycle.
    """
    return Settings()
