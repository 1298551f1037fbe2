"""
IP Locator - Best-Effort Geolocation of Contact Submissions
============================================================

ARCHITECTURAL DECISION:
- Uses ipapi.co (free tier, no key) for IP -> city/region/country/lat-long
- One attempt per request, no retry: location is enrichment, never required
- Every failure (timeout, API error payload, malformed JSON) becomes None

EXTENSIBILITY:
- To use a different lookup: subclass IPLocator and override _fetch()
"""

import logging
from typing import Any, Dict, Mapping, Optional

import requests

from ...domain.models import Location
from ..config import get_settings

logger = logging.getLogger(__name__)

UNKNOWN_ADDRESS = "unknown"


class GeolocationError(Exception):
    """Raised internally when a lookup cannot produce a location."""
    pass


def extract_client_address(headers: Mapping[str, str]) -> str:
    """
    Pick the originating client address from proxy headers.

    First entry of X-Forwarded-For, else X-Real-IP, else "unknown".
    """
    forwarded = headers.get("x-forwarded-for") or ""
    first = forwarded.split(",")[0].strip()
    if first:
        return first

    real_ip = (headers.get("x-real-ip") or "").strip()
    return real_ip or UNKNOWN_ADDRESS


def _coordinate(value: Any) -> Optional[float]:
    if value is None or value == "":
        return None
    return float(value)


class IPLocator:
    """
    Geolocation resolver backed by ipapi.co.

    USAGE:
        locator = IPLocator()
        location = locator.resolve("8.8.8.8")
        if location:
            print(location.city)

    FALLBACK BEHAVIOR:
    - "unknown" or empty address: None, no network call
    - API error field, HTTP error, timeout, bad payload: None
    """

    def __init__(self, api_url: Optional[str] = None, timeout: Optional[float] = None):
        settings = get_settings().geolocation
        self._api_url = (api_url or settings.api_url).rstrip("/")
        self._timeout = timeout if timeout is not None else settings.timeout_seconds

    def resolve(self, address: str) -> Optional[Location]:
        """Resolve an IP address to a coarse location, or None."""
        if not address or address == UNKNOWN_ADDRESS:
            logger.debug("No client address, skipping geolocation")
            return None

        try:
            data = self._fetch(address)
            return self._parse_location(data)

        except requests.Timeout:
            logger.warning(f"Geolocation timeout for {address}")
            return None

        except requests.RequestException as e:
            logger.warning(f"Geolocation request failed for {address}: {e}")
            return None

        except GeolocationError as e:
            logger.warning(f"Geolocation API error for {address}: {e}")
            return None

    def _fetch(self, address: str) -> Dict[str, Any]:
        response = requests.get(
            f"{self._api_url}/{address}/json/",
            timeout=self._timeout
        )
        response.raise_for_status()

        try:
            data = response.json()
        except ValueError as e:
            raise GeolocationError(f"Malformed response: {e}") from e

        if not isinstance(data, dict):
            raise GeolocationError("Response is not a JSON object")
        return data

    def _parse_location(self, data: Dict[str, Any]) -> Location:
        """Map an ipapi.co payload onto a Location."""
        if data.get("error"):
            raise GeolocationError(data.get("reason") or data.get("message") or "error flag set")

        try:
            location = Location(
                city=data.get("city"),
                state=data.get("region"),
                country=data.get("country_name"),
                latitude=_coordinate(data.get("latitude")),
                longitude=_coordinate(data.get("longitude")),
            )
        except (TypeError, ValueError) as e:
            raise GeolocationError(f"Invalid coordinates: {e}") from e

        logger.debug(f"Resolved location: {location}")
        return location
