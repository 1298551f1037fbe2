"""
Connection Analytics - Dashboard Metrics and Map Data
======================================================

Read-only views over an owner's contacts:
- metrics: total, last 30 days, top city, most recent contact
- locations: geolocated contacts for the heat map (list or GeoJSON)

The four metric queries run independently, without a shared transaction.
Any failure degrades to an empty result flagged as degraded, so a dashboard
can tell "no connections yet" apart from "couldn't load".
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

from ..domain.models import ConnectionMetrics, ContactLocation, utcnow
from ..infrastructure.persistence import Database

logger = logging.getLogger(__name__)

RECENT_WINDOW = timedelta(days=30)


@dataclass
class MetricsResult:
    metrics: ConnectionMetrics
    degraded: bool = False
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data = self.metrics.to_dict()
        data["degraded"] = self.degraded
        return data


@dataclass
class LocationsResult:
    contacts: List[ContactLocation] = field(default_factory=list)
    degraded: bool = False
    error: Optional[str] = None


class ConnectionAnalytics:
    """
    Connection metrics for a card owner.

    USAGE:
        analytics = ConnectionAnalytics(db)
        result = analytics.get_connection_metrics(owner_id)
        if not result.degraded:
            print(result.metrics.top_city)
    """

    def __init__(self, db: Database):
        self._db = db

    def get_connection_metrics(self, owner_id: str,
                               now: Optional[datetime] = None) -> MetricsResult:
        now = now or utcnow()
        try:
            total = self._db.count_contacts(owner_id)
            this_month = self._db.count_contacts(owner_id, since=now - RECENT_WINDOW)
            top = self._db.get_top_city(owner_id)
            recent = self._db.get_most_recent_contact(owner_id)
        except Exception as e:
            logger.exception(f"Error fetching connection metrics for {owner_id}: {e}")
            return MetricsResult(ConnectionMetrics(), degraded=True, error=str(e))

        top_city, top_city_count = top if top else (None, 0)
        return MetricsResult(
            ConnectionMetrics(
                total=total,
                this_month=this_month,
                top_city=top_city,
                top_city_count=top_city_count,
                most_recent_contact=recent,
            )
        )

    def list_geolocated_contacts(self, owner_id: str) -> LocationsResult:
        """Contacts with coordinates, newest first."""
        try:
            return LocationsResult(self._db.list_geolocated_contacts(owner_id))
        except Exception as e:
            logger.exception(f"Error fetching contacts with location for {owner_id}: {e}")
            return LocationsResult(degraded=True, error=str(e))


def to_geojson(contacts: List[ContactLocation]) -> Dict[str, Any]:
    """Render contacts as a GeoJSON FeatureCollection for the heat layer."""
    return {
        "type": "FeatureCollection",
        "features": [
            {
                "type": "Feature",
                "geometry": {
                    "type": "Point",
                    "coordinates": [contact.longitude, contact.latitude],
                },
                "properties": {
                    "id": contact.id,
                    "name": contact.name,
                    "city": contact.city,
                    "state": contact.state,
                    "created_at": contact.created_at,
                },
            }
            for contact in contacts
        ],
    }
