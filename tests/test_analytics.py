import sqlite3
from datetime import datetime, timedelta, timezone

from cardlink.application.analytics import ConnectionAnalytics, to_geojson
from cardlink.domain.models import Location
from cardlink.infrastructure.persistence import Database

NOW = datetime(2026, 10, 18, 12, 0, tzinfo=timezone.utc)


def add_contact(db, card, name="Grace", city=None, lat=None, lng=None, created_at=NOW):
    location = Location(city=city, latitude=lat, longitude=lng)
    return db.insert_contact(card.id, card.user_id, name, "555-0100", location, created_at=created_at)


def test_top_city_is_most_frequent(db, owner, card):
    for city in ["Austin", "Austin", "Denver"]:
        add_contact(db, card, city=city)

    metrics = ConnectionAnalytics(db).get_connection_metrics(owner.id, now=NOW).metrics

    assert metrics.top_city == "Austin"
    assert metrics.top_city_count == 2
    assert metrics.total == 3


def test_top_city_tie_goes_to_alphabetically_first(db, owner, card):
    for city in ["Denver", "Boston", "Austin", "Denver", "Austin"]:
        add_contact(db, card, city=city)

    metrics = ConnectionAnalytics(db).get_connection_metrics(owner.id, now=NOW).metrics

    assert metrics.top_city == "Austin"
    assert metrics.top_city_count == 2


def test_contacts_without_city_are_ignored_for_top_city(db, owner, card):
    add_contact(db, card, city=None)
    add_contact(db, card, city="")
    add_contact(db, card, city="Denver")

    metrics = ConnectionAnalytics(db).get_connection_metrics(owner.id, now=NOW).metrics

    assert metrics.top_city == "Denver"
    assert metrics.top_city_count == 1
    assert metrics.total == 3


def test_no_contacts_gives_zero_metrics_without_degrading(db, owner):
    result = ConnectionAnalytics(db).get_connection_metrics(owner.id, now=NOW)

    assert result.degraded is False
    assert result.metrics.total == 0
    assert result.metrics.this_month == 0
    assert result.metrics.top_city is None
    assert result.metrics.top_city_count == 0
    assert result.metrics.most_recent_contact is None


def test_this_month_is_a_trailing_thirty_day_window(db, owner, card):
    add_contact(db, card, name="recent", created_at=NOW - timedelta(days=29))
    add_contact(db, card, name="old", created_at=NOW - timedelta(days=31))

    metrics = ConnectionAnalytics(db).get_connection_metrics(owner.id, now=NOW).metrics

    assert metrics.total == 2
    assert metrics.this_month == 1


def test_window_lower_bound_is_inclusive(db, owner, card):
    add_contact(db, card, created_at=NOW - timedelta(days=30))

    metrics = ConnectionAnalytics(db).get_connection_metrics(owner.id, now=NOW).metrics

    assert metrics.this_month == 1


def test_most_recent_contact(db, owner, card):
    add_contact(db, card, name="Older", created_at=NOW - timedelta(days=3))
    newest = add_contact(db, card, name="Newest", created_at=NOW - timedelta(hours=1))
    add_contact(db, card, name="Middle", created_at=NOW - timedelta(days=1))

    recent = ConnectionAnalytics(db).get_connection_metrics(owner.id, now=NOW).metrics.most_recent_contact

    assert recent.name == "Newest"
    assert recent.created_at == newest.created_at


def test_metrics_are_scoped_to_owner(db, owner, card):
    other = db.create_profile("grace@cardlink.io", "Grace Hopper", "hash")
    other_card = db.create_card(other.id, card_name="Navy", first_name="Grace", last_name="Hopper")
    add_contact(db, card, city="Austin")
    add_contact(db, other_card, city="Arlington")
    add_contact(db, other_card, city="Arlington")

    metrics = ConnectionAnalytics(db).get_connection_metrics(owner.id, now=NOW).metrics

    assert metrics.total == 1
    assert metrics.top_city == "Austin"


def test_query_failure_degrades_to_empty_metrics(tmp_path, owner, card):
    class FailingDatabase(Database):
        def get_top_city(self, owner_id):
            raise sqlite3.OperationalError("database is locked")

    failing = FailingDatabase(str(tmp_path / "cardlink-test.db"))
    add_contact(failing, card, city="Austin")

    result = ConnectionAnalytics(failing).get_connection_metrics(owner.id, now=NOW)

    assert result.degraded is True
    assert "locked" in result.error
    assert result.metrics.total == 0
    assert result.metrics.top_city is None
    assert result.to_dict()["degraded"] is True


def test_geolocated_contacts_are_filtered_and_newest_first(db, owner, card):
    add_contact(db, card, name="No coords", city="Austin", created_at=NOW)
    add_contact(db, card, name="Half", lat=30.0, lng=None, created_at=NOW)
    add_contact(db, card, name="First", city="Denver", lat=39.74, lng=-104.99,
                created_at=NOW - timedelta(days=2))
    add_contact(db, card, name="Second", city="Austin", lat=30.27, lng=-97.74,
                created_at=NOW - timedelta(days=1))

    result = ConnectionAnalytics(db).list_geolocated_contacts(owner.id)

    assert result.degraded is False
    assert [c.name for c in result.contacts] == ["Second", "First"]
    assert result.contacts[0].card_name == "Work"


def test_geolocated_contacts_keep_deleted_card_contacts(db, owner, card):
    add_contact(db, card, lat=30.27, lng=-97.74)
    db.delete_card(card.id)

    contacts = ConnectionAnalytics(db).list_geolocated_contacts(owner.id).contacts

    assert len(contacts) == 1
    assert contacts[0].card_name is None


def test_geojson_uses_longitude_latitude_order(db, owner, card):
    add_contact(db, card, name="Grace", city="Austin", lat=30.27, lng=-97.74)

    contacts = ConnectionAnalytics(db).list_geolocated_contacts(owner.id).contacts
    geojson = to_geojson(contacts)

    assert geojson["type"] == "FeatureCollection"
    feature = geojson["features"][0]
    assert feature["geometry"] == {"type": "Point", "coordinates": [-97.74, 30.27]}
    assert feature["properties"]["city"] == "Austin"
