import pytest

from cardlink.domain.models import Location
from cardlink.infrastructure.persistence import Database
from cardlink.infrastructure.sms import DeliveryReport, MessagingProvider, VonageProvider

AUSTIN = Location(city="Austin", state="Texas", country="United States",
                  latitude=30.2672, longitude=-97.7431)

SENT_RESPONSE = {
    "message-count": "1",
    "messages": [{"to": "15550102000", "message-id": "0A0000001234ABCD", "status": "0"}],
}

REJECTED_RESPONSE = {
    "message-count": "1",
    "messages": [{"status": "1", "error-text": "Bad destination"}],
}


class StubLocator:
    """Stands in for IPLocator; returns a fixed location and records lookups."""

    def __init__(self, location=None):
        self.location = location
        self.addresses = []

    def resolve(self, address):
        self.addresses.append(address)
        return self.location


class FakeSmsProvider(MessagingProvider):
    """Records sends and answers with a canned Vonage response."""

    def __init__(self, response=None, configured=True, error=None):
        self.response = SENT_RESPONSE if response is None else response
        self.configured = configured
        self.error = error
        self.sent = []

    def is_configured(self) -> bool:
        return self.configured

    def send_message(self, phone: str, text: str) -> DeliveryReport:
        self.sent.append((phone, text))
        if self.error:
            raise self.error
        return VonageProvider.parse_response(self.response)


@pytest.fixture
def db(tmp_path):
    database = Database(str(tmp_path / "cardlink-test.db"))
    database.init()
    return database


@pytest.fixture
def owner(db):
    return db.create_profile("ada@cardlink.io", "Ada Lovelace", "not-a-real-hash")


@pytest.fixture
def card(db, owner):
    return db.create_card(
        owner.id,
        card_name="Work",
        first_name="Ada",
        last_name="Lovelace",
        job_title="Analyst",
        company_name="Analytical Engines Ltd",
        mobile_number="+1 (555) 010-2000",
    )


@pytest.fixture
def sms():
    return FakeSmsProvider()


@pytest.fixture
def locator():
    return StubLocator(AUSTIN)
