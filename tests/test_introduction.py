import pytest

from cardlink.application.introduction import (
    NOT_CONFIGURED_MESSAGE,
    OWNER_NAME_PLACEHOLDER,
    CardNotFound,
    ConfigurationError,
    IntroductionPipeline,
    InvalidRequest,
    PersistenceError,
)
from cardlink.domain.models import DeliveryStatus
from cardlink.infrastructure.persistence import Database, DatabaseError

from conftest import AUSTIN, REJECTED_RESPONSE, FakeSmsProvider, StubLocator


def make_pipeline(db, locator=None, sms=None):
    return IntroductionPipeline(db, locator or StubLocator(AUSTIN), sms or FakeSmsProvider())


def only_contact(db, owner_id):
    contacts = db.list_contacts(owner_id)
    assert len(contacts) == 1
    return contacts[0][0]


def test_successful_introduction_marks_contact_sent(db, owner, card, locator, sms):
    outcome = make_pipeline(db, locator, sms).submit(card.id, "Grace Hopper", "555-0100", "203.0.113.7")

    assert outcome.success is True
    assert outcome.message == "Introduction sent!"

    contact = db.get_contact(outcome.contact_id)
    assert contact.sent_status is DeliveryStatus.SENT
    assert contact.sent_at
    assert contact.error_message is None

    logs = db.get_delivery_logs(contact.id)
    assert len(logs) == 1
    assert logs[0].status is DeliveryStatus.SENT
    assert logs[0].message_id == "0A0000001234ABCD"
    assert logs[0].api_response["messages"][0]["status"] == "0"


def test_message_is_sent_to_mobile_digits_with_owner_name(db, owner, card, locator, sms):
    make_pipeline(db, locator, sms).submit(card.id, "Grace Hopper", "555-0100", "203.0.113.7")

    assert sms.sent == [(
        "15550102000",
        "Hi Ada, Ada Lovelace (Grace Hopper) would like to connect! Phone: 555-0100",
    )]


def test_provider_rejection_marks_contact_failed_and_logs(db, owner, card, locator):
    sms = FakeSmsProvider(response=REJECTED_RESPONSE)
    outcome = make_pipeline(db, locator, sms).submit(card.id, "Grace", "555-0100", "203.0.113.7")

    assert outcome.success is False
    assert outcome.message == "Failed to send SMS"
    assert outcome.error == "Bad destination"

    contact = db.get_contact(outcome.contact_id)
    assert contact.sent_status is DeliveryStatus.FAILED
    assert contact.error_message == "Bad destination"
    assert contact.sent_at is None

    logs = db.get_delivery_logs(contact.id)
    assert len(logs) == 1
    assert logs[0].status is DeliveryStatus.FAILED
    assert logs[0].message_id is None


def test_provider_exception_is_a_delivery_failure(db, owner, card, locator):
    sms = FakeSmsProvider(error=ConnectionError("network unreachable"))
    outcome = make_pipeline(db, locator, sms).submit(card.id, "Grace", "555-0100", "203.0.113.7")

    assert outcome.success is False
    contact = db.get_contact(outcome.contact_id)
    assert contact.sent_status is DeliveryStatus.FAILED
    assert contact.error_message == "network unreachable"
    assert len(db.get_delivery_logs(contact.id)) == 1


def test_missing_credentials_fail_contact_without_calling_provider(db, owner, card, locator):
    sms = FakeSmsProvider(configured=False)

    with pytest.raises(ConfigurationError) as exc_info:
        make_pipeline(db, locator, sms).submit(card.id, "Grace", "555-0100", "203.0.113.7")

    assert sms.sent == []
    contact = only_contact(db, owner.id)
    assert contact.id == exc_info.value.contact_id
    assert contact.sent_status is DeliveryStatus.FAILED
    assert contact.error_message == NOT_CONFIGURED_MESSAGE
    assert db.get_delivery_logs(contact.id) == []


@pytest.mark.parametrize("name,phone", [
    ("", "555-0100"),
    ("   ", "555-0100"),
    ("Grace", ""),
    ("Grace", None),
    (None, "555-0100"),
])
def test_missing_name_or_phone_saves_nothing(db, owner, card, locator, sms, name, phone):
    with pytest.raises(InvalidRequest):
        make_pipeline(db, locator, sms).submit(card.id, name, phone, "203.0.113.7")

    assert db.count_contacts(owner.id) == 0
    assert locator.addresses == []
    assert sms.sent == []


def test_missing_card_id_is_invalid(db, owner, locator, sms):
    with pytest.raises(InvalidRequest):
        make_pipeline(db, locator, sms).submit("", "Grace", "555-0100", "203.0.113.7")


def test_unknown_card_saves_nothing(db, owner, locator, sms):
    with pytest.raises(CardNotFound):
        make_pipeline(db, locator, sms).submit("does-not-exist", "Grace", "555-0100", "203.0.113.7")

    assert db.count_contacts(owner.id) == 0
    assert sms.sent == []


def test_inactive_card_saves_nothing(db, owner, card, locator, sms):
    db.set_card_active(card.id, False)

    with pytest.raises(CardNotFound):
        make_pipeline(db, locator, sms).submit(card.id, "Grace", "555-0100", "203.0.113.7")

    assert db.count_contacts(owner.id) == 0


def test_resolved_location_is_persisted(db, owner, card, locator, sms):
    outcome = make_pipeline(db, locator, sms).submit(card.id, "Grace", "555-0100", "203.0.113.7")

    contact = db.get_contact(outcome.contact_id)
    assert contact.location == AUSTIN
    assert locator.addresses == ["203.0.113.7"]


def test_unresolved_location_still_sends(db, owner, card, sms):
    outcome = make_pipeline(db, StubLocator(None), sms).submit(card.id, "Grace", "555-0100", "unknown")

    contact = db.get_contact(outcome.contact_id)
    assert (contact.city, contact.state, contact.country) == (None, None, None)
    assert (contact.latitude, contact.longitude) == (None, None)
    assert len(sms.sent) == 1
    assert outcome.success is True


def test_resubmission_creates_a_new_contact(db, owner, card, locator, sms):
    pipeline = make_pipeline(db, locator, sms)

    first = pipeline.submit(card.id, "Grace", "555-0100", "203.0.113.7")
    second = pipeline.submit(card.id, "Grace", "555-0100", "203.0.113.7")

    assert first.contact_id != second.contact_id
    assert db.count_contacts(owner.id) == 2
    assert len(sms.sent) == 2


def test_missing_profile_uses_placeholder_name(db, locator, sms):
    card = db.create_card("ghost-owner", card_name="Card", first_name="Alan", last_name="Turing",
                          mobile_number="555 010 3000")

    make_pipeline(db, locator, sms).submit(card.id, "Grace", "555-0100", "203.0.113.7")

    assert sms.sent[0][1].startswith(f"Hi Alan, {OWNER_NAME_PLACEHOLDER} (Grace)")


def test_card_without_mobile_number_fails_without_provider_call(db, owner, locator, sms):
    card = db.create_card(owner.id, card_name="No phone", first_name="Ada", last_name="Lovelace")

    outcome = make_pipeline(db, locator, sms).submit(card.id, "Grace", "555-0100", "203.0.113.7")

    assert outcome.success is False
    assert sms.sent == []
    contact = db.get_contact(outcome.contact_id)
    assert contact.error_message == "Card has no mobile number"
    assert len(db.get_delivery_logs(contact.id)) == 1


def test_insert_failure_raises_persistence_error(tmp_path, owner, card, locator, sms):
    class BrokenDatabase(Database):
        def insert_contact(self, *args, **kwargs):
            raise DatabaseError("disk I/O error")

    broken = BrokenDatabase(str(tmp_path / "cardlink-test.db"))

    with pytest.raises(PersistenceError):
        make_pipeline(broken, locator, sms).submit(card.id, "Grace", "555-0100", "203.0.113.7")

    assert sms.sent == []


def test_unexpected_error_after_insert_leaves_contact_failed(db, owner, card, locator):
    class ExplodingProvider(FakeSmsProvider):
        def is_configured(self):
            raise RuntimeError("credentials lookup crashed")

    with pytest.raises(RuntimeError):
        make_pipeline(db, locator, ExplodingProvider()).submit(card.id, "Grace", "555-0100", "203.0.113.7")

    contact = only_contact(db, owner.id)
    assert contact.sent_status is DeliveryStatus.FAILED
    assert contact.error_message == "credentials lookup crashed"


def test_delivered_sms_is_never_recorded_as_failed(tmp_path, owner, card, locator, sms):
    class FlakyDatabase(Database):
        failures = 1

        def update_contact_status(self, contact_id, status, **kwargs):
            if status is DeliveryStatus.SENT and self.failures:
                self.failures -= 1
                raise DatabaseError("database is locked")
            return super().update_contact_status(contact_id, status, **kwargs)

    flaky = FlakyDatabase(str(tmp_path / "cardlink-test.db"))

    with pytest.raises(DatabaseError):
        make_pipeline(flaky, locator, sms).submit(card.id, "Grace", "555-0100", "203.0.113.7")

    assert len(sms.sent) == 1
    contact = only_contact(flaky, owner.id)
    assert contact.sent_status is DeliveryStatus.SENT
    assert contact.sent_at is not None
