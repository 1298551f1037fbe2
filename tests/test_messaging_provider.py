import pytest
import requests

from cardlink.infrastructure.sms import SmsProviderError, VonageProvider
from cardlink.infrastructure.sms import messaging_provider

from conftest import REJECTED_RESPONSE, SENT_RESPONSE


class FakeResponse:
    status_code = 200

    def __init__(self, payload=None):
        self._payload = payload

    def json(self):
        return self._payload


def provider(**overrides):
    options = dict(api_key="key", api_secret="secret", sender_id="CardLink",
                   api_url="https://sms.test/sms/json", timeout=1)
    options.update(overrides)
    return VonageProvider(**options)


def test_parse_success_status():
    report = VonageProvider.parse_response(SENT_RESPONSE)

    assert report.success is True
    assert report.message_id == "0A0000001234ABCD"
    assert report.error_text is None
    assert report.raw_response == SENT_RESPONSE


def test_parse_rejection_carries_error_text():
    report = VonageProvider.parse_response(REJECTED_RESPONSE)

    assert report.success is False
    assert report.error_text == "Bad destination"


@pytest.mark.parametrize("body", [{}, {"messages": []}, {"messages": [{"status": 0}]}, "oops"])
def test_parse_unexpected_shapes_fail(body):
    report = VonageProvider.parse_response(body)

    assert report.success is False
    assert report.error_text


def test_send_posts_credentials_and_message(monkeypatch):
    posted = {}

    def fake_post(url, json=None, timeout=None):
        posted.update(url=url, json=json, timeout=timeout)
        return FakeResponse(SENT_RESPONSE)

    monkeypatch.setattr(messaging_provider.requests, "post", fake_post)

    report = provider().send_message("15550102000", "Hi Ada")

    assert report.success is True
    assert posted["url"] == "https://sms.test/sms/json"
    assert posted["json"] == {
        "from": "CardLink",
        "to": "15550102000",
        "text": "Hi Ada",
        "api_key": "key",
        "api_secret": "secret",
    }


def test_transport_error_is_a_failed_report(monkeypatch):
    def fake_post(url, json=None, timeout=None):
        raise requests.ConnectionError("connection refused")

    monkeypatch.setattr(messaging_provider.requests, "post", fake_post)

    report = provider().send_message("15550102000", "Hi Ada")

    assert report.success is False
    assert "connection refused" in report.error_text


def test_html_error_page_is_a_malformed_response(monkeypatch):
    gateway_page = requests.models.Response()
    gateway_page.status_code = 502
    gateway_page._content = b"<html>Bad Gateway</html>"
    monkeypatch.setattr(messaging_provider.requests, "post",
                        lambda url, json=None, timeout=None: gateway_page)

    report = provider().send_message("15550102000", "Hi Ada")

    assert report.success is False
    assert report.error_text == "Malformed SMS provider response"
    assert report.raw_response["status_code"] == 502


def test_missing_credentials():
    unconfigured = provider(api_key="", api_secret="")

    assert unconfigured.is_configured() is False
    with pytest.raises(SmsProviderError):
        unconfigured.send_message("15550102000", "Hi Ada")
