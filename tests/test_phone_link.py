import base64
from urllib.parse import parse_qs, urlparse

from server import phone_link
from server.phone_link import PhoneLinkIssuer, qr_data_uri


def _token(phone_url: str) -> str:
    return parse_qs(urlparse(phone_url).query)["token"][0]


def test_qr_data_uri_is_png():
    uri = qr_data_uri("http://192.168.1.20:3000/phone?token=abc")

    assert uri.startswith("data:image/png;base64,")
    assert base64.b64decode(uri.split(",", 1)[1]).startswith(b"\x89PNG")


def test_issue_uses_public_base_url():
    issuer = PhoneLinkIssuer(base_url="https://repair.example/")

    link = issuer.issue()

    assert link.phoneUrl.startswith("https://repair.example/phone?token=")
    assert _token(link.phoneUrl) in issuer.pending


def test_token_is_single_use():
    issuer = PhoneLinkIssuer(base_url="http://scanner.test:3000")
    token = _token(issuer.issue().phoneUrl)

    assert issuer.consume(token) is True
    assert issuer.consume(token) is False
    assert issuer.consume("never-issued") is False


def test_oldest_tokens_are_evicted():
    issuer = PhoneLinkIssuer(base_url="http://scanner.test:3000", max_pending=2)
    first = _token(issuer.issue().phoneUrl)
    issuer.issue()
    issuer.issue()

    assert len(issuer.pending) == 2
    assert first not in issuer.pending


def test_expired_tokens_are_dropped(monkeypatch):
    clock = [1000.0]
    monkeypatch.setattr(phone_link.time, "monotonic", lambda: clock[0])
    issuer = PhoneLinkIssuer(base_url="http://scanner.test:3000", ttl_seconds=60)
    token = _token(issuer.issue().phoneUrl)
    clock[0] += 61

    assert issuer.consume(token) is False
