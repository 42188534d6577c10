import json
import threading
import time

import pytest
import requests

from scanner.client import (
    ClassificationClient,
    ClassificationError,
    InvalidInputError,
    ServiceUnavailableError,
)


def _response(status_code, body) -> requests.Response:
    response = requests.Response()
    response.status_code = status_code
    response._content = body if isinstance(body, bytes) else json.dumps(body).encode()
    response.headers["Content-Type"] = "application/json"
    return response


@pytest.fixture
def client():
    return ClassificationClient("http://127.0.0.1:3000/", timeout=1.0)


def _answer(monkeypatch, client, response):
    sent = {}

    def post(url, files=None, timeout=None):
        sent.update(url=url, files=files, timeout=timeout)
        return response

    monkeypatch.setattr(client._session, "post", post)
    return sent


def test_successful_prediction(monkeypatch, client):
    sent = _answer(monkeypatch, client, _response(200, {"component": "ssd", "confidence": 0.87}))

    result = client.classify(b"jpeg", mime_type="image/png", filename="upload.png")

    assert result.component == "ssd"
    assert result.confidence == 0.87
    assert sent["url"] == "http://127.0.0.1:3000/predict"
    assert sent["files"] == {"image": ("upload.png", b"jpeg", "image/png")}
    assert sent["timeout"] == 1.0


@pytest.mark.parametrize("status, body, error_type, message", [
    (400, {"error": "Invalid image format", "details": "cannot identify"}, InvalidInputError,
     "Invalid image format"),
    (400, {"error": "No image file uploaded"}, InvalidInputError, "No image file uploaded"),
    (503, {"error": "Model not loaded yet", "fallback": "later"}, ServiceUnavailableError,
     "Model not loaded yet"),
    (500, {"details": "boom"}, ClassificationError, "boom"),
    (502, b"<html>bad gateway</html>", ClassificationError, "Backend prediction failed"),
])
def test_error_statuses_map_to_exceptions(monkeypatch, client, status, body, error_type, message):
    _answer(monkeypatch, client, _response(status, body))

    with pytest.raises(error_type) as exc_info:
        client.classify(b"jpeg")

    assert str(exc_info.value) == message


@pytest.mark.parametrize("body", [
    {"component": "ssd", "confidence": 4.2},
    ["ssd", 0.87],
    "ssd",
    b"not json at all",
])
def test_malformed_success_body(monkeypatch, client, body):
    _answer(monkeypatch, client, _response(200, body))

    with pytest.raises(ClassificationError, match="Malformed prediction response"):
        client.classify(b"jpeg")


def test_network_failure(monkeypatch, client):
    def post(*args, **kwargs):
        raise requests.exceptions.ConnectTimeout("timed out")

    monkeypatch.setattr(client._session, "post", post)

    with pytest.raises(ClassificationError) as exc_info:
        client.classify(b"jpeg")

    assert type(exc_info.value) is ClassificationError
    assert str(exc_info.value).startswith("Backend prediction failed")


def test_relay_url_follows_scheme():
    assert ClassificationClient("http://10.0.0.5:3000").relay_url == "ws://10.0.0.5:3000/ws"
    assert ClassificationClient("https://repair.example").relay_url == "wss://repair.example/ws"


def test_concurrent_uploads_do_not_share_the_session(monkeypatch, client):
    active = []
    overlap = []
    guard = threading.Lock()

    def post(url, files=None, timeout=None):
        with guard:
            active.append(1)
            overlap.append(len(active))
        time.sleep(0.05)
        with guard:
            active.pop()
        return _response(200, {"component": "ssd", "confidence": 0.5})

    monkeypatch.setattr(client._session, "post", post)

    threads = [threading.Thread(target=client.classify, args=(b"jpeg",)) for _ in range(3)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert len(overlap) == 3
    assert max(overlap) == 1
