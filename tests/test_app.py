from urllib.parse import parse_qs, urlparse

import pytest
from fastapi.testclient import TestClient

from server.app import create_app
from server.classifier import HardwareClassifier, InferenceError
from server.vocabulary import FALLBACK_CLASSES
from tests.conftest import image_bytes


@pytest.fixture
def client(make_config, loaded_classifier):
    app = create_app(make_config(), classifier=loaded_classifier)
    with TestClient(app) as c:
        yield c


@pytest.fixture
def unloaded_client(make_config):
    config = make_config()
    app = create_app(config, classifier=HardwareClassifier(config.model_path))
    with TestClient(app) as c:
        yield c


def test_predict_small_jpeg(client, jpeg_50):
    response = client.post("/predict", files={"image": ("capture.jpg", jpeg_50, "image/jpeg")})

    assert response.status_code == 200
    body = response.json()
    assert set(body) == {"component", "confidence"}
    assert body["component"] in FALLBACK_CLASSES
    assert 0.0 <= body["confidence"] <= 1.0


def test_predict_png_upload(client):
    png = image_bytes(size=(300, 120), fmt="PNG")

    response = client.post("/predict", files={"image": ("upload.png", png, "image/png")})

    assert response.status_code == 200


def test_predict_without_file(client):
    response = client.post("/predict")

    assert response.status_code == 400
    assert response.json() == {"error": "No image file uploaded"}


def test_predict_with_wrong_field_name(client, jpeg_50):
    response = client.post("/predict", files={"photo": ("capture.jpg", jpeg_50, "image/jpeg")})

    assert response.status_code == 400
    assert response.json()["error"] == "No image file uploaded"


def test_predict_with_text_field_instead_of_file(client):
    response = client.post("/predict", data={"image": "not-a-file"})

    assert response.status_code == 400
    assert response.json() == {"error": "No image file uploaded"}


def test_predict_non_image_is_input_error(client):
    response = client.post("/predict", files={"image": ("notes.txt", b"hello there", "text/plain")})

    assert response.status_code == 400
    body = response.json()
    assert body["error"] == "Invalid image format"
    assert "details" in body


def test_predict_while_model_unavailable(unloaded_client, jpeg_50):
    response = unloaded_client.post("/predict", files={"image": ("capture.jpg", jpeg_50, "image/jpeg")})

    assert response.status_code == 503
    body = response.json()
    assert body["error"] == "Model not loaded yet"
    assert body["fallback"]


def test_internal_error_includes_stack_in_development(make_config, loaded_classifier, jpeg_50, monkeypatch):
    def boom(_):
        raise InferenceError("tensor shape mismatch")

    monkeypatch.setattr(loaded_classifier, "classify", boom)
    app = create_app(make_config(environment="development"), classifier=loaded_classifier)

    with TestClient(app) as c:
        response = c.post("/predict", files={"image": ("capture.jpg", jpeg_50, "image/jpeg")})

    assert response.status_code == 500
    body = response.json()
    assert body["error"] == "Internal server error"
    assert body["details"] == "tensor shape mismatch"
    assert "InferenceError" in body["stack"]


def test_internal_error_hides_stack_in_production(make_config, loaded_classifier, jpeg_50, monkeypatch):
    def boom(_):
        raise InferenceError("tensor shape mismatch")

    monkeypatch.setattr(loaded_classifier, "classify", boom)
    app = create_app(make_config(environment="production"), classifier=loaded_classifier)

    with TestClient(app) as c:
        response = c.post("/predict", files={"image": ("capture.jpg", jpeg_50, "image/jpeg")})

    assert response.status_code == 500
    assert "stack" not in response.json()


def test_health_reports_model_state(client):
    response = client.get("/health")

    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "ok"
    assert body["modelLoaded"] is True
    assert body["environment"] == "development"
    assert body["uptime"] >= 0
    assert body["timestamp"]


def test_health_while_unloaded(unloaded_client):
    assert unloaded_client.get("/health").json()["modelLoaded"] is False


def test_phone_camera_issues_deep_link(client):
    response = client.get("/phone-camera")

    assert response.status_code == 200
    body = response.json()
    url = urlparse(body["phoneUrl"])
    assert body["phoneUrl"].startswith("http://scanner.test:3000/phone?token=")
    assert parse_qs(url.query)["token"][0]
    assert body["qrCode"].startswith("data:image/png;base64,")
    assert len(body["instructions"]) >= 3


def test_phone_links_are_unique(client):
    first = client.get("/phone-camera").json()["phoneUrl"]
    second = client.get("/phone-camera").json()["phoneUrl"]

    assert first != second
