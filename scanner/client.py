# =============================================================================
# RepairIQ - Classification HTTP Client
# =============================================================================
# Provides the ClassificationClient class that uploads captured frames to the
# server's /predict endpoint and turns its error responses into typed
# exceptions, plus helpers for /health and /phone-camera.
# =============================================================================

import logging
import threading
import time

import requests
from pydantic import ValidationError

from shared.schemas import PhoneLinkResponse, PredictResponse

logger = logging.getLogger(__name__)


class ClassificationError(Exception):
    """Classification failed; the message is safe to show to the user."""


class InvalidInputError(ClassificationError):
    """The server rejected the image (HTTP 400). Not retried."""


class ServiceUnavailableError(ClassificationError):
    """The server's model is not loaded yet (HTTP 503). Retry later."""


class ClassificationClient:
    """
    HTTP client for the RepairIQ classification server.

    Args:
        server_url: Base URL of the server (e.g., "http://127.0.0.1:3000").
        timeout:    Seconds to wait for a /predict response.
    """

    def __init__(self, server_url: str, timeout: float = 5.0):
        self._server_url = server_url.rstrip("/")
        self._timeout = timeout
        self._session = requests.Session()
        # Session is not thread-safe; a superseded scan may still be
        # uploading from its worker thread when the next one starts.
        self._session_lock = threading.Lock()

    @property
    def relay_url(self) -> str:
        """WebSocket URL of the phone relay on the same host."""
        if self._server_url.startswith("https://"):
            return "wss://" + self._server_url[len("https://"):] + "/ws"
        if self._server_url.startswith("http://"):
            return "ws://" + self._server_url[len("http://"):] + "/ws"
        return self._server_url + "/ws"

    def classify(
        self,
        image_bytes: bytes,
        mime_type: str = "image/jpeg",
        filename: str = "capture.jpg",
    ) -> PredictResponse:
        """
        Upload one image for classification.

        Args:
            image_bytes: Encoded image.
            mime_type:   Declared MIME type of the upload.
            filename:    File name sent with the multipart field.

        Returns:
            PredictResponse with the component label and confidence.

        Raises:
            InvalidInputError:       HTTP 400.
            ServiceUnavailableError: HTTP 503.
            ClassificationError:     Network failure, timeout, or any other
                                     error response.
        """
        url = f"{self._server_url}/predict"
        try:
            with self._session_lock:
                response = self._session.post(
                    url,
                    files={"image": (filename, image_bytes, mime_type)},
                    timeout=self._timeout,
                )
        except requests.exceptions.RequestException as exc:
            logger.warning("Classification request to %s failed: %s", url, exc)
            raise ClassificationError(f"Backend prediction failed: {exc}") from exc

        if response.status_code == 200:
            try:
                result = PredictResponse.model_validate(response.json())
            except (ValueError, ValidationError) as exc:
                raise ClassificationError("Malformed prediction response") from exc
            logger.info(
                "Classified %d KB image → %s (%.2f)",
                len(image_bytes) // 1024, result.component, result.confidence,
            )
            return result

        message = self._error_message(response)
        logger.warning("Prediction failed (HTTP %d): %s", response.status_code, message)
        if response.status_code == 400:
            raise InvalidInputError(message)
        if response.status_code == 503:
            raise ServiceUnavailableError(message)
        raise ClassificationError(message)

    @staticmethod
    def _error_message(response: requests.Response) -> str:
        """Pick the most useful message from an error response body."""
        try:
            body = response.json()
        except ValueError:
            return "Backend prediction failed"
        if not isinstance(body, dict):
            return "Backend prediction failed"
        return body.get("error") or body.get("details") or "Backend prediction failed"

    def get_phone_link(self) -> PhoneLinkResponse:
        """
        Request a deep link for connecting a phone camera.

        Raises:
            requests.exceptions.RequestException: If the server is unreachable
                or answers with an error status.
        """
        with self._session_lock:
            response = self._session.get(f"{self._server_url}/phone-camera", timeout=self._timeout)
        response.raise_for_status()
        return PhoneLinkResponse(**response.json())

    def wait_for_server(self, timeout: int = 300, poll_interval: float = 5.0) -> bool:
        """
        Block until the server's /health endpoint reports the model loaded.

        Args:
            timeout:       Maximum seconds to wait for the server.
            poll_interval: Seconds between health check polls.

        Returns:
            True if the server is ready, False if timeout expired.
        """
        url = f"{self._server_url}/health"
        start = time.time()

        logger.info("Waiting for server at %s (timeout=%ds)...", url, timeout)

        while (time.time() - start) < timeout:
            try:
                with self._session_lock:
                    response = self._session.get(url, timeout=5)
                if response.status_code == 200:
                    data = response.json()
                    if data.get("modelLoaded", False):
                        logger.info("Server is ready (model loaded).")
                        return True
                    else:
                        logger.info("Server responded but model not yet loaded...")
            except requests.exceptions.ConnectionError:
                logger.debug("Server not reachable yet...")
            except Exception:
                logger.debug("Health check error", exc_info=True)

            time.sleep(poll_interval)

        logger.error("Timed out waiting for server after %ds.", timeout)
        return False
