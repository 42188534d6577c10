# =============================================================================
# RepairIQ - Phone Camera Deep Links
# =============================================================================
# Issues the single-use deep link a phone opens (usually by scanning a QR
# code) to join the relay as a camera peer.  Only the link content matters;
# the QR code is returned as a PNG data URI for the front end to display.
# =============================================================================

import base64
import io
import logging
import secrets
import time
from collections import OrderedDict
from typing import Dict

import qrcode

from shared.schemas import PhoneLinkResponse

logger = logging.getLogger(__name__)

PHONE_INSTRUCTIONS = [
    "Open your phone's camera app",
    "Scan the QR code on this screen",
    "Open the link and allow camera access",
    "Point your phone at the hardware component",
    "Press SCAN on this screen to identify it",
]


def qr_data_uri(content: str) -> str:
    """Render ``content`` as a QR code and return it as a PNG data URI."""
    image = qrcode.make(content)
    buf = io.BytesIO()
    image.save(buf, format="PNG")
    encoded = base64.b64encode(buf.getvalue()).decode("ascii")
    return f"data:image/png;base64,{encoded}"


class PhoneLinkIssuer:
    """
    Issues and retires single-use phone link tokens.

    Outstanding tokens are kept in insertion order; the oldest are evicted
    once ``max_pending`` is reached or after ``ttl_seconds``.

    Args:
        base_url:    Public URL of this server as reachable from the phone.
        max_pending: Maximum number of unused tokens kept.
        ttl_seconds: Lifetime of an unused token.
    """

    def __init__(self, base_url: str, max_pending: int = 64, ttl_seconds: float = 600.0):
        self._base_url = base_url.rstrip("/")
        self._max_pending = max_pending
        self._ttl_seconds = ttl_seconds
        self._pending: "OrderedDict[str, float]" = OrderedDict()

    @property
    def pending(self) -> Dict[str, float]:
        self._expire()
        return dict(self._pending)

    def _expire(self) -> None:
        cutoff = time.monotonic() - self._ttl_seconds
        while self._pending:
            token, issued_at = next(iter(self._pending.items()))
            if issued_at >= cutoff and len(self._pending) <= self._max_pending:
                break
            self._pending.popitem(last=False)

    def issue(self) -> PhoneLinkResponse:
        """Create a fresh token and the deep link / QR code that carry it."""
        token = secrets.token_urlsafe(16)
        self._pending[token] = time.monotonic()
        self._expire()

        phone_url = f"{self._base_url}/phone?token={token}"
        logger.info("Issued phone link (%d pending)", len(self._pending))
        return PhoneLinkResponse(
            phoneUrl=phone_url,
            qrCode=qr_data_uri(phone_url),
            instructions=list(PHONE_INSTRUCTIONS),
        )

    def consume(self, token: str) -> bool:
        """
        Retire ``token``.

        Returns:
            True if the token was outstanding, False if unknown or used.
        """
        self._expire()
        return self._pending.pop(token, None) is not None
