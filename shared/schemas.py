# =============================================================================
# RepairIQ - Shared API Schemas
# =============================================================================
# Pydantic models defining the data contracts between the scanner client,
# the phone camera page and the server.  These schemas are used for
# request/response validation and serialization across the HTTP API and the
# phone relay WebSocket.
#
# Field names follow the wire format consumed by the browser front end
# (camelCase where the front end expects it).
# =============================================================================

from typing import List, Literal, Optional

from pydantic import BaseModel, Field


class PredictResponse(BaseModel):
    """
    Successful classification of one uploaded image.

    Attributes:
        component:  Label of the predicted hardware component, or "Unknown".
        confidence: Top-class probability rounded to two decimals, in [0, 1].
    """

    component: str
    confidence: float = Field(..., ge=0.0, le=1.0)


class ErrorResponse(BaseModel):
    """
    Error body returned by /predict.

    Attributes:
        error:    Short, user-facing error summary.
        details:  Sanitized failure detail (400 / 500 responses).
        fallback: Retry hint when the model is not loaded (503 responses).
        stack:    Stack trace, only present in the development environment.
    """

    error: str
    details: Optional[str] = None
    fallback: Optional[str] = None
    stack: Optional[str] = None


class HealthResponse(BaseModel):
    """Liveness report including model load state and process uptime."""

    status: str = "ok"
    modelLoaded: bool
    timestamp: str
    environment: str
    uptime: float


class PhoneLinkResponse(BaseModel):
    """
    Deep link a phone scans to join the relay as a camera peer.

    Attributes:
        phoneUrl:     URL opened on the phone, carrying a single-use token.
        qrCode:       PNG data URI encoding ``phoneUrl``.
        instructions: Ordered, human-readable connection steps.
    """

    phoneUrl: str
    qrCode: str
    instructions: List[str]


# ---------------------------------------------------------------------------
# Phone relay messages
# ---------------------------------------------------------------------------


class FrameMessage(BaseModel):
    """Phone -> Relay: one encoded camera frame (data URI or base64 JPEG)."""

    type: Literal["frame"] = "frame"
    data: str = Field(..., min_length=1)


class PhoneFrameMessage(BaseModel):
    """Relay -> Peers: a frame tagged with the id of the sending connection."""

    type: Literal["phone-frame"] = "phone-frame"
    id: int
    data: str


class PhoneDisconnectedMessage(BaseModel):
    """Relay -> Peers: connection ``id`` has left the relay."""

    type: Literal["phone-disconnected"] = "phone-disconnected"
    id: int
