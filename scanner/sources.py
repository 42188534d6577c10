# =============================================================================
# RepairIQ - Frame Sources
# =============================================================================
# Provides the interchangeable frame sources a scan can capture from:
#   LocalCamera    - a local camera device via OpenCV
#   RelayedPhone   - the latest frame a phone pushed through the server relay
#   UploadedImage  - an image file chosen by the user
#
# All of them expose ``await capture_frame() -> bytes`` (an encoded image)
# and raise SourceNotReadyError when no frame can be produced yet.
# =============================================================================

import asyncio
import base64
import binascii
import io
import json
import logging
import mimetypes
import os
from abc import ABC, abstractmethod
from enum import Enum
from typing import Callable, Optional

import cv2
import websockets
from PIL import Image, UnidentifiedImageError
from websockets.exceptions import WebSocketException

logger = logging.getLogger(__name__)

MAX_UPLOAD_BYTES = 10 * 1024 * 1024


class SourceNotReadyError(Exception):
    """The frame source cannot produce a frame right now."""


class FrameSourceKind(str, Enum):
    LOCAL_CAMERA = "local_camera"
    RELAYED_PHONE = "relayed_phone"
    UPLOADED_IMAGE = "uploaded_image"


class FrameSource(ABC):
    """Capability shared by every frame source."""

    kind: FrameSourceKind
    mime_type: str = "image/jpeg"

    async def start(self) -> None:
        """Acquire the underlying device or connection."""

    async def stop(self) -> None:
        """Release the underlying device or connection."""

    @abstractmethod
    async def capture_frame(self) -> bytes:
        """Capture one encoded still image."""


class LocalCamera(FrameSource):
    """
    Still capture from a local camera using OpenCV.

    Blocking device calls run in a worker thread so the event loop stays
    responsive.

    Args:
        camera_index: OpenCV device index (0 = default camera).
        jpeg_quality: JPEG encoding quality for captured frames.
    """

    kind = FrameSourceKind.LOCAL_CAMERA

    def __init__(self, camera_index: int = 0, jpeg_quality: int = 80):
        self._camera_index = camera_index
        self._jpeg_quality = jpeg_quality
        self._capture: Optional[cv2.VideoCapture] = None

    @property
    def is_open(self) -> bool:
        return self._capture is not None and self._capture.isOpened()

    async def start(self) -> None:
        """
        Open the camera device.

        Raises:
            SourceNotReadyError: If the device can not be opened.
        """
        if self.is_open:
            return
        capture = await asyncio.to_thread(cv2.VideoCapture, self._camera_index)
        if not capture.isOpened():
            capture.release()
            raise SourceNotReadyError(f"Camera {self._camera_index} is not available")
        self._capture = capture
        logger.info("Local camera %d opened", self._camera_index)

    async def stop(self) -> None:
        if self._capture is not None:
            await asyncio.to_thread(self._capture.release)
            self._capture = None
            logger.info("Local camera %d released", self._camera_index)

    def _grab(self) -> bytes:
        if not self.is_open:
            raise SourceNotReadyError("Video not ready")
        try:
            ok, frame = self._capture.read()
            if not ok or frame is None:
                raise SourceNotReadyError("Video not ready")
            ok, buffer = cv2.imencode(".jpg", frame, [cv2.IMWRITE_JPEG_QUALITY, self._jpeg_quality])
        except cv2.error as exc:
            raise SourceNotReadyError(f"Camera capture failed: {exc}") from exc
        if not ok:
            raise SourceNotReadyError("Failed to encode camera frame")
        logger.debug("Captured %dx%d camera frame", frame.shape[1], frame.shape[0])
        return buffer.tobytes()

    async def capture_frame(self) -> bytes:
        return await asyncio.to_thread(self._grab)


def decode_frame_payload(data: str) -> bytes:
    """
    Decode a relayed frame payload.

    Accepts a ``data:image/...;base64,`` URI or bare base64.

    Raises:
        SourceNotReadyError: If the payload is not valid base64.
    """
    if data.startswith("data:"):
        _, _, data = data.partition(",")
    try:
        return base64.b64decode(data, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise SourceNotReadyError("Phone frame could not be decoded") from exc


class RelayedPhone(FrameSource):
    """
    Frames pushed by a phone camera through the server relay.

    A background receive loop keeps only the most recent ``phone-frame``
    payload.  When the relay reports that the phone left (or the relay
    connection itself closes) the frame is cleared and ``on_disconnected``
    is called with the phone's id (None when the relay went away).

    Args:
        relay_url:       WebSocket URL of the relay (ws://host:port/ws).
        on_disconnected: Callback invoked when the phone is lost.
        width:           Width of captured stills.
        height:          Height of captured stills.
        jpeg_quality:    JPEG encoding quality for captured stills.
    """

    kind = FrameSourceKind.RELAYED_PHONE

    def __init__(
        self,
        relay_url: str,
        on_disconnected: Optional[Callable[[Optional[int]], None]] = None,
        width: int = 640,
        height: int = 480,
        jpeg_quality: int = 80,
    ):
        self._relay_url = relay_url
        self.on_disconnected = on_disconnected
        self._size = (width, height)
        self._jpeg_quality = jpeg_quality
        self._latest_frame: Optional[str] = None
        self._phone_id: Optional[int] = None
        self._phone_connected = asyncio.Event()
        self._task: Optional[asyncio.Task] = None

    @property
    def phone_id(self) -> Optional[int]:
        return self._phone_id

    @property
    def is_connected(self) -> bool:
        return self._latest_frame is not None

    async def start(self) -> None:
        if self._task is None:
            self._task = asyncio.create_task(self._receive_loop())

    async def stop(self) -> None:
        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None

    async def wait_for_phone(self, timeout: float) -> bool:
        """Wait until the first phone frame arrives; False on timeout."""
        try:
            await asyncio.wait_for(self._phone_connected.wait(), timeout=timeout)
        except asyncio.TimeoutError:
            return False
        return True

    async def _receive_loop(self) -> None:
        logger.info("Connecting to phone relay at %s", self._relay_url)
        try:
            async with websockets.connect(self._relay_url) as ws:
                logger.info("Connected to phone camera relay")
                async for message in ws:
                    self.handle_message(message)
        except (WebSocketException, OSError) as exc:
            logger.warning("Phone relay connection lost: %s", exc)
        finally:
            logger.info("Disconnected from phone camera relay")
            self._lose_phone(None)

    def handle_message(self, raw) -> None:
        """Apply one relay message to the source state."""
        try:
            message = json.loads(raw)
        except (TypeError, ValueError):
            logger.warning("Ignoring malformed relay message")
            return
        if not isinstance(message, dict):
            logger.warning("Ignoring malformed relay message")
            return

        kind = message.get("type")
        if kind == "phone-frame" and isinstance(message.get("data"), str):
            if self._latest_frame is None:
                logger.info("Phone %s connected; receiving frames", message.get("id"))
            self._phone_id = message.get("id")
            self._latest_frame = message["data"]
            self._phone_connected.set()
        elif kind == "phone-disconnected":
            if self._phone_id is not None and message.get("id") == self._phone_id:
                self._lose_phone(self._phone_id)

    def _lose_phone(self, phone_id: Optional[int]) -> None:
        had_frame = self._latest_frame is not None
        self._latest_frame = None
        self._phone_id = None
        self._phone_connected.clear()
        if had_frame or phone_id is not None:
            logger.info("Phone camera %s disconnected", phone_id)
            if self.on_disconnected is not None:
                self.on_disconnected(phone_id)

    def _reencode(self, data: str) -> bytes:
        raw = decode_frame_payload(data)
        try:
            with Image.open(io.BytesIO(raw)) as image:
                still = image.convert("RGB").resize(self._size)
        except (UnidentifiedImageError, Image.DecompressionBombError, OSError, ValueError) as exc:
            raise SourceNotReadyError("Phone frame is not a valid image") from exc
        buf = io.BytesIO()
        still.save(buf, format="JPEG", quality=self._jpeg_quality)
        return buf.getvalue()

    async def capture_frame(self) -> bytes:
        data = self._latest_frame
        if data is None:
            raise SourceNotReadyError("Phone camera not connected")
        return await asyncio.to_thread(self._reencode, data)


class UploadedImage(FrameSource):
    """
    A user-supplied image file.

    Args:
        path: Path of the image on disk.
    """

    kind = FrameSourceKind.UPLOADED_IMAGE

    def __init__(self, path: Optional[str] = None):
        self.path = path

    @property
    def mime_type(self) -> str:
        guessed, _ = mimetypes.guess_type(self.path or "")
        return guessed or "application/octet-stream"

    def _read(self) -> bytes:
        if not self.path or not os.path.isfile(self.path):
            raise SourceNotReadyError("No image uploaded")
        if not self.mime_type.startswith("image/"):
            raise SourceNotReadyError("Please select an image file")
        if os.path.getsize(self.path) > MAX_UPLOAD_BYTES:
            raise SourceNotReadyError("Image size must be less than 10MB")
        with open(self.path, "rb") as f:
            return f.read()

    async def capture_frame(self) -> bytes:
        return await asyncio.to_thread(self._read)
