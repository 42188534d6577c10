import asyncio
import base64
import io
import json

import pytest
from PIL import Image

from scanner.sources import (
    MAX_UPLOAD_BYTES,
    FrameSourceKind,
    LocalCamera,
    RelayedPhone,
    SourceNotReadyError,
    UploadedImage,
    decode_frame_payload,
)
from tests.conftest import image_bytes, oversized_png


def _frame_message(phone_id=1, size=(320, 240)) -> str:
    data = base64.b64encode(image_bytes(size=size)).decode("ascii")
    return json.dumps({
        "type": "phone-frame",
        "id": phone_id,
        "data": f"data:image/jpeg;base64,{data}",
    })


def test_decode_frame_payload_accepts_data_uri_and_bare_base64():
    assert decode_frame_payload("data:image/jpeg;base64,aGVsbG8=") == b"hello"
    assert decode_frame_payload("aGVsbG8=") == b"hello"


def test_decode_frame_payload_rejects_garbage():
    with pytest.raises(SourceNotReadyError):
        decode_frame_payload("data:image/jpeg;base64,!!not base64!!")


def test_phone_without_frames_is_not_ready():
    phone = RelayedPhone("ws://127.0.0.1:3000/ws")

    with pytest.raises(SourceNotReadyError, match="Phone camera not connected"):
        asyncio.run(phone.capture_frame())


def test_phone_frame_is_captured_as_640x480_jpeg():
    phone = RelayedPhone("ws://127.0.0.1:3000/ws")
    phone.handle_message(_frame_message(phone_id=4))

    still = asyncio.run(phone.capture_frame())

    assert phone.kind == FrameSourceKind.RELAYED_PHONE
    assert phone.phone_id == 4
    assert phone.is_connected
    with Image.open(io.BytesIO(still)) as image:
        assert image.format == "JPEG"
        assert image.size == (640, 480)


def test_latest_frame_wins():
    phone = RelayedPhone("ws://127.0.0.1:3000/ws", width=100, height=50)
    phone.handle_message(_frame_message(phone_id=1))
    phone.handle_message(_frame_message(phone_id=7))

    asyncio.run(phone.capture_frame())

    assert phone.phone_id == 7


def test_phone_disconnect_clears_frame_and_notifies():
    lost = []
    phone = RelayedPhone("ws://127.0.0.1:3000/ws", on_disconnected=lost.append)
    phone.handle_message(_frame_message(phone_id=2))

    phone.handle_message(json.dumps({"type": "phone-disconnected", "id": 2}))

    assert lost == [2]
    assert phone.is_connected is False
    with pytest.raises(SourceNotReadyError):
        asyncio.run(phone.capture_frame())


def test_other_peer_disconnect_is_ignored():
    lost = []
    phone = RelayedPhone("ws://127.0.0.1:3000/ws", on_disconnected=lost.append)
    phone.handle_message(_frame_message(phone_id=2))

    phone.handle_message(json.dumps({"type": "phone-disconnected", "id": 9}))

    assert lost == []
    assert phone.is_connected


def test_malformed_relay_messages_are_ignored():
    phone = RelayedPhone("ws://127.0.0.1:3000/ws")

    phone.handle_message("{not json")
    phone.handle_message(json.dumps(["phone-frame"]))
    phone.handle_message(json.dumps({"type": "phone-frame", "id": 1}))

    assert phone.is_connected is False


def test_wait_for_phone_times_out():
    phone = RelayedPhone("ws://127.0.0.1:3000/ws")

    assert asyncio.run(phone.wait_for_phone(timeout=0.01)) is False


def test_uploaded_image_is_read(tmp_path):
    path = tmp_path / "board.png"
    path.write_bytes(image_bytes(fmt="PNG"))
    source = UploadedImage(str(path))

    data = asyncio.run(source.capture_frame())

    assert data == path.read_bytes()
    assert source.mime_type == "image/png"


def test_missing_upload_is_not_ready():
    with pytest.raises(SourceNotReadyError, match="No image uploaded"):
        asyncio.run(UploadedImage().capture_frame())


def test_non_image_upload_is_rejected(tmp_path):
    path = tmp_path / "notes.txt"
    path.write_text("hello")

    with pytest.raises(SourceNotReadyError, match="Please select an image file"):
        asyncio.run(UploadedImage(str(path)).capture_frame())


def test_oversized_upload_is_rejected(tmp_path):
    path = tmp_path / "huge.jpg"
    with open(path, "wb") as f:
        f.truncate(MAX_UPLOAD_BYTES + 1)

    with pytest.raises(SourceNotReadyError, match="less than 10MB"):
        asyncio.run(UploadedImage(str(path)).capture_frame())


def test_local_camera_not_started_is_not_ready():
    camera = LocalCamera(camera_index=0)

    with pytest.raises(SourceNotReadyError, match="Video not ready"):
        asyncio.run(camera.capture_frame())


def test_oversized_phone_frame_is_not_ready():
    phone = RelayedPhone("ws://127.0.0.1:3000/ws")
    data = base64.b64encode(oversized_png()).decode("ascii")
    phone.handle_message(json.dumps({"type": "phone-frame", "id": 1, "data": data}))

    with pytest.raises(SourceNotReadyError, match="not a valid image"):
        asyncio.run(phone.capture_frame())


def test_undecodable_phone_frame_is_not_ready():
    phone = RelayedPhone("ws://127.0.0.1:3000/ws")
    data = base64.b64encode(b"plain text, not pixels").decode("ascii")
    phone.handle_message(json.dumps({"type": "phone-frame", "id": 1, "data": data}))

    with pytest.raises(SourceNotReadyError):
        asyncio.run(phone.capture_frame())
