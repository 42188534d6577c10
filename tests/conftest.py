import io
import json
import os
import struct
import zlib
from typing import List, Optional

import pytest
import torch
import torch.nn as nn
from PIL import Image

from config import Config
from server.classifier import HardwareClassifier


class MeanColorModel(nn.Module):
    """Tiny real classifier: softmax over a linear map of the mean RGB."""

    def __init__(self, num_classes: int):
        super().__init__()
        self.pool = nn.AdaptiveAvgPool2d(1)
        self.fc = nn.Linear(3, num_classes)

    def forward(self, x: torch.Tensor) -> torch.Tensor:
        return torch.softmax(self.fc(torch.flatten(self.pool(x), 1)), dim=1)


class FixedScoresModel(nn.Module):
    """Returns the same score vector for every image."""

    def __init__(self, scores: List[float]):
        super().__init__()
        self.register_buffer("scores", torch.tensor(scores, dtype=torch.float32))

    def forward(self, x: torch.Tensor) -> torch.Tensor:
        return self.scores.unsqueeze(0).expand(x.shape[0], -1)


def one_hot(size: int, index: int) -> List[float]:
    scores = [0.0] * size
    scores[index] = 1.0
    return scores


def save_model(directory, model: nn.Module, metadata: Optional[dict] = None) -> str:
    """Script ``model`` into ``directory/model.pt`` (plus optional metadata)."""
    os.makedirs(directory, exist_ok=True)
    path = os.path.join(str(directory), "model.pt")
    torch.jit.save(torch.jit.script(model), path)
    if metadata is not None:
        with open(os.path.join(str(directory), "metadata.json"), "w") as f:
            json.dump(metadata, f)
    return path


def image_bytes(size=(50, 50), color=(120, 40, 200), fmt="JPEG") -> bytes:
    buf = io.BytesIO()
    Image.new("RGB", size, color).save(buf, format=fmt)
    return buf.getvalue()


def oversized_png() -> bytes:
    """A tiny PNG whose header claims 30000 x 30000 pixels."""
    png = bytearray(image_bytes(size=(4, 4), fmt="PNG"))
    png[16:24] = struct.pack(">II", 30000, 30000)
    png[29:33] = struct.pack(">I", zlib.crc32(bytes(png[12:29])))
    return bytes(png)


@pytest.fixture
def jpeg_50():
    return image_bytes()


@pytest.fixture
def mean_color_model_path(tmp_path):
    torch.manual_seed(0)
    return save_model(tmp_path / "model", MeanColorModel(28))


@pytest.fixture
def loaded_classifier(mean_color_model_path):
    classifier = HardwareClassifier(model_path=mean_color_model_path, device="cpu")
    assert classifier.load()
    return classifier


@pytest.fixture
def make_config(tmp_path, monkeypatch):
    for key in list(os.environ):
        if key.startswith("REPAIRIQ_"):
            monkeypatch.delenv(key)

    def _make(**overrides) -> Config:
        overrides.setdefault("model_path", str(tmp_path / "missing" / "model.pt"))
        overrides.setdefault("device", "cpu")
        overrides.setdefault("public_base_url", "http://scanner.test:3000")
        return Config(**overrides)

    return _make
