# =============================================================================
# RepairIQ - Hardware Component Classifier
# =============================================================================
# Provides the HardwareClassifier class that owns the loaded TorchScript
# model and its class vocabulary for the lifetime of the server process.
#
# Tensor contract:
#   input   float32 (1, 3, S, S), RGB, values in [0, 1]
#           (any image is nearest-neighbour resized to S x S, then / 255)
#   output  float32 (1, N) probabilities, N == len(vocabulary)
#
# The handle is read-only after load() and is shared by concurrent requests.
# =============================================================================

import io
import logging
import math
from dataclasses import dataclass
from typing import Optional

import numpy as np
import torch
from PIL import Image, UnidentifiedImageError

from server.vocabulary import ClassVocabulary, load_vocabulary

logger = logging.getLogger(__name__)

# Outputs whose sum deviates more than this from 1.0 are treated as logits.
_PROBABILITY_SUM_TOLERANCE = 1e-3


class ClassifierError(Exception):
    """Base class for classification failures."""


class InvalidImageError(ClassifierError):
    """The payload is missing or is not a decodable raster image."""


class ModelUnavailableError(ClassifierError):
    """The model is still loading or failed to load; retry later."""


class InferenceError(ClassifierError):
    """Unexpected failure during preprocessing or the forward pass."""


@dataclass(frozen=True)
class ClassificationResult:
    """Top-1 prediction for one image."""

    label: str
    confidence: float


def decode_image(image_bytes: bytes) -> Image.Image:
    """
    Decode raw bytes into an RGB PIL image.

    Args:
        image_bytes: Encoded image (JPEG, PNG, WebP, ...).

    Returns:
        PIL.Image.Image in RGB mode.

    Raises:
        InvalidImageError: If the buffer is empty or not a supported image.
    """
    if not image_bytes:
        raise InvalidImageError("Empty image payload")
    try:
        with Image.open(io.BytesIO(image_bytes)) as image:
            image.load()
            return image.convert("RGB")
    except (UnidentifiedImageError, Image.DecompressionBombError, OSError, ValueError) as exc:
        raise InvalidImageError(
            "The uploaded file is not a valid image or is unsupported."
        ) from exc


def _to_probabilities(vector: torch.Tensor) -> torch.Tensor:
    """Softmax ``vector`` unless it already is a probability distribution."""
    total = float(vector.sum())
    if float(vector.min()) < 0.0 or abs(total - 1.0) > _PROBABILITY_SUM_TOLERANCE:
        return torch.softmax(vector, dim=0)
    return vector


class HardwareClassifier:
    """
    Server-side image classifier for hardware components.

    Loads a TorchScript model and its ClassVocabulary once, then answers
    classify() calls from any number of request handlers.  Until load()
    succeeds every call fails fast with ModelUnavailableError.

    Args:
        model_path: Path to the TorchScript model file (``model.pt``).
                    ``metadata.json`` is read from the same directory.
        device:     Compute device for inference ("mps", "cuda", "cpu").
    """

    def __init__(self, model_path: str, device: str = "cpu"):
        self._model_path = model_path
        self._device = device
        self._model: Optional[torch.jit.ScriptModule] = None
        self._vocabulary: Optional[ClassVocabulary] = None
        self._model_loaded = False

    @property
    def is_ready(self) -> bool:
        """Whether the model and vocabulary are loaded and ready."""
        return self._model_loaded

    @property
    def vocabulary(self) -> Optional[ClassVocabulary]:
        """The active vocabulary, or None before a successful load."""
        return self._vocabulary

    def load(self) -> bool:
        """
        Load the vocabulary and the TorchScript model.

        Never raises: a failed load is logged and leaves the classifier in
        the unavailable state so the server keeps answering with 503.

        Returns:
            True if the model is ready, False if loading failed.
        """
        try:
            vocabulary = load_vocabulary(self._model_path)

            logger.info(
                "Loading classification model: %s (device=%s)",
                self._model_path, self._device,
            )
            model = torch.jit.load(self._model_path, map_location=self._device)
            model.eval()

            self._check_output_width(model, vocabulary)
        except Exception:
            logger.exception(
                "Failed to load model from %s — continuing without predictions",
                self._model_path,
            )
            return False

        self._model = model
        self._vocabulary = vocabulary
        self._model_loaded = True
        logger.info(
            "Hardware model ready (%d classes from %s vocabulary).",
            len(vocabulary), vocabulary.source,
        )
        return True

    @torch.no_grad()
    def _check_output_width(
        self, model: torch.jit.ScriptModule, vocabulary: ClassVocabulary
    ) -> None:
        """Run one warm-up pass and report a model/vocabulary size mismatch."""
        size = vocabulary.image_size
        dummy = torch.zeros((1, 3, size, size), dtype=torch.float32, device=self._device)
        output = model(dummy)
        width = output.reshape(output.shape[0], -1).shape[1]
        del dummy, output

        if width != len(vocabulary):
            logger.error(
                "Model outputs %d classes but the %s vocabulary has %d — "
                "labels past the vocabulary will be reported as Unknown",
                width, vocabulary.source, len(vocabulary),
            )

    def preprocess(self, image_bytes: bytes) -> torch.Tensor:
        """
        Turn encoded image bytes into a model input tensor.

        Pipeline:
            1. Decode with Pillow and convert to RGB
            2. Nearest-neighbour resize to the model input size (S x S)
            3. HWC uint8 -> NCHW float32
            4. Divide by 255 to normalize into [0, 1]

        Args:
            image_bytes: Encoded image of any size.

        Returns:
            torch.Tensor of shape (1, 3, S, S) on the inference device.

        Raises:
            InvalidImageError: If the bytes do not decode as an image.
        """
        size = self._vocabulary.image_size if self._vocabulary else 224
        image = decode_image(image_bytes)
        resized_image = image.resize((size, size), Image.NEAREST)

        resized = torch.from_numpy(np.array(resized_image, dtype=np.uint8))
        as_float = resized.permute(2, 0, 1).unsqueeze(0).to(torch.float32)
        normalized = (as_float / 255.0).to(self._device)

        del resized, as_float
        image.close()
        resized_image.close()
        return normalized

    def classify(self, image_bytes: bytes) -> ClassificationResult:
        """
        Classify one image and return the top label with its confidence.

        Args:
            image_bytes: Encoded image bytes from the upload.

        Returns:
            ClassificationResult with confidence rounded to 2 decimals.

        Raises:
            ModelUnavailableError: If the model is not loaded (no work done).
            InvalidImageError:     If the payload is not a supported image.
            InferenceError:        On any other preprocessing/inference failure.
        """
        if not self.is_ready:
            raise ModelUnavailableError("Model not loaded yet")

        normalized = None
        output = None
        probabilities = None
        try:
            normalized = self.preprocess(image_bytes)

            with torch.no_grad():
                output = self._model(normalized)
                probabilities = _to_probabilities(output.reshape(-1).float().cpu())
                max_probability, index = torch.max(probabilities, dim=0)

            top = float(max_probability)
            if not math.isfinite(top):
                raise InferenceError(f"Model produced a non-finite score: {top}")

            label = self._vocabulary.label_for(int(index))
            confidence = round(min(max(top, 0.0), 1.0), 2)
        except (InvalidImageError, InferenceError):
            raise
        except Exception as exc:
            raise InferenceError(str(exc)) from exc
        finally:
            del normalized, output, probabilities
            if self._device == "cuda":
                torch.cuda.empty_cache()

        logger.info("Prediction: %s (%.2f)", label, confidence)
        return ClassificationResult(label=label, confidence=confidence)
