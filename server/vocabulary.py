# =============================================================================
# RepairIQ - Class Vocabulary
# =============================================================================
# Provides the ClassVocabulary that maps output neuron indices of the
# classification model to hardware component labels.  The vocabulary is read
# from the ``metadata.json`` file shipped beside the model artifact; when that
# file is absent or lists no classes the hardcoded 28-class list below is used
# instead.  The two sources are never mixed.
# =============================================================================

import json
import logging
import numbers
import os
from dataclasses import dataclass
from typing import Any, Dict, Optional, Sequence, Tuple, Union

logger = logging.getLogger(__name__)

UNKNOWN_LABEL = "Unknown"

DEFAULT_IMAGE_SIZE = 224

# Index i must match output neuron i of the model trained on this list.
FALLBACK_CLASSES: Tuple[str, ...] = (
    # PC / phone components
    "ram_module",
    "ram_stick",
    "hard_drive",
    "ssd",
    "capacitor",
    "motherboard",
    "charging_port",
    "processor",
    "sim_slot",
    "battery",
    "display_connector",
    # Computer ports
    "usb_port",
    "hdmi_port",
    "ethernet_port",
    "vga_port",
    "dvi_port",
    # Internal computer components
    "power_supply_unit",
    "graphics_card",
    "cooling_fan",
    "heat_sink",
    # Cables
    "sata_cable",
    "power_cable",
    "vga_cable",
    "dvi_cable",
    # Peripherals
    "keyboard",
    "mouse",
    "monitor",
    "speakers",
)


@dataclass(frozen=True)
class ClassVocabulary:
    """
    Ordered, immutable list of labels index-aligned with the model output.

    Attributes:
        classes:    Labels in output-neuron order.
        source:     "metadata" when read from metadata.json, else "fallback".
        image_size: Square input resolution the model expects.
        format:     Model format string declared by the metadata, if any.
    """

    classes: Tuple[str, ...]
    source: str
    image_size: int = DEFAULT_IMAGE_SIZE
    format: Optional[str] = None

    def __len__(self) -> int:
        return len(self.classes)

    def label_for(self, index: int) -> str:
        """Return the label for ``index``, or ``UNKNOWN_LABEL`` if out of range."""
        if 0 <= index < len(self.classes):
            return self.classes[index]
        return UNKNOWN_LABEL

    @classmethod
    def fallback(cls) -> "ClassVocabulary":
        """Build the hardcoded 28-class vocabulary."""
        return cls(classes=FALLBACK_CLASSES, source="fallback")


def _parse_image_size(value: Union[int, float, Sequence[int], None]) -> int:
    """
    Normalize the ``imageSize`` metadata field to a single square edge.

    Accepts an integral number (``224`` or ``224.0``), or a
    ``[height, width]`` / ``[height, width, channels]`` list whose first two
    entries must agree.

    Raises:
        ValueError: For any other shape or value.
    """
    if value is None:
        return DEFAULT_IMAGE_SIZE
    if isinstance(value, numbers.Real) and not isinstance(value, bool):
        if value != int(value) or value <= 0:
            raise ValueError(f"Unsupported imageSize in metadata: {value!r}")
        return int(value)
    if not isinstance(value, (list, tuple)):
        raise ValueError(f"Unsupported imageSize in metadata: {value!r}")
    dims = list(value)
    if len(dims) < 2 or dims[0] != dims[1]:
        raise ValueError(f"Unsupported imageSize in metadata: {value!r}")
    return _parse_image_size(dims[0])


def load_vocabulary(model_path: str) -> ClassVocabulary:
    """
    Load the class vocabulary for the model at ``model_path``.

    Looks for ``metadata.json`` in the model's directory.  When the file is
    absent, or carries no non-empty ``classes`` list, the fallback labels are
    used in full; metadata labels are never merged with them.  ``imageSize``
    and ``format`` from the metadata apply either way.

    Args:
        model_path: Path to the model artifact (metadata sits beside it).

    Returns:
        ClassVocabulary sourced from metadata, or the fallback vocabulary.

    Raises:
        ValueError: If metadata.json declares an unsupported ``imageSize``.
    """
    metadata_path = os.path.join(os.path.dirname(model_path), "metadata.json")
    if not os.path.exists(metadata_path):
        logger.warning(
            "No metadata.json beside %s — using fallback %d-class vocabulary",
            model_path, len(FALLBACK_CLASSES),
        )
        return ClassVocabulary.fallback()

    logger.info("Loading model metadata: %s", metadata_path)
    with open(metadata_path, "r") as f:
        metadata: Dict[str, Any] = json.load(f)

    classes = metadata.get("classes")
    if isinstance(classes, list) and classes:
        labels, source = tuple(str(c) for c in classes), "metadata"
    else:
        logger.warning(
            "metadata.json at %s has no 'classes' list — using fallback %d-class vocabulary",
            metadata_path, len(FALLBACK_CLASSES),
        )
        labels, source = FALLBACK_CLASSES, "fallback"

    vocabulary = ClassVocabulary(
        classes=labels,
        source=source,
        image_size=_parse_image_size(metadata.get("imageSize")),
        format=metadata.get("format"),
    )
    logger.info(
        "Model info: format=%s classes=%d imageSize=%d",
        vocabulary.format or "unknown", len(vocabulary), vocabulary.image_size,
    )
    return vocabulary
