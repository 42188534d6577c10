import json

import pytest

from server.vocabulary import (
    FALLBACK_CLASSES,
    UNKNOWN_LABEL,
    ClassVocabulary,
    load_vocabulary,
)


def test_fallback_vocabulary_has_28_classes():
    assert len(FALLBACK_CLASSES) == 28
    assert len(set(FALLBACK_CLASSES)) == 28
    assert FALLBACK_CLASSES[0] == "ram_module"
    assert FALLBACK_CLASSES[-1] == "speakers"


def test_missing_metadata_uses_fallback(tmp_path):
    vocabulary = load_vocabulary(str(tmp_path / "model.pt"))

    assert vocabulary.source == "fallback"
    assert vocabulary.classes == FALLBACK_CLASSES
    assert vocabulary.image_size == 224


def test_metadata_replaces_fallback_entirely(tmp_path):
    (tmp_path / "metadata.json").write_text(json.dumps({
        "format": "torchscript",
        "classes": ["RAM Module", "Hard Drive", "Mouse"],
        "imageSize": [160, 160, 3],
    }))

    vocabulary = load_vocabulary(str(tmp_path / "model.pt"))

    assert vocabulary.source == "metadata"
    assert vocabulary.classes == ("RAM Module", "Hard Drive", "Mouse")
    assert vocabulary.image_size == 160
    assert vocabulary.format == "torchscript"


def test_metadata_without_classes_uses_fallback(tmp_path):
    (tmp_path / "metadata.json").write_text(json.dumps({
        "format": "layers-model", "imageSize": 192,
    }))

    vocabulary = load_vocabulary(str(tmp_path / "model.pt"))

    assert vocabulary.source == "fallback"
    assert vocabulary.classes == FALLBACK_CLASSES
    assert vocabulary.image_size == 192
    assert vocabulary.format == "layers-model"


def test_metadata_with_empty_classes_uses_fallback(tmp_path):
    (tmp_path / "metadata.json").write_text(json.dumps({"classes": []}))

    vocabulary = load_vocabulary(str(tmp_path / "model.pt"))

    assert vocabulary.source == "fallback"
    assert vocabulary.classes == FALLBACK_CLASSES


def test_non_square_image_size_is_rejected(tmp_path):
    (tmp_path / "metadata.json").write_text(json.dumps({
        "classes": ["a"], "imageSize": [224, 160],
    }))

    with pytest.raises(ValueError):
        load_vocabulary(str(tmp_path / "model.pt"))


def test_label_for_out_of_range_is_unknown():
    vocabulary = ClassVocabulary(classes=("a", "b"), source="metadata")

    assert vocabulary.label_for(1) == "b"
    assert vocabulary.label_for(2) == UNKNOWN_LABEL
    assert vocabulary.label_for(-1) == UNKNOWN_LABEL


@pytest.mark.parametrize("image_size, expected", [
    (224.0, 224),
    ([128.0, 128.0, 3], 128),
    ((96, 96), 96),
])
def test_integral_image_sizes_are_accepted(tmp_path, image_size, expected):
    (tmp_path / "metadata.json").write_text(json.dumps({
        "classes": ["a"], "imageSize": image_size,
    }))

    assert load_vocabulary(str(tmp_path / "model.pt")).image_size == expected


@pytest.mark.parametrize("image_size", [224.5, "224", {"h": 224}, 0, [True, True]])
def test_unsupported_image_sizes_are_rejected(tmp_path, image_size):
    (tmp_path / "metadata.json").write_text(json.dumps({
        "classes": ["a"], "imageSize": image_size,
    }))

    with pytest.raises(ValueError):
        load_vocabulary(str(tmp_path / "model.pt"))
