from __future__ import annotations

import numpy as np
import pytest

from roomscan.core.detectors.decoder import (
    decode,
    iou,
    labels_from_names,
    non_max_suppression,
    placeholder_labels,
    read_label_file,
    resolve_labels,
)
from roomscan.core.types import BoundingBox

LABELS = ["speaker", "person"]


def _tensor(anchors: list[tuple[float, float, float, float, list[float]]]) -> np.ndarray:
    num_classes = len(anchors[0][4])
    out = np.zeros((4 + num_classes, len(anchors)), dtype=np.float32)
    for i, (cx, cy, w, h, scores) in enumerate(anchors):
        out[0:4, i] = (cx, cy, w, h)
        out[4:, i] = scores
    return out


def _box(x1, y1, x2, y2, conf=0.9) -> BoundingBox:
    return BoundingBox(
        x1=x1,
        y1=y1,
        x2=x2,
        y2=y2,
        cx=(x1 + x2) / 2,
        cy=(y1 + y2) / 2,
        w=x2 - x1,
        h=y2 - y1,
        confidence=conf,
        class_index=0,
        class_name="speaker",
    )


def test_decode_keeps_confident_box_and_names_it():
    boxes = decode(_tensor([(0.5, 0.5, 0.2, 0.4, [0.1, 0.8])]), LABELS)
    assert len(boxes) == 1
    b = boxes[0]
    assert b.class_index == 1
    assert b.class_name == "person"
    assert b.confidence == np.float32(0.8)
    assert (b.x1, b.y1, b.x2, b.y2) == pytest.approx((0.4, 0.3, 0.6, 0.7), abs=1e-6)


def test_confidence_must_strictly_exceed_threshold():
    tensor = _tensor(
        [
            (0.25, 0.25, 0.1, 0.1, [0.30, 0.0]),
            (0.75, 0.75, 0.1, 0.1, [0.31, 0.0]),
        ]
    )
    boxes = decode(tensor, LABELS)
    assert [b.cx for b in boxes] == [float(np.float32(0.75))]


def test_boxes_leaving_the_image_are_discarded():
    tensor = _tensor(
        [
            (0.05, 0.5, 0.2, 0.2, [0.9, 0.0]),
            (0.5, 0.95, 0.2, 0.2, [0.9, 0.0]),
            (0.5, 0.5, 0.2, 0.2, [0.9, 0.0]),
        ]
    )
    boxes = decode(tensor, LABELS)
    assert len(boxes) == 1
    assert boxes[0].cx == 0.5


def test_iou_uses_stored_areas():
    a = _box(0.0, 0.0, 1.0, 1.0)
    b = _box(0.0, 0.0, 1.0, 0.5)
    assert iou(a, b) == 0.5
    assert iou(a, _box(2.0, 2.0, 3.0, 3.0)) == 0.0


def test_iou_exactly_at_threshold_suppresses():
    a = _box(0.0, 0.0, 1.0, 1.0, conf=0.9)
    b = _box(0.0, 0.0, 1.0, 0.5, conf=0.8)
    assert non_max_suppression([a, b], 0.5) == [a]
    assert non_max_suppression([a, b], 0.51) == [a, b]


def test_decode_suppresses_overlap_at_threshold():
    tensor = _tensor(
        [
            (0.5, 0.25, 1.0, 0.5, [0.6, 0.0]),
            (0.5, 0.5, 1.0, 1.0, [0.9, 0.0]),
        ]
    )
    boxes = decode(tensor, LABELS)
    assert len(boxes) == 1
    assert boxes[0].confidence == np.float32(0.9)


def test_nms_output_is_in_descending_confidence_order():
    # Survivors come out in selection order, not input order; consumers that
    # need a spatial ordering must sort themselves.
    low = _box(0.0, 0.0, 0.1, 0.1, conf=0.4)
    high = _box(0.5, 0.5, 0.6, 0.6, conf=0.9)
    mid = _box(0.8, 0.8, 0.9, 0.9, conf=0.6)
    assert non_max_suppression([low, high, mid]) == [high, mid, low]


def test_nms_is_idempotent():
    boxes = [
        _box(0.0, 0.0, 0.5, 0.5, conf=0.9),
        _box(0.05, 0.05, 0.55, 0.55, conf=0.8),
        _box(0.6, 0.6, 0.9, 0.9, conf=0.7),
        _box(0.62, 0.6, 0.92, 0.9, conf=0.75),
    ]
    once = non_max_suppression(boxes)
    assert non_max_suppression(once) == once


def test_argmax_tie_keeps_first_class():
    boxes = decode(_tensor([(0.5, 0.5, 0.2, 0.2, [0.7, 0.7])]), LABELS)
    assert boxes[0].class_index == 0


def test_batched_tensor_is_accepted():
    tensor = _tensor([(0.5, 0.5, 0.2, 0.2, [0.9, 0.0])])[None, ...]
    assert len(decode(tensor, LABELS)) == 1


def test_degenerate_tensors_decode_to_nothing():
    assert decode(np.zeros((4, 10), dtype=np.float32), LABELS) == []
    assert decode(np.zeros((6, 0), dtype=np.float32), LABELS) == []
    assert decode(np.zeros((6,), dtype=np.float32), LABELS) == []
    assert decode(np.zeros((2, 6, 3), dtype=np.float32), LABELS) == []


def test_missing_label_falls_back_to_index_name():
    boxes = decode(_tensor([(0.5, 0.5, 0.2, 0.2, [0.0, 0.0, 0.9])]), LABELS)
    assert boxes[0].class_name == "class2"


def test_label_helpers(tmp_path):
    assert labels_from_names({1: "b", 0: "a"}) == ["a", "b"]
    assert labels_from_names(("a", "b")) == ["a", "b"]
    assert labels_from_names(None) == []
    assert placeholder_labels(2) == ["class0", "class1"]

    path = tmp_path / "labels.txt"
    path.write_text("speaker\n\n person \n", encoding="utf-8")
    assert read_label_file(path) == ["speaker", "person"]

    assert resolve_labels({0: "tv"}, path) == ["tv"]
    assert resolve_labels(None, path) == ["speaker", "person"]
    assert resolve_labels(None, tmp_path / "missing.txt", num_classes=3) == [
        "class0",
        "class1",
        "class2",
    ]


def test_nan_class_score_does_not_hide_real_class():
    boxes = decode(_tensor([(0.5, 0.5, 0.2, 0.2, [float("nan"), 0.8])]), LABELS)
    assert len(boxes) == 1
    assert boxes[0].class_index == 1
    assert boxes[0].confidence == pytest.approx(0.8)


def test_all_nan_scores_are_dropped():
    assert decode(_tensor([(0.5, 0.5, 0.2, 0.2, [float("nan"), float("nan")])]), LABELS) == []
