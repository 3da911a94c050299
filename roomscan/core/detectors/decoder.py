"""Decoding of raw YOLO-style detection tensors.

The model emits a channel-major tensor of shape `[C, N]` (optionally with a
leading batch dimension of 1): channels 0..3 are box center-x, center-y, width
and height in normalized image coordinates, the remaining `C - 4` channels are
per-class confidences for each of the `N` anchors.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from pathlib import Path

import numpy as np

from roomscan.core.types import BoundingBox

logger = logging.getLogger(__name__)

CONFIDENCE_THRESHOLD = 0.30
IOU_THRESHOLD = 0.50


def iou(a: BoundingBox, b: BoundingBox) -> float:
    """Intersection-over-union of two boxes, using their stored width/height areas."""

    x1 = max(a.x1, b.x1)
    y1 = max(a.y1, b.y1)
    x2 = min(a.x2, b.x2)
    y2 = min(a.y2, b.y2)
    inter = max(0.0, x2 - x1) * max(0.0, y2 - y1)
    union = a.w * a.h + b.w * b.h - inter
    if union <= 0.0:
        return 0.0
    return inter / union


def non_max_suppression(
    boxes: Sequence[BoundingBox], iou_threshold: float = IOU_THRESHOLD
) -> list[BoundingBox]:
    """Greedy NMS.

    Boxes are taken in descending confidence order (stable for ties); every
    remaining box whose IoU with the taken box is `>= iou_threshold` is dropped.
    The result is in selection order.
    """

    remaining = sorted(boxes, key=lambda b: b.confidence, reverse=True)
    selected: list[BoundingBox] = []
    while remaining:
        first = remaining.pop(0)
        selected.append(first)
        remaining = [b for b in remaining if iou(first, b) < iou_threshold]
    return selected


def _label_for(labels: Sequence[str], index: int) -> str:
    if 0 <= index < len(labels):
        return str(labels[index])
    return f"class{index}"


def decode(
    tensor: np.ndarray,
    labels: Sequence[str],
    confidence_threshold: float = CONFIDENCE_THRESHOLD,
    iou_threshold: float = IOU_THRESHOLD,
) -> list[BoundingBox]:
    """Convert a raw model output tensor into suppressed bounding boxes.

    Malformed tensors (wrong rank, no anchors, no class channels) decode to an
    empty list.
    """

    arr = np.asarray(tensor, dtype=np.float32)
    if arr.ndim == 3 and arr.shape[0] == 1:
        arr = arr[0]
    if arr.ndim != 2:
        logger.debug("Ignoring detection tensor with shape %s", arr.shape)
        return []

    num_channel, num_elements = arr.shape
    if num_elements == 0 or num_channel <= 4:
        return []

    scores = arr[4:, :]
    # NaN scores rank below every real score.
    scores = np.where(np.isnan(scores), -np.inf, scores)
    # argmax keeps the first class on ties; a class must strictly beat the threshold.
    cls_idx = np.argmax(scores, axis=0)
    max_conf = scores[cls_idx, np.arange(num_elements)]

    half = np.float32(2.0)
    raw: list[BoundingBox] = []
    for c in np.flatnonzero(max_conf > np.float32(confidence_threshold)):
        cx, cy, w, h = arr[0, c], arr[1, c], arr[2, c], arr[3, c]
        x1 = cx - w / half
        y1 = cy - h / half
        x2 = cx + w / half
        y2 = cy + h / half
        if not (0.0 <= x1 <= 1.0 and 0.0 <= y1 <= 1.0 and 0.0 <= x2 <= 1.0 and 0.0 <= y2 <= 1.0):
            continue
        k = int(cls_idx[c])
        raw.append(
            BoundingBox(
                x1=float(x1),
                y1=float(y1),
                x2=float(x2),
                y2=float(y2),
                cx=float(cx),
                cy=float(cy),
                w=float(w),
                h=float(h),
                confidence=float(max_conf[c]),
                class_index=k,
                class_name=_label_for(labels, k),
            )
        )
    return non_max_suppression(raw, iou_threshold)


def labels_from_names(names: Mapping[int, str] | Sequence[str] | None) -> list[str]:
    """Normalize model metadata names (dict or list) into an index-ordered list."""

    if not names:
        return []
    if isinstance(names, Mapping):
        return [str(names[k]) for k in sorted(names)]
    return [str(n) for n in names]


def read_label_file(path: str | Path) -> list[str]:
    """Read one label per line, skipping blank lines."""

    with open(path, encoding="utf-8") as f:
        return [line.strip() for line in f if line.strip()]


def placeholder_labels(num_classes: int) -> list[str]:
    return [f"class{i}" for i in range(max(0, int(num_classes)))]


def resolve_labels(
    names: Mapping[int, str] | Sequence[str] | None = None,
    label_path: str | Path | None = None,
    num_classes: int = 0,
) -> list[str]:
    """Pick labels from model metadata, then a label file, then placeholders."""

    labels = labels_from_names(names)
    if labels:
        return labels
    if label_path is not None and Path(label_path).exists():
        labels = read_label_file(label_path)
        if labels:
            return labels
    logger.warning("No labels found; using %d placeholder names", num_classes)
    return placeholder_labels(num_classes)
