"""Labeled tape-style measurements and room size inference from their labels."""

from __future__ import annotations

import re
from dataclasses import dataclass

from roomscan.core.geometry.vectors import distance
from roomscan.core.room.frame import RoomExtent
from roomscan.core.types import Vector3

WIDTH_KEYS = frozenset({"w", "width", "가로", "폭", "넓이"})
DEPTH_KEYS = frozenset({"d", "depth", "세로", "길이", "방길이", "방깊이", "전장", "장변"})
HEIGHT_KEYS = frozenset({"h", "height", "높이", "천장", "층고"})

_WS = re.compile(r"\s+")
_PUNCT = re.compile(r"[()\[\]{}:：=~_\-]")


@dataclass(frozen=True)
class LabeledMeasure:
    label: str
    meters: float


def measure_two_points(label: str, a: Vector3, b: Vector3) -> LabeledMeasure:
    """Distance between two picked points, tagged with a user label."""

    return LabeledMeasure(label=label, meters=distance(a, b))


def normalize_label(s: str) -> str:
    return _PUNCT.sub("", _WS.sub("", s.lower()))


def _matches(norm: str, key: str) -> bool:
    # Single-letter keys ("w", "d", "h") only match exactly; "width" contains "d" and "h".
    if len(key) == 1 or len(norm) == 1:
        return norm == key
    return key in norm or norm in key


def _pick(labeled: list[LabeledMeasure], keys: frozenset[str]) -> float | None:
    for m in labeled:
        norm = normalize_label(m.label)
        if norm and any(_matches(norm, k) for k in keys):
            return m.meters
    return None


def infer_room_size(labeled: list[LabeledMeasure]) -> RoomExtent | None:
    """Build an extent from labeled measures when width, depth and height are all present.

    The first measure whose normalized label matches one of an axis'
    keywords wins for that axis.
    """

    if not labeled:
        return None
    w = _pick(labeled, WIDTH_KEYS)
    d = _pick(labeled, DEPTH_KEYS)
    h = _pick(labeled, HEIGHT_KEYS)
    if w is None or d is None or h is None:
        return None
    return RoomExtent(width=w, depth=d, height=h)
