"""AR frame source abstractions.

The pipeline consumes frames through a small interface (`FrameSource`) so a
live AR session bridge and offline recordings can be swapped without affecting
detection, resolution or tracking.
"""

from __future__ import annotations

import json
import logging
from abc import ABC, abstractmethod
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import cv2
import numpy as np

from roomscan.core.depth.sampler import DepthImage
from roomscan.core.geometry.coords import ViewTransform
from roomscan.core.types import CameraIntrinsics, Point2, Pose, Vector3

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class HitRegion:
    """A view-space disc where the platform hit-test reports `point`."""

    view_x: float
    view_y: float
    radius: float
    point: Vector3


@dataclass
class RecordedFrame:
    """A fully materialized AR frame (pose, intrinsics, depth, hit regions, image)."""

    pose: Pose
    intrinsics: CameraIntrinsics
    timestamp_ns: int
    view: ViewTransform
    depth: DepthImage | None = None
    hits: list[HitRegion] = field(default_factory=list)
    image: np.ndarray | None = None
    tensor: np.ndarray | None = None
    depth_acquired: int = 0
    depth_released: int = 0

    def hit_test(self, view_x: float, view_y: float) -> Vector3 | None:
        for h in self.hits:
            if (h.view_x - view_x) ** 2 + (h.view_y - view_y) ** 2 <= h.radius**2:
                return h.point
        return None

    @contextmanager
    def acquire_depth_image(self) -> Iterator[DepthImage | None]:
        self.depth_acquired += 1
        try:
            yield self.depth
        finally:
            self.depth_released += 1

    def view_to_image(self, x: float, y: float) -> Point2:
        return self.view.view_to_image(x, y)

    def image_to_view(self, x: float, y: float) -> Point2:
        return self.view.image_to_view(x, y)


class FrameSource(ABC):
    """Base interface for anything that can produce AR frames."""

    @abstractmethod
    def read(self) -> RecordedFrame | None:
        """Return the next frame, or `None` when exhausted."""

        raise NotImplementedError

    @abstractmethod
    def close(self) -> None:
        """Release any underlying resources."""

        raise NotImplementedError


def _vec(values: Any) -> Vector3:
    return Vector3.from_iterable(values)


def _parse_pose(data: dict[str, Any]) -> Pose:
    rotation = tuple(float(v) for v in data.get("rotation", (0.0, 0.0, 0.0, 1.0)))
    if len(rotation) != 4:
        raise ValueError("pose rotation must have 4 components (qx, qy, qz, qw)")
    return Pose(translation=_vec(data.get("translation", (0.0, 0.0, 0.0))), rotation=rotation)


def _parse_intrinsics(data: dict[str, Any]) -> CameraIntrinsics:
    return CameraIntrinsics(
        fx=float(data["fx"]),
        fy=float(data["fy"]),
        cx=float(data["cx"]),
        cy=float(data["cy"]),
        width=int(data.get("width", 0)),
        height=int(data.get("height", 0)),
    )


def parse_frame(
    entry: dict[str, Any],
    view: ViewTransform,
    default_intrinsics: CameraIntrinsics | None,
    base_dir: Path,
) -> RecordedFrame:
    """Build a `RecordedFrame` from one recording entry; file paths are relative to `base_dir`."""

    if "intrinsics" in entry:
        intr = _parse_intrinsics(entry["intrinsics"])
    elif default_intrinsics is not None:
        intr = default_intrinsics
    else:
        raise ValueError("frame has no intrinsics and the recording defines no default")

    depth = None
    if entry.get("depth"):
        depth = DepthImage.from_millimeters(np.load(base_dir / entry["depth"]))

    image = None
    if entry.get("image"):
        image = cv2.imread(str(base_dir / entry["image"]))
        if image is None:
            logger.warning("Could not read image %s", entry["image"])

    tensor = None
    if entry.get("tensor"):
        tensor = np.load(base_dir / entry["tensor"])

    hits = [
        HitRegion(
            view_x=float(h["view"][0]),
            view_y=float(h["view"][1]),
            radius=float(h.get("radius", 1.0)),
            point=_vec(h["point"]),
        )
        for h in entry.get("hits", [])
    ]

    return RecordedFrame(
        pose=_parse_pose(entry.get("pose", {})),
        intrinsics=intr,
        timestamp_ns=int(entry["timestamp_ns"]),
        view=view,
        depth=depth,
        hits=hits,
        image=image,
        tensor=tensor,
    )


class RecordingSource(FrameSource):
    """A `FrameSource` replaying a JSON session recording.

    Layout::

        {"view": {"image_width": .., "image_height": .., "view_width": ..,
                  "view_height": .., "rotation": 0},
         "intrinsics": {"fx": .., "fy": .., "cx": .., "cy": .., "width": .., "height": ..},
         "frames": [{"timestamp_ns": .., "pose": {"translation": [..], "rotation": [..]},
                     "depth": "depth_000.npy", "image": "frame_000.png",
                     "tensor": "out_000.npy",
                     "hits": [{"view": [x, y], "radius": r, "point": [x, y, z]}]}]}
    """

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)
        with open(self.path, encoding="utf-8") as f:
            data = json.load(f)
        self.view = ViewTransform(**data["view"])
        self.default_intrinsics = (
            _parse_intrinsics(data["intrinsics"]) if "intrinsics" in data else None
        )
        self._entries: list[dict[str, Any]] = list(data.get("frames", []))
        self._index = 0
        logger.info("Opened recording %s with %d frames", self.path, len(self._entries))

    def read(self) -> RecordedFrame | None:
        if self._index >= len(self._entries):
            return None
        entry = self._entries[self._index]
        self._index += 1
        return parse_frame(entry, self.view, self.default_intrinsics, self.path.parent)

    def close(self) -> None:
        self._entries = []
        self._index = 0
