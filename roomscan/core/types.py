"""Shared type definitions used across the core.

This module centralizes the small, stable value types (vectors, rays, poses,
intrinsics, boxes and tracked points) so geometry, detector and tracker code
can stay strongly typed.
"""

from __future__ import annotations

import math
from dataclasses import dataclass

import numpy as np

Quaternion = tuple[float, float, float, float]  # (qx, qy, qz, qw)
Point2 = tuple[float, float]

NORMALIZE_EPS = 1e-6


def _f32(v: float) -> float:
    return float(np.float32(v))


@dataclass(frozen=True)
class Vector3:
    """Immutable single-precision 3-D vector."""

    x: float
    y: float
    z: float

    def __post_init__(self) -> None:
        object.__setattr__(self, "x", _f32(self.x))
        object.__setattr__(self, "y", _f32(self.y))
        object.__setattr__(self, "z", _f32(self.z))

    @classmethod
    def zero(cls) -> Vector3:
        return cls(0.0, 0.0, 0.0)

    @classmethod
    def from_iterable(cls, values) -> Vector3:
        x, y, z = (float(v) for v in values)
        return cls(x, y, z)

    def __add__(self, o: Vector3) -> Vector3:
        return Vector3(self.x + o.x, self.y + o.y, self.z + o.z)

    def __sub__(self, o: Vector3) -> Vector3:
        return Vector3(self.x - o.x, self.y - o.y, self.z - o.z)

    def __mul__(self, s: float) -> Vector3:
        return Vector3(self.x * s, self.y * s, self.z * s)

    __rmul__ = __mul__

    def __neg__(self) -> Vector3:
        return Vector3(-self.x, -self.y, -self.z)

    def dot(self, o: Vector3) -> float:
        return self.x * o.x + self.y * o.y + self.z * o.z

    def cross(self, o: Vector3) -> Vector3:
        return Vector3(
            self.y * o.z - self.z * o.y,
            self.z * o.x - self.x * o.z,
            self.x * o.y - self.y * o.x,
        )

    def length(self) -> float:
        return math.sqrt(self.dot(self))

    def normalized(self) -> Vector3:
        """Return a unit vector, or `self` unchanged when the length is ~0."""

        n = self.length()
        if n < NORMALIZE_EPS:
            return self
        return Vector3(self.x / n, self.y / n, self.z / n)

    def as_tuple(self) -> tuple[float, float, float]:
        return (self.x, self.y, self.z)

    def as_array(self) -> np.ndarray:
        return np.array([self.x, self.y, self.z], dtype=np.float32)


@dataclass(frozen=True)
class Ray:
    """World-space ray with a unit direction."""

    origin: Vector3
    direction: Vector3

    def point_at(self, t: float) -> Vector3:
        return self.origin + self.direction * t


@dataclass(frozen=True)
class CameraIntrinsics:
    """Pinhole intrinsics in image pixel units, valid for one frame."""

    fx: float
    fy: float
    cx: float
    cy: float
    width: int = 0
    height: int = 0


@dataclass(frozen=True)
class Pose:
    """Camera-to-world pose: translation plus orientation quaternion (x, y, z, w)."""

    translation: Vector3
    rotation: Quaternion = (0.0, 0.0, 0.0, 1.0)

    @classmethod
    def identity(cls) -> Pose:
        return cls(Vector3.zero())


@dataclass(frozen=True)
class BoundingBox:
    """Decoded detection in normalized (0..1) inference-image coordinates."""

    x1: float
    y1: float
    x2: float
    y2: float
    cx: float
    cy: float
    w: float
    h: float
    confidence: float
    class_index: int
    class_name: str

    @property
    def center(self) -> Point2:
        return ((self.x1 + self.x2) * 0.5, (self.y1 + self.y2) * 0.5)


@dataclass
class TrackedPoint:
    """Speaker position with a stable id and the frame time it was last seen."""

    id: int
    position: Vector3
    last_seen_ns: int


@dataclass
class FrameSummary:
    """Result payload for one processed AR frame."""

    frame_id: int
    timestamp_ns: int
    speakers: list[TrackedPoint]
    boxes: list[BoundingBox]
    inferred: bool = False
    sources: dict[str, int] | None = None
    timings: dict[str, float] | None = None
