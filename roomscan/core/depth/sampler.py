"""Dense depth image access and robust window sampling."""

from __future__ import annotations

from dataclasses import dataclass

import numpy as np

DEFAULT_WINDOW_RADIUS = 3
DEPTH_VALID_MIN_M = 0.2
DEPTH_VALID_MAX_M = 10.0
MIN_VALID_SAMPLES = 5


@dataclass(frozen=True)
class DepthImage:
    """16-bit little-endian millimeter depth plane.

    `row_stride` and `pixel_stride` are in bytes, as reported by the platform.
    """

    data: bytes
    width: int
    height: int
    row_stride: int
    pixel_stride: int = 2

    @classmethod
    def from_millimeters(cls, mm: np.ndarray) -> DepthImage:
        """Build a tightly packed image from a `(H, W)` array of millimeters."""

        arr = np.ascontiguousarray(np.asarray(mm, dtype="<u2"))
        if arr.ndim != 2:
            raise ValueError("depth array must be 2-D")
        h, w = arr.shape
        return cls(data=arr.tobytes(), width=int(w), height=int(h), row_stride=int(w) * 2)

    def read_meters(self, xs: np.ndarray, ys: np.ndarray) -> np.ndarray:
        """Read depths (m) at integer pixel coordinates; out-of-range reads yield 0."""

        buf = np.frombuffer(self.data, dtype=np.uint8)
        xs = np.asarray(xs, dtype=np.int64)
        ys = np.asarray(ys, dtype=np.int64)
        out = np.zeros(xs.shape, dtype=np.float32)

        inside = (xs >= 0) & (ys >= 0) & (xs < self.width) & (ys < self.height)
        index = ys * int(self.row_stride) + xs * int(self.pixel_stride)
        inside &= (index >= 0) & (index + 1 < buf.size)
        if not inside.any():
            return out

        idx = index[inside]
        lo = buf[idx].astype(np.uint32)
        hi = buf[idx + 1].astype(np.uint32)
        out[inside] = ((hi << 8) | lo).astype(np.float32) / np.float32(1000.0)
        return out


def min_valid_samples(radius: int) -> int:
    side = 2 * radius + 1
    return max(MIN_VALID_SAMPLES, (side * side) // 4)


def sample_depth_window(
    depth: DepthImage,
    x: float,
    y: float,
    radius: int = DEFAULT_WINDOW_RADIUS,
    valid_min: float = DEPTH_VALID_MIN_M,
    valid_max: float = DEPTH_VALID_MAX_M,
) -> float | None:
    """Median depth (m) of the in-range samples in a square window around (x, y).

    Returns `None` when fewer than `max(5, area // 4)` samples fall inside
    `[valid_min, valid_max]`. For an even count the upper median is used.
    """

    if depth.width <= 0 or depth.height <= 0:
        return None

    cx = int(x)
    cy = int(y)
    offsets = np.arange(-radius, radius + 1)
    ys, xs = np.meshgrid(cy + offsets, cx + offsets, indexing="ij")
    vals = depth.read_meters(xs.ravel(), ys.ravel())
    vals = vals[(vals >= np.float32(valid_min)) & (vals <= np.float32(valid_max))]

    if vals.size < min_valid_samples(radius):
        return None
    vals.sort()
    return float(vals[vals.size // 2])
