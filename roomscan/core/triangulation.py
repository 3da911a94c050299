"""Multi-view ray triangulation.

Accumulates camera rays that observe the same target and solves for the point
closest (in the least-squares sense) to all of them. The pipeline keeps one
instance per tracked speaker when triangulation is enabled.
"""

from __future__ import annotations

import math

import numpy as np

from roomscan.core.types import Vector3

MIN_ANGLE_DEG = 3.0
MIN_BASELINE_M = 0.08
MAX_RAYS = 30
DET_EPS = 1e-6

_f32 = np.float32


class Triangulator:
    """Per-target ray accumulator and least-squares solver.

    Only the first and last accumulated rays are checked for baseline and
    angular diversity. The cached best solution is replaced only when the
    ray set is better conditioned (smaller minimum pairwise |cos|).

    Not thread-safe: one instance per in-flight target.
    """

    def __init__(
        self,
        min_angle_deg: float = MIN_ANGLE_DEG,
        min_baseline_m: float = MIN_BASELINE_M,
        max_rays: int = MAX_RAYS,
    ) -> None:
        self.min_angle_deg = float(min_angle_deg)
        self.min_baseline_m = float(min_baseline_m)
        self.max_rays = int(max_rays)
        self.origins: list[Vector3] = []
        self.directions: list[Vector3] = []
        self._best_point: Vector3 | None = None
        self._best_cond = math.inf

    @property
    def ray_count(self) -> int:
        return len(self.origins)

    def add_ray(self, origin: Vector3, direction: Vector3) -> bool:
        """Append a ray; returns False once `max_rays` is reached."""

        if len(self.origins) >= self.max_rays:
            return False
        self.origins.append(origin)
        self.directions.append(direction.normalized())
        return True

    def best(self) -> Vector3 | None:
        return self._best_point

    def _diverse_enough(self) -> bool:
        o0, o1 = self.origins[0], self.origins[-1]
        if (o1 - o0).length() < self.min_baseline_m:
            return False
        d0, d1 = self.directions[0], self.directions[-1]
        angle = math.degrees(math.acos(_cosine(d0, d1)))
        return angle >= self.min_angle_deg

    def solve_if_ready(self) -> Vector3 | None:
        """Solve when the geometry allows it and return the best point so far.

        Returns `None` while fewer than two rays are present, when the
        first/last rays lack baseline or angle, or when the system is singular.
        """

        if len(self.origins) < 2:
            return None
        if not self._diverse_enough():
            return None

        p = self._solve_least_squares()
        if p is None:
            return None

        cond = self._condition_like()
        if cond < self._best_cond:
            self._best_cond = cond
            self._best_point = p
        return self._best_point

    def _condition_like(self) -> float:
        min_cos = 1.0
        n = len(self.directions)
        for i in range(n):
            for j in range(i + 1, n):
                min_cos = min(min_cos, abs(_cosine(self.directions[i], self.directions[j])))
        return min_cos

    def _solve_least_squares(self) -> Vector3 | None:
        one = _f32(1.0)
        a00 = a01 = a02 = a11 = a12 = a22 = _f32(0.0)
        bx = by = bz = _f32(0.0)

        for d, o in zip(self.directions, self.origins, strict=True):
            dx, dy, dz = _f32(d.x), _f32(d.y), _f32(d.z)
            ox, oy, oz = _f32(o.x), _f32(o.y), _f32(o.z)

            i00 = one - dx * dx
            i01 = -dx * dy
            i02 = -dx * dz
            i11 = one - dy * dy
            i12 = -dy * dz
            i22 = one - dz * dz

            a00 += i00
            a01 += i01
            a02 += i02
            a11 += i11
            a12 += i12
            a22 += i22

            bx += i00 * ox + i01 * oy + i02 * oz
            by += i01 * ox + i11 * oy + i12 * oz
            bz += i02 * ox + i12 * oy + i22 * oz

        det = (
            a00 * (a11 * a22 - a12 * a12)
            - a01 * (a01 * a22 - a12 * a02)
            + a02 * (a01 * a12 - a11 * a02)
        )
        if abs(float(det)) < DET_EPS:
            return None

        c00 = a11 * a22 - a12 * a12
        c01 = -(a01 * a22 - a12 * a02)
        c02 = a01 * a12 - a11 * a02
        c11 = a00 * a22 - a02 * a02
        c12 = -(a00 * a12 - a01 * a02)
        c22 = a00 * a11 - a01 * a01

        px = (c00 * bx + c01 * by + c02 * bz) / det
        py = (c01 * bx + c11 * by + c12 * bz) / det
        pz = (c02 * bx + c12 * by + c22 * bz) / det
        return Vector3(float(px), float(py), float(pz))


def _cosine(a: Vector3, b: Vector3) -> float:
    denom = a.length() * b.length()
    if denom <= 0.0:
        return 1.0
    c = a.dot(b) / denom
    return max(-1.0, min(1.0, c))
