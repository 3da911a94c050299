"""Room axis frame and extent from six picked points.

The user picks two points per axis (left/right wall, near/far wall, floor and
ceiling). The solver turns them into an orthonormal frame (vx ~ width,
vy ~ up, vz ~ depth), the room extents and a center origin. Validation is a
separate gate that classifies the result without changing it.
"""

from __future__ import annotations

from dataclasses import dataclass, fields
from enum import Enum

from roomscan.core.types import Vector3

MIN_LENGTH_M = 0.4
ORTHOGONALITY_TOL = 0.25


class PickStep(str, Enum):
    """Guided pick order; each point step names the slot it fills."""

    X_MIN = "x_min"
    X_MAX = "x_max"
    Z_MIN = "z_min"
    Z_MAX = "z_max"
    Y_FLOOR = "y_floor"
    Y_CEIL = "y_ceil"
    REVIEW = "review"
    DONE = "done"

    @property
    def prompt(self) -> str:
        return _PROMPTS[self]


_PROMPTS = {
    PickStep.X_MIN: "X- (tap the left wall)",
    PickStep.X_MAX: "X+ (tap the right wall)",
    PickStep.Z_MIN: "Z- (tap the near wall)",
    PickStep.Z_MAX: "Z+ (tap the far wall)",
    PickStep.Y_FLOOR: "Y- (tap the floor)",
    PickStep.Y_CEIL: "Y+ (tap the ceiling)",
    PickStep.REVIEW: "Review",
    PickStep.DONE: "Done",
}

POINT_STEPS = (
    PickStep.X_MIN,
    PickStep.X_MAX,
    PickStep.Z_MIN,
    PickStep.Z_MAX,
    PickStep.Y_FLOOR,
    PickStep.Y_CEIL,
)


@dataclass
class PickedPoints:
    """Six optional world points, filled one tap at a time."""

    x_min: Vector3 | None = None
    x_max: Vector3 | None = None
    z_min: Vector3 | None = None
    z_max: Vector3 | None = None
    y_floor: Vector3 | None = None
    y_ceil: Vector3 | None = None

    def is_complete(self) -> bool:
        return all(getattr(self, f.name) is not None for f in fields(self))

    def set(self, step: PickStep, point: Vector3) -> None:
        if step not in POINT_STEPS:
            raise ValueError(f"{step.value} does not take a point")
        setattr(self, step.value, point)

    def next_step(self) -> PickStep:
        """First unfilled slot, or REVIEW when all six are set."""

        for step in POINT_STEPS:
            if getattr(self, step.value) is None:
                return step
        return PickStep.REVIEW

    def clear(self) -> None:
        for f in fields(self):
            setattr(self, f.name, None)


@dataclass(frozen=True)
class AxisFrame:
    origin: Vector3
    vx: Vector3
    vy: Vector3
    vz: Vector3


@dataclass(frozen=True)
class RoomExtent:
    width: float
    depth: float
    height: float


@dataclass(frozen=True)
class RoomValidation:
    ok: bool
    reason: str | None = None
    message: str | None = None

    @classmethod
    def passed(cls) -> RoomValidation:
        return cls(True)

    @classmethod
    def fail(cls, reason: str) -> RoomValidation:
        return cls(False, reason, _MESSAGES[reason])


WIDTH_TOO_SHORT = "width_too_short"
DEPTH_TOO_SHORT = "depth_too_short"
HEIGHT_TOO_SHORT = "height_too_short"
POOR_ORTHOGONALITY = "poor_orthogonality"

_MESSAGES = {
    WIDTH_TOO_SHORT: "Width (W) is too short",
    DEPTH_TOO_SHORT: "Depth (D) is too short",
    HEIGHT_TOO_SHORT: "Height (H) is too short",
    POOR_ORTHOGONALITY: "Axes are not orthogonal enough; pick the points again",
}


def _midpoint(a: Vector3, b: Vector3) -> Vector3:
    return a + (b - a) * 0.5


def solve_room_frame(picked: PickedPoints) -> tuple[AxisFrame, RoomExtent] | None:
    """Solve frame and extent from a complete pick; `None` while incomplete."""

    x0, x1 = picked.x_min, picked.x_max
    z0, z1 = picked.z_min, picked.z_max
    y0, y1 = picked.y_floor, picked.y_ceil
    if x0 is None or x1 is None or z0 is None or z1 is None or y0 is None or y1 is None:
        return None

    vx = (x1 - x0).normalized()
    vz_prime = (z1 - z0).normalized()
    vz = (vz_prime - vx * vz_prime.dot(vx)).normalized()
    vy = vx.cross(vz).normalized()

    extent = RoomExtent(
        width=abs((x1 - x0).dot(vx)),
        depth=abs((z1 - z0).dot(vz)),
        height=abs((y1 - y0).dot(vy)),
    )

    cx = _midpoint(x0, x1)
    cz = _midpoint(z0, z1)
    cy = _midpoint(y0, y1)
    origin = Vector3(
        (cx.x + cz.x + cy.x) / 3.0,
        (cx.y + cz.y + cy.y) / 3.0,
        (cx.z + cz.z + cy.z) / 3.0,
    )
    return AxisFrame(origin, vx, vy, vz), extent


def validate(
    frame: AxisFrame,
    extent: RoomExtent,
    min_length_m: float = MIN_LENGTH_M,
    orthogonality_tol: float = ORTHOGONALITY_TOL,
) -> RoomValidation:
    """Accept or reject a solved room. Height uses half the length floor."""

    if extent.width < min_length_m:
        return RoomValidation.fail(WIDTH_TOO_SHORT)
    if extent.depth < min_length_m:
        return RoomValidation.fail(DEPTH_TOO_SHORT)
    if extent.height < min_length_m * 0.5:
        return RoomValidation.fail(HEIGHT_TOO_SHORT)

    ortho_xz = abs(frame.vx.dot(frame.vz)) < orthogonality_tol
    ortho_xy = abs(frame.vx.dot(frame.vy)) < orthogonality_tol
    ortho_yz = abs(frame.vy.dot(frame.vz)) < orthogonality_tol
    if not (ortho_xz and ortho_xy and ortho_yz):
        return RoomValidation.fail(POOR_ORTHOGONALITY)
    return RoomValidation.passed()


def to_local(frame: AxisFrame, point: Vector3) -> tuple[float, float, float]:
    """Project a world point onto the room axes: (along vx, along vy, along vz)."""

    d = point - frame.origin
    return (d.dot(frame.vx), d.dot(frame.vy), d.dot(frame.vz))
