"""Guided turn-in-place capture.

The operator turns around in fixed yaw steps; a sample is captured each time
the (smoothed) camera heading has been held on the next target long enough.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from roomscan.core.geometry.vectors import angle_difference, yaw_degrees
from roomscan.core.types import Pose

STEP_ANGLE_DEG = 45.0
ALIGN_TOL_DEG = 4.0
HOLD_MS = 500.0
YAW_SMOOTHING = 0.85


class ScanState(str, Enum):
    WAIT_POSE = "wait_pose"
    ALIGNING = "aligning"
    DONE = "done"


@dataclass
class ScanSample:
    pose: Pose
    timestamp_ns: int
    payload: Any = None


@dataclass
class ScanGuide:
    """Yaw-stepped capture state machine."""

    step_deg: float = STEP_ANGLE_DEG
    tolerance_deg: float = ALIGN_TOL_DEG
    hold_ms: float = HOLD_MS
    state: ScanState = ScanState.WAIT_POSE
    target_yaw: float = 0.0
    progress: float = 0.0
    diff_to_target: float = 0.0
    samples: list[ScanSample] = field(default_factory=list)
    _base_set: bool = False
    _hold_elapsed: float = 0.0
    _prev_ts: int = 0
    _yaw_smooth: float = 0.0

    def _delta_ms(self, timestamp_ns: int) -> float:
        dt = 0.0 if self._prev_ts == 0 else (timestamp_ns - self._prev_ts) / 1_000_000.0
        self._prev_ts = timestamp_ns
        return dt

    def on_frame(self, pose: Pose, timestamp_ns: int, payload: Any = None) -> ScanState:
        """Advance the state machine by one frame; `payload` is stored with a capture."""

        if self.state == ScanState.DONE:
            return self.state

        yaw = yaw_degrees(pose)
        self._yaw_smooth = YAW_SMOOTHING * self._yaw_smooth + (1.0 - YAW_SMOOTHING) * yaw
        if not self._base_set:
            self.target_yaw = (yaw + self.step_deg) % 360.0
            self._base_set = True
        diff = angle_difference(self._yaw_smooth, self.target_yaw)
        self.diff_to_target = diff
        dt = self._delta_ms(timestamp_ns)

        if self.state == ScanState.WAIT_POSE:
            if abs(diff) <= self.tolerance_deg:
                self.state = ScanState.ALIGNING
                self._hold_elapsed = 0.0
        elif self.state == ScanState.ALIGNING:
            if abs(diff) > self.tolerance_deg:
                self.state = ScanState.WAIT_POSE
                self.progress = 0.0
            else:
                self._hold_elapsed += dt
                self.progress = min(1.0, max(0.0, self._hold_elapsed / self.hold_ms))
                if self._hold_elapsed >= self.hold_ms:
                    self.samples.append(ScanSample(pose, timestamp_ns, payload))
                    self._advance_target()
        return self.state

    def _advance_target(self) -> None:
        self.progress = 0.0
        self._hold_elapsed = 0.0
        self.target_yaw = (self.target_yaw + self.step_deg) % 360.0
        self.state = (
            ScanState.DONE if self.target_yaw < self.step_deg / 2.0 else ScanState.WAIT_POSE
        )

    def reset(self) -> None:
        self.state = ScanState.WAIT_POSE
        self.target_yaw = 0.0
        self.progress = 0.0
        self.diff_to_target = 0.0
        self._base_set = False
        self._hold_elapsed = 0.0
        self._prev_ts = 0
        self._yaw_smooth = 0.0
        self.samples.clear()
