"""Runtime configuration.

Settings are loaded from YAML defaults and overridden by environment variables
prefixed with `RSC_`.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any, cast

import yaml
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from roomscan.core.depth.resolver import ResolverConfig
from roomscan.core.triangulation import Triangulator


class RoomScanSettings(BaseSettings):
    """Runtime configuration loaded from YAML defaults and `RSC_` env overrides."""

    model_config = SettingsConfigDict(env_prefix="RSC_", validate_assignment=True)

    # Detector
    model_name: str = Field("yolo11n.pt")
    labels_path: str | None = None
    input_size: int = 640
    confidence: float = 0.30
    nms_iou: float = 0.50
    # Run the detector every N AR frames (1 = every frame).
    detect_every_n: int = 1
    # Clockwise rotation applied to sensor images before inference (portrait = 90).
    image_rotation: int = 0

    # Depth / resolution
    depth_window_radius: int = 3
    depth_min_m: float = 0.2
    depth_max_m: float = 10.0
    # Operator-entered speaker width for the size-based distance fallback.
    speaker_width_cm: float | None = Field(default=None, description="None disables the fallback")

    # Tracking
    merge_distance_m: float = 0.20
    track_timeout_s: float = 3.0

    # Triangulation (per-speaker refinement across frames)
    triangulation_enabled: bool = False
    triangulation_min_angle_deg: float = 3.0
    triangulation_min_baseline_m: float = 0.08
    triangulation_max_rays: int = 30

    # Room validation
    min_room_length_m: float = 0.4
    orthogonality_tol: float = 0.25

    @field_validator("confidence", "nms_iou")
    @classmethod
    def _validate_unit_interval(cls, v: float) -> float:
        if not 0.0 < float(v) <= 1.0:
            raise ValueError("thresholds must be in (0, 1]")
        return float(v)

    @field_validator("input_size", "detect_every_n", "triangulation_max_rays")
    @classmethod
    def _validate_positive_int(cls, v: int) -> int:
        if int(v) <= 0:
            raise ValueError("value must be >= 1")
        return int(v)

    @field_validator("image_rotation")
    @classmethod
    def _validate_rotation(cls, v: int) -> int:
        if int(v) % 360 not in (0, 90, 180, 270):
            raise ValueError("image_rotation must be 0|90|180|270")
        return int(v) % 360

    @field_validator("depth_window_radius")
    @classmethod
    def _validate_radius(cls, v: int) -> int:
        if int(v) < 0:
            raise ValueError("depth_window_radius must be >= 0")
        return int(v)

    @field_validator("depth_min_m", "merge_distance_m", "min_room_length_m")
    @classmethod
    def _validate_positive(cls, v: float) -> float:
        if float(v) <= 0.0:
            raise ValueError("value must be > 0")
        return float(v)

    @field_validator("depth_max_m")
    @classmethod
    def _validate_depth_max(cls, v: float, info: Any) -> float:
        lo = info.data.get("depth_min_m")
        if lo is not None and float(v) <= float(lo):
            raise ValueError("depth_max_m must be > depth_min_m")
        return float(v)

    @field_validator("speaker_width_cm")
    @classmethod
    def _validate_speaker_width(cls, v: float | None) -> float | None:
        if v is None:
            return v
        if float(v) <= 0.0:
            raise ValueError("speaker_width_cm must be > 0")
        return float(v)

    @field_validator("track_timeout_s", "triangulation_min_angle_deg", "triangulation_min_baseline_m")
    @classmethod
    def _validate_non_negative(cls, v: float) -> float:
        if float(v) < 0.0:
            raise ValueError("value must be >= 0")
        return float(v)

    @field_validator("orthogonality_tol")
    @classmethod
    def _validate_orthogonality_tol(cls, v: float) -> float:
        if not 0.0 < float(v) <= 1.0:
            raise ValueError("orthogonality_tol must be in (0, 1]")
        return float(v)


def settings_to_dict(settings: RoomScanSettings) -> dict[str, Any]:
    """Convert settings to a plain dict."""

    return cast(dict[str, Any], settings.model_dump())


def _config_path() -> Path:
    """Return the YAML configuration path (defaults to config/roomscan.config.yml)."""

    return Path(os.getenv("RSC_CONFIG", "config/roomscan.config.yml"))


def load_settings() -> RoomScanSettings:
    """Load settings from YAML and environment variables.

    YAML provides defaults; environment variables override.
    """

    data: dict[str, Any] = {}
    path = _config_path()
    if path.exists():
        with open(path, encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}

    env_settings = RoomScanSettings()
    env_overrides: dict[str, Any] = {
        name: getattr(env_settings, name) for name in env_settings.model_fields_set
    }

    merged = {**data, **env_overrides}
    return RoomScanSettings(**merged)


def resolver_config_from_settings(settings: RoomScanSettings) -> ResolverConfig:
    return ResolverConfig(
        window_radius=settings.depth_window_radius,
        depth_min_m=settings.depth_min_m,
        depth_max_m=settings.depth_max_m,
    )


def triangulator_from_settings(settings: RoomScanSettings) -> Triangulator:
    return Triangulator(
        min_angle_deg=settings.triangulation_min_angle_deg,
        min_baseline_m=settings.triangulation_min_baseline_m,
        max_rays=settings.triangulation_max_rays,
    )


def speaker_width_m(settings: RoomScanSettings) -> float | None:
    """Speaker width in meters, or `None` when not configured."""

    if settings.speaker_width_cm is None:
        return None
    return settings.speaker_width_cm / 100.0
