"""Pydantic models for the HTTP API."""

from __future__ import annotations

from pydantic import BaseModel, Field, field_validator

from roomscan.core.room.frame import AxisFrame, PickedPoints, RoomExtent
from roomscan.core.types import BoundingBox, TrackedPoint, Vector3


class Vector3Schema(BaseModel):
    """World-space point or direction (meters)."""

    x: float
    y: float
    z: float

    def to_vector(self) -> Vector3:
        return Vector3(self.x, self.y, self.z)

    @classmethod
    def from_vector(cls, v: Vector3) -> Vector3Schema:
        return cls(x=v.x, y=v.y, z=v.z)


class RoomPointsSchema(BaseModel):
    """The six picked points, one per wall, floor and ceiling."""

    x_min: Vector3Schema
    x_max: Vector3Schema
    z_min: Vector3Schema
    z_max: Vector3Schema
    y_floor: Vector3Schema
    y_ceil: Vector3Schema

    def to_picked(self) -> PickedPoints:
        return PickedPoints(
            x_min=self.x_min.to_vector(),
            x_max=self.x_max.to_vector(),
            z_min=self.z_min.to_vector(),
            z_max=self.z_max.to_vector(),
            y_floor=self.y_floor.to_vector(),
            y_ceil=self.y_ceil.to_vector(),
        )


class AxisFrameSchema(BaseModel):
    origin: Vector3Schema
    vx: Vector3Schema
    vy: Vector3Schema
    vz: Vector3Schema

    def to_frame(self) -> AxisFrame:
        return AxisFrame(
            origin=self.origin.to_vector(),
            vx=self.vx.to_vector(),
            vy=self.vy.to_vector(),
            vz=self.vz.to_vector(),
        )

    @classmethod
    def from_frame(cls, frame: AxisFrame) -> AxisFrameSchema:
        return cls(
            origin=Vector3Schema.from_vector(frame.origin),
            vx=Vector3Schema.from_vector(frame.vx),
            vy=Vector3Schema.from_vector(frame.vy),
            vz=Vector3Schema.from_vector(frame.vz),
        )


class RoomExtentSchema(BaseModel):
    width: float
    depth: float
    height: float

    @classmethod
    def from_extent(cls, extent: RoomExtent) -> RoomExtentSchema:
        return cls(width=extent.width, depth=extent.depth, height=extent.height)


class ValidationSchema(BaseModel):
    ok: bool
    reason: str | None = None
    message: str | None = None


class RoomFrameResponse(BaseModel):
    """Solved room; `validation.ok` tells whether it replaced the session room."""

    frame: AxisFrameSchema
    extent: RoomExtentSchema
    validation: ValidationSchema


class LocalRequest(BaseModel):
    """Points to express in room coordinates; `frame` defaults to the session room."""

    points: list[Vector3Schema]
    frame: AxisFrameSchema | None = None


class LocalResponse(BaseModel):
    points: list[tuple[float, float, float]]


class MeasureSchema(BaseModel):
    """Tape-style measurement between two points, tagged by the operator."""

    label: str
    a: Vector3Schema
    b: Vector3Schema


class RoomSizeRequest(BaseModel):
    measures: list[MeasureSchema]


class RoomSizeResponse(BaseModel):
    extent: RoomExtentSchema | None
    measures: dict[str, float]


class DecodeRequest(BaseModel):
    """Raw detector output: `tensor` is [C, N] or [1, C, N]."""

    tensor: list
    labels: list[str] = Field(default_factory=list)
    confidence: float = Field(default=0.30, gt=0.0, le=1.0)
    iou_threshold: float = Field(default=0.50, gt=0.0, le=1.0)


class BoxSchema(BaseModel):
    """Decoded detection in normalized inference-image coordinates."""

    x1: float
    y1: float
    x2: float
    y2: float
    confidence: float
    class_index: int
    class_name: str

    @classmethod
    def from_box(cls, box: BoundingBox) -> BoxSchema:
        return cls(
            x1=box.x1,
            y1=box.y1,
            x2=box.x2,
            y2=box.y2,
            confidence=box.confidence,
            class_index=box.class_index,
            class_name=box.class_name,
        )


class DecodeResponse(BaseModel):
    boxes: list[BoxSchema]


class ObserveRequest(BaseModel):
    """World positions resolved on one AR frame."""

    positions: list[Vector3Schema]
    timestamp_ns: int = Field(ge=0)
    timeout_s: float | None = Field(default=None, ge=0.0)


class ObserveResponse(BaseModel):
    ids: list[int]
    removed: list[int]


class SpeakerSchema(BaseModel):
    """Tracked speaker; `local` is set once a room frame has been accepted."""

    id: int
    position: Vector3Schema
    last_seen_ns: int
    local: tuple[float, float, float] | None = None

    @classmethod
    def from_tracked(
        cls, point: TrackedPoint, local: tuple[float, float, float] | None = None
    ) -> SpeakerSchema:
        return cls(
            id=point.id,
            position=Vector3Schema.from_vector(point.position),
            last_seen_ns=point.last_seen_ns,
            local=local,
        )


class ConfigSchema(BaseModel):
    """Runtime configuration payload.

    Every field is optional on POST; only the fields sent are applied.
    """

    model_name: str = "yolo11n.pt"
    labels_path: str | None = None
    input_size: int = Field(default=640, gt=0)
    confidence: float = Field(default=0.30, gt=0.0, le=1.0)
    nms_iou: float = Field(default=0.50, gt=0.0, le=1.0)
    detect_every_n: int = Field(default=1, ge=1)
    image_rotation: int = 0
    depth_window_radius: int = Field(default=3, ge=0)
    depth_min_m: float = Field(default=0.2, gt=0.0)
    depth_max_m: float = Field(default=10.0, gt=0.0)
    speaker_width_cm: float | None = Field(default=None, gt=0.0)
    merge_distance_m: float = Field(default=0.20, gt=0.0)
    track_timeout_s: float = Field(default=3.0, ge=0.0)
    triangulation_enabled: bool = False
    triangulation_min_angle_deg: float = Field(default=3.0, ge=0.0)
    triangulation_min_baseline_m: float = Field(default=0.08, ge=0.0)
    triangulation_max_rays: int = Field(default=30, ge=1)
    min_room_length_m: float = Field(default=0.4, gt=0.0)
    orthogonality_tol: float = Field(default=0.25, gt=0.0, le=1.0)

    @field_validator("image_rotation")
    @classmethod
    def _validate_rotation(cls, v: int) -> int:
        if v % 360 not in (0, 90, 180, 270):
            raise ValueError("image_rotation must be 0|90|180|270")
        return v % 360
