"""Room frame endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException

from roomscan.api.schemas.models import (
    AxisFrameSchema,
    LocalRequest,
    LocalResponse,
    RoomExtentSchema,
    RoomFrameResponse,
    RoomPointsSchema,
    RoomSizeRequest,
    RoomSizeResponse,
    ValidationSchema,
)
from roomscan.api.services.session import MeasurementSession
from roomscan.api.services.state import get_session
from roomscan.core.room.frame import to_local
from roomscan.core.room.labels import infer_room_size, measure_two_points

router = APIRouter(prefix="/room")


@router.post("/frame", response_model=RoomFrameResponse)
def room_frame(
    points: RoomPointsSchema, session: MeasurementSession = Depends(get_session)
) -> RoomFrameResponse:
    """Solve the room axes from six picked points.

    The room is stored on the session only when validation passes.
    """

    solved = session.solve_room(points.to_picked())
    if solved is None:
        raise HTTPException(status_code=422, detail="Incomplete room points")
    frame, extent, result = solved
    return RoomFrameResponse(
        frame=AxisFrameSchema.from_frame(frame),
        extent=RoomExtentSchema.from_extent(extent),
        validation=ValidationSchema(ok=result.ok, reason=result.reason, message=result.message),
    )


@router.post("/local", response_model=LocalResponse)
def room_local(
    req: LocalRequest, session: MeasurementSession = Depends(get_session)
) -> LocalResponse:
    """Express world points in room coordinates."""

    if req.frame is not None:
        frame = req.frame.to_frame()
    elif session.room is not None:
        frame = session.room[0]
    else:
        raise HTTPException(status_code=409, detail="No room frame; POST /room/frame first")
    return LocalResponse(points=[to_local(frame, p.to_vector()) for p in req.points])


@router.post("/size", response_model=RoomSizeResponse)
def room_size(req: RoomSizeRequest) -> RoomSizeResponse:
    """Infer width, depth and height from labeled two-point measurements."""

    measures = [measure_two_points(m.label, m.a.to_vector(), m.b.to_vector()) for m in req.measures]
    extent = infer_room_size(measures)
    return RoomSizeResponse(
        extent=None if extent is None else RoomExtentSchema.from_extent(extent),
        measures={m.label: m.meters for m in measures},
    )
