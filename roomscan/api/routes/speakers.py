"""Speaker tracking endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends

from roomscan.api.schemas.models import ObserveRequest, ObserveResponse, SpeakerSchema
from roomscan.api.services.session import MeasurementSession
from roomscan.api.services.state import get_session

router = APIRouter(prefix="/speakers")


@router.post("/observe", response_model=ObserveResponse)
def observe(
    req: ObserveRequest, session: MeasurementSession = Depends(get_session)
) -> ObserveResponse:
    """Assign stable ids to positions resolved on one frame, then drop stale speakers."""

    ids, removed = session.observe(
        [p.to_vector() for p in req.positions], req.timestamp_ns, req.timeout_s
    )
    return ObserveResponse(ids=ids, removed=removed)


@router.get("", response_model=list[SpeakerSchema])
def list_speakers(session: MeasurementSession = Depends(get_session)) -> list[SpeakerSchema]:
    return [
        SpeakerSchema.from_tracked(p, session.local_position(p.position))
        for p in session.speakers()
    ]


@router.delete("")
def clear_speakers(session: MeasurementSession = Depends(get_session)) -> dict[str, str]:
    session.reset_speakers()
    return {"status": "cleared"}
