"""Detector output decoding endpoint."""

from __future__ import annotations

import numpy as np
from fastapi import APIRouter, HTTPException

from roomscan.api.schemas.models import BoxSchema, DecodeRequest, DecodeResponse
from roomscan.core.detectors.decoder import decode

router = APIRouter(prefix="/detections")


@router.post("/decode", response_model=DecodeResponse)
def decode_tensor(req: DecodeRequest) -> DecodeResponse:
    """Threshold and suppress a raw [C, N] detector output."""

    try:
        tensor = np.asarray(req.tensor, dtype=np.float32)
    except ValueError:
        raise HTTPException(status_code=422, detail="tensor must be a rectangular array") from None
    boxes = decode(tensor, req.labels, req.confidence, req.iou_threshold)
    return DecodeResponse(boxes=[BoxSchema.from_box(b) for b in boxes])
