"""Configuration endpoints."""

from __future__ import annotations

from fastapi import APIRouter, HTTPException
from pydantic import ValidationError

from roomscan.api.schemas.models import ConfigSchema
from roomscan.api.services.state import get_settings, reload_settings
from roomscan.core.config.settings import settings_to_dict

router = APIRouter()


@router.get("/config", response_model=ConfigSchema)
def get_config() -> ConfigSchema:
    """Return the current effective configuration."""

    return ConfigSchema(**settings_to_dict(get_settings()))


@router.post("/config", response_model=ConfigSchema)
def update_config(cfg: ConfigSchema) -> ConfigSchema:
    """Apply the sent fields to the in-memory settings and start a fresh session.

    Persist configuration via `RSC_` environment variables or the YAML file.
    """

    try:
        settings = reload_settings(cfg.model_dump(exclude_unset=True))
    except ValidationError as exc:
        detail = exc.errors(include_url=False, include_context=False)
        raise HTTPException(status_code=422, detail=detail) from None
    return ConfigSchema(**settings_to_dict(settings))
