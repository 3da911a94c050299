"""In-process state for settings and the measurement session.

FastAPI routes use this module to access (and hot-reload) the singleton
`MeasurementSession` instance.
"""

from __future__ import annotations

from threading import RLock

from roomscan.api.services.session import MeasurementSession
from roomscan.core.config.settings import RoomScanSettings, load_settings, settings_to_dict

_settings: RoomScanSettings | None = None
_session: MeasurementSession | None = None
_lock = RLock()


def get_settings() -> RoomScanSettings:
    """Return cached settings, loading them on first use."""

    global _settings
    with _lock:
        if _settings is None:
            _settings = load_settings()
    return _settings


def reload_settings(data: dict | None = None) -> RoomScanSettings:
    """Reload settings and start a fresh session.

    Args:
        data: Optional patch dict merged into the current settings. Without
            a patch, settings are reloaded from YAML and the environment.
    """

    global _settings, _session
    with _lock:
        if data:
            current = settings_to_dict(get_settings())
            _settings = RoomScanSettings(**{**current, **data})
        else:
            _settings = load_settings()
        _session = None
    return _settings


def get_session() -> MeasurementSession:
    """Return the singleton session, creating it if needed."""

    global _session
    with _lock:
        if _session is None:
            _session = MeasurementSession(get_settings())
    return _session


def reset_session() -> None:
    """Discard the singleton session (if present)."""

    global _session
    with _lock:
        _session = None
