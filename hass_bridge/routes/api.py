"""
Home Assistant REST API endpoints the display probes.

Everything here is static: the display only checks that the answers have
the right shape before it starts the login flow.
"""

import logging

from fastapi import APIRouter, Request

from ..core.config import BridgeSettings
from ..services.announcer import HA_VERSION
from ..utils.network import build_base_url

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api")

NULL_UUID = "00000000-0000-0000-0000-000000000000"


def _settings(request: Request) -> BridgeSettings:
    return request.app.state.settings


# Trailing slash matters: the display checks exactly /api/ during discovery
@router.get("/")
async def api_running():
    return {"message": "API running."}


@router.get("/config")
async def api_config(request: Request):
    return {
        "components": ["http", "api", "frontend", "homeassistant"],
        "config_dir": "/config",
        "elevation": 0,
        "latitude": 0,
        "longitude": 0,
        "location_name": _settings(request).service_name,
        "time_zone": "UTC",
        "unit_system": {"length": "km", "mass": "g", "temperature": "°C", "volume": "L"},
        "version": HA_VERSION,
        "whitelist_external_dirs": [],
    }


@router.get("/discovery_info")
async def discovery_info(request: Request):
    settings = _settings(request)
    base_url = build_base_url(request.url.hostname or "localhost", settings.port)
    return {
        "base_url": base_url,
        "external_url": None,
        "internal_url": base_url,
        "location_name": settings.service_name,
        # Always true so the display runs the login flow
        "requires_api_password": True,
        "uuid": NULL_UUID,
        "version": HA_VERSION,
    }


@router.get("/states")
async def states():
    return []


@router.get("/services")
async def services():
    return []


@router.get("/events")
async def events():
    return []


@router.get("/error_log")
async def error_log():
    return ""
