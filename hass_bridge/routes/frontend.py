"""
Health check, web-app manifest and the redirect to the visualization.
"""

import logging

from fastapi import APIRouter, Request
from fastapi.responses import RedirectResponse

from ..core.config import BridgeSettings

logger = logging.getLogger(__name__)

router = APIRouter()

ADAPTER_NAME = "homeassistant-bridge"


def _settings(request: Request) -> BridgeSettings:
    return request.app.state.settings


@router.get("/health")
async def health_check(request: Request):
    settings = _settings(request)
    return {
        "status": "ok",
        "adapter": ADAPTER_NAME,
        "clients": request.app.state.clients.value,
        "config": {
            "mdns": settings.mdns_enabled,
            "auth": settings.auth_required,
            "redirectTo": settings.vis_url,
        },
    }


@router.get("/manifest.json")
async def manifest(request: Request):
    name = _settings(request).service_name
    return {
        "name": name,
        "short_name": name,
        "start_url": "/",
        "display": "standalone",
        "background_color": "#ffffff",
        "theme_color": "#03a9f4",
    }


@router.get("/")
async def redirect_to_vis(request: Request):
    # The display's WebView follows a 302 natively
    vis_url = _settings(request).vis_url
    logger.info(f"Redirecting to: {vis_url}")
    return RedirectResponse(url=vis_url, status_code=302)
