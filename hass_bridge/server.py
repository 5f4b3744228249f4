"""
HTTP gateway emulating the Home Assistant API for wall displays.

``create_app`` wires the flow engine, session store and client counter into
a FastAPI application. The objects are attached to ``app.state`` so route
handlers share them without module globals.
"""

import logging
import time

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from . import __version__
from .core.config import BridgeSettings
from .core.exceptions import InvalidCredentials, InvalidGrant, UnknownFlow
from .core.session_store import SessionStore
from .core.state import ClientCounter, MemoryStatusStore, StatusStore
from .models import FlowAbort, TokenErrorResponse
from .routes.api import router as api_router
from .routes.auth import router as auth_router
from .routes.frontend import router as frontend_router
from .services.auth_flow import AuthFlowEngine
from .utils.metrics import record_http_request
from .utils.security_mask import anonymize_ip

logger = logging.getLogger(__name__)


def create_app(
    settings: BridgeSettings,
    sessions: SessionStore | None = None,
    clients: ClientCounter | None = None,
    status_store: StatusStore | None = None,
) -> FastAPI:
    """
    Build the gateway application.

    Args:
        settings: Bridge configuration
        sessions: Store for flows and codes, a fresh one when omitted
        clients: Authenticated display counter
        status_store: Receives info.clients updates

    Returns:
        Configured FastAPI app
    """
    app = FastAPI(
        title="Home Assistant Bridge",
        description="Home Assistant API emulation for wall displays",
        version=__version__,
        docs_url=None,
        redoc_url=None,
        openapi_url=None,
    )

    sessions = sessions if sessions is not None else SessionStore(ttl_ms=settings.session_ttl_seconds * 1000)
    clients = clients if clients is not None else ClientCounter()
    status_store = status_store if status_store is not None else MemoryStatusStore()

    app.state.settings = settings
    app.state.sessions = sessions
    app.state.clients = clients
    app.state.status_store = status_store
    app.state.auth_engine = AuthFlowEngine(
        sessions=sessions,
        clients=clients,
        status_store=status_store,
        auth_required=settings.auth_required,
        username=settings.username,
        password=settings.password,
        token_expires_in=settings.token_expires_in,
    )

    _add_request_logging(app)
    _add_exception_handlers(app)

    app.include_router(api_router)
    app.include_router(auth_router)
    app.include_router(frontend_router)

    return app


def _add_request_logging(app: FastAPI) -> None:
    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        # debug level keeps production logs clean
        client_host = request.client.host if request.client else None
        logger.debug(f"{request.method} {request.url.path} from {anonymize_ip(client_host)}")

        start = time.perf_counter()
        response = await call_next(request)
        duration = time.perf_counter() - start

        route = request.scope.get("route")
        route_path = getattr(route, "path", "unmatched")
        record_http_request(request.method, route_path, response.status_code, duration)
        return response


def _add_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(UnknownFlow)
    async def unknown_flow_handler(request: Request, exc: UnknownFlow):
        return JSONResponse(status_code=exc.status_code, content=FlowAbort(flow_id=exc.flow_id).model_dump())

    @app.exception_handler(InvalidCredentials)
    async def invalid_credentials_handler(request: Request, exc: InvalidCredentials):
        return JSONResponse(status_code=exc.status_code, content=exc.form)

    @app.exception_handler(InvalidGrant)
    async def invalid_grant_handler(request: Request, exc: InvalidGrant):
        body = TokenErrorResponse(error=exc.error, error_description=exc.error_description)
        return JSONResponse(status_code=exc.status_code, content=body.model_dump())

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        # Unknown paths and known paths with the wrong method both read as "not found" to the display
        if exc.status_code in (404, 405):
            logger.debug(f"404: {request.method} {request.url.path}")
            return JSONResponse(status_code=404, content={"error": "Not Found", "path": request.url.path})
        return JSONResponse(status_code=exc.status_code, content={"error": str(exc.detail)})

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(request: Request, exc: Exception):
        logger.error(f"Unhandled error on {request.method} {request.url.path}: {type(exc).__name__}: {exc}")
        return JSONResponse(status_code=500, content={"error": "Internal Server Error"})
