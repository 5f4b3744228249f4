"""
Home Assistant auth endpoints: provider list, login flow and token exchange.

Failures raised by the flow engine are rendered by the exception handlers
registered in ``hass_bridge.server``.
"""

import logging

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from ..models import LoginCredentials, TokenRequest
from ..services.auth_flow import AuthFlowEngine
from ..utils.request_body import read_body

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth")


def _engine(request: Request) -> AuthFlowEngine:
    return request.app.state.auth_engine


def _string_fields(body: dict, model) -> dict:
    """Keep only the string-valued fields the model declares."""
    return {key: value for key, value in body.items() if key in model.model_fields and isinstance(value, str)}


@router.get("/providers")
async def providers(request: Request):
    return [provider.model_dump() for provider in _engine(request).list_providers()]


@router.post("/login_flow")
async def begin_login_flow(request: Request):
    return _engine(request).begin_flow().model_dump()


@router.post("/login_flow/{flow_id}")
async def submit_login_flow(flow_id: str, request: Request):
    body = await read_body(request)
    credentials = LoginCredentials(**_string_fields(body, LoginCredentials))
    entry = await _engine(request).submit_flow(flow_id, credentials)
    return entry.model_dump()


@router.post("/token")
async def token(request: Request):
    body = await read_body(request)
    token_request = TokenRequest(**_string_fields(body, TokenRequest))
    tokens = await _engine(request).exchange_token(
        token_request.grant_type,
        code=token_request.code,
        refresh_token=token_request.refresh_token,
    )
    return JSONResponse(content=tokens.model_dump(exclude_none=True))
