"""
Pydantic models for the token endpoint.
"""

from typing import Optional

from pydantic import BaseModel


class TokenRequest(BaseModel):
    """Body of POST /auth/token"""
    grant_type: Optional[str] = None
    code: Optional[str] = None
    refresh_token: Optional[str] = None
    client_id: Optional[str] = None


class TokenResponse(BaseModel):
    """Issued tokens. ``refresh_token`` is omitted on refresh grants."""
    access_token: str
    token_type: str = "Bearer"
    refresh_token: Optional[str] = None
    expires_in: int


class TokenErrorResponse(BaseModel):
    error: str
    error_description: Optional[str] = None
