"""
Pydantic models for the Home Assistant login flow.
"""

from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

HANDLER = ["homeassistant", None]


class FlowState(str, Enum):
    """Lifecycle of a login flow. Only FLOW_INIT and CODE_ISSUED are ever stored."""

    FLOW_INIT = "flow_init"
    FLOW_SUBMITTED = "flow_submitted"
    CODE_ISSUED = "code_issued"
    TOKEN_ISSUED = "token_issued"


class SchemaField(BaseModel):
    """One field of a login form"""
    name: str
    required: bool = True
    type: str = "string"


LOGIN_SCHEMA = [
    SchemaField(name="username"),
    SchemaField(name="password"),
]


class AuthProvider(BaseModel):
    """Entry returned by /auth/providers"""
    name: str = "Home Assistant Local"
    type: str = "homeassistant"
    id: Optional[str] = None


class LoginCredentials(BaseModel):
    """Submitted credentials. Missing fields never match a configured password."""
    username: Optional[str] = None
    password: Optional[str] = None
    client_id: Optional[str] = None


class FlowForm(BaseModel):
    """Form step returned when a flow starts or a submission is rejected"""
    type: str = "form"
    flow_id: str
    handler: List[Optional[str]] = Field(default_factory=lambda: list(HANDLER))
    step_id: str = "init"
    data_schema: List[SchemaField] = Field(default_factory=lambda: list(LOGIN_SCHEMA))
    description_placeholders: Optional[Dict[str, Any]] = None
    errors: Optional[Dict[str, str]] = None


class FlowAbort(BaseModel):
    """Returned for a flow id the bridge does not know"""
    type: str = "abort"
    flow_id: str
    reason: str = "unknown_flow"


class FlowCreateEntry(BaseModel):
    """Final flow step carrying the authorization code in ``result``"""
    version: int = 1
    type: str = "create_entry"
    flow_id: str
    handler: List[Optional[str]] = Field(default_factory=lambda: list(HANDLER))
    result: str
    description: Optional[str] = None
    description_placeholders: Optional[Dict[str, Any]] = None
