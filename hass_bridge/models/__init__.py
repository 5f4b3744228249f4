"""
Pydantic models for the bridge.
"""

from .login_flow import (
    LOGIN_SCHEMA,
    AuthProvider,
    FlowAbort,
    FlowCreateEntry,
    FlowForm,
    FlowState,
    LoginCredentials,
    SchemaField,
)

from .tokens import (
    TokenErrorResponse,
    TokenRequest,
    TokenResponse,
)

__all__ = [
    "LOGIN_SCHEMA",
    "AuthProvider",
    "FlowAbort",
    "FlowCreateEntry",
    "FlowForm",
    "FlowState",
    "LoginCredentials",
    "SchemaField",
    "TokenErrorResponse",
    "TokenRequest",
    "TokenResponse",
]
