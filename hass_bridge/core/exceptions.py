"""
Exception hierarchy for the bridge.

Auth flow errors are raised by the flow engine and turned into structured
400 responses by the handlers registered in ``hass_bridge.server``.
"""

from typing import Any


class BridgeError(Exception):
    """Base class for all bridge errors."""


class BindFailure(BridgeError):
    """The listening port could not be bound. Fatal at startup."""

    def __init__(self, host: str, port: int, reason: str):
        self.host = host
        self.port = port
        self.reason = reason
        super().__init__(f"Cannot listen on {host}:{port}: {reason}")


class AuthFlowError(BridgeError):
    """Base class for login flow and token exchange failures."""

    status_code = 400


class UnknownFlow(AuthFlowError):
    """Submitted flow id was never issued or has already been swept."""

    def __init__(self, flow_id: str):
        self.flow_id = flow_id
        super().__init__(f"Unknown flow_id: {flow_id}")


class InvalidCredentials(AuthFlowError):
    """Credentials did not match. The flow stays open for another attempt."""

    def __init__(self, flow_id: str, form: dict[str, Any]):
        self.flow_id = flow_id
        self.form = form
        super().__init__(f"Invalid credentials for flow {flow_id}")


class InvalidGrant(AuthFlowError):
    """Token request with an unsupported grant type or an unknown code."""

    error = "invalid_request"
    error_description = "Invalid or expired code"

    def __init__(self, grant_type: str | None):
        self.grant_type = grant_type
        super().__init__(f"Token exchange failed: grant_type={grant_type}")


class AnnouncementUnavailable(BridgeError):
    """No local discovery responder is running."""
