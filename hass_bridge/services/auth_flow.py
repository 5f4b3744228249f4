"""
Home Assistant login flow emulation.

The display negotiates access in three steps:

1. ``POST /auth/login_flow`` opens a flow and receives a username/password form.
2. ``POST /auth/login_flow/{flow_id}`` submits credentials and receives a
   one-time authorization code.
3. ``POST /auth/token`` exchanges the code for an access/refresh token pair.

Tokens are opaque random strings. Nothing checks them afterwards; the bridge
only needs the display to finish the handshake before it follows the redirect.
"""

import asyncio
import logging
import secrets
import uuid
from typing import Any, Optional

from ..core.exceptions import InvalidCredentials, InvalidGrant, UnknownFlow
from ..core.session_store import SessionStore
from ..core.state import CLIENTS_STATE, ClientCounter, StatusStore
from ..models import AuthProvider, FlowCreateEntry, FlowForm, FlowState, LoginCredentials, TokenResponse
from ..utils.metrics import record_login_flow, record_token_exchange
from ..utils.security_mask import mask_sensitive_id

logger = logging.getLogger(__name__)

TOKEN_EXPIRES_IN = 1800

GRANT_AUTHORIZATION_CODE = "authorization_code"
GRANT_REFRESH_TOKEN = "refresh_token"


class AuthFlowEngine:
    """
    State machine behind the /auth endpoints.

    Flows and codes live in the shared SessionStore tagged with their
    FlowState. A flow id is deleted when it turns into a code, and a code
    is deleted when it is exchanged, so neither can be replayed.
    """

    def __init__(
        self,
        sessions: SessionStore,
        clients: ClientCounter,
        status_store: StatusStore,
        auth_required: bool = False,
        username: str = "admin",
        password: str = "",
        token_expires_in: int = TOKEN_EXPIRES_IN,
    ):
        self.sessions = sessions
        self.clients = clients
        self.status_store = status_store
        self.auth_required = auth_required
        self.username = username
        self.password = password
        self.token_expires_in = token_expires_in
        self._background_tasks: set[asyncio.Task] = set()
        self._notify_lock = asyncio.Lock()

    # --- Step 0 ---

    def list_providers(self) -> list[AuthProvider]:
        # Always the homeassistant provider, the display only knows the two-step form
        return [AuthProvider()]

    # --- Step 1 ---

    def begin_flow(self) -> FlowForm:
        flow_id = str(uuid.uuid4())
        self.sessions.create(flow_id, {"state": FlowState.FLOW_INIT.value})
        logger.debug(f"Auth flow created: {mask_sensitive_id(flow_id)}")
        record_login_flow("started")
        return FlowForm(flow_id=flow_id)

    # --- Step 2 ---

    def check_credentials(self, credentials: LoginCredentials) -> bool:
        if not self.auth_required:
            return True
        return credentials.username == self.username and credentials.password == self.password

    async def submit_flow(self, flow_id: str, credentials: LoginCredentials) -> FlowCreateEntry:
        """
        Validate submitted credentials and turn the flow into a code.

        Raises:
            UnknownFlow: flow id not in the store
            InvalidCredentials: auth is required and the credentials do not match;
                the flow stays open so the display can retry
        """
        flow = self.sessions.get(flow_id)
        if flow is None or flow.get("state") != FlowState.FLOW_INIT.value:
            logger.warning(f"Unknown flow_id: {mask_sensitive_id(flow_id)}")
            record_login_flow("unknown_flow")
            raise UnknownFlow(flow_id)

        logger.debug(f"Flow {mask_sensitive_id(flow_id)} -> {FlowState.FLOW_SUBMITTED.value}")

        if not self.check_credentials(credentials):
            logger.warning("Invalid credentials")
            record_login_flow("invalid_auth")
            form = FlowForm(flow_id=flow_id, errors={"base": "invalid_auth"})
            raise InvalidCredentials(flow_id, form.model_dump())

        # Another request may have completed the same flow meanwhile
        if self.sessions.pop(flow_id) is None:
            logger.warning(f"Flow {mask_sensitive_id(flow_id)} completed concurrently")
            record_login_flow("unknown_flow")
            raise UnknownFlow(flow_id)

        code = str(uuid.uuid4())
        self.sessions.create(code, {"state": FlowState.CODE_ISSUED.value, "flow_id": flow_id})
        logger.info("Auth flow completed, code issued")
        record_login_flow("code_issued")

        return FlowCreateEntry(flow_id=flow_id, result=code)

    # --- Step 3 ---

    async def exchange_token(
        self,
        grant_type: Optional[str],
        code: Optional[str] = None,
        refresh_token: Optional[str] = None,
    ) -> TokenResponse:
        """
        Issue tokens for an authorization code or a refresh request.

        Refresh requests are never validated; any refresh token yields a new
        access token.

        Raises:
            InvalidGrant: unsupported grant type, or a code that is unknown
                or already used
        """
        if grant_type == GRANT_AUTHORIZATION_CODE:
            return await self._exchange_code(code)

        if grant_type == GRANT_REFRESH_TOKEN:
            logger.debug(f"Refreshing access token ({mask_sensitive_id(refresh_token)})")
            record_token_exchange(grant_type, True)
            return TokenResponse(access_token=self._new_token(), expires_in=self.token_expires_in)

        logger.warning(f"Token exchange failed: grant_type={grant_type}")
        record_token_exchange(grant_type, False)
        raise InvalidGrant(grant_type)

    async def _exchange_code(self, code: Optional[str]) -> TokenResponse:
        payload = self._consume_code(code) if code else None
        if payload is None:
            logger.warning(f"Token exchange failed: unknown code {mask_sensitive_id(code)}")
            record_token_exchange(GRANT_AUTHORIZATION_CODE, False)
            raise InvalidGrant(GRANT_AUTHORIZATION_CODE)

        self.clients.increment()
        self._notify_clients()
        logger.info("Display authenticated successfully")
        logger.debug(f"Flow {mask_sensitive_id(payload.get('flow_id'))} -> {FlowState.TOKEN_ISSUED.value}")
        record_token_exchange(GRANT_AUTHORIZATION_CODE, True)

        return TokenResponse(
            access_token=self._new_token(),
            refresh_token=self._new_token(),
            expires_in=self.token_expires_in,
        )

    def _consume_code(self, code: str) -> Optional[dict[str, Any]]:
        payload = self.sessions.get(code)
        if payload is None or payload.get("state") != FlowState.CODE_ISSUED.value:
            return None
        # pop() loses the race if the same code is exchanged twice concurrently
        return self.sessions.pop(code)

    @staticmethod
    def _new_token() -> str:
        return secrets.token_urlsafe(32)

    # --- Status notification ---

    def _notify_clients(self) -> None:
        """Push the client count to the status store without waiting for it."""
        task = asyncio.create_task(self._set_clients_state())
        self._background_tasks.add(task)
        task.add_done_callback(self._background_tasks.discard)

    async def _set_clients_state(self) -> None:
        # One write at a time, counter read at write time
        async with self._notify_lock:
            try:
                await self.status_store.set_state(CLIENTS_STATE, self.clients.value)
            except Exception as e:
                logger.error(f"Failed to update {CLIENTS_STATE}: {e}")

    async def drain(self) -> None:
        """Wait for pending status notifications. Used on shutdown and in tests."""
        if self._background_tasks:
            await asyncio.gather(*list(self._background_tasks), return_exceptions=True)
