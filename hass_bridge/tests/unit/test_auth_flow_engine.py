"""
Unit tests for the login flow state machine.
"""

import asyncio
import logging

import pytest

from hass_bridge.core.exceptions import InvalidCredentials, InvalidGrant, UnknownFlow
from hass_bridge.core.session_store import SESSION_TTL_MS
from hass_bridge.core.state import CLIENTS_STATE, MemoryStatusStore
from hass_bridge.models import FlowState, LoginCredentials
from hass_bridge.services.auth_flow import AuthFlowEngine


def creds(username=None, password=None) -> LoginCredentials:
    return LoginCredentials(username=username, password=password)


class FailingStatusStore(MemoryStatusStore):
    async def set_state(self, key, value):
        raise RuntimeError("status store offline")


class SlowFirstWriteStatusStore(MemoryStatusStore):
    """Holds the first write back so a later one could overtake it."""

    def __init__(self):
        super().__init__()
        self.writes = []

    async def set_state(self, key, value):
        self.writes.append(value)
        if len(self.writes) == 1:
            await asyncio.sleep(0.2)
        await super().set_state(key, value)


@pytest.mark.unit
class TestProvidersAndBegin:
    def test_single_homeassistant_provider(self, engine):
        providers = [p.model_dump() for p in engine.list_providers()]
        assert providers == [{"name": "Home Assistant Local", "type": "homeassistant", "id": None}]

    def test_begin_flow_returns_login_form(self, engine, session_store):
        form = engine.begin_flow().model_dump()

        assert form["type"] == "form"
        assert form["step_id"] == "init"
        assert form["handler"] == ["homeassistant", None]
        assert form["errors"] is None
        assert form["description_placeholders"] is None
        assert [field["name"] for field in form["data_schema"]] == ["username", "password"]
        assert all(field["required"] and field["type"] == "string" for field in form["data_schema"])
        assert session_store.get(form["flow_id"]) == {"state": FlowState.FLOW_INIT.value}

    def test_flow_ids_are_unique(self, engine):
        assert engine.begin_flow().flow_id != engine.begin_flow().flow_id


@pytest.mark.unit
class TestSubmitFlow:
    @pytest.mark.parametrize("flow_id", ["", "unknown", "00000000-0000-0000-0000-000000000000"])
    async def test_unknown_flow(self, engine, flow_id):
        with pytest.raises(UnknownFlow) as exc_info:
            await engine.submit_flow(flow_id, creds("admin", "x"))
        assert exc_info.value.flow_id == flow_id

    async def test_any_credentials_accepted_without_auth(self, engine, session_store):
        flow_id = engine.begin_flow().flow_id

        entry = (await engine.submit_flow(flow_id, creds())).model_dump()

        assert entry["type"] == "create_entry"
        assert entry["version"] == 1
        assert entry["flow_id"] == flow_id
        assert entry["handler"] == ["homeassistant", None]
        assert entry["description"] is None
        assert flow_id not in session_store
        assert session_store.get(entry["result"]) == {
            "state": FlowState.CODE_ISSUED.value,
            "flow_id": flow_id,
        }

    async def test_flow_cannot_be_submitted_twice(self, engine):
        flow_id = engine.begin_flow().flow_id
        await engine.submit_flow(flow_id, creds())

        with pytest.raises(UnknownFlow):
            await engine.submit_flow(flow_id, creds())

    async def test_code_is_not_a_flow_id(self, engine):
        flow_id = engine.begin_flow().flow_id
        code = (await engine.submit_flow(flow_id, creds())).result

        with pytest.raises(UnknownFlow):
            await engine.submit_flow(code, creds())

    async def test_wrong_credentials_keep_flow_open(self, auth_engine, session_store):
        flow_id = auth_engine.begin_flow().flow_id

        with pytest.raises(InvalidCredentials) as exc_info:
            await auth_engine.submit_flow(flow_id, creds("admin", "wrong"))

        form = exc_info.value.form
        assert form["type"] == "form"
        assert form["flow_id"] == flow_id
        assert form["errors"] == {"base": "invalid_auth"}
        assert session_store.get(flow_id) == {"state": FlowState.FLOW_INIT.value}

        entry = await auth_engine.submit_flow(flow_id, creds("admin", "x"))
        assert entry.type == "create_entry"

    @pytest.mark.parametrize(
        "username,password",
        [("admin", ""), ("Admin", "x"), (None, "x"), ("admin", None), ("admin", "x ")],
    )
    async def test_credentials_must_match_exactly(self, auth_engine, username, password):
        flow_id = auth_engine.begin_flow().flow_id
        with pytest.raises(InvalidCredentials):
            await auth_engine.submit_flow(flow_id, creds(username, password))


@pytest.mark.unit
class TestExchangeToken:
    async def _code(self, engine) -> str:
        flow_id = engine.begin_flow().flow_id
        return (await engine.submit_flow(flow_id, creds())).result

    async def test_code_exchanged_once(self, engine, session_store, client_counter):
        code = await self._code(engine)

        tokens = await engine.exchange_token("authorization_code", code=code)

        assert tokens.token_type == "Bearer"
        assert tokens.expires_in == 1800
        assert tokens.access_token and tokens.refresh_token
        assert tokens.access_token != tokens.refresh_token
        assert code not in session_store
        assert client_counter.value == 1

        with pytest.raises(InvalidGrant):
            await engine.exchange_token("authorization_code", code=code)
        assert client_counter.value == 1

    async def test_client_count_pushed_to_status_store(self, engine, status_store):
        await engine.exchange_token("authorization_code", code=await self._code(engine))
        await engine.exchange_token("authorization_code", code=await self._code(engine))
        await engine.drain()

        assert status_store.get_state(CLIENTS_STATE) == 2

    async def test_slow_write_does_not_leave_stale_client_count(self, session_store, client_counter):
        status_store = SlowFirstWriteStatusStore()
        engine = AuthFlowEngine(session_store, client_counter, status_store)
        first, second = await self._code(engine), await self._code(engine)

        await engine.exchange_token("authorization_code", code=first)
        # let the first write start and stall
        await asyncio.sleep(0)
        await engine.exchange_token("authorization_code", code=second)
        await engine.drain()

        assert client_counter.value == 2
        assert status_store.writes == [1, 2]
        assert status_store.get_state(CLIENTS_STATE) == 2

    async def test_status_store_failure_is_logged_not_raised(self, session_store, client_counter, caplog):
        engine = AuthFlowEngine(session_store, client_counter, FailingStatusStore())
        code = await self._code(engine)

        with caplog.at_level(logging.ERROR):
            tokens = await engine.exchange_token("authorization_code", code=code)
            await engine.drain()

        assert tokens.access_token
        assert "status store offline" in caplog.text

    async def test_flow_id_is_not_a_code(self, engine, session_store):
        flow_id = engine.begin_flow().flow_id

        with pytest.raises(InvalidGrant):
            await engine.exchange_token("authorization_code", code=flow_id)
        assert flow_id in session_store

    @pytest.mark.parametrize("code", [None, "", "made-up"])
    async def test_unknown_code(self, engine, code):
        with pytest.raises(InvalidGrant) as exc_info:
            await engine.exchange_token("authorization_code", code=code)
        assert exc_info.value.grant_type == "authorization_code"

    async def test_expired_code_usable_until_swept(self, engine, session_store, clock):
        code = await self._code(engine)
        clock.advance(SESSION_TTL_MS + 1)

        tokens = await engine.exchange_token("authorization_code", code=code)
        assert tokens.access_token

    async def test_swept_code_rejected(self, engine, session_store, clock):
        code = await self._code(engine)
        clock.advance(SESSION_TTL_MS + 1)
        session_store.sweep()

        with pytest.raises(InvalidGrant):
            await engine.exchange_token("authorization_code", code=code)

    @pytest.mark.parametrize("refresh_token", [None, "", "anything", "not-issued-by-us"])
    async def test_refresh_always_succeeds(self, engine, refresh_token, client_counter):
        tokens = await engine.exchange_token("refresh_token", refresh_token=refresh_token)

        assert tokens.expires_in == 1800
        assert tokens.token_type == "Bearer"
        assert tokens.refresh_token is None
        assert client_counter.value == 0

    async def test_refresh_returns_fresh_token(self, engine):
        first = await engine.exchange_token("refresh_token", refresh_token="r")
        second = await engine.exchange_token("refresh_token", refresh_token="r")
        assert first.access_token != second.access_token

    @pytest.mark.parametrize("grant_type", [None, "", "password", "client_credentials"])
    async def test_unsupported_grant(self, engine, grant_type):
        with pytest.raises(InvalidGrant) as exc_info:
            await engine.exchange_token(grant_type, code="x")
        assert exc_info.value.error == "invalid_request"
        assert exc_info.value.error_description == "Invalid or expired code"

    async def test_custom_token_lifetime(self, session_store, client_counter, status_store):
        engine = AuthFlowEngine(session_store, client_counter, status_store, token_expires_in=60)
        tokens = await engine.exchange_token("refresh_token")
        assert tokens.expires_in == 60
