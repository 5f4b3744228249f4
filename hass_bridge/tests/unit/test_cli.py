"""
Unit tests for the command line entry point.
"""

import logging
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from hass_bridge.cli import main, parse_arguments, run_bridge
from hass_bridge.core.exceptions import BindFailure


def failing_service(error: Exception) -> MagicMock:
    service = MagicMock()
    service.start = AsyncMock(side_effect=error)
    service.stop = AsyncMock()
    return service


@pytest.mark.unit
class TestParseArguments:
    def test_defaults_are_unset(self):
        args = parse_arguments([])

        assert args.config is None
        assert args.port is None
        assert args.no_mdns is False

    def test_flags(self):
        args = parse_arguments(["--config", "bridge.yml", "--port", "9000", "--log-level", "debug", "--no-mdns"])

        assert args.config == "bridge.yml"
        assert args.port == 9000
        assert args.log_level == "debug"
        assert args.no_mdns is True


@pytest.mark.unit
class TestRunBridge:
    async def test_bind_failure_exits_with_error(self):
        service = failing_service(BindFailure("0.0.0.0", 8123, "Port 8123 is already in use!"))

        assert await run_bridge(service) == 1
        service.stop.assert_awaited_once()

    async def test_startup_timeout_stops_service(self, caplog):
        service = failing_service(TimeoutError())

        with caplog.at_level(logging.ERROR):
            assert await run_bridge(service) == 1

        service.stop.assert_awaited_once()
        assert "Bridge startup failed" in caplog.text


@pytest.mark.unit
class TestMain:
    def test_cli_flags_reach_settings(self):
        with patch("hass_bridge.cli.run_bridge", new=AsyncMock(return_value=0)) as run, patch(
            "hass_bridge.core.config.logging.basicConfig"
        ):
            assert main(["--port", "9100", "--no-mdns"]) == 0

        service = run.call_args.args[0]
        assert service.settings.port == 9100
        assert service.settings.mdns_enabled is False
