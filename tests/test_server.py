"""Tests for the MCP server, health tool and CLI."""

import sys
from unittest.mock import AsyncMock, patch

import pytest

from trainy_mcp import __version__, server
from trainy_mcp.models.providers import ProviderId
from trainy_mcp.providers.base import ProviderRegistry
from trainy_mcp.server import health, main
from trainy_mcp.services.journey_service import reset_service


@pytest.fixture(autouse=True)
def fresh_service():
    reset_service()
    yield
    reset_service()


def test_health_returns_ok_status():
    """Health check should return status ok."""
    response = health()
    assert response.status == "ok"


def test_health_returns_version():
    """Health check should return the current version."""
    response = health()
    assert response.version == __version__


def test_health_returns_timestamp():
    """Health check should return a valid ISO timestamp."""
    response = health()
    assert "T" in response.timestamp


def test_health_lists_active_providers():
    """All shipped adapters are registered by default."""
    response = health()
    assert response.providers == [ProviderId.NS.value, ProviderId.DB.value, ProviderId.SBB.value]


def test_health_with_no_providers():
    with patch("trainy_mcp.services.journey_service.build_default_providers", return_value=ProviderRegistry()):
        response = health()
    assert response.providers == []


class TestCLI:
    """Tests for the command line entry point."""

    def test_default_runs_server(self):
        with patch.object(sys, "argv", ["trainy-mcp"]), patch.object(server.mcp, "run") as run:
            main()
        run.assert_called_once_with()

    def test_stations_command(self):
        with (
            patch.object(sys, "argv", ["trainy-mcp", "stations", "zurich"]),
            patch.object(server, "run_stations", new=AsyncMock()) as run_stations,
        ):
            main()
        run_stations.assert_awaited_once_with("zurich")

    def test_search_command(self):
        argv = ["trainy-mcp", "search", "amsterdam-centraal", "zurich-hb", "--at", "2026-01-17T10:00"]
        with (
            patch.object(sys, "argv", argv),
            patch.object(server, "run_search", new=AsyncMock()) as run_search,
        ):
            main()
        run_search.assert_awaited_once_with("amsterdam-centraal", "zurich-hb", "2026-01-17T10:00")

    def test_search_bad_time_exits(self):
        argv = ["trainy-mcp", "search", "amsterdam-centraal", "zurich-hb", "--at", "later"]
        with patch.object(sys, "argv", argv), pytest.raises(SystemExit) as exc_info:
            main()
        assert exc_info.value.code == 2
