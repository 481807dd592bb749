"""Tests for provider selection."""

import logging

from tests.fakes import FakeProvider
from trainy_mcp.data.station_registry import registered_stations
from trainy_mcp.models.providers import ProviderId
from trainy_mcp.models.stations import Station
from trainy_mcp.providers.base import ProviderRegistry
from trainy_mcp.services.provider_selector import select_providers

STATIONS = {station.id: station for station in registered_stations()}

NS = FakeProvider(ProviderId.NS, "NL")
SBB = FakeProvider(ProviderId.SBB, "CH")


class TestSelectProviders:
    """Tests for the authority + known-id rule."""

    def test_origin_and_destination_authorities(self) -> None:
        selection = select_providers(
            STATIONS["amsterdam-centraal"], STATIONS["zurich-hb"], ProviderRegistry([SBB, NS])
        )
        assert selection.ids == [ProviderId.NS, ProviderId.SBB]
        assert selection.skipped == {}

    def test_same_country_deduplicated(self) -> None:
        selection = select_providers(
            STATIONS["amsterdam-centraal"], STATIONS["utrecht-centraal"], ProviderRegistry([NS, SBB])
        )
        assert selection.ids == [ProviderId.NS]

    def test_belgium_served_by_ns(self) -> None:
        selection = select_providers(
            STATIONS["amsterdam-centraal"], STATIONS["bruxelles-midi"], ProviderRegistry([NS])
        )
        assert selection.ids == [ProviderId.NS]

    def test_missing_adapter_is_skipped_with_reason(self, caplog) -> None:
        with caplog.at_level(logging.INFO):
            selection = select_providers(
                STATIONS["amsterdam-centraal"], STATIONS["koln-hbf"], ProviderRegistry([NS, SBB])
            )
        assert selection.ids == [ProviderId.NS]
        assert selection.skipped == {ProviderId.DB: "no adapter registered"}
        assert "Skipping provider DB" in caplog.text

    def test_missing_station_mapping_is_skipped(self, caplog) -> None:
        """SBB knows Zürich but not Utrecht's SBB id here, so it is skipped."""
        with caplog.at_level(logging.INFO):
            selection = select_providers(
                STATIONS["utrecht-centraal"], STATIONS["zurich-hb"], ProviderRegistry([NS, SBB])
            )
        assert selection.ids == [ProviderId.NS]
        assert selection.skipped[ProviderId.SBB] == "no station id for origin utrecht-centraal"
        assert "utrecht-centraal" in caplog.text

    def test_no_authority_for_country(self) -> None:
        nowhere = Station(id="x", display_name="Nowhere", country="IT")
        selection = select_providers(nowhere, STATIONS["zurich-hb"], ProviderRegistry([SBB]))
        assert selection.selected == []
        assert selection.skipped == {ProviderId.SBB: "no station id for origin x"}

    def test_no_providers(self) -> None:
        selection = select_providers(
            STATIONS["amsterdam-centraal"], STATIONS["zurich-hb"], ProviderRegistry()
        )
        assert selection.selected == []
        assert set(selection.skipped) == {ProviderId.NS, ProviderId.SBB}


class TestProviderRegistry:
    """Tests for looking adapters up by country."""

    def test_for_country_returns_authority(self) -> None:
        registry = ProviderRegistry([NS, SBB])
        assert registry.for_country("CH") is SBB
        assert registry.for_country("be") is NS

    def test_for_country_without_adapter(self) -> None:
        registry = ProviderRegistry([NS, SBB])
        assert registry.for_country("DE") is None
        assert registry.for_country("IT") is None
