"""Tests for configuration loading."""

from pathlib import Path

import pytest

from trainy_mcp.data.config import TrainyConfig, get_config


class TestTrainyConfig:
    """Tests for environment-driven settings."""

    def test_defaults(self, monkeypatch: pytest.MonkeyPatch, tmp_path: Path):
        monkeypatch.chdir(tmp_path)
        for name in (
            "NS_API_KEY",
            "NS_BASE_URL",
            "SBB_BASE_URL",
            "DB_CLIENT_ID",
            "DB_API_KEY",
            "TRAINY_PROVIDER_TIMEOUT",
            "TRAINY_DB_PATH",
        ):
            monkeypatch.delenv(name, raising=False)

        config = TrainyConfig()

        assert config.ns_api_key is None
        assert config.sbb_base_url == "https://transport.opendata.ch/v1"
        assert config.db_client_id is None
        assert config.db_api_key is None
        assert config.db_timetables_url.endswith("/timetables/v1")
        assert config.provider_timeout_seconds == 30.0
        assert config.db_path == Path("data/journeys.db")

    def test_reads_environment(self, monkeypatch: pytest.MonkeyPatch, tmp_path: Path):
        monkeypatch.setenv("NS_API_KEY", "secret")
        monkeypatch.setenv("DB_CLIENT_ID", "client")
        monkeypatch.setenv("DB_API_KEY", "key")
        monkeypatch.setenv("TRAINY_PROVIDER_TIMEOUT", "2.5")
        monkeypatch.setenv("TRAINY_DB_PATH", str(tmp_path / "x.db"))

        config = TrainyConfig()

        assert config.ns_api_key == "secret"
        assert config.db_client_id == "client"
        assert config.db_api_key == "key"
        assert config.provider_timeout_seconds == 2.5
        assert config.db_path == tmp_path / "x.db"

    def test_reads_env_file(self, monkeypatch: pytest.MonkeyPatch, tmp_path: Path):
        monkeypatch.chdir(tmp_path)
        monkeypatch.delenv("NS_API_KEY", raising=False)
        (tmp_path / ".env").write_text("NS_API_KEY=from-file\n")

        assert TrainyConfig().ns_api_key == "from-file"

    def test_get_config_is_cached(self):
        get_config.cache_clear()
        assert get_config() is get_config()
        get_config.cache_clear()
