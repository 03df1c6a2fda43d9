"""Tests for commdash.config — YAML configuration and directory layout."""

from __future__ import annotations

import pytest

from commdash.config import CommdashConfig, ConfigPaths, SourceConfig, config_home
from commdash.errors import ConfigError


class TestConfigPaths:
    def test_respects_xdg_config_home(self, _isolated_config_home):
        assert config_home() == _isolated_config_home / "commdash"
        assert CommdashConfig.get_default_path() == _isolated_config_home / "commdash" / "config.yaml"

    def test_ensure_creates_layout(self, tmp_path):
        paths = ConfigPaths(tmp_path / "cd").ensure()
        for d in (paths.db_dir, paths.models_dir, paths.cache_dir, paths.logs_dir):
            assert d.is_dir()
        assert paths.database == tmp_path / "cd" / "db" / "commdash.db"


class TestLoad:
    def test_missing_file_gives_defaults(self, tmp_path):
        config = CommdashConfig.load(tmp_path / "nope.yaml")
        assert config.fetch_timeout == 30.0
        assert config.log_level == "INFO"
        assert config.enabled_sources() == ["slack", "gmail", "linear", "github", "calendar"]

    def test_empty_file_gives_defaults(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("")
        assert CommdashConfig.load(path).sources == {}

    def test_full_file(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text(
            "database: ':memory:'\n"
            "fetch_timeout: 5\n"
            "log_level: debug\n"
            "sources:\n"
            "  slack:\n"
            "    token: xoxb-1\n"
            "    headers: {X-Team: core}\n"
            "  gmail:\n"
            "    enabled: false\n"
            "  calendar:\n"
            "    command: ./cal.sh\n"
            "    environment: {TZ: UTC}\n"
        )
        config = CommdashConfig.load(path)
        assert config.database_path == ":memory:"
        assert config.fetch_timeout == 5.0
        assert config.log_level == "DEBUG"
        assert config.source("slack").token == "xoxb-1"
        assert config.source("slack").headers == {"X-Team": "core"}
        assert not config.is_enabled("gmail")
        assert config.is_enabled("linear")
        assert config.source("calendar").environment == {"TZ": "UTC"}

    @pytest.mark.parametrize(
        "text",
        [
            "sources: [1, 2]\n",
            "fetch_timeout: -1\n",
            "fetch_timeout: soon\n",
            "sources:\n  myspace: {}\n",
            "sources:\n  slack:\n    enabled: maybe\n",
            "sources:\n  slack:\n    tokn: x\n",
            "- just\n- a list\n",
        ],
    )
    def test_invalid_values(self, tmp_path, text):
        path = tmp_path / "config.yaml"
        path.write_text(text)
        with pytest.raises(ConfigError):
            CommdashConfig.load(path)

    def test_invalid_yaml(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("sources: {slack: [\n")
        with pytest.raises(ConfigError, match="Invalid YAML"):
            CommdashConfig.load(path)

    def test_default_database_under_config_home(self, _isolated_config_home):
        assert CommdashConfig().database_path == str(
            _isolated_config_home / "commdash" / "db" / "commdash.db"
        )


class TestSave:
    def test_save_and_reload(self, tmp_path):
        config = CommdashConfig(
            fetch_timeout=12.0,
            sources={
                "linear": SourceConfig(enabled=False, query="{ issues { id } }"),
                "calendar": SourceConfig(command="cal", environment={"TZ": "UTC"}),
            },
        )
        path = config.save(tmp_path / "sub" / "config.yaml")
        loaded = CommdashConfig.load(path)
        assert loaded.fetch_timeout == 12.0
        assert not loaded.is_enabled("linear")
        assert loaded.source("linear").query == "{ issues { id } }"
        assert loaded.source("calendar").environment == {"TZ": "UTC"}

    def test_default_path(self, _isolated_config_home):
        path = CommdashConfig().save()
        assert path == _isolated_config_home / "commdash" / "config.yaml"
        assert path.exists()
