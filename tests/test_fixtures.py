"""Tests for commdash.fixtures — fixture loading and transport installation."""

from __future__ import annotations

import pytest

from commdash.adapters import CalendarAdapter, SlackAdapter
from commdash.errors import EmptyFixtureError, FixtureDecodeError, FixtureNotFoundError
from commdash.fixtures import FIXTURE_FILES, FixtureLoader, install_fixtures
from commdash.transport.mock import MockHTTPClient, MockShellExecutor


class TestFixtureLoader:
    def test_load_json(self, loader):
        data = loader.load_json("slack_messages.json")
        assert len(data["messages"]) == 3

    def test_every_standard_fixture_exists(self, loader):
        for filename in FIXTURE_FILES.values():
            assert loader.exists(filename)

    def test_load_yaml(self, tmp_path):
        (tmp_path / "seed.yaml").write_text("items:\n  - id: 1\n    title: hi\n")
        assert FixtureLoader(tmp_path).load_yaml("seed.yaml") == {"items": [{"id": 1, "title": "hi"}]}

    def test_load_raw(self, loader):
        assert loader.load_raw("gmail_messages.json").lstrip().startswith("{")

    def test_not_found(self, tmp_path):
        with pytest.raises(FixtureNotFoundError) as exc:
            FixtureLoader(tmp_path).load_json("missing.json")
        assert exc.value.filename == "missing.json"

    def test_empty(self, tmp_path):
        (tmp_path / "empty.json").write_text("  \n")
        with pytest.raises(EmptyFixtureError):
            FixtureLoader(tmp_path).load_json("empty.json")

    def test_decode_errors(self, tmp_path):
        (tmp_path / "bad.json").write_text("{nope")
        (tmp_path / "bad.yaml").write_text("a: [1,\n")
        loader = FixtureLoader(tmp_path)
        with pytest.raises(FixtureDecodeError):
            loader.load_json("bad.json")
        with pytest.raises(FixtureDecodeError):
            loader.load_yaml("bad.yaml")


class TestInstallFixtures:
    def test_defaults(self, loader, http, shell):
        installed = install_fixtures(loader, http, shell)
        assert installed == ["slack", "gmail", "linear", "github", "calendar"]

    @pytest.mark.asyncio
    async def test_uses_adapter_endpoints(self, loader):
        http, shell = MockHTTPClient(), MockShellExecutor()
        adapters = [
            SlackAdapter(http, url="https://slack.test/history"),
            CalendarAdapter(shell, command="cal", working_directory="/srv"),
        ]
        assert install_fixtures(loader, http, shell, adapters) == ["slack", "calendar"]
        assert len(await adapters[0].collect()) == 3
        assert len(await adapters[1].collect()) == 2

    def test_missing_files_skipped(self, tmp_path, loader, http, shell):
        (tmp_path / "gmail_messages.json").write_text(loader.load_raw("gmail_messages.json"))
        assert install_fixtures(FixtureLoader(tmp_path), http, shell) == ["gmail"]
