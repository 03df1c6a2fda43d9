"""Tests for commdash.logs — logging setup and the JSONL refresh log."""

from __future__ import annotations

import logging

from commdash.logs import JsonlLogger, setup_logging
from commdash.sync.orchestrator import STATUS_SUCCESS, RefreshReport, SourceResult


class TestJsonlLogger:
    def test_log_and_tail(self, tmp_path):
        log = JsonlLogger(str(tmp_path / "logs" / "events.jsonl"))
        for i in range(5):
            log.log("tick", n=i)
        records = log.tail(2)
        assert [r["n"] for r in records] == [3, 4]
        assert all(r["event"] == "tick" and "ts" in r for r in records)

    def test_tail_missing_file(self, tmp_path):
        assert JsonlLogger(str(tmp_path / "none.jsonl")).tail() == []

    def test_tail_skips_partial_line(self, tmp_path):
        path = tmp_path / "events.jsonl"
        log = JsonlLogger(str(path))
        log.log("ok")
        with path.open("a", encoding="utf-8") as f:
            f.write('{"event": "trunc')
        assert [r["event"] for r in log.tail(10)] == ["ok"]

    def test_log_refresh(self, tmp_path):
        log = JsonlLogger(str(tmp_path / "refresh.jsonl"))
        report = RefreshReport(results={"slack": SourceResult("slack", STATUS_SUCCESS, 2)})
        log.log_refresh(report)
        (record,) = log.tail()
        assert record["event"] == "refresh"
        assert record["sources"]["slack"]["item_count"] == 2

    def test_secrets_masked(self, tmp_path):
        log = JsonlLogger(str(tmp_path / "e.jsonl"))
        log.log("cfg", headers={"Authorization": "Bearer x"}, token="abc", user="dana")
        (record,) = log.tail()
        assert record["headers"]["Authorization"] == "***"
        assert record["token"] == "***"
        assert record["user"] == "dana"


class TestSetupLogging:
    def test_level_by_name(self, tmp_path):
        setup_logging("debug", log_file=tmp_path / "logs" / "commdash.log")
        try:
            assert logging.getLogger().level == logging.DEBUG
            logging.getLogger("commdash.test").debug("hello")
            assert (tmp_path / "logs" / "commdash.log").exists()
        finally:
            setup_logging("WARNING")

    def test_unknown_level_falls_back_to_info(self):
        setup_logging("chatty")
        try:
            assert logging.getLogger().level == logging.INFO
        finally:
            setup_logging("WARNING")
