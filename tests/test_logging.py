"""Unit tests for taskpanel.engine.logging — JSONL event log and entry builders."""

import json
import logging

from taskpanel.engine.config import LoggingConfig
from taskpanel.engine.logging import (
    EventLog,
    LogEntry,
    configure_logging,
    log_mutation_event,
    log_request,
    log_view_event,
)


class TestEntryBuilders:

    def test_log_request_success(self):
        entry = log_request("GET", "http://test/api/tasks/1", 200, 12.5, True, session_id="sess_1")
        assert entry.category == "requests"
        assert entry.data["event"] == "backend_request"
        assert entry.data["level"] == "INFO"
        assert entry.data["duration_ms"] == 12.5
        assert entry.data["session_id"] == "sess_1"
        assert "error" not in entry.data

    def test_log_request_failure(self):
        entry = log_request("DELETE", "u", 404, 1.0, False, operation="remove_tag", error="Tag not found")
        assert entry.data["level"] == "ERROR"
        assert entry.data["operation"] == "remove_tag"
        assert entry.data["error"] == "Tag not found"

    def test_log_mutation_event(self):
        entry = log_mutation_event("rolled_back", "mut_1", "remove_tag", ["tags:task:1"],
                                   task_id="1", error="boom")
        assert entry.category == "mutations"
        assert entry.data["event"] == "mutation_rolled_back"
        assert entry.data["mutation"] == "remove_tag"
        assert entry.data["keys"] == ["tags:task:1"]
        assert entry.data["level"] == "ERROR"

    def test_log_view_event(self):
        entry = log_view_event("task_opened", task_id="task-1", details={"x": 1})
        assert entry.category == "views"
        assert entry.data["details"] == {"x": 1}

    def test_to_json_is_compact(self):
        raw = LogEntry("views", {"a": 1}).to_json()
        assert raw == '{"a":1}'


class TestEventLogMemory:

    def test_write_and_query_newest_first(self):
        log = EventLog()
        log.write(log_view_event("first"))
        log.write(log_view_event("second"))
        events = [e["event"] for e in log.query("views")]
        assert events == ["second", "first"]

    def test_filters_and_limit(self):
        log = EventLog()
        for i in range(5):
            log.write(log_view_event("opened", task_id=f"t{i % 2}"))
        assert len(log.query("views", filters={"task_id": "t0"})) == 3
        assert len(log.query("views", limit=2)) == 2

    def test_unknown_category_dropped(self):
        log = EventLog()
        log.write(LogEntry("metrics", {"event": "x"}))
        assert log.query("metrics") == []

    def test_memory_keeps_newest_entries_only(self):
        log = EventLog(memory_limit=3)
        for i in range(5):
            log.write(log_view_event(f"e{i}"))
        assert [e["event"] for e in log.query("views")] == ["e4", "e3", "e2"]

    def test_memory_limit_from_config(self):
        log = EventLog.from_config(LoggingConfig(memory_limit=2))
        for i in range(4):
            log.write(log_view_event(f"e{i}"))
        assert len(log.query("views")) == 2

    def test_disabled_log_writes_nothing(self):
        log = EventLog(enabled=False)
        log.write(log_view_event("opened"))
        assert log.query("views") == []

    def test_clear(self):
        log = EventLog()
        log.write(log_view_event("opened"))
        log.clear()
        assert log.query("views") == []


class TestEventLogFiles:

    def test_writes_daily_jsonl(self, tmp_path):
        log = EventLog(directory=str(tmp_path))
        log.write(log_request("GET", "u", 200, 1.0, True))
        files = list((tmp_path / "requests").glob("*.jsonl"))
        assert len(files) == 1
        line = files[0].read_text(encoding="utf-8").strip()
        assert json.loads(line)["event"] == "backend_request"

    def test_query_reads_back(self, tmp_path):
        log = EventLog(directory=str(tmp_path))
        log.write(log_view_event("a"))
        log.write(log_view_event("b"))
        assert [e["event"] for e in log.query("views")] == ["b", "a"]

    def test_from_config(self, tmp_path):
        log = EventLog.from_config(LoggingConfig(directory=str(tmp_path)))
        assert log.directory == tmp_path


class TestConfigureLogging:

    def test_sets_level(self):
        root = configure_logging(LoggingConfig(level="DEBUG"))
        assert root.name == "taskpanel"
        assert root.level == logging.DEBUG
        assert root.handlers
