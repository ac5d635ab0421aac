"""Tests for cadence.core.logging module."""

from __future__ import annotations

import json
import logging
from pathlib import Path

import pytest

from cadence.core.logging import (
    SENSITIVE_PATTERNS,
    CadenceLogger,
    LogContext,
    _add_context,
    _sanitize_event_dict,
    _sanitize_value,
    configure_logging,
    get_current_context,
    get_logger,
    with_context,
)


def _flush_root_handlers() -> None:
    for handler in logging.getLogger().handlers:
        handler.flush()


class TestSanitization:
    def test_known_patterns(self):
        assert "token" in SENSITIVE_PATTERNS
        assert "cookie" in SENSITIVE_PATTERNS

    @pytest.mark.parametrize("key", ["api_key", "SESSION_COOKIE", "auth_token", "Authorization"])
    def test_sensitive_keys_redacted(self, key):
        assert _sanitize_value(key, "secret-value") == "[REDACTED]"

    def test_plain_keys_kept(self):
        assert _sanitize_value("item_id", "q1") == "q1"

    def test_nested_dict(self):
        event = {"event": "x", "headers": {"cookie": "abc", "accept": "json"}, "password": "p"}
        result = _sanitize_event_dict(None, "info", event)
        assert result["headers"] == {"cookie": "[REDACTED]", "accept": "json"}
        assert result["password"] == "[REDACTED]"
        assert result["event"] == "x"


class TestLogContext:
    def test_to_dict_drops_missing_item(self):
        ctx = LogContext(session_id="s1", run_id="r1")
        assert ctx.to_dict() == {"session_id": "s1", "run_id": "r1"}
        assert ctx.with_item("q1").to_dict()["item_id"] == "q1"

    def test_with_component(self):
        ctx = LogContext(session_id="s1").with_component("runner")
        assert ctx.component == "runner"

    def test_with_context_restores_previous(self):
        assert get_current_context() is None
        outer = LogContext(session_id="outer")
        with with_context(outer):
            with with_context(LogContext(session_id="inner")):
                assert get_current_context().session_id == "inner"
            assert get_current_context() is outer
        assert get_current_context() is None

    def test_add_context_processor(self):
        with with_context(LogContext(session_id="s1", item_id="q1", run_id="r1")):
            result = _add_context(None, "info", {"event": "x", "session_id": "explicit"})
        assert result["session_id"] == "explicit"
        assert result["item_id"] == "q1"
        assert result["run_id"] == "r1"

    def test_add_context_without_context(self):
        assert _add_context(None, "info", {"event": "x"}) == {"event": "x"}


class TestConfigureLogging:
    def test_json_to_file(self, tmp_path: Path):
        log_file = tmp_path / "logs" / "cadence.log"
        configure_logging(level="INFO", format="json", file_path=log_file)

        logger = get_logger("runner")
        with with_context(LogContext(session_id="s9", run_id="r9")):
            logger.info("runner.succeeded", attempts=2, auth_token="abc")
        logger.debug("runner.hidden")
        _flush_root_handlers()

        lines = log_file.read_text(encoding="utf-8").strip().splitlines()
        assert len(lines) == 1
        entry = json.loads(lines[0])
        assert entry["event"] == "runner.succeeded"
        assert entry["component"] == "runner"
        assert entry["level"] == "info"
        assert entry["attempts"] == 2
        assert entry["auth_token"] == "[REDACTED]"
        assert entry["session_id"] == "s9"
        assert "timestamp" in entry

    def test_without_timestamps(self, tmp_path: Path):
        log_file = tmp_path / "cadence.log"
        configure_logging(format="json", file_path=log_file, include_timestamps=False)
        get_logger("loop").warning("loop.finished")
        _flush_root_handlers()

        entry = json.loads(log_file.read_text(encoding="utf-8").strip())
        assert "timestamp" not in entry

    def test_both_requires_file(self):
        with pytest.raises(ValueError, match="file_path is required"):
            configure_logging(format="both")

    def test_both_renders_console_and_json_file(self, tmp_path: Path, capsys):
        log_file = tmp_path / "cadence.log"
        configure_logging(level="INFO", format="both", file_path=log_file)

        get_logger("loop").info("loop.finished", iterations=2)
        _flush_root_handlers()

        assert "loop.finished" in capsys.readouterr().err
        entry = json.loads(log_file.read_text(encoding="utf-8").strip())
        assert entry["event"] == "loop.finished"
        assert entry["iterations"] == 2
        assert entry["component"] == "loop"

    def test_console_writes_to_stderr(self, capsys):
        configure_logging(level="DEBUG", format="console")
        get_logger("detector").info("detector.complete", samples=3)
        err = capsys.readouterr().err
        assert "detector.complete" in err

    def test_sets_root_level(self):
        configure_logging(level="WARNING", format="console")
        assert logging.getLogger().level == logging.WARNING


class TestCadenceLogger:
    def test_bind_keeps_component(self):
        logger = get_logger("escalation").bind(session_id="s1")
        assert isinstance(logger, CadenceLogger)
        assert logger._context == {"component": "escalation", "session_id": "s1"}

    def test_initial_context(self):
        logger = get_logger("sources", path="items.json")
        assert logger._context["path"] == "items.json"
