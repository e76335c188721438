"""Tests for settings loading and logging setup."""

import logging
import logging.handlers
from pathlib import Path
from typing import Iterator

import pytest

from switchboard.logging_config import ExecutionContextFilter, bind_execution, setup_logging
from switchboard.settings import (
    get_default_settings,
    get_setting,
    load_settings,
    merge_settings,
    reload_settings,
)


@pytest.fixture
def fresh_cache() -> Iterator[None]:
    reload_settings()
    yield
    reload_settings()


class TestLoadSettings:
    def test_missing_file_gives_defaults(self, tmp_path: Path, fresh_cache: None) -> None:
        settings = load_settings(tmp_path)
        assert settings == get_default_settings()

    def test_file_overlays_defaults(self, tmp_path: Path, fresh_cache: None) -> None:
        (tmp_path / "settings.yaml").write_text(
            "confirmation:\n  timeout_seconds: 30\nserver:\n  port: 9000\n", encoding="utf-8"
        )
        settings = load_settings(tmp_path)
        assert settings["confirmation"]["timeout_seconds"] == 30
        assert settings["confirmation"]["sweep_interval"] == 5.0
        assert settings["server"] == {"host": "127.0.0.1", "port": 9000}

    def test_result_is_cached(self, tmp_path: Path, fresh_cache: None) -> None:
        first = load_settings(tmp_path)
        (tmp_path / "settings.yaml").write_text("server:\n  port: 1\n", encoding="utf-8")
        assert load_settings(tmp_path) is first
        reload_settings()
        assert load_settings(tmp_path)["server"]["port"] == 1

    def test_invalid_yaml_falls_back_to_defaults(self, tmp_path: Path, fresh_cache: None) -> None:
        (tmp_path / "settings.yaml").write_text("router: [unclosed\n", encoding="utf-8")
        assert load_settings(tmp_path) == get_default_settings()


class TestHelpers:
    def test_get_setting(self) -> None:
        settings = get_default_settings()
        assert get_setting(settings, "delegation.force_threshold") == 0.8
        assert get_setting(settings, "delegation.nope", "x") == "x"
        assert get_setting(settings, "server.port.deeper") is None

    def test_merge_does_not_touch_defaults(self) -> None:
        merged = merge_settings({"delegation": {"max_hops": 0}, "history": {"enabled": None}})
        assert merged["delegation"]["max_hops"] == 0
        assert merged["history"]["enabled"] is True
        assert get_default_settings()["delegation"]["max_hops"] == 1

    def test_defaults_are_copies(self) -> None:
        get_default_settings()["confirmation"]["sensitive_tools"].append("x")
        assert "x" not in get_default_settings()["confirmation"]["sensitive_tools"]


@pytest.fixture
def root_logger() -> Iterator[logging.Logger]:
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield root
    for h in root.handlers[:]:
        root.removeHandler(h)
        h.close()
    for h in handlers:
        root.addHandler(h)
    root.setLevel(level)


class TestSetupLogging:
    def test_file_handler(self, tmp_path: Path, root_logger: logging.Logger) -> None:
        cfg = {"file": "logs/sb.log", "level": "debug", "log_to_console": False}
        setup_logging(tmp_path, {"logging": cfg})
        assert root_logger.level == logging.DEBUG
        assert len(root_logger.handlers) == 1
        assert isinstance(root_logger.handlers[0], logging.handlers.RotatingFileHandler)
        assert (tmp_path / "logs").is_dir()

    def test_console_only(self, tmp_path: Path, root_logger: logging.Logger) -> None:
        setup_logging(tmp_path, {"logging": {"file": "", "level": "WARNING"}})
        assert root_logger.level == logging.WARNING
        assert [type(h) for h in root_logger.handlers] == [logging.StreamHandler]

    def test_library_logger_levels(self, tmp_path: Path, root_logger: logging.Logger) -> None:
        noisy = logging.getLogger("switchboard.tests.noisy")
        cfg = {"file": "", "loggers": {"switchboard.tests.noisy": "error"}}
        setup_logging(tmp_path, {"logging": cfg})
        try:
            assert noisy.level == logging.ERROR
        finally:
            noisy.setLevel(logging.NOTSET)

    def test_records_formatted_with_execution_id(
        self, tmp_path: Path, root_logger: logging.Logger
    ) -> None:
        setup_logging(tmp_path, {"logging": {"file": "", "level": "INFO"}})
        (handler,) = root_logger.handlers
        record = logging.LogRecord(
            "switchboard.graph", logging.INFO, __file__, 1, "started", None, None
        )
        with bind_execution("exec_abc"):
            assert handler.filter(record)
        assert "switchboard.graph [exec_abc]: started" in handler.format(record)


class TestExecutionContextFilter:
    def _record(self) -> logging.LogRecord:
        return logging.LogRecord("x", logging.INFO, __file__, 1, "msg", None, None)

    def test_default_outside_a_run(self) -> None:
        record = self._record()
        ExecutionContextFilter().filter(record)
        assert record.execution_id == "-"

    def test_binding_is_scoped(self) -> None:
        context = ExecutionContextFilter()
        with bind_execution("exec_1"):
            inner = self._record()
            context.filter(inner)
        outer = self._record()
        context.filter(outer)
        assert (inner.execution_id, outer.execution_id) == ("exec_1", "-")
