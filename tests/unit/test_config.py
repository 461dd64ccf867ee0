"""Unit tests for settings loading and logging setup."""

from __future__ import annotations

import io
import json
import logging
from pathlib import Path

import pytest
from pydantic import ValidationError

from depflow import Task, Taskflow
from depflow.config import DepflowSettings
from depflow.logging import JsonFormatter, configure_logging


def test_settings_defaults(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.chdir(tmp_path)

    settings = DepflowSettings()

    assert settings.log_level == "WARNING"
    assert settings.log_format == "text"


def test_settings_loads_from_dotenv(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.chdir(tmp_path)
    (tmp_path / ".env").write_text(
        "\n".join(
            [
                "DEPFLOW_LOG_LEVEL=debug",
                "DEPFLOW_LOG_FORMAT=json",
                "",
            ]
        ),
        encoding="utf-8",
    )

    settings = DepflowSettings()

    assert settings.log_level == "DEBUG"
    assert settings.log_format == "json"


def test_settings_reject_unknown_level(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("DEPFLOW_LOG_LEVEL", "loud")

    with pytest.raises(ValidationError):
        DepflowSettings()


def test_json_formatter_lifts_task_fields() -> None:
    record = logging.LogRecord("depflow.flow_runner", logging.INFO, __file__, 1, "Task %s", ("x",), None)
    record.task = "build"
    record.status = "PASS"
    record.error = "boom"

    payload = json.loads(JsonFormatter().format(record))

    assert payload["level"] == "INFO"
    assert payload["logger"] == "depflow.flow_runner"
    assert payload["message"] == "Task x"
    assert payload["task"] == "build"
    assert payload["status"] == "PASS"
    assert payload["extra"] == {"error": "boom"}


def test_json_formatter_omits_empty_extra() -> None:
    record = logging.LogRecord("depflow", logging.DEBUG, __file__, 1, "Task started", None, None)
    record.task = "build"

    payload = json.loads(JsonFormatter().format(record))

    assert payload["task"] == "build"
    assert "extra" not in payload
    assert "status" not in payload


def test_configure_logging_captures_task_events() -> None:
    stream = io.StringIO()
    configure_logging("DEBUG", fmt="json", stream=stream)
    try:
        flow = Taskflow(output=io.StringIO())
        flow.register(Task(name="build", command=lambda tf: None))
        assert flow.run("build") == 0
    finally:
        configure_logging("WARNING", stream=io.StringIO())

    events = [json.loads(line) for line in stream.getvalue().splitlines()]
    finished = [e for e in events if e["message"] == "Task finished"]
    assert len(finished) == 1
    assert finished[0]["task"] == "build"
    assert finished[0]["status"] == "PASS"
    assert isinstance(finished[0]["duration"], float)


def test_main_exits_with_run_code(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.chdir(tmp_path)
    out = io.StringIO()
    flow = Taskflow(output=out)
    flow.register(Task(name="build", command=lambda tf: tf.fail()))

    with pytest.raises(SystemExit) as excinfo:
        flow.main(["build"])

    assert excinfo.value.code == 1
    assert "task failed: build" in out.getvalue()
