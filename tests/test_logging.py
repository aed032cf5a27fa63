from __future__ import annotations

import io
import json
import logging
from pathlib import Path

import pytest

from irkeys.logging import JsonFormatter, setup_logging


def _record(**extra: object) -> logging.LogRecord:
    logger = logging.getLogger("irkeys.tests")
    record = logger.makeRecord("irkeys.tests", logging.INFO, __file__, 1, "Committing key sequence.", (), None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


def test_json_formatter_includes_extra_fields() -> None:
    payload = json.loads(JsonFormatter().format(_record(event="session.commit", keys=["n1", "n2"])))

    assert payload["message"] == "Committing key sequence."
    assert payload["level"] == "info"
    assert payload["logger"] == "irkeys.tests"
    assert payload["event"] == "session.commit"
    assert payload["keys"] == ["n1", "n2"]
    assert "msg" not in payload and "args" not in payload


def test_json_formatter_serialises_unknown_objects() -> None:
    payload = json.loads(JsonFormatter().format(_record(path=Path("patterns.json"))))

    assert payload["path"] == "patterns.json"


def test_setup_logging_replaces_previous_handler(tmp_path: Path) -> None:
    root = logging.getLogger()
    first = setup_logging({"logging": {"level": "debug", "output": "stderr", "format": "text"}})
    second = setup_logging({"logging": {"level": "warning", "output": str(tmp_path / "irkeys.log")}})

    assert first not in root.handlers
    assert second in root.handlers
    assert isinstance(second, logging.FileHandler)
    assert isinstance(second.formatter, JsonFormatter)
    assert root.level == logging.WARNING


def test_setup_logging_text_format_to_stdout(capsys: pytest.CaptureFixture[str]) -> None:
    handler = setup_logging({"logging": {"level": "info", "output": "stdout", "format": "text"}})

    assert isinstance(handler, logging.StreamHandler)
    assert not isinstance(handler.formatter, JsonFormatter)


def test_setup_logging_rejects_unknown_levels() -> None:
    with pytest.raises(ValueError):
        setup_logging({"logging": {"level": "chatty"}})


def test_json_lines_are_emitted(monkeypatch: pytest.MonkeyPatch) -> None:
    stream = io.StringIO()
    monkeypatch.setattr("sys.stderr", stream)
    setup_logging({"logging": {"level": "info"}})

    logging.getLogger("irkeys.tests").info("Hello.", extra={"event": "tests.hello"})

    line = stream.getvalue().strip().splitlines()[-1]
    assert json.loads(line)["event"] == "tests.hello"
