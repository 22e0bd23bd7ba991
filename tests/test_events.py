from __future__ import annotations

import json
from pathlib import Path

import pytest

from page2import.events import EventRecorder, ImportEvents


def test_on_and_off_manage_listeners() -> None:
    events = ImportEvents()
    received: list[str | None] = []

    events.on("progress", received.append)
    events.emit("progress", "first")
    events.off("progress", received.append)
    events.emit("progress", "second")

    assert received == ["first"]
    assert events.listener_count("progress") == 0


def test_listener_errors_do_not_reach_emitter(caplog) -> None:
    events = ImportEvents()
    received: list[str | None] = []

    def broken(message: str | None) -> None:
        raise RuntimeError("boom")

    events.on("start", broken)
    events.on("start", received.append)
    events.emit("start", "hello")

    assert received == ["hello"]
    assert any("イベントリスナー" in record.message for record in caplog.records)


def test_unknown_kind_is_rejected() -> None:
    with pytest.raises(ValueError):
        ImportEvents().on("finished", print)  # type: ignore[arg-type]


def test_recorder_writes_json_lines(tmp_path: Path) -> None:
    events = ImportEvents()
    recorder = EventRecorder(tmp_path / "logs" / "build_summary.json", output_dir="out")

    recorder.attach(events)
    events.emit("start", "creating files")
    events.emit("complete")
    recorder.detach(events)
    events.emit("progress", "ignored")

    lines = [json.loads(line) for line in recorder.path.read_text(encoding="utf-8").splitlines()]
    assert [line["stage"] for line in lines] == ["start", "complete"]
    assert lines[0]["message"] == "creating files"
    assert lines[0]["output_dir"] == "out"
