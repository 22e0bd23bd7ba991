from __future__ import annotations

import json
from pathlib import Path

import httpx
import pytest

from page2import import cli
from page2import.factory import ImportBuilderFactory

ANSWERS = {
    "findMainContent": '```json\n{"selector": "#main"}\n```',
    "findRemovalSelectors": '```json\n[".cookie-banner"]\n```',
    "findBlockSelectors": '```json\n[".hero"]\n```',
    "findBlockCells": "```javascript\nexport default function parse(element) {\n  return [[element]];\n}\n```",
    "generatePageTransformation": "```javascript\nexport default function transform(main) {}\n```",
}


def _backend(request: httpx.Request) -> httpx.Response:
    command = json.loads(request.content)["command"]
    return httpx.Response(
        200, json={"choices": [{"finish_reason": "stop", "message": {"content": ANSWERS[command]}}]}
    )


def test_validate_args_parses_named_steps(tmp_path: Path) -> None:
    html_path = tmp_path / "page.html"
    html_path.write_text("<main>x</main>", encoding="utf-8")
    args = cli.parse_args(
        [
            "--html",
            str(html_path),
            "--out",
            str(tmp_path / "out"),
            "--cleanup",
            "cookie banner",
            "--cleanup",
            "  ",
            "--block",
            "hero=the big banner",
            "--transformer",
            "links=make links absolute",
        ]
    )

    steps = cli._validate_args(args)

    assert steps["cleanup"] == ["cookie banner"]
    assert steps["blocks"] == [("hero", "the big banner")]
    assert steps["cell_parsers"] == []
    assert steps["transformers"] == [("links", "make links absolute")]


def test_validate_args_rejects_bad_named_prompt(tmp_path: Path, capsys) -> None:
    html_path = tmp_path / "page.html"
    html_path.write_text("<main>x</main>", encoding="utf-8")
    args = cli.parse_args(["--html", str(html_path), "--out", str(tmp_path / "out"), "--block", "hero"])

    with pytest.raises(SystemExit) as excinfo:
        cli._validate_args(args)

    assert excinfo.value.code == 2
    assert "--block" in capsys.readouterr().err


def test_validate_args_requires_html_for_screenshot(tmp_path: Path) -> None:
    screenshot = tmp_path / "shot.png"
    screenshot.write_bytes(b"png")
    args = cli.parse_args(
        ["--url", "https://example.com/", "--out", str(tmp_path / "out"), "--screenshot", str(screenshot)]
    )

    with pytest.raises(SystemExit):
        cli._validate_args(args)


def test_load_rules_rejects_non_object(tmp_path: Path) -> None:
    path = tmp_path / "rules.json"
    path.write_text("[1, 2]", encoding="utf-8")
    with pytest.raises(ValueError):
        cli._load_rules(path)

    path.write_text("{broken", encoding="utf-8")
    with pytest.raises(ValueError):
        cli._load_rules(path)


def test_main_writes_import_project(tmp_path: Path, monkeypatch, capsys) -> None:
    for name in ("PAGE2IMPORT_API_KEY", "PAGE2IMPORT_BASE_URL", "PAGE2IMPORT_ENV"):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.chdir(tmp_path)

    def factory(config, *, events):
        client = httpx.AsyncClient(transport=httpx.MockTransport(_backend))
        return ImportBuilderFactory(config, events=events, client=client)

    monkeypatch.setattr(cli, "ImportBuilderFactory", factory)
    html_path = tmp_path / "page.html"
    html_path.write_text(
        '<html><body><main id="main"><section class="hero">Welcome</section></main></body></html>',
        encoding="utf-8",
    )
    out = tmp_path / "out"

    cli.main(
        [
            "--html",
            str(html_path),
            "--out",
            str(out),
            "--cleanup",
            "cookie banner",
            "--block",
            "hero=the big banner",
            "--cell-parser",
            "hero=one row per element",
            "--transformer",
            "links=make links absolute",
        ]
    )

    summary = json.loads(capsys.readouterr().out)
    assert summary["root"] == "#main"
    assert summary["blocks"] == ["metadata", "hero"]
    assert summary["files"] == 6
    assert "return [[element]];" in (out / "parsers" / "hero.js").read_text(encoding="utf-8")
    assert (out / "transformers" / "links.js").exists()
    rules = json.loads((out / "import-rules.json").read_text(encoding="utf-8"))
    assert ".cookie-banner" in rules["cleanup"]
    stages = [json.loads(line)["stage"] for line in (out / "logs" / "build_summary.json").read_text(encoding="utf-8").splitlines()]
    assert stages[0] == "start"
    assert stages[-1] == "completed"
