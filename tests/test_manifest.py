from __future__ import annotations

import json
from pathlib import Path

import pytest

from page2import.manifest import BuilderManifest, ManifestFileItem, write_manifest, write_manifest_index


def test_merge_supersedes_items_with_same_name() -> None:
    manifest = BuilderManifest()
    manifest.merge([ManifestFileItem("/import-rules.js", "v1"), ManifestFileItem("/import.js", "a")])
    manifest.merge([ManifestFileItem("/parsers/hero.js", "p", "parser"), ManifestFileItem("/import-rules.js", "v2")])

    assert manifest.names() == ["/import-rules.js", "/import.js", "/parsers/hero.js"]
    assert manifest.get("/import-rules.js").contents == "v2"


def test_to_dict_omits_missing_type() -> None:
    assert ManifestFileItem("/import.js", "x").to_dict() == {"name": "/import.js", "contents": "x"}
    assert ManifestFileItem("/parsers/a.js", "x", "parser").to_dict()["type"] == "parser"


def test_write_manifest_writes_files_under_root(tmp_path: Path) -> None:
    files = [ManifestFileItem("/parsers/hero.js", "parse"), ManifestFileItem("/import.js", "main")]

    written = write_manifest(tmp_path / "out", files)

    assert (tmp_path / "out" / "parsers" / "hero.js").read_text(encoding="utf-8") == "parse"
    assert len(written) == 2


def test_write_manifest_rejects_paths_outside_root(tmp_path: Path) -> None:
    with pytest.raises(ValueError):
        write_manifest(tmp_path / "out", [ManifestFileItem("/../escape.js", "x")])


def test_write_manifest_index_lists_files_without_contents(tmp_path: Path) -> None:
    manifest = BuilderManifest([ManifestFileItem("/parsers/hero.js", "parse", "parser")])
    path = tmp_path / "manifest.json"

    write_manifest_index(path, manifest)

    assert json.loads(path.read_text(encoding="utf-8")) == {"files": [{"name": "/parsers/hero.js", "type": "parser"}]}
