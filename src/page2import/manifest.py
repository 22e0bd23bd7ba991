"""マニフェスト (生成ファイル一覧) のモデルと書き出しユーティリティ。"""

from __future__ import annotations

import json
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Iterable, Literal, Sequence

FileType = Literal["parser", "transformer"]


@dataclass(slots=True, frozen=True)
class ManifestFileItem:
    """ルート相対パスとレンダリング済み内容を持つ生成ファイル 1 件。"""

    name: str
    contents: str
    type: FileType | None = None

    def to_dict(self) -> dict[str, str]:
        data = asdict(self)
        if self.type is None:
            data.pop("type")
        return data


@dataclass(slots=True)
class BuilderManifest:
    """セッション中に生成されたファイルの集合。同名のファイルは後勝ちで置き換わります。"""

    files: list[ManifestFileItem] = field(default_factory=list)

    def merge(self, items: Iterable[ManifestFileItem]) -> None:
        positions = {item.name: index for index, item in enumerate(self.files)}
        for item in items:
            index = positions.get(item.name)
            if index is None:
                positions[item.name] = len(self.files)
                self.files.append(item)
            else:
                self.files[index] = item

    def get(self, name: str) -> ManifestFileItem | None:
        return next((item for item in self.files if item.name == name), None)

    def names(self) -> list[str]:
        return [item.name for item in self.files]

    def to_json(self) -> str:
        return json.dumps(
            {"files": [item.to_dict() for item in self.files]},
            ensure_ascii=False,
            indent=2,
        )


def write_manifest(root: Path, files: Sequence[ManifestFileItem]) -> list[Path]:
    """マニフェストの各ファイルを root 配下へ書き出し、書き出したパスを返します。"""

    root.mkdir(parents=True, exist_ok=True)
    resolved_root = root.resolve()
    written: list[Path] = []
    for item in files:
        target = (resolved_root / item.name.lstrip("/")).resolve()
        if not target.is_relative_to(resolved_root):
            raise ValueError(f"出力ディレクトリの外を指すファイル名です: {item.name}")
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(item.contents, encoding="utf-8")
        written.append(target)
    return written


def write_manifest_index(path: Path, manifest: BuilderManifest) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    index = [
        {key: value for key, value in item.to_dict().items() if key != "contents"}
        for item in manifest.files
    ]
    path.write_text(json.dumps({"files": index}, ensure_ascii=False, indent=2), encoding="utf-8")
