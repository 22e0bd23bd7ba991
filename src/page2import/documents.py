"""取得済みページを URL 単位で保持するドキュメントキャッシュ。"""

from __future__ import annotations

import json
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Iterator

from .manifest import ManifestFileItem

DOCUMENT_SET_NAME = "/documentSet.json"


@dataclass(slots=True)
class DocumentEntry:
    url: str
    content: str
    screenshot: str = ""


class DocumentCache:
    """URL をキーとしたキャッシュ。同じ URL を再登録すると既存エントリを上書きします。"""

    def __init__(self, entries: list[DocumentEntry] | None = None) -> None:
        self._entries: dict[str, DocumentEntry] = {}
        for entry in entries or []:
            self.put(entry)

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[DocumentEntry]:
        return iter(list(self._entries.values()))

    def __contains__(self, url: object) -> bool:
        return url in self._entries

    def get(self, url: str) -> DocumentEntry | None:
        return self._entries.get(url)

    def put(self, entry: DocumentEntry) -> None:
        self._entries[entry.url] = entry

    def to_json(self) -> str:
        return json.dumps([asdict(entry) for entry in self._entries.values()], ensure_ascii=False)

    def to_file_item(self) -> ManifestFileItem:
        return ManifestFileItem(name=DOCUMENT_SET_NAME, contents=self.to_json())

    @classmethod
    def from_json(cls, raw: str) -> "DocumentCache":
        data = json.loads(raw) if raw.strip() else []
        if not isinstance(data, list):
            raise ValueError("ドキュメントキャッシュは JSON 配列である必要があります。")
        return cls(
            [
                DocumentEntry(
                    url=str(item["url"]),
                    content=str(item.get("content", "")),
                    screenshot=str(item.get("screenshot") or ""),
                )
                for item in data
            ]
        )

    @classmethod
    def load(cls, path: Path) -> "DocumentCache":
        if not path.exists():
            return cls()
        return cls.from_json(path.read_text(encoding="utf-8"))

    def save(self, path: Path) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(self.to_json(), encoding="utf-8")
