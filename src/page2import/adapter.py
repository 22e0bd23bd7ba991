"""解析で得られた結果を、名前付きの生成ファイルへ変換するアダプター。"""

from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from typing import Any, Mapping, Sequence

from slugify import slugify

from .events import ImportEvents, import_events
from .manifest import ManifestFileItem
from .rules import stringify_object
from .templates import TemplateRenderer


def file_slug(name: str) -> str:
    """ルール上の名前からファイル名に使える slug を求めます。"""

    return slugify(name) or "unnamed"


def parser_path(block_type: str) -> str:
    return f"/parsers/{file_slug(block_type)}.js"


def transformer_path(name: str) -> str:
    return f"/transformers/{file_slug(name)}.js"


class ImportAdapter(ABC):
    """ビルドオーケストレーターが依存する成果物生成の契約。"""

    @abstractmethod
    async def render_removal(self) -> list[ManifestFileItem]: ...

    @abstractmethod
    async def render_block_names(self, block_types: Sequence[str]) -> list[ManifestFileItem]: ...

    @abstractmethod
    async def render_cell_parser(self, block_type: str, script: str) -> list[ManifestFileItem]: ...

    @abstractmethod
    async def render_transformer(self, name: str, script: str) -> list[ManifestFileItem]: ...

    @abstractmethod
    async def render_rules(self, rules: Mapping[str, Any]) -> list[ManifestFileItem]: ...

    @abstractmethod
    async def render_importer(self, rules: Mapping[str, Any]) -> list[ManifestFileItem]: ...


class ScriptImportAdapter(ImportAdapter):
    """インポートスクリプト一式 (JavaScript) を生成する "script" モードのアダプター。"""

    IMPORT_TEMPLATE = "import.js.jinja"
    RULES_TEMPLATE = "import-rules.js.jinja"
    REMOVAL_TEMPLATE = "removal.js.jinja"
    BLOCK_TEMPLATES: Mapping[str, str] = {"metadata": "metadata.js.jinja"}
    DEFAULT_BLOCK_TEMPLATE: str | None = "block.js.jinja"
    # セレクタを持たない場合にルート要素全体へ適用してよいブロック
    ROOT_BLOCKS: Sequence[str] = ("metadata",)

    def __init__(self, templates: TemplateRenderer, events: ImportEvents = import_events) -> None:
        self._templates = templates
        self._events = events

    async def render_removal(self) -> list[ManifestFileItem]:
        self._events.emit("progress", "不要要素の削除スクリプトを生成しています")
        script = await self._templates.merge(self.REMOVAL_TEMPLATE, {})
        return [ManifestFileItem(name="/removal.js", contents=script)]

    async def render_block_names(self, block_types: Sequence[str]) -> list[ManifestFileItem]:
        self._events.emit("progress", "ブロックスクリプトを生成しています")
        results = await asyncio.gather(*(self._render_block(block_type) for block_type in block_types))
        files = [item for item in results if item is not None]
        self._events.emit("progress", f"{len(files)} 件のブロックスクリプトを生成しました")
        return files

    async def render_cell_parser(self, block_type: str, script: str) -> list[ManifestFileItem]:
        self._events.emit("progress", f"{block_type} ブロックのパーサースクリプトを生成しています")
        return [ManifestFileItem(name=parser_path(block_type), contents=script, type="parser")]

    async def render_transformer(self, name: str, script: str) -> list[ManifestFileItem]:
        self._events.emit("progress", "トランスフォーマースクリプトを生成しています")
        return [ManifestFileItem(name=transformer_path(name), contents=script, type="transformer")]

    async def render_rules(self, rules: Mapping[str, Any]) -> list[ManifestFileItem]:
        self._events.emit("progress", "インポートルールのスクリプトを生成しています")
        script = await self._templates.merge(self.RULES_TEMPLATE, {"rules": stringify_object(rules)})
        return [ManifestFileItem(name="/import-rules.js", contents=script)]

    async def render_importer(self, rules: Mapping[str, Any]) -> list[ManifestFileItem]:
        self._events.emit("progress", "インポートスクリプトをカスタマイズしています")
        block_types = list(dict.fromkeys(rule["type"] for rule in rules.get("blocks") or []))
        transformer_names = [rule["name"] for rule in rules.get("transformers") or []]
        # slug が同じ名前は同じファイルを指すため、import は slug 単位で 1 回だけ行う
        parser_modules = {
            _identifier(block_type): "." + parser_path(block_type) for block_type in block_types
        }
        transformer_modules = {_identifier(name): "." + transformer_path(name) for name in transformer_names}
        data = {
            "parser_modules": [{"id": key, "path": path} for key, path in parser_modules.items()],
            "parsers": [{"block": block_type, "id": _identifier(block_type)} for block_type in block_types],
            "transformers": [{"id": key, "path": path} for key, path in transformer_modules.items()],
            "root_blocks": list(self.ROOT_BLOCKS),
        }
        script = await self._templates.merge(self.IMPORT_TEMPLATE, data)
        return [ManifestFileItem(name="/import.js", contents=script)]

    async def _render_block(self, block_type: str) -> ManifestFileItem | None:
        template = self.BLOCK_TEMPLATES.get(block_type, self.DEFAULT_BLOCK_TEMPLATE)
        if not template:
            return None
        data = {
            "name": block_type,
            "configs": stringify_object({}),
            "cells": stringify_object([[""]]),
        }
        script = await self._templates.merge(template, data)
        return ManifestFileItem(name=parser_path(block_type), contents=script, type="parser")


def _identifier(name: str) -> str:
    return file_slug(name).replace("-", "_")


ADAPTERS: Mapping[str, type[ImportAdapter]] = {"script": ScriptImportAdapter}


def resolve_adapter(mode: str) -> type[ImportAdapter]:
    try:
        return ADAPTERS[mode]
    except KeyError:
        choices = ", ".join(sorted(ADAPTERS))
        raise ValueError(f"未対応のモードです: {mode} (指定可能: {choices})") from None
