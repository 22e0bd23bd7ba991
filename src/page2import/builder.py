"""1 ページ分のインポートルールを段階的に組み立てる中核オーケストレーター。"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Awaitable, Callable, Protocol, Sequence

from .adapter import ImportAdapter
from .events import ImportEvents, import_events
from .manifest import BuilderManifest, ManifestFileItem
from .page import IGNORE_ELEMENTS, PageContent
from .rules import BlockRule, ImportRules, PartialBlockRule, TransformRule

METADATA_BLOCK_TYPE = "metadata"


def metadata_block_rule() -> BlockRule:
    return BlockRule(type=METADATA_BLOCK_TYPE, insert_mode="append")


class Assistant(Protocol):
    async def find_root(self) -> str: ...

    async def find_cleanup_selectors(self, instruction: str) -> list[str]: ...

    async def find_block_selectors(self, instruction: str) -> list[PartialBlockRule]: ...

    async def find_cell_parser_scripts(self, selectors: list[str], instruction: str) -> list[str]: ...

    async def generate_transformer_scripts(self, instruction: str) -> list[str]: ...


def _duration(start: float) -> str:
    return f"{time.monotonic() - start:.1f}s"


class ImportBuilder:
    """ルール文書を所有し、解析・ルール更新・ファイル生成を 1 操作ずつ順に実行します。

    各操作は生成・更新されたファイルの一覧 (差分) を返します。同じインスタンスへの
    呼び出しはロックで直列化されるため、並行に呼び出しても更新が失われません。
    途中で失敗した場合、それまでに適用したルールの変更は巻き戻しません。
    """

    def __init__(
        self,
        page: PageContent,
        adapter: ImportAdapter,
        assistant: Assistant,
        *,
        rules: ImportRules | None = None,
        events: ImportEvents = import_events,
    ) -> None:
        self.page = page
        self._adapter = adapter
        self._assistant = assistant
        self._rules = rules if rules is not None else ImportRules()
        self._events = events
        self._manifest = BuilderManifest()
        self._lock = asyncio.Lock()
        self._logger = logging.getLogger(self.__class__.__module__ + "." + self.__class__.__name__)

    @property
    def rules(self) -> ImportRules:
        return self._rules

    @property
    def manifest(self) -> BuilderManifest:
        """セッション中に生成された全ファイル (同名は最新のもの)。"""

        return self._manifest

    async def build_project(self) -> list[ManifestFileItem]:
        return await self._run("build_project", self._build_project)

    async def add_cleanup(self, name_prompt: str | None) -> list[ManifestFileItem]:
        if not name_prompt:
            return []
        return await self._run("add_cleanup", lambda: self._add_cleanup(name_prompt))

    async def add_block(self, name: str | None, prompt: str | None) -> list[ManifestFileItem]:
        if not name or not prompt:
            return []
        return await self._run("add_block", lambda: self._add_block(name, prompt))

    async def add_cell_parser(self, name: str | None, prompt: str | None) -> list[ManifestFileItem]:
        if not name or not prompt:
            return []
        return await self._run("add_cell_parser", lambda: self._add_cell_parser(name, prompt))

    async def add_page_transformer(self, name: str | None, prompt: str | None) -> list[ManifestFileItem]:
        if not name or not prompt:
            return []
        return await self._run("add_page_transformer", lambda: self._add_page_transformer(name, prompt))

    # Operations -------------------------------------------------------

    async def _build_project(self) -> list[ManifestFileItem]:
        start = time.monotonic()
        self._events.emit("start", "アシスタントがメインコンテンツ要素を探しています")
        selector = await self._assistant.find_root()
        self._rules.set_root(selector)
        self._events.emit("progress", f"'{selector}' をメインコンテンツ要素として使用します ({_duration(start)})")
        self._events.emit("complete")

        seeded_blocks = [metadata_block_rule()]
        self._rules.add_cleanup(IGNORE_ELEMENTS)
        for rule in seeded_blocks:
            self._rules.add_block(rule)

        self._events.emit("start", "プロジェクトファイルを作成しています")
        files = await self._adapter.render_removal()
        files += await self._adapter.render_block_names([rule.type for rule in seeded_blocks])
        files += await self._render_rules()
        files += await self._render_importer()
        self._events.emit("complete")
        return files

    async def _add_cleanup(self, name_prompt: str) -> list[ManifestFileItem]:
        start = time.monotonic()
        self._events.emit("start", "アシスタントが削除対象の要素を探しています")
        selectors = await self._assistant.find_cleanup_selectors(name_prompt)
        self._rules.add_cleanup(selectors)
        self._events.emit(
            "progress", f"{len(selectors)} 件のセレクタを cleanup ルールへ追加しました ({_duration(start)})"
        )
        self._events.emit("complete")

        self._events.emit("start", "インポートファイルを作成しています")
        files = await self._render_rules()
        self._events.emit("complete")
        return files

    async def _add_block(self, name: str, prompt: str) -> list[ManifestFileItem]:
        start = time.monotonic()
        self._events.emit("start", "アシスタントが指定されたブロックを探しています")
        partial_rules = await self._assistant.find_block_selectors(prompt)
        block_rules = [partial.with_type(name) for partial in partial_rules]
        for rule in block_rules:
            self._rules.add_block(rule)
        self._events.emit(
            "progress", f"{len(block_rules)} 件のブロックをブロックルールへ追加しました ({_duration(start)})"
        )
        self._events.emit("complete")

        self._events.emit("start", "インポートファイルを作成しています")
        files = await self._adapter.render_block_names([rule.type for rule in block_rules])
        files += await self._render_rules()
        files += await self._render_importer()
        self._events.emit("complete")
        return files

    async def _add_cell_parser(self, name: str, prompt: str) -> list[ManifestFileItem]:
        block_rule = self._rules.find_block(name)
        if block_rule is None:
            self._logger.info("ブロック '%s' が未登録のためパーサーを生成しません。", name)
            return []
        start = time.monotonic()
        self._events.emit("start", f"アシスタントが {name} ブロックのセルを解析しています")
        scripts = await self._assistant.find_cell_parser_scripts(list(block_rule.selectors), prompt)
        if not scripts:
            self._logger.warning("%s ブロックのパーサースクリプトが得られませんでした。", name)
            self._events.emit("complete")
            return []
        self._events.emit("progress", f"{name} ブロックのパーサースクリプトを追加しました ({_duration(start)})")
        self._events.emit("complete")

        self._events.emit("start", "インポートファイルを作成しています")
        files = await self._adapter.render_cell_parser(block_rule.type, scripts[0])
        self._events.emit("complete")
        return files

    async def _add_page_transformer(self, name: str, prompt: str) -> list[ManifestFileItem]:
        start = time.monotonic()
        self._events.emit("start", f"アシスタントが {name} 変換関数を生成しています")
        scripts = await self._assistant.generate_transformer_scripts(prompt)
        if not scripts:
            # 変換ルールはスクリプトが得られた場合のみ登録する
            self._logger.warning("%s のトランスフォーマースクリプトが得られませんでした。", name)
            self._events.emit("complete")
            return []
        self._rules.add_transformer(TransformRule(name=name))
        transform_rule = self._rules.find_transformer(name)
        if transform_rule is None:
            return []
        self._events.emit("progress", f"トランスフォーマースクリプトを追加しました ({_duration(start)})")
        self._events.emit("complete")

        self._events.emit("start", "インポートファイルを作成しています")
        files = await self._adapter.render_transformer(transform_rule.name, scripts[0])
        files += await self._render_rules()
        files += await self._render_importer()
        self._events.emit("complete")
        return files

    # Internal helpers -------------------------------------------------

    async def _render_rules(self) -> list[ManifestFileItem]:
        return await self._adapter.render_rules(self._rules.build())

    async def _render_importer(self) -> list[ManifestFileItem]:
        return await self._adapter.render_importer(self._rules.build())

    async def _run(
        self,
        operation: str,
        step: Callable[[], Awaitable[Sequence[ManifestFileItem]]],
    ) -> list[ManifestFileItem]:
        async with self._lock:
            start = time.monotonic()
            self._logger.info("%s を開始します。", operation)
            try:
                files = list(await step())
            except Exception:
                self._logger.error("%s に失敗しました (%s)。", operation, _duration(start))
                raise
            self._manifest.merge(files)
            self._logger.info("%s が完了しました: %d 件のファイル (%s)", operation, len(files), _duration(start))
            return files
