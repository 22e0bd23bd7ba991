"""ページ入力を検証し、ページごとの ImportBuilder を組み立てるファクトリ。"""

from __future__ import annotations

import logging
from typing import Any, Mapping

import httpx

from .adapter import ImportAdapter, resolve_adapter
from .assistant import ImportAssistant
from .builder import ImportBuilder
from .config import BuilderConfig, FetchConfig
from .documents import DocumentCache
from .events import EventKind, EventListener, ImportEvents, import_events
from .page import PageContent, create_page
from .rendering import PageFetcher, fetch_document
from .rules import ImportRules
from .service import AssistantService
from .templates import TemplateRenderer

RulesInput = ImportRules | Mapping[str, Any] | None


class ImportBuilderFactory:
    """設定とアダプター実装を固定し、ページ単位の ImportBuilder を生成します。

    ``async with`` で利用すると、共有している HTTP クライアントを終了時に閉じます。
    """

    def __init__(
        self,
        config: BuilderConfig | None = None,
        *,
        mode: str = "script",
        events: ImportEvents = import_events,
        client: httpx.AsyncClient | None = None,
        fetch_config: FetchConfig | None = None,
    ) -> None:
        self.config = config or BuilderConfig()
        self.mode = mode
        self._adapter_class = resolve_adapter(mode)
        self._events = events
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=self.config.request_timeout, follow_redirects=True)
        self._fetch_config = fetch_config or FetchConfig()
        self._templates = TemplateRenderer(self.config, client=self._client)
        self._service = AssistantService(self.config, self._client)
        self._adapter: ImportAdapter = self._adapter_class(self._templates, self._events)  # type: ignore[call-arg]
        self._logger = logging.getLogger(self.__class__.__module__ + "." + self.__class__.__name__)

    async def __aenter__(self) -> "ImportBuilderFactory":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_client and not self._client.is_closed:
            await self._client.aclose()

    def on(self, kind: EventKind, listener: EventListener) -> None:
        self._events.on(kind, listener)

    def off(self, kind: EventKind, listener: EventListener) -> None:
        self._events.off(kind, listener)

    async def create(
        self,
        html: str,
        screenshot: str | None = None,
        *,
        rules: RulesInput = None,
    ) -> ImportBuilder:
        """事前取得済みの HTML (と任意のスクリーンショット) から ImportBuilder を生成します。"""

        page = create_page(html, screenshot)
        return self._create_builder(page, rules)

    async def create_from_url(
        self,
        url: str,
        *,
        documents: DocumentCache | None = None,
        rules: RulesInput = None,
    ) -> ImportBuilder:
        """URL を取得 (キャッシュがあればそれを利用) して ImportBuilder を生成します。"""

        cache = documents if documents is not None else DocumentCache()
        fetcher = PageFetcher(self._fetch_config, self._events)
        page = await fetch_document(url, fetcher, cache, self._events)
        return self._create_builder(page, rules)

    def _create_builder(self, page: PageContent, rules: RulesInput) -> ImportBuilder:
        assistant = ImportAssistant(
            page.body,
            page.screenshot,
            service=self._service,
            templates=self._templates,
        )
        seeded = _seed_rules(rules)
        self._logger.info(
            "ImportBuilder を生成しました (mode=%s, blocks=%d)。", self.mode, len(seeded.blocks)
        )
        return ImportBuilder(page, self._adapter, assistant, rules=seeded, events=self._events)


def _seed_rules(rules: RulesInput) -> ImportRules:
    # 呼び出し元の値を変更しないよう常に複製する
    if rules is None:
        return ImportRules()
    if isinstance(rules, ImportRules):
        return ImportRules.from_dict(rules.build())
    return ImportRules.from_dict(rules)
