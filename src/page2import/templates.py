"""名前付きテンプレートとデータを結合してテキストを生成するレンダラー。"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Mapping

import httpx
from jinja2 import Environment, FileSystemLoader, Template, TemplateError as JinjaTemplateError

from .config import BuilderConfig
from .rules import stringify_object

TEMPLATES_DIR = Path(__file__).with_name("templates")
REMOTE_TEMPLATES_PATH = "/tools/importer/templates/"


class TemplateError(RuntimeError):
    """テンプレートの取得またはレンダリングに失敗した際に送出される例外。"""


def title_case(value: str) -> str:
    return " ".join(word[:1].upper() + word[1:].lower() for word in str(value).split(" "))


def _create_environment() -> Environment:
    env = Environment(
        loader=FileSystemLoader(str(TEMPLATES_DIR)),
        autoescape=False,
        keep_trailing_newline=True,
    )
    env.filters["title"] = title_case
    env.filters["js"] = stringify_object
    return env


class TemplateRenderer:
    """同梱テンプレート、または base_url 配下のリモートテンプレートを Jinja2 で描画します。"""

    def __init__(self, config: BuilderConfig, client: httpx.AsyncClient | None = None) -> None:
        self._config = config
        self._client = client
        self._env = _create_environment()
        self._remote_cache: dict[str, Template] = {}
        self._logger = logging.getLogger(self.__class__.__module__ + "." + self.__class__.__name__)

    @property
    def uses_remote_templates(self) -> bool:
        return bool(self._config.base_url)

    async def merge(self, name: str, data: Mapping[str, Any]) -> str:
        template = await self._load(name)
        try:
            return template.render(**data)
        except JinjaTemplateError as exc:
            raise TemplateError(f"テンプレートのレンダリングに失敗しました: {name} ({exc})") from exc

    async def _load(self, name: str) -> Template:
        if not self.uses_remote_templates:
            try:
                return self._env.get_template(name)
            except JinjaTemplateError as exc:
                raise TemplateError(f"テンプレートを読み込めません: {name} ({exc})") from exc
        cached = self._remote_cache.get(name)
        if cached is not None:
            return cached
        source = await self._fetch_remote(name)
        try:
            template = self._env.from_string(source)
        except JinjaTemplateError as exc:
            raise TemplateError(f"テンプレートの構文が不正です: {name} ({exc})") from exc
        self._remote_cache[name] = template
        return template

    async def _fetch_remote(self, name: str) -> str:
        if self._client is None:
            raise TemplateError("リモートテンプレートの取得には HTTP クライアントが必要です。")
        url = f"{self._config.base_url}{REMOTE_TEMPLATES_PATH}{name}"
        self._logger.debug("テンプレートを取得しています: %s", url)
        try:
            response = await self._client.get(url)
            response.raise_for_status()
        except httpx.HTTPError as exc:
            raise TemplateError(f"テンプレートの取得に失敗しました: {url} ({exc})") from exc
        return response.text
