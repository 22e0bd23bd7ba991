"""取得済みページの DOM を解析向けに整形するユーティリティ。"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Iterable

from bs4 import BeautifulSoup, Comment, NavigableString, Tag

IGNORE_ELEMENTS: tuple[str, ...] = (
    "script",
    "style",
    "noscript",
    "link",
    "meta",
    "iframe",
    "svg",
    "source",
    "template",
)
DEFAULT_ATTRIBUTES: tuple[str, ...] = ("class", "name", "id", "property", "content")

_DATA_URL_PREFIX = re.compile(r"^data:image/[\w.+-]+;base64,", re.IGNORECASE)
_WHITESPACE = re.compile(r"\s+")


class PageInputError(ValueError):
    """ページ入力が不正な場合に送出される例外。"""


@dataclass(slots=True, frozen=True)
class PageContent:
    """1 ページ分の整形済み DOM とスクリーンショット。セッション中は読み取り専用です。"""

    document: BeautifulSoup
    screenshot: str = ""

    @property
    def body(self) -> str:
        body = self.document.body
        if body is None:
            return str(self.document)
        return str(body)

    @property
    def html(self) -> str:
        return str(self.document)


def prepare_document(
    html: str,
    *,
    keep_attributes: Iterable[str] = DEFAULT_ATTRIBUTES,
    ignore_elements: Iterable[str] = IGNORE_ELEMENTS,
) -> BeautifulSoup:
    """HTML を解析し、コメント・不要要素・不要属性・空要素を取り除きます。"""

    soup = BeautifulSoup(html, "html.parser")
    _minify(soup)
    _remove_attributes(soup, set(keep_attributes))
    _remove_elements(soup, ignore_elements)
    _remove_empty_elements(soup)
    return soup


def create_page(html: str, screenshot: str | None = None) -> PageContent:
    if not isinstance(html, str) or not html.strip():
        raise PageInputError("ページの HTML が空です。")
    if screenshot is not None and not isinstance(screenshot, str):
        raise PageInputError("スクリーンショットは base64 文字列で指定してください。")
    return PageContent(document=prepare_document(html), screenshot=normalize_screenshot(screenshot))


def normalize_screenshot(value: str | None) -> str:
    """data URL 形式であれば base64 部分のみを取り出します。"""

    if not value:
        return ""
    return _DATA_URL_PREFIX.sub("", value.strip(), count=1)


def _minify(soup: BeautifulSoup) -> None:
    for comment in soup.find_all(string=lambda text: isinstance(text, Comment)):
        comment.extract()
    for text in soup.find_all(string=True):
        if not isinstance(text, NavigableString) or isinstance(text, Comment):
            continue
        parent = text.parent
        if parent is not None and parent.name in {"pre", "textarea"}:
            continue
        if not text.strip():
            text.extract()
            continue
        collapsed = _WHITESPACE.sub(" ", str(text))
        if collapsed != str(text):
            text.replace_with(collapsed)


def _remove_attributes(soup: BeautifulSoup, keep: set[str]) -> None:
    for element in soup.find_all(True):
        element.attrs = {name: value for name, value in element.attrs.items() if name in keep}


def _remove_elements(soup: BeautifulSoup, names: Iterable[str]) -> None:
    for name in names:
        for element in soup.select(name):
            element.decompose()


def _remove_empty_elements(soup: BeautifulSoup) -> None:
    for element in list(soup.find_all(True)):
        if not isinstance(element, Tag) or element.decomposed:
            continue
        if not element.contents or not element.get_text().strip():
            element.decompose()
