"""Playwright を活用してページを取得するユーティリティ。"""

from __future__ import annotations

import asyncio
import base64
import logging
from dataclasses import dataclass
from pathlib import Path

from charset_normalizer import from_bytes as detect_charset
from playwright.async_api import Browser, Page, async_playwright

from .config import FetchConfig
from .documents import DocumentCache, DocumentEntry
from .events import ImportEvents, import_events
from .page import PageContent, create_page


logger = logging.getLogger(__name__)


@dataclass(slots=True)
class FetchedPage:
    """ブラウザで取得したページの HTML とスクリーンショット。"""

    url: str
    html: str
    screenshot: str
    title: str = ""


_WAIT_FOR_DOM_SETTLE = """
([timeout, quietPeriod]) => new Promise((resolve) => {
    let timer = null;
    const observer = new MutationObserver(() => {
        if (timer) {
            clearTimeout(timer);
        }
        timer = setTimeout(() => {
            observer.disconnect();
            resolve();
        }, quietPeriod);
    });
    observer.observe(document, {
        childList: true,
        subtree: true,
        attributes: true,
        characterData: true,
    });
    setTimeout(() => {
        observer.disconnect();
        resolve();
    }, timeout);
})
"""


class PageFetcher:
    """ヘッドレスブラウザで URL を開き、DOM が落ち着いた時点の HTML を取得します。"""

    def __init__(self, config: FetchConfig, events: ImportEvents = import_events) -> None:
        self._config = config
        self._events = events

    async def fetch(self, url: str) -> FetchedPage:
        async with async_playwright() as playwright:
            launch_kwargs = dict(self._config.launch_options) if self._config.launch_options else {}
            browser = await playwright.chromium.launch(**launch_kwargs)
            try:
                return await self._fetch_with_retries(browser, url)
            finally:
                await browser.close()

    async def _fetch_with_retries(self, browser: Browser, url: str) -> FetchedPage:
        attempts = max(1, self._config.max_fetch_attempts)
        timeout = self._config.navigation_timeout
        for attempt in range(1, attempts + 1):
            wait_until = self._config.wait_until if attempt == 1 else "load"
            try:
                return await self._fetch_single(browser, url, wait_until, timeout)
            except Exception as error:
                if not self._is_playwright_timeout(error) or attempt >= attempts:
                    raise
                logger.warning(
                    "Playwright タイムアウト (%s, wait_until=%s, timeout=%.1fs)。再試行 (%d/%d)",
                    url,
                    wait_until,
                    timeout,
                    attempt,
                    attempts,
                )
                timeout *= max(1.0, self._config.timeout_backoff_factor)
                await asyncio.sleep(0.2)
        raise RuntimeError(f"ページの取得に失敗しました: {url}")

    async def _fetch_single(self, browser: Browser, url: str, wait_until: str, timeout: float) -> FetchedPage:
        context = await browser.new_context(user_agent=self._config.user_agent)
        try:
            page = await context.new_page()
            await page.goto(url, wait_until=wait_until, timeout=timeout * 1000)
            self._events.emit("progress", f"{url} の DOM が安定するのを待っています...")
            await self._wait_for_dom_to_settle(page)
            title = await page.title()
            html = await page.evaluate("() => document.documentElement.outerHTML")
            image = await page.screenshot(full_page=self._config.full_page_screenshot, type="png")
            self._events.emit("progress", f"読み込み完了: {title} ({len(html)} bytes)")
            return FetchedPage(
                url=url,
                html=html,
                screenshot=base64.b64encode(image).decode("ascii"),
                title=title,
            )
        finally:
            await context.close()

    async def _wait_for_dom_to_settle(self, page: Page) -> None:
        await page.evaluate(
            _WAIT_FOR_DOM_SETTLE,
            [self._config.settle_timeout * 1000, self._config.settle_quiet_period * 1000],
        )

    def _is_playwright_timeout(self, error: Exception) -> bool:
        name = error.__class__.__name__
        module = getattr(error.__class__, "__module__", "")
        return name == "TimeoutError" and "playwright" in module


async def fetch_document(
    url: str,
    fetcher: PageFetcher,
    cache: DocumentCache,
    events: ImportEvents = import_events,
) -> PageContent:
    """キャッシュにあればそれを使い、なければ取得して整形済み DOM をキャッシュへ書き戻します。"""

    events.emit("start", f"{url} からドキュメントを取得しています")
    entry = cache.get(url)
    if entry is None:
        fetched = await fetcher.fetch(url)
        html, screenshot = fetched.html, fetched.screenshot
    else:
        events.emit("progress", f"{url} をドキュメントキャッシュから読み込みました")
        html, screenshot = entry.content, entry.screenshot
    page = create_page(html, screenshot)
    cache.put(DocumentEntry(url=url, content=page.html, screenshot=page.screenshot))
    events.emit("complete")
    return page


def read_local_html(path: Path) -> str:
    """ローカル HTML を文字コードを推定しながら読み込みます。"""

    data = path.read_bytes()
    if not data:
        return ""
    encoding = "utf-8"
    result = detect_charset(data).best()
    if result is not None and result.encoding:
        encoding = result.encoding
    try:
        return data.decode(encoding, errors="replace")
    except LookupError:
        logger.debug("未知のエンコーディング %s のため UTF-8 フォールバックを使用します。", encoding)
    return data.decode("utf-8", errors="replace")
