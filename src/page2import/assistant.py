"""解析バックエンドへの問い合わせと、その応答のデコード。

ページ本文と自然言語の指示をプロンプトに組み立ててバックエンドへ送り、
返ってきた候補 (choices) からセレクタや生成スクリプトを取り出します。
``finish_reason`` が ``"stop"`` の候補だけを採用し、途中で打ち切られた候補は
正しい JSON を含んでいても無視します。
"""

from __future__ import annotations

import json
import re
from typing import Any, Callable, Mapping, TypeVar

from .rules import PartialBlockRule
from .service import AssistantCommand, AssistantService, build_payload
from .templates import TemplateRenderer

T = TypeVar("T")

DEFAULT_ROOT_SELECTOR = "main"
NORMAL_STOP = "stop"

JSON_BLOCK = re.compile(r"```json([\s\S]*?)```")
JAVASCRIPT_BLOCK = re.compile(r"```javascript([\s\S]*?)```")

PROMPT_TEMPLATES: Mapping[str, str] = {
    "findMainContent": "prompt-main-content.txt.jinja",
    "findRemovalSelectors": "prompt-elements.txt.jinja",
    "findBlockSelectors": "prompt-block.txt.jinja",
    "findBlockCells": "prompt-cells.txt.jinja",
    "generatePageTransformation": "prompt-transform.txt.jinja",
}


class AssistantResponseError(ValueError):
    """応答に含まれる構造化データを解釈できない場合に送出される例外。"""


def reduce_response(
    response: Mapping[str, Any],
    initial: T,
    parser: Callable[[str, T], T | None],
) -> T:
    """正常終了した候補のメッセージだけを parser で畳み込みます。"""

    value = initial
    for choice in response.get("choices") or []:
        if not isinstance(choice, Mapping) or choice.get("finish_reason") != NORMAL_STOP:
            continue
        message = choice.get("message")
        content = message.get("content") if isinstance(message, Mapping) else None
        if not isinstance(content, str):
            continue
        result = parser(content, value)
        if result is not None:
            value = result
    return value


def load_json_blocks(content: str, *, fenced_only: bool = False) -> list[Any]:
    blocks = JSON_BLOCK.findall(content)
    if not blocks and not fenced_only:
        blocks = [content]
    try:
        return [json.loads(block) for block in blocks]
    except json.JSONDecodeError as exc:
        raise AssistantResponseError(f"アシスタントの応答に含まれる JSON を解析できません: {exc.msg}") from exc


def extract_strings(value: Any) -> list[str]:
    """入れ子になった dict / list から文字列だけを出現順に取り出します。"""

    if isinstance(value, str):
        return [value]
    if isinstance(value, Mapping):
        return [text for item in value.values() for text in extract_strings(item)]
    if isinstance(value, (list, tuple)):
        return [text for item in value for text in extract_strings(item)]
    return []


def extract_scripts(content: str) -> list[str]:
    return [match.strip() + "\n" for match in JAVASCRIPT_BLOCK.findall(content) if match.strip()]


def escape_document(document: str) -> str:
    return document.replace('"', '\\"')


def _first_selector(payload: Any) -> str | None:
    if isinstance(payload, str):
        return payload.strip() or None
    if isinstance(payload, Mapping):
        for value in payload.values():
            if isinstance(value, str) and value.strip():
                return value.strip()
    return None


class ImportAssistant:
    """1 ページ分の本文とスクリーンショットを束ねた解析ゲートウェイ。"""

    def __init__(
        self,
        document: str,
        screenshot: str,
        *,
        service: AssistantService,
        templates: TemplateRenderer,
    ) -> None:
        self._document = escape_document(document)
        self._screenshot = screenshot
        self._service = service
        self._templates = templates

    async def find_root(self) -> str:
        response = await self._ask("findMainContent", {"content": self._document})

        def parse(content: str, current: str) -> str | None:
            for payload in load_json_blocks(content):
                selector = _first_selector(payload)
                if selector:
                    return selector
            return None

        return reduce_response(response, DEFAULT_ROOT_SELECTOR, parse)

    async def find_cleanup_selectors(self, instruction: str) -> list[str]:
        if not instruction:
            return []
        response = await self._ask(
            "findRemovalSelectors", {"names": instruction, "content": self._document}
        )

        def parse(content: str, selectors: list[str]) -> list[str]:
            for payload in load_json_blocks(content):
                selectors.extend(extract_strings(payload))
            return selectors

        return reduce_response(response, [], parse)

    async def find_block_selectors(self, instruction: str) -> list[PartialBlockRule]:
        if not instruction:
            return []
        response = await self._ask(
            "findBlockSelectors",
            {"pattern": instruction, "content": self._document},
            screenshot=self._screenshot,
        )
        rule = PartialBlockRule()

        def parse(content: str, rules: list[PartialBlockRule]) -> list[PartialBlockRule]:
            for payload in load_json_blocks(content, fenced_only=True):
                rule.selectors.extend(extract_strings(payload))
            return rules

        return reduce_response(response, [rule], parse)

    async def find_cell_parser_scripts(self, selectors: list[str], instruction: str) -> list[str]:
        if not selectors or not instruction:
            return []
        # 先頭のセレクタのみを対象にする
        selector = selectors[0]
        response = await self._ask(
            "findBlockCells",
            {"selector": selector, "pattern": instruction, "content": self._document},
            screenshot=self._screenshot,
        )

        def parse(content: str, scripts: list[str]) -> list[str]:
            scripts.extend(extract_scripts(content))
            return scripts

        return reduce_response(response, [], parse)

    async def generate_transformer_scripts(self, instruction: str) -> list[str]:
        if not instruction:
            return []
        response = await self._ask(
            "generatePageTransformation", {"pattern": instruction, "content": self._document}
        )

        def parse(content: str, scripts: list[str]) -> list[str]:
            scripts.extend(extract_scripts(content))
            return scripts

        return reduce_response(response, [], parse)

    async def _ask(
        self,
        command: AssistantCommand,
        data: Mapping[str, Any],
        *,
        screenshot: str | None = None,
    ) -> Mapping[str, Any]:
        prompt = await self._templates.merge(PROMPT_TEMPLATES[command], data)
        return await self._service.fetch_prompt(build_payload(command, prompt, screenshot))
