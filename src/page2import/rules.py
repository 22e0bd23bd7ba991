"""インポートルール文書 (root / cleanup / blocks / transformers) のモデル。"""

from __future__ import annotations

import json
import re
from dataclasses import dataclass, field
from typing import Any, Iterable, Mapping

_IDENTIFIER = re.compile(r"^[A-Za-z_$][\w$]*$")


@dataclass(slots=True)
class BlockRule:
    """繰り返し出現するコンテンツ領域と、それを特定するセレクタ群。"""

    type: str
    selectors: list[str] = field(default_factory=list)
    insert_mode: str | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"type": self.type}
        if self.selectors:
            data["selectors"] = list(self.selectors)
        if self.insert_mode:
            data["insertMode"] = self.insert_mode
        return data

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "BlockRule":
        block_type = data.get("type")
        if not isinstance(block_type, str) or not block_type:
            raise ValueError(f"ブロックルールに type がありません: {data!r}")
        return cls(
            type=block_type,
            selectors=[str(selector) for selector in data.get("selectors") or []],
            insert_mode=data.get("insertMode") or data.get("insert_mode"),
        )


@dataclass(slots=True)
class PartialBlockRule:
    """解析結果として得られる、type 未確定のブロックルール。"""

    selectors: list[str] = field(default_factory=list)
    insert_mode: str | None = None

    def with_type(self, block_type: str) -> BlockRule:
        return BlockRule(type=block_type, selectors=list(self.selectors), insert_mode=self.insert_mode)


@dataclass(slots=True)
class TransformRule:
    name: str

    def to_dict(self) -> dict[str, Any]:
        return {"name": self.name}


class ImportRules:
    """ページのインポート方法を記述する可変のルール文書。"""

    def __init__(
        self,
        root: str | None = None,
        cleanup: Iterable[str] = (),
        blocks: Iterable[BlockRule] = (),
        transformers: Iterable[TransformRule] = (),
    ) -> None:
        self.root = root or None
        self.cleanup: list[str] = list(cleanup)
        self.blocks: list[BlockRule] = list(blocks)
        self.transformers: list[TransformRule] = list(transformers)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any] | None) -> "ImportRules":
        """永続化済みのルール文書から新しいインスタンスを組み立てます。"""

        if not data:
            return cls()
        root = data.get("root")
        if root is not None and not isinstance(root, str):
            raise ValueError(f"root はセレクタ文字列である必要があります: {root!r}")
        return cls(
            root=root,
            cleanup=[str(selector) for selector in data.get("cleanup") or []],
            blocks=[BlockRule.from_dict(item) for item in data.get("blocks") or []],
            transformers=[
                TransformRule(name=str(item["name"]))
                for item in data.get("transformers") or []
                if item.get("name")
            ],
        )

    def set_root(self, selector: str) -> None:
        self.root = selector

    def add_cleanup(self, selectors: Iterable[str]) -> None:
        # 重複は解消せず、与えられた順にそのまま追加する
        self.cleanup.extend(selectors)

    def add_block(self, rule: BlockRule) -> None:
        self.blocks.append(rule)

    def find_block(self, block_type: str) -> BlockRule | None:
        return next((rule for rule in self.blocks if rule.type == block_type), None)

    def add_transformer(self, rule: TransformRule) -> None:
        if self.find_transformer(rule.name) is None:
            self.transformers.append(rule)

    def find_transformer(self, name: str) -> TransformRule | None:
        return next((rule for rule in self.transformers if rule.name == name), None)

    def block_types(self) -> list[str]:
        """登録順に重複を除いたブロック種別を返します。"""

        return list(dict.fromkeys(rule.type for rule in self.blocks))

    def build(self) -> dict[str, Any]:
        """正規化されたルール文書を返します。同じ状態からは常に同じ値になります。"""

        data: dict[str, Any] = {}
        if self.root:
            data["root"] = self.root
        data["cleanup"] = list(self.cleanup)
        data["blocks"] = [rule.to_dict() for rule in self.blocks]
        data["transformers"] = [rule.to_dict() for rule in self.transformers]
        return data

    def to_json(self) -> str:
        return json.dumps(self.build(), ensure_ascii=False, indent=2)


def stringify_object(value: Any, indent: int = 2) -> str:
    """値を JavaScript のオブジェクトリテラルとして整形します。

    キーは識別子として有効な場合のみ引用符を外し、文字列は単一引用符で囲みます。
    """

    return _stringify(value, indent, 0)


def _stringify(value: Any, indent: int, depth: int) -> str:
    if isinstance(value, str):
        escaped = value.replace("\\", "\\\\").replace("'", "\\'").replace("\n", "\\n")
        return f"'{escaped}'"
    if value is None or isinstance(value, (bool, int, float)):
        return json.dumps(value)
    pad = " " * (indent * (depth + 1))
    closing_pad = " " * (indent * depth)
    if isinstance(value, Mapping):
        if not value:
            return "{}"
        items = [
            f"{pad}{_format_key(str(key))}: {_stringify(item, indent, depth + 1)}"
            for key, item in value.items()
        ]
        return "{\n" + ",\n".join(items) + "\n" + closing_pad + "}"
    if isinstance(value, (list, tuple)):
        if not value:
            return "[]"
        items = [f"{pad}{_stringify(item, indent, depth + 1)}" for item in value]
        return "[\n" + ",\n".join(items) + "\n" + closing_pad + "]"
    raise TypeError(f"JavaScript リテラルへ変換できない値です: {type(value).__name__}")


def _format_key(key: str) -> str:
    if _IDENTIFIER.match(key):
        return key
    return json.dumps(key, ensure_ascii=False)
