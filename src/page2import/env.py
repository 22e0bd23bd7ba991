"""環境変数およびバックエンド接続設定のローダー。"""

from __future__ import annotations

from dataclasses import dataclass
import os
from pathlib import Path
from typing import Iterable, Mapping

from .config import BuilderConfig

DEFAULT_ENV_NAME = ".env"
API_KEY_ENV = "PAGE2IMPORT_API_KEY"
BASE_URL_ENV = "PAGE2IMPORT_BASE_URL"
ENVIRONMENT_ENV = "PAGE2IMPORT_ENV"


@dataclass(slots=True)
class BuilderSettings:
    """環境変数から読み取った接続設定。"""

    api_key: str | None
    base_url: str | None
    environment: str | None

    def to_config(self, base: BuilderConfig | None = None) -> BuilderConfig:
        return BuilderConfig.from_args(
            api_key=self.api_key,
            base_url=self.base_url,
            environment=self.environment,
            base=base,
        )


def parse_env_text(text: str) -> dict[str, str]:
    """`.env` 形式のテキストを辞書へ変換します。

    `export KEY=VALUE` 形式と、引用符で囲まれていない値の行末コメント (` # ...`) に対応します。
    """

    values: dict[str, str] = {}
    for raw_line in text.splitlines():
        entry = _parse_env_line(raw_line)
        if entry is not None:
            values[entry[0]] = entry[1]
    return values


def load_env_file(path: str | Path | None = None) -> dict[str, str]:
    """`.env` ファイルを読み込み、未設定の環境変数を補完します。"""

    env_path = _locate_env_file(path)
    if env_path is None or not env_path.exists():
        return {}
    loaded = parse_env_text(env_path.read_text(encoding="utf-8"))
    for key, value in loaded.items():
        os.environ.setdefault(key, value)
    return loaded


def current_builder_settings(source: Mapping[str, str] | None = None) -> BuilderSettings:
    """現在の環境変数から接続設定を読み取ります。空文字は未設定として扱います。"""

    env = os.environ if source is None else source
    return BuilderSettings(
        api_key=env.get(API_KEY_ENV) or None,
        base_url=env.get(BASE_URL_ENV) or None,
        environment=env.get(ENVIRONMENT_ENV) or None,
    )


def _locate_env_file(path: str | Path | None) -> Path | None:
    if path is not None:
        candidate = Path(path)
        if candidate.is_dir():
            candidate = candidate / DEFAULT_ENV_NAME
        return candidate
    candidates: Iterable[Path] = (
        Path.cwd() / DEFAULT_ENV_NAME,
        Path(__file__).resolve().parents[2] / DEFAULT_ENV_NAME,
    )
    for candidate in candidates:
        if candidate.exists():
            return candidate
    return None


def _strip_quotes(value: str) -> str:
    if not value:
        return value
    if len(value) >= 2 and value[0] == value[-1] and value[0] in {'"', "'"}:
        return value[1:-1]
    return value


def _parse_env_line(raw_line: str) -> tuple[str, str] | None:
    line = raw_line.strip()
    if not line or line.startswith("#"):
        return None
    if line.startswith("export "):
        line = line[len("export "):].lstrip()
    key, separator, value = line.partition("=")
    key = key.strip()
    if not separator or not key:
        return None
    value = value.strip()
    if value[:1] in {'"', "'"}:
        return key, _strip_quotes(value)
    comment = value.find(" #")
    if comment >= 0:
        value = value[:comment].rstrip()
    return key, value
