"""page2import の設定モデル群。"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, Literal, Mapping, Sequence

Environment = Literal["dev", "prod"]


@dataclass(slots=True, frozen=True)
class EndpointConfig:
    """解析バックエンドなど外部サービスの接続先。"""

    assistant_url: str
    github_url: str = "https://api.github.com"


ENDPOINTS: Mapping[str, EndpointConfig] = {
    "prod": EndpointConfig(assistant_url="https://spacecat.experiencecloud.live/api/v1"),
    "dev": EndpointConfig(assistant_url="https://spacecat.experiencecloud.live/api/ci"),
}


@dataclass(slots=True, frozen=True)
class BuilderConfig:
    """ビルダー全体で共有する設定値。

    プロセス全体のグローバル状態は持たず、ファクトリ生成時に 1 度だけ組み立てて
    各コンポーネントへ参照として渡します。
    """

    api_key: str = ""
    base_url: str = ""
    environment: Environment = "prod"
    request_timeout: float = 120.0

    def __post_init__(self) -> None:
        if self.environment not in ENDPOINTS:
            choices = ", ".join(sorted(ENDPOINTS))
            raise ValueError(f"未知の environment です: {self.environment} (指定可能: {choices})")

    @property
    def endpoints(self) -> EndpointConfig:
        return ENDPOINTS[self.environment]

    def merge(self, **overrides: Any) -> "BuilderConfig":
        """指定された値で上書きした新しい設定を返します。``None`` は既存値を保持します。"""

        changes = {key: value for key, value in overrides.items() if value is not None}
        return replace(self, **changes)

    @classmethod
    def from_args(
        cls,
        api_key: str | None = None,
        base_url: str | None = None,
        environment: str | None = None,
        base: "BuilderConfig | None" = None,
    ) -> "BuilderConfig":
        config = base or cls()
        normalized_url = base_url.strip().rstrip("/") if base_url else None
        return config.merge(api_key=api_key, base_url=normalized_url, environment=environment)


@dataclass(slots=True)
class FetchConfig:
    """Playwright でページを取得する際の設定。"""

    wait_until: str = "networkidle"
    navigation_timeout: float = 30.0
    settle_timeout: float = 5.0
    settle_quiet_period: float = 0.1
    max_fetch_attempts: int = 2
    timeout_backoff_factor: float = 1.6
    full_page_screenshot: bool = True
    user_agent: str = (
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/114.0.5735.199 Safari/537.36"
    )
    launch_options: Mapping[str, Any] | None = None


@dataclass(slots=True)
class OutputConfig:
    """CLI が成果物を書き出すディレクトリの設定。"""

    root: Path
    logs_dir: Path = field(init=False)
    manifest_path: Path = field(init=False)
    rules_path: Path = field(init=False)

    def __post_init__(self) -> None:
        self.logs_dir = self.root / "logs"
        self.manifest_path = self.root / "manifest.json"
        self.rules_path = self.root / "import-rules.json"


def parse_named_prompts(values: Sequence[str]) -> list[tuple[str, str]]:
    """``NAME=PROMPT`` 形式の文字列を (name, prompt) の組へ分解します。"""

    pairs: list[tuple[str, str]] = []
    for raw in values:
        name, separator, prompt = raw.partition("=")
        if not separator:
            raise ValueError(f"NAME=PROMPT 形式で指定してください: {raw}")
        name = name.strip()
        prompt = prompt.strip()
        if not name or not prompt:
            raise ValueError(f"名前とプロンプトの両方が必要です: {raw}")
        pairs.append((name, prompt))
    return pairs
