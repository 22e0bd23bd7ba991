from __future__ import annotations

import os
from pathlib import Path

from page2import import env


def _unset(monkeypatch, *names: str) -> None:
    # load_env_file が書き込んだ値もテスト終了時に元へ戻るよう記録しておく
    for name in names:
        monkeypatch.setenv(name, "")
        monkeypatch.delenv(name)


def test_load_env_file_populates_missing_variables(tmp_path: Path, monkeypatch) -> None:
    env_path = tmp_path / ".env"
    env_path.write_text(
        """
        # comment
        PAGE2IMPORT_API_KEY=key-test
        export PAGE2IMPORT_ENV="dev"
        PAGE2IMPORT_BASE_URL=https://ignored.example.com
        """,
        encoding="utf-8",
    )
    _unset(monkeypatch, "PAGE2IMPORT_API_KEY", "PAGE2IMPORT_ENV")
    monkeypatch.setenv("PAGE2IMPORT_BASE_URL", "https://preserve.example.com")

    loaded = env.load_env_file(env_path)

    assert loaded["PAGE2IMPORT_API_KEY"] == "key-test"
    assert loaded["PAGE2IMPORT_ENV"] == "dev"
    assert os.environ["PAGE2IMPORT_API_KEY"] == "key-test"
    # 既存の環境変数は上書きしない
    assert os.environ["PAGE2IMPORT_BASE_URL"] == "https://preserve.example.com"


def test_current_builder_settings_treats_empty_as_unset() -> None:
    settings = env.current_builder_settings(
        {"PAGE2IMPORT_API_KEY": "key", "PAGE2IMPORT_BASE_URL": "", "PAGE2IMPORT_ENV": "dev"}
    )

    config = settings.to_config()

    assert settings.base_url is None
    assert config.api_key == "key"
    assert config.base_url == ""
    assert config.environment == "dev"


def test_parse_env_text_handles_quotes_comments_and_export() -> None:
    values = env.parse_env_text(
        """
        export  PAGE2IMPORT_ENV=dev
        PAGE2IMPORT_API_KEY='key # not a comment'
        PAGE2IMPORT_BASE_URL=https://templates.example.com  # trailing comment
        EMPTY=
        not a pair
        =missing-key
        """
    )

    assert values == {
        "PAGE2IMPORT_ENV": "dev",
        "PAGE2IMPORT_API_KEY": "key # not a comment",
        "PAGE2IMPORT_BASE_URL": "https://templates.example.com",
        "EMPTY": "",
    }


def test_load_env_file_accepts_directory_and_missing_file(tmp_path: Path, monkeypatch) -> None:
    _unset(monkeypatch, "PAGE2IMPORT_API_KEY")
    (tmp_path / ".env").write_text("PAGE2IMPORT_API_KEY=from-dir\n", encoding="utf-8")

    assert env.load_env_file(tmp_path) == {"PAGE2IMPORT_API_KEY": "from-dir"}
    assert env.load_env_file(tmp_path / "missing.env") == {}
