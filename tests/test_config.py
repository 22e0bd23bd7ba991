from __future__ import annotations

from pathlib import Path

import pytest

from page2import.config import BuilderConfig, OutputConfig, parse_named_prompts


def test_from_args_keeps_existing_values_when_not_given() -> None:
    base = BuilderConfig(api_key="key", base_url="https://templates.example.com", environment="dev")

    config = BuilderConfig.from_args(api_key=None, base_url="https://other.example.com/", base=base)

    assert config.api_key == "key"
    assert config.base_url == "https://other.example.com"
    assert config.environment == "dev"
    assert base.base_url == "https://templates.example.com"


def test_endpoints_follow_environment() -> None:
    assert BuilderConfig().endpoints.assistant_url.endswith("/api/v1")
    assert BuilderConfig(environment="dev").endpoints.assistant_url.endswith("/api/ci")


def test_unknown_environment_is_rejected() -> None:
    with pytest.raises(ValueError):
        BuilderConfig(environment="stage")  # type: ignore[arg-type]


def test_output_config_derives_paths(tmp_path: Path) -> None:
    output = OutputConfig(tmp_path)

    assert output.logs_dir == tmp_path / "logs"
    assert output.rules_path.name == "import-rules.json"


def test_parse_named_prompts_splits_on_first_equals() -> None:
    assert parse_named_prompts(["hero = big banner", "cards=a=b"]) == [("hero", "big banner"), ("cards", "a=b")]


@pytest.mark.parametrize("value", ["hero", "=prompt", "hero="])
def test_parse_named_prompts_rejects_incomplete_values(value: str) -> None:
    with pytest.raises(ValueError):
        parse_named_prompts([value])
