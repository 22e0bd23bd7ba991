"""page2import のコマンドラインインターフェース。"""

from __future__ import annotations

import argparse
import asyncio
import base64
import json
import logging
import sys
from pathlib import Path
from typing import Any, Iterable

from .builder import ImportBuilder
from .config import BuilderConfig, OutputConfig, parse_named_prompts
from .documents import DocumentCache
from .env import current_builder_settings, load_env_file
from .events import EventRecorder, import_events
from .factory import ImportBuilderFactory
from .manifest import write_manifest, write_manifest_index
from .rendering import read_local_html


def parse_args(argv: Iterable[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Web ページからインポートプロジェクト (スクリプト一式) を生成します")
    source = parser.add_mutually_exclusive_group(required=True)
    source.add_argument("--url", dest="url", type=str, default=None, help="取り込み対象ページの URL")
    source.add_argument("--html", dest="html_path", type=Path, default=None, help="取得済み HTML ファイルへのパス")
    parser.add_argument("--out", dest="output_dir", type=Path, required=True, help="生成成果物を書き出すディレクトリ")
    parser.add_argument(
        "--screenshot",
        dest="screenshot_path",
        type=Path,
        default=None,
        help="--html と組み合わせるスクリーンショット (PNG) へのパス",
    )
    parser.add_argument("--rules", dest="rules_path", type=Path, default=None, help="既存のインポートルール (JSON) へのパス")
    parser.add_argument(
        "--documents",
        dest="documents_path",
        type=Path,
        default=None,
        help="取得済みページのキャッシュ (JSON)。存在しなければ新規作成します",
    )
    parser.add_argument("--verbose", dest="verbose", action="store_true", help="進捗ログを標準出力へ表示")

    steps_group = parser.add_argument_group("ビルド手順")
    steps_group.add_argument(
        "--cleanup", dest="cleanup", action="append", default=[], help="削除したい要素の説明 (複数指定可)"
    )
    steps_group.add_argument(
        "--block", dest="blocks", action="append", default=[], help="NAME=PROMPT 形式のブロック指定 (複数指定可)"
    )
    steps_group.add_argument(
        "--cell-parser",
        dest="cell_parsers",
        action="append",
        default=[],
        help="NAME=PROMPT 形式のセルパーサー指定 (複数指定可)",
    )
    steps_group.add_argument(
        "--transformer",
        dest="transformers",
        action="append",
        default=[],
        help="NAME=PROMPT 形式のページ変換指定 (複数指定可)",
    )

    backend_group = parser.add_argument_group("接続設定")
    backend_group.add_argument("--api-key", dest="api_key", type=str, default=None, help="解析バックエンドの API キー")
    backend_group.add_argument(
        "--base-url", dest="base_url", type=str, default=None, help="テンプレートの取得元 URL (省略時は同梱テンプレート)"
    )
    backend_group.add_argument(
        "--env", dest="environment", choices=("dev", "prod"), default=None, help="接続先の環境"
    )
    backend_group.add_argument("--env-file", dest="env_file", type=Path, default=None, help=".env ファイルへのパス")
    return parser.parse_args(list(argv) if argv is not None else None)


def main(argv: Iterable[str] | None = None) -> None:
    args = parse_args(argv)
    steps = _validate_args(args)
    _configure_logging(args.verbose)
    load_env_file(args.env_file)
    config = BuilderConfig.from_args(
        api_key=args.api_key,
        base_url=args.base_url,
        environment=args.environment,
        base=current_builder_settings().to_config(),
    )
    try:
        rules = _load_rules(args.rules_path)
    except ValueError as exc:
        print(f"[エラー] --rules: {exc}", file=sys.stderr)
        raise SystemExit(2)
    summary = asyncio.run(_run(args, config, rules, steps))
    print(json.dumps(summary, ensure_ascii=False))


async def _run(
    args: argparse.Namespace,
    config: BuilderConfig,
    rules: dict[str, Any] | None,
    steps: dict[str, list[Any]],
) -> dict[str, Any]:
    output = OutputConfig(args.output_dir)
    recorder = EventRecorder(output.logs_dir / "build_summary.json", output_dir=str(output.root))
    recorder.attach(import_events)
    try:
        async with ImportBuilderFactory(config, events=import_events) as factory:
            documents = DocumentCache.load(args.documents_path) if args.documents_path else None
            if args.url:
                builder = await factory.create_from_url(args.url, documents=documents, rules=rules)
            else:
                screenshot = _read_screenshot(args.screenshot_path)
                builder = await factory.create(read_local_html(args.html_path), screenshot, rules=rules)
            await _run_steps(builder, steps)
            if documents is not None and args.documents_path is not None:
                documents.save(args.documents_path)
    finally:
        recorder.detach(import_events)

    written = write_manifest(output.root, builder.manifest.files)
    write_manifest_index(output.manifest_path, builder.manifest)
    output.rules_path.write_text(builder.rules.to_json(), encoding="utf-8")
    recorder.record("completed", files=len(written), rules=str(output.rules_path))
    return {
        "files": len(written),
        "blocks": builder.rules.block_types(),
        "root": builder.rules.root,
        "output": str(output.root),
    }


async def _run_steps(builder: ImportBuilder, steps: dict[str, list[Any]]) -> None:
    await builder.build_project()
    for prompt in steps["cleanup"]:
        await builder.add_cleanup(prompt)
    for name, prompt in steps["blocks"]:
        await builder.add_block(name, prompt)
    for name, prompt in steps["cell_parsers"]:
        await builder.add_cell_parser(name, prompt)
    for name, prompt in steps["transformers"]:
        await builder.add_page_transformer(name, prompt)


def _validate_args(args: argparse.Namespace) -> dict[str, list[Any]]:
    errors: list[str] = []
    if args.html_path is not None and not args.html_path.is_file():
        errors.append(f"[エラー] HTML ファイルが見つかりません: {args.html_path}")
    if args.screenshot_path is not None:
        if args.html_path is None:
            errors.append("[エラー] --screenshot は --html と組み合わせて指定してください。")
        elif not args.screenshot_path.is_file():
            errors.append(f"[エラー] スクリーンショットが見つかりません: {args.screenshot_path}")
    if args.rules_path is not None and not args.rules_path.is_file():
        errors.append(f"[エラー] ルールファイルが見つかりません: {args.rules_path}")
    if args.output_dir.exists() and not args.output_dir.is_dir():
        errors.append(f"[エラー] 出力パスがディレクトリではありません: {args.output_dir}")

    steps: dict[str, list[Any]] = {
        "cleanup": [prompt.strip() for prompt in args.cleanup if prompt.strip()],
    }
    for key, option in (("blocks", "--block"), ("cell_parsers", "--cell-parser"), ("transformers", "--transformer")):
        try:
            steps[key] = parse_named_prompts(getattr(args, key))
        except ValueError as exc:
            errors.append(f"[エラー] {option}: {exc}")
            steps[key] = []

    if errors:
        for message in errors:
            print(message, file=sys.stderr)
        raise SystemExit(2)

    args.output_dir = args.output_dir.resolve()
    return steps


def _load_rules(path: Path | None) -> dict[str, Any] | None:
    if path is None:
        return None
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        raise ValueError(f"JSON の解析に失敗しました ({exc.msg})") from exc
    if not isinstance(data, dict):
        raise ValueError("JSON オブジェクトを指定してください。")
    return data


def _read_screenshot(path: Path | None) -> str | None:
    if path is None:
        return None
    return base64.b64encode(path.read_bytes()).decode("ascii")


def _configure_logging(verbose: bool) -> None:
    level = logging.INFO if verbose else logging.WARNING
    logging.basicConfig(level=level, format="%(asctime)s [%(levelname)s] %(message)s", datefmt="%Y-%m-%d %H:%M:%S")


if __name__ == "__main__":
    main()
