"""ビルド処理のライフサイクルイベントを配信する仕組み。"""

from __future__ import annotations

import json
import logging
import threading
from collections import defaultdict
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, Literal

EventKind = Literal["start", "progress", "complete"]
EventListener = Callable[[str | None], None]

EVENT_KINDS: tuple[str, ...] = ("start", "progress", "complete")

logger = logging.getLogger(__name__)


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class ImportEvents:
    """イベント種別ごとにリスナーを管理する送りっぱなしのイベントストリーム。"""

    def __init__(self) -> None:
        self._listeners: dict[str, list[EventListener]] = defaultdict(list)
        self._lock = threading.Lock()

    def on(self, kind: EventKind, listener: EventListener) -> None:
        self._validate_kind(kind)
        with self._lock:
            self._listeners[kind].append(listener)

    def off(self, kind: EventKind, listener: EventListener) -> None:
        self._validate_kind(kind)
        with self._lock:
            listeners = self._listeners[kind]
            if listener in listeners:
                listeners.remove(listener)

    def emit(self, kind: EventKind, message: str | None = None) -> None:
        """登録済みリスナーへイベントを配信します。リスナーの例外は呼び出し元へ伝播しません。"""

        self._validate_kind(kind)
        if message:
            logger.info("[%s] %s", kind, message)
        with self._lock:
            listeners = list(self._listeners[kind])
        for listener in listeners:
            try:
                listener(message)
            except Exception:
                logger.warning("イベントリスナーで例外が発生しました (%s)。", kind, exc_info=True)

    def listener_count(self, kind: EventKind) -> int:
        with self._lock:
            return len(self._listeners[kind])

    def _validate_kind(self, kind: str) -> None:
        if kind not in EVENT_KINDS:
            raise ValueError(f"未知のイベント種別です: {kind}")


import_events = ImportEvents()


class EventRecorder:
    """イベントを JSON Lines 形式でファイルへ追記します。"""

    def __init__(self, path: Path, **base: str) -> None:
        self._path = path
        self._base = dict(base)
        self._handlers: dict[str, EventListener] = {}

    @property
    def path(self) -> Path:
        return self._path

    def attach(self, events: ImportEvents) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        self._path.write_text("", encoding="utf-8")
        for kind in EVENT_KINDS:
            handler = self._make_handler(kind)
            self._handlers[kind] = handler
            events.on(kind, handler)  # type: ignore[arg-type]

    def detach(self, events: ImportEvents) -> None:
        for kind, handler in self._handlers.items():
            events.off(kind, handler)  # type: ignore[arg-type]
        self._handlers.clear()

    def record(self, stage: str, **extra: object) -> None:
        payload: dict[str, object] = dict(self._base)
        payload.update(extra)
        payload["stage"] = stage
        payload["ts"] = _now_iso()
        with self._path.open("a", encoding="utf-8") as stream:
            stream.write(json.dumps(payload, ensure_ascii=False))
            stream.write("\n")

    def _make_handler(self, kind: str) -> EventListener:
        def handler(message: str | None) -> None:
            self.record(kind, message=message)

        return handler
