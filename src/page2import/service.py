"""解析バックエンド (アシスタント API) との HTTP 通信。"""

from __future__ import annotations

import logging
from typing import Any, Literal, Mapping

import httpx

from .config import BuilderConfig

AssistantCommand = Literal[
    "findMainContent",
    "findRemovalSelectors",
    "findBlockSelectors",
    "findBlockCells",
    "generatePageTransformation",
]

PROMPT_PATH = "/tools/import/assistant/prompt"


class AssistantServiceError(RuntimeError):
    """解析バックエンドへのリクエストが失敗した際に送出される例外。"""


def build_payload(
    command: AssistantCommand,
    prompt: str,
    screenshot: str | None = None,
) -> dict[str, Any]:
    payload: dict[str, Any] = {"command": command, "prompt": prompt}
    if screenshot:
        payload["options"] = {"imageUrl": f"data:image/png;base64,{screenshot}"}
    return payload


class AssistantService:
    """プロンプトを送信し、候補 (choices) を含む応答をそのまま返します。"""

    def __init__(self, config: BuilderConfig, client: httpx.AsyncClient) -> None:
        self._config = config
        self._client = client
        self._logger = logging.getLogger(self.__class__.__module__ + "." + self.__class__.__name__)

    @property
    def prompt_url(self) -> str:
        return f"{self._config.endpoints.assistant_url}{PROMPT_PATH}"

    async def fetch_prompt(self, payload: Mapping[str, Any]) -> dict[str, Any]:
        headers = {"Content-Type": "application/json", "x-api-key": self._config.api_key}
        self._logger.debug("アシスタントへ送信します: %s", payload.get("command"))
        try:
            response = await self._client.post(
                self.prompt_url,
                json=dict(payload),
                headers=headers,
                timeout=self._config.request_timeout,
            )
            response.raise_for_status()
        except httpx.HTTPError as exc:
            raise AssistantServiceError(
                f"アシスタントへのリクエストに失敗しました ({payload.get('command')}): {exc}"
            ) from exc
        try:
            data = response.json()
        except ValueError as exc:
            raise AssistantServiceError("アシスタントの応答が JSON ではありません。") from exc
        if not isinstance(data, dict):
            raise AssistantServiceError("アシスタントの応答がオブジェクトではありません。")
        return data
