from __future__ import annotations

import asyncio
import json

import httpx
import pytest

from page2import.config import BuilderConfig
from page2import.events import ImportEvents
from page2import.factory import ImportBuilderFactory
from page2import.page import PageInputError
from page2import.rules import BlockRule, ImportRules

PAGE = '<html><body><main id="main"><section class="hero">Welcome</section></main></body></html>'


def _backend(requests: list[dict]):
    def handler(request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content)
        requests.append({"url": str(request.url), "body": body})
        content = '```json\n{"selector": "#main"}\n```'
        return httpx.Response(200, json={"choices": [{"finish_reason": "stop", "message": {"content": content}}]})

    return handler


def test_create_wires_builder_to_configured_backend() -> None:
    requests: list[dict] = []

    async def scenario():
        client = httpx.AsyncClient(transport=httpx.MockTransport(_backend(requests)))
        config = BuilderConfig(api_key="secret", environment="dev")
        async with client, ImportBuilderFactory(config, client=client, events=ImportEvents()) as factory:
            builder = await factory.create(PAGE, "data:image/png;base64,AAAA")
            files = await builder.build_project()
            return builder, files

    builder, files = asyncio.run(scenario())

    assert builder.rules.root == "#main"
    assert "/import.js" in [item.name for item in files]
    assert requests[0]["url"] == "https://spacecat.experiencecloud.live/api/ci/tools/import/assistant/prompt"
    assert requests[0]["body"]["command"] == "findMainContent"


def test_create_rejects_empty_html() -> None:
    async def scenario():
        async with ImportBuilderFactory(events=ImportEvents()) as factory:
            await factory.create("   ")

    with pytest.raises(PageInputError):
        asyncio.run(scenario())


def test_unknown_mode_is_rejected() -> None:
    with pytest.raises(ValueError):
        ImportBuilderFactory(mode="xwalk")


def test_seeded_rules_are_copied() -> None:
    seed = ImportRules()
    seed.add_block(BlockRule(type="hero", selectors=[".hero"]))

    async def scenario():
        async with ImportBuilderFactory(events=ImportEvents()) as factory:
            first = await factory.create(PAGE, rules=seed)
            second = await factory.create(PAGE, rules={"blocks": [{"type": "cards"}]})
            return first, second

    first, second = asyncio.run(scenario())
    first.rules.add_cleanup([".ad"])

    assert first.rules is not seed
    assert seed.cleanup == []
    assert first.rules.block_types() == ["hero"]
    assert second.rules.block_types() == ["cards"]


def test_on_and_off_delegate_to_event_stream() -> None:
    events = ImportEvents()
    factory = ImportBuilderFactory(events=events)
    received: list[str | None] = []

    factory.on("complete", received.append)
    events.emit("complete", "done")
    factory.off("complete", received.append)
    events.emit("complete", "again")

    assert received == ["done"]
    asyncio.run(factory.aclose())
