"""
Unit tests for chat title generation.
"""

import json

import httpx
import pytest

from devhub.clients.chat_backend import ChatBackendClient
from devhub.services.title_generator import TitleGenerator, clean_title, fallback_title


@pytest.mark.parametrize(
    "raw, expected",
    [
        ('"Apex Trigger Help"', "Apex Trigger Help"),
        ("“Curly Quotes”", "Curly Quotes"),
        ("- Bulleted Title", "Bulleted Title"),
        ("1. Numbered Title\nSecond line", "Numbered Title"),
        ("`'\"Nested\"'`", "Nested"),
    ],
)
def test_clean_title(raw: str, expected: str) -> None:
    assert clean_title(raw) == expected


def test_clean_title_truncates() -> None:
    assert len(clean_title("word " * 40)) == 60


def test_fallback_title() -> None:
    query = "How do I write a batch Apex class that processes accounts nightly?"
    assert fallback_title(query) == query[:40]


@pytest.mark.asyncio
async def test_generate_cleans_backend_answer() -> None:
    seen: dict = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["path"] = request.url.path
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={"text": '"Batch Apex Scheduling"'})

    generator = TitleGenerator(ChatBackendClient(transport=httpx.MockTransport(handler)), model="m1")
    title = await generator.generate("schedule batch apex")

    assert title == "Batch Apex Scheduling"
    assert seen["path"] == "/api/generate"
    assert seen["body"]["model"] == "m1"
    assert "schedule batch apex" in seen["body"]["prompt"]


@pytest.mark.asyncio
async def test_generate_falls_back_on_upstream_error() -> None:
    client = ChatBackendClient(transport=httpx.MockTransport(lambda r: httpx.Response(503, text="busy")))
    title = await TitleGenerator(client).generate("Why does my trigger recurse?")
    assert title == "Why does my trigger recurse?"


@pytest.mark.asyncio
async def test_generate_falls_back_on_empty_answer() -> None:
    client = ChatBackendClient(transport=httpx.MockTransport(lambda r: httpx.Response(200, json={"text": '""'})))
    assert await TitleGenerator(client).generate("short") == "short"


@pytest.mark.asyncio
async def test_generate_falls_back_on_non_json_answer() -> None:
    client = ChatBackendClient(
        transport=httpx.MockTransport(lambda r: httpx.Response(200, text="<html>gateway</html>"))
    )
    assert await TitleGenerator(client).generate("Why does my trigger recurse?") == "Why does my trigger recurse?"


@pytest.mark.asyncio
async def test_health_check_accepts_plain_text() -> None:
    up = ChatBackendClient(transport=httpx.MockTransport(lambda r: httpx.Response(200, text="OK")))
    down = ChatBackendClient(transport=httpx.MockTransport(lambda r: httpx.Response(503, text="busy")))
    assert await up.health_check() is True
    assert await down.health_check() is False
