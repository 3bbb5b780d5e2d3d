"""
Unit tests for chat streaming, titles and history.
"""

import asyncio
import json
from typing import Any, AsyncIterator, Callable

import anyio
import httpx
import pytest
from httpx import AsyncClient

from devhub.api.deps import get_chat_service, get_title_generator
from devhub.clients.chat_backend import ChatBackendClient
from devhub.domain.user import CurrentUser
from devhub.main import app
from devhub.repositories.chat_repo import ChatRepository
from devhub.services.chat_service import ChatService, map_upstream_event
from devhub.services.sse import SSEEvent, parse_sse_block
from devhub.services.title_generator import TitleGenerator


def _frames(body: str) -> list[dict[str, Any]]:
    events = [parse_sse_block(block) for block in body.split("\n\n") if block.strip()]
    return [event.data for event in events if event is not None]


def _chat_service(handler: Callable[[httpx.Request], httpx.Response]) -> ChatService:
    client = ChatBackendClient(transport=httpx.MockTransport(handler))
    return ChatService(
        chat_repository=ChatRepository(),
        chat_client=client,
        title_generator=TitleGenerator(client),
    )


@pytest.fixture
def upstream(sse_body):
    """A chat backend that streams a short answer and titles chats."""
    requests: list[dict[str, Any]] = []

    def handler(request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content)
        requests.append({"path": request.url.path, "body": body})
        if request.url.path == "/api/generate":
            return httpx.Response(200, json={"text": "Trigger Recursion Help"})
        return httpx.Response(
            200,
            headers={"content-type": "text/event-stream"},
            content=sse_body(
                ("progress", {"content": "Searching the org", "details": {"step": 1}}),
                (None, {"content": "Use a static "}),
                (None, {"content": "flag."}),
                ("code", {"details": {"response": "public class TriggerGuard {}", "description": "Guard"}}),
                (None, {"done": True}),
                (None, {"content": "ignored after done"}),
            ),
        )

    handler.requests = requests
    return handler


class TestMapUpstreamEvent:
    def test_done_finishes(self) -> None:
        assert map_upstream_event(SSEEvent(event=None, data={"done": True}, raw="")) == (None, True)

    def test_code_event_gets_metadata(self) -> None:
        event = SSEEvent(
            event="code",
            data={"details": {"response": "const x = 1;"}, "filename": "x.js"},
            raw="",
        )
        frame, finished = map_upstream_event(event)
        assert not finished
        assert frame["type"] == "code"
        assert frame["codeMetadata"]["language"] == "javascript"
        assert frame["codeMetadata"]["filename"] == "x.js"

    def test_non_json_is_skipped(self) -> None:
        assert map_upstream_event(SSEEvent(event=None, data="plain", raw="plain")) == (None, False)


@pytest.mark.asyncio
async def test_stream_requires_identity(async_client: AsyncClient) -> None:
    response = await async_client.post("/api/v1/query/stream", json={"query": "hi", "chatId": "c1"})
    assert response.status_code == 401
    assert response.json()["error"]["code"] == "AUTHENTICATION_REQUIRED"


@pytest.mark.asyncio
async def test_stream_query_relays_and_persists(
    async_client: AsyncClient,
    auth_headers: dict[str, str],
    sample_chat_id: str,
    upstream,
) -> None:
    service = _chat_service(upstream)
    app.dependency_overrides[get_chat_service] = lambda: service

    response = await async_client.post(
        "/api/v1/query/stream",
        json={"query": "How do I stop trigger recursion?", "chatId": sample_chat_id},
        headers=auth_headers,
    )
    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/event-stream")
    assert response.headers["x-accel-buffering"] == "no"

    frames = _frames(response.text)
    assert [f["type"] for f in frames] == ["progress", "content", "content", "code", "done"]
    assert frames[3]["codeMetadata"]["language"] == "apex"
    assert frames[-1]["done"] is True

    stream_request = next(r for r in upstream.requests if r["path"] == "/api/query/stream")
    assert stream_request["body"]["chat_id"] == sample_chat_id
    assert stream_request["body"]["user"] == "ada_lovelace"

    await service.wait_for_titles()

    response = await async_client.get(f"/api/v1/chat/{sample_chat_id}/messages", headers=auth_headers)
    assert response.status_code == 200
    data = response.json()
    assert data["title"] == "Trigger Recursion Help"
    assert [m["role"] for m in data["messages"]] == ["user", "assistant"]
    assert data["messages"][1]["content"].startswith("Use a static flag.")
    assert data["messages"][1]["content"].endswith("flag.public class TriggerGuard {}")
    assert "```" not in data["messages"][1]["content"]


@pytest.mark.asyncio
async def test_stream_upstream_failure_becomes_error_frame(
    async_client: AsyncClient,
    auth_headers: dict[str, str],
    sample_chat_id: str,
) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path == "/api/generate":
            return httpx.Response(200, json={"text": "Title"})
        return httpx.Response(502, text="bad gateway")

    service = _chat_service(handler)
    app.dependency_overrides[get_chat_service] = lambda: service

    response = await async_client.post(
        "/api/v1/query/stream",
        json={"query": "hello", "chatId": sample_chat_id},
        headers=auth_headers,
    )
    await service.wait_for_titles()

    frames = _frames(response.text)
    assert len(frames) == 1
    assert frames[0]["type"] == "error"
    assert frames[0]["done"] is True


@pytest.mark.asyncio
async def test_stream_rejects_empty_query(
    async_client: AsyncClient,
    auth_headers: dict[str, str],
    upstream,
) -> None:
    app.dependency_overrides[get_chat_service] = lambda: _chat_service(upstream)

    response = await async_client.post(
        "/api/v1/query/stream",
        json={"query": "   ", "chatId": "c1"},
        headers=auth_headers,
    )
    assert response.status_code == 400
    assert upstream.requests == []


@pytest.mark.asyncio
async def test_other_users_cannot_post_to_private_chat(
    async_client: AsyncClient,
    auth_headers: dict[str, str],
    other_headers: dict[str, str],
    sample_chat_id: str,
    upstream,
) -> None:
    service = _chat_service(upstream)
    app.dependency_overrides[get_chat_service] = lambda: service

    await async_client.post(
        "/api/v1/query/stream",
        json={"query": "first", "chatId": sample_chat_id},
        headers=auth_headers,
    )
    await service.wait_for_titles()

    response = await async_client.post(
        "/api/v1/query/stream",
        json={"query": "second", "chatId": sample_chat_id},
        headers=other_headers,
    )
    assert response.status_code == 403

    response = await async_client.get(f"/api/v1/chat/{sample_chat_id}/messages", headers=other_headers)
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_generate_title_endpoint(async_client: AsyncClient, auth_headers: dict[str, str]) -> None:
    client = ChatBackendClient(
        transport=httpx.MockTransport(lambda r: httpx.Response(200, json={"response": "'Case Routing'"}))
    )
    app.dependency_overrides[get_title_generator] = lambda: TitleGenerator(client)

    response = await async_client.post(
        "/api/v1/chat/generate-title",
        json={"query": "route cases by region"},
        headers=auth_headers,
    )
    assert response.status_code == 200
    assert response.json() == {"title": "Case Routing"}

    response = await async_client.post("/api/v1/chat/generate-title", json={"query": ""}, headers=auth_headers)
    assert response.status_code == 400


@pytest.mark.asyncio
async def test_history_rename_and_delete(
    async_client: AsyncClient,
    auth_headers: dict[str, str],
    other_headers: dict[str, str],
) -> None:
    repository = ChatRepository()
    owner = await repository.get_or_create_user("ada@example.com", "Ada Lovelace")
    await repository.save_chat("chat-a", owner.id, "First")
    await repository.save_chat("chat-b", owner.id, "Second")

    response = await async_client.get("/api/v1/history", headers=auth_headers)
    assert response.status_code == 200
    assert {c["id"] for c in response.json()} == {"chat-a", "chat-b"}

    response = await async_client.post(
        "/api/v1/chat/update-title",
        json={"chatId": "chat-a", "title": "Renamed"},
        headers=auth_headers,
    )
    assert response.json() == {"success": True, "chatId": "chat-a", "title": "Renamed"}

    response = await async_client.delete("/api/v1/history/chat-b", headers=other_headers)
    assert response.status_code == 404

    response = await async_client.delete("/api/v1/history/chat-b", headers=auth_headers)
    assert response.status_code == 200

    response = await async_client.get("/api/v1/history", headers=auth_headers)
    assert [(c["id"], c["title"]) for c in response.json()] == [("chat-a", "Renamed")]


@pytest.mark.asyncio
async def test_partial_answer_survives_client_disconnect(db: None, sample_chat_id: str) -> None:
    async def stalled() -> AsyncIterator[bytes]:
        yield b'data: {"content": "partial answer"}\n\n'
        await asyncio.sleep(30)

    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path == "/api/generate":
            return httpx.Response(200, json={"text": "Partial"})
        return httpx.Response(200, content=stalled())

    repository = ChatRepository()
    owner = await repository.get_or_create_user("ada@example.com", "Ada Lovelace")
    user = CurrentUser(id=owner.id, email=owner.email, name="Ada Lovelace")
    service = _chat_service(handler)

    stream = await service.stream_query(user, sample_chat_id, "why did the batch fail?")
    received: list[str] = []

    async with anyio.create_task_group() as tg:

        async def consume() -> None:
            async for frame in stream:
                received.append(frame)
                # The client goes away after the first frame
                tg.cancel_scope.cancel()

        tg.start_soon(consume)

    await service.wait_for_titles()

    assert len(received) == 1
    messages = await repository.get_messages(sample_chat_id)
    assert [(m.role, m.content) for m in messages] == [
        ("user", "why did the batch fail?"),
        ("assistant", "partial answer"),
    ]
