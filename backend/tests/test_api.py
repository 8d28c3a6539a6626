"""HTTP API tests."""

from __future__ import annotations

import asyncio
import time
from pathlib import Path

import httpx
import pytest
from fastapi.testclient import TestClient

from conftest import FakeChatProvider, ScriptedEmbeddingBackend
from thread_memory.api.dependencies import get_chat_service
from thread_memory.app import app
from thread_memory.chat.service import ChatService
from thread_memory.completion.orchestrator import CompletionOrchestrator
from thread_memory.core.config import Settings
from thread_memory.core.errors import ContentPolicyRejected, EmptyReply, ProviderUnavailable
from thread_memory.core.metrics import REGISTRY
from thread_memory.embedding.provider import EmbeddingAdapter
from thread_memory.storage.sqlite import SQLiteDatabase
from thread_memory.storage.store import MemoryStore

ALICE = {"X-User-Id": "alice"}
BOB = {"X-User-Id": "bob"}


@pytest.fixture
def provider() -> FakeChatProvider:
    return FakeChatProvider()


@pytest.fixture
def client(tmp_path: Path, provider: FakeChatProvider, no_wait_retry) -> TestClient:
    settings = Settings(db_path=tmp_path / "api.db")
    db = SQLiteDatabase(settings.db_path)
    db.ensure_schema()
    embedder = EmbeddingAdapter(ScriptedEmbeddingBackend(), retry_policy=no_wait_retry(3))
    service = ChatService(
        store=MemoryStore(db, embedder=embedder),
        embedder=embedder,
        orchestrator=CompletionOrchestrator(provider, retry_policy=no_wait_retry(3)),
        settings=settings,
    )
    app.dependency_overrides[get_chat_service] = lambda: service
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()
    db.close()


def test_health() -> None:
    response = TestClient(app).get("/health")
    assert response.status_code == 200
    assert response.json() == {"ok": True}


def test_metrics_exposes_prometheus_text() -> None:
    response = TestClient(app).get("/metrics")
    assert response.status_code == 200
    assert "tmem_provider_calls" in response.text


def test_chat_flow(client: TestClient) -> None:
    created = client.post("/threads/messages", json={"message": "Hello there"}, headers=ALICE)
    assert created.status_code == 200
    body = created.json()
    assert body["reply"]["content"] == "Here is an answer."
    assert body["retrieval_mode"] == "none"
    thread_id = body["thread_id"]

    document = client.post(
        f"/threads/{thread_id}/documents",
        json={"text": "Refunds are accepted within thirty days of purchase.", "filename": "policy.txt"},
        headers=ALICE,
    )
    assert document.status_code == 200
    assert len(document.json()["unit_ids"]) == 1

    follow_up = client.post(
        f"/threads/{thread_id}/messages",
        json={"message": "How long do refunds take?", "budget_chars": 500},
        headers=ALICE,
    )
    assert follow_up.status_code == 200
    assert [item["id"] for item in follow_up.json()["context"]] == document.json()["unit_ids"]

    history = client.get(f"/threads/{thread_id}/messages", headers=ALICE)
    assert [message["role"] for message in history.json()["messages"]] == ["user", "assistant", "user", "assistant"]

    threads = client.get("/threads", headers=ALICE)
    assert [thread["id"] for thread in threads.json()] == [thread_id]


def test_foreign_thread_is_not_found(client: TestClient) -> None:
    thread_id = client.post("/threads/messages", json={"message": "Hello"}, headers=ALICE).json()["thread_id"]
    response = client.post(f"/threads/{thread_id}/messages", json={"message": "Hi"}, headers=BOB)
    assert response.status_code == 404
    assert response.json()["code"] == "thread_not_found"
    assert client.get(f"/threads/{thread_id}/messages", headers=BOB).status_code == 404


def test_user_header_is_required(client: TestClient) -> None:
    assert client.post("/threads/messages", json={"message": "Hello"}).status_code == 422


def test_blank_message_is_rejected(client: TestClient) -> None:
    response = client.post("/threads/messages", json={"message": "   "}, headers=ALICE)
    assert response.status_code == 400
    assert response.json()["code"] == "invalid_input"


@pytest.mark.parametrize(
    ("failure", "status", "code"),
    [
        (EmptyReply("empty"), 502, "empty_reply"),
        (ContentPolicyRejected("blocked"), 422, "content_policy_rejected"),
        (ProviderUnavailable("down"), 503, "provider_unavailable"),
    ],
)
def test_provider_failures_map_to_status(client: TestClient, provider: FakeChatProvider, failure, status, code) -> None:
    provider.replies = [failure]
    response = client.post("/threads/messages", json={"message": "Hello"}, headers=ALICE)
    assert response.status_code == status
    body = response.json()
    assert body["code"] == code

    thread_id = body["details"]["thread_id"]
    history = client.get(f"/threads/{thread_id}/messages", headers=ALICE)
    assert [message["role"] for message in history.json()["messages"]] == ["user"]
    assert [thread["id"] for thread in client.get("/threads", headers=ALICE).json()] == [thread_id]


def test_missing_provider_is_unavailable() -> None:
    response = TestClient(app).post("/threads/messages", json={"message": "Hello"}, headers=ALICE)
    assert response.status_code == 503
    assert response.json()["details"] == {"reason": "not_configured"}
    assert TestClient(app).get("/threads", headers=ALICE).json() == []


def test_threads_and_documents_work_without_provider() -> None:
    thread_id = get_chat_service().store.create_thread("alice", title="Notes")
    client = TestClient(app)

    assert [thread["id"] for thread in client.get("/threads", headers=ALICE).json()] == [thread_id]
    history = client.get(f"/threads/{thread_id}/messages", headers=ALICE)
    assert history.status_code == 200
    assert history.json()["messages"] == []

    document = client.post(
        f"/threads/{thread_id}/documents",
        json={"text": "Invoices are due within thirty days.", "filename": "terms.txt"},
        headers=ALICE,
    )
    assert document.status_code == 200
    assert len(document.json()["unit_ids"]) == 1
    assert document.json()["tags"] == ["reference"]

    follow_up = client.post(f"/threads/{thread_id}/messages", json={"message": "When?"}, headers=ALICE)
    assert follow_up.status_code == 503
    assert follow_up.json()["code"] == "provider_unavailable"


def test_keywords_endpoint() -> None:
    response = TestClient(app).post(
        "/keywords",
        json={"text": "Quarterly revenue report for the finance team with revenue targets", "count": 5},
    )
    assert response.status_code == 200
    keywords = response.json()["keywords"]
    assert keywords[0] == "revenue"
    assert len(keywords) <= 5


def test_slow_completion_does_not_block_other_users(client: TestClient, provider: FakeChatProvider) -> None:
    def slow_reply(messages) -> str:
        time.sleep(1.0)
        return "slow answer"

    provider.replies = [slow_reply]

    async def exchange() -> tuple[httpx.Response, httpx.Response, float]:
        transport = httpx.ASGITransport(app=app)
        async with httpx.AsyncClient(transport=transport, base_url="http://test") as http:
            async def bob_lists_threads() -> tuple[httpx.Response, float]:
                await asyncio.sleep(0.1)
                started = time.perf_counter()
                response = await http.get("/threads", headers=BOB)
                return response, time.perf_counter() - started

            alice, (bob, bob_elapsed) = await asyncio.gather(
                http.post("/threads/messages", json={"message": "Take your time"}, headers=ALICE),
                bob_lists_threads(),
            )
        return alice, bob, bob_elapsed

    alice, bob, bob_elapsed = asyncio.run(exchange())
    assert alice.status_code == 200
    assert alice.json()["reply"]["content"] == "slow answer"
    assert bob.status_code == 200
    assert bob.json() == []
    assert bob_elapsed < 0.5


def _request_count(endpoint: str, method: str, status: str) -> float:
    labels = {"endpoint": endpoint, "method": method, "status": status}
    return REGISTRY.get_sample_value("tmem_requests_total", labels) or 0.0


def test_requests_are_counted_by_route_and_status(client: TestClient, provider: FakeChatProvider) -> None:
    failed_before = _request_count("/threads/messages", "POST", "502")
    missing_before = _request_count("/threads/{thread_id}/messages", "GET", "404")

    provider.replies = [EmptyReply("empty")]
    assert client.post("/threads/messages", json={"message": "Hello"}, headers=ALICE).status_code == 502
    assert client.get("/threads/thr_missing/messages", headers=ALICE).status_code == 404

    assert _request_count("/threads/messages", "POST", "502") == failed_before + 1
    assert _request_count("/threads/{thread_id}/messages", "GET", "404") == missing_before + 1
    assert "tmem_request_latency_seconds" in client.get("/metrics").text
