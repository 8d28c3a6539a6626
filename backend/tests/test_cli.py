"""CLI tests against a stubbed HTTP layer."""

from __future__ import annotations

from pathlib import Path
from typing import Any

import pytest
from typer.testing import CliRunner

from thread_memory.cli import main as cli

runner = CliRunner()


class StubResponse:
    def __init__(self, payload: Any, status_code: int = 200) -> None:
        self._payload = payload
        self.status_code = status_code
        self.ok = status_code < 400
        self.text = str(payload)

    def json(self) -> Any:
        return self._payload


@pytest.fixture
def sent(monkeypatch: pytest.MonkeyPatch) -> list[dict[str, Any]]:
    calls: list[dict[str, Any]] = []

    def _request(method: str, url: str, **kwargs: Any) -> StubResponse:
        calls.append({"method": method, "url": url, **kwargs})
        if url.endswith("/threads/thr_missing/messages"):
            return StubResponse({"code": "thread_not_found"}, status_code=404)
        return StubResponse({"ok": True})

    monkeypatch.setattr(cli.requests, "request", _request)
    monkeypatch.delenv("TMEM_HOST", raising=False)
    monkeypatch.delenv("TMEM_USER", raising=False)
    return calls


def test_chat_continues_thread_with_budget(sent: list[dict[str, Any]]) -> None:
    result = runner.invoke(cli.app, ["chat", "hello", "--thread", "thr_1", "--budget", "500", "--user", "alice"])
    assert result.exit_code == 0
    assert sent[0]["url"] == "http://127.0.0.1:8000/threads/thr_1/messages"
    assert sent[0]["json"] == {"message": "hello", "budget_chars": 500}
    assert sent[0]["headers"] == {"X-User-Id": "alice"}


def test_user_comes_from_environment(sent: list[dict[str, Any]], monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("TMEM_USER", "bob")
    monkeypatch.setenv("TMEM_HOST", "http://memory.local/")
    result = runner.invoke(cli.app, ["threads", "list"])
    assert result.exit_code == 0
    assert sent[0]["url"] == "http://memory.local/threads"
    assert sent[0]["headers"] == {"X-User-Id": "bob"}


def test_missing_user_exits(sent: list[dict[str, Any]]) -> None:
    result = runner.invoke(cli.app, ["chat", "hello"])
    assert result.exit_code == 2
    assert sent == []


def test_http_errors_exit_non_zero(sent: list[dict[str, Any]]) -> None:
    result = runner.invoke(cli.app, ["threads", "history", "thr_missing", "--user", "alice"])
    assert result.exit_code == 1


def test_add_document_reads_file(sent: list[dict[str, Any]], tmp_path: Path) -> None:
    doc = tmp_path / "notes.txt"
    doc.write_text("Refunds within thirty days.", encoding="utf-8")
    result = runner.invoke(cli.app, ["threads", "add-document", "thr_1", str(doc), "--user", "alice"])
    assert result.exit_code == 0
    assert sent[0]["json"] == {"text": "Refunds within thirty days.", "filename": "notes.txt"}
