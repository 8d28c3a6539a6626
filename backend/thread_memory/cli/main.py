"""CLI entrypoint for Thread Memory."""

from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Optional

import requests
import typer

app = typer.Typer(name="tmem", help="Thread Memory command-line interface")
threads_app = typer.Typer(name="threads")
app.add_typer(threads_app, name="threads")

DEFAULT_HOST = "http://127.0.0.1:8000"


def _resolve_host(override: Optional[str]) -> str:
    if override:
        return override.rstrip("/")
    env_host = os.environ.get("TMEM_HOST")
    if env_host:
        return env_host.rstrip("/")
    return DEFAULT_HOST


def _resolve_user(override: Optional[str]) -> str:
    user = override or os.environ.get("TMEM_USER")
    if not user:
        typer.echo("A user id is required (--user or TMEM_USER)", err=True)
        raise typer.Exit(code=2)
    return user


def _request(
    method: str,
    path: str,
    host: Optional[str] = None,
    user: Optional[str] = None,
    **kwargs,
) -> requests.Response:
    url = f"{_resolve_host(host)}{path}"
    headers = kwargs.pop("headers", {})
    if user is not None:
        headers["X-User-Id"] = user
    resp = requests.request(method, url, timeout=60, headers=headers, **kwargs)
    if not resp.ok:
        try:
            detail = resp.json()
        except ValueError:
            detail = resp.text
        typer.echo(f"Request failed ({resp.status_code}): {detail}", err=True)
        raise typer.Exit(code=1)
    return resp


@app.command()
def chat(
    message: str = typer.Argument(..., help="Message to send"),
    thread: Optional[str] = typer.Option(None, "--thread", help="Continue this thread"),
    budget: Optional[int] = typer.Option(None, "--budget", help="Context budget in characters"),
    user: Optional[str] = typer.Option(None, "--user", help="Resolved user id"),
    host: Optional[str] = typer.Option(None, "--host", help="Override backend host"),
) -> None:
    """Send a message and print the reply."""
    payload: dict[str, object] = {"message": message}
    if budget is not None:
        payload["budget_chars"] = budget
    path = f"/threads/{thread}/messages" if thread else "/threads/messages"
    resp = _request("POST", path, host=host, user=_resolve_user(user), json=payload)
    typer.echo(json.dumps(resp.json(), indent=2))


@app.command()
def keywords(
    text: str = typer.Argument(..., help="Text to tag"),
    count: int = typer.Option(8, "--count", help="Target number of keywords"),
    host: Optional[str] = typer.Option(None, "--host", help="Override backend host"),
) -> None:
    """Extract keywords from text."""
    resp = _request("POST", "/keywords", host=host, json={"text": text, "count": count})
    typer.echo(json.dumps(resp.json(), indent=2))


@threads_app.command("list")
def list_threads(
    user: Optional[str] = typer.Option(None, "--user", help="Resolved user id"),
    host: Optional[str] = typer.Option(None, "--host", help="Override backend host"),
) -> None:
    """List the user's threads."""
    resp = _request("GET", "/threads", host=host, user=_resolve_user(user))
    typer.echo(json.dumps(resp.json(), indent=2))


@threads_app.command("history")
def history(
    thread_id: str = typer.Argument(..., help="Thread identifier"),
    user: Optional[str] = typer.Option(None, "--user", help="Resolved user id"),
    host: Optional[str] = typer.Option(None, "--host", help="Override backend host"),
) -> None:
    """Print a thread's messages."""
    resp = _request("GET", f"/threads/{thread_id}/messages", host=host, user=_resolve_user(user))
    typer.echo(json.dumps(resp.json(), indent=2))


@threads_app.command("add-document")
def add_document(
    thread_id: str = typer.Argument(..., help="Thread identifier"),
    path: Path = typer.Argument(..., help="UTF-8 text file to add"),
    user: Optional[str] = typer.Option(None, "--user", help="Resolved user id"),
    host: Optional[str] = typer.Option(None, "--host", help="Override backend host"),
) -> None:
    """Chunk a text file into the thread's retrievable memory."""
    resolved = path.expanduser()
    payload = {"text": resolved.read_text(encoding="utf-8"), "filename": resolved.name}
    resp = _request("POST", f"/threads/{thread_id}/documents", host=host, user=_resolve_user(user), json=payload)
    typer.echo(json.dumps(resp.json(), indent=2))


if __name__ == "__main__":
    app()
