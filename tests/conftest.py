"""Shared test fixtures."""

from __future__ import annotations

import io
import json
import os
from collections.abc import Callable
from pathlib import Path
from typing import Any
from unittest.mock import MagicMock

import httpx
import pytest
from rich.console import Console

from riakcheck.config import Settings
from riakcheck.health.probes import HttpProbe


@pytest.fixture(autouse=True)
def _isolate_env(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    """Keep RIAKCHECK_* variables and stray .env files out of tests."""
    for key in list(os.environ):
        if key.startswith("RIAKCHECK_"):
            monkeypatch.delenv(key)
    monkeypatch.chdir(tmp_path)


@pytest.fixture
def log_root(tmp_path: Path) -> Path:
    root = tmp_path / "leveldb"
    root.mkdir()
    return root


@pytest.fixture
def make_settings(log_root: Path) -> Callable[..., Settings]:
    def _make(**overrides: Any) -> Settings:
        values: dict[str, Any] = {
            "log_root": str(log_root),
            "node_version": "1.3.1",
            "rss_warning": 1000,
            "rss_critical": 2000,
        }
        values.update(overrides)
        return Settings(**values)

    return _make


@pytest.fixture
def settings(make_settings: Callable[..., Settings]) -> Settings:
    return make_settings()


@pytest.fixture
def make_probe() -> Callable[[dict[str, Any]], HttpProbe]:
    """HttpProbe served by an httpx MockTransport.

    Route values: str -> text body, dict/list -> JSON body, exception
    instance -> raised by the transport, int -> bare status code.
    """

    def _make(routes: dict[str, Any]) -> HttpProbe:
        def handler(request: httpx.Request) -> httpx.Response:
            value = routes.get(request.url.path)
            if value is None:
                return httpx.Response(404)
            if isinstance(value, Exception):
                raise value
            if isinstance(value, int):
                return httpx.Response(value)
            if isinstance(value, str):
                return httpx.Response(200, text=value)
            return httpx.Response(200, text=json.dumps(value))

        return HttpProbe(
            "http://riak.test:8098", timeout=1.0, transport=httpx.MockTransport(handler),
        )

    return _make


@pytest.fixture
def console() -> Console:
    return Console(file=io.StringIO(), width=200, highlight=False, color_system=None)


@pytest.fixture
def node_process() -> MagicMock:
    proc = MagicMock()
    proc.pid = 4242
    return proc
