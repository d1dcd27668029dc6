"""Thin wrappers over the node's external collaborators.

HTTP endpoints (httpx), the process table (psutil) and command-line
tools (subprocess). Everything here performs a single observation and
never retries; checks turn the outcome into a CheckResult.
"""

from __future__ import annotations

import logging
import os
import shutil
import subprocess
from dataclasses import dataclass
from typing import Any

import httpx
import psutil

from ..config import Settings

logger = logging.getLogger(__name__)


class ProbeError(Exception):
    """Raised when an external observation could not be made."""


# ── HTTP ─────────────────────────────────────────────────────────────────────


class HttpProbe:
    """GETs against the node's HTTP interface with a fixed timeout."""

    def __init__(
        self,
        base_url: str,
        timeout: float,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._transport = transport

    @classmethod
    def from_settings(cls, settings: Settings) -> HttpProbe:
        return cls(settings.base_url, settings.timeout)

    def _get(self, path: str) -> httpx.Response:
        url = f"{self._base_url}{path}"
        try:
            with httpx.Client(timeout=self._timeout, transport=self._transport) as client:
                resp = client.get(url)
        except httpx.TimeoutException:
            raise ProbeError(f"{url} timed out after {self._timeout:g}s")
        except httpx.HTTPError as e:
            raise ProbeError(f"{url} unreachable: {type(e).__name__}: {e}")

        if resp.status_code >= 400:
            raise ProbeError(f"{url} returned HTTP {resp.status_code}")
        return resp

    def get_text(self, path: str) -> str:
        return self._get(path).text

    def get_json(self, path: str) -> Any:
        """Fetch and decode JSON; ValueError on an undecodable body."""
        return self._get(path).json()


# ── Process table ────────────────────────────────────────────────────────────


def find_node_process(settings: Settings) -> psutil.Process | None:
    """First running process whose name or argv[0] matches process_name."""
    wanted = settings.process_name
    for proc in psutil.process_iter(["name", "cmdline"]):
        name = proc.info.get("name") or ""
        cmdline = proc.info.get("cmdline") or []
        argv0 = os.path.basename(cmdline[0]) if cmdline else ""
        if wanted in (name, argv0):
            return proc
    return None


def process_rss(pid: int) -> int:
    """Resident set size of pid, in bytes."""
    try:
        return psutil.Process(pid).memory_info().rss
    except (psutil.NoSuchProcess, psutil.AccessDenied) as e:
        raise ProbeError(f"cannot read memory of pid {pid}: {e}")


# ── Commands ─────────────────────────────────────────────────────────────────


@dataclass
class CommandOutput:
    returncode: int
    stdout: str
    stderr: str

    @property
    def ok(self) -> bool:
        return self.returncode == 0


def run_command(cmd: list[str], timeout: float) -> CommandOutput:
    """Run a command (no shell); missing binaries and timeouts give -1."""
    logger.debug("Running %s", " ".join(cmd))
    try:
        result = subprocess.run(
            cmd,
            capture_output=True,
            text=True,
            timeout=timeout,
            encoding="utf-8",
            errors="replace",
        )
    except subprocess.TimeoutExpired:
        return CommandOutput(-1, "", f"{cmd[0]} timed out after {timeout:g}s")
    except FileNotFoundError:
        return CommandOutput(-1, "", f"{cmd[0]} not found")
    return CommandOutput(result.returncode, result.stdout, result.stderr)


def as_service_user(settings: Settings, *args: str) -> list[str]:
    """argv running the node's admin script under its service account."""
    return ["sudo", "-u", settings.service_user, settings.riak_admin, *args]


# ── Best-effort queries ──────────────────────────────────────────────────────


def query_service(settings: Settings) -> str | None:
    """Service-manager description of the node, or None if unavailable."""
    if shutil.which("svcs") is None:
        logger.debug("svcs not on PATH; skipping service query")
        return None
    out = run_command(["svcs", "-l", settings.service_name], settings.command_timeout)
    if not out.ok:
        logger.debug("svcs -l %s failed: %s", settings.service_name, out.stderr.strip())
        return None
    return out.stdout.rstrip()


def capture_profile(settings: Settings, pid: int) -> str | None:
    """Sample the node's user stacks with DTrace, or None if unavailable."""
    if shutil.which("dtrace") is None:
        logger.debug("dtrace not on PATH; skipping profile")
        return None
    script = (
        f"profile-997 /pid == {pid}/ {{ @[ustack()] = count(); }} "
        f"tick-{settings.profile_seconds}s {{ trunc(@, 20); exit(0); }}"
    )
    # Allow the sampling window plus a margin for dtrace start-up
    out = run_command(["dtrace", "-q", "-n", script], settings.profile_seconds + 30)
    if not out.ok:
        logger.debug("dtrace failed: %s", out.stderr.strip())
        return None
    return out.stdout.rstrip()
