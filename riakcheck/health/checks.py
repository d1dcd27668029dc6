"""Individual node checks and the name -> check registry.

Each check observes external state once and returns a CheckResult; none
of them raise for an unhealthy node or an unreachable dependency.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

import psutil

from ..config import Settings
from .compaction import diagnose
from .models import CheckResult, CheckStatus
from .probes import (
    HttpProbe,
    ProbeError,
    as_service_user,
    capture_profile,
    find_node_process,
    process_rss,
    query_service,
    run_command,
)
from .version import read_node_version

logger = logging.getLogger(__name__)

RING_MEMBERS_FIELD = "ring_members"


class UnknownCheckError(KeyError):
    """Raised when a check name is not registered."""


@dataclass(frozen=True)
class CheckContext:
    """Read-only inputs shared by every check in a run."""

    settings: Settings
    probe: HttpProbe

    @classmethod
    def from_settings(cls, settings: Settings) -> CheckContext:
        return cls(settings=settings, probe=HttpProbe.from_settings(settings))


def _is_empty(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, (str, list, dict)):
        return len(value) == 0
    return False


# ── Liveness ─────────────────────────────────────────────────────────────────


def check_process(ctx: CheckContext) -> CheckResult:
    name = ctx.settings.service_name
    proc = find_node_process(ctx.settings)
    if proc is None:
        return CheckResult.of("process", CheckStatus.CRITICAL, f"{name} is not running")
    return CheckResult.of("process", CheckStatus.OK, f"{name} is running (pid {proc.pid})")


def check_ping(ctx: CheckContext) -> CheckResult:
    """``riak ping`` as the service account must answer pong."""
    out = run_command(as_service_user(ctx.settings, "ping"), ctx.settings.command_timeout)
    text = out.stdout.strip()
    if out.ok and "pong" in text:
        return CheckResult.of("ping", CheckStatus.OK, "local ping answered pong")
    detail = text or out.stderr.strip() or f"exit status {out.returncode}"
    return CheckResult.of("ping", CheckStatus.CRITICAL, f"local ping failed: {detail}")


def check_riakping(ctx: CheckContext) -> CheckResult:
    """HTTP /ping must return the body OK."""
    try:
        body = ctx.probe.get_text("/ping").strip()
    except ProbeError as e:
        return CheckResult.of("riakping", CheckStatus.CRITICAL, f"/ping failed: {e}")
    if body == "OK":
        return CheckResult.of("riakping", CheckStatus.OK, "/ping returned OK")
    return CheckResult.of(
        "riakping", CheckStatus.CRITICAL,
        f"/ping returned {body[:80]!r}" if body else "/ping returned an empty body",
    )


def check_stats(ctx: CheckContext) -> CheckResult:
    field = ctx.settings.stats_field
    try:
        stats = ctx.probe.get_json("/stats")
    except ProbeError as e:
        return CheckResult.of("stats", CheckStatus.CRITICAL, f"/stats failed: {e}")
    except ValueError:
        return CheckResult.of("stats", CheckStatus.CRITICAL, "/stats returned invalid JSON")

    value = stats.get(field) if isinstance(stats, dict) else None
    if _is_empty(value):
        return CheckResult.of("stats", CheckStatus.CRITICAL, f"/stats has no {field} counter")
    return CheckResult.of("stats", CheckStatus.OK, f"/stats {field}={value}")


# ── Resources ────────────────────────────────────────────────────────────────


def check_rss(ctx: CheckContext) -> CheckResult:
    settings = ctx.settings
    proc = find_node_process(settings)
    if proc is None:
        return CheckResult.of("rss", CheckStatus.UNKNOWN, "no pid for rss check")
    try:
        rss = process_rss(proc.pid)
    except ProbeError as e:
        return CheckResult.of("rss", CheckStatus.UNKNOWN, f"rss unavailable: {e}")

    limits = f"(warning > {settings.rss_warning}, critical > {settings.rss_critical})"
    if rss > settings.rss_critical:
        status = CheckStatus.CRITICAL
    elif rss > settings.rss_warning:
        status = CheckStatus.WARNING
    else:
        status = CheckStatus.OK
    return CheckResult.of("rss", status, f"rss {rss} bytes {limits}")


def check_system(ctx: CheckContext) -> CheckResult:
    """Host summary: uptime, load, memory and data-root disk usage."""
    lines: list[str] = []
    try:
        uptime_h = (time.time() - psutil.boot_time()) / 3600
        load1, load5, load15 = psutil.getloadavg()
        lines.append(f"up {uptime_h:.1f}h, load {load1:.2f} {load5:.2f} {load15:.2f}")
    except (OSError, psutil.Error) as e:
        lines.append(f"uptime/load unavailable ({e})")
    try:
        mem = psutil.virtual_memory()
        lines.append(f"memory {mem.percent:.1f}% used of {mem.total // 1024**2} MiB")
    except (OSError, psutil.Error) as e:
        lines.append(f"memory usage unavailable ({e})")
    try:
        disk = psutil.disk_usage(ctx.settings.log_root)
        lines.append(f"{ctx.settings.log_root}: {disk.percent:.1f}% used, {disk.free // 1024**3} GiB free")
    except OSError as e:
        lines.append(f"{ctx.settings.log_root}: disk usage unavailable ({e.strerror or e})")
    return CheckResult.of("system", CheckStatus.OK, *lines)


# ── Cluster ──────────────────────────────────────────────────────────────────


def check_singleton(ctx: CheckContext) -> CheckResult:
    """A ring of one member means the node never joined its cluster."""
    try:
        stats = ctx.probe.get_json("/stats")
    except ProbeError as e:
        return CheckResult.of("singleton", CheckStatus.UNKNOWN, f"cannot fetch /stats: {e}")
    except ValueError:
        return CheckResult.of("singleton", CheckStatus.UNKNOWN, "cannot parse /stats: invalid JSON")

    if not isinstance(stats, dict) or RING_MEMBERS_FIELD not in stats:
        return CheckResult.of(
            "singleton", CheckStatus.UNKNOWN, f"cannot parse /stats: no {RING_MEMBERS_FIELD}",
        )
    members = stats[RING_MEMBERS_FIELD]
    if not isinstance(members, list):
        return CheckResult.of(
            "singleton", CheckStatus.UNKNOWN, f"cannot count {RING_MEMBERS_FIELD}: not a list",
        )

    count = len(members)
    if count == 1:
        return CheckResult.of(
            "singleton", CheckStatus.CRITICAL, f"node is alone in its ring ({members[0]})",
        )
    if count == 0:
        return CheckResult.of("singleton", CheckStatus.UNKNOWN, f"{RING_MEMBERS_FIELD} is empty")
    return CheckResult.of("singleton", CheckStatus.OK, f"{count} ring members")


# ── Storage / configuration ──────────────────────────────────────────────────


def check_compaction(ctx: CheckContext) -> CheckResult:
    settings = ctx.settings
    return diagnose(settings.log_root, read_node_version(settings), settings)


def check_config(ctx: CheckContext) -> CheckResult:
    settings = ctx.settings
    version = read_node_version(settings) or "unknown"
    return CheckResult.of(
        "config", CheckStatus.OK,
        f"{settings.service_name} {version} at {settings.host}:{settings.port}",
        f"log root: {settings.log_root}",
        f"rss thresholds: warning > {settings.rss_warning}, critical > {settings.rss_critical}",
        f"timeout: {settings.timeout:g}s, mode: {settings.mode.value}",
    )


def check_oktostart(ctx: CheckContext) -> CheckResult:
    """``riak chkconfig`` validates the node config without starting it."""
    out = run_command(as_service_user(ctx.settings, "chkconfig"), ctx.settings.command_timeout)
    output = [line for line in (out.stdout + out.stderr).splitlines() if line.strip()]
    if out.ok:
        return CheckResult.of("oktostart", CheckStatus.OK, "ok to start: config is valid")
    if out.returncode == -1:
        return CheckResult.of("oktostart", CheckStatus.UNKNOWN, f"cannot run chkconfig: {out.stderr}")
    return CheckResult.of(
        "oktostart", CheckStatus.CRITICAL, "not ok to start: config check failed", *output,
    )


# ── Registry ─────────────────────────────────────────────────────────────────


CHECKS: dict[str, Callable[[CheckContext], CheckResult]] = {
    "process": check_process,
    "ping": check_ping,
    "riakping": check_riakping,
    "stats": check_stats,
    "rss": check_rss,
    "singleton": check_singleton,
    "compaction": check_compaction,
    "config": check_config,
    "system": check_system,
    "oktostart": check_oktostart,
}


def service_info(ctx: CheckContext) -> str | None:
    return query_service(ctx.settings)


def profile_info(ctx: CheckContext) -> str | None:
    proc = find_node_process(ctx.settings)
    if proc is None:
        return None
    return capture_profile(ctx.settings, proc.pid)


# Best-effort sections: output or None, never part of the aggregate
BEST_EFFORT: dict[str, Callable[[CheckContext], str | None]] = {
    "service": service_info,
    "profile": profile_info,
}

CHECK_NAMES = (*CHECKS, *BEST_EFFORT)


def run_check(name: str, ctx: CheckContext) -> CheckResult:
    """Run one registered check, converting unexpected errors to UNKNOWN."""
    check = CHECKS.get(name)
    if check is None:
        raise UnknownCheckError(name)
    try:
        return check(ctx)
    except Exception as e:
        logger.exception("Check %s raised", name)
        return CheckResult.of(name, CheckStatus.UNKNOWN, f"{name} check error: {type(e).__name__}: {e}")


def run_best_effort(name: str, ctx: CheckContext) -> str | None:
    """Run a best-effort query; any failure yields None."""
    try:
        return BEST_EFFORT[name](ctx)
    except Exception as e:
        logger.debug("Best-effort %s failed: %s", name, e)
        return None
