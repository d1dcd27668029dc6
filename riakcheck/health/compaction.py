"""Compaction-error scan of the LevelDB data root and repair selection.

Every store (vnode partition directory) keeps a ``LOG`` file; a logged
"Compaction error" means its data files may be corrupt. The repair that
applies depends on the installed node version, see REMEDIATION_STRATEGIES.
"""

from __future__ import annotations

import logging
import os
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from pathlib import Path, PurePath

from ..config import RunMode, Settings
from .models import CheckResult, CheckStatus
from .version import ParseError, VersionEra, classify

logger = logging.getLogger(__name__)

LOG_FILENAME = "LOG"
MARKER = b"Compaction error"

# LevelDB options handed to eleveldb:repair/2 on pre-1.2 nodes
LEVELDB_REPAIR_OPTIONS = (
    ("max_open_files", "2000"),
    ("block_size", "1048576"),
    ("cache_size", "8388608"),
    ("sync", "false"),
)


class LogRootUnavailable(OSError):
    """Raised when the storage log root cannot be entered."""


# ── Scanning ─────────────────────────────────────────────────────────────────


def _contains_marker(path: Path) -> bool:
    with open(path, "rb") as f:
        for line in f:
            if MARKER in line:
                return True
    return False


def scan_logs(log_root: str | Path) -> list[PurePath]:
    """Relative paths of every LOG file under log_root holding the marker."""
    root = Path(log_root)
    try:
        with os.scandir(root):
            pass
    except OSError as e:
        raise LogRootUnavailable(f"Cannot enter {root}: {e.strerror or e}") from e

    def _on_error(err: OSError) -> None:
        logger.warning("Skipping unreadable directory %s: %s", err.filename, err.strerror)

    matches: list[PurePath] = []
    for dirpath, _dirnames, filenames in os.walk(root, onerror=_on_error):
        if LOG_FILENAME not in filenames:
            continue
        path = Path(dirpath) / LOG_FILENAME
        try:
            if _contains_marker(path):
                matches.append(path.relative_to(root))
        except OSError as e:
            logger.warning("Skipping unreadable log %s: %s", path, e)

    return sorted(matches)


def affected_stores(matches: Iterable[PurePath]) -> list[str]:
    """Immediate child directory of each match, deduplicated in order."""
    stores: list[str] = []
    for rel in matches:
        # A LOG directly in the root has no store directory of its own
        if len(rel.parts) < 2:
            continue
        store = rel.parts[0]
        if store not in stores:
            stores.append(store)
    return stores


# ── Remediation ──────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class RemediationPlan:
    """Operator-facing repair instructions for one set of affected stores."""

    era: VersionEra
    affected_stores: tuple[str, ...]
    commands: tuple[str, ...]
    advice: tuple[str, ...] = ()

    def lines(self) -> list[str]:
        return [*self.advice, *(f"  {c}" for c in self.commands)]


def _erl_shell_plan(stores: list[str], settings: Settings) -> RemediationPlan:
    options = ", ".join(f"{{{k}, {v}}}" for k, v in LEVELDB_REPAIR_OPTIONS)
    commands = [
        f"$ {settings.erl_path}",
        f"1> Options = [{options}].",
        f'2> DataRoot = "{settings.log_root}".',
    ]
    for i, store in enumerate(stores, start=3):
        commands.append(f'{i}> eleveldb:repair(filename:join(DataRoot, "{store}"), Options).')
    return RemediationPlan(
        era=VersionEra.PRE_1_2,
        affected_stores=tuple(stores),
        commands=tuple(commands),
        advice=(
            f"Stop {settings.service_name}, then repair from an erl shell:",
        ),
    )


def _fixer_plan(stores: list[str], settings: Settings) -> RemediationPlan:
    root = Path(settings.log_root)
    commands = tuple(
        f"$ sudo -u {settings.service_user} {settings.fixer_path} {root / store}"
        for store in stores
    )
    return RemediationPlan(
        era=VersionEra.ERA_1_2,
        affected_stores=tuple(stores),
        commands=commands,
        advice=(
            f"WARNING: {settings.service_name} must be stopped before running the fixer.",
            "Each store is independent; run these in parallel to keep all disks busy:",
        ),
    )


def _self_healing_plan(stores: list[str], settings: Settings) -> RemediationPlan:
    return RemediationPlan(
        era=VersionEra.POST_1_2,
        affected_stores=tuple(stores),
        commands=(),
        advice=(
            "No manual repair applies to this version: the storage engine "
            "repairs compaction errors on its own.",
            "If the errors persist, contact Basho support or the riak-users mailing list.",
        ),
    )


REMEDIATION_STRATEGIES: dict[VersionEra, Callable[[list[str], Settings], RemediationPlan]] = {
    VersionEra.PRE_1_2: _erl_shell_plan,
    VersionEra.ERA_1_2: _fixer_plan,
    VersionEra.POST_1_2: _self_healing_plan,
}


def build_plan(era: VersionEra, stores: list[str], settings: Settings) -> RemediationPlan:
    return REMEDIATION_STRATEGIES[era](stores, settings)


# ── Check ────────────────────────────────────────────────────────────────────


def diagnose(log_root: str | Path, version: str | None, settings: Settings) -> CheckResult:
    """Scan log_root for compaction errors and describe the repair."""
    name = "compaction"
    try:
        matches = scan_logs(log_root)
    except LogRootUnavailable as e:
        return CheckResult.of(name, CheckStatus.UNKNOWN, f"log root unreachable: {e}")

    if not matches:
        return CheckResult.of(name, CheckStatus.OK, "no compaction errors found")

    logger.info("Found %d LOG files with compaction errors under %s", len(matches), log_root)

    if settings.mode is RunMode.MONITORING:
        return CheckResult.of(
            name, CheckStatus.CRITICAL,
            f"{len(matches)} LOG files report compaction errors",
        )

    stores = affected_stores(matches)
    if not stores:
        return CheckResult.of(
            name, CheckStatus.CRITICAL,
            "compaction errors found in the log root itself; no store directory identified",
            *(f"  {rel}" for rel in matches),
        )

    lines = [
        f"compaction errors found in {len(stores)} store(s): {', '.join(stores)}",
        *(f"  {rel}" for rel in matches),
    ]

    try:
        _numeric, era = classify(version or "")
    except ParseError:
        lines.append(
            f"Node version {version!r} could not be classified; "
            "no remediation selected."
        )
        return CheckResult.of(name, CheckStatus.CRITICAL, *lines)

    plan = build_plan(era, stores, settings)
    lines.extend(plan.lines())
    return CheckResult.of(name, CheckStatus.CRITICAL, *lines)
