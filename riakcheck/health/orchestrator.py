"""Check orchestration — decides what to run, aggregates, renders.

A full run always covers configuration, service status, the process
check and the compaction scan; checks that need a live node only run
when the process check passes, otherwise ``oktostart`` runs instead.
"""

from __future__ import annotations

import logging

from rich.console import Console

from ..config import RunMode, Settings
from .checks import BEST_EFFORT, CheckContext, run_best_effort, run_check
from .models import CheckResult, CheckStatus, aggregate
from .probes import HttpProbe

logger = logging.getLogger(__name__)

LABELS = {
    "config": "Configuration",
    "service": "Service status",
    "process": "Process",
    "system": "System health",
    "ping": "Local ping",
    "riakping": "Remote ping",
    "singleton": "Cluster membership",
    "stats": "Stats",
    "profile": "Profile",
    "rss": "Memory (RSS)",
    "oktostart": "OK to start",
    "compaction": "Compaction errors",
}

LIVE_CHECKS = ("system", "ping", "riakping", "singleton")


class Orchestrator:
    """Runs the check battery for one node and renders the outcome."""

    def __init__(
        self,
        settings: Settings,
        console: Console | None = None,
        probe: HttpProbe | None = None,
    ) -> None:
        self.settings = settings
        self.console = console or Console(highlight=False)
        self.ctx = CheckContext(
            settings=settings,
            probe=probe or HttpProbe.from_settings(settings),
        )
        self._results: list[CheckResult] = []

    @property
    def monitoring(self) -> bool:
        return self.settings.mode is RunMode.MONITORING

    @property
    def results(self) -> list[CheckResult]:
        """Results aggregated by the most recent run."""
        return list(self._results)

    # ── Runs ─────────────────────────────────────────────────────────────────

    def run_all(self) -> CheckStatus:
        """Run the full battery and return the aggregate status."""
        self._results = []

        self._run("config")
        self._run_best_effort("service")

        process = self._run("process")
        if process.status is CheckStatus.OK:
            for name in LIVE_CHECKS:
                self._run(name)
            if self.settings.all_checks:
                self._run("stats")
                self._run_best_effort("profile")
                self._run("rss")
        else:
            self._run("oktostart")

        self._run("compaction")

        status = aggregate(self._results)
        logger.info("Run finished: %d checks, aggregate %s", len(self._results), status.value)
        self._finish()
        return status

    def run_single(self, name: str) -> CheckStatus:
        """Run exactly one named check; its status is the run's status."""
        self._results = []

        if name in BEST_EFFORT:
            output = self._run_best_effort(name, always_render=True)
            status = CheckStatus.OK if output is not None else CheckStatus.UNKNOWN
        else:
            status = self._run(name).status

        self._finish()
        return status

    # ── Internals ────────────────────────────────────────────────────────────

    def _run(self, name: str) -> CheckResult:
        logger.debug("Running check %s", name)
        result = run_check(name, self.ctx)
        self._results.append(result)
        self._render(result)
        return result

    def _run_best_effort(self, name: str, always_render: bool = False) -> str | None:
        output = run_best_effort(name, self.ctx)
        if self.monitoring:
            if always_render:
                line = output.splitlines()[0] if output else f"{name} unavailable"
                word = CheckStatus.OK.value if output else CheckStatus.UNKNOWN.value
                self._print(f"{word}: {line}")
        elif output is not None or always_render:
            self._header(name)
            self._print(output if output is not None else f"{name} unavailable")
        return output

    def _render(self, result: CheckResult) -> None:
        if self.monitoring:
            self._print(result.terse())
            return
        self._header(result.name)
        self._print(result.terse())
        for line in result.message[1:]:
            self._print(line)

    def _header(self, name: str) -> None:
        self.console.print(f"[bold]== {LABELS.get(name, name)} ==[/bold]")

    def _print(self, text: str) -> None:
        self.console.print(text, markup=False, highlight=False, emoji=False, soft_wrap=True)

    def _finish(self) -> None:
        if not self.monitoring:
            self.console.print()
