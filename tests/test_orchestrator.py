"""Tests for check orchestration, aggregation and rendering."""

from __future__ import annotations

from collections.abc import Callable, Generator
from pathlib import Path
from typing import Any
from unittest.mock import MagicMock, patch

import pytest
from rich.console import Console

from riakcheck.config import Settings
from riakcheck.health.checks import CHECKS
from riakcheck.health.models import CheckResult, CheckStatus
from riakcheck.health.orchestrator import Orchestrator
from riakcheck.health.probes import CommandOutput

HEALTHY_STATS = {"vnode_gets": 7, "ring_members": ["riak@10.0.0.1", "riak@10.0.0.2"]}


def _system(_ctx: Any) -> CheckResult:
    return CheckResult.of("system", CheckStatus.OK, "up 1.0h, load 0.10 0.10 0.10")


@pytest.fixture
def node(node_process: MagicMock) -> Generator[dict[str, MagicMock], None, None]:
    """Patch every non-HTTP collaborator; the node is running by default."""
    with patch("riakcheck.health.checks.find_node_process", return_value=node_process) as find, \
         patch("riakcheck.health.checks.run_command") as run, \
         patch("riakcheck.health.checks.query_service", return_value="fmri svc:/riak") as svc, \
         patch("riakcheck.health.checks.capture_profile", return_value=None) as prof, \
         patch("riakcheck.health.checks.process_rss", return_value=500) as rss, \
         patch.dict(CHECKS, {"system": _system}):
        run.side_effect = lambda cmd, timeout: (
            CommandOutput(0, "pong\n", "") if cmd[-1] == "ping" else CommandOutput(0, "", "")
        )
        yield {"find": find, "run": run, "service": svc, "profile": prof, "rss": rss}


@pytest.fixture
def orchestrator_for(
    make_settings: Callable[..., Settings],
    make_probe: Callable[[dict[str, Any]], Any],
    console: Console,
) -> Callable[..., Orchestrator]:
    def _make(routes: dict[str, Any] | None = None, **overrides: Any) -> Orchestrator:
        routes = {"/ping": "OK", "/stats": HEALTHY_STATS} if routes is None else routes
        return Orchestrator(make_settings(**overrides), console, probe=make_probe(routes))

    return _make


def _names(orch: Orchestrator) -> list[str]:
    return [r.name for r in orch.results]


def _output(console: Console) -> str:
    return console.file.getvalue()  # type: ignore[attr-defined]


# ── Check selection ──────────────────────────────────────────────────────────


class TestRunAll:
    def test_healthy_node(self, node: dict[str, MagicMock], orchestrator_for: Callable[..., Orchestrator]) -> None:
        orch = orchestrator_for()
        assert orch.run_all() is CheckStatus.OK
        assert _names(orch) == [
            "config", "process", "system", "ping", "riakping", "singleton", "compaction",
        ]

    def test_all_checks_adds_stats_and_rss(
        self, node: dict[str, MagicMock], orchestrator_for: Callable[..., Orchestrator],
    ) -> None:
        orch = orchestrator_for(all_checks=True)
        assert orch.run_all() is CheckStatus.OK
        assert _names(orch)[-3:] == ["stats", "rss", "compaction"]
        node["profile"].assert_called_once()

    def test_process_absent(self, node: dict[str, MagicMock], orchestrator_for: Callable[..., Orchestrator]) -> None:
        node["find"].return_value = None
        orch = orchestrator_for(all_checks=True)
        status = orch.run_all()
        assert _names(orch) == ["config", "process", "oktostart", "compaction"]
        assert status is CheckStatus.CRITICAL
        assert status.exit_code == 2
        node["service"].assert_called_once()
        node["profile"].assert_not_called()

    def test_process_absent_dominates_oktostart(
        self, node: dict[str, MagicMock], orchestrator_for: Callable[..., Orchestrator],
    ) -> None:
        node["find"].return_value = None
        node["run"].side_effect = None
        node["run"].return_value = CommandOutput(-1, "", "sudo not found")
        orch = orchestrator_for()
        assert orch.run_all() is CheckStatus.CRITICAL
        assert orch.results[2].status is CheckStatus.UNKNOWN

    def test_missing_stats_field_is_critical(
        self, node: dict[str, MagicMock], orchestrator_for: Callable[..., Orchestrator],
    ) -> None:
        stats = {"ring_members": ["a", "b"]}
        orch = orchestrator_for({"/ping": "OK", "/stats": stats}, all_checks=True)
        status = orch.run_all()
        by_name = {r.name: r.status for r in orch.results}
        assert by_name["riakping"] is CheckStatus.OK
        assert by_name["stats"] is CheckStatus.CRITICAL
        assert status.exit_code == 2

    def test_compaction_runs_when_node_down(
        self, node: dict[str, MagicMock], orchestrator_for: Callable[..., Orchestrator], log_root: Path,
    ) -> None:
        node["find"].return_value = None
        (log_root / "0").mkdir()
        (log_root / "0" / "LOG").write_text("Compaction error: Corruption\n")
        orch = orchestrator_for()
        orch.run_all()
        assert orch.results[-1].name == "compaction"
        assert orch.results[-1].status is CheckStatus.CRITICAL

    def test_rss_warning_aggregates(
        self, node: dict[str, MagicMock], orchestrator_for: Callable[..., Orchestrator],
    ) -> None:
        node["rss"].return_value = 1500
        assert orchestrator_for(all_checks=True).run_all() is CheckStatus.WARNING

    def test_singleton_unknown_aggregates(
        self, node: dict[str, MagicMock], orchestrator_for: Callable[..., Orchestrator],
    ) -> None:
        orch = orchestrator_for({"/ping": "OK", "/stats": "garbage"})
        assert orch.run_all() is CheckStatus.UNKNOWN

    def test_service_failure_is_swallowed(
        self, node: dict[str, MagicMock], orchestrator_for: Callable[..., Orchestrator],
    ) -> None:
        node["service"].side_effect = OSError("svcs exploded")
        orch = orchestrator_for()
        assert orch.run_all() is CheckStatus.OK
        assert "service" not in _names(orch)

    def test_repeat_runs_start_fresh(
        self, node: dict[str, MagicMock], orchestrator_for: Callable[..., Orchestrator],
    ) -> None:
        orch = orchestrator_for()
        orch.run_all()
        first = orch.results
        orch.run_all()
        assert orch.results == first


class TestRunSingle:
    def test_one_check_only(self, node: dict[str, MagicMock], orchestrator_for: Callable[..., Orchestrator]) -> None:
        orch = orchestrator_for({"/ping": "nope"})
        assert orch.run_single("riakping") is CheckStatus.CRITICAL
        assert _names(orch) == ["riakping"]
        node["find"].assert_not_called()

    def test_best_effort_available(
        self, node: dict[str, MagicMock], orchestrator_for: Callable[..., Orchestrator], console: Console,
    ) -> None:
        assert orchestrator_for().run_single("service") is CheckStatus.OK
        assert "fmri svc:/riak" in _output(console)

    def test_best_effort_unavailable(
        self, node: dict[str, MagicMock], orchestrator_for: Callable[..., Orchestrator], console: Console,
    ) -> None:
        assert orchestrator_for(monitoring=True).run_single("profile") is CheckStatus.UNKNOWN
        assert _output(console) == "unknown: profile unavailable\n"


# ── Rendering ────────────────────────────────────────────────────────────────


class TestRendering:
    def test_interactive_headers_and_trailer(
        self, node: dict[str, MagicMock], orchestrator_for: Callable[..., Orchestrator], console: Console,
    ) -> None:
        orchestrator_for().run_all()
        out = _output(console)
        assert "== Process ==" in out
        assert "== Service status ==" in out
        assert "== Compaction errors ==" in out
        assert "ok: no compaction errors found" in out
        assert out.endswith("\n\n")

    def test_monitoring_one_line_per_check(
        self, node: dict[str, MagicMock], orchestrator_for: Callable[..., Orchestrator], console: Console,
    ) -> None:
        orch = orchestrator_for(monitoring=True)
        orch.run_all()
        lines = _output(console).splitlines()
        assert len(lines) == len(orch.results)
        assert "==" not in _output(console)
        assert not _output(console).endswith("\n\n")
        for line in lines:
            assert line.split(":", 1)[0] in {"ok", "warning", "critical", "unknown"}

    def test_remediation_transcript_not_treated_as_markup(
        self, node: dict[str, MagicMock], orchestrator_for: Callable[..., Orchestrator],
        console: Console, log_root: Path,
    ) -> None:
        (log_root / "0").mkdir()
        (log_root / "0" / "LOG").write_text("Compaction error\n")
        orchestrator_for(node_version="1.1.4").run_single("compaction")
        assert "{max_open_files, 2000}" in _output(console)
        assert "[{" in _output(console)

    def test_monitoring_multiline_failure_is_one_line(
        self, node: dict[str, MagicMock], orchestrator_for: Callable[..., Orchestrator], console: Console,
    ) -> None:
        node["run"].side_effect = None
        node["run"].return_value = CommandOutput(
            1, "Node 'riak@127.0.0.1' not responding to pings.\nsecond line\n", "",
        )
        status = orchestrator_for(monitoring=True).run_single("ping")
        assert status is CheckStatus.CRITICAL
        assert _output(console).splitlines() == [
            "critical: local ping failed: Node 'riak@127.0.0.1' not responding to pings.",
        ]

    def test_interactive_keeps_multiline_detail(
        self, node: dict[str, MagicMock], orchestrator_for: Callable[..., Orchestrator], console: Console,
    ) -> None:
        node["run"].side_effect = None
        node["run"].return_value = CommandOutput(1, "first line\nsecond line\n", "")
        orchestrator_for().run_single("ping")
        assert "second line" in _output(console)
