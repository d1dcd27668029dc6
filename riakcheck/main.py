"""Entry point for riakcheck."""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

import yaml
from rich.console import Console

from riakcheck.config import load_settings
from riakcheck.health.checks import CHECK_NAMES
from riakcheck.health.models import CheckStatus
from riakcheck.health.orchestrator import Orchestrator

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="riakcheck",
        description="Health checks for a Riak node. Exit status: 0 ok, 1 warning, 2 critical, 3 unknown.",
    )
    parser.add_argument("-c", "--check", choices=CHECK_NAMES, help="Run a single check")
    parser.add_argument("-d", "--log-root", help="LevelDB data/log root directory")
    parser.add_argument("-H", "--host", help="Riak HTTP host")
    parser.add_argument("-p", "--port", type=int, help="Riak HTTP port")
    parser.add_argument("-t", "--timeout", type=float, help="HTTP request timeout (seconds)")
    parser.add_argument("-w", "--rss-warning", type=int, help="RSS warning threshold (bytes)")
    parser.add_argument("-C", "--rss-critical", type=int, help="RSS critical threshold (bytes)")
    parser.add_argument("-s", "--service", dest="service_name", help="Service manager name")
    parser.add_argument(
        "-n", "--nagios", dest="monitoring", action="store_true", default=None,
        help="Monitoring mode: one status line per check",
    )
    parser.add_argument(
        "-a", "--all", dest="all_checks", action="store_true", default=None,
        help="Also run stats, profile and rss checks",
    )
    parser.add_argument("--config", type=Path, help="YAML settings file")
    parser.add_argument("--log-level", help="Logging level (default WARNING)")
    return parser


def main(argv: list[str] | None = None) -> None:
    args = build_parser().parse_args(argv)
    overrides = {k: v for k, v in vars(args).items() if k not in ("check", "config")}

    try:
        settings = load_settings(args.config, **overrides)
    except (ValueError, OSError, yaml.YAMLError) as e:
        print(f"unknown: invalid configuration: {e}", file=sys.stderr)
        sys.exit(CheckStatus.UNKNOWN.exit_code)

    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.WARNING),
        format="%(asctime)s [%(name)s] %(levelname)s: %(message)s",
        stream=sys.stderr,
    )

    orchestrator = Orchestrator(settings, Console(highlight=False))
    if args.check:
        status = orchestrator.run_single(args.check)
    else:
        status = orchestrator.run_all()
    sys.exit(status.exit_code)


if __name__ == "__main__":
    main()
