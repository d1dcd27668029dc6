"""Check result model and status aggregation."""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from enum import Enum


class CheckStatus(str, Enum):
    OK = "ok"
    WARNING = "warning"
    CRITICAL = "critical"
    UNKNOWN = "unknown"

    @property
    def exit_code(self) -> int:
        return _EXIT_CODES[self]

    @property
    def rank(self) -> int:
        return _RANKS[self]


_EXIT_CODES = {
    CheckStatus.OK: 0,
    CheckStatus.WARNING: 1,
    CheckStatus.CRITICAL: 2,
    CheckStatus.UNKNOWN: 3,
}

# Aggregation order. UNKNOWN sits between WARNING and CRITICAL.
_RANKS = {
    CheckStatus.OK: 0,
    CheckStatus.WARNING: 1,
    CheckStatus.UNKNOWN: 2,
    CheckStatus.CRITICAL: 3,
}


@dataclass(frozen=True)
class CheckResult:
    """Result of a single check execution."""

    name: str
    status: CheckStatus
    message: tuple[str, ...] = ()

    @classmethod
    def of(cls, name: str, status: CheckStatus, *lines: str) -> CheckResult:
        """Build a result, splitting embedded newlines into separate lines."""
        split = [part for line in lines for part in (line.splitlines() or [line])]
        return cls(name=name, status=status, message=tuple(split))

    @property
    def summary(self) -> str:
        if not self.message:
            return ""
        first = self.message[0].splitlines()
        return first[0] if first else ""

    def terse(self) -> str:
        """Single monitoring line, e.g. ``critical: riak is not running``."""
        return f"{self.status.value}: {self.summary}"


def aggregate(results: Iterable[CheckResult]) -> CheckStatus:
    """Worst status among results; OK when there are none."""
    worst = CheckStatus.OK
    for result in results:
        if result.status.rank > worst.rank:
            worst = result.status
    return worst
