"""Node version parsing and remediation-era classification.

Versions are compared by concatenating their digits ("1.3.1" -> 131),
not semantically. Era thresholds were chosen against that scheme, so
"1.10" sorting below "1.9" is expected behaviour.
"""

from __future__ import annotations

import logging
import re
from enum import Enum
from pathlib import Path

from ..config import Settings

logger = logging.getLogger(__name__)

_LEADING_VERSION = re.compile(r"^[0-9][0-9.]*")

ERA_1_2_THRESHOLD = 120


class VersionEra(str, Enum):
    PRE_1_2 = "pre-1.2"
    ERA_1_2 = "1.2"
    POST_1_2 = "post-1.2"


class ParseError(ValueError):
    """Raised when a version string has no leading digit."""


def classify(raw: str) -> tuple[int, VersionEra]:
    """Return ``(numeric_version, era)`` for a raw version string."""
    match = _LEADING_VERSION.match(raw)
    if not match:
        raise ParseError(f"Unparseable version: {raw!r}")

    digits = match.group(0).replace(".", "")
    numeric = int(digits)

    if numeric < ERA_1_2_THRESHOLD:
        era = VersionEra.PRE_1_2
    elif raw.startswith("1.2"):
        era = VersionEra.ERA_1_2
    else:
        era = VersionEra.POST_1_2
    return numeric, era


def read_node_version(settings: Settings) -> str | None:
    """Installed node version: explicit setting, else the release file."""
    if settings.node_version:
        return settings.node_version

    path = Path(settings.version_file)
    try:
        content = path.read_text(encoding="utf-8", errors="replace")
    except OSError as e:
        logger.info("Cannot read version file %s: %s", path, e)
        return None

    # start_erl.data holds "<erts version> <release version>"
    tokens = content.split()
    return tokens[-1] if tokens else None
