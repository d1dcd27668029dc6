"""Health subsystem — checks, compaction diagnosis, orchestration."""

from .checks import CHECK_NAMES, CheckContext, UnknownCheckError, run_check
from .compaction import RemediationPlan, diagnose
from .models import CheckResult, CheckStatus, aggregate
from .orchestrator import Orchestrator
from .version import ParseError, VersionEra, classify
