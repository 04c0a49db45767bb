"""Check framework for SEO, technical and AI-readiness checks."""
from site_audit.checks.base import (
    BaseCheck,
    CheckCategory,
    CheckContext,
    CheckOutcome,
    CheckPriority,
    CheckScope,
    CheckStatus,
)
from site_audit.checks.executor import CheckExecutor, run_check
from site_audit.checks.registry import CheckRegistry, check_registry

__all__ = [
    "BaseCheck",
    "CheckCategory",
    "CheckContext",
    "CheckOutcome",
    "CheckPriority",
    "CheckScope",
    "CheckStatus",
    "CheckExecutor",
    "CheckRegistry",
    "check_registry",
    "run_check",
]
