"""Audit status state machine."""
from __future__ import annotations

from enum import Enum

from site_audit.pipeline.errors import InvalidTransitionError


class AuditStatus(str, Enum):
    PENDING = "pending"
    CRAWLING = "crawling"
    CHECKING = "checking"
    BATCH_COMPLETE = "batch_complete"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES


TERMINAL_STATUSES = frozenset({AuditStatus.COMPLETED, AuditStatus.FAILED})

# Phases a batch_complete audit may resume into
RESUMABLE_STATUSES = frozenset({AuditStatus.CRAWLING, AuditStatus.CHECKING})

TRANSITIONS: dict[AuditStatus, frozenset[AuditStatus]] = {
    AuditStatus.PENDING: frozenset({AuditStatus.CRAWLING, AuditStatus.FAILED}),
    AuditStatus.CRAWLING: frozenset(
        {AuditStatus.CHECKING, AuditStatus.BATCH_COMPLETE, AuditStatus.FAILED}
    ),
    AuditStatus.CHECKING: frozenset(
        {AuditStatus.COMPLETED, AuditStatus.BATCH_COMPLETE, AuditStatus.FAILED}
    ),
    AuditStatus.BATCH_COMPLETE: frozenset(
        {AuditStatus.CRAWLING, AuditStatus.CHECKING, AuditStatus.FAILED}
    ),
    AuditStatus.COMPLETED: frozenset(),
    AuditStatus.FAILED: frozenset(),
}


def can_transition(current: AuditStatus, target: AuditStatus) -> bool:
    return AuditStatus(target) in TRANSITIONS[AuditStatus(current)]


def transition(current: AuditStatus, target: AuditStatus) -> AuditStatus:
    """Validate a status change and return the new status.

    Raises:
        InvalidTransitionError: If the table does not allow the change
    """
    current, target = AuditStatus(current), AuditStatus(target)
    if target not in TRANSITIONS[current]:
        raise InvalidTransitionError(current.value, target.value)
    return target
