"""Exceptions raised by the audit pipeline."""
from __future__ import annotations


class AuditError(Exception):
    """Base class for audit pipeline errors."""


class AuditNotFoundError(AuditError):
    def __init__(self, audit_id: str):
        super().__init__(f"Audit not found: {audit_id}")
        self.audit_id = audit_id


class InvalidTransitionError(AuditError):
    """Raised when a status change is not allowed by the state machine."""

    def __init__(self, current: str, target: str):
        super().__init__(f"Cannot move audit from {current} to {target}")
        self.current = current
        self.target = target


class InvalidAuditRequestError(AuditError):
    """Raised for a malformed seed URL or page budget."""


class UnknownCheckError(InvalidAuditRequestError):
    def __init__(self, check_name: str):
        super().__init__(f"Unknown check: {check_name!r}")
        self.check_name = check_name


class StorageError(AuditError):
    """Raised when the audit store cannot complete an operation."""


class SeedUnreachableError(AuditError):
    """Raised when the very first page of a crawl cannot be fetched."""


class AuditCancelledError(AuditError):
    """Raised inside a batch when a stop was requested."""
