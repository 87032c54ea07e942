"""
Exception taxonomy for podshare.

Validation and store errors abort a share. Audit and notification errors
are downgraded to warnings by the sharing orchestrator.
"""
from typing import Optional


class PodShareError(Exception):
    """Base exception for podshare errors."""
    pass


# ===== Validation =====

class ShareValidationError(PodShareError):
    """Bad principal, pattern or option in a sharing intent."""
    pass


class InvalidPattern(ShareValidationError):
    """Unknown share pattern, or grants the pattern cannot express."""

    def __init__(self, pattern: object, message: Optional[str] = None):
        self.pattern = pattern
        super().__init__(message or f"Unknown share pattern: {pattern!r}")


class InvalidPermission(ShareValidationError):
    """A permission name outside read, write, append and control."""

    def __init__(self, permission: object):
        self.permission = permission
        super().__init__(f"Unknown permission: {permission!r}")


class InvalidPrincipal(ShareValidationError):
    """A principal that is not an http(s) identity URI with a fragment."""

    def __init__(self, principal: object, role: str = "principal"):
        self.principal = principal
        self.role = role
        super().__init__(f"Invalid {role} identity: {principal!r}")


# ===== Store I/O =====

class StoreError(PodShareError):
    """Object store request failed."""

    def __init__(self, resource: str, status: Optional[int] = None, message: Optional[str] = None):
        self.resource = resource
        self.status = status
        detail = message or (f"HTTP {status}" if status is not None else "no response")
        super().__init__(f"{self.__class__.__name__}({resource}): {detail}")


class WriteFailed(StoreError):
    pass


class ReadFailed(StoreError):
    pass


class NotFound(StoreError):
    pass


# ===== Audit =====

class AuditError(PodShareError):
    """Audit log replication or read failed."""
    pass


class AuditWriteFailed(AuditError):
    """No attempted audit replica was written."""

    def __init__(self, entry_id: str, failures: dict, result=None):
        self.entry_id = entry_id
        self.failures = failures
        self.result = result
        targets = ", ".join(sorted(failures)) or "none"
        super().__init__(f"Audit entry {entry_id} not written to any target ({targets})")


class PartialReplicationFailure(AuditError):
    """Some, but not all, audit replicas were written."""

    def __init__(self, entry_id: str, failed: dict):
        self.entry_id = entry_id
        self.failed = failed
        super().__init__(f"Audit entry {entry_id} missing from: {', '.join(sorted(failed))}")


# ===== Notification =====

class NotificationUnavailable(PodShareError):
    """Recipient has no discoverable inbox or delivery was refused (soft)."""

    def __init__(self, recipient: str, reason: str):
        self.recipient = recipient
        self.reason = reason
        super().__init__(f"Notification to {recipient} unavailable: {reason}")


# ===== Saga =====

class ShareFailed(PodShareError):
    """The policy commit failed; nothing else was attempted."""

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(f"Share failed: {reason}")


class ShareCancelled(PodShareError):
    """Cancelled before the policy was committed."""
    pass
