"""
Audit log models.
"""
from datetime import datetime
from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from podshare.policy.models import Permission


class AuditEventType(str, Enum):
    GRANT = "grant"
    REVOKE = "revoke"


class TargetRole(str, Enum):
    """Why a principal receives a replica of an entry."""
    GRANTER = "granter"
    OWNER = "owner"
    RECIPIENT = "recipient"


class AuditEntry(BaseModel):
    """One grant/revoke event. Never mutated once written."""
    model_config = ConfigDict(frozen=True)

    id: str = Field(description="Sortable id, identical in every replica")
    timestamp: datetime = Field(description="Event time (UTC)")
    resource: str = Field(description="Governed resource")
    owner: str = Field(description="Resource owner")
    granter: str = Field(description="Principal that changed the policy")
    recipient: str = Field(description="Principal whose access changed")
    permissions: List[Permission] = Field(description="Permissions granted or revoked")
    type: AuditEventType = Field(description="grant or revoke")
    pattern: str = Field(default="basic", description="Share pattern used")
    expiry: Optional[datetime] = Field(default=None, description="Grant expiry")

    # Read-side bookkeeping, not part of the event
    format_version: int = Field(default=2, description="Record format the entry was decoded from")
    timestamp_recovered: bool = Field(
        default=False, description="Stored timestamp was malformed and replaced by the read time"
    )

    @property
    def is_grant(self) -> bool:
        return self.type == AuditEventType.GRANT

    @property
    def is_revoke(self) -> bool:
        return self.type == AuditEventType.REVOKE

    def is_expired(self, now: datetime) -> bool:
        return self.expiry is not None and now > self.expiry


class TargetOutcome(BaseModel):
    """Result of replicating one entry into one principal's log."""
    target: str = Field(description="Canonical principal owning the log")
    roles: List[TargetRole] = Field(description="Roles merged into this target")
    ok: bool = Field(description="Entry appended")
    status: Optional[int] = Field(default=None, description="HTTP status of the failing step")
    error: Optional[str] = Field(default=None, description="Failure detail")


class AuditWriteResult(BaseModel):
    """Per-target outcomes for one audit entry."""
    entry: AuditEntry
    outcomes: List[TargetOutcome] = Field(default_factory=list)

    @property
    def ok(self) -> bool:
        return any(o.ok for o in self.outcomes)

    @property
    def partial(self) -> bool:
        return self.ok and not all(o.ok for o in self.outcomes)

    def by_role(self) -> Dict[str, bool]:
        """Outcome per role; merged roles share their target's outcome."""
        result: Dict[str, bool] = {}
        for outcome in self.outcomes:
            for role in outcome.roles:
                result[role.value] = outcome.ok
        return result

    def failures(self) -> Dict[str, str]:
        return {o.target: (o.error or f"HTTP {o.status}") for o in self.outcomes if not o.ok}
