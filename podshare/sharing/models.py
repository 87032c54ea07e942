"""
Sharing saga models.
"""
from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, Field

from podshare.audit.models import AuditEntry
from podshare.policy.models import PolicyDocument


class ShareState(str, Enum):
    """Where a share ended up."""
    STARTED = "started"
    POLICY_APPLIED = "policy_applied"
    POLICY_FAILED = "policy_failed"
    DONE = "done"
    CANCELLED = "cancelled"


class ShareResult(BaseModel):
    """
    Outcome of a share or revoke.

    Only ``policy_applied`` is authoritative; the remaining fields report
    best-effort steps that never undo the policy write.
    """
    policy_applied: bool = Field(description="Policy document committed")
    audit_outcome: Dict[str, bool] = Field(
        default_factory=dict, description="Audit replica outcome keyed by role (granter/owner/recipient)"
    )
    notified: bool = Field(default=False, description="Recipient inbox accepted the notification")
    outgoing_logged: bool = Field(default=False, description="Outgoing share recorded in the granter's outbox")
    warnings: List[str] = Field(default_factory=list, description="Downgraded best-effort failures")
    state: ShareState = Field(default=ShareState.STARTED, description="Final saga state")
    entry: Optional[AuditEntry] = Field(default=None, description="Audit entry for the event")
    document: Optional[PolicyDocument] = Field(default=None, description="Committed policy document")

    @property
    def audited(self) -> bool:
        return any(self.audit_outcome.values())
