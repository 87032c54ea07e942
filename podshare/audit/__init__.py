"""
Permission audit log.
"""

from .models import AuditEntry, AuditEventType, AuditWriteResult, TargetOutcome, TargetRole
from .codec import encode_record, decode_record, parse_log_document, MalformedRecord
from .ids import AuditIdGenerator
from .log import AuditLog
from .query import (
    latest_per_resource, filter_by_resource, filter_by_owner, shared_with_me,
    shared_by_me, active_grants, newest_first
)

__all__ = [
    "AuditEntry", "AuditEventType", "AuditWriteResult", "TargetOutcome",
    "TargetRole", "encode_record", "decode_record", "parse_log_document",
    "MalformedRecord", "AuditIdGenerator", "AuditLog", "latest_per_resource",
    "filter_by_resource", "filter_by_owner", "shared_with_me", "shared_by_me",
    "active_grants", "newest_first"
]
