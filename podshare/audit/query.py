"""
Queries over decoded audit entries.

Principals are compared canonically. Ordering is only meaningful within
one principal's log; entries from different pods carry their writers'
clocks.
"""
from datetime import datetime
from typing import Dict, Iterable, List

from podshare.audit.models import AuditEntry
from podshare.identity.principal import same_principal


def latest_per_resource(entries: Iterable[AuditEntry]) -> Dict[str, AuditEntry]:
    """Newest entry for each resource."""
    latest: Dict[str, AuditEntry] = {}
    for entry in entries:
        current = latest.get(entry.resource)
        if current is None or entry.timestamp > current.timestamp or (
            entry.timestamp == current.timestamp and entry.id > current.id
        ):
            latest[entry.resource] = entry
    return latest


def filter_by_resource(entries: Iterable[AuditEntry], fragment: str) -> List[AuditEntry]:
    """Entries whose resource URI contains ``fragment``."""
    return [e for e in entries if fragment in e.resource]


def filter_by_owner(entries: Iterable[AuditEntry], owner: str) -> List[AuditEntry]:
    return [e for e in entries if same_principal(e.owner, owner)]


def shared_with_me(entries: Iterable[AuditEntry], principal: str) -> List[AuditEntry]:
    """Grants where ``principal`` is the recipient."""
    return [e for e in entries if e.is_grant and same_principal(e.recipient, principal)]


def shared_by_me(entries: Iterable[AuditEntry], principal: str) -> List[AuditEntry]:
    """Grants where ``principal`` is the granter."""
    return [e for e in entries if e.is_grant and same_principal(e.granter, principal)]


def active_grants(entries: Iterable[AuditEntry], now: datetime) -> List[AuditEntry]:
    """Grants that have not expired at ``now``."""
    return [e for e in entries if e.is_grant and not e.is_expired(now)]


def newest_first(entries: Iterable[AuditEntry]) -> List[AuditEntry]:
    return sorted(entries, key=lambda e: (e.timestamp, e.id), reverse=True)
