"""
Unit tests for audit log queries.
"""
from datetime import datetime, timedelta, timezone

from podshare.audit.models import AuditEntry, AuditEventType
from podshare.audit.query import (
    active_grants, filter_by_owner, filter_by_resource, latest_per_resource,
    newest_first, shared_by_me, shared_with_me
)
from podshare.policy.models import Permission

from conftest import ALICE, BOB, CAROL, RESOURCE

TS = datetime(2026, 10, 19, 12, 0, 0, tzinfo=timezone.utc)
NOTES = "https://alice.example/notes/today.ttl"


def entry(id, minutes=0, **overrides) -> AuditEntry:
    values = dict(
        id=id,
        timestamp=TS + timedelta(minutes=minutes),
        resource=RESOURCE,
        owner=ALICE,
        granter=ALICE,
        recipient=BOB,
        permissions=[Permission.READ],
        type=AuditEventType.GRANT,
    )
    values.update(overrides)
    return AuditEntry(**values)


def test_latest_per_resource():
    entries = [
        entry("a", 0),
        entry("b", 5, permissions=[Permission.READ, Permission.WRITE]),
        entry("c", 1, resource=NOTES),
    ]
    latest = latest_per_resource(entries)

    assert latest[RESOURCE].id == "b"
    assert latest[NOTES].id == "c"


def test_latest_per_resource_breaks_ties_by_id():
    latest = latest_per_resource([entry("x-2"), entry("x-1")])
    assert latest[RESOURCE].id == "x-2"


def test_filter_by_resource_substring():
    entries = [entry("a"), entry("b", resource=NOTES)]
    assert [e.id for e in filter_by_resource(entries, "/notes/")] == ["b"]


def test_filter_by_owner_is_canonical():
    entries = [entry("a"), entry("b", owner=CAROL)]
    assert [e.id for e in filter_by_owner(entries, "https://alice.example/")] == ["a"]


def test_shared_with_me_and_by_me():
    entries = [
        entry("a"),
        entry("b", granter=BOB, recipient=ALICE),
        entry("c", type=AuditEventType.REVOKE),
    ]

    assert [e.id for e in shared_with_me(entries, "https://bob.example/profile/card")] == ["a"]
    assert [e.id for e in shared_by_me(entries, ALICE)] == ["a"]
    assert [e.id for e in shared_with_me(entries, ALICE)] == ["b"]


def test_active_grants_drop_expired():
    entries = [
        entry("a", expiry=TS + timedelta(hours=1)),
        entry("b", expiry=TS - timedelta(hours=1)),
        entry("c"),
        entry("d", type=AuditEventType.REVOKE),
    ]
    assert [e.id for e in active_grants(entries, TS)] == ["a", "c"]


def test_newest_first():
    assert [e.id for e in newest_first([entry("a", 0), entry("b", 2), entry("c", 1)])] == ["b", "c", "a"]
