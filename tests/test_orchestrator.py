"""
End-to-end tests for the sharing saga against an in-memory pod.
"""
import asyncio
from datetime import timedelta

import pytest

from podshare.audit.ids import AuditIdGenerator
from podshare.audit.log import AuditLog
from podshare.audit.query import latest_per_resource, shared_by_me, shared_with_me
from podshare.core.errors import (
    InvalidPattern, InvalidPermission, InvalidPrincipal, ShareCancelled, ShareFailed, ShareValidationError
)
from podshare.notify.dispatcher import NotificationDispatcher
from podshare.policy.compile import PolicyCompiler
from podshare.policy.models import Permission, SharePattern, ShareOptions
from podshare.policy.store import PolicyStore
from podshare.sharing.models import ShareState
from podshare.sharing.orchestrator import SharingOrchestrator

from conftest import ALICE, BOB, CAROL, RESOURCE

ACR = RESOURCE + ".acr"
INBOX = "https://bob.example/inbox/"


@pytest.fixture
def orchestrator(client, clock, cfg):
    store = PolicyStore(client, compiler=PolicyCompiler(clock=clock, cfg=cfg), cfg=cfg)
    audit_log = AuditLog(
        client, policy_store=store, clock=clock,
        id_generator=AuditIdGenerator(clock, node="abcd1234"), cfg=cfg,
    )
    return SharingOrchestrator(
        client, policy_store=store, audit_log=audit_log,
        notifier=NotificationDispatcher(client, clock=clock), clock=clock, cfg=cfg,
    )


@pytest.fixture
def bob_profile(pod):
    pod.add_profile(BOB, inbox=INBOX)


class TestShare:

    @pytest.mark.asyncio
    async def test_basic_read_share(self, orchestrator, pod, bob_profile):
        result = await orchestrator.share(RESOURCE, ALICE, BOB, [Permission.READ], SharePattern.BASIC)

        assert result.policy_applied
        assert result.state == ShareState.DONE
        assert result.audit_outcome == {"granter": True, "owner": True, "recipient": True}
        assert result.notified
        assert result.outgoing_logged
        assert result.warnings == []

        raw = await orchestrator.policy_store.fetch(RESOURCE)
        assert raw.flags.read and raw.flags.control
        assert f"<{BOB}>" in raw.body
        assert result.document.permissions_for(BOB) == frozenset({Permission.READ})
        assert result.document.permissions_for(ALICE) == frozenset(
            {Permission.READ, Permission.WRITE, Permission.CONTROL}
        )

        alice_log = await orchestrator.audit_log.read(ALICE)
        bob_log = await orchestrator.audit_log.read(BOB)
        for log in (alice_log, bob_log):
            assert len(log) == 1
            assert log[0].is_grant
            assert log[0].permissions == [Permission.READ]

        assert [e.resource for e in shared_with_me(bob_log, BOB)] == [RESOURCE]
        assert [e.resource for e in shared_by_me(alice_log, ALICE)] == [RESOURCE]
        assert [e.resource for e in await orchestrator.shared_with(BOB)] == [RESOURCE]

    @pytest.mark.asyncio
    async def test_policy_write_failure_stops_the_saga(self, orchestrator, pod, bob_profile):
        pod.fail("PUT", ACR, 500)

        with pytest.raises(ShareFailed) as exc:
            await orchestrator.share(RESOURCE, ALICE, BOB, [Permission.READ])

        assert "500" in exc.value.reason
        assert pod.calls("PATCH") == []
        assert pod.calls("POST") == []
        assert not any("permissions-log" in url for url in pod.resources)

    @pytest.mark.asyncio
    async def test_recipient_audit_forbidden(self, orchestrator, pod, bob_profile):
        pod.fail("*", "bob.example/solidtasks/logs", 403)

        result = await orchestrator.share(RESOURCE, ALICE, BOB, [Permission.READ])

        assert result.policy_applied
        assert result.state == ShareState.DONE
        assert result.audit_outcome["recipient"] is False
        assert result.audit_outcome["granter"] is True
        assert any(BOB in w for w in result.warnings)
        assert result.notified

    @pytest.mark.asyncio
    async def test_two_grants_latest_wins(self, orchestrator, clock, bob_profile):
        first = await orchestrator.share(RESOURCE, ALICE, BOB, [Permission.READ])
        clock.advance(seconds=30)
        second = await orchestrator.share(RESOURCE, ALICE, BOB, [Permission.READ, Permission.WRITE])

        assert first.entry.id != second.entry.id
        entries = await orchestrator.audit_log.read(ALICE)
        assert {e.id for e in entries} == {first.entry.id, second.entry.id}
        latest = latest_per_resource(entries)
        assert latest[RESOURCE].id == second.entry.id
        assert latest[RESOURCE].permissions == [Permission.READ, Permission.WRITE]

    @pytest.mark.asyncio
    async def test_all_audit_targets_failing_is_a_warning(self, orchestrator, pod, bob_profile):
        pod.fail("PATCH", "permissions-log.ttl", 500)

        result = await orchestrator.share(RESOURCE, ALICE, BOB, [Permission.READ])

        assert result.policy_applied
        assert result.audit_outcome == {"granter": False, "owner": False, "recipient": False}
        assert not result.audited
        assert result.notified

    @pytest.mark.asyncio
    async def test_notification_and_outbox_failures_are_warnings(self, orchestrator, pod, bob_profile):
        pod.fail("POST", INBOX, 500)
        pod.fail("POST", "solidtasks/outbox", 500)

        result = await orchestrator.share(RESOURCE, ALICE, BOB, [Permission.READ])

        assert result.state == ShareState.DONE
        assert not result.notified
        assert not result.outgoing_logged
        assert len(result.warnings) == 2

    @pytest.mark.asyncio
    async def test_recipient_without_inbox(self, orchestrator, pod):
        result = await orchestrator.share(RESOURCE, ALICE, BOB, [Permission.READ])
        assert not result.notified
        assert result.outgoing_logged
        assert result.warnings == ["Recipient not notified: no inbox"]

    @pytest.mark.asyncio
    async def test_granter_other_than_owner(self, orchestrator, pod, bob_profile):
        result = await orchestrator.share(RESOURCE, ALICE, BOB, ["read"], granter=CAROL)

        assert result.audit_outcome == {"granter": True, "owner": True, "recipient": True}
        carol_log = await orchestrator.audit_log.read(CAROL)
        assert [e.granter for e in carol_log] == [CAROL]
        assert "https://carol.example/solidtasks/outbox/" in pod.posts

    @pytest.mark.asyncio
    async def test_invalid_recipient(self, orchestrator, pod):
        with pytest.raises(ShareFailed) as exc:
            await orchestrator.share(RESOURCE, ALICE, "bob", [Permission.READ])
        assert isinstance(exc.value.__cause__, InvalidPrincipal)
        assert pod.requests == []

    @pytest.mark.asyncio
    async def test_owner_only_share_is_rejected(self, orchestrator, pod, bob_profile):
        with pytest.raises(ShareFailed) as exc:
            await orchestrator.share(RESOURCE, ALICE, BOB, [Permission.READ], SharePattern.OWNER_ONLY)
        assert isinstance(exc.value.__cause__, InvalidPattern)
        assert pod.calls("PUT") == []
        assert pod.calls("PATCH") == []
        assert pod.posts == {}

    @pytest.mark.asyncio
    async def test_empty_permissions_rejected(self, orchestrator, pod):
        with pytest.raises(ShareFailed) as exc:
            await orchestrator.share(RESOURCE, ALICE, BOB, [])
        assert isinstance(exc.value.__cause__, ShareValidationError)
        assert pod.requests == []

    @pytest.mark.asyncio
    async def test_unknown_permission_rejected(self, orchestrator, pod):
        with pytest.raises(ShareFailed) as exc:
            await orchestrator.share(RESOURCE, ALICE, BOB, ["admin"])
        assert isinstance(exc.value.__cause__, InvalidPermission)
        assert pod.requests == []

    @pytest.mark.asyncio
    async def test_existing_grants_are_kept(self, orchestrator, bob_profile):
        result = await orchestrator.share(
            RESOURCE, ALICE, BOB, [Permission.READ],
            existing_grants={frozenset({Permission.READ, Permission.WRITE}): {CAROL}},
        )
        assert result.document.permissions_for(CAROL) == frozenset({Permission.READ, Permission.WRITE})
        assert result.document.permissions_for(BOB) == frozenset({Permission.READ})

    @pytest.mark.asyncio
    async def test_time_limited_records_expiry(self, orchestrator, clock, bob_profile):
        until = clock.now() + timedelta(days=2)
        result = await orchestrator.share(
            RESOURCE, ALICE, BOB, [Permission.READ], SharePattern.TIME_LIMITED, ShareOptions(valid_until=until)
        )
        entries = await orchestrator.audit_log.read(BOB)
        assert entries[0].expiry == until
        assert entries[0].pattern == "time_limited"
        assert result.entry.expiry == until


class TestCancellation:

    @pytest.mark.asyncio
    async def test_cancel_before_commit(self, orchestrator, pod):
        cancel = asyncio.Event()
        cancel.set()

        with pytest.raises(ShareCancelled):
            await orchestrator.share(RESOURCE, ALICE, BOB, [Permission.READ], cancel=cancel)
        assert pod.requests == []

    @pytest.mark.asyncio
    async def test_cancel_after_commit_skips_best_effort_steps(self, orchestrator, pod, bob_profile):
        cancel = asyncio.Event()
        original_write = orchestrator.policy_store.write

        async def write_then_cancel(resource, document):
            await original_write(resource, document)
            cancel.set()

        orchestrator.policy_store.write = write_then_cancel
        result = await orchestrator.share(RESOURCE, ALICE, BOB, [Permission.READ], cancel=cancel)

        assert result.policy_applied
        assert result.state == ShareState.CANCELLED
        assert result.audit_outcome == {}
        assert not result.notified
        assert ACR in pod.resources
        assert pod.calls("PATCH") == []
        assert pod.calls("POST") == []


class TestRevoke:

    @pytest.mark.asyncio
    async def test_revoke_last_grant_makes_resource_private(self, orchestrator, pod, bob_profile):
        await orchestrator.share(RESOURCE, ALICE, BOB, [Permission.READ])
        posts_before = len(pod.calls("POST"))

        result = await orchestrator.revoke(RESOURCE, ALICE, BOB, [Permission.READ])

        assert result.state == ShareState.DONE
        assert result.document.pattern == SharePattern.OWNER_ONLY
        assert f"<{BOB}>" not in pod.resources[ACR]
        assert len(pod.calls("POST")) == posts_before

        latest = latest_per_resource(await orchestrator.audit_log.read(BOB))
        assert latest[RESOURCE].is_revoke

    @pytest.mark.asyncio
    async def test_revoke_keeps_remaining_grants(self, orchestrator, pod):
        remaining = {frozenset({Permission.READ}): {BOB, CAROL}}

        result = await orchestrator.revoke(RESOURCE, ALICE, BOB, [Permission.READ], remaining)

        assert result.document.permissions_for(CAROL) == frozenset({Permission.READ})
        assert result.document.permissions_for(BOB) == frozenset()

    @pytest.mark.asyncio
    async def test_revoke_policy_failure(self, orchestrator, pod):
        pod.fail("PUT", ACR, 503)
        with pytest.raises(ShareFailed):
            await orchestrator.revoke(RESOURCE, ALICE, BOB, [Permission.READ])
        assert pod.calls("PATCH") == []

    @pytest.mark.asyncio
    async def test_revoke_unknown_permission(self, orchestrator, pod):
        with pytest.raises(ShareFailed) as exc:
            await orchestrator.revoke(RESOURCE, ALICE, BOB, ["everything"])
        assert isinstance(exc.value.__cause__, InvalidPermission)
        assert pod.requests == []


class TestHelpers:

    @pytest.mark.asyncio
    async def test_make_private(self, orchestrator, pod):
        doc = await orchestrator.make_private(RESOURCE, ALICE)
        assert doc.pattern == SharePattern.OWNER_ONLY
        assert len(doc.access_controls) == 1
        assert ACR in pod.resources
        assert pod.calls("PATCH") == []

    @pytest.mark.asyncio
    async def test_can_access(self, orchestrator, pod):
        assert not await orchestrator.can_access(RESOURCE)
        pod.resources[RESOURCE] = "<> a <#Thing> ."
        assert await orchestrator.can_access(RESOURCE)
        pod.fail("HEAD", RESOURCE, 403)
        assert not await orchestrator.can_access(RESOURCE)
