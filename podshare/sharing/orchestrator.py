"""
Sharing saga.

A share commits exactly once, when the policy document is written. Audit
replication, the inbox notification and the outgoing-share record follow as
independent best-effort steps; their failures become warnings and nothing is
ever rolled back.
"""
import asyncio
import logging
from typing import Iterable, List, Optional

from podshare.audit.log import AuditLog
from podshare.audit.models import AuditEntry, AuditEventType
from podshare.audit.query import shared_by_me, shared_with_me
from podshare.config import Settings, settings as default_settings
from podshare.core.clock import Clock, system_clock
from podshare.core.errors import (
    AuditError, AuditWriteFailed, NotificationUnavailable, PartialReplicationFailure,
    PodShareError, ShareCancelled, ShareFailed
)
from podshare.identity.principal import normalize, same_principal
from podshare.notify.dispatcher import NotificationDispatcher
from podshare.policy.compile import PolicyCompiler, grants_for_share
from podshare.policy.models import (
    Grants, Permission, PolicyDocument, SharePattern, ShareOptions, sort_permissions
)
from podshare.policy.store import PolicyStore
from podshare.sharing.models import ShareResult, ShareState
from podshare.transports.http_adapter import PodHttpClient

logger = logging.getLogger(__name__)

ACCESSIBLE_STATUSES = (200, 204)


def _cancelled(cancel: Optional[asyncio.Event]) -> bool:
    return cancel is not None and cancel.is_set()


class SharingOrchestrator:
    """
    Runs share and revoke sagas against one object store session.
    """

    def __init__(
        self,
        client: PodHttpClient,
        *,
        policy_store: Optional[PolicyStore] = None,
        audit_log: Optional[AuditLog] = None,
        notifier: Optional[NotificationDispatcher] = None,
        clock: Optional[Clock] = None,
        cfg: Optional[Settings] = None,
    ):
        self.client = client
        self.cfg = cfg or default_settings
        self.clock = clock or system_clock
        self.policy_store = policy_store or PolicyStore(
            client, compiler=PolicyCompiler(clock=self.clock, cfg=self.cfg), cfg=self.cfg
        )
        self.audit_log = audit_log or AuditLog(
            client, policy_store=self.policy_store, clock=self.clock, cfg=self.cfg
        )
        self.notifier = notifier or NotificationDispatcher(client, clock=self.clock)

    async def share(
        self,
        resource: str,
        owner: str,
        recipient: str,
        permissions: Iterable,
        pattern=SharePattern.BASIC,
        options: Optional[ShareOptions] = None,
        *,
        granter: Optional[str] = None,
        existing_grants: Optional[Grants] = None,
        message: Optional[str] = None,
        cancel: Optional[asyncio.Event] = None,
    ) -> ShareResult:
        """
        Share a resource with a recipient.

        The policy is rebuilt from ``existing_grants`` plus the recipient's
        grant and replaces whatever policy the resource had.

        Args:
            resource: Resource URI
            owner: Resource owner
            recipient: Principal receiving access
            permissions: Requested permissions
            pattern: Share pattern
            options: Pattern options
            granter: Principal performing the share (defaults to the owner)
            existing_grants: Other grants the new policy must keep
            message: Note for the recipient's notification
            cancel: Cancellation signal

        Returns:
            ShareResult; ``state`` is DONE, or CANCELLED when the signal fired
            after the policy was committed

        Raises:
            ShareFailed: Validation or policy write failed; nothing else ran
            ShareCancelled: Cancelled before the policy was committed
        """
        granter = granter or owner
        options = options or ShareOptions()

        if _cancelled(cancel):
            raise ShareCancelled(f"Share of {resource} cancelled before policy write")

        try:
            recipient_grants = grants_for_share(pattern, recipient, permissions)
            grants = self._merge_grants(existing_grants, recipient_grants)
            document = await self.policy_store.apply(resource, pattern, owner, grants, options)
        except PodShareError as e:
            logger.warning("Share of %s with %s failed: %s", resource, recipient, e)
            raise ShareFailed(str(e)) from e

        granted = sort_permissions(next(iter(recipient_grants)))
        result = ShareResult(policy_applied=True, state=ShareState.POLICY_APPLIED, document=document)
        entry = self.audit_log.new_entry(
            resource=resource,
            owner=owner,
            granter=granter,
            recipient=recipient,
            permissions=granted,
            event_type=AuditEventType.GRANT,
            pattern=document.pattern,
            expiry=options.valid_until,
        )
        result.entry = entry

        if await self._audit(entry, result, cancel):
            return result

        if _cancelled(cancel):
            return self._cancel(result, "notification")
        try:
            notification = await self.notifier.notify(
                actor=entry.granter,
                recipient=entry.recipient,
                resource=resource,
                permissions=granted,
                message=message,
            )
            result.notified = notification.delivered
            if not notification.delivered:
                result.warnings.append(f"Recipient not notified: {notification.reason}")
        except NotificationUnavailable as e:
            logger.warning("Notification for %s skipped: %s", resource, e)
            result.warnings.append(str(e))

        if _cancelled(cancel):
            return self._cancel(result, "outgoing share record")
        try:
            await self.audit_log.record_outgoing(entry)
            result.outgoing_logged = True
        except AuditError as e:
            logger.warning("Outgoing share record for %s skipped: %s", resource, e)
            result.warnings.append(str(e))

        result.state = ShareState.DONE
        logger.info(
            "Shared %s with %s (%s, %s)",
            resource, entry.recipient, ",".join(p.value for p in granted), document.pattern.value
        )
        return result

    async def revoke(
        self,
        resource: str,
        owner: str,
        recipient: str,
        permissions: Iterable,
        remaining_grants: Optional[Grants] = None,
        pattern=None,
        options: Optional[ShareOptions] = None,
        *,
        granter: Optional[str] = None,
        cancel: Optional[asyncio.Event] = None,
    ) -> ShareResult:
        """
        Revoke a recipient's access.

        The policy is rewritten from ``remaining_grants`` with the recipient
        removed; with nothing left the resource becomes owner-only. A revoke
        entry is recorded; the recipient is not notified.

        Raises:
            ShareFailed: Validation or policy write failed
            ShareCancelled: Cancelled before the policy was committed
        """
        granter = granter or owner
        if _cancelled(cancel):
            raise ShareCancelled(f"Revoke on {resource} cancelled before policy write")

        try:
            revoked = sort_permissions(Permission.parse(p) for p in permissions)
            remaining = self._without(remaining_grants or {}, recipient)
            if remaining:
                document = await self.policy_store.apply(
                    resource, pattern or SharePattern.BASIC, owner, remaining, options
                )
            else:
                document = await self.policy_store.apply(resource, SharePattern.OWNER_ONLY, owner)
        except PodShareError as e:
            logger.warning("Revoke on %s for %s failed: %s", resource, recipient, e)
            raise ShareFailed(str(e)) from e

        result = ShareResult(policy_applied=True, state=ShareState.POLICY_APPLIED, document=document)
        entry = self.audit_log.new_entry(
            resource=resource,
            owner=owner,
            granter=granter,
            recipient=recipient,
            permissions=revoked,
            event_type=AuditEventType.REVOKE,
            pattern=document.pattern,
        )
        result.entry = entry

        if await self._audit(entry, result, cancel):
            return result

        result.state = ShareState.DONE
        logger.info("Revoked %s on %s from %s", ",".join(p.value for p in revoked), resource, entry.recipient)
        return result

    async def make_private(self, resource: str, owner: str) -> PolicyDocument:
        """Apply an owner-only policy. Used for freshly created resources; not audited."""
        return await self.policy_store.apply(resource, SharePattern.OWNER_ONLY, owner)

    async def can_access(self, resource: str) -> bool:
        """Whether the current session can reach a resource."""
        response = await self.client.head(resource)
        return response.status in ACCESSIBLE_STATUSES

    async def shared_with(self, principal: str) -> List[AuditEntry]:
        """Grants recorded in ``principal``'s log where they are the recipient."""
        return shared_with_me(await self.audit_log.read(principal), principal)

    async def shared_by(self, principal: str) -> List[AuditEntry]:
        """Grants recorded in ``principal``'s log where they are the granter."""
        return shared_by_me(await self.audit_log.read(principal), principal)

    # ===== Saga steps =====

    async def _audit(self, entry: AuditEntry, result: ShareResult, cancel: Optional[asyncio.Event]) -> bool:
        """Record the entry into ``result``. Returns True when the saga was cancelled."""
        if _cancelled(cancel):
            self._cancel(result, "audit")
            return True
        try:
            written = await self.audit_log.record(entry)
            result.audit_outcome = written.by_role()
            if written.partial:
                result.warnings.append(str(PartialReplicationFailure(entry.id, written.failures())))
        except AuditWriteFailed as e:
            logger.warning("Audit entry %s not written: %s", entry.id, e)
            if e.result is not None:
                result.audit_outcome = e.result.by_role()
            result.warnings.append(str(e))
        except AuditError as e:
            logger.warning("Audit entry %s not written: %s", entry.id, e)
            result.warnings.append(str(e))
        return False

    def _cancel(self, result: ShareResult, step: str) -> ShareResult:
        logger.info("Share cancelled after policy write; skipping %s and later steps", step)
        result.state = ShareState.CANCELLED
        result.warnings.append(f"Cancelled before {step}")
        return result

    def _merge_grants(self, existing: Optional[Grants], extra: Grants) -> Grants:
        merged: Grants = {}
        for grants in (existing or {}, extra):
            for perms, principals in grants.items():
                merged.setdefault(frozenset(Permission.parse(p) for p in perms), set()).update(principals)
        return merged

    def _without(self, grants: Grants, principal: str) -> Grants:
        target = normalize(principal, self.cfg)
        remaining: Grants = {}
        for perms, principals in grants.items():
            kept = {p for p in principals if not same_principal(p, target, self.cfg)}
            if kept:
                remaining[frozenset(perms)] = kept
        return remaining
