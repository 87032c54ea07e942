"""
Multi-destination permission audit log.

Each grant/revoke becomes one entry that is replicated into the logs of the
granter, the owner and the recipient. Replicas are written concurrently and
independently; the write counts as done when at least one replica landed.

Writing into another principal's log relies on that log's policy granting
the public agent append/write. Anyone can therefore append to anyone's log,
and entries are not signed.
"""
import asyncio
import logging
from datetime import datetime
from typing import Dict, Iterable, List, Optional, Tuple

from podshare.audit.codec import encode_record, parse_log_document
from podshare.audit.ids import AuditIdGenerator
from podshare.audit.models import (
    AuditEntry, AuditEventType, AuditWriteResult, TargetOutcome, TargetRole
)
from podshare.config import Settings, settings as default_settings
from podshare.core.clock import Clock, system_clock
from podshare.core.errors import (
    AuditError, AuditWriteFailed, PartialReplicationFailure, ReadFailed, WriteFailed
)
from podshare.identity.principal import (
    data_namespace, log_container_url, log_namespace, normalize, outbox_url,
    permission_log_url
)
from podshare.policy.compile import PolicyCompiler
from podshare.policy.models import Permission, SharePattern, ShareOptions, sort_permissions
from podshare.policy.store import PolicyStore
from podshare.transports.base import SUCCESS_STATUSES
from podshare.transports.http_adapter import PodHttpClient

logger = logging.getLogger(__name__)

PUBLIC_LOG_ACCESS = frozenset({Permission.APPEND, Permission.WRITE})


class _TargetFailed(Exception):
    def __init__(self, step: str, status: Optional[int], error: Optional[str] = None):
        self.step = step
        self.status = status
        self.error = error
        super().__init__(f"{step} failed: {error or f'HTTP {status}'}")


class AuditLog:
    """
    Writer and reader for per-principal permission logs.
    """

    def __init__(
        self,
        client: PodHttpClient,
        *,
        policy_store: Optional[PolicyStore] = None,
        clock: Optional[Clock] = None,
        id_generator: Optional[AuditIdGenerator] = None,
        cfg: Optional[Settings] = None,
    ):
        self.client = client
        self.cfg = cfg or default_settings
        self.clock = clock or system_clock
        self.policy_store = policy_store or PolicyStore(
            client, compiler=PolicyCompiler(clock=self.clock, cfg=self.cfg), cfg=self.cfg
        )
        self.ids = id_generator or AuditIdGenerator(self.clock)
        self._fanout = asyncio.Semaphore(max(1, self.cfg.AUDIT_FANOUT_LIMIT))

    # ===== Write side =====

    def new_entry(
        self,
        *,
        resource: str,
        owner: str,
        granter: str,
        recipient: str,
        permissions: Iterable,
        event_type: AuditEventType = AuditEventType.GRANT,
        pattern: str = SharePattern.BASIC.value,
        expiry: Optional[datetime] = None,
    ) -> AuditEntry:
        """Create an entry with a fresh id and the current time."""
        if isinstance(pattern, SharePattern):
            pattern = pattern.value
        return AuditEntry(
            id=self.ids.next_id(),
            timestamp=self.clock.now(),
            resource=resource,
            owner=normalize(owner, self.cfg),
            granter=normalize(granter, self.cfg),
            recipient=normalize(recipient, self.cfg),
            permissions=sort_permissions(Permission.parse(p) for p in permissions),
            type=event_type,
            pattern=pattern,
            expiry=expiry,
        )

    def targets_for(self, entry: AuditEntry) -> List[Tuple[str, List[TargetRole]]]:
        """Distinct canonical log owners for an entry, granter first."""
        targets: Dict[str, List[TargetRole]] = {}
        for role, principal in (
            (TargetRole.GRANTER, entry.granter),
            (TargetRole.OWNER, entry.owner),
            (TargetRole.RECIPIENT, entry.recipient),
        ):
            targets.setdefault(normalize(principal, self.cfg), []).append(role)
        return list(targets.items())

    async def record(self, entry: AuditEntry, *, strict: bool = False) -> AuditWriteResult:
        """
        Replicate an entry into every target log.

        Returns:
            AuditWriteResult with one outcome per distinct target

        Raises:
            AuditWriteFailed: No target accepted the entry
            PartialReplicationFailure: Some target missed the entry and ``strict`` is set
        """
        targets = self.targets_for(entry)
        record = encode_record(entry)
        outcomes = await asyncio.gather(
            *(self._write_target(target, roles, entry.id, record) for target, roles in targets)
        )
        result = AuditWriteResult(entry=entry, outcomes=list(outcomes))

        if not result.ok:
            raise AuditWriteFailed(entry.id, result.failures(), result=result)
        if result.partial:
            logger.warning("Audit entry %s partially replicated; missing: %s", entry.id, result.failures())
            if strict:
                raise PartialReplicationFailure(entry.id, result.failures())
        else:
            logger.info("Audit entry %s replicated to %d log(s)", entry.id, len(outcomes))
        return result

    async def _write_target(self, target: str, roles: List[TargetRole], entry_id: str, record: str) -> TargetOutcome:
        async with self._fanout:
            try:
                await self.ensure_log(target)
                await self._append(target, entry_id, record)
            except _TargetFailed as e:
                logger.warning("Audit write of %s to %s failed at %s", entry_id, target, e)
                return TargetOutcome(target=target, roles=roles, ok=False, status=e.status, error=str(e))
        return TargetOutcome(target=target, roles=roles, ok=True)

    async def ensure_log(self, target: str) -> None:
        """
        Create the target's log container, log resource and log policy if the
        log does not exist yet.

        Any answer other than 404 (including 401/403 for logs we may append
        to but not read) means the log is there. A readable log whose policy
        is missing gets the policy re-applied.
        """
        log_url = permission_log_url(target, self.cfg)
        probe = await self.client.head(log_url)
        if probe.status is None:
            raise _TargetFailed("probe", None, probe.error)
        if probe.ok:
            await self._repair_log_policy(target, log_url)
            return
        if not probe.not_found:
            return

        logger.info("Creating permission log for %s at %s", target, log_url)
        container = await self.client.ensure_container(log_container_url(target, self.cfg))
        if not container.ok:
            raise _TargetFailed("create container", container.status, container.error)

        created = await self.client.put(log_url, self._initial_log(target))
        if created.status not in SUCCESS_STATUSES:
            raise _TargetFailed("create log", created.status, created.error)

        await self._apply_log_policy(target, log_url)

    async def _repair_log_policy(self, target: str, log_url: str) -> None:
        try:
            existing = await self.policy_store.fetch(log_url)
        except ReadFailed:
            # Policy not readable from this session; only its owner can fix it
            return
        if existing is None:
            logger.warning("Permission log %s has no policy; re-applying", log_url)
            await self._apply_log_policy(target, log_url)

    async def _apply_log_policy(self, target: str, log_url: str) -> None:
        try:
            await self.policy_store.apply(
                log_url, SharePattern.BASIC, target,
                options=ShareOptions(public_access=PUBLIC_LOG_ACCESS),
            )
        except WriteFailed as e:
            raise _TargetFailed("log policy", e.status, str(e)) from e

    async def _append(self, target: str, entry_id: str, record: str) -> None:
        # Insert-only so concurrent appends never overwrite each other
        sparql = (
            f"PREFIX log: <{log_namespace(target, self.cfg)}>\n"
            f"PREFIX data: <{data_namespace(target, self.cfg)}>\n"
            "INSERT DATA {\n"
            f'  log:{entry_id} data:log "{record}" .\n'
            "}\n"
        )
        response = await self.client.patch(permission_log_url(target, self.cfg), sparql)
        if response.status not in SUCCESS_STATUSES:
            raise _TargetFailed("append", response.status, response.error)

    def _initial_log(self, target: str) -> str:
        return (
            f"@prefix log: <{log_namespace(target, self.cfg)}> .\n"
            f"@prefix data: <{data_namespace(target, self.cfg)}> .\n"
            "@prefix xsd: <http://www.w3.org/2001/XMLSchema#> .\n"
            "@prefix dct: <http://purl.org/dc/terms/> .\n\n"
            "<> a log:PermissionLog ;\n"
            f'   dct:created "{self.clock.now().isoformat()}"^^xsd:dateTime ;\n'
            '   dct:title "Permission Log" .\n'
        )

    async def record_outgoing(self, entry: AuditEntry) -> None:
        """
        Post an outgoing-share record into the granter's outbox.

        Raises:
            AuditError: Outbox could not be created or written
        """
        outbox = outbox_url(entry.granter, self.cfg)
        container = await self.client.ensure_container(outbox)
        if not container.ok:
            raise AuditError(f"Outbox {outbox} unavailable: {container.error or f'HTTP {container.status}'}")

        modes = ", ".join(p.value for p in entry.permissions) or "no"
        body = (
            "@prefix as: <https://www.w3.org/ns/activitystreams#> .\n"
            "@prefix dct: <http://purl.org/dc/terms/> .\n"
            "@prefix xsd: <http://www.w3.org/2001/XMLSchema#> .\n\n"
            f"<#share-{entry.id}> a as:Offer ;\n"
            f"  as:actor <{entry.granter}> ;\n"
            f"  as:target <{entry.recipient}> ;\n"
            f"  as:object <{entry.resource}> ;\n"
            f'  as:summary "Shared resource: {modes} access" ;\n'
            f'  dct:created "{entry.timestamp.isoformat()}"^^xsd:dateTime .\n'
        )
        response = await self.client.post(outbox, body)
        if response.status not in SUCCESS_STATUSES:
            raise AuditError(f"Outbox {outbox} rejected share record: {response.error or f'HTTP {response.status}'}")
        logger.info("Logged outgoing share %s in %s", entry.id, outbox)

    # ===== Read side =====

    async def read(self, principal: str) -> List[AuditEntry]:
        """
        Read a principal's own log, newest first.

        Malformed statements are skipped; a missing log reads as empty.

        Raises:
            ReadFailed: The log exists but could not be fetched
        """
        url = permission_log_url(principal, self.cfg)
        response = await self.client.get(url)
        if response.not_found:
            return []
        if not response.ok:
            raise ReadFailed(url, response.status, response.error)
        entries = parse_log_document(response.body, self.clock)
        logger.debug("Read %d audit entries from %s", len(entries), url)
        return entries
