"""
Audit record encoding.

Records are written as a versioned, tagged string::

    v=2;ts=<iso>;resource=<uri>;owner=<uri>;type=grant;granter=<uri>;
    recipient=<uri>;perms=read,write;pattern=basic;expiry=<iso>|none

Values are percent-escaped so ``;``, ``=`` and quotes never leak into the
record or the surrounding Turtle literal. Version 1 records (plain positional
``ts;resource;owner;type;granter;recipient;perms[;pattern[;expiry]]``) are
still read.
"""
import logging
import re
from datetime import datetime, timezone
from typing import Dict, List, Optional
from urllib.parse import quote, unquote

from podshare.audit.models import AuditEntry, AuditEventType
from podshare.core.clock import Clock, system_clock
from podshare.core.errors import InvalidPermission
from podshare.policy.models import Permission, sort_permissions

logger = logging.getLogger(__name__)

FORMAT_VERSION = 2
NO_EXPIRY = "none"
_SAFE = ":/#?&@+.,-_~!$'()*[]"
_REQUIRED = ("ts", "resource", "owner", "type", "granter", "recipient", "perms")

# Matches prefixed (log:ID data:log "...") and full-IRI statements
LOG_LINE = re.compile(
    r'(?:\blog:([A-Za-z0-9_-]+)|<[^>\s]*log#([A-Za-z0-9_-]+)>)\s+'
    r'(?:\bdata:log|<[^>\s]*data#log>)\s+"([^"\\]*)"'
)


class MalformedRecord(ValueError):
    pass


def _format_ts(value: datetime) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat()


def parse_timestamp(value: str) -> Optional[datetime]:
    """Parse ISO-8601 or the compact ``yyyyMMddTHHmmss`` form; naive means UTC."""
    value = value.strip()
    parsed = None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        for fmt in ("%Y%m%dT%H%M%S", "%Y%m%dT%H%M%S%f"):
            try:
                parsed = datetime.strptime(value, fmt)
                break
            except ValueError:
                continue
    if parsed is None:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def encode_record(entry: AuditEntry) -> str:
    fields = [
        ("v", str(FORMAT_VERSION)),
        ("ts", _format_ts(entry.timestamp)),
        ("resource", entry.resource),
        ("owner", entry.owner),
        ("type", entry.type.value),
        ("granter", entry.granter),
        ("recipient", entry.recipient),
        ("perms", ",".join(p.value for p in sort_permissions(entry.permissions))),
        ("pattern", entry.pattern),
        ("expiry", _format_ts(entry.expiry) if entry.expiry else NO_EXPIRY),
    ]
    return ";".join(f"{key}={quote(value, safe=_SAFE)}" for key, value in fields)


def decode_record(entry_id: str, record: str, clock: Optional[Clock] = None) -> AuditEntry:
    """
    Decode one record.

    A malformed timestamp does not reject the record: it is replaced with the
    clock's current time and the entry is flagged ``timestamp_recovered``.

    Raises:
        MalformedRecord: Structure, event type or permissions unreadable
    """
    clock = clock or system_clock
    if record.startswith("v="):
        fields = _tagged_fields(record)
    else:
        fields = _positional_fields(record)

    missing = [k for k in _REQUIRED if k not in fields]
    if missing:
        raise MalformedRecord(f"record {entry_id} missing {', '.join(missing)}")

    try:
        event_type = AuditEventType(fields["type"].strip().lower())
        permissions = [Permission.parse(p) for p in fields["perms"].split(",") if p.strip()]
    except (ValueError, InvalidPermission) as e:
        raise MalformedRecord(f"record {entry_id}: {e}") from e

    timestamp = parse_timestamp(fields["ts"])
    recovered = timestamp is None
    if recovered:
        timestamp = clock.now()
        logger.warning("Audit entry %s has malformed timestamp %r; using read time", entry_id, fields["ts"])

    expiry = None
    raw_expiry = fields.get("expiry", NO_EXPIRY)
    if raw_expiry and raw_expiry != NO_EXPIRY:
        expiry = parse_timestamp(raw_expiry)
        if expiry is None:
            logger.warning("Audit entry %s has malformed expiry %r; ignoring", entry_id, raw_expiry)

    version = fields.get("v", "1")
    return AuditEntry(
        id=entry_id,
        timestamp=timestamp,
        resource=fields["resource"],
        owner=fields["owner"],
        granter=fields["granter"],
        recipient=fields["recipient"],
        permissions=permissions,
        type=event_type,
        pattern=fields.get("pattern") or "basic",
        expiry=expiry,
        format_version=int(version) if version.isdigit() else 1,
        timestamp_recovered=recovered,
    )


def _tagged_fields(record: str) -> Dict[str, str]:
    fields: Dict[str, str] = {}
    for part in record.split(";"):
        key, sep, value = part.partition("=")
        if not sep:
            raise MalformedRecord(f"untagged field {part!r}")
        fields[key.strip()] = unquote(value)
    return fields


def _positional_fields(record: str) -> Dict[str, str]:
    parts = record.split(";")
    if len(parts) < len(_REQUIRED):
        raise MalformedRecord(f"expected at least {len(_REQUIRED)} fields, got {len(parts)}")
    names = ("ts", "resource", "owner", "type", "granter", "recipient", "perms", "pattern", "expiry")
    fields = dict(zip(names, parts))
    fields["v"] = "1"
    return fields


def parse_log_document(body: str, clock: Optional[Clock] = None) -> List[AuditEntry]:
    """
    Extract entries from a log document, newest first.

    Statements that do not decode are skipped.
    """
    entries: List[AuditEntry] = []
    for match in LOG_LINE.finditer(body):
        entry_id = match.group(1) or match.group(2)
        try:
            entries.append(decode_record(entry_id, match.group(3), clock))
        except MalformedRecord as e:
            logger.debug("Skipping malformed audit record: %s", e)
    entries.sort(key=lambda e: e.timestamp, reverse=True)
    return entries
