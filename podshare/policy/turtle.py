"""
ACP Turtle serialization for policy documents.
"""
from datetime import datetime, timezone
from typing import Dict, List

from podshare.policy.models import (
    AccessControl, Matcher, MatcherKind, PolicyDocument, PolicyFlags
)

PREFIXES = """@prefix acp: <http://www.w3.org/ns/solid/acp#> .
@prefix acl: <http://www.w3.org/ns/auth/acl#> .
@prefix dct: <http://purl.org/dc/terms/> .
@prefix xsd: <http://www.w3.org/2001/XMLSchema#> .
"""


def _datetime_literal(value: datetime) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return f'"{value.isoformat()}"^^xsd:dateTime'


def _refs(ids: List[str]) -> str:
    return ", ".join(f"<#{i}>" for i in ids)


def _render_matcher(matcher: Matcher) -> str:
    lines = [f"<#{matcher.id}> a acp:Matcher"]
    if matcher.kind == MatcherKind.PUBLIC:
        lines.append("   acp:agent acp:PublicAgent")
    elif matcher.kind == MatcherKind.CLIENT:
        lines.append(f"   acp:client <{matcher.client}>")
    else:
        lines.append("   acp:agent " + ", ".join(f"<{a}>" for a in matcher.agents))
    if matcher.valid_until is not None:
        lines.append(f"   dct:valid {_datetime_literal(matcher.valid_until)}")
    return " ;\n".join(lines) + " .\n"


def _render_control(ac: AccessControl) -> str:
    policy = ac.policy
    out = f"<#{ac.id}> a acp:AccessControl ;\n   acp:apply <#{policy.id}> .\n\n"
    lines = [
        f"<#{policy.id}> a acp:Policy",
        "   acp:allow " + ", ".join(p.acl_term for p in policy.allow),
        "   acp:anyOf " + _refs([m.id for m in policy.any_of]),
    ]
    if policy.all_of:
        lines.append("   acp:allOf " + _refs([m.id for m in policy.all_of]))
    return out + " ;\n".join(lines) + " .\n"


def render_turtle(document: PolicyDocument) -> str:
    """Serialize a policy document as an ACP access control resource."""
    control_ids = [ac.id for ac in document.access_controls]

    header = ["<> a acp:AccessControlResource", "   acp:accessControl " + _refs(control_ids)]
    if document.apply_to_members:
        header.append("   acp:memberAccessControl " + _refs(control_ids))
    if document.created is not None:
        header.append(f"   dct:created {_datetime_literal(document.created)}")
    if document.delegated_by:
        header.append(f"   dct:creator <{document.delegated_by}>")

    sections = [PREFIXES, " ;\n".join(header) + " .\n"]

    matchers: Dict[str, Matcher] = {}
    for ac in document.access_controls:
        sections.append(_render_control(ac))
        for matcher in ac.policy.any_of + ac.policy.all_of:
            matchers.setdefault(matcher.id, matcher)

    sections.extend(_render_matcher(m) for m in matchers.values())
    return "\n".join(sections)


def flags_from_text(body: str) -> PolicyFlags:
    """
    Derive permission flags by keyword presence.

    Good enough to drive a share dialog; it cannot tell who holds a mode.
    """
    def mentions(mode: str) -> bool:
        return f"acl:{mode}" in body or f"auth/acl#{mode}>" in body

    return PolicyFlags(
        read=mentions("Read"),
        write=mentions("Write"),
        append=mentions("Append"),
        control=mentions("Control"),
        public="PublicAgent" in body,
    )
