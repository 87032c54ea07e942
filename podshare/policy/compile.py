"""
Policy compilation pipeline.

This module turns a sharing intent (pattern, owner, permission buckets and
options) into a PolicyDocument. Compilation is pure apart from the injected
clock, which only the timestamped patterns (team roles, delegated) consult.
"""

import hashlib
import json
import logging
from typing import Dict, FrozenSet, Iterable, List, Optional, Set, Tuple

from podshare.config import Settings, settings as default_settings
from podshare.core.clock import Clock, system_clock
from podshare.core.errors import InvalidPattern, InvalidPrincipal, ShareValidationError
from podshare.identity.principal import is_valid_principal, normalize
from podshare.policy.models import (
    AccessControl, FULL_CONTROL, Grants, Matcher, MatcherKind, Permission,
    PERMISSION_ORDER, Policy, PolicyDocument, SharePattern, ShareOptions,
    sort_permissions
)


logger = logging.getLogger(__name__)

READ_ONLY: FrozenSet[Permission] = frozenset({Permission.READ})
READ_WRITE: FrozenSet[Permission] = frozenset({Permission.READ, Permission.WRITE})

# Role names used by the team pattern, keyed by permission set
TEAM_ROLE_NAMES: Dict[FrozenSet[Permission], str] = {
    FULL_CONTROL: "admin",
    READ_WRITE: "editor",
    READ_ONLY: "viewer",
}

_TIMESTAMPED = (SharePattern.TEAM_ROLES, SharePattern.DELEGATED)


class PolicyCompiler:
    """
    Policy compiler that validates sharing intents and produces documents.

    Handles pattern resolution, principal validation and canonicalization,
    bucket deduplication and per-pattern node layout.
    """

    def __init__(self, clock: Optional[Clock] = None, cfg: Optional[Settings] = None):
        """
        Initialize compiler.

        Args:
            clock: Time source for patterns that embed a creation timestamp
            cfg: Settings (official client id, profile document)
        """
        self.clock = clock or system_clock
        self.cfg = cfg or default_settings

    def compile(
        self,
        pattern,
        owner: str,
        grants: Optional[Grants] = None,
        options: Optional[ShareOptions] = None,
    ) -> PolicyDocument:
        """
        Compile a sharing intent to a policy document.

        Args:
            pattern: SharePattern or its string value
            owner: Owner principal (receives Read, Write, Control)
            grants: Map of permission set to the principals receiving it
            options: Pattern options

        Returns:
            Compiled PolicyDocument with the owner's access control first

        Raises:
            InvalidPattern: Unknown pattern, or grants the pattern cannot express
            InvalidPrincipal: Owner or grantee is not a valid identity
            ShareValidationError: Missing pattern option
        """
        pattern = self._resolve_pattern(pattern)
        options = options or ShareOptions()
        buckets = self._validate_buckets(pattern, grants or {})

        if not is_valid_principal(owner):
            raise InvalidPrincipal(owner, "owner")
        owner_id = normalize(owner, self.cfg)

        controls: List[AccessControl] = [self._owner_control(owner_id)]
        client_matcher = self._client_matcher(pattern, options)

        valid_until = None
        if pattern == SharePattern.TIME_LIMITED:
            if options.valid_until is None:
                raise ShareValidationError("time_limited pattern requires valid_until")
            valid_until = options.valid_until

        used_names: Set[str] = {"owner"}
        for perms, principals in buckets:
            name = self._unique_name(self._bucket_name(pattern, perms), used_names)
            controls.append(self._grant_control(name, perms, principals, client_matcher, valid_until))

        delegated_by = None
        if pattern == SharePattern.DELEGATED:
            delegated_by = owner_id
            contractors = self._canonical_principals(options.contractors, "contractor")
            if contractors:
                name = self._unique_name("contractor", used_names)
                controls.append(self._grant_control(name, READ_ONLY, contractors, client_matcher, valid_until))

        public_perms = options.public_permissions()
        if public_perms:
            controls.append(AccessControl(
                id="publicAccess",
                policy=Policy(
                    id="publicPolicy",
                    allow=sort_permissions(public_perms),
                    any_of=[Matcher(id="publicMatcher", kind=MatcherKind.PUBLIC)],
                ),
            ))

        created = None
        if pattern in _TIMESTAMPED:
            created = options.created or self.clock.now()

        document = PolicyDocument(
            pattern=pattern,
            owner=owner_id,
            access_controls=controls,
            apply_to_members=pattern == SharePattern.CONTAINER_DEFAULT,
            created=created,
            delegated_by=delegated_by,
        )
        logger.debug(
            "Compiled %s policy for %s: %d access controls",
            pattern.value, owner_id, len(controls)
        )
        return document

    def _resolve_pattern(self, pattern) -> SharePattern:
        if isinstance(pattern, SharePattern):
            return pattern
        try:
            return SharePattern(str(pattern).strip().lower())
        except ValueError:
            raise InvalidPattern(pattern) from None

    def _validate_buckets(self, pattern: SharePattern, grants: Grants) -> List[Tuple[FrozenSet[Permission], List[str]]]:
        """Canonicalize, dedupe and order grant buckets; drop empty ones."""
        buckets = []
        for perms, principals in grants.items():
            perms = frozenset(Permission.parse(p) for p in perms)
            canonical = self._canonical_principals(principals, "grantee")
            if not canonical:
                continue
            if not perms:
                raise ShareValidationError("grant bucket has principals but no permissions")
            self._check_pattern_allows(pattern, perms)
            buckets.append((perms, canonical))

        # Deterministic node order regardless of dict ordering
        buckets.sort(key=lambda b: [PERMISSION_ORDER.index(p) for p in sort_permissions(b[0])])
        return buckets

    def _check_pattern_allows(self, pattern: SharePattern, perms: FrozenSet[Permission]) -> None:
        if pattern == SharePattern.OWNER_ONLY:
            raise InvalidPattern(pattern, "owner_only pattern does not accept grantees")
        if pattern == SharePattern.SHARED_READ and perms != READ_ONLY:
            raise InvalidPattern(pattern, f"shared_read only grants read, got {sorted(p.value for p in perms)}")
        if pattern == SharePattern.SHARED_WRITE and Permission.CONTROL in perms:
            raise InvalidPattern(pattern, "shared_write cannot grant control")

    def _canonical_principals(self, principals: Iterable[str], role: str) -> List[str]:
        seen: Set[str] = set()
        for principal in principals:
            if not is_valid_principal(principal):
                raise InvalidPrincipal(principal, role)
            seen.add(normalize(principal, self.cfg))
        return sorted(seen)

    def _owner_control(self, owner_id: str) -> AccessControl:
        return AccessControl(
            id="ownerAccess",
            policy=Policy(
                id="ownerPolicy",
                allow=sort_permissions(FULL_CONTROL),
                any_of=[Matcher(id="ownerMatcher", kind=MatcherKind.AGENT, agents=[owner_id])],
            ),
        )

    def _client_matcher(self, pattern: SharePattern, options: ShareOptions) -> Optional[Matcher]:
        if pattern != SharePattern.APP_SCOPED:
            return None
        return Matcher(
            id="clientMatcher",
            kind=MatcherKind.CLIENT,
            client=options.client_id or self.cfg.OFFICIAL_CLIENT_ID,
        )

    def _grant_control(self, name, perms, principals, client_matcher, valid_until) -> AccessControl:
        return AccessControl(
            id=f"{name}Access",
            policy=Policy(
                id=f"{name}Policy",
                allow=sort_permissions(perms),
                any_of=[Matcher(
                    id=f"{name}Matcher",
                    kind=MatcherKind.AGENT,
                    agents=list(principals),
                    valid_until=valid_until,
                )],
                all_of=[client_matcher] if client_matcher else [],
            ),
        )

    def _bucket_name(self, pattern: SharePattern, perms: FrozenSet[Permission]) -> str:
        if pattern == SharePattern.TEAM_ROLES and perms in TEAM_ROLE_NAMES:
            return TEAM_ROLE_NAMES[perms]
        if pattern == SharePattern.SHARED_READ:
            return "reader"
        if pattern == SharePattern.SHARED_WRITE:
            return "collaborator"
        return "grant" + "".join(p.value.capitalize() for p in sort_permissions(perms))

    @staticmethod
    def _unique_name(name: str, used: Set[str]) -> str:
        candidate, n = name, 2
        while candidate in used:
            candidate = f"{name}{n}"
            n += 1
        used.add(candidate)
        return candidate


# Utility functions

def grants_for_share(pattern, recipient: str, permissions: Iterable) -> Grants:
    """
    Build the grant buckets for sharing with a single recipient.

    Basic sharing widens the request the way access modes nest: write
    implies read, control implies read and write. Team roles place the
    recipient in the narrowest role covering the request.
    """
    try:
        pattern = SharePattern(pattern)
    except ValueError:
        raise InvalidPattern(pattern) from None
    perms = {Permission.parse(p) for p in permissions}

    if pattern == SharePattern.OWNER_ONLY:
        raise InvalidPattern(pattern, "owner_only pattern does not accept a recipient")
    if not perms:
        raise ShareValidationError("no permissions requested")
    if pattern == SharePattern.BASIC:
        if Permission.CONTROL in perms:
            perms |= {Permission.READ, Permission.WRITE}
        if Permission.WRITE in perms:
            perms.add(Permission.READ)
    elif pattern == SharePattern.TEAM_ROLES:
        if Permission.CONTROL in perms:
            perms = set(FULL_CONTROL)
        elif perms & {Permission.WRITE, Permission.APPEND}:
            perms = set(READ_WRITE)
        else:
            perms = set(READ_ONLY)
    elif pattern == SharePattern.SHARED_READ:
        perms = set(READ_ONLY)
    elif pattern == SharePattern.SHARED_WRITE:
        perms = (perms - {Permission.CONTROL}) | {Permission.READ, Permission.WRITE}

    return {frozenset(perms): {recipient}}


def compile_policy(pattern, owner: str, grants: Optional[Grants] = None,
                   options: Optional[ShareOptions] = None,
                   clock: Optional[Clock] = None) -> PolicyDocument:
    """
    Compile a sharing intent with a default compiler.

    Args:
        pattern: SharePattern or its string value
        owner: Owner principal
        grants: Permission buckets
        options: Pattern options
        clock: Time source for timestamped patterns

    Returns:
        Compiled PolicyDocument
    """
    return PolicyCompiler(clock=clock).compile(pattern, owner, grants, options)


def compute_document_hash(document: PolicyDocument) -> str:
    """
    Compute deterministic hash of a policy document.

    Returns:
        SHA256 hash string
    """
    normalized = json.dumps(document.model_dump(mode="json"), sort_keys=True, separators=(',', ':'))
    return hashlib.sha256(normalized.encode()).hexdigest()
