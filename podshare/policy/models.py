"""
Access-control policy models.

This module defines the Pydantic models for sharing intents (patterns,
permissions, options) and for the compiled policy document graph:
AccessControlResource -> AccessControl -> Policy -> (allow, matchers).
"""

from datetime import datetime
from enum import Enum
from typing import Dict, FrozenSet, List, Optional, Set

from pydantic import BaseModel, ConfigDict, Field

from podshare.core.errors import InvalidPermission


class Permission(str, Enum):
    """Access modes."""
    READ = "read"
    WRITE = "write"
    APPEND = "append"
    CONTROL = "control"

    @property
    def acl_term(self) -> str:
        return f"acl:{self.value.capitalize()}"

    @classmethod
    def parse(cls, value: "str | Permission") -> "Permission":
        if isinstance(value, Permission):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            raise InvalidPermission(value) from None


FULL_CONTROL: FrozenSet[Permission] = frozenset({Permission.READ, Permission.WRITE, Permission.CONTROL})

# Stable ordering for rendering and encoding
PERMISSION_ORDER = (Permission.READ, Permission.WRITE, Permission.APPEND, Permission.CONTROL)


def sort_permissions(perms) -> List[Permission]:
    perms = set(perms)
    return [p for p in PERMISSION_ORDER if p in perms]


class SharePattern(str, Enum):
    """Sharing patterns understood by the compiler."""
    BASIC = "basic"
    OWNER_ONLY = "owner_only"
    SHARED_READ = "shared_read"
    SHARED_WRITE = "shared_write"
    TEAM_ROLES = "team_roles"
    TIME_LIMITED = "time_limited"
    APP_SCOPED = "app_scoped"
    DELEGATED = "delegated"
    CONTAINER_DEFAULT = "container_default"


class MatcherKind(str, Enum):
    """What a matcher selects."""
    AGENT = "agent"
    PUBLIC = "public"
    CLIENT = "client"


# ===== Sharing intent =====

PermissionSet = FrozenSet[Permission]
Grants = Dict[PermissionSet, Set[str]]


class ShareOptions(BaseModel):
    """Pattern-specific options for a sharing intent."""
    model_config = ConfigDict(frozen=True)

    public_read: bool = Field(default=False, description="Grant Read to the public agent")
    public_access: FrozenSet[Permission] = Field(
        default_factory=frozenset, description="Permissions granted to the public agent"
    )
    valid_until: Optional[datetime] = Field(default=None, description="Expiry for time-limited grants")
    client_id: Optional[str] = Field(default=None, description="Client identifier for app-scoped grants")
    contractors: List[str] = Field(default_factory=list, description="Extra readers for delegated sharing")
    created: Optional[datetime] = Field(default=None, description="Explicit creation time for timestamped patterns")

    def public_permissions(self) -> FrozenSet[Permission]:
        perms = set(self.public_access)
        if self.public_read:
            perms.add(Permission.READ)
        return frozenset(perms)


# ===== Policy document graph =====

class Matcher(BaseModel):
    """Selection criterion for a policy."""
    model_config = ConfigDict(frozen=True)

    id: str = Field(description="Local node name, e.g. ownerMatcher")
    kind: MatcherKind = Field(description="Matcher kind")
    agents: List[str] = Field(default_factory=list, description="Canonical principals for agent matchers")
    client: Optional[str] = Field(default=None, description="Client identifier for client matchers")
    valid_until: Optional[datetime] = Field(default=None, description="Matcher expiry")


class Policy(BaseModel):
    """Allowed permissions bound to matchers."""
    model_config = ConfigDict(frozen=True)

    id: str = Field(description="Local node name, e.g. ownerPolicy")
    allow: List[Permission] = Field(description="Allowed access modes")
    any_of: List[Matcher] = Field(description="Any of these matchers applies")
    all_of: List[Matcher] = Field(default_factory=list, description="All of these matchers must apply")


class AccessControl(BaseModel):
    """An access control node applying one policy."""
    model_config = ConfigDict(frozen=True)

    id: str = Field(description="Local node name, e.g. ownerAccess")
    policy: Policy = Field(description="Applied policy")

    @property
    def permissions(self) -> FrozenSet[Permission]:
        return frozenset(self.policy.allow)

    def matches_agent(self, principal: str) -> bool:
        return any(principal in m.agents for m in self.policy.any_of)


class PolicyDocument(BaseModel):
    """Complete access-control resource for one governed resource."""
    model_config = ConfigDict(frozen=True)

    pattern: SharePattern = Field(description="Pattern the document was compiled from")
    owner: str = Field(description="Canonical owner principal")
    access_controls: List[AccessControl] = Field(description="Access controls, owner first")
    apply_to_members: bool = Field(default=False, description="Also emit member access controls")
    created: Optional[datetime] = Field(default=None, description="Embedded creation timestamp")
    delegated_by: Optional[str] = Field(default=None, description="Delegating principal")

    @property
    def owner_control(self) -> AccessControl:
        return self.access_controls[0]

    def permissions_for(self, principal: str) -> FrozenSet[Permission]:
        """Union of permissions granted to an explicit agent."""
        granted: Set[Permission] = set()
        for ac in self.access_controls:
            if ac.matches_agent(principal):
                granted.update(ac.permissions)
        return frozenset(granted)

    def public_permissions(self) -> FrozenSet[Permission]:
        granted: Set[Permission] = set()
        for ac in self.access_controls:
            if any(m.kind == MatcherKind.PUBLIC for m in ac.policy.any_of):
                granted.update(ac.permissions)
        return frozenset(granted)


# ===== Read-side summary =====

class PolicyFlags(BaseModel):
    """
    Coarse permission flags derived from raw policy text.

    Flags only say that a mode is mentioned somewhere in the document; they
    do not say for whom. Use a full RDF parse for exact reconstruction.
    """
    read: bool = False
    write: bool = False
    append: bool = False
    control: bool = False
    public: bool = False


class RawPolicy(BaseModel):
    """Policy document as fetched from the store."""
    resource: str = Field(description="Governed resource")
    url: str = Field(description="Location of the policy document")
    body: str = Field(description="Raw Turtle")
    flags: PolicyFlags = Field(description="Keyword-derived flags")
