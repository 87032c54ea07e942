"""
Access-control policy engine for podshare.

This package provides:
- Pydantic models for sharing intents and policy documents
- Policy compilation from share patterns
- ACP Turtle rendering
- Persistence of policy documents next to governed resources
"""

from .models import (
    Permission, SharePattern, ShareOptions, PolicyDocument, AccessControl,
    Policy, Matcher, MatcherKind, PolicyFlags, RawPolicy, FULL_CONTROL
)
from .compile import (
    PolicyCompiler, compile_policy, grants_for_share, compute_document_hash
)
from .turtle import render_turtle, flags_from_text
from .store import PolicyStore

__all__ = [
    "Permission", "SharePattern", "ShareOptions", "PolicyDocument",
    "AccessControl", "Policy", "Matcher", "MatcherKind", "PolicyFlags",
    "RawPolicy", "FULL_CONTROL", "PolicyCompiler", "compile_policy",
    "grants_for_share", "compute_document_hash", "render_turtle",
    "flags_from_text", "PolicyStore"
]
