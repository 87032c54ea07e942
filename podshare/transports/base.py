"""
Base interfaces for object-store transports.
"""
from dataclasses import dataclass, field
from typing import Dict, NamedTuple, Optional, Protocol

LDP_BASIC_CONTAINER = "http://www.w3.org/ns/ldp#BasicContainer"
LDP_CONTAINER = "http://www.w3.org/ns/ldp#Container"

SUCCESS_STATUSES = (200, 201, 204, 205)


class TokenPair(NamedTuple):
    """Per-resource proof-of-possession credentials."""
    access_token: str
    proof: str


class TokenProvider(Protocol):
    """
    Supplies the token pair for one request.

    The session/identity provider lives outside this package; it only has
    to answer this call.
    """

    async def tokens_for(self, url: str, method: str) -> TokenPair:
        ...


class StaticTokenProvider:
    """Hands out the same token pair for every request."""

    def __init__(self, access_token: str = "", proof: str = ""):
        self._pair = TokenPair(access_token, proof)

    async def tokens_for(self, url: str, method: str) -> TokenPair:
        return self._pair


@dataclass
class StoreResponse:
    """
    Normalized result of one store call.

    ``status`` is None when no HTTP response was received (timeout,
    connection refused); ``error`` then says why.
    """
    method: str
    url: str
    status: Optional[int]
    body: str = ""
    headers: Dict[str, str] = field(default_factory=dict)
    latency_ms: int = 0
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.status is not None and 200 <= self.status < 300

    @property
    def not_found(self) -> bool:
        return self.status == 404

    @property
    def is_container(self) -> bool:
        link = self.headers.get("link", "")
        return LDP_BASIC_CONTAINER in link or f"<{LDP_CONTAINER}>" in link

