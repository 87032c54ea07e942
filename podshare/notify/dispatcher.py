"""
Best-effort share notifications.

The recipient's inbox is discovered from their public profile document and
an ActivityStreams Announce is posted to it. No retry, no delivery receipt.
"""
import logging
import re
from typing import Iterable, Optional
from urllib.parse import urljoin

from pydantic import BaseModel, Field

from podshare.core.clock import Clock, system_clock
from podshare.core.errors import NotificationUnavailable
from podshare.identity.principal import profile_document_url
from podshare.policy.models import Permission, sort_permissions
from podshare.transports.base import SUCCESS_STATUSES
from podshare.transports.http_adapter import PodHttpClient

logger = logging.getLogger(__name__)

_INBOX_PATTERNS = (
    re.compile(r"\bldp:inbox\s+<([^>]+)>"),
    re.compile(r"<http://www\.w3\.org/ns/ldp#inbox>\s+<([^>]+)>"),
    re.compile(r"<([^>]+)>\s+a\s+<http://www\.w3\.org/ns/ldp#inbox>"),
    re.compile(r'"(?:ldp:inbox|http://www\.w3\.org/ns/ldp#inbox)"\s*:\s*\{\s*"@id"\s*:\s*"([^"]+)"'),
)


class NotificationResult(BaseModel):
    delivered: bool = Field(description="Notification accepted by the inbox")
    inbox: Optional[str] = Field(default=None, description="Discovered inbox")
    reason: Optional[str] = Field(default=None, description="Why nothing was delivered")


def find_inbox(profile_body: str, base_url: str) -> Optional[str]:
    """Locate the inbox link in a profile document, resolving relative IRIs."""
    for pattern in _INBOX_PATTERNS:
        match = pattern.search(profile_body)
        if match:
            return urljoin(base_url, match.group(1))
    return None


_TURTLE_ESCAPES = {"\\": "\\\\", '"': '\\"', "\n": "\\n", "\r": "\\r"}


def _turtle_string(value: str) -> str:
    """Escape text for a single-line Turtle string literal."""
    return "".join(_TURTLE_ESCAPES.get(ch, ch) for ch in value)


class NotificationDispatcher:

    def __init__(self, client: PodHttpClient, clock: Optional[Clock] = None):
        self.client = client
        self.clock = clock or system_clock

    async def discover_inbox(self, principal: str) -> Optional[str]:
        profile_url = profile_document_url(principal)
        response = await self.client.get(profile_url, accept="text/turtle, application/ld+json")
        if not response.ok:
            logger.debug("Profile %s not readable (status=%s)", profile_url, response.status)
            return None
        return find_inbox(response.body, profile_url)

    async def notify(
        self,
        *,
        actor: str,
        recipient: str,
        resource: str,
        permissions: Iterable[Permission],
        message: Optional[str] = None,
        notification_id: Optional[str] = None,
    ) -> NotificationResult:
        """
        Announce a share to the recipient's inbox.

        A recipient without a discoverable inbox is not an error.

        Raises:
            NotificationUnavailable: The inbox refused the notification
        """
        inbox = await self.discover_inbox(recipient)
        if inbox is None:
            logger.info("No inbox found for %s; skipping notification", recipient)
            return NotificationResult(delivered=False, reason="no inbox")

        now = self.clock.now()
        note_id = notification_id or f"notification-{int(now.timestamp() * 1000)}"
        summary = _turtle_string(message or "Resource shared with you")
        modes = ", ".join(p.acl_term for p in sort_permissions(permissions))
        mode_clause = f" ;\n  acl:mode {modes}" if modes else ""
        body = (
            "@prefix as: <https://www.w3.org/ns/activitystreams#> .\n"
            "@prefix acl: <http://www.w3.org/ns/auth/acl#> .\n"
            "@prefix dct: <http://purl.org/dc/terms/> .\n"
            "@prefix xsd: <http://www.w3.org/2001/XMLSchema#> .\n\n"
            f"<#{note_id}> a as:Announce ;\n"
            f"  as:actor <{actor}> ;\n"
            f"  as:target <{recipient}> ;\n"
            f"  as:object <{resource}> ;\n"
            f'  as:summary "{summary}" ;\n'
            f'  dct:created "{now.isoformat()}"^^xsd:dateTime{mode_clause} .\n'
        )

        response = await self.client.post(inbox, body)
        if response.status not in SUCCESS_STATUSES:
            raise NotificationUnavailable(recipient, response.error or f"inbox {inbox} returned {response.status}")
        logger.info("Notified %s via %s", recipient, inbox)
        return NotificationResult(delivered=True, inbox=inbox)
