"""
Policy persistence against the object store.

The policy for ``<resource>`` lives at ``<resource><suffix>`` (``.acr`` by
default) and is always replaced wholesale with a PUT.
"""
import logging
from typing import Optional

from podshare.config import Settings, settings as default_settings
from podshare.core.errors import NotFound, ReadFailed, WriteFailed
from podshare.policy.compile import PolicyCompiler, compute_document_hash
from podshare.policy.models import Grants, PolicyDocument, RawPolicy, ShareOptions
from podshare.policy.turtle import flags_from_text, render_turtle
from podshare.transports.base import SUCCESS_STATUSES
from podshare.transports.http_adapter import PodHttpClient

logger = logging.getLogger(__name__)


class PolicyStore:
    """Reads, writes and deletes access control resources."""

    def __init__(self, client: PodHttpClient, *, compiler: Optional[PolicyCompiler] = None,
                 cfg: Optional[Settings] = None):
        self.client = client
        self.cfg = cfg or default_settings
        self.compiler = compiler or PolicyCompiler(cfg=self.cfg)

    def policy_url(self, resource: str) -> str:
        return f"{resource}{self.cfg.ACR_SUFFIX}"

    async def write(self, resource: str, document: PolicyDocument) -> None:
        """
        Replace the policy for a resource.

        Repeating an identical write is safe. On failure the store keeps the
        previous document, so the resource is never left half-governed.

        Raises:
            WriteFailed: Non-2xx response or no response at all
        """
        url = self.policy_url(resource)
        response = await self.client.put(url, render_turtle(document))
        if response.status not in SUCCESS_STATUSES:
            logger.warning("Policy write for %s failed: status=%s error=%s", resource, response.status, response.error)
            raise WriteFailed(resource, response.status, response.error)
        logger.info(
            "Applied %s policy to %s (hash=%s)",
            document.pattern.value, resource, compute_document_hash(document)[:12]
        )

    async def apply(self, resource: str, pattern, owner: str, grants: Optional[Grants] = None,
                    options: Optional[ShareOptions] = None) -> PolicyDocument:
        """Compile a sharing intent and write it. Returns the written document."""
        document = self.compiler.compile(pattern, owner, grants, options)
        await self.write(resource, document)
        return document

    async def fetch(self, resource: str, *, missing_ok: bool = True) -> Optional[RawPolicy]:
        """
        Fetch the raw policy for a resource.

        Returns:
            RawPolicy with keyword-derived flags, or None when no policy exists

        Raises:
            NotFound: No policy exists and ``missing_ok`` is False
            ReadFailed: Any non-2xx response other than 404
        """
        url = self.policy_url(resource)
        response = await self.client.get(url)
        if response.not_found:
            if not missing_ok:
                raise NotFound(resource, 404, "no access control policy")
            return None
        if not response.ok:
            raise ReadFailed(resource, response.status, response.error)
        return RawPolicy(resource=resource, url=url, body=response.body, flags=flags_from_text(response.body))

    async def delete(self, resource: str) -> None:
        """
        Remove the policy for a resource. A missing policy counts as removed.

        Raises:
            WriteFailed: Any other non-2xx response
        """
        response = await self.client.delete(self.policy_url(resource))
        if response.not_found:
            logger.debug("No policy to delete for %s", resource)
            return
        if response.status not in SUCCESS_STATUSES:
            raise WriteFailed(resource, response.status, response.error)
        logger.info("Removed access control from %s", resource)
