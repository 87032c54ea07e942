"""
HTTP transport for Solid-style object stores.
"""
import logging
import time
from typing import Dict, Mapping, Optional

import httpx

from podshare.config import Settings, settings as default_settings
from .base import (
    LDP_BASIC_CONTAINER, StoreResponse, TokenProvider, StaticTokenProvider
)


logger = logging.getLogger(__name__)

TURTLE = "text/turtle"
SPARQL_UPDATE = "application/sparql-update"


class PodHttpClient:
    """
    An object-store client for making authenticated HTTP requests using httpx.

    Every request carries the DPoP token pair for its URL and method.
    """
    name: str = "http"

    def __init__(
        self,
        token_provider: Optional[TokenProvider] = None,
        *,
        cfg: Optional[Settings] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        cfg = cfg or default_settings
        self._tokens = token_provider or StaticTokenProvider()
        self._timeout_s: float = cfg.HTTP_TIMEOUT_S
        self._verify = cfg.VERIFY_TLS
        self._client = client
        self._owns_client = client is None

    def _ensure_client(self) -> httpx.AsyncClient:
        if self._client is None:
            logger.info(
                "Preparing pod HTTP client: verify_tls=%s timeout_s=%s",
                self._verify,
                self._timeout_s,
            )
            self._client = httpx.AsyncClient(verify=self._verify, follow_redirects=True)
        return self._client

    async def request(
        self,
        method: str,
        url: str,
        *,
        headers: Optional[Mapping[str, str]] = None,
        content: Optional[str] = None,
        timeout_s: Optional[float] = None,
    ) -> StoreResponse:
        """
        Executes an HTTP request against the store.

        HTTP error statuses and transport failures are returned, not raised.
        """
        client = self._ensure_client()
        method = method.upper()

        start_time = time.monotonic()
        try:
            access_token, proof = await self._tokens.tokens_for(url, method)
            request_headers: Dict[str, str] = {
                "Authorization": f"DPoP {access_token}",
                "DPoP": proof,
            }
            if headers:
                request_headers.update(headers)

            logger.debug("HTTP %s %s body=%s", method, url, content is not None)
            response = await client.request(
                method=method,
                url=url,
                headers=request_headers,
                content=content.encode("utf-8") if content is not None else None,
                timeout=(timeout_s or self._timeout_s),
            )
            latency_ms = int((time.monotonic() - start_time) * 1000)

            if response.is_success:
                logger.info("HTTP %s %s -> %s in %dms", method, url, response.status_code, latency_ms)
            else:
                logger.warning("HTTP %s %s -> %s in %dms (HTTP error)", method, url, response.status_code, latency_ms)

            return StoreResponse(
                method=method,
                url=url,
                status=response.status_code,
                body=response.text,
                headers={k.lower(): v for k, v in response.headers.items()},
                latency_ms=latency_ms,
            )

        except httpx.RequestError as e:
            latency_ms = int((time.monotonic() - start_time) * 1000)
            logger.error("HTTP %s %s failed in %dms: %s", method, url, latency_ms, e)
            return StoreResponse(
                method=method,
                url=url,
                status=None,
                latency_ms=latency_ms,
                error=f"HTTP Request Failed: {e.__class__.__name__}: {e}",
            )

    # Convenience verbs

    async def head(self, url: str) -> StoreResponse:
        return await self.request("HEAD", url)

    async def get(self, url: str, accept: str = TURTLE) -> StoreResponse:
        return await self.request("GET", url, headers={"Accept": accept})

    async def put(self, url: str, body: str, content_type: str = TURTLE,
                  extra_headers: Optional[Mapping[str, str]] = None) -> StoreResponse:
        headers = {"Content-Type": content_type}
        if extra_headers:
            headers.update(extra_headers)
        return await self.request("PUT", url, headers=headers, content=body)

    async def patch(self, url: str, sparql: str) -> StoreResponse:
        return await self.request("PATCH", url, headers={"Content-Type": SPARQL_UPDATE}, content=sparql)

    async def post(self, url: str, body: str, content_type: str = TURTLE) -> StoreResponse:
        return await self.request("POST", url, headers={"Content-Type": content_type}, content=body)

    async def delete(self, url: str) -> StoreResponse:
        return await self.request("DELETE", url)

    async def ensure_container(self, url: str) -> StoreResponse:
        """
        Make sure a container exists, creating it on 404.

        Returns the response that decided the outcome (the GET when the
        container was already there, otherwise the creating PUT).
        """
        if not url.endswith("/"):
            url += "/"
        check = await self.get(url)
        if not check.not_found:
            return check

        logger.info("Creating container %s", url)
        return await self.put(
            url,
            "@prefix ldp: <http://www.w3.org/ns/ldp#> .\n<> a ldp:BasicContainer .\n",
            extra_headers={"Link": f'<{LDP_BASIC_CONTAINER}>; rel="type"'},
        )

    async def close(self) -> None:
        """
        Closes the httpx client.
        """
        if self._client and self._owns_client:
            logger.info("Closing pod HTTP client")
            await self._client.aclose()
        self._client = None

    async def __aenter__(self) -> "PodHttpClient":
        self._ensure_client()
        return self

    async def __aexit__(self, *exc) -> None:
        await self.close()
