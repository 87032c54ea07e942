import re
from datetime import datetime, timezone
from typing import Dict, List, Optional, Set, Tuple

import httpx
import pytest
import pytest_asyncio
import respx
from click.testing import CliRunner

from podshare.config import Settings
from podshare.core.clock import FixedClock
from podshare.transports.base import LDP_BASIC_CONTAINER, StaticTokenProvider
from podshare.transports.http_adapter import PodHttpClient

ALICE = "https://alice.example/profile/card#me"
BOB = "https://bob.example/profile/card#me"
CAROL = "https://carol.example/profile/card#me"
RESOURCE = "https://alice.example/tasks/list.ttl"

_PREFIX = re.compile(r"PREFIX\s+(\w+):\s+<([^>]+)>")
_TRIPLE = re.compile(r'(\w+):(\S+)\s+(\w+):(\w+)\s+("(?:[^"\\]|\\.)*")\s*\.')


class FakePod:
    """
    In-memory object store answering every HTTP call made during a test.

    Containers are URLs ending in ``/``. PATCH understands the INSERT DATA
    form and appends the inserted triples with full IRIs. Failures are
    injected with :meth:`fail`.
    """

    def __init__(self):
        self.resources: Dict[str, str] = {}
        self.containers: Set[str] = set()
        self.posts: Dict[str, List[str]] = {}
        self.requests: List[httpx.Request] = []
        self._failures: List[Tuple[str, str, int]] = []

    def fail(self, method: str, url_fragment: str, status: int) -> None:
        """Answer ``method`` (or ``*``) on any URL containing ``url_fragment`` with ``status``."""
        self._failures.append((method.upper(), url_fragment, status))

    def recover(self) -> None:
        """Drop every injected failure."""
        self._failures.clear()

    def add_profile(self, webid: str, inbox: Optional[str] = None) -> None:
        document = webid.split("#", 1)[0]
        body = "@prefix ldp: <http://www.w3.org/ns/ldp#> .\n"
        if inbox:
            body += f"<#me> ldp:inbox <{inbox}> .\n"
        else:
            body += "<#me> a <http://xmlns.com/foaf/0.1/Person> .\n"
        self.resources[document] = body

    def calls(self, method: str, url_fragment: str = "") -> List[httpx.Request]:
        return [
            r for r in self.requests
            if r.method == method.upper() and url_fragment in str(r.url)
        ]

    def handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        url = str(request.url)
        method = request.method

        for fail_method, fragment, status in self._failures:
            if fail_method in ("*", method) and fragment in url:
                return httpx.Response(status)

        if method in ("GET", "HEAD"):
            if url in self.containers:
                return httpx.Response(200, headers={"Link": f'<{LDP_BASIC_CONTAINER}>; rel="type"'})
            if url in self.resources:
                body = self.resources[url] if method == "GET" else ""
                return httpx.Response(200, text=body, headers={"Content-Type": "text/turtle"})
            return httpx.Response(404)

        if method == "PUT":
            if url.endswith("/"):
                self.containers.add(url)
                return httpx.Response(201)
            existed = url in self.resources
            self.resources[url] = request.content.decode("utf-8")
            return httpx.Response(205 if existed else 201)

        if method == "PATCH":
            if url not in self.resources:
                return httpx.Response(404)
            sparql = request.content.decode("utf-8")
            prefixes = dict(_PREFIX.findall(sparql))
            for s_prefix, s_local, p_prefix, p_local, literal in _TRIPLE.findall(sparql):
                self.resources[url] += (
                    f"<{prefixes[s_prefix]}{s_local}> <{prefixes[p_prefix]}{p_local}> {literal} .\n"
                )
            return httpx.Response(205)

        if method == "POST":
            self.posts.setdefault(url, []).append(request.content.decode("utf-8"))
            return httpx.Response(201, headers={"Location": f"{url}item-{len(self.posts[url])}"})

        if method == "DELETE":
            if self.resources.pop(url, None) is None:
                return httpx.Response(404)
            return httpx.Response(205)

        return httpx.Response(405)


@pytest.fixture
def cfg():
    return Settings(_env_file=None)


@pytest.fixture
def clock():
    return FixedClock(datetime(2026, 10, 19, 12, 0, 0, tzinfo=timezone.utc))


@pytest.fixture
def pod():
    fake = FakePod()
    with respx.mock(assert_all_called=False) as router:
        router.route().mock(side_effect=fake.handle)
        yield fake


@pytest_asyncio.fixture
async def client(pod, cfg):
    async with PodHttpClient(StaticTokenProvider("token-123", "proof-abc"), cfg=cfg) as c:
        yield c


@pytest.fixture
def cli_runner():
    return CliRunner()
