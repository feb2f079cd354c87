import hashlib
import sys
from pathlib import Path

import httpx
import pytest

# Ensure repo_root/src is available on sys.path before any tests import project modules
REPO_ROOT = Path(__file__).resolve().parents[1]
SRC_PATH = REPO_ROOT / "src"
if str(SRC_PATH) not in sys.path:
    sys.path.insert(0, str(SRC_PATH))

from lopper.remote import RemoteFetcher  # noqa: E402


def sha256_hex(body: bytes) -> str:
    return hashlib.sha256(body).hexdigest()


@pytest.fixture
def mock_fetcher():
    """Build a RemoteFetcher backed by httpx.MockTransport.

    ``routes`` maps fragment-less URLs to a body or a ``(status, body)`` pair;
    every requested URL is recorded on ``fetcher.requested``.
    """

    def factory(routes, **kwargs) -> RemoteFetcher:
        requested = []

        def handler(request: httpx.Request) -> httpx.Response:
            url = str(request.url)
            requested.append(url)
            entry = routes.get(url)
            if entry is None:
                return httpx.Response(404, content=b"not found")
            if isinstance(entry, Exception):
                raise entry
            if isinstance(entry, tuple):
                status, body = entry
                return httpx.Response(status, content=body)
            return httpx.Response(200, content=entry)

        fetcher = RemoteFetcher(httpx.Client(transport=httpx.MockTransport(handler)), **kwargs)
        fetcher.requested = requested  # type: ignore[attr-defined]
        return fetcher

    return factory
