"""
Fetching of sha256-pinned remote policy packs.

Each fetch is a single bounded GET: no retries, a fixed timeout, a hard
byte cap, and an exact SHA-256 match against the pin in the URL fragment.
"""

from __future__ import annotations

import hashlib
import threading
import time
from logging import getLogger
from typing import List, Optional
from urllib.parse import urlsplit

import httpx

from .errors import IntegrityError, RemoteFetchError
from .references import extract_pin, strip_fragment

log = getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 10.0
MAX_REMOTE_POLICY_BYTES = 1 << 20
_POLL_SECONDS = 0.02


class RemoteFetcher:
    """GET pinned policy documents over HTTP(S).

    An injected ``httpx.Client`` is used as-is and left open; otherwise the
    fetcher owns a client and closes it in ``close()``.
    """

    def __init__(
        self,
        client: Optional[httpx.Client] = None,
        *,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        max_bytes: int = MAX_REMOTE_POLICY_BYTES,
    ) -> None:
        self._owns_client = client is None
        self._client = client if client is not None else httpx.Client(follow_redirects=True)
        self.timeout = timeout
        self.max_bytes = max_bytes

    def __enter__(self) -> "RemoteFetcher":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def close(self) -> None:
        if self._owns_client:
            self._client.close()

    def fetch(self, location: str, cancel_event: Optional[threading.Event] = None) -> bytes:
        """Return the exact bytes at ``location`` after verifying its pin.

        The whole request, body included, is bounded by ``timeout`` seconds.
        The transfer runs on a worker thread so that a read blocked on a
        stalled server cannot hold the caller past the deadline, and a set
        ``cancel_event`` aborts the fetch while it is in flight.
        """
        expected = extract_pin(urlsplit(location).fragment)
        url = strip_fragment(location)
        deadline = time.monotonic() + self.timeout
        _check_aborted(cancel_event, deadline)

        log.debug("fetching remote policy %s", url)
        transfer = _Transfer(self._client, url, self.timeout, self.max_bytes, cancel_event, deadline)
        worker = threading.Thread(target=transfer.run, name="lopper-remote-fetch", daemon=True)
        worker.start()
        while not transfer.done.wait(_POLL_SECONDS):
            reason = _abort_reason(cancel_event, deadline)
            if reason is not None:
                transfer.abort()
                raise RemoteFetchError(f"fetch remote policy: {reason}")
        if transfer.error is not None:
            raise transfer.error

        data = b"".join(transfer.chunks)
        if len(data) > self.max_bytes:
            raise RemoteFetchError(
                f"remote policy exceeded size limit of {self.max_bytes} bytes"
            )

        got = hashlib.sha256(data).hexdigest()
        if got != expected:
            raise IntegrityError(f"remote policy sha256 mismatch: expected {expected}, got {got}")
        return data


class _Transfer:
    """One streamed GET, run on a worker thread and abandoned on abort."""

    def __init__(
        self,
        client: httpx.Client,
        url: str,
        timeout: float,
        max_bytes: int,
        cancel_event: Optional[threading.Event],
        deadline: float,
    ) -> None:
        self.client = client
        self.url = url
        self.timeout = timeout
        self.max_bytes = max_bytes
        self.cancel_event = cancel_event
        self.deadline = deadline
        self.chunks: List[bytes] = []
        self.error: Optional[Exception] = None
        self.done = threading.Event()
        self._aborted = threading.Event()

    def abort(self) -> None:
        self._aborted.set()

    def run(self) -> None:
        # 异常交给调用线程重新抛出
        try:
            self._stream()
        except Exception as err:
            self.error = err
        finally:
            self.done.set()

    def _stream(self) -> None:
        try:
            self._read_body()
        except httpx.HTTPError as err:
            raise RemoteFetchError(f"fetch remote policy: {err}") from err

    def _read_body(self) -> None:
        received = 0
        with self.client.stream("GET", self.url, timeout=self.timeout) as response:
            if not 200 <= response.status_code <= 299:
                raise RemoteFetchError(
                    f"fetch remote policy: unexpected status {response.status_code}"
                )
            for chunk in response.iter_bytes():
                if self._aborted.is_set():
                    return
                _check_aborted(self.cancel_event, self.deadline)
                self.chunks.append(chunk)
                received += len(chunk)
                # 读取上限为 max_bytes+1，用于识别超限
                if received > self.max_bytes:
                    break


def _abort_reason(cancel_event: Optional[threading.Event], deadline: float) -> Optional[str]:
    if cancel_event is not None and cancel_event.is_set():
        return "cancelled"
    if time.monotonic() >= deadline:
        return "timed out"
    return None


def _check_aborted(cancel_event: Optional[threading.Event], deadline: float) -> None:
    reason = _abort_reason(cancel_event, deadline)
    if reason is not None:
        raise RemoteFetchError(f"fetch remote policy: {reason}")


__all__ = ["RemoteFetcher", "DEFAULT_TIMEOUT_SECONDS", "MAX_REMOTE_POLICY_BYTES"]
