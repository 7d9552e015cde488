"""Authenticated HTTP transport with timeout and retry policy."""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass, field
from typing import Any, Callable

import httpx

from .errors import RequestTimeoutError, TransportError


logger = logging.getLogger(__name__)

# Responses worth another attempt
RETRY_STATUS_CODES = frozenset({429, 502, 503, 504})


def run_until(
    deadline: float,
    fn: Callable[[], Any],
    abandon: Callable[[Any], None],
    limit: float,
    what: str,
) -> Any:
    """
    Run fn in a daemon thread and wait for it until the monotonic deadline.

    Raises RequestTimeoutError when the deadline passes first. The worker is
    left to finish on its own and hands whatever it produced to abandon().
    """
    lock = threading.Lock()
    done = threading.Event()
    state: dict[str, Any] = {"abandoned": False, "result": None, "error": None}

    def worker() -> None:
        result = error = None
        try:
            result = fn()
        except BaseException as e:
            error = e
        with lock:
            state["result"], state["error"] = result, error
            done.set()
            if not state["abandoned"]:
                return
        abandon(result)

    threading.Thread(target=worker, name="telemetry-request", daemon=True).start()
    done.wait(max(deadline - time.monotonic(), 0.0))

    with lock:
        if not done.is_set():
            state["abandoned"] = True
            raise RequestTimeoutError(f"{what} exceeded {limit:g}s", limit=limit)

    if state["error"] is not None:
        raise state["error"]
    return state["result"]


def _discard(client: httpx.Client | None, response: httpx.Response | None) -> None:
    if response is not None:
        response.close()
    if client is not None:
        client.close()


@dataclass
class HttpTransport:
    """
    Sends requests to the collector.

    Every attempt, from sending the request to reading a diagnostic body,
    must finish within max_request_duration or it fails with
    RequestTimeoutError. The httpx timeout only bounds each network step.

    Config:
        token: Value of the Authorization header
        max_request_duration: Wall clock limit per attempt in seconds
        max_retries: Extra attempts after a transient failure
            (connection error, timeout, 429/502/503/504); negative disables
        retry_backoff_seconds: Linear backoff step between attempts
        skip_tls_verification: Accept any server certificate
        transport: Optional httpx transport (e.g. httpx.MockTransport)
    """
    token: str = ""
    max_request_duration: float = 5.0
    max_retries: int = -1
    retry_backoff_seconds: float = 0.5
    skip_tls_verification: bool = True
    transport: httpx.BaseTransport | None = None

    _client: httpx.Client | None = field(default=None, init=False, repr=False)
    _deadline: float = field(default=0.0, init=False, repr=False)

    @property
    def client(self) -> httpx.Client:
        if self._client is None:
            self._client = httpx.Client(
                timeout=httpx.Timeout(self.max_request_duration),
                verify=not self.skip_tls_verification,
                transport=self.transport,
            )
        return self._client

    @property
    def attempts(self) -> int:
        """Total attempts per request, including the first one."""
        return 1 + max(self.max_retries, 0)

    def _headers(self) -> dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.token:
            headers["Authorization"] = self.token
        return headers

    def _send_once(self, request: httpx.Request) -> httpx.Response:
        client = self.client
        self._deadline = time.monotonic() + self.max_request_duration
        try:
            return run_until(
                self._deadline,
                lambda: client.send(request, stream=True),
                lambda response: _discard(None if self.transport else client, response),
                self.max_request_duration,
                f"request to {request.url}",
            )
        except RequestTimeoutError:
            # The worker closes the stuck client unless the transport was injected
            self._client = None
            raise

    def send(self, method: str, url: str, content: bytes) -> httpx.Response:
        """
        Send a request and return the streamed response.

        The body is not read; the caller must close the response.
        Raises TransportError when no response could be obtained.
        """
        try:
            request = self.client.build_request(method, url, content=content, headers=self._headers())
        except (httpx.InvalidURL, httpx.HTTPError) as e:
            raise TransportError(f"error building the request to {url}: {e}") from e

        for attempt in range(1, self.attempts + 1):
            last_attempt = attempt == self.attempts
            try:
                response = self._send_once(request)
            except (httpx.TransportError, RequestTimeoutError) as e:
                if last_attempt:
                    raise TransportError(f"error sending the request to {url}: {e}") from e
                logger.warning(f"Request to {url} failed (attempt {attempt}/{self.attempts}): {e}")
            else:
                if response.status_code not in RETRY_STATUS_CODES or last_attempt:
                    return response
                response.close()
                logger.warning(
                    f"Request to {url} returned {response.status_code} "
                    f"(attempt {attempt}/{self.attempts})"
                )
            time.sleep(self.retry_backoff_seconds * attempt)

        # attempts is always >= 1, the loop returns or raises
        raise TransportError(f"error sending the request to {url}")

    def read_prefix(self, response: httpx.Response, limit: int) -> bytes:
        """
        Read at most limit bytes of a streamed response body.

        Bounded by the deadline of the attempt that produced the response.
        Raises httpx.HTTPError if the body cannot be read and
        RequestTimeoutError if the deadline passes.
        """
        def read() -> bytes:
            chunks: list[bytes] = []
            size = 0
            for chunk in response.iter_bytes():
                chunks.append(chunk)
                size += len(chunk)
                if size >= limit:
                    break
            return b"".join(chunks)[:limit]

        return run_until(
            self._deadline,
            read,
            lambda _: response.close(),
            self.max_request_duration,
            f"reading the response from {response.request.url}",
        )

    def post(self, url: str, content: bytes) -> httpx.Response:
        return self.send("POST", url, content)

    def close(self) -> None:
        if self._client is not None:
            self._client.close()
            self._client = None
