"""Object-storage client over HTTP.

``HttpObjectStorageClient`` implements ``ObjectStoragePort`` against the
storage service (``services/storage``). Each upload:

- carries the ``X-Request-ID`` of the current request so both services'
  logs can be joined;
- passes through a process-wide circuit breaker, so a storage outage
  fails fast with ``UpstreamUnavailable`` instead of tying up workers;
- is retried with exponential back-off on transport errors and 5xx
  responses. Files the service refuses (413/415/422) are not retried.
"""

import threading
import time
from typing import Optional

import httpx
from django.conf import settings

from apps.common.exceptions import InvalidRequest, UpstreamUnavailable
from gateway.middleware import REQUEST_ID_CTX

from .domain import ObjectStoragePort

CLOSED = "CLOSED"
OPEN = "OPEN"
HALF_OPEN = "HALF_OPEN"

REJECTED_STATUSES = (413, 415, 422)


class CircuitBreaker:
    """Counts consecutive failures of one upstream and trips after
    ``fail_threshold`` of them.

    Once ``reset_timeout`` seconds have passed since tripping, the breaker
    is HALF_OPEN and lets exactly one trial call through; its outcome closes or
    re-opens the circuit. All state lives behind a lock because gunicorn
    runs several threads per worker.
    """

    def __init__(self, name: str, fail_threshold: int, reset_timeout: float):
        self.name = name
        self.fail_threshold = fail_threshold
        self.reset_timeout = reset_timeout
        self._lock = threading.RLock()
        self._state = CLOSED
        self._consecutive_failures = 0
        self._tripped_at = 0.0
        self._probing = False

    @property
    def state(self) -> str:
        with self._lock:
            if self._state == OPEN and time.monotonic() - self._tripped_at >= self.reset_timeout:
                self._state = HALF_OPEN
                self._probing = False
            return self._state

    def before_call(self) -> str:
        """Admit a call or refuse it.

        Returns:
            str: The state the call was admitted in.

        Raises:
            UpstreamUnavailable: ``CIRCUIT_OPEN`` while tripped, or
                ``CIRCUIT_HALF_OPEN_BUSY`` when the single trial call is taken.
        """
        with self._lock:
            current = self.state
            if current == OPEN:
                raise UpstreamUnavailable(f"{self.name} is unavailable", code="CIRCUIT_OPEN")
            if current == HALF_OPEN:
                if self._probing:
                    raise UpstreamUnavailable(f"{self.name} is being retried", code="CIRCUIT_HALF_OPEN_BUSY")
                self._probing = True
            return current

    def on_success(self) -> None:
        with self._lock:
            self._state = CLOSED
            self._consecutive_failures = 0
            self._probing = False

    def on_failure(self) -> None:
        with self._lock:
            self._consecutive_failures += 1
            if self._state == HALF_OPEN or self._consecutive_failures >= self.fail_threshold:
                self._trip()

    def on_finish(self) -> None:
        # a trial call that ended in an unexpected error must not block the next one
        with self._lock:
            if self._state == HALF_OPEN:
                self._probing = False

    def _trip(self) -> None:
        self._state = OPEN
        self._tripped_at = time.monotonic()
        self._probing = False


_storage_cb = CircuitBreaker(
    "storage",
    getattr(settings, "HTTP_CIRCUIT_FAIL_THRESHOLD", 5),
    getattr(settings, "HTTP_CIRCUIT_RESET_TIMEOUT", 30.0),
)


def _request_headers(extra: Optional[dict] = None) -> dict:
    headers = {}
    rid = REQUEST_ID_CTX.get()
    if rid and rid != "-":
        headers["X-Request-ID"] = rid
    headers.update(extra or {})
    return headers


def _retry_policy() -> tuple[int, float, float]:
    """(attempts, backoff base, max sleep). ``HTTP_RETRY_MAX`` counts every
    attempt, the first one included."""
    return (
        max(1, int(getattr(settings, "HTTP_RETRY_MAX", 3))),
        float(getattr(settings, "HTTP_RETRY_BACKOFF_BASE", 0.15)),
        float(getattr(settings, "HTTP_RETRY_MAX_SLEEP", 0.5)),
    )


def _should_retry(resp: Optional[httpx.Response], exc: Optional[Exception]) -> bool:
    if exc is not None:
        return True
    return resp is not None and resp.status_code >= 500


class HttpObjectStorageClient(ObjectStoragePort):
    """Uploads payment proofs to the storage service."""

    def __init__(self, base_url: str | None = None, timeout: float | None = None):
        self.base_url = (base_url or settings.OBJECT_STORAGE_BASE_URL).rstrip("/")
        self.timeout = timeout or settings.HTTP_TIMEOUT_SECS

    def upload(self, content: bytes, content_type: str, filename: str, folder: str) -> str:
        """POST the file as multipart and return its ``secure_url``.

        Raises:
            InvalidRequest: ``UPLOAD_REJECTED`` when the service refuses the
                file (size, type or folder). Does not count as a failure.
            UpstreamUnavailable: The circuit is open.
            httpx.RequestError: Transport error on the last attempt.
            httpx.HTTPStatusError: 5xx on the last attempt, or another
                unexpected status.
        """
        attempts, backoff, max_sleep = _retry_policy()
        state = _storage_cb.before_call()
        headers = _request_headers({"X-Circuit-State": state, "X-Retry-Count": "0"})
        url = f"{self.base_url}/objects"

        try:
            with httpx.Client(timeout=self.timeout) as client:
                for attempt in range(1, attempts + 1):
                    resp, exc = None, None
                    try:
                        resp = client.post(
                            url,
                            files={"file": (filename, content, content_type)},
                            data={"folder": folder},
                            headers=headers,
                        )
                    except httpx.RequestError as e:
                        exc = e

                    if resp is not None and resp.status_code in (200, 201):
                        _storage_cb.on_success()
                        return resp.json()["secure_url"]
                    if resp is not None and resp.status_code in REJECTED_STATUSES:
                        _storage_cb.on_success()
                        raise InvalidRequest(
                            f"Storage rejected the file ({resp.status_code})", code="UPLOAD_REJECTED"
                        )

                    if attempt == attempts or not _should_retry(resp, exc):
                        _storage_cb.on_failure()
                        if exc is not None:
                            raise exc
                        resp.raise_for_status()
                        # a non-error status we do not understand (e.g. 204)
                        raise httpx.HTTPStatusError(
                            f"Unexpected storage response {resp.status_code}",
                            request=resp.request,
                            response=resp,
                        )

                    headers["X-Retry-Count"] = str(attempt)
                    time.sleep(min(backoff * 2 ** (attempt - 1), max_sleep))
        finally:
            _storage_cb.on_finish()
