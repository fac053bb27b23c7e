"""Storage of outbound AuthnRequest identifiers.

Responses to SP-initiated logins carry ``InResponseTo``; the identifier
must name a request this service provider actually sent and has not yet
seen answered.
"""

from __future__ import annotations

import threading
from collections.abc import Callable
from datetime import datetime, timedelta

from samlrp.core.saml.clock import utcnow

DEFAULT_REQUEST_LIFETIME = timedelta(minutes=10)


class RequestStore:
    """Thread-safe, single-use store of sent request IDs."""

    def __init__(
        self,
        lifetime: timedelta = DEFAULT_REQUEST_LIFETIME,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._lifetime = lifetime
        self._clock = clock
        self._requests: dict[str, datetime] = {}
        self._lock = threading.Lock()

    def store(self, request_id: str, expiry: datetime | None = None) -> None:
        """Remember an outbound request.

        Requests that expired without an answer are dropped at the same time.

        Args:
            request_id: ID of the AuthnRequest sent to the IdP.
            expiry: When the request stops being answerable. Defaults to
                now plus the store's lifetime.
        """
        with self._lock:
            now = self._clock()
            self._purge_locked(now)
            self._requests[request_id] = expiry or (now + self._lifetime)

    def pop(self, request_id: str, now: datetime | None = None) -> bool:
        """Remove a request and report whether it was still live.

        Args:
            request_id: ID from the response's InResponseTo.
            now: Current instant. Defaults to the store's clock.

        Returns:
            True if the request was stored and had not expired.
        """
        with self._lock:
            expiry = self._requests.pop(request_id, None)
        if expiry is None:
            return False
        return expiry > (now or self._clock())

    def purge_expired(self, now: datetime | None = None) -> int:
        """Remove requests that can no longer be answered.

        Returns:
            Number of requests removed.
        """
        with self._lock:
            return self._purge_locked(now or self._clock())

    def _purge_locked(self, now: datetime) -> int:
        expired = [key for key, expiry in self._requests.items() if expiry <= now]
        for key in expired:
            del self._requests[key]
        return len(expired)

    def __contains__(self, request_id: object) -> bool:
        with self._lock:
            return request_id in self._requests

    def __len__(self) -> int:
        with self._lock:
            return len(self._requests)
