"""Request id allocation and pending-request correlation.

The table is shared between callers (allocate/register) and the reader task
(resolve/cancel). A ``threading.Lock`` guards the counter and the map; user
callbacks always run after the lock is released.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

logger = logging.getLogger(__name__)

# Callback types
ResolveCallback = Callable[[Any], None]
RejectCallback = Callable[[BaseException], None]


@dataclass
class PendingRequest:
    """An in-flight request waiting for its response frame."""

    id: int
    resolve: ResolveCallback
    reject: RejectCallback | None = None
    func: str = ""


class CorrelationTable:
    """Allocates request ids and matches responses to pending requests.

    Ids start at 1 and only ever increase; 0 is reserved for notifications.
    A response whose id is not pending (already cancelled, timed out or
    unknown) is discarded without error.
    """

    def __init__(self) -> None:
        self._next_id = 1
        self._pending: dict[int, PendingRequest] = {}
        self._lock = threading.Lock()

    def allocate(self) -> int:
        """Return the next unused request id."""
        with self._lock:
            request_id = self._next_id
            self._next_id += 1
            return request_id

    def register(
        self,
        request_id: int,
        resolve: ResolveCallback,
        reject: RejectCallback | None = None,
        func: str = "",
    ) -> PendingRequest:
        """Store the callbacks for an allocated id.

        Raises:
            ValueError: If the id is already pending
        """
        pending = PendingRequest(id=request_id, resolve=resolve, reject=reject, func=func)
        with self._lock:
            if request_id in self._pending:
                raise ValueError(f"Request id {request_id} is already pending")
            self._pending[request_id] = pending
        return pending

    def resolve(self, request_id: int, payload: Any) -> bool:
        """Deliver a response payload to its pending request.

        Returns:
            True if a pending request consumed the payload, False if the id
            was not pending and the payload was discarded.
        """
        with self._lock:
            pending = self._pending.pop(request_id, None)

        if pending is None:
            logger.debug(f"Discarding response for id {request_id} (not pending)")
            return False

        pending.resolve(payload)
        return True

    def cancel(self, request_id: int) -> bool:
        """Forget a pending request so a late response is discarded."""
        with self._lock:
            return self._pending.pop(request_id, None) is not None

    def drain(self) -> list[PendingRequest]:
        """Remove and return every pending request, oldest first."""
        with self._lock:
            drained = [self._pending[key] for key in sorted(self._pending)]
            self._pending.clear()
        return drained

    @property
    def pending_ids(self) -> list[int]:
        with self._lock:
            return sorted(self._pending)

    def __len__(self) -> int:
        with self._lock:
            return len(self._pending)

    def __contains__(self, request_id: object) -> bool:
        with self._lock:
            return request_id in self._pending
