"""In-memory single-use challenge ledger."""

from __future__ import annotations

import base64
import secrets
import threading
import time
from typing import Callable, Dict, Optional

from .errors import ChallengeNotFound


class ChallengeLedger:
    def __init__(
        self,
        ttl: Optional[float] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._pending: Dict[str, float] = {}
        self._lock = threading.Lock()
        self._ttl = ttl
        self._clock = clock

    def issue(self, size: int = 32) -> str:
        token = base64.b64encode(secrets.token_bytes(size)).decode("ascii")
        with self._lock:
            self._pending[token] = self._clock()
        return token

    def consume(self, token: str) -> None:
        with self._lock:
            issued_at = self._pending.pop(token, None)
        if issued_at is None:
            raise ChallengeNotFound("Unknown or already used challenge")
        if self._expired(issued_at):
            raise ChallengeNotFound("Challenge expired")

    def purge_expired(self) -> int:
        with self._lock:
            expired = [token for token, issued_at in self._pending.items() if self._expired(issued_at)]
            for token in expired:
                del self._pending[token]
        return len(expired)

    def __contains__(self, token: object) -> bool:
        with self._lock:
            return token in self._pending

    def __len__(self) -> int:
        with self._lock:
            return len(self._pending)

    def _expired(self, issued_at: float) -> bool:
        return self._ttl is not None and self._clock() - issued_at > self._ttl
