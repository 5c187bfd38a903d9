from __future__ import annotations

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Dict, Optional

from ..models.responses import CompletionResponse


class DispatchStatus(Enum):
    IN_FLIGHT = "in_flight"
    FAILED = "failed"
    COMPLETED = "completed"


@dataclass
class IdempotencyRecord:
    """What is known about the one dispatch made under a key."""
    status: DispatchStatus
    provider: str
    model: str
    created_at: float
    response: Optional[CompletionResponse] = None
    error: Optional[BaseException] = field(default=None, repr=False)


class IdempotencyManager:
    """
    Remembers side-effecting dispatches by idempotency key.

    A key is claimed right before its first dispatch. From then on the
    executor must not dispatch again under the same key; it either returns
    the cached response or asks the adapter to replay the earlier outcome.
    """

    def __init__(
        self,
        ttl_seconds: int = 900,
        max_entries: int = 1000,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.ttl = ttl_seconds
        self.max_entries = max_entries
        self._clock = clock
        self._store: Dict[str, IdempotencyRecord] = {}

    def get(self, key: str) -> Optional[IdempotencyRecord]:
        record = self._store.get(key)
        if record is None:
            return None
        if self._clock() - record.created_at > self.ttl:
            # expired
            self._store.pop(key, None)
            return None
        return record

    def claim(self, key: str, provider: str, model: str) -> bool:
        """Mark ``key`` as dispatched; False when it was already claimed."""
        if self.get(key) is not None:
            return False
        if len(self._store) >= self.max_entries:
            self._evict_oldest()
        self._store[key] = IdempotencyRecord(
            status=DispatchStatus.IN_FLIGHT,
            provider=provider,
            model=model,
            created_at=self._clock(),
        )
        return True

    def complete(self, key: str, response: CompletionResponse) -> None:
        record = self._store.get(key)
        if record is None:
            return
        record.status = DispatchStatus.COMPLETED
        record.response = response
        record.error = None

    def fail(self, key: str, error: BaseException) -> None:
        # The provider may still have acted on a failed dispatch, so the
        # record stays and blocks a second dispatch.
        record = self._store.get(key)
        if record is None:
            return
        record.status = DispatchStatus.FAILED
        record.error = error

    def release(self, key: str) -> None:
        """Forget a claim; only for dispatches the provider refused outright."""
        self._store.pop(key, None)

    def cleanup_expired(self) -> None:
        now = self._clock()
        to_delete = [k for k, r in self._store.items() if now - r.created_at > self.ttl]
        for k in to_delete:
            self._store.pop(k, None)

    def _evict_oldest(self) -> None:
        oldest_key = min(self._store.items(), key=lambda kv: kv[1].created_at)[0]
        self._store.pop(oldest_key, None)

    def __len__(self) -> int:
        return len(self._store)
