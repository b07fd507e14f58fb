"""
GeoQuest — Debounced Persistence
================================

Player state is written to external storage eventually, never inline with
a user action. WriteCoalescingQueue keeps a single pending-write slot:
every schedule() cancels the pending timer and arms a new one (trailing
edge), so a burst of mutations collapses into one write of the last
snapshot. Writer failures are logged and dropped; the next mutation
schedules a fresh attempt.
"""

from __future__ import annotations

import json
import logging
import os
import threading
from typing import Any, Callable, Optional

import redis

logger = logging.getLogger("geoquest.persist")

# ── Configuration ──────────────────────────────────────────────────────────────
DEBOUNCE_SEC = float(os.getenv("GEOQUEST_PERSIST_DEBOUNCE_SEC", "2.0"))
REDIS_URL    = os.getenv("GEOQUEST_REDIS_URL", "redis://localhost:6379/0")


class WriteCoalescingQueue:

    def __init__(
        self,
        writer:    Callable[[Any], None],
        delay:     float = DEBOUNCE_SEC,
        timer_factory: Callable[..., threading.Timer] = threading.Timer,
    ):
        self._writer        = writer
        self._delay         = delay
        self._timer_factory = timer_factory
        self._lock          = threading.Lock()
        self._timer: Optional[threading.Timer] = None
        self._pending: Any  = None
        self._has_pending   = False
        self._generation    = 0

    @property
    def has_pending(self) -> bool:
        return self._has_pending

    def schedule(self, snapshot: Any) -> None:
        """Replace the pending snapshot and restart the debounce window."""
        with self._lock:
            if self._timer is not None:
                self._timer.cancel()
            self._pending     = snapshot
            self._has_pending = True
            self._generation += 1
            self._timer = self._timer_factory(self._delay, self._fire, args=(self._generation,))
            self._timer.daemon = True
            self._timer.start()

    def cancel(self) -> None:
        with self._lock:
            if self._timer is not None:
                self._timer.cancel()
            self._timer       = None
            self._pending     = None
            self._has_pending = False

    def flush(self) -> bool:
        """Write the pending snapshot now. Returns False when nothing was pending."""
        with self._lock:
            if self._timer is not None:
                self._timer.cancel()
                self._timer = None
        return self._fire()

    def _fire(self, generation: Optional[int] = None) -> bool:
        with self._lock:
            # a timer superseded by a later schedule() must not write
            if generation is not None and generation != self._generation:
                return False
            if not self._has_pending:
                return False
            snapshot          = self._pending
            self._pending     = None
            self._has_pending = False
            self._timer       = None

        try:
            self._writer(snapshot)
            logger.info("[PERSIST] State written")
        except Exception as e:
            logger.error(f"[PERSIST] Write failed (will retry on next change): {e}")
        return True


class RedisUserStateWriter:
    """Stores the user snapshot as JSON under geoquest:user:<uid>."""

    KEY_PREFIX = "geoquest:user:"

    def __init__(self, user_id: str, client: Optional[redis.Redis] = None, url: str = REDIS_URL):
        self.user_id = user_id
        self.client  = client if client is not None else redis.Redis.from_url(url, decode_responses=True)

    @property
    def key(self) -> str:
        return f"{self.KEY_PREFIX}{self.user_id}"

    def __call__(self, snapshot: dict) -> None:
        self.client.set(self.key, json.dumps(snapshot, ensure_ascii=False))

    def load(self) -> Optional[dict]:
        raw = self.client.get(self.key)
        return json.loads(raw) if raw else None
