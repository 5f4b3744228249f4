"""
Ephemeral session storage for login flows and one-time codes.

Entries are evicted only by the periodic sweep. Reads never look at an
entry's age, so an expired flow or code stays usable until the next sweep
tick (up to TTL + sweep interval).
"""

import asyncio
import logging
import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, Optional

logger = logging.getLogger(__name__)

SESSION_TTL_MS = 10 * 60 * 1000
SWEEP_INTERVAL_SECONDS = 5 * 60

# Returns the current time in milliseconds
Clock = Callable[[], float]


def wall_clock_ms() -> float:
    return time.time() * 1000


@dataclass
class Session:
    """A stored flow or code. ``created_at`` is in clock milliseconds."""

    key: str
    payload: dict[str, Any]
    created_at: float

    def age(self, now: float) -> float:
        return now - self.created_at


class SessionStore:
    """
    TTL-based key/value store shared by all in-flight requests.

    Every operation holds a single lock, so sync handlers running in the
    threadpool, async handlers and the sweeper never interleave.
    """

    def __init__(self, ttl_ms: float = SESSION_TTL_MS, clock: Clock = wall_clock_ms):
        self.ttl_ms = ttl_ms
        self._clock = clock
        self._sessions: dict[str, Session] = {}
        self._lock = threading.Lock()

    def create(self, key: str, payload: Optional[dict[str, Any]] = None) -> str:
        """Store ``payload`` under ``key``, replacing any previous entry."""
        session = Session(key=key, payload=dict(payload or {}), created_at=self._clock())
        with self._lock:
            self._sessions[key] = session
        return key

    def get(self, key: str) -> Optional[dict[str, Any]]:
        """Return a copy of the payload, or None if the key is absent."""
        with self._lock:
            session = self._sessions.get(key)
            return dict(session.payload) if session else None

    def delete(self, key: str) -> bool:
        with self._lock:
            return self._sessions.pop(key, None) is not None

    def pop(self, key: str) -> Optional[dict[str, Any]]:
        """Atomically remove and return a payload. Used to consume single-use entries."""
        with self._lock:
            session = self._sessions.pop(key, None)
            return session.payload if session else None

    def sweep(self, now: Optional[float] = None) -> int:
        """
        Remove entries whose age exceeds the TTL.

        Args:
            now: Reference time in milliseconds, defaults to the store clock

        Returns:
            Number of entries removed
        """
        if now is None:
            now = self._clock()
        with self._lock:
            expired = [key for key, session in self._sessions.items() if session.age(now) > self.ttl_ms]
            for key in expired:
                del self._sessions[key]
        if expired:
            logger.debug(f"Swept {len(expired)} expired sessions")
        return len(expired)

    def __contains__(self, key: str) -> bool:
        with self._lock:
            return key in self._sessions

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)


class SessionSweeper:
    """Background task that sweeps a SessionStore at a fixed interval."""

    def __init__(
        self,
        store: SessionStore,
        interval_seconds: float = SWEEP_INTERVAL_SECONDS,
        on_sweep: Optional[Callable[[int], None]] = None,
    ):
        self._store = store
        self._interval = interval_seconds
        self._on_sweep = on_sweep
        self._task: asyncio.Task | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def start(self) -> None:
        """Start the sweep loop. Calling it twice keeps the first task."""
        if self._task is None:
            self._task = asyncio.create_task(self._run())
            logger.info(f"Session sweeper started (interval: {self._interval}s)")

    async def stop(self) -> None:
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
            logger.info("Session sweeper stopped")

    def tick(self) -> int:
        removed = self._store.sweep()
        if self._on_sweep:
            self._on_sweep(removed)
        return removed

    async def _run(self) -> None:
        while True:
            try:
                await asyncio.sleep(self._interval)
                self.tick()
            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.error(f"Error in session sweep loop: {e}")
