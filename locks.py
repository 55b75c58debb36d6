"""locks.py

Per-league serialization of waiver settlement runs.

Two runs for the same league must not interleave: each run's bookkeeping of
granted and released assets only covers its own claims. The lock here is a
process-local threading.RLock per league, so it serializes runs inside one
server process only. Across processes the storage constraints (unique roster
index, budget CHECK, conditional status updates) are what remains.
"""

from __future__ import annotations

from contextlib import contextmanager
from threading import Lock, RLock
from typing import Dict, Iterator

_REGISTRY_LOCK = Lock()
_LEAGUE_LOCKS: Dict[int, RLock] = {}


def _lock_for(league_id: int) -> RLock:
    with _REGISTRY_LOCK:
        lock = _LEAGUE_LOCKS.get(league_id)
        if lock is None:
            lock = RLock()
            _LEAGUE_LOCKS[league_id] = lock
        return lock


@contextmanager
def league_settlement_lock(league_id: int, *, reason: str = "", timeout_s: float | None = None) -> Iterator[None]:
    """Hold the settlement lock for one league.

    Args:
        league_id: league whose runs are serialized.
        reason: free text added to the timeout message.
        timeout_s: seconds to wait for the lock. None waits forever.

    Raises:
        TimeoutError: the lock was not acquired within timeout_s.
        ValueError: timeout_s is not a number.

    Usage:
        with league_settlement_lock(league_id, reason="PROCESS_WAIVERS"):
            ...  # read pending claims, resolve, apply
    """
    lock = _lock_for(league_id)

    if timeout_s is None:
        acquired = lock.acquire()
    else:
        try:
            timeout = float(timeout_s)
        except (TypeError, ValueError) as exc:
            raise ValueError(f"timeout_s must be a float seconds value, got: {timeout_s!r}") from exc
        # Negative timeout behaves like non-blocking.
        if timeout < 0:
            timeout = 0.0
        acquired = lock.acquire(timeout=timeout)

    if not acquired:
        msg = f"league_settlement_lock timeout for league {league_id} (timeout_s={timeout_s})"
        if reason:
            msg += f": {reason}"
        raise TimeoutError(msg)

    try:
        yield
    finally:
        lock.release()


__all__ = [
    "league_settlement_lock",
]
