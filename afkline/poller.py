"""Distributed poller: many hook processes share one Telegram inbox.

Every waiting process runs the same loop. Whichever process fetches an update
appends it to the shared log; whichever process's predicate matches it first
claims it. The loop ends with a claimed payload, a PollTimeout, or None when
the operating mode is switched away from remote.
"""
from __future__ import annotations

import math
import time
from collections.abc import Callable
from typing import Any

from afkline._log import debug, log
from afkline.claim import ClaimCoordinator, Predicate
from afkline.config import (
    ABANDONED_CHECK_INTERVAL,
    ERROR_BACKOFF,
    FAST_POLL_DELAY,
    FETCH_LIMIT,
    LIVENESS_THRESHOLD,
    LONG_POLL_SECONDS,
    MAPPING_MAX_AGE_HOURS,
    MAX_POLL_DELAY,
    QUEUE_KEEP,
)
from afkline.errors import PollTimeout, TransientIOError
from afkline.history import append_history
from afkline.mode import effective_mode
from afkline.queue import MessageQueue
from afkline.session import SessionRegistry
from afkline.session_map import cleanup_old_mappings
from afkline.telegram import get_updates

Fetch = Callable[[int, int, int], list[dict[str, Any]]]
ReadMode = Callable[[str, str], str]


class DistributedPoller:
    """One poll loop over the shared queue. Collaborators are injectable for tests."""

    def __init__(
        self,
        queue: MessageQueue | None = None,
        coordinator: ClaimCoordinator | None = None,
        registry: SessionRegistry | None = None,
        fetch: Fetch | None = None,
        read_mode: ReadMode | None = None,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.queue = queue or MessageQueue()
        self.coordinator = coordinator or ClaimCoordinator(self.queue)
        self.registry = registry or SessionRegistry()
        self.fetch = fetch or get_updates
        self.read_mode = read_mode or effective_mode
        self.sleep = sleep
        self.clock = clock

    def poll(
        self,
        predicate: Predicate,
        claimant_id: str,
        session_id: str,
        timeout_ms: float = math.inf,
        cwd: str = "",
    ) -> dict[str, Any] | None:
        """Block until a matching update is claimed. None means cancelled by a mode change."""
        deadline = self.clock() + timeout_ms / 1000
        cursor = self.queue.max_known_id()
        empty_ticks = 0
        last_sweep: float | None = None
        debug("poll", f"{claimant_id} polling", session_id=session_id, timeout_ms=timeout_ms, cursor=cursor)

        while True:
            now = self.clock()
            if now >= deadline:
                debug("poll", f"{claimant_id} timed out")
                raise PollTimeout(claimant_id, timeout_ms)

            mode = self.read_mode(session_id, cwd)
            if mode != "remote":
                log(f"Mode switched to {mode}, cancelling wait for {claimant_id}")
                return None

            long_poll = LONG_POLL_SECONDS if deadline - now > LONG_POLL_SECONDS + MAX_POLL_DELAY else 0
            try:
                updates = self.fetch(cursor + 1, FETCH_LIMIT, long_poll)
            except TransientIOError as e:
                log(f"Fetch failed, backing off: {e}")
                delay = ERROR_BACKOFF
            else:
                if updates:
                    ids = [u["update_id"] for u in updates if isinstance(u.get("update_id"), int)]
                    cursor = max([cursor, *ids])
                    self.queue.append(updates)
                    empty_ticks = 0
                    delay = FAST_POLL_DELAY
                else:
                    empty_ticks += 1
                    delay = min(MAX_POLL_DELAY, FAST_POLL_DELAY + empty_ticks * FAST_POLL_DELAY)

            envelope = self.coordinator.try_claim(predicate, claimant_id)
            if envelope is not None:
                return envelope["update"]

            if last_sweep is None or now - last_sweep >= ABANDONED_CHECK_INTERVAL:
                self.sweep(session_id)
                last_sweep = now

            self.registry.heartbeat(session_id)

            remaining = deadline - self.clock()
            if remaining > 0:
                self.sleep(min(delay, remaining))

    def sweep(self, own_session_id: str = "") -> list[str]:
        """Remove abandoned sessions and trim shared state. Returns removed session ids."""
        abandoned = [
            sid for sid in self.registry.list_abandoned(LIVENESS_THRESHOLD)
            if sid != own_session_id
        ]
        for sid in abandoned:
            if self.registry.release_reply_lock(sid):
                log(f"Released reply lock held by abandoned session {sid[:8]}")
            self.registry.remove(sid)
            append_history("abandoned", session_id=sid)
            log(f"Removed abandoned session {sid[:8]}")
        cleanup_old_mappings(MAPPING_MAX_AGE_HOURS)
        self.coordinator.compact(QUEUE_KEEP)
        return abandoned


def poll(
    predicate: Predicate,
    claimant_id: str,
    session_id: str,
    timeout_ms: float = math.inf,
    cwd: str = "",
) -> dict[str, Any] | None:
    """Poll with the default queue, registry and Telegram fetch."""
    return DistributedPoller().poll(predicate, claimant_id, session_id, timeout_ms, cwd)


def timeout_ms_from_seconds(seconds: int) -> float:
    """Convert a configured timeout; 0 or negative means wait forever."""
    return math.inf if seconds <= 0 else seconds * 1000
