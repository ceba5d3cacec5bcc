"""Claim coordination: exactly one process claims each logged update."""
from __future__ import annotations

import fcntl
import time
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from typing import Any

from afkline._log import debug, log
from afkline._types import Envelope
from afkline.config import CLAIM_LOCK_MS
from afkline.errors import ClaimContention
from afkline.queue import MessageQueue

Predicate = Callable[[dict[str, Any]], bool]

LOCK_NAME = "message-claim.lock"


class ClaimCoordinator:
    """Serializes claims across processes with an flock on a shared lock file."""

    def __init__(self, queue: MessageQueue, lock_timeout_ms: int | None = None) -> None:
        self.queue = queue
        self.lock_timeout_ms = CLAIM_LOCK_MS if lock_timeout_ms is None else lock_timeout_ms
        self.lock_path = queue.lock_dir / LOCK_NAME

    @contextmanager
    def locked(self) -> Iterator[None]:
        """Hold the claim lock, retrying with exponential backoff up to the bound."""
        self.lock_path.parent.mkdir(parents=True, exist_ok=True)
        fd = self.lock_path.open("a")
        try:
            deadline = time.monotonic() + self.lock_timeout_ms / 1000
            wait = 0.001
            while True:
                try:
                    fcntl.flock(fd, fcntl.LOCK_EX | fcntl.LOCK_NB)
                    break
                except BlockingIOError:
                    remaining = deadline - time.monotonic()
                    if remaining <= 0:
                        raise ClaimContention(f"claim lock busy for {self.lock_timeout_ms}ms") from None
                    time.sleep(min(wait, remaining))
                    wait *= 2
            try:
                yield
            finally:
                fcntl.flock(fd, fcntl.LOCK_UN)
        finally:
            fd.close()

    def try_claim(self, predicate: Predicate, claimant_id: str) -> Envelope | None:
        """Claim the first unclaimed update matching predicate, or None.

        Lock contention is not an error: the caller simply tries again on its
        next tick.
        """
        try:
            with self.locked():
                for envelope in self.queue.unclaimed():
                    if not _matches(predicate, envelope):
                        continue
                    self.queue.record_claim(envelope["update_id"], claimant_id)
                    debug("claim", f"{claimant_id} claimed update {envelope['update_id']}")
                    return envelope
        except ClaimContention as e:
            debug("claim", f"{claimant_id}: {e}")
        return None

    def compact(self, keep: int) -> int:
        """Trim the shared log under the claim lock. Returns envelopes removed."""
        try:
            with self.locked():
                return self.queue.compact(keep)
        except ClaimContention:
            return 0


def _matches(predicate: Predicate, envelope: Envelope) -> bool:
    try:
        return bool(predicate(envelope["update"]))
    except Exception as e:
        log(f"Claim predicate error on update {envelope['update_id']}: {e}")
        return False
