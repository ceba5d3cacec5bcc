"""Shared message log: fetched updates in global.jsonl, claims in processed.jsonl."""
from __future__ import annotations

import json
from collections.abc import Callable
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from afkline._log import debug
from afkline._types import ClaimRecord, Envelope
from afkline.config import STATE_DIR
from afkline.state import _append_jsonl, _locked_jsonl, _read_jsonl, _read_locked, _truncate_locked


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class MessageQueue:
    """Append-only log of remote updates, shared by every hook process.

    Envelopes are written once and never mutated. Claims live in a separate
    ledger so the log itself stays append-only; at most one claim exists per
    update_id because claims are only written under the claim lock.
    """

    def __init__(self, queue_dir: Path | None = None) -> None:
        self.dir = queue_dir or STATE_DIR / "messages"
        self.log_path = self.dir / "global.jsonl"
        self.claims_path = self.dir / "processed.jsonl"
        self.lock_dir = self.dir / "locks"

    # ── Envelopes ────────────────────────────────────────────────────────────

    def append(self, updates: list[dict[str, Any]]) -> int:
        """Append updates not already logged or claimed. Returns the number written."""
        candidates = [u for u in updates if isinstance(u, dict) and isinstance(u.get("update_id"), int)]
        if not candidates:
            return 0
        claimed = self.claimed_ids()
        fresh: list[Envelope] = []
        with _locked_jsonl(self.log_path) as f:
            known = {e["update_id"] for e in _read_locked(self.log_path, f) if "update_id" in e}
            for update in sorted(candidates, key=lambda u: u["update_id"]):
                uid = update["update_id"]
                if uid in known or uid in claimed:
                    continue
                known.add(uid)
                fresh.append({"update_id": uid, "update": update, "received_at": _now_iso()})
            if fresh:
                f.write("".join(_dumps(e) for e in fresh))
        if fresh:
            debug("queue", f"Appended {len(fresh)} update(s)", ids=[e["update_id"] for e in fresh])
        return len(fresh)

    def read_all(self, predicate: Callable[[Envelope], bool] | None = None) -> list[Envelope]:
        """Every logged envelope in append order, optionally filtered."""
        entries = [e for e in _read_jsonl(self.log_path) if _is_envelope(e)]
        if predicate is None:
            return entries  # type: ignore[return-value]
        return [e for e in entries if predicate(e)]  # type: ignore[arg-type]

    def all_known_ids(self) -> set[int]:
        """Update ids present in the log or the claim ledger."""
        ids = {e["update_id"] for e in self.read_all()}
        return ids | self.claimed_ids()

    def max_known_id(self) -> int:
        """Highest update id seen by any process, 0 when nothing is known."""
        return max(self.all_known_ids(), default=0)

    def unclaimed(self) -> list[Envelope]:
        """Logged envelopes without a claim, oldest first."""
        claimed = self.claimed_ids()
        return self.read_all(lambda e: e["update_id"] not in claimed)

    # ── Claims ───────────────────────────────────────────────────────────────

    def claims(self) -> list[ClaimRecord]:
        return [c for c in _read_jsonl(self.claims_path) if isinstance(c.get("update_id"), int)]  # type: ignore[misc]

    def claimed_ids(self) -> set[int]:
        return {c["update_id"] for c in self.claims()}

    def record_claim(self, update_id: int, claimant_id: str) -> ClaimRecord:
        """Write a claim record. Callers must hold the claim lock."""
        record: ClaimRecord = {"update_id": update_id, "claimed_by": claimant_id, "claimed_at": _now_iso()}
        _append_jsonl(self.claims_path, [dict(record)])
        return record

    # ── Maintenance ──────────────────────────────────────────────────────────

    def compact(self, keep: int) -> int:
        """Keep the newest `keep` envelopes and their claims. Callers must hold the claim lock."""
        with _locked_jsonl(self.log_path) as f:
            entries = [e for e in _read_locked(self.log_path, f) if _is_envelope(e)]
            if len(entries) <= keep:
                return 0
            kept = entries[-keep:] if keep > 0 else []
            _truncate_locked(f, kept)
        removed = len(entries) - len(kept)
        floor = min((e["update_id"] for e in kept), default=None)
        with _locked_jsonl(self.claims_path) as f:
            claims = _read_locked(self.claims_path, f)
            if floor is None:
                # Keep the newest claim so the cursor never falls back
                newest = max(claims, key=lambda c: c.get("update_id", 0), default=None)
                _truncate_locked(f, [newest] if newest else [])
            else:
                _truncate_locked(f, [c for c in claims if c.get("update_id", 0) >= floor])
        debug("queue", f"Compacted {removed} envelope(s)", keep=keep)
        return removed


def _is_envelope(entry: dict) -> bool:
    return isinstance(entry.get("update_id"), int) and isinstance(entry.get("update"), dict)


def _dumps(entry: Any) -> str:
    return json.dumps(entry) + "\n"
