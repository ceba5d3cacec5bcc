"""Session registry: heartbeats, abandonment detection, and the reply lock."""
from __future__ import annotations

import time
from typing import Any

from afkline._log import debug, log
from afkline._types import ReplyLockState, SessionRecord
from afkline.state import _clear_state, _locked_update, _read_state

SESSIONS_FILE = "active-sessions.json"
REPLY_LOCK_FILE = "reply-lock.json"


class SessionRegistry:
    """Active hook invocations, shared across processes via active-sessions.json.

    Each waiting process heartbeats its own record on every poll tick. Any
    process's sweep may remove a record whose heartbeat is older than the
    liveness threshold, releasing the reply lock if that session held it.
    """

    def __init__(self, clock: Any = time.time) -> None:
        self.clock = clock

    # ── Sessions ─────────────────────────────────────────────────────────────

    def register(self, session_id: str, metadata: dict[str, Any] | None = None) -> SessionRecord:
        """Create or replace the record for session_id."""
        meta = dict(metadata or {})
        now = self.clock()
        record: SessionRecord = {
            "session_id": session_id,
            "cwd": str(meta.pop("cwd", "")),
            "tool_call": meta.pop("tool_call", {}),
            "metadata": meta,
            "started_at": now,
            "last_heartbeat": now,
        }

        def _update(data: dict) -> dict:
            data[session_id] = record
            return data

        _locked_update(SESSIONS_FILE, _update)
        debug("session", f"Registered {session_id[:8]}", cwd=record["cwd"])
        return record

    def heartbeat(self, session_id: str) -> None:
        """Refresh last_heartbeat, recreating the record if a sweep removed it."""
        now = self.clock()

        def _update(data: dict) -> dict:
            record = data.get(session_id)
            if not isinstance(record, dict):
                record = {"session_id": session_id, "cwd": "", "tool_call": {}, "metadata": {}, "started_at": now}
            record["last_heartbeat"] = now
            data[session_id] = record
            return data

        _locked_update(SESSIONS_FILE, _update)

    def remove(self, session_id: str) -> bool:
        """Drop a session record. Returns True if one existed."""
        removed = False

        def _update(data: dict) -> dict | None:
            nonlocal removed
            removed = data.pop(session_id, None) is not None
            return data or None

        _locked_update(SESSIONS_FILE, _update)
        return removed

    def get(self, session_id: str) -> SessionRecord | None:
        record = _read_state(SESSIONS_FILE).get(session_id)
        return record if isinstance(record, dict) else None  # type: ignore[return-value]

    def active(self) -> dict[str, SessionRecord]:
        return {k: v for k, v in _read_state(SESSIONS_FILE).items() if isinstance(v, dict)}

    def list_abandoned(self, threshold_seconds: float) -> list[str]:
        """Session ids whose last heartbeat is older than threshold_seconds."""
        now = self.clock()
        return [
            sid for sid, record in self.active().items()
            if now - float(record.get("last_heartbeat", 0)) > threshold_seconds
        ]

    # ── Reply Lock ───────────────────────────────────────────────────────────

    def acquire_reply_lock(self, session_id: str, message_id: int) -> ReplyLockState:
        """Bind free-text replies to session_id. Takes over any existing holder."""
        lock: ReplyLockState = {"session_id": session_id, "message_id": message_id, "acquired_at": self.clock()}

        def _update(data: dict) -> dict:
            previous = data.get("session_id")
            if previous and previous != session_id:
                log(f"Reply lock taken over from {previous[:8]} by {session_id[:8]}")
            return dict(lock)

        _locked_update(REPLY_LOCK_FILE, _update)
        debug("reply_lock", f"Session {session_id[:8]} locked", message_id=message_id)
        return lock

    def release_reply_lock(self, session_id: str | None = None) -> bool:
        """Release the lock. With session_id, only if that session still holds it."""
        released = False

        def _update(data: dict) -> dict | None:
            nonlocal released
            if not data:
                return None
            if session_id is not None and data.get("session_id") != session_id:
                return data
            released = True
            return None

        _locked_update(REPLY_LOCK_FILE, _update)
        if released:
            debug("reply_lock", "Lock cleared", session_id=session_id)
        return released

    def reply_lock(self) -> ReplyLockState | None:
        lock = _read_state(REPLY_LOCK_FILE)
        if not lock.get("session_id"):
            return None
        return lock  # type: ignore[return-value]

    def owns_message(self, session_id: str, message: dict[str, Any]) -> bool:
        """Whether a free-text message may be taken by session_id under the reply lock."""
        lock = self.reply_lock()
        if lock is None:
            return True
        if lock["session_id"] == session_id:
            return True
        reply_to = message.get("reply_to_message") or {}
        if reply_to.get("message_id") is not None and reply_to.get("message_id") == lock.get("message_id"):
            return True
        debug("reply_lock", f"{session_id[:8]} cannot take message, owned by {lock['session_id'][:8]}")
        return False

    def clear(self) -> None:
        """Forget every session and the reply lock."""
        _clear_state(SESSIONS_FILE)
        _clear_state(REPLY_LOCK_FILE)
