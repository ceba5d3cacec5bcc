"""Outbound message → session routing, with an age-based sweep."""
from __future__ import annotations

import time
from typing import Any

from afkline._log import debug
from afkline._types import MessageMapping
from afkline.config import CHAT_ID
from afkline.session import SessionRegistry
from afkline.state import _locked_update, _read_state

SESSION_MAP_FILE = "session-map.json"


def _normalize(data: dict) -> dict:
    if not isinstance(data.get("messages"), dict):
        data["messages"] = {}
    if not isinstance(data.get("latest_per_chat"), dict):
        data["latest_per_chat"] = {}
    return data


def remember_message(message_id: int, session_id: str, chat_id: str = "", kind: str = "") -> None:
    """Record that message_id was sent on behalf of session_id."""
    chat = str(chat_id or CHAT_ID)
    now = time.time()
    entry: MessageMapping = {"session_id": session_id, "chat_id": chat, "timestamp": now}
    if kind:
        entry["kind"] = kind

    def _update(data: dict) -> dict:
        data = _normalize(data)
        data["messages"][str(message_id)] = entry
        if chat:
            data["latest_per_chat"][chat] = {"session_id": session_id, "timestamp": now}
        return data

    _locked_update(SESSION_MAP_FILE, _update)
    debug("session_map", "Message mapped to session", message_id=message_id, session_id=session_id)


def lookup_message(message_id: int) -> MessageMapping | None:
    entry = _normalize(_read_state(SESSION_MAP_FILE))["messages"].get(str(message_id))
    return entry if isinstance(entry, dict) else None


def latest_session_for_chat(chat_id: str = "") -> str | None:
    entry = _normalize(_read_state(SESSION_MAP_FILE))["latest_per_chat"].get(str(chat_id or CHAT_ID))
    if isinstance(entry, dict):
        return entry.get("session_id")
    return None


def cleanup_old_mappings(max_age_hours: float = 24) -> int:
    """Drop mappings older than max_age_hours. Returns entries removed."""
    cutoff = time.time() - max_age_hours * 3600
    cleaned = 0

    def _update(data: dict) -> dict:
        nonlocal cleaned
        data = _normalize(data)
        for section in ("messages", "latest_per_chat"):
            stale = [
                k for k, v in data[section].items()
                if not isinstance(v, dict) or float(v.get("timestamp", 0)) < cutoff
            ]
            for key in stale:
                del data[section][key]
            cleaned += len(stale)
        return data

    _locked_update(SESSION_MAP_FILE, _update)
    if cleaned:
        debug("session_map", "Old mappings cleaned", cleaned=cleaned, max_age_hours=max_age_hours)
    return cleaned


def is_free_text(message: dict[str, Any]) -> bool:
    """A text message from the configured chat that is not a bot command."""
    text = message.get("text")
    if not isinstance(text, str) or not text.strip() or text.startswith("/"):
        return False
    return str((message.get("chat") or {}).get("id", "")) == str(CHAT_ID)


def routes_to_session(session_id: str, message: dict[str, Any], registry: SessionRegistry) -> bool:
    """Whether a free-text message belongs to session_id.

    A structured reply to a message we mapped goes to that message's session.
    Anything else falls back to the reply lock's ownership check.
    """
    if not is_free_text(message):
        return False
    reply_to = (message.get("reply_to_message") or {}).get("message_id")
    if reply_to is not None:
        mapped = lookup_message(reply_to)
        if mapped is not None:
            return mapped.get("session_id") == session_id
    return registry.owns_message(session_id, message)
