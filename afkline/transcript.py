"""Transcript reading: recent conversation turns for stop notifications."""
from __future__ import annotations

import json
from pathlib import Path

from afkline._log import log


def _read_transcript_tail(transcript_path: str, tail_bytes: int = 32768) -> list[dict]:
    """Read and parse the last N bytes of a JSONL transcript."""
    if not transcript_path:
        return []
    path = Path(transcript_path)
    if not path.exists():
        return []
    try:
        size = path.stat().st_size
        read_size = min(size, tail_bytes)
        with path.open("rb") as f:
            if size > read_size:
                f.seek(-read_size, 2)
            raw = f.read().decode("utf-8", errors="replace")
    except OSError as e:
        log(f"Transcript read error: {e}")
        return []
    lines = raw.split("\n")
    if size > read_size:
        lines = lines[1:]
    entries: list[dict] = []
    for line in lines:
        if not line.strip():
            continue
        try:
            entry = json.loads(line)
        except json.JSONDecodeError:
            continue
        if isinstance(entry, dict):
            entries.append(entry)
    return entries


def _entry_text(content: object) -> str:
    if isinstance(content, str):
        return content.strip()
    if not isinstance(content, list):
        return ""
    parts: list[str] = []
    for block in content:
        if not isinstance(block, dict):
            continue
        if block.get("type") == "text":
            parts.append(str(block.get("text", "")))
        elif block.get("type") == "tool_use":
            parts.append(f"[{block.get('name', 'tool')}]")
    return " ".join(p.strip() for p in parts if p.strip())


def recent_conversation(transcript_path: str, limit: int = 6) -> list[tuple[str, str]]:
    """Last `limit` user/assistant turns as (role, text), oldest first."""
    turns: list[tuple[str, str]] = []
    for entry in _read_transcript_tail(transcript_path):
        msg = entry.get("message")
        if not isinstance(msg, dict) or msg.get("role") not in ("user", "assistant"):
            continue
        text = _entry_text(msg.get("content"))
        if len(text) > 3:
            turns.append((msg["role"], text))
    return turns[-limit:]
