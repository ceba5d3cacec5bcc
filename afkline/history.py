"""Rolling history of approvals, replies and session outcomes."""
from __future__ import annotations

import json
import time
from typing import Any

from afkline._log import log
from afkline.config import HISTORY_KEEP_LINES, HISTORY_MAX_LINES, STATE_DIR
from afkline.state import _locked_jsonl, _read_jsonl, _read_locked, _truncate_locked


def append_history(event_type: str, **fields: Any) -> None:
    """Append one event, trimming the file once it grows past the limit."""
    path = STATE_DIR / "history.jsonl"
    entry = {"ts": int(time.time()), "type": event_type, **fields}
    try:
        with _locked_jsonl(path) as f:
            entries = _read_locked(path, f)
            entries.append(entry)
            if len(entries) > HISTORY_MAX_LINES:
                _truncate_locked(f, entries[-HISTORY_KEEP_LINES:])
            else:
                f.write(_line(entry))
    except OSError as e:
        log(f"History write error: {e}")


def read_history(limit: int = 20) -> list[dict]:
    return _read_jsonl(STATE_DIR / "history.jsonl")[-limit:]


def _line(entry: dict) -> str:
    return json.dumps(entry) + "\n"
