"""State management: JSON CRUD, JSONL logs, locking, atomic writes."""
from __future__ import annotations

import fcntl
import json
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import TextIO

from afkline._log import log
from afkline.config import STATE_DIR

# (path, line number) pairs already reported as malformed
_reported_bad_lines: set[tuple[str, int]] = set()


def _state_path(filename: str) -> Path:
    """Resolve a state file under STATE_DIR, creating parent directories."""
    path = STATE_DIR / filename
    path.parent.mkdir(parents=True, exist_ok=True)
    return path


def _read_state(filename: str) -> dict:
    """Read a JSON state file. Returns {} on any error."""
    try:
        data = json.loads(_state_path(filename).read_text())
    except (OSError, json.JSONDecodeError):
        return {}
    return data if isinstance(data, dict) else {}


def _write_state(filename: str, data: dict) -> None:
    """Write a JSON state file atomically."""
    path = _state_path(filename)
    tmp = path.with_suffix(".tmp")
    try:
        tmp.write_text(json.dumps(data))
        tmp.replace(path)
    except OSError as e:
        log(f"State write error: {e}")


def _clear_state(filename: str) -> None:
    """Remove a state file."""
    try:
        _state_path(filename).unlink(missing_ok=True)
    except OSError:
        pass


def _locked_update(filename: str, updater: Callable[[dict], dict | None]) -> dict | None:
    """Atomic read-modify-write with file locking. updater(data) returns new data or None to delete."""
    path = _state_path(filename)
    lock_path = path.with_suffix(".lock")
    lock_path.touch(exist_ok=True)
    fd = lock_path.open("r")
    try:
        fcntl.flock(fd, fcntl.LOCK_EX)
        try:
            data = json.loads(path.read_text())
        except (OSError, json.JSONDecodeError):
            data = {}
        if not isinstance(data, dict):
            data = {}
        result = updater(data)
        if result is None:
            path.unlink(missing_ok=True)
        else:
            tmp = path.with_suffix(".tmp")
            tmp.write_text(json.dumps(result))
            tmp.replace(path)
        return result
    finally:
        fcntl.flock(fd, fcntl.LOCK_UN)
        fd.close()


# ── JSONL ────────────────────────────────────────────────────────────────────


def _append_jsonl(path: Path, entries: list[dict]) -> None:
    """Append entries to a JSONL file under an exclusive lock."""
    if not entries:
        return
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("a") as f:
        fcntl.flock(f, fcntl.LOCK_EX)
        try:
            f.write("".join(json.dumps(e) + "\n" for e in entries))
            f.flush()
        finally:
            fcntl.flock(f, fcntl.LOCK_UN)


def _parse_jsonl(path: Path, lines: list[str]) -> Iterator[dict]:
    """Parse JSONL lines, skipping partial or malformed ones."""
    for lineno, line in enumerate(lines, 1):
        line = line.strip()
        if not line:
            continue
        try:
            entry = json.loads(line)
        except json.JSONDecodeError:
            entry = None
        if isinstance(entry, dict):
            yield entry
            continue
        key = (str(path), lineno)
        if key not in _reported_bad_lines:
            _reported_bad_lines.add(key)
            log(f"Skipping malformed line {lineno} in {path.name}")


def _read_jsonl(path: Path) -> list[dict]:
    """Read a JSONL file under a shared lock. A missing file reads as empty."""
    if not path.exists():
        return []
    try:
        with path.open("r") as f:
            fcntl.flock(f, fcntl.LOCK_SH)
            try:
                lines = f.readlines()
            finally:
                fcntl.flock(f, fcntl.LOCK_UN)
    except OSError as e:
        log(f"JSONL read error ({path.name}): {e}")
        return []
    return list(_parse_jsonl(path, lines))


@contextmanager
def _locked_jsonl(path: Path) -> Iterator[TextIO]:
    """Open a JSONL file for read and append under an exclusive lock."""
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("a+") as f:
        fcntl.flock(f, fcntl.LOCK_EX)
        try:
            f.seek(0)
            yield f
            f.flush()
        finally:
            fcntl.flock(f, fcntl.LOCK_UN)


def _read_locked(path: Path, f: TextIO) -> list[dict]:
    """Parse every entry of a file opened with _locked_jsonl."""
    f.seek(0)
    return list(_parse_jsonl(path, f.readlines()))


def _truncate_locked(f: TextIO, entries: list[dict]) -> None:
    """Rewrite a file opened with _locked_jsonl in place, keeping its inode."""
    f.seek(0)
    f.truncate()
    f.write("".join(json.dumps(e) + "\n" for e in entries))
