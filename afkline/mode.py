"""Operating mode: local, remote or readonly, resolved session > project > global.

Mode files are read fresh on every call. A waiting process relies on this to
notice a switch back to local between poll ticks.
"""
from __future__ import annotations

from pathlib import Path

from afkline._log import debug, log
from afkline.config import MODES, STATE_DIR

DEFAULT_MODE = "local"


def _read_mode_file(path: Path) -> str | None:
    try:
        value = path.read_text().strip()
    except OSError:
        return None
    return value if value in MODES else None


def _write_mode_file(path: Path, mode: str) -> None:
    if mode not in MODES:
        raise ValueError(f"Unknown mode {mode!r}; expected one of {', '.join(MODES)}")
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp = path.with_suffix(".tmp")
    tmp.write_text(mode)
    tmp.replace(path)


# ── Global ───────────────────────────────────────────────────────────────────


def _global_path() -> Path:
    return STATE_DIR / "mode"


def read_global_mode() -> str:
    """Global mode; missing or invalid files read as local."""
    return _read_mode_file(_global_path()) or DEFAULT_MODE


def write_global_mode(mode: str) -> None:
    _write_mode_file(_global_path(), mode)
    debug("mode", f"Global mode set to {mode}")


# ── Session ──────────────────────────────────────────────────────────────────


def _session_path(session_id: str) -> Path:
    return STATE_DIR / "sessions" / session_id / "mode"


def get_session_mode(session_id: str) -> str | None:
    if not session_id:
        return None
    return _read_mode_file(_session_path(session_id))


def set_session_mode(session_id: str, mode: str) -> None:
    _write_mode_file(_session_path(session_id), mode)
    debug("mode", "Session mode set", session_id=session_id, mode=mode)


def clear_session_mode(session_id: str) -> None:
    try:
        _session_path(session_id).unlink(missing_ok=True)
    except OSError as e:
        log(f"Failed to clear session mode: {e}")


# ── Project ──────────────────────────────────────────────────────────────────


def _project_paths(cwd: str) -> tuple[Path, Path]:
    root = Path(cwd)
    return root / ".afk" / "mode", root / ".claude" / "afk-mode"


def get_project_mode(cwd: str) -> str | None:
    """Project mode from <cwd>/.afk/mode, falling back to <cwd>/.claude/afk-mode."""
    if not cwd:
        return None
    primary, compat = _project_paths(cwd)
    return _read_mode_file(primary) or _read_mode_file(compat)


def set_project_mode(cwd: str, mode: str) -> None:
    _write_mode_file(_project_paths(cwd)[0], mode)
    debug("mode", "Project mode set", cwd=cwd, mode=mode)


def clear_project_mode(cwd: str) -> None:
    for path in _project_paths(cwd):
        try:
            path.unlink(missing_ok=True)
        except OSError as e:
            log(f"Failed to clear project mode: {e}")


# ── Resolution ───────────────────────────────────────────────────────────────


def mode_sources(session_id: str = "", cwd: str = "") -> dict[str, str | None]:
    """Mode at every level, for status displays."""
    return {
        "session": get_session_mode(session_id),
        "project": get_project_mode(cwd),
        "global": read_global_mode(),
    }


def effective_mode(session_id: str = "", cwd: str = "") -> str:
    """Resolve the mode in force for a session working in cwd."""
    return get_session_mode(session_id) or get_project_mode(cwd) or read_global_mode()


def toggled(mode: str | None) -> str:
    """local becomes remote; remote and readonly go back to local."""
    return "remote" if mode in (None, "local") else "local"
