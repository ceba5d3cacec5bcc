"""Configuration: paths, credentials, settings, poll tunables."""
from __future__ import annotations

import json
import os
import sys
from pathlib import Path
from typing import Any

from afkline.errors import ConfigurationMissing

# ── Paths ────────────────────────────────────────────────────────────────────

AFK_DIR = Path(os.environ.get("AFKLINE_HOME") or Path.home() / ".afk")
STATE_DIR = AFK_DIR
CONFIG_PATH = AFK_DIR / "config.json"
CLAUDE_DIR = Path.home() / ".claude"

# ── Config File Loader ───────────────────────────────────────────────────────

_afk_config: dict | None = None


def _load_config() -> dict[str, Any]:
    """Load ~/.afk/config.json (cached per invocation)."""
    global _afk_config
    if _afk_config is None:
        try:
            _afk_config = json.loads(CONFIG_PATH.read_text())
        except (OSError, json.JSONDecodeError):
            _afk_config = {}
        if not isinstance(_afk_config, dict):
            _afk_config = {}
    return _afk_config  # type: ignore[return-value]


def _cfg_bool(env_key: str, config_key: str, default: bool) -> bool:
    """Read a boolean: env var ("1"/"0") → config file (true/false) → default."""
    env = os.environ.get(env_key)
    if env is not None:
        return env == "1"
    val = _load_config().get(config_key)
    if isinstance(val, bool):
        return val
    return default


def _cfg_int(env_key: str, config_key: str, default: int) -> int:
    """Read an integer: env var → config file → default."""
    env = os.environ.get(env_key)
    if env is not None:
        try:
            return int(env)
        except ValueError:
            return default
    val = _load_config().get(config_key)
    if isinstance(val, int) and not isinstance(val, bool):
        return val
    return default


def _cfg_str(env_key: str, config_key: str, default: str) -> str:
    """Read a string: env var → config file → default."""
    env = os.environ.get(env_key)
    if env is not None:
        return env
    val = _load_config().get(config_key)
    if isinstance(val, (str, int)) and not isinstance(val, bool):
        return str(val)
    return default


def _cfg_list(env_key: str, config_key: str, default: set[str]) -> set[str]:
    """Read a name list: env var (comma-separated) → config file (list) → default."""
    env = os.environ.get(env_key)
    if env is not None:
        return set(env.split(",")) - {""}
    val = _load_config().get(config_key)
    if isinstance(val, list):
        return {str(v) for v in val if v}
    return set(default)


# ── Credentials ──────────────────────────────────────────────────────────────

BOT_TOKEN = _cfg_str("TELEGRAM_BOT_TOKEN", "telegram_bot_token", "")
CHAT_ID = _cfg_str("TELEGRAM_CHAT_ID", "telegram_chat_id", "")


def validate_credentials() -> list[str]:
    """Validate BOT_TOKEN and CHAT_ID formats. Returns list of error strings."""
    errors: list[str] = []
    if BOT_TOKEN and ":" not in BOT_TOKEN:
        errors.append("BOT_TOKEN: expected format digits:alphanumeric (e.g. 123456:ABCdef...)")
    if CHAT_ID and not CHAT_ID.lstrip("-").isdigit():
        errors.append("CHAT_ID: expected numeric value")
    return errors


def require_credentials() -> None:
    """Fail fast when the bot token or chat id is missing."""
    missing = [name for name, value in (("telegram_bot_token", BOT_TOKEN), ("telegram_chat_id", CHAT_ID)) if not value]
    if missing:
        raise ConfigurationMissing(missing)


# ── Preferences ──────────────────────────────────────────────────────────────

TIMEOUT_ACTIONS = ("deny", "allow", "wait")

# Permission request wait; 0 or negative means no limit
TIMEOUT_SECONDS = _cfg_int("AFK_TIMEOUT", "timeout_seconds", 3600)
TIMEOUT_ACTION = _cfg_str("AFK_TIMEOUT_ACTION", "timeout_action", "deny")
if TIMEOUT_ACTION not in TIMEOUT_ACTIONS:
    TIMEOUT_ACTION = "deny"

AUTO_APPROVE_TOOLS = _cfg_list("AFK_AUTO_APPROVE", "auto_approve_tools", {"Read"})
RESPECT_CLAUDE_PERMISSIONS = _cfg_bool("AFK_RESPECT_PERMISSIONS", "respect_claude_permissions", True)

STOP_TIMEOUT = _cfg_int("AFK_STOP_TIMEOUT", "stop_timeout_seconds", 21600)
SESSIONSTART_TIMEOUT = _cfg_int("AFK_SESSIONSTART_TIMEOUT", "session_start_timeout_seconds", 21600)

# ── Poll Tunables ────────────────────────────────────────────────────────────

LIVENESS_THRESHOLD = _cfg_int("AFK_LIVENESS", "session_liveness_seconds", 10)
ABANDONED_CHECK_INTERVAL = 60.0
CLAIM_LOCK_MS = _cfg_int("AFK_CLAIM_LOCK_MS", "claim_lock_ms", 50)
FAST_POLL_DELAY = 0.05
MAX_POLL_DELAY = 0.5
ERROR_BACKOFF = 0.5
FETCH_LIMIT = 10
LONG_POLL_SECONDS = 1
QUEUE_KEEP = _cfg_int("AFK_QUEUE_KEEP", "queue_keep", 1000)
MAPPING_MAX_AGE_HOURS = _cfg_int("AFK_MAPPING_MAX_AGE", "mapping_max_age_hours", 24)
HISTORY_MAX_LINES = 400
HISTORY_KEEP_LINES = 200

# ── Debug ────────────────────────────────────────────────────────────────────

DEBUG = (
    _cfg_bool("AFK_DEBUG", "debug", False)
    or "--debug" in sys.argv
    or (AFK_DIR / ".debug").exists()
)

# ── Constants ────────────────────────────────────────────────────────────────

MODES = ("local", "remote", "readonly")

# Tools that never need a remote round trip
ALWAYS_APPROVED_TOOLS = {"TodoWrite", "ExitPlanMode", "Task", "LS", "Glob"}

AFK_COMMANDS: dict[str, str] = {
    "on": "Enable remote mode globally",
    "off": "Disable remote mode globally",
    "readonly": "Notify without waiting for replies, globally",
    "status": "Show the mode at every level and the effective one",
    "global": "Toggle the global mode (same as plain /afk)",
    "project": "Toggle or set this project's mode: /afk:project [on|off|readonly|clear]",
    "session": "Toggle or set this session's mode: /afk:session [on|off|readonly|clear]",
    "help": "Show available commands",
}
