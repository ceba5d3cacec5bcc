"""Logging utility for afkline: stderr, rotating file, structured debug log."""
from __future__ import annotations

import json
import logging
import logging.handlers
import os
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

_file_logger: logging.Logger | None = None


def setup_logging(state_dir: Path) -> None:
    """Attach a rotating file handler under state_dir (once per process)."""
    global _file_logger
    if _file_logger is not None:
        return
    try:
        state_dir.mkdir(parents=True, exist_ok=True)
        handler = logging.handlers.RotatingFileHandler(
            state_dir / "afkline.log", maxBytes=5 * 1024 * 1024, backupCount=3,
        )
    except OSError as e:
        print(f"[afkline] Log file unavailable: {e}", file=sys.stderr)
        return
    handler.setFormatter(logging.Formatter("%(asctime)s [%(process)d] %(message)s", datefmt="%Y-%m-%d %H:%M:%S"))
    logger = logging.getLogger("afkline")
    logger.setLevel(logging.INFO)
    logger.propagate = False
    logger.addHandler(handler)
    _file_logger = logger


def log(msg: str) -> None:
    """Log to stderr, and to the rotating file once configured."""
    if _file_logger:
        _file_logger.info(msg)
    print(f"[afkline] {msg}", file=sys.stderr)


def debug(category: str, message: str, **data: Any) -> None:
    """Structured debug record: stderr line plus a JSON line in debug.jsonl."""
    from afkline.config import DEBUG, STATE_DIR

    if not DEBUG:
        return
    ts = datetime.now(timezone.utc).isoformat()
    print(f"[DEBUG {ts}] [{category.upper()}] {message}", file=sys.stderr)
    entry = {"timestamp": ts, "pid": os.getpid(), "category": category, "message": message, "data": data}
    try:
        STATE_DIR.mkdir(parents=True, exist_ok=True)
        with (STATE_DIR / "debug.jsonl").open("a") as f:
            f.write(json.dumps(entry, default=str) + "\n")
    except OSError:
        pass
