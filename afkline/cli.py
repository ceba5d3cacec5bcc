"""Unified CLI dispatcher for afkline."""
from __future__ import annotations

import sys
import time
from pathlib import Path


def _scope_label(project: str | None, session: str | None) -> str:
    if session:
        return f"session {session[:8]}"
    if project:
        return f"project {Path(project).name}"
    return "global"


def _set_mode(mode: str, project: str | None, session: str | None) -> None:
    from afkline.mode import set_project_mode, set_session_mode, write_global_mode

    if session:
        set_session_mode(session, mode)
    elif project:
        set_project_mode(project, mode)
    else:
        write_global_mode(mode)
    icon = {"remote": "📡", "local": "💻", "readonly": "📖"}[mode]
    print(f"{icon} afkline {mode.upper()} ({_scope_label(project, session)})")


def _do_toggle(project: str | None, session: str | None) -> None:
    """Flip the given scope between local and remote."""
    from afkline.mode import get_project_mode, get_session_mode, read_global_mode, toggled

    if session:
        current = get_session_mode(session)
    elif project:
        current = get_project_mode(project)
    else:
        current = read_global_mode()
    _set_mode(toggled(current), project, session)


def _do_clear(project: str | None, session: str | None) -> None:
    """Remove a project or session override."""
    from afkline.mode import clear_project_mode, clear_session_mode

    if session:
        clear_session_mode(session)
    elif project:
        clear_project_mode(project)
    else:
        print("❌ clear needs --project or --session", file=sys.stderr)
        sys.exit(1)
    print(f"🧹 override cleared ({_scope_label(project, session)})")


def _do_status(project: str | None, session: str | None) -> None:
    """Print the mode at each level plus waiting sessions."""
    from afkline.mode import effective_mode, mode_sources
    from afkline.session import SessionRegistry

    cwd = project or str(Path.cwd())
    sources = mode_sources(session or "", cwd)
    print("📊 afkline status")
    print("──────────────────────────────────────")
    if session:
        print(f"  session    {sources['session'] or '(not set)'}")
    print(f"  project    {sources['project'] or '(not set)'}  [{Path(cwd).name}]")
    print(f"  global     {sources['global']}")
    print(f"  effective  {effective_mode(session or '', cwd).upper()}")

    registry = SessionRegistry()
    sessions = registry.active()
    lock = registry.reply_lock()
    print()
    print(f"  ⏳ {len(sessions)} waiting session(s)")
    now = time.time()
    for sid, record in sessions.items():
        age = int(now - float(record.get("last_heartbeat", now)))
        owner = " 🔒" if lock and lock["session_id"] == sid else ""
        print(f"    └─ {sid[:8]} {Path(record.get('cwd', '')).name or '?'} (heartbeat {age}s ago){owner}")
    print("──────────────────────────────────────")


def _do_config() -> None:
    """Print effective configuration."""
    from afkline.config import (
        AUTO_APPROVE_TOOLS,
        BOT_TOKEN,
        CHAT_ID,
        CLAIM_LOCK_MS,
        CONFIG_PATH,
        DEBUG,
        LIVENESS_THRESHOLD,
        RESPECT_CLAUDE_PERMISSIONS,
        SESSIONSTART_TIMEOUT,
        STATE_DIR,
        STOP_TIMEOUT,
        TIMEOUT_ACTION,
        TIMEOUT_SECONDS,
        validate_credentials,
    )

    token_display = (BOT_TOKEN[:8] + "***") if BOT_TOKEN else "(not set)"
    print("⚙️  afkline config")
    print("──────────────────────────────────────")
    print(f"  🔑 bot_token:          {token_display}")
    print(f"  💬 chat_id:            {CHAT_ID or '(not set)'}")
    print(f"  📁 state_dir:          {STATE_DIR}")
    print(f"  📄 config_file:        {CONFIG_PATH}")
    print(f"  ⏱️  timeout:            {TIMEOUT_SECONDS}s → {TIMEOUT_ACTION}")
    print(f"  ⏱️  stop_timeout:       {STOP_TIMEOUT}s")
    print(f"  ⏱️  session_start:      {SESSIONSTART_TIMEOUT}s")
    print(f"  ✅ auto_approve:       {', '.join(sorted(AUTO_APPROVE_TOOLS)) or '(none)'}")
    print(f"  🛡️  respect_claude:     {RESPECT_CLAUDE_PERMISSIONS}")
    print(f"  💓 liveness:           {LIVENESS_THRESHOLD}s")
    print(f"  🔒 claim_lock:         {CLAIM_LOCK_MS}ms")
    print(f"  🐛 debug:              {DEBUG}")
    for err in validate_credentials():
        print(f"  ❌ {err}")
    print("──────────────────────────────────────")


def _do_health() -> None:
    """Check the bot token and chat reachability."""
    from afkline.config import BOT_TOKEN, CHAT_ID
    from afkline.telegram import _telegram_api

    checks: list[tuple[str, bool, str]] = []
    checks.append(("BOT_TOKEN", bool(BOT_TOKEN), "set" if BOT_TOKEN else "not set"))
    checks.append(("CHAT_ID", bool(CHAT_ID), CHAT_ID or "not set"))
    bot = _telegram_api("getMe", {}) if BOT_TOKEN else None
    bot_ok = bool(bot and bot.get("ok"))
    checks.append(("Bot valid", bot_ok, f"@{bot['result'].get('username', '?')}" if bot_ok else "API call failed"))

    all_ok = True
    print("🩺 afkline health check")
    for name, ok, detail in checks:
        print(f"  {'✅' if ok else '❌'} {name:12s} {detail}")
        all_ok = all_ok and ok
    sys.exit(0 if all_ok else 1)


def _do_version() -> None:
    from afkline import __version__
    print(f"afkline {__version__}")


def _print_usage() -> None:
    from afkline import __version__
    print(
        f"afkline {__version__}\n"
        "\n"
        "usage: afkline <command> [--project PATH] [--session ID]\n"
        "\n"
        "commands:\n"
        "  📡 on        remote mode: approvals and replies via Telegram\n"
        "  💻 off       local mode: Claude prompts as usual\n"
        "  📖 readonly  notify on stop without waiting\n"
        "  🔁 toggle    flip between local and remote\n"
        "  🧹 clear     remove a project or session override\n"
        "  📊 status    show modes and waiting sessions\n"
        "  ⚙️  config    print effective configuration\n"
        "  🩺 health    check Telegram credentials\n"
        "  🏷️  version   print version\n"
        "\n"
        "Piped stdin with no command runs the Claude Code hook.\n"
    )


_SUBCOMMANDS: frozenset[str] = frozenset({
    "on", "off", "readonly", "toggle", "clear", "status", "config", "health", "version",
})


def cli_main() -> None:
    """Unified CLI entry point.

    Delegates to main() for hook event processing when stdin is not a tty
    and no subcommand is present. Otherwise dispatches CLI subcommands.
    """
    args = [a for a in sys.argv[1:] if a != "--debug"]

    if "--version" in args or "-V" in args:
        _do_version()
        return

    if not any(a in _SUBCOMMANDS for a in args) and not sys.stdin.isatty():
        from afkline.__main__ import main
        main()
        return

    project: str | None = None
    session: str | None = None
    clean: list[str] = []
    i = 0
    while i < len(args):
        if args[i] == "--project" and i + 1 < len(args):
            project = str(Path(args[i + 1]).resolve())
            i += 2
        elif args[i] == "--session" and i + 1 < len(args):
            session = args[i + 1]
            i += 2
        else:
            clean.append(args[i])
            i += 1

    if not clean:
        _print_usage()
        return

    cmd = clean[0]
    if cmd in ("on", "off", "readonly"):
        _set_mode({"on": "remote", "off": "local", "readonly": "readonly"}[cmd], project, session)
    elif cmd == "toggle":
        _do_toggle(project, session)
    elif cmd == "clear":
        _do_clear(project, session)
    elif cmd == "status":
        _do_status(project, session)
    elif cmd == "config":
        _do_config()
    elif cmd == "health":
        _do_health()
    elif cmd == "version":
        _do_version()
    else:
        print(f"❌ afkline: unknown command '{cmd}'", file=sys.stderr)
        _print_usage()
        sys.exit(1)
