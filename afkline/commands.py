"""Extensible registry for /afk prompt commands (UserPromptSubmit)."""
from __future__ import annotations

from collections.abc import Callable
from pathlib import Path

from afkline._log import log
from afkline.config import AFK_COMMANDS
from afkline.mode import (
    clear_project_mode,
    clear_session_mode,
    effective_mode,
    get_project_mode,
    get_session_mode,
    mode_sources,
    read_global_mode,
    set_project_mode,
    set_session_mode,
    toggled,
    write_global_mode,
)

# Type for command handlers: (args, session_id, cwd) -> reply text
CommandHandler = Callable[[str, str, str], str]

# Registry: command_name -> handler
_registry: dict[str, CommandHandler] = {}

# Words accepted as mode arguments
_MODE_ARGS = {"on": "remote", "remote": "remote", "off": "local", "local": "local", "readonly": "readonly"}


def register(name: str) -> Callable[[CommandHandler], CommandHandler]:
    """Decorator to register a command handler."""
    def decorator(fn: CommandHandler) -> CommandHandler:
        _registry[name] = fn
        return fn
    return decorator


def parse_prompt(prompt: str) -> tuple[str, str] | None:
    """Split "/afk", "/afk:on x" or "/afk on x" into (command, args). None if not /afk."""
    prompt = prompt.strip()
    if prompt != "/afk" and not prompt.startswith(("/afk:", "/afk ")):
        return None
    rest = prompt[len("/afk"):].lstrip(": ").strip()
    if not rest:
        return "global", ""
    command, _, args = rest.partition(" ")
    return command.lower(), args.strip()


def dispatch(command: str, args: str, session_id: str, cwd: str) -> str:
    """Run a command and return the message shown to the user."""
    handler = _registry.get(command)
    if handler is None:
        return f"Unknown AFK command: {command}. Try /afk:help"
    try:
        return handler(args, session_id, cwd)
    except (OSError, ValueError) as e:
        log(f"Command '{command}' error: {e}")
        return f"AFK command failed: {e}"


def handle_prompt(event: dict) -> dict | None:
    """UserPromptSubmit: answer /afk commands with a system message."""
    parsed = parse_prompt(str(event.get("prompt", "")))
    if parsed is None:
        return None
    command, args = parsed
    message = dispatch(command, args, event.get("session_id", ""), event.get("cwd", ""))
    return {"systemMessage": message, "suppressOutput": True}


# ── Global ───────────────────────────────────────────────────────────────────


@register("on")
def _cmd_on(args: str, session_id: str, cwd: str) -> str:
    write_global_mode("remote")
    return "✅ Remote mode enabled globally"


@register("off")
def _cmd_off(args: str, session_id: str, cwd: str) -> str:
    write_global_mode("local")
    return "✅ Local mode enabled globally"


@register("readonly")
def _cmd_readonly(args: str, session_id: str, cwd: str) -> str:
    write_global_mode("readonly")
    return "📖 Read-only mode enabled globally - notifications without blocking"


@register("global")
def _cmd_global(args: str, session_id: str, cwd: str) -> str:
    new = _MODE_ARGS.get(args) or toggled(read_global_mode())
    write_global_mode(new)
    return f"✅ Global AFK mode set to {new.upper()}"


# ── Scoped ───────────────────────────────────────────────────────────────────


@register("project")
def _cmd_project(args: str, session_id: str, cwd: str) -> str:
    """Set or cycle the project mode: unset → remote → local → unset."""
    if not cwd:
        return "No project directory for this session"
    name = Path(cwd).name
    current = get_project_mode(cwd)
    if args == "clear" or (not args and current == "local"):
        clear_project_mode(cwd)
        return f"✅ Project override cleared for {name} - using global mode"
    new = _MODE_ARGS.get(args)
    if new is None and args:
        return f"Unknown mode '{args}'. Use on, off, readonly or clear"
    if new is None:
        new = "remote" if current is None else "local"
    set_project_mode(cwd, new)
    return f"✅ Project mode set to {new.upper()} for {name}"


@register("session")
def _cmd_session(args: str, session_id: str, cwd: str) -> str:
    if not session_id:
        return "No session id available"
    if args == "clear":
        clear_session_mode(session_id)
        return "✅ Session override cleared"
    new = _MODE_ARGS.get(args)
    if new is None and args:
        return f"Unknown mode '{args}'. Use on, off, readonly or clear"
    if new is None:
        new = toggled(get_session_mode(session_id) or effective_mode(session_id, cwd))
    set_session_mode(session_id, new)
    return f"✅ Session mode set to {new.upper()}"


# ── Info ─────────────────────────────────────────────────────────────────────


@register("status")
def _cmd_status(args: str, session_id: str, cwd: str) -> str:
    sources = mode_sources(session_id, cwd)
    lines = ["📊 **AFK Mode Status**"]
    if session_id:
        lines.append(f"Session: {sources['session'] or '(not set)'}")
    if cwd:
        lines.append(f"Project: {sources['project'] or '(not set)'}")
    lines.append(f"Global: {sources['global']}")
    lines.append(f"**Current effective mode: {effective_mode(session_id, cwd).upper()}**")
    return "\n".join(lines)


@register("help")
def _cmd_help(args: str, session_id: str, cwd: str) -> str:
    lines = ["**AFK Commands:**", "`/afk` - Toggle global AFK mode (local ↔ remote)"]
    lines.extend(f"`/afk:{name}` - {desc}" for name, desc in AFK_COMMANDS.items())
    lines.extend([
        "",
        "**Modes:** local (no notifications), remote (Telegram approvals), readonly (notify only)",
        "**Mode hierarchy:** Session > Project > Global",
    ])
    return "\n".join(lines)
