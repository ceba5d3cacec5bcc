"""Claude Code permission rules: pattern generation, matching, settings lookup."""
from __future__ import annotations

import fnmatch
import json
import re
from pathlib import Path
from typing import Any
from urllib.parse import urlparse

from afkline._log import debug, log
from afkline.config import CLAUDE_DIR

# Commands whose first argument is part of the permission pattern
SUBCOMMAND_TOOLS = {"npm", "git", "cargo", "make"}

_OPERATORS = ("&&", "||", "|", ";", "&")
_RULE_RE = re.compile(r"^([^(]+)\((.*)\)$")


def split_compound_command(command: str) -> list[str]:
    """Split a shell command on && || | ; & outside quotes and parentheses."""
    parts: list[str] = []
    current: list[str] = []
    single = double = escape = False
    depth = 0
    i = 0
    while i < len(command):
        ch = command[i]
        if escape:
            current.append(ch)
            escape = False
            i += 1
            continue
        if ch == "\\":
            escape = True
            current.append(ch)
            i += 1
            continue
        if ch == "'" and not double:
            single = not single
        elif ch == '"' and not single:
            double = not double
        elif not single and not double:
            if ch == "(":
                depth += 1
            elif ch == ")":
                depth -= 1
            elif depth == 0:
                op = next((o for o in _OPERATORS if command.startswith(o, i)), None)
                if op:
                    piece = "".join(current).strip()
                    if piece:
                        parts.append(piece)
                    current = []
                    i += len(op)
                    continue
        current.append(ch)
        i += 1
    piece = "".join(current).strip()
    if piece:
        parts.append(piece)
    return parts or [command]


def _bash_pattern(command: str) -> str:
    words = command.split()
    if not words:
        return "Bash(*)"
    if words[0] in SUBCOMMAND_TOOLS and len(words) > 1:
        return f"Bash({words[0]} {words[1]}:*)"
    return f"Bash({words[0]}:*)"


def permission_patterns(tool_name: str, tool_input: Any) -> list[str]:
    """Permission patterns covering a tool call, one per compound command part."""
    if not isinstance(tool_input, dict):
        tool_input = {}
    if tool_name == "Bash" and tool_input.get("command"):
        return [_bash_pattern(c) for c in split_compound_command(str(tool_input["command"]))]
    if tool_name == "WebFetch" and tool_input.get("url"):
        host = urlparse(str(tool_input["url"])).hostname
        return [f"WebFetch(domain:{host})" if host else "WebFetch(*)"]
    return [tool_name]


def pattern_matches(pattern: str, rule: str) -> bool:
    """Whether a permission rule covers a generated pattern."""
    if pattern == rule:
        return True
    rule_m = _RULE_RE.match(rule)
    if rule_m is None:
        # Bare tool name rules cover every call of that tool
        return pattern.split("(", 1)[0] == rule
    pattern_m = _RULE_RE.match(pattern)
    if pattern_m is None or rule_m.group(1) != pattern_m.group(1):
        return False
    rule_arg, pattern_arg = rule_m.group(2), pattern_m.group(2)
    if rule_arg in ("*", "**"):
        return True
    if rule_arg.endswith(":*"):
        base = rule_arg[:-2]
        subject = pattern_arg[:-2] if pattern_arg.endswith(":*") else pattern_arg
        return subject == base or subject.startswith(base + " ")
    if "*" in rule_arg:
        if rule_arg.endswith("/**"):
            return pattern_arg.startswith(rule_arg[:-3])
        if rule_arg.startswith("**/"):
            return pattern_arg.endswith(rule_arg[3:])
        return fnmatch.fnmatchcase(pattern_arg, rule_arg)
    return False


# ── Settings ─────────────────────────────────────────────────────────────────


def _find_claude_dir(cwd: str) -> Path | None:
    """Nearest .claude directory at or above cwd, excluding the user's own."""
    if not cwd:
        return None
    current = Path(cwd).resolve()
    for directory in (current, *current.parents):
        candidate = directory / ".claude"
        if candidate.resolve() == CLAUDE_DIR.resolve():
            return None
        if candidate.is_dir():
            return candidate
    return None


def _settings_levels(cwd: str) -> list[tuple[str, Path]]:
    levels: list[tuple[str, Path]] = []
    project = _find_claude_dir(cwd)
    if project is not None:
        levels.append(("local", project / "settings.local.json"))
        levels.append(("project", project / "settings.json"))
    levels.append(("user", CLAUDE_DIR / "settings.json"))
    return levels


def _load_settings(path: Path) -> dict | None:
    try:
        data = json.loads(path.read_text())
    except FileNotFoundError:
        return None
    except (OSError, json.JSONDecodeError) as e:
        log(f"Failed to load {path}: {e}")
        return None
    return data if isinstance(data, dict) else None


def check_claude_permissions(tool_name: str, tool_input: Any, cwd: str) -> tuple[str, str | None, str | None]:
    """Decide as Claude's own settings would: (allow|deny|ask, level, rule).

    Levels are consulted local → project → user. Within a level deny rules win.
    A compound command is denied if any part is denied and allowed only if
    every part is allowed.
    """
    patterns = permission_patterns(tool_name, tool_input)
    for level, path in _settings_levels(cwd):
        settings = _load_settings(path)
        perms = (settings or {}).get("permissions")
        if not isinstance(perms, dict):
            continue
        deny = [r for r in perms.get("deny") or [] if isinstance(r, str)]
        allow = [r for r in perms.get("allow") or [] if isinstance(r, str)]
        for pattern in patterns:
            for rule in deny:
                if pattern_matches(pattern, rule):
                    debug("permissions", "Pattern matched deny rule", pattern=pattern, rule=rule, level=level)
                    return "deny", level, rule
        matched = [next((r for r in allow if pattern_matches(p, r)), None) for p in patterns]
        if all(matched):
            debug("permissions", "Pattern matched allow rule", patterns=patterns, level=level)
            return "allow", level, matched[0]
    debug("permissions", "No matching rules found", patterns=patterns)
    return "ask", None, None


def add_allow_rules(patterns: list[str], cwd: str) -> Path | None:
    """Append allow rules to the nearest project's local settings, else the user's."""
    project = _find_claude_dir(cwd)
    path = project / "settings.local.json" if project is not None else CLAUDE_DIR / "settings.json"
    settings: dict = {}
    if path.exists():
        loaded = _load_settings(path)
        if loaded is None:
            return None
        settings = loaded
    perms = settings.setdefault("permissions", {})
    allow = perms.setdefault("allow", [])
    added = [p for p in patterns if p not in allow]
    if not added:
        return path
    allow.extend(added)
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        tmp = path.with_suffix(".tmp")
        tmp.write_text(json.dumps(settings, indent=2))
        tmp.replace(path)
    except OSError as e:
        log(f"Failed to write {path}: {e}")
        return None
    log(f"Added {', '.join(added)} to {path}")
    return path
