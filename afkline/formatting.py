"""Message formatting: HTML escaping, tool call summaries."""
from __future__ import annotations

import re
from pathlib import Path
from typing import Any


def _esc(text: str) -> str:
    """Escape HTML special characters."""
    return (
        text.replace("&", "&amp;")
        .replace("<", "&lt;")
        .replace(">", "&gt;")
    )


def _truncate(text: str, max_len: int = 200) -> str:
    """Truncate text with ellipsis."""
    text = text.replace("\n", " ").strip()
    return text[: max_len - 1] + "…" if len(text) > max_len else text


def _strip_html(text: str) -> str:
    """Crude HTML tag stripper for plain text fallback."""
    text = re.sub(r"<[^>]+>", "", text)
    return text.replace("&amp;", "&").replace("&lt;", "<").replace("&gt;", ">")


def _short(session_id: str) -> str:
    return session_id[:8] if session_id else "unknown"


def _project_label(cwd: str) -> str:
    return Path(cwd).name if cwd else "unknown project"


def summarize_tool(tool_name: str, tool_input: Any) -> str:
    """One-line preview of what a tool call will do."""
    if not isinstance(tool_input, dict):
        return ""
    if tool_name == "Bash":
        return tool_input.get("command", "")
    if tool_name in ("Write", "Edit", "MultiEdit", "Read", "NotebookEdit"):
        return tool_input.get("file_path", "") or tool_input.get("notebook_path", "")
    if tool_name == "WebFetch":
        return tool_input.get("url", "")
    if tool_name == "WebSearch":
        return tool_input.get("query", "")
    for v in tool_input.values():
        if isinstance(v, str) and v.strip():
            return v
    return ""


def format_approval_request(tool_name: str, tool_input: Any, cwd: str, session_id: str, timeout_note: str) -> str:
    """Approval request body sent with the decision buttons."""
    lines = [
        f"<b>🔐 Approval Required · {_esc(_project_label(cwd))}</b>",
        f"Tool: <b>{_esc(tool_name)}</b>",
    ]
    preview = summarize_tool(tool_name, tool_input)
    if preview:
        lines.append(f"<code>{_esc(_truncate(preview, 400))}</code>")
    lines.append(f"<i>Session {_esc(_short(session_id))} · {_esc(timeout_note)}</i>")
    return "\n".join(lines)


def format_approval_result(tool_name: str, tool_input: Any, cwd: str, status: str) -> str:
    """Edited approval message once a decision is reached."""
    lines = [
        f"<b>{_esc(status)} · {_esc(_project_label(cwd))}</b>",
        f"Tool: <b>{_esc(tool_name)}</b>",
    ]
    preview = summarize_tool(tool_name, tool_input)
    if preview:
        lines.append(f"<code>{_esc(_truncate(preview, 200))}</code>")
    return "\n".join(lines)
