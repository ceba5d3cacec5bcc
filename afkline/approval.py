"""Tool approval: PreToolUse → Telegram buttons → claimed callback → decision."""
from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Any

from afkline._log import debug, log
from afkline._types import ApprovalMeta
from afkline.config import (
    ALWAYS_APPROVED_TOOLS,
    AUTO_APPROVE_TOOLS,
    CHAT_ID,
    RESPECT_CLAUDE_PERMISSIONS,
    TIMEOUT_ACTION,
    TIMEOUT_SECONDS,
    require_credentials,
)
from afkline.decision import HookDecision
from afkline.errors import PollTimeout
from afkline.formatting import format_approval_request, format_approval_result
from afkline.history import append_history
from afkline.mode import effective_mode
from afkline.permissions import add_allow_rules, check_claude_permissions, permission_patterns
from afkline.poller import DistributedPoller, timeout_ms_from_seconds
from afkline.session_map import remember_message
from afkline.state import _clear_state, _write_state
from afkline.telegram import _answer_callback, _edit_message_text, keyboard, send_message

ACTIONS = ("approve", "deny", "allow_all", "ask_ui")


def needs_approval(tool_name: str) -> bool:
    return tool_name not in AUTO_APPROVE_TOOLS | ALWAYS_APPROVED_TOOLS


def _meta_file(approval_id: str) -> str:
    return f"approvals/{approval_id}.json"


def callback_matcher(interaction_id: str, actions: tuple[str, ...]) -> Any:
    """Predicate accepting button presses tagged with interaction_id from our chat."""
    def _match(update: dict[str, Any]) -> bool:
        query = update.get("callback_query")
        if not isinstance(query, dict):
            return False
        chat = ((query.get("message") or {}).get("chat") or {}).get("id")
        if chat is not None and str(chat) != str(CHAT_ID):
            return False
        action, _, tag = str(query.get("data", "")).partition(":")
        return action in actions and tag == interaction_id
    return _match


def _timeout_note() -> str:
    if TIMEOUT_SECONDS <= 0 or TIMEOUT_ACTION == "wait":
        return "waiting without timeout"
    return f"auto-{TIMEOUT_ACTION} after {TIMEOUT_SECONDS}s"


def handle_pre_tool_use(event: dict, poller: DistributedPoller | None = None) -> HookDecision | None:
    """Run one approval interaction. None means no opinion: the host decides."""
    tool_name = event.get("tool_name", "unknown")
    tool_input = event.get("tool_input") or {}
    session_id = event.get("session_id", "")
    cwd = event.get("cwd", "")

    if not needs_approval(tool_name):
        debug("approval", f"{tool_name} is auto-approved, skipping")
        return None
    mode = effective_mode(session_id, cwd)
    if mode != "remote":
        debug("approval", f"{mode} mode, skipping", tool_name=tool_name)
        return None
    if RESPECT_CLAUDE_PERMISSIONS:
        decision, level, rule = check_claude_permissions(tool_name, tool_input, cwd)
        if decision != "ask":
            debug("approval", f"Claude {level} settings {decision} via {rule}")
            return None

    require_credentials()
    approval_id = uuid.uuid4().hex[:12]
    patterns = permission_patterns(tool_name, tool_input)
    meta: ApprovalMeta = {
        "approval_id": approval_id,
        "session_id": session_id,
        "cwd": cwd,
        "tool_name": tool_name,
        "tool_input": tool_input,
        "created_at": datetime.now(timezone.utc).isoformat(),
    }

    text = format_approval_request(tool_name, tool_input, cwd, session_id, _timeout_note())
    buttons = keyboard(
        [("✅ Approve", f"approve:{approval_id}"), ("❌ Deny", f"deny:{approval_id}")],
        [("✅ Allow All", f"allow_all:{approval_id}"), ("🔧 Ask in UI", f"ask_ui:{approval_id}")],
    )
    message_id = send_message(text, reply_markup=buttons)
    if message_id is None:
        log("Approval request could not be sent, delegating to the UI")
        return HookDecision("ask", "Telegram unavailable - delegating to Claude UI", "delegate")

    meta["message_id"] = message_id
    _write_state(_meta_file(approval_id), dict(meta))
    remember_message(message_id, session_id, kind="approval")

    poller = poller or DistributedPoller()
    registry = poller.registry
    registry.register(session_id, {"cwd": cwd, "tool_call": {"tool_name": tool_name, "approval_id": approval_id}})

    wait_forever = TIMEOUT_ACTION == "wait"
    timeout_ms = timeout_ms_from_seconds(0 if wait_forever else TIMEOUT_SECONDS)
    log(f"[approval-{approval_id}] Waiting for {tool_name} decision")
    try:
        try:
            update = poller.poll(callback_matcher(approval_id, ACTIONS), f"approval-{approval_id}", session_id, timeout_ms, cwd)
        except PollTimeout:
            return _on_timeout(meta)
        if update is None:
            _edit_message_text(message_id, format_approval_result(tool_name, tool_input, cwd, "↩️ Cancelled (mode changed)"))
            append_history("approval", session_id=session_id, decision="cancelled", tool_name=tool_name)
            return None
        return _on_callback(update, meta, patterns)
    finally:
        _clear_state(_meta_file(approval_id))
        registry.remove(session_id)


def _on_callback(update: dict[str, Any], meta: ApprovalMeta, patterns: list[str]) -> HookDecision:
    query = update["callback_query"]
    action = str(query.get("data", "")).partition(":")[0]
    tool_name, tool_input, cwd = meta["tool_name"], meta["tool_input"], meta["cwd"]
    user = (query.get("from") or {}).get("username") or (query.get("from") or {}).get("first_name", "")

    if action == "approve":
        result = HookDecision("allow", "Approved via Telegram", "approved")
        status, ack = "✅ Approved", "Approved"
    elif action == "deny":
        result = HookDecision("deny", "Denied via Telegram", "denied")
        status, ack = "❌ Denied", "Denied"
    elif action == "allow_all":
        path = add_allow_rules(patterns, cwd)
        where = f" in {path}" if path else ""
        result = HookDecision("allow", f"Approved via Telegram and allowed {', '.join(patterns)}{where}", "allow_all")
        status, ack = f"✅ Allowed All ({', '.join(patterns)})", "Allowed all"
    else:
        result = HookDecision("ask", "Delegating to Claude UI for decision", "delegate")
        status, ack = "🔧 Delegated to Claude UI", "Delegated"

    _answer_callback(query.get("id", ""), ack)
    by = f" by {user}" if user else ""
    _edit_message_text(meta["message_id"], format_approval_result(tool_name, tool_input, cwd, f"{status}{by}"))
    append_history("approval", session_id=meta["session_id"], decision=result.state, tool_name=tool_name)
    log(f"[approval-{meta['approval_id']}] {result.state}")
    return result


def _on_timeout(meta: ApprovalMeta) -> HookDecision:
    if TIMEOUT_ACTION == "allow":
        result = HookDecision("allow", f"Auto-approved after {TIMEOUT_SECONDS}s timeout", "timed_out")
        status = "⏰ Timed out (auto-approved)"
    else:
        result = HookDecision("deny", f"Auto-denied after {TIMEOUT_SECONDS}s timeout", "timed_out")
        status = "⏰ Timed out (auto-denied)"
    _edit_message_text(meta["message_id"], format_approval_result(meta["tool_name"], meta["tool_input"], meta["cwd"], status))
    append_history("approval", session_id=meta["session_id"], decision=f"timeout_{result.decision}", tool_name=meta["tool_name"])
    log(f"[approval-{meta['approval_id']}] {result.reason}")
    return result
