"""Stop and SessionStart: let the operator continue the session from Telegram.

Phase one waits for Reply or Finish. Reply takes the reply lock and enters a
second wait for the operator's free text, which is handed back to the agent.
"""
from __future__ import annotations

from typing import Any

from afkline._log import debug, log
from afkline.config import CHAT_ID, SESSIONSTART_TIMEOUT, STOP_TIMEOUT, require_credentials
from afkline.decision import HostAction
from afkline.errors import PollTimeout
from afkline.formatting import _esc, _project_label, _short, _truncate
from afkline.history import append_history
from afkline.mode import effective_mode
from afkline.poller import DistributedPoller, timeout_ms_from_seconds
from afkline.session import SessionRegistry
from afkline.session_map import is_free_text, remember_message, routes_to_session
from afkline.telegram import _answer_callback, _edit_reply_markup, keyboard, send_message
from afkline.transcript import recent_conversation


def _callback(update: dict[str, Any]) -> tuple[str, str, dict[str, Any]] | None:
    query = update.get("callback_query")
    if not isinstance(query, dict):
        return None
    chat = ((query.get("message") or {}).get("chat") or {}).get("id")
    if chat is not None and str(chat) != str(CHAT_ID):
        return None
    action, _, tag = str(query.get("data", "")).partition(":")
    return action, tag, query


def _first_phase_matcher(session_id: str, message_id: int) -> Any:
    """Reply/Finish presses for this session, or a text reply quoting our message."""
    def _match(update: dict[str, Any]) -> bool:
        cb = _callback(update)
        if cb is not None:
            return cb[0] in ("reply", "finish") and cb[1] == session_id
        message = update.get("message")
        if isinstance(message, dict) and is_free_text(message):
            return (message.get("reply_to_message") or {}).get("message_id") == message_id
        return False
    return _match


def _reply_matcher(session_id: str, registry: SessionRegistry, after_update_id: int) -> Any:
    """Free text routed to this session and sent after Reply, or its Stop Waiting button."""
    def _match(update: dict[str, Any]) -> bool:
        cb = _callback(update)
        if cb is not None:
            return cb[0] == "stop_wait" and cb[1] == session_id
        message = update.get("message")
        if not isinstance(message, dict) or update.get("update_id", 0) <= after_update_id:
            return False
        return routes_to_session(session_id, message, registry)
    return _match


def format_stop_message(event: dict, readonly: bool = False) -> str:
    session_id = event.get("session_id", "")
    label = _project_label(event.get("cwd", ""))
    if event.get("hook_event_name") == "SessionStart":
        source = event.get("source") or "startup"
        lines = [f"<b>🚀 Session started ({_esc(str(source))}) · {_esc(label)}</b>"]
    else:
        lines = [f"<b>✅ Session completed · {_esc(label)}</b>"]
        for role, text in recent_conversation(event.get("transcript_path", ""), limit=3):
            who = "👤" if role == "user" else "🤖"
            lines.append(f"{who} {_esc(_truncate(text, 300))}")
    lines.append(f"<i>Session {_esc(_short(session_id))} · {_esc(event.get('cwd', ''))}</i>")
    if readonly:
        lines.append("<i>Read-only mode: no action required.</i>")
    else:
        lines.append("<i>Reply to continue, or Finish to let the session end.</i>")
    return "\n".join(lines)


def handle_stop(event: dict, poller: DistributedPoller | None = None) -> HostAction:
    """Run the Stop or SessionStart interaction for one hook invocation."""
    session_id = event.get("session_id", "")
    cwd = event.get("cwd", "")
    event_name = event.get("hook_event_name", "Stop")

    mode = effective_mode(session_id, cwd)
    if mode == "local":
        debug("stop", f"Local mode, no {event_name} notification")
        return HostAction.no_opinion("local")

    require_credentials()
    if mode == "readonly":
        send_message(format_stop_message(event, readonly=True))
        log(f"Read-only mode: {event_name} notification sent (no waiting)")
        return HostAction.no_opinion("readonly")

    timeout_s = SESSIONSTART_TIMEOUT if event_name == "SessionStart" else STOP_TIMEOUT
    timeout_ms = timeout_ms_from_seconds(timeout_s)
    buttons = keyboard([("💬 Reply", f"reply:{session_id}"), ("✅ Finish", f"finish:{session_id}")])
    message_id = send_message(format_stop_message(event), reply_markup=buttons)
    if message_id is None:
        log(f"{event_name} notification could not be sent")
        return HostAction.no_opinion("unsent")
    remember_message(message_id, session_id, kind=event_name.lower())

    poller = poller or DistributedPoller()
    registry = poller.registry
    registry.register(session_id, {"cwd": cwd, "tool_call": {"hook": event_name}})
    claimant = f"{event_name.lower()}-{session_id}"
    try:
        try:
            update = poller.poll(_first_phase_matcher(session_id, message_id), claimant, session_id, timeout_ms, cwd)
        except PollTimeout:
            _edit_reply_markup(message_id, keyboard([("⏰ Timed out", "expired")]))
            append_history("abandoned", session_id=session_id, reason="timeout")
            return HostAction.stop("abandoned")
        if update is None:
            _edit_reply_markup(message_id)
            return HostAction.no_opinion("cancelled")

        cb = _callback(update)
        if cb is None:
            return _received(update["message"]["text"], message_id, session_id, event_name)
        action, _, query = cb
        _answer_callback(query.get("id", ""), "Finished" if action == "finish" else "Waiting for your reply")
        if action == "finish":
            _edit_reply_markup(message_id, keyboard([("✅ Session finished", "finished")]))
            append_history("finish", session_id=session_id)
            return HostAction.stop("finish")
        return _await_reply(
            poller, session_id, message_id, event_name, claimant, timeout_ms, cwd, update.get("update_id", 0),
        )
    finally:
        registry.remove(session_id)


def _await_reply(
    poller: DistributedPoller,
    session_id: str,
    message_id: int,
    event_name: str,
    claimant: str,
    timeout_ms: float,
    cwd: str,
    reply_update_id: int,
) -> HostAction:
    registry = poller.registry
    registry.acquire_reply_lock(session_id, message_id)
    _edit_reply_markup(message_id, keyboard([
        ("⏳ Waiting for your reply...", "waiting"),
        ("🛑 Stop Waiting", f"stop_wait:{session_id}"),
    ]))
    try:
        try:
            update = poller.poll(_reply_matcher(session_id, registry, reply_update_id), f"{claimant}-text", session_id, timeout_ms, cwd)
        except PollTimeout:
            _edit_reply_markup(message_id, keyboard([("⏰ Timed out", "expired")]))
            append_history("abandoned", session_id=session_id, reason="timeout")
            return HostAction.stop("abandoned")
        if update is None:
            _edit_reply_markup(message_id)
            return HostAction.no_opinion("cancelled")
        cb = _callback(update)
        if cb is not None:
            _answer_callback(cb[2].get("id", ""), "Stopped waiting")
            _edit_reply_markup(message_id, keyboard([("🛑 Stopped waiting", "stopped")]))
            append_history("abandoned", session_id=session_id, reason="stop_wait")
            return HostAction.stop("abandoned")
        return _received(update["message"]["text"], message_id, session_id, event_name)
    finally:
        registry.release_reply_lock(session_id)


def _received(text: str, message_id: int, session_id: str, event_name: str) -> HostAction:
    preview = text[:30] + ("..." if len(text) > 30 else "")
    _edit_reply_markup(message_id, keyboard([(f'💬 Received: "{preview}"', "received")]))
    kind = "session_start_reply" if event_name == "SessionStart" else "reply"
    append_history(kind, session_id=session_id, text=text)
    log(f"{event_name}: operator replied, continuing session {session_id[:8]}")
    return HostAction.continue_with(text)
