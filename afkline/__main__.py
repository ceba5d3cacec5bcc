"""Hook entrypoint for python3 -m afkline: read the event, run it, emit the result."""
from __future__ import annotations

import json
import sys

from afkline._log import debug, log, setup_logging
from afkline.approval import handle_pre_tool_use
from afkline.commands import handle_prompt
from afkline.config import STATE_DIR
from afkline.decision import HookDecision, HostAction
from afkline.errors import ConfigurationMissing
from afkline.questions import handle_ask_user_question
from afkline.stop import handle_stop

STOP_CONTINUE_TEMPLATE = 'User replied via Telegram: "{text}". Continue the conversation with this input.'
SESSION_START_TEMPLATE = 'User provided initial instructions via Telegram: "{text}"'


def _emit_decision(result: HookDecision | None) -> None:
    if result is not None:
        print(json.dumps(result.to_output()))


def _emit_action(event_name: str, action: HostAction) -> None:
    """Translate a host action into stdout, stderr and the exit code."""
    if action.kind != "continue":
        return
    if event_name == "SessionStart":
        print(json.dumps({
            "hookSpecificOutput": {
                "hookEventName": "SessionStart",
                "additionalContext": SESSION_START_TEMPLATE.format(text=action.text),
            },
        }))
        return
    print(STOP_CONTINUE_TEMPLATE.format(text=action.text), file=sys.stderr)
    sys.exit(2)


def run_event(event: dict) -> None:
    """Route one hook event to its interaction."""
    event_name = event.get("hook_event_name", "Unknown")
    debug("hook", f"{event_name} triggered", session_id=event.get("session_id", ""), tool_name=event.get("tool_name"))

    if event_name == "PreToolUse":
        if event.get("tool_name") == "AskUserQuestion":
            _emit_decision(handle_ask_user_question(event))
        else:
            _emit_decision(handle_pre_tool_use(event))
    elif event_name in ("Stop", "SessionStart"):
        _emit_action(event_name, handle_stop(event))
    elif event_name == "UserPromptSubmit":
        reply = handle_prompt(event)
        if reply is not None:
            print(json.dumps(reply))
    else:
        debug("hook", f"Ignoring {event_name}")


def main() -> None:
    """Hook handler: read event from stdin and fall through to the host on errors."""
    setup_logging(STATE_DIR)
    try:
        raw = sys.stdin.read()
        if not raw.strip():
            log("Empty stdin, nothing to do")
            return
        event = json.loads(raw)
    except json.JSONDecodeError as e:
        log(f"Invalid JSON on stdin: {e}")
        return
    if not isinstance(event, dict):
        log("Hook payload is not an object, ignoring")
        return

    try:
        run_event(event)
    except ConfigurationMissing as e:
        log(str(e))
    except KeyboardInterrupt:
        log("Interrupted, leaving the decision to Claude")


if __name__ == "__main__":
    from afkline.cli import cli_main
    cli_main()
