"""AskUserQuestion over Telegram: one message per question, buttons or free text."""
from __future__ import annotations

import re
import uuid
from typing import Any

from afkline._log import debug, log
from afkline.config import CHAT_ID, TIMEOUT_ACTION, TIMEOUT_SECONDS, require_credentials
from afkline.decision import HookDecision
from afkline.errors import PollTimeout
from afkline.formatting import _esc, _project_label, _truncate
from afkline.history import append_history
from afkline.mode import effective_mode
from afkline.poller import DistributedPoller, timeout_ms_from_seconds
from afkline.session import SessionRegistry
from afkline.session_map import remember_message, routes_to_session
from afkline.telegram import _answer_callback, _edit_message_text, keyboard, send_message

_CHOICE_RE = re.compile(r"^\s*\d+(\s*[, ]\s*\d+)*\s*$")


class _Skipped(Exception):
    pass


def _options(question: dict[str, Any]) -> list[str]:
    labels = []
    for opt in question.get("options") or []:
        label = opt.get("label") if isinstance(opt, dict) else opt
        if label:
            labels.append(str(label))
    return labels


def format_question(question: dict[str, Any], index: int, total: int, cwd: str) -> str:
    header = question.get("header") or "Question"
    lines = [
        f"<b>❓ {_esc(str(header))} ({index + 1}/{total}) · {_esc(_project_label(cwd))}</b>",
        _esc(str(question.get("question", ""))),
    ]
    for n, opt in enumerate(question.get("options") or [], 1):
        if isinstance(opt, dict):
            desc = f" - {_esc(_truncate(str(opt.get('description', '')), 120))}" if opt.get("description") else ""
            lines.append(f"{n}. <b>{_esc(str(opt.get('label', '')))}</b>{desc}")
    hint = "numbers like 1,3" if question.get("multiSelect") else "a number"
    lines.append(f"<i>Tap an option, or reply with {hint} or your own answer.</i>")
    return "\n".join(lines)


def parse_text_answer(text: str, question: dict[str, Any]) -> str:
    """Map a typed reply to option labels (1-based numbers), else keep it literally."""
    labels = _options(question)
    text = text.strip()
    if labels and _CHOICE_RE.match(text):
        picks = [int(n) for n in re.split(r"[,\s]+", text) if n]
        if all(1 <= n <= len(labels) for n in picks):
            if not question.get("multiSelect"):
                picks = picks[:1]
            return ", ".join(labels[n - 1] for n in dict.fromkeys(picks))
    return text


def _matcher(qid: str, index: int, session_id: str, registry: SessionRegistry, after_update_id: int) -> Any:
    """Buttons of this question, or free text sent after it was asked."""
    prefix = f"answer:{qid}:{index}:"

    def _match(update: dict[str, Any]) -> bool:
        query = update.get("callback_query")
        if isinstance(query, dict):
            chat = ((query.get("message") or {}).get("chat") or {}).get("id")
            if chat is not None and str(chat) != str(CHAT_ID):
                return False
            data = str(query.get("data", ""))
            return data.startswith(prefix) or data == f"skip:{qid}"
        message = update.get("message")
        if isinstance(message, dict) and update.get("update_id", 0) > after_update_id:
            return routes_to_session(session_id, message, registry)
        return False
    return _match


def handle_ask_user_question(event: dict, poller: DistributedPoller | None = None) -> HookDecision | None:
    """Ask each question in turn; answers come back as updated tool input."""
    tool_input = event.get("tool_input") or {}
    questions = [q for q in tool_input.get("questions") or [] if isinstance(q, dict)]
    session_id = event.get("session_id", "")
    cwd = event.get("cwd", "")

    if not questions:
        return None
    mode = effective_mode(session_id, cwd)
    if mode != "remote":
        debug("questions", f"{mode} mode, skipping")
        return None

    require_credentials()
    qid = uuid.uuid4().hex[:12]
    poller = poller or DistributedPoller()
    registry = poller.registry
    registry.register(session_id, {"cwd": cwd, "tool_call": {"tool_name": "AskUserQuestion", "question_id": qid}})
    wait_forever = TIMEOUT_ACTION == "wait"
    deadline = poller.clock() + timeout_ms_from_seconds(0 if wait_forever else TIMEOUT_SECONDS) / 1000
    answers: dict[str, str] = {}

    try:
        for index, question in enumerate(questions):
            remaining_ms = (deadline - poller.clock()) * 1000
            answer = _ask_one(poller, qid, index, question, len(questions), session_id, cwd, remaining_ms)
            if answer is None:
                append_history("question", session_id=session_id, outcome="cancelled")
                return None
            answers[str(question.get("question", f"Question {index + 1}"))] = answer
    except _Skipped:
        append_history("question", session_id=session_id, outcome="skipped")
        return HookDecision("ask", "User skipped the questions via Telegram", "skipped")
    except PollTimeout:
        append_history("question", session_id=session_id, outcome="timed_out")
        return HookDecision("ask", f"No answer via Telegram after {TIMEOUT_SECONDS}s - asking in Claude UI", "timed_out")
    finally:
        registry.release_reply_lock(session_id)
        registry.remove(session_id)

    append_history("question", session_id=session_id, outcome="answered", answers=answers)
    return HookDecision("allow", "User answered via Telegram", "answered", updated_input={**tool_input, "answers": answers})


def _ask_one(
    poller: DistributedPoller,
    qid: str,
    index: int,
    question: dict[str, Any],
    total: int,
    session_id: str,
    cwd: str,
    timeout_ms: float,
) -> str | None:
    """Send one question and wait. Returns the answer, None on cancel; raises on skip/timeout."""
    if timeout_ms <= 0:
        raise PollTimeout(f"question-{qid}", 0)
    labels = _options(question)
    rows = [[(f"{n}. {_truncate(label, 40)}", f"answer:{qid}:{index}:{n - 1}")] for n, label in enumerate(labels, 1)]
    rows.append([("⏭ Skip", f"skip:{qid}")])
    asked_after = poller.queue.max_known_id()
    message_id = send_message(format_question(question, index, total, cwd), reply_markup=keyboard(*rows))
    if message_id is None:
        log("Question could not be sent")
        raise _Skipped()
    remember_message(message_id, session_id, kind="question")
    poller.registry.acquire_reply_lock(session_id, message_id)

    update = poller.poll(_matcher(qid, index, session_id, poller.registry, asked_after), f"question-{qid}", session_id, timeout_ms, cwd)
    if update is None:
        return None

    query = update.get("callback_query")
    if query:
        _answer_callback(query.get("id", ""), "Got it")
        data = str(query.get("data", ""))
        if data == f"skip:{qid}":
            _edit_message_text(message_id, f"⏭ Skipped: {_esc(str(question.get('question', '')))}")
            raise _Skipped()
        choice = int(data.rsplit(":", 1)[1]) if data.rsplit(":", 1)[1].isdigit() else -1
        answer = labels[choice] if 0 <= choice < len(labels) else ""
    else:
        answer = parse_text_answer(update["message"].get("text", ""), question)

    _edit_message_text(message_id, f"✅ {_esc(str(question.get('question', '')))}\n<b>{_esc(answer)}</b>")
    debug("questions", f"Answered question {index + 1}/{total}", answer=answer)
    return answer
