"""Telegram Bot API transport: fetch updates, send and edit messages."""
from __future__ import annotations

import http.client
import json
import urllib.request
from typing import Any

from afkline._log import debug, log
from afkline.config import BOT_TOKEN, CHAT_ID, FETCH_LIMIT
from afkline.errors import TransientIOError
from afkline.formatting import _strip_html


def _telegram_api(method: str, payload: dict, timeout: int = 10) -> dict | None:
    """Call a Telegram Bot API method. Returns parsed JSON or None."""
    if not BOT_TOKEN:
        log("TELEGRAM_BOT_TOKEN not set")
        return None
    url = f"https://api.telegram.org/bot{BOT_TOKEN}/{method}"
    data = json.dumps(payload).encode("utf-8")
    req = urllib.request.Request(
        url, data=data,
        headers={"Content-Type": "application/json"},
        method="POST",
    )
    try:
        with urllib.request.urlopen(req, timeout=timeout) as resp:
            return json.loads(resp.read())
    except (OSError, http.client.HTTPException, ValueError) as e:
        # URLError, timeouts and connection resets are OSErrors; bad JSON is a ValueError
        log(f"Telegram API [{method}]: {e}")
        return None


def get_updates(offset: int, limit: int = FETCH_LIMIT, timeout: int = 1) -> list[dict[str, Any]]:
    """Fetch updates with id >= offset using a short server-side long poll.

    Raises TransientIOError when the call fails; the poller backs off and retries.
    """
    payload = {
        "offset": offset,
        "limit": limit,
        "timeout": timeout,
        "allowed_updates": ["message", "callback_query"],
    }
    result = _telegram_api("getUpdates", payload, timeout=timeout + 10)
    if not result or not result.get("ok"):
        raise TransientIOError(f"getUpdates failed: {(result or {}).get('description', 'no response')}")
    updates = result.get("result") or []
    if updates:
        debug("telegram", f"Fetched {len(updates)} update(s)", offset=offset)
    return updates


def send_message(
    text: str,
    reply_markup: dict | None = None,
    reply_to: int | None = None,
) -> int | None:
    """Send an HTML message. Returns message_id on success, None on failure."""
    if not BOT_TOKEN or not CHAT_ID:
        log("TELEGRAM_BOT_TOKEN or TELEGRAM_CHAT_ID not set")
        return None

    payload: dict[str, Any] = {
        "chat_id": CHAT_ID,
        "text": text,
        "parse_mode": "HTML",
    }
    if reply_to:
        payload["reply_to_message_id"] = reply_to
        payload["allow_sending_without_reply"] = True
    if reply_markup:
        payload["reply_markup"] = reply_markup

    result = _telegram_api("sendMessage", payload)
    if result and result.get("ok"):
        return result["result"]["message_id"]

    # Fallback: strip HTML and send plain text
    log("HTML send failed, trying plain text fallback")
    payload["text"] = _strip_html(text)
    del payload["parse_mode"]

    result = _telegram_api("sendMessage", payload)
    if result and result.get("ok"):
        return result["result"]["message_id"]

    log("Plain text fallback also failed")
    return None


def _edit_message_text(message_id: int, text: str, reply_markup: dict | None = None) -> bool:
    """Replace a sent message's text; buttons are removed unless reply_markup is given."""
    payload: dict[str, Any] = {
        "chat_id": CHAT_ID,
        "message_id": message_id,
        "text": text,
        "parse_mode": "HTML",
        "reply_markup": reply_markup or {"inline_keyboard": []},
    }
    result = _telegram_api("editMessageText", payload)
    return bool(result and result.get("ok"))


def _edit_reply_markup(message_id: int, reply_markup: dict | None = None) -> None:
    """Swap or remove the inline buttons of a sent message."""
    _telegram_api("editMessageReplyMarkup", {
        "chat_id": CHAT_ID,
        "message_id": message_id,
        "reply_markup": reply_markup or {"inline_keyboard": []},
    })


def _answer_callback(callback_id: str, text: str) -> None:
    """Acknowledge a callback query."""
    _telegram_api("answerCallbackQuery", {
        "callback_query_id": callback_id,
        "text": text,
        "show_alert": False,
    })


def keyboard(*rows: list[tuple[str, str]]) -> dict:
    """Build an inline keyboard from rows of (label, callback_data)."""
    return {"inline_keyboard": [[{"text": t, "callback_data": d} for t, d in row] for row in rows]}
