"""Tests for the rolling history log, decisions and debug logging."""
from __future__ import annotations

import json
import math
import sys
from typing import Any

import pytest


def _history() -> Any:
    return sys.modules["afkline.history"]


class TestHistory:
    """Test append_history and read_history."""

    def test_append_and_read(self, afkline: Any) -> None:
        _history().append_history("approval", session_id="s1", decision="approved")
        entries = _history().read_history()
        assert entries[0]["type"] == "approval"
        assert entries[0]["decision"] == "approved"
        assert isinstance(entries[0]["ts"], int)

    def test_read_limit(self, afkline: Any) -> None:
        for i in range(5):
            _history().append_history("reply", n=i)
        assert [e["n"] for e in _history().read_history(limit=2)] == [3, 4]

    def test_trims_past_limit(self, afkline: Any, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr(_history(), "HISTORY_MAX_LINES", 10)
        monkeypatch.setattr(_history(), "HISTORY_KEEP_LINES", 4)
        for i in range(11):
            _history().append_history("reply", n=i)
        entries = _history().read_history(limit=100)
        assert [e["n"] for e in entries] == [7, 8, 9, 10]


class TestDecisions:
    """Test HookDecision and HostAction."""

    def test_to_output(self, afkline: Any) -> None:
        out = afkline.HookDecision("deny", "Denied via Telegram", "denied").to_output()
        assert out == {"hookSpecificOutput": {
            "hookEventName": "PreToolUse",
            "permissionDecision": "deny",
            "permissionDecisionReason": "Denied via Telegram",
        }}

    def test_updated_input(self, afkline: Any) -> None:
        out = afkline.HookDecision("allow", "r", "answered", updated_input={"answers": {}}).to_output()
        assert out["hookSpecificOutput"]["updatedInput"] == {"answers": {}}

    def test_rejects_unknown_decision(self, afkline: Any) -> None:
        with pytest.raises(ValueError):
            afkline.HookDecision("maybe", "r", "s")

    def test_host_actions(self, afkline: Any) -> None:
        assert afkline.HostAction.continue_with("go").kind == "continue"
        assert afkline.HostAction.stop("finish").text == ""
        assert afkline.HostAction.no_opinion().state == "cancelled"

    def test_poll_timeout_message(self, afkline: Any) -> None:
        assert "no limit" in str(afkline.PollTimeout("c", math.inf))
        assert "250ms" in str(afkline.PollTimeout("c", 250))


class TestDebugLog:
    """Test structured debug output."""

    def test_disabled_writes_nothing(self, afkline: Any) -> None:
        afkline.debug("poll", "quiet")
        assert not (afkline.STATE_DIR / "debug.jsonl").exists()

    def test_enabled_writes_jsonl(
        self, afkline: Any, monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str],
    ) -> None:
        monkeypatch.setattr(sys.modules["afkline.config"], "DEBUG", True)
        afkline.debug("claim", "claimed", update_id=4)
        record = json.loads((afkline.STATE_DIR / "debug.jsonl").read_text().splitlines()[0])
        assert record["category"] == "claim"
        assert record["data"] == {"update_id": 4}
        assert "[CLAIM] claimed" in capsys.readouterr().err

    def test_log_goes_to_stderr(self, afkline: Any, capsys: pytest.CaptureFixture[str]) -> None:
        afkline.log("hello")
        assert "[afkline] hello" in capsys.readouterr().err
