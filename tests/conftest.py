"""Shared fixtures for afkline tests."""
from __future__ import annotations

import importlib
import sys
from pathlib import Path
from types import ModuleType
from typing import Any

import pytest

CHAT = 12345

_SUBMODULES = (
    "config", "_log", "state", "queue", "claim", "session", "session_map", "history",
    "mode", "telegram", "poller", "permissions", "approval", "questions", "stop",
    "commands", "transcript", "__main__", "cli",
)


@pytest.fixture()
def _add_project_root(monkeypatch: pytest.MonkeyPatch) -> None:
    """Add the project root to sys.path so we can import afkline."""
    root = str(Path(__file__).resolve().parent.parent)
    if root not in sys.path:
        monkeypatch.syspath_prepend(root)


@pytest.fixture()
def afkline(_add_project_root: None, monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> Any:  # noqa: ARG001
    """Import afkline with sandboxed state and settings directories."""
    import afkline as _afkline

    # __init__.py re-exports shadow some submodule names; use sys.modules.
    def _submod(name: str) -> ModuleType:
        importlib.import_module(f"afkline.{name}")
        return sys.modules[f"afkline.{name}"]

    all_mods = [_submod(name) for name in _SUBMODULES]

    state_dir = tmp_path / "afk"
    state_dir.mkdir()
    claude_dir = tmp_path / "home" / ".claude"
    claude_dir.mkdir(parents=True)

    # Patch each attribute only in modules that actually have it
    patches: dict[str, object] = {
        "AFK_DIR": state_dir,
        "STATE_DIR": state_dir,
        "CONFIG_PATH": state_dir / "config.json",
        "CLAUDE_DIR": claude_dir,
        "BOT_TOKEN": "test-token",
        "CHAT_ID": str(CHAT),
        "DEBUG": False,
    }
    for attr, value in patches.items():
        for mod in all_mods:
            if hasattr(mod, attr):
                monkeypatch.setattr(mod, attr, value)
        if hasattr(_afkline, attr):
            monkeypatch.setattr(_afkline, attr, value)

    # Clear caches
    monkeypatch.setattr(sys.modules["afkline.config"], "_afk_config", None)
    monkeypatch.setattr(sys.modules["afkline.state"], "_reported_bad_lines", set())

    return _afkline


def _mod(name: str) -> ModuleType:
    return sys.modules[f"afkline.{name}"]


class FakeTelegram:
    """Records Bot API calls and serves scripted updates to getUpdates."""

    def __init__(self) -> None:
        self.calls: list[tuple[str, dict[str, Any]]] = []
        self.updates: list[dict[str, Any]] = []
        self.next_update_id = 100
        self.next_message_id = 500
        self.fail_fetches = 0
        self.fail_sends = False
        self.on_send: Any = None

    # ── Scripting ────────────────────────────────────────────────────────────

    def push_callback(self, data: str, message_id: int = 0, chat_id: int = CHAT) -> dict[str, Any]:
        update = {
            "update_id": self._next_id(),
            "callback_query": {
                "id": f"cb-{self.next_update_id}",
                "data": data,
                "from": {"username": "operator"},
                "message": {"message_id": message_id, "chat": {"id": chat_id}},
            },
        }
        self.updates.append(update)
        return update

    def push_text(self, text: str, reply_to: int | None = None, chat_id: int = CHAT) -> dict[str, Any]:
        message: dict[str, Any] = {"message_id": self._next_id() + 9000, "chat": {"id": chat_id}, "text": text}
        if reply_to is not None:
            message["reply_to_message"] = {"message_id": reply_to}
        update = {"update_id": self.next_update_id - 1, "message": message}
        self.updates.append(update)
        return update

    def _next_id(self) -> int:
        uid = self.next_update_id
        self.next_update_id += 1
        return uid

    # ── Inspection ───────────────────────────────────────────────────────────

    def sent(self) -> list[dict[str, Any]]:
        return [p for m, p in self.calls if m == "sendMessage"]

    def methods(self) -> list[str]:
        return [m for m, _ in self.calls]

    @staticmethod
    def button(payload: dict[str, Any], prefix: str) -> str:
        """callback_data of the first button in payload starting with prefix."""
        for row in (payload.get("reply_markup") or {}).get("inline_keyboard", []):
            for btn in row:
                if btn["callback_data"].startswith(prefix):
                    return btn["callback_data"]
        raise AssertionError(f"no button starting with {prefix!r}")

    # ── Fake API ─────────────────────────────────────────────────────────────

    def api(self, method: str, payload: dict[str, Any], timeout: int = 10) -> dict[str, Any] | None:  # noqa: ARG002
        self.calls.append((method, payload))
        if method == "getUpdates":
            if self.fail_fetches:
                self.fail_fetches -= 1
                return None
            batch = [u for u in self.updates if u["update_id"] >= payload["offset"]]
            return {"ok": True, "result": batch[: payload.get("limit", 10)]}
        if method == "sendMessage":
            if self.fail_sends:
                return {"ok": False, "description": "Bad Request"}
            message_id = self.next_message_id
            self.next_message_id += 1
            if self.on_send is not None:
                self.on_send(self, payload, message_id)
            return {"ok": True, "result": {"message_id": message_id}}
        if method == "getMe":
            return {"ok": True, "result": {"username": "test_bot"}}
        return {"ok": True, "result": True}


@pytest.fixture()
def mock_telegram(afkline: Any, monkeypatch: pytest.MonkeyPatch) -> FakeTelegram:  # noqa: ARG001
    """Replace _telegram_api with a scripted fake."""
    fake = FakeTelegram()
    monkeypatch.setattr(_mod("telegram"), "_telegram_api", fake.api)
    return fake


class FakeClock:
    """Monotonic clock that only moves when sleep() is called."""

    def __init__(self) -> None:
        self.now = 1000.0
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self.now

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def poller(afkline: Any, mock_telegram: FakeTelegram, clock: FakeClock) -> Any:  # noqa: ARG001
    """A DistributedPoller over the sandboxed queue, fake Telegram and fake clock."""
    _poller = _mod("poller")
    return _poller.DistributedPoller(sleep=clock.sleep, clock=clock)


@pytest.fixture()
def remote_mode(afkline: Any) -> None:
    """Put the global mode into remote."""
    _mod("mode").write_global_mode("remote")


@pytest.fixture()
def project_dir(tmp_path: Path) -> Path:
    """A project directory with its own .claude folder."""
    d = tmp_path / "work" / "demo-project"
    (d / ".claude").mkdir(parents=True)
    return d
