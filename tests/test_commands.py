"""Tests for the /afk prompt command registry."""
from __future__ import annotations

import sys
from pathlib import Path
from typing import Any

import pytest


def _cmd_mod() -> Any:
    return sys.modules["afkline.commands"]


class TestCommandRegistry:
    """Test command registration and dispatch."""

    def test_register_and_dispatch(self, afkline: Any) -> None:
        from afkline.commands import _registry, dispatch, register

        @register("testcmd")
        def _handler(args: str, session_id: str, cwd: str) -> str:
            return f"handled: {args} {session_id}"

        assert dispatch("testcmd", "arg1 arg2", "s1", "") == "handled: arg1 arg2 s1"

        # Cleanup registry
        _registry.pop("testcmd", None)

    def test_dispatch_unknown(self, afkline: Any) -> None:
        from afkline.commands import dispatch
        assert dispatch("nonexistent_cmd_xyz", "", "", "") == "Unknown AFK command: nonexistent_cmd_xyz. Try /afk:help"

    def test_dispatch_error_returns_message(self, afkline: Any) -> None:
        from afkline.commands import _registry, dispatch, register

        @register("failcmd")
        def _handler(args: str, session_id: str, cwd: str) -> str:
            raise ValueError("intentional")

        assert "intentional" in dispatch("failcmd", "", "", "")
        _registry.pop("failcmd", None)

    def test_builtin_commands_registered(self, afkline: Any) -> None:
        from afkline.commands import _registry
        for name in ("on", "off", "readonly", "global", "project", "session", "status", "help"):
            assert name in _registry, f"/afk:{name} not registered"


class TestParsePrompt:
    """Test parse_prompt."""

    @pytest.mark.parametrize(("prompt", "expected"), [
        ("/afk", ("global", "")),
        ("  /afk  ", ("global", "")),
        ("/afk:on", ("on", "")),
        ("/afk:project clear", ("project", "clear")),
        ("/afk session on", ("session", "on")),
        ("/afk:STATUS", ("status", "")),
        ("/afkx", None),
        ("please /afk", None),
        ("hello", None),
    ])
    def test_parse(self, afkline: Any, prompt: str, expected: tuple[str, str] | None) -> None:
        assert _cmd_mod().parse_prompt(prompt) == expected


class TestModeCommands:
    """Test the built-in mode commands."""

    def _run(self, prompt: str, session_id: str = "s1", cwd: str = "") -> str:
        reply = _cmd_mod().handle_prompt({"prompt": prompt, "session_id": session_id, "cwd": cwd})
        assert reply is not None
        assert reply["suppressOutput"] is True
        return reply["systemMessage"]

    def test_plain_afk_toggles_global(self, afkline: Any) -> None:
        assert "REMOTE" in self._run("/afk")
        assert afkline.read_global_mode() == "remote"
        assert "LOCAL" in self._run("/afk")
        assert afkline.read_global_mode() == "local"

    def test_on_off_readonly(self, afkline: Any) -> None:
        self._run("/afk:on")
        assert afkline.read_global_mode() == "remote"
        self._run("/afk:readonly")
        assert afkline.read_global_mode() == "readonly"
        self._run("/afk:off")
        assert afkline.read_global_mode() == "local"

    def test_global_with_arg(self, afkline: Any) -> None:
        self._run("/afk:global readonly")
        assert afkline.read_global_mode() == "readonly"

    def test_project_cycle(self, afkline: Any, project_dir: Path) -> None:
        mode = sys.modules["afkline.mode"]
        cwd = str(project_dir)
        assert "REMOTE" in self._run("/afk:project", cwd=cwd)
        assert mode.get_project_mode(cwd) == "remote"
        assert "LOCAL" in self._run("/afk:project", cwd=cwd)
        assert mode.get_project_mode(cwd) == "local"
        assert "cleared" in self._run("/afk:project", cwd=cwd)
        assert mode.get_project_mode(cwd) is None

    def test_project_explicit(self, afkline: Any, project_dir: Path) -> None:
        cwd = str(project_dir)
        self._run("/afk:project readonly", cwd=cwd)
        assert sys.modules["afkline.mode"].get_project_mode(cwd) == "readonly"
        assert "Unknown mode" in self._run("/afk:project sideways", cwd=cwd)

    def test_project_without_cwd(self, afkline: Any) -> None:
        assert "No project directory" in self._run("/afk:project")

    def test_session(self, afkline: Any) -> None:
        mode = sys.modules["afkline.mode"]
        self._run("/afk:session on", session_id="s9")
        assert mode.get_session_mode("s9") == "remote"
        self._run("/afk:session", session_id="s9")
        assert mode.get_session_mode("s9") == "local"
        self._run("/afk:session clear", session_id="s9")
        assert mode.get_session_mode("s9") is None

    def test_status(self, afkline: Any, project_dir: Path) -> None:
        afkline.write_global_mode("remote")
        sys.modules["afkline.mode"].set_project_mode(str(project_dir), "local")
        text = self._run("/afk:status", cwd=str(project_dir))
        assert "Global: remote" in text
        assert "Project: local" in text
        assert "Current effective mode: LOCAL" in text

    def test_help_lists_commands(self, afkline: Any) -> None:
        text = self._run("/afk:help")
        for name in ("on", "off", "project", "session", "status"):
            assert f"/afk:{name}" in text

    def test_unknown_command(self, afkline: Any) -> None:
        assert self._run("/afk:bogus") == "Unknown AFK command: bogus. Try /afk:help"

    def test_non_command_prompt_passes(self, afkline: Any) -> None:
        assert _cmd_mod().handle_prompt({"prompt": "fix the bug"}) is None
