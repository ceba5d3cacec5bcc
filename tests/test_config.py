"""Tests for configuration precedence logic."""
from __future__ import annotations

import sys
from pathlib import Path
from typing import Any

import pytest


def _config_mod() -> Any:
    """Get the afkline.config module (not shadowed by __init__.py re-exports)."""
    return sys.modules["afkline.config"]


def _use_config(monkeypatch: pytest.MonkeyPatch, tmp_path: Path, body: str) -> None:
    cfg = _config_mod()
    config = tmp_path / "config.json"
    config.write_text(body)
    monkeypatch.setattr(cfg, "CONFIG_PATH", config)
    monkeypatch.setattr(cfg, "_afk_config", None)


class TestCfgBool:
    """Test _cfg_bool: env var -> config file -> default."""

    def test_env_var_1_is_true(self, afkline: Any, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("TEST_BOOL", "1")
        assert afkline._cfg_bool("TEST_BOOL", "test_bool", False) is True

    def test_env_var_0_is_false(self, afkline: Any, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("TEST_BOOL", "0")
        assert afkline._cfg_bool("TEST_BOOL", "test_bool", True) is False

    def test_config_file_bool(self, afkline: Any, monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
        _use_config(monkeypatch, tmp_path, '{"test_bool": true}')
        monkeypatch.delenv("TEST_BOOL", raising=False)
        assert afkline._cfg_bool("TEST_BOOL", "test_bool", False) is True

    def test_default_used_when_no_env_or_config(self, afkline: Any, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.delenv("TEST_BOOL", raising=False)
        assert afkline._cfg_bool("TEST_BOOL", "missing_key", True) is True
        assert afkline._cfg_bool("TEST_BOOL", "missing_key", False) is False

    def test_env_overrides_config(self, afkline: Any, monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
        _use_config(monkeypatch, tmp_path, '{"test_bool": true}')
        monkeypatch.setenv("TEST_BOOL", "0")
        assert afkline._cfg_bool("TEST_BOOL", "test_bool", True) is False


class TestCfgInt:
    """Test _cfg_int: env var -> config file -> default."""

    def test_env_var(self, afkline: Any, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("TEST_INT", "42")
        assert afkline._cfg_int("TEST_INT", "test_int", 0) == 42

    def test_invalid_env_falls_back(self, afkline: Any, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("TEST_INT", "soon")
        assert afkline._cfg_int("TEST_INT", "test_int", 7) == 7

    def test_config_file(self, afkline: Any, monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
        _use_config(monkeypatch, tmp_path, '{"test_int": 300}')
        monkeypatch.delenv("TEST_INT", raising=False)
        assert afkline._cfg_int("TEST_INT", "test_int", 0) == 300

    def test_config_bool_is_not_int(self, afkline: Any, monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
        _use_config(monkeypatch, tmp_path, '{"test_int": true}')
        monkeypatch.delenv("TEST_INT", raising=False)
        assert afkline._cfg_int("TEST_INT", "test_int", 5) == 5


class TestCfgStrAndList:
    """Test _cfg_str and _cfg_list."""

    def test_str_from_int_config(self, afkline: Any, monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
        _use_config(monkeypatch, tmp_path, '{"telegram_chat_id": -100123}')
        monkeypatch.delenv("TEST_CHAT", raising=False)
        assert afkline._cfg_str("TEST_CHAT", "telegram_chat_id", "") == "-100123"

    def test_list_from_env(self, afkline: Any, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("TEST_LIST", "Read,Grep,")
        assert afkline._cfg_list("TEST_LIST", "test_list", set()) == {"Read", "Grep"}

    def test_list_from_config(self, afkline: Any, monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
        _use_config(monkeypatch, tmp_path, '{"test_list": ["Read", "WebSearch"]}')
        monkeypatch.delenv("TEST_LIST", raising=False)
        assert afkline._cfg_list("TEST_LIST", "test_list", {"x"}) == {"Read", "WebSearch"}

    def test_corrupt_config_is_empty(self, afkline: Any, monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
        _use_config(monkeypatch, tmp_path, "{nope")
        assert afkline._load_config() == {}


class TestCredentials:
    """Test credential validation."""

    def test_valid(self, afkline: Any, monkeypatch: pytest.MonkeyPatch) -> None:
        cfg = _config_mod()
        monkeypatch.setattr(cfg, "BOT_TOKEN", "123456:ABCdef")
        monkeypatch.setattr(cfg, "CHAT_ID", "-100123")
        assert cfg.validate_credentials() == []

    def test_bad_formats(self, afkline: Any, monkeypatch: pytest.MonkeyPatch) -> None:
        cfg = _config_mod()
        monkeypatch.setattr(cfg, "BOT_TOKEN", "nocolon")
        monkeypatch.setattr(cfg, "CHAT_ID", "chat")
        assert len(cfg.validate_credentials()) == 2

    def test_require_credentials(self, afkline: Any, monkeypatch: pytest.MonkeyPatch) -> None:
        cfg = _config_mod()
        monkeypatch.setattr(cfg, "BOT_TOKEN", "")
        monkeypatch.setattr(cfg, "CHAT_ID", "")
        with pytest.raises(afkline.ConfigurationMissing) as exc:
            cfg.require_credentials()
        assert exc.value.missing == ["telegram_bot_token", "telegram_chat_id"]
        assert "telegram_bot_token" in str(exc.value)

    def test_present(self, afkline: Any) -> None:
        _config_mod().require_credentials()
