"""afkline: route Claude Code permission prompts and replies through Telegram."""
from __future__ import annotations

__version__ = "1.0.0"

# Re-export the primary entry points
from afkline._log import debug, log, setup_logging  # noqa: F401
from afkline.approval import handle_pre_tool_use  # noqa: F401
from afkline.claim import ClaimCoordinator  # noqa: F401
from afkline.commands import dispatch as dispatch_command, handle_prompt, register as register_command  # noqa: F401
from afkline.config import (  # noqa: F401
    AFK_DIR,
    BOT_TOKEN,
    CHAT_ID,
    CLAUDE_DIR,
    CONFIG_PATH,
    STATE_DIR,
    _cfg_bool,
    _cfg_int,
    _cfg_list,
    _cfg_str,
    _load_config,
    require_credentials,
    validate_credentials,
)
from afkline.decision import HookDecision, HostAction  # noqa: F401
from afkline.errors import (  # noqa: F401
    AfklineError,
    ClaimContention,
    ConfigurationMissing,
    PollTimeout,
    TransientIOError,
)
from afkline.mode import effective_mode, read_global_mode, write_global_mode  # noqa: F401
from afkline.poller import DistributedPoller, poll  # noqa: F401
from afkline.queue import MessageQueue  # noqa: F401
from afkline.questions import handle_ask_user_question  # noqa: F401
from afkline.session import SessionRegistry  # noqa: F401
from afkline.state import _clear_state, _locked_update, _read_state, _write_state  # noqa: F401
from afkline.stop import handle_stop  # noqa: F401
from afkline.telegram import _telegram_api, get_updates, send_message  # noqa: F401
