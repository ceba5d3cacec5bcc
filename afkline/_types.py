"""Type definitions for afkline state structures."""
from __future__ import annotations

from typing import Any, TypedDict


class Envelope(TypedDict):
    update_id: int
    update: dict[str, Any]
    received_at: str


class ClaimRecord(TypedDict):
    update_id: int
    claimed_by: str
    claimed_at: str


class SessionRecord(TypedDict, total=False):
    session_id: str
    cwd: str
    tool_call: dict[str, Any]
    metadata: dict[str, Any]
    started_at: float
    last_heartbeat: float


class ReplyLockState(TypedDict):
    session_id: str
    message_id: int
    acquired_at: float


class MessageMapping(TypedDict, total=False):
    session_id: str
    chat_id: str
    timestamp: float
    kind: str


class SessionMapState(TypedDict):
    messages: dict[str, MessageMapping]
    latest_per_chat: dict[str, MessageMapping]


class ApprovalMeta(TypedDict, total=False):
    approval_id: str
    session_id: str
    cwd: str
    tool_name: str
    tool_input: dict[str, Any]
    message_id: int
    created_at: str
