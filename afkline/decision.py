"""Hook results: what an interaction tells the host, and how it is emitted."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any

# Terminal state → host decision
DECISIONS = ("allow", "deny", "ask")


@dataclass
class HookDecision:
    """A PreToolUse permission decision."""

    decision: str
    reason: str
    state: str
    updated_input: dict[str, Any] | None = None

    def __post_init__(self) -> None:
        if self.decision not in DECISIONS:
            raise ValueError(f"Unknown permission decision {self.decision!r}")

    def to_output(self) -> dict[str, Any]:
        output: dict[str, Any] = {
            "hookEventName": "PreToolUse",
            "permissionDecision": self.decision,
            "permissionDecisionReason": self.reason,
        }
        if self.updated_input is not None:
            output["updatedInput"] = self.updated_input
        return {"hookSpecificOutput": output}


@dataclass
class HostAction:
    """Outcome of a Stop or SessionStart interaction.

    kind is "continue" (feed text back to the agent), "stop" (let it end)
    or "no_opinion" (emit nothing). The entrypoint turns it into exit codes
    and output.
    """

    kind: str
    state: str
    text: str = ""

    @classmethod
    def continue_with(cls, text: str, state: str = "reply") -> HostAction:
        return cls("continue", state, text)

    @classmethod
    def stop(cls, state: str) -> HostAction:
        return cls("stop", state)

    @classmethod
    def no_opinion(cls, state: str = "cancelled") -> HostAction:
        return cls("no_opinion", state)
