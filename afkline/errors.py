"""Exception taxonomy for polling, claiming and configuration."""
from __future__ import annotations

import math


class AfklineError(Exception):
    """Base class for afkline errors."""


class ConfigurationMissing(AfklineError):
    """Bot token or chat id is not configured."""

    def __init__(self, missing: list[str]) -> None:
        self.missing = missing
        super().__init__(f"Missing configuration: {', '.join(missing)} (set them in ~/.afk/config.json)")


class TransientIOError(AfklineError):
    """A remote fetch or local read failed in a way worth retrying."""


class ClaimContention(AfklineError):
    """The claim lock could not be taken within its bound."""


class PollTimeout(AfklineError):
    """A poll ran out of time without claiming a message."""

    def __init__(self, claimant_id: str, timeout_ms: float) -> None:
        self.claimant_id = claimant_id
        self.timeout_ms = timeout_ms
        limit = "no limit" if math.isinf(timeout_ms) else f"{timeout_ms:.0f}ms"
        super().__init__(f"Poll for {claimant_id} timed out after {limit}")
