"""Failure kinds surfaced by tracking operations.

Every operation either returns its result or raises exactly one of these.
Messages are safe to show to callers; they never carry internal ids or
stack traces.
"""

from __future__ import annotations


class TrackerError(Exception):
    """Base class for experiment tracking failures."""

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ValidationError(TrackerError):
    """Input is malformed or out of range."""


class NotFoundError(TrackerError):
    """Record is absent, soft-deleted, or owned by someone else.

    The three causes share one message so callers cannot probe for
    other users' records.
    """

    def __init__(self, message: str = "Experiment not found") -> None:
        super().__init__(message)


class StoreUnavailableError(TrackerError):
    """The database call failed or timed out."""

    def __init__(self, message: str = "Experiment store unavailable") -> None:
        super().__init__(message)


class ConcurrentUpdateError(TrackerError):
    """Record changed between read and write; nothing was applied."""

    def __init__(
        self, message: str = "Experiment was modified concurrently, retry the update"
    ) -> None:
        super().__init__(message)
