"""
Exception taxonomy for commguard.

``ConfigurationError`` and ``OracleUnavailable`` are internal: they are logged
and never surface as an ingestion failure. ``InvalidTransition``, ``NotFound``
and ``PersistenceError`` are reported to the caller.
"""

from __future__ import annotations


class CommguardError(Exception):
    """Base class for every error raised by commguard."""


class ConfigurationError(CommguardError):
    """A moderation or automation rule carries malformed conditions or actions."""

    def __init__(self, message: str, rule_id: str | None = None) -> None:
        super().__init__(message)
        self.rule_id = rule_id


class OracleUnavailable(CommguardError):
    """The external scoring oracle failed, timed out or returned garbage."""


class InvalidTransition(CommguardError):
    """A queue item cannot move from its current status with the requested action."""

    def __init__(self, item_id: str, current_status: str, action: str) -> None:
        super().__init__(
            f"Queue item {item_id} is {current_status}; cannot apply '{action}'"
        )
        self.item_id = item_id
        self.current_status = current_status
        self.action = action


class NotFound(CommguardError):
    """An unknown rule, queue item, community or target was referenced."""

    def __init__(self, kind: str, identifier: str) -> None:
        super().__init__(f"{kind} '{identifier}' not found")
        self.kind = kind
        self.identifier = identifier


class PersistenceError(CommguardError):
    """The storage layer failed; the caller may retry the same operation."""
