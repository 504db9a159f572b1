"""
Error taxonomy for the adaptivity engine.

Only structurally impossible requests (a slot that cannot resolve to any
variant) reach the caller. Guard errors are raised inside the guard
interpreter and always caught by the compiled predicate.
"""
from __future__ import annotations


class AdaptivityError(Exception):
    """Base class for all adaptivity engine errors."""
    pass


class NoVariantsError(AdaptivityError, ValueError):
    """Raised when a slot has no variants or no candidate can be resolved."""

    def __init__(self, slot_id: str, message: str | None = None):
        self.slot_id = slot_id
        super().__init__(message or f"No variants in slot {slot_id}")


class PolicyDenialWithoutFallback(NoVariantsError):
    """Raised when the policy denies a slot that has no fallback to show."""

    def __init__(self, slot_id: str):
        super().__init__(
            slot_id, f"Policy denied slot {slot_id} and it has no fallback variant"
        )


class GuardEvaluationError(AdaptivityError):
    """Raised when a guard expression cannot be evaluated."""
    pass


class GuardSyntaxError(GuardEvaluationError):
    """Raised when a guard expression cannot be parsed."""

    def __init__(self, message: str, position: int | None = None):
        self.position = position
        if position is not None:
            message = f"{message} (at position {position})"
        super().__init__(message)
