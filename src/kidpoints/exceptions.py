"""Custom exception hierarchy for the KidPoints package."""

from __future__ import annotations


class KidPointsError(Exception):
    """Base class for all KidPoints specific errors."""

    code = "kidpoints_error"


class NotFoundError(KidPointsError):
    """Raised when a kid, template, reward, family or redemption lookup fails."""

    code = "not_found"


class AlreadyCompletedError(KidPointsError):
    """Raised when a daily task has already been marked as done."""

    code = "already_completed"


class DuplicateAssignmentError(KidPointsError):
    """Raised when a kid already has an assignment for a task template."""

    code = "duplicate_assignment"


class InsufficientBalanceError(KidPointsError):
    """Raised when a redemption costs more points than the kid holds."""

    code = "insufficient_balance"


class AlreadyGrantedBonusError(KidPointsError):
    """Raised when a bonus for the same period was already credited."""

    code = "already_granted_bonus"


class NotEligibleError(KidPointsError):
    """Raised when a bonus is claimed before every task in the period is done."""

    code = "not_eligible"


class InvalidTransitionError(KidPointsError):
    """Raised when a redemption decision is not legal from its current state."""

    code = "invalid_transition"


class ConcurrencyConflictError(KidPointsError):
    """Raised when a concurrent writer won a race on a constraint or lock."""

    code = "concurrency_conflict"


class RecordInUseError(KidPointsError):
    """Raised when deleting a catalog record that history still references."""

    code = "record_in_use"


__all__ = [
    "KidPointsError",
    "NotFoundError",
    "AlreadyCompletedError",
    "DuplicateAssignmentError",
    "InsufficientBalanceError",
    "AlreadyGrantedBonusError",
    "NotEligibleError",
    "InvalidTransitionError",
    "ConcurrencyConflictError",
    "RecordInUseError",
]
