from __future__ import annotations


class ScheduleInputError(ValueError):
    """Malformed input: raised before any amount/date computation runs."""


class NotFoundError(ValueError):
    pass


class ItemLockedError(ValueError):
    pass


class UnresolvedScheduleError(RuntimeError):
    """
    The validator received an item without a due date.

    Unreachable through apply_template, which resolves every date first.
    """
