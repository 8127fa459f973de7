"""Validation and deletion-eligibility rules applied before every write."""
from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional

FORBIDDEN_NAME_SUBSTRING = "환영"
DELETION_EMBARGO_SECONDS = 60

_ONE_MICROSECOND = timedelta(microseconds=1)


@dataclass(frozen=True)
class DeletionCheck:
    """Outcome of :func:`can_delete`."""

    allowed: bool
    remaining_seconds: int = 0


def validate_name(name: object, *, forbidden: str = FORBIDDEN_NAME_SUBSTRING) -> bool:
    """Return ``True`` when ``name`` is a non-empty string free of ``forbidden``."""

    if not isinstance(name, str) or not name:
        return False
    return forbidden not in name


def validate_email(email: object) -> bool:
    """Return ``True`` when ``email`` is a non-empty string containing ``@``."""

    if not isinstance(email, str) or not email:
        return False
    return "@" in email


def can_delete(
    created_at: Optional[datetime],
    now: datetime,
    *,
    embargo_seconds: int = DELETION_EMBARGO_SECONDS,
) -> DeletionCheck:
    """Decide whether a record created at ``created_at`` may be removed at ``now``.

    Records without a creation timestamp are deletable immediately. Otherwise the
    embargo must have fully elapsed; the remaining wait is rounded up to whole
    seconds and is never reported as less than one.
    """

    if created_at is None:
        return DeletionCheck(allowed=True)

    embargo = timedelta(seconds=embargo_seconds)
    elapsed = now - created_at
    if elapsed >= embargo:
        return DeletionCheck(allowed=True)

    remaining_us = (embargo - elapsed) // _ONE_MICROSECOND
    remaining = math.ceil(remaining_us / 1_000_000)
    return DeletionCheck(allowed=False, remaining_seconds=max(1, remaining))


__all__ = [
    "DELETION_EMBARGO_SECONDS",
    "DeletionCheck",
    "FORBIDDEN_NAME_SUBSTRING",
    "can_delete",
    "validate_email",
    "validate_name",
]
