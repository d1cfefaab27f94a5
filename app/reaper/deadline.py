"""
Deadline Policy
===============
Decides whether a build or stage has outlived its allowed window.
"""
from datetime import datetime, timedelta, timezone
from typing import Optional


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def is_exceeded(
    reference: datetime,
    limit: timedelta,
    buffer: timedelta,
    now: Optional[datetime] = None,
) -> bool:
    """
    Return True when more than ``limit + buffer`` has elapsed since ``reference``.

    Exact equality is not exceeded. Callers sweeping many builds should pass
    the same ``now`` to every comparison of a pass.
    """
    if now is None:
        now = utcnow()
    return now - reference > limit + buffer
