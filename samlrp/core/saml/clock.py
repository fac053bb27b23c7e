"""Clock skew policy for time comparisons."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta

DEFAULT_CLOCK_SKEW = timedelta(seconds=60)


def utcnow() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(UTC)


def within_window(
    now: datetime,
    not_before: datetime | None,
    not_on_or_after: datetime | None,
    skew: timedelta = DEFAULT_CLOCK_SKEW,
) -> bool:
    """Check whether ``now`` falls inside a validity window.

    Skew widens both sides of the window. A missing bound leaves that side
    unconstrained.

    Args:
        now: Instant being checked.
        not_before: Earliest valid instant, or None.
        not_on_or_after: Latest valid instant, or None.
        skew: Tolerance applied symmetrically.

    Returns:
        True if ``now`` lies within the widened window.
    """
    if not_before is not None and now < not_before - skew:
        return False
    if not_on_or_after is not None and now > not_on_or_after + skew:
        return False
    return True


def format_instant(value: datetime | None) -> str:
    """Format an instant for log and error messages."""
    if value is None:
        return "(not present)"
    return value.astimezone(UTC).strftime("%Y-%m-%dT%H:%M:%SZ")
