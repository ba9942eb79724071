"""In-fiction clock helpers using whole minutes."""

from __future__ import annotations

URGENT_MINUTES = 60


def total_minutes(start_hour: int, end_hour: int) -> int:
    return max(0, (end_hour - start_hour) * 60)


def remaining_minutes(start_hour: int, end_hour: int, minutes_used: int) -> int:
    return max(0, total_minutes(start_hour, end_hour) - minutes_used)


def progress(start_hour: int, end_hour: int, minutes_used: int) -> float:
    total = total_minutes(start_hour, end_hour)
    if total <= 0:
        return 0.0
    return min(1.0, max(0.0, minutes_used / total))


def is_urgent(start_hour: int, end_hour: int, minutes_used: int) -> bool:
    return remaining_minutes(start_hour, end_hour, minutes_used) <= URGENT_MINUTES


def clock_label(start_hour: int, minutes_used: int) -> str:
    """Wall-clock time reached after ``minutes_used`` minutes, as ``HH:MM``."""
    elapsed = start_hour * 60 + max(0, minutes_used)
    hours, minutes = divmod(elapsed, 60)
    return f"{hours % 24:02d}:{minutes:02d}"


def format_remaining(minutes: int) -> str:
    hours, mins = divmod(max(0, minutes), 60)
    return f"{hours}:{mins:02d}"
