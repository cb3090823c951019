"""Wall-clock rotation schedule.

All instants are naive datetimes in the host's local time, so an
``update-hour`` of 12 means noon on the server's clock. Polling is
driven by the caller; nothing here holds a timer.
"""

from datetime import datetime, timedelta

_ONE_DAY = timedelta(days=1)

HUMAN_TIME_FORMAT = "%Y-%m-%d %H:%M:%S"


def validate_hour(hour_of_day: int) -> int:
    if not 0 <= hour_of_day <= 23:  # noqa: PLR2004
        raise ValueError(f"hour_of_day must be 0-23, got {hour_of_day}")
    return hour_of_day


def compute_next(hour_of_day: int, now: datetime) -> datetime:
    """Return today at ``hour_of_day:00:00`` if still ahead of ``now``, else tomorrow at that time."""
    validate_hour(hour_of_day)
    candidate = now.replace(hour=hour_of_day, minute=0, second=0, microsecond=0)
    if candidate <= now:
        candidate += _ONE_DAY
    return candidate


def has_elapsed(next_rotation: datetime, now: datetime) -> bool:
    return now >= next_rotation


def epoch_millis(instant: datetime) -> int:
    """Milliseconds since the Unix epoch for a local-time instant."""
    return int(instant.timestamp() * 1000)


def time_remaining(next_rotation: datetime, now: datetime) -> tuple[int, int]:
    """Whole (hours, minutes) left until ``next_rotation``, floored at zero."""
    seconds = max(0, int((next_rotation - now).total_seconds()))
    return seconds // 3600, (seconds % 3600) // 60
