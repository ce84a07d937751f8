"""
Report periods

Turns a period name into a half-open ``[start, end)`` range in the shop's
timezone. Weeks start on Monday.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional
from zoneinfo import ZoneInfo

PERIODS = ("daily", "weekly", "monthly")


@dataclass(frozen=True)
class DateRange:
    start: datetime
    end: datetime
    label: str
    period: str
    is_today: bool = False

    @property
    def days(self) -> float:
        return (self.end - self.start).total_seconds() / 86400

    def shifted(self, delta: timedelta) -> "DateRange":
        """Same range moved by ``delta``, used for previous-period comparison"""
        return DateRange(
            start=self.start - delta,
            end=self.end - delta,
            label=self.label,
            period=self.period,
            is_today=False,
        )


def _start_of_day(value: datetime) -> datetime:
    return value.replace(hour=0, minute=0, second=0, microsecond=0)


def _add_month(value: datetime, months: int) -> datetime:
    month_index = value.month - 1 + months
    return value.replace(year=value.year + month_index // 12, month=month_index % 12 + 1, day=1)


def compute_range(
    period: str,
    today: bool = False,
    now: Optional[datetime] = None,
    tz: str = "America/Monterrey",
) -> DateRange:
    """
    Compute the report range for ``period``.

    ``today`` selects the current (still open) day, week or month; otherwise
    the last complete one is used.

    Raises:
        ValueError: unknown period
    """
    period = period.lower()
    if period not in PERIODS:
        raise ValueError(f"Period must be one of: {list(PERIODS)}")

    zone = ZoneInfo(tz)
    now = now.astimezone(zone) if now is not None else datetime.now(zone)
    midnight = _start_of_day(now)

    if period == "daily":
        start = midnight if today else midnight - timedelta(days=1)
        end = start + timedelta(days=1)
        prefix = "Today" if today else "Yesterday"
        label = f"{prefix} {start:%d %b %Y}"
    elif period == "weekly":
        monday = midnight - timedelta(days=midnight.weekday())
        start = monday if today else monday - timedelta(days=7)
        end = start + timedelta(days=7)
        last_day = end - timedelta(days=1)
        label = f"Week {start:%d %b} - {last_day:%d %b %Y}"
    else:
        first = midnight.replace(day=1)
        start = first if today else _add_month(first, -1)
        end = _add_month(start, 1)
        label = f"{start:%B %Y}"

    return DateRange(start=start, end=end, label=label, period=period, is_today=today)


def previous_range(current: DateRange) -> Optional[DateRange]:
    """Equivalent previous range for comparison; monthly reports have none"""
    if current.period == "daily":
        return current.shifted(timedelta(days=1))
    if current.period == "weekly":
        return current.shifted(timedelta(days=7))
    return None
