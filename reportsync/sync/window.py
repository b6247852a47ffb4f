"""
Window planning: which elementary periods a run must fetch.

Cold start (no cursor): `default_lookback` periods ending at `end`.
Warm start: from the period right after the cursor's last_end_timestamp up to `end`.
A window whose start is after its end is empty and the run is skipped.
`end` defaults to the last closed period: yesterday, or the previous month.
"""

import calendar
from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta
from typing import Callable, Iterator, List, Optional
from zoneinfo import ZoneInfo

from reportsync.core.exceptions import ValidationError
from reportsync.logging_config.logger import setup_logger
from reportsync.sync.models import Granularity, RunOptions, SyncCursor, SyncMode

logger = setup_logger(__name__)

END_OF_DAY = time(23, 59, 59, 999000)


def period_start(d: date, granularity: Granularity) -> date:
    if granularity == Granularity.MONTH:
        return d.replace(day=1)
    return d


def add_periods(d: date, granularity: Granularity, n: int) -> date:
    """Shift a period start by n periods (negative n goes back)"""
    if granularity == Granularity.MONTH:
        month_index = d.year * 12 + (d.month - 1) + n
        return date(month_index // 12, month_index % 12 + 1, 1)
    return d + timedelta(days=n)


def period_last_day(d: date, granularity: Granularity) -> date:
    if granularity == Granularity.MONTH:
        return d.replace(day=calendar.monthrange(d.year, d.month)[1])
    return d


def period_end_timestamp(d: date, granularity: Granularity) -> datetime:
    """Inclusive end instant of the period starting at d"""
    return datetime.combine(period_last_day(d, granularity), END_OF_DAY)


def iter_periods(start: date, end: date, granularity: Granularity) -> Iterator[date]:
    """Yield elementary period starts between start and end, inclusive"""
    if granularity == Granularity.NONE:
        return
    current = start
    while current <= end:
        yield current
        current = add_periods(current, granularity, 1)


def period_label(d: date, granularity: Granularity) -> str:
    if granularity == Granularity.MONTH:
        return d.strftime("%Y-%m")
    return d.isoformat()


@dataclass(frozen=True)
class SyncWindow:
    """Inclusive [start, end] range of elementary period starts"""

    granularity: Granularity
    start: Optional[date] = None
    end: Optional[date] = None

    @property
    def is_snapshot(self) -> bool:
        return self.granularity == Granularity.NONE

    @property
    def empty(self) -> bool:
        if self.is_snapshot:
            return False
        return self.start > self.end

    def periods(self) -> List[date]:
        if self.is_snapshot:
            return []
        return list(iter_periods(self.start, self.end, self.granularity))

    def __str__(self) -> str:
        if self.is_snapshot:
            return "snapshot"
        return f"{self.start} ~ {self.end}"


@dataclass
class PlannerConfig:
    timezone: str = "Asia/Shanghai"
    clock: Optional[Callable[[], datetime]] = field(default=None)

    def __post_init__(self):
        if self.clock is None:
            tz = ZoneInfo(self.timezone)
            self.clock = lambda: datetime.now(tz)


class WindowPlanner:
    def __init__(self, config: Optional[PlannerConfig] = None):
        self.config = config or PlannerConfig()

    def today(self) -> date:
        return self.config.clock().date()

    def last_closed_period(self, granularity: Granularity) -> date:
        """Start of the latest period that ended before now"""
        return add_periods(period_start(self.today(), granularity), granularity, -1)

    def resolve_end(self, granularity: Granularity, end_date: Optional[date] = None) -> date:
        """Requested end date rounded to the granularity, or the last closed period"""
        if end_date is None:
            return self.last_closed_period(granularity)
        return period_start(end_date, granularity)

    def plan(
        self,
        granularity: Granularity,
        default_lookback: int,
        cursor: Optional[SyncCursor] = None,
        options: Optional[RunOptions] = None,
        mode: SyncMode = SyncMode.INCREMENTAL,
    ) -> SyncWindow:
        """
        Compute the window for one run

        Args:
            granularity: Elementary period of the task
            default_lookback: Number of periods fetched on a cold start
            cursor: Stored cursor (ignored in full mode)
            options: end_date / start_date / default_lookback overrides
            mode: incremental or full

        Returns:
            SyncWindow, possibly empty
        """
        if granularity == Granularity.NONE:
            return SyncWindow(granularity)

        options = options or RunOptions()
        lookback = options.default_lookback or default_lookback
        if lookback <= 0:
            raise ValidationError(f"default_lookback must be positive, got {lookback}")

        end = self.resolve_end(granularity, options.end_date)
        cold_start = min(add_periods(end, granularity, -(lookback - 1)), end)

        if mode == SyncMode.FULL:
            if options.start_date is None:
                return SyncWindow(granularity, cold_start, end)
            start = period_start(options.start_date, granularity)
            if start > end:
                raise ValidationError(f"start_date {options.start_date} is after end_date {end}")
            return SyncWindow(granularity, start, end)

        if cursor is not None and cursor.last_end_timestamp is not None:
            last = period_start(cursor.last_end_timestamp.date(), granularity)
            return SyncWindow(granularity, add_periods(last, granularity, 1), end)

        return SyncWindow(granularity, cold_start, end)
