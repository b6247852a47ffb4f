"""Split a window into upstream-legal fetch segments"""

from dataclasses import dataclass
from datetime import date, timedelta
from typing import Iterator, List, Optional, Tuple

from reportsync.core.exceptions import ValidationError
from reportsync.sync.models import Granularity, PersistenceMode
from reportsync.sync.window import SyncWindow, iter_periods, period_last_day


@dataclass(frozen=True)
class Segment:
    """Periods fetched by one paginated call series; start/end are the request dates"""

    start: Optional[date]
    end: Optional[date]
    periods: Tuple[date, ...] = ()

    @property
    def is_snapshot(self) -> bool:
        return self.start is None

    @property
    def last_period(self) -> Optional[date]:
        return self.periods[-1] if self.periods else None

    def __str__(self) -> str:
        if self.is_snapshot:
            return "snapshot"
        if self.start == self.end:
            return self.start.isoformat()
        return f"{self.start}~{self.end}"


def split_by_span(start: date, end: date, max_span_days: Optional[int] = None) -> Iterator[Tuple[date, date]]:
    """Contiguous sub-ranges of at most max_span_days days covering [start, end] exactly"""
    if max_span_days is not None and max_span_days <= 0:
        raise ValidationError(f"max_span_days must be positive, got {max_span_days}")
    if start > end:
        return
    if max_span_days is None:
        yield start, end
        return
    current = start
    while current <= end:
        chunk_end = min(current + timedelta(days=max_span_days - 1), end)
        yield current, chunk_end
        current = chunk_end + timedelta(days=1)


def plan_segments(
    window: SyncWindow,
    persistence_mode: PersistenceMode,
    max_span_days: Optional[int] = None,
) -> List[Segment]:
    """
    Overwrite-by-period and month tasks fetch one elementary period per segment
    so each period can be archived and rewritten on its own.
    Upsert-by-key day tasks fetch span-limited ranges.
    """
    if window.is_snapshot:
        return [Segment(None, None)]
    if window.empty:
        return []

    granularity = window.granularity
    per_period = (
        granularity == Granularity.MONTH
        or persistence_mode == PersistenceMode.OVERWRITE_BY_PERIOD
    )

    if per_period:
        return [
            Segment(p, period_last_day(p, granularity), (p,))
            for p in iter_periods(window.start, window.end, granularity)
        ]

    return [
        Segment(s, e, tuple(iter_periods(s, e, granularity)))
        for s, e in split_by_span(window.start, window.end, max_span_days)
    ]
