"""Execute one (account, task) run across its dimensions and advance cursors"""

from datetime import date, datetime
from typing import Callable, List, Optional

from reportsync.core.exceptions import ConfigurationError
from reportsync.logging_config.logger import setup_logger
from reportsync.sync.chunker import plan_segments
from reportsync.sync.cursor_store import CursorStore
from reportsync.sync.fanout import FanoutEnumerator
from reportsync.sync.models import (
    Account,
    AccountRunResult,
    Dimension,
    FetchContext,
    FetchResult,
    PersistenceMode,
    RunOptions,
    RunOutcome,
    RunStatus,
    SyncCursor,
    SyncMode,
    join_errors,
)
from reportsync.sync.pacing import NoPacer, Pacer
from reportsync.sync.pagination import PaginationConfig, PaginationDriver
from reportsync.sync.persistence import PersistencePolicy
from reportsync.sync.tasks import TaskDescriptor
from reportsync.sync.window import WindowPlanner, period_end_timestamp

logger = setup_logger(__name__)


class SyncRunner:
    """
    PLANNING -> FETCHING/PERSISTING per segment -> FINALIZING.

    Segment and dimension failures are recorded and the run moves on.
    The cursor only advances through the contiguous prefix of fully completed
    segments, so a later run re-fetches everything from the first gap.
    """

    def __init__(
        self,
        cursor_store: CursorStore,
        fanout: FanoutEnumerator,
        persistence: PersistencePolicy,
        planner: Optional[WindowPlanner] = None,
        pacer: Optional[Pacer] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.cursor_store = cursor_store
        self.fanout = fanout
        self.persistence = persistence
        self.planner = planner or WindowPlanner()
        self.pacer = pacer or NoPacer()
        self.clock = clock or self.planner.config.clock

    def run(
        self,
        account: Account,
        descriptor: TaskDescriptor,
        mode: SyncMode = SyncMode.INCREMENTAL,
        options: Optional[RunOptions] = None,
    ) -> AccountRunResult:
        task = descriptor.task_type.value
        if not descriptor.supports(mode):
            raise ConfigurationError(f"Task {task} does not support {mode.value} mode")

        result = AccountRunResult(account_id=account.id, task_type=task, account_name=account.name)
        options = options or RunOptions()

        try:
            dimensions = self.fanout.resolve(account, descriptor.dimension_kind)
        except Exception as e:
            logger.error(f"[{task}] account {account.id}: dimension lookup failed: {e}", exc_info=True)
            result.error = f"dimension lookup failed: {e}"
            return result

        if not dimensions:
            logger.info(f"[{task}] account {account.id}: no {descriptor.dimension_kind.value} dimensions, skipping")
            return result

        if descriptor.persistence_mode == PersistenceMode.ARCHIVE_THEN_FULL_RESYNC:
            try:
                self.persistence.archive_before_full(descriptor, account.id)
            except Exception as e:
                logger.error(f"[{task}] account {account.id}: archive before resync failed: {e}", exc_info=True)
                result.error = f"archive failed: {e}"
                return result

        for i, dimension in enumerate(dimensions):
            if i > 0:
                self.pacer.pause("dimension")
            try:
                outcome = self._run_dimension(account, descriptor, dimension, mode, options)
            except Exception as e:
                # Planning or cursor read failed before any segment ran
                logger.error(
                    f"[{task}] account {account.id} dimension {self._label(dimension)} failed: {e}",
                    exc_info=True,
                )
                outcome = RunOutcome(
                    account_id=account.id,
                    task_type=task,
                    dimension_key=dimension.key if dimension else None,
                    status=RunStatus.FAILED,
                    error=str(e),
                )
            result.outcomes.append(outcome)

        level = logger.info if result.success else logger.warning
        prefix = "✅ " if result.success else ""
        level(
            f"{prefix}[{task}] account {account.id} finished: status={result.status.value}, "
            f"records={result.record_count}, dimensions={len(result.outcomes)}"
        )
        return result

    def _run_dimension(
        self,
        account: Account,
        descriptor: TaskDescriptor,
        dimension: Optional[Dimension],
        mode: SyncMode,
        options: RunOptions,
    ) -> RunOutcome:
        task = descriptor.task_type.value
        dimension_key = dimension.key if dimension else None
        label = f"[{task}] {account.id}/{self._label(dimension)}"
        outcome = RunOutcome(account_id=account.id, task_type=task, dimension_key=dimension_key)

        tracks_cursor = mode == SyncMode.INCREMENTAL and descriptor.windowed
        cursor = self.cursor_store.get(account.id, task, dimension_key) if tracks_cursor else None

        window = self.planner.plan(
            descriptor.granularity,
            descriptor.default_lookback,
            cursor=cursor,
            options=options,
            mode=mode,
        )
        if window.empty:
            logger.info(f"{label} up to date (window {window}), skipping")
            outcome.skipped = True
            return outcome

        outcome.start_date = window.start
        outcome.end_date = window.end
        segments = plan_segments(window, descriptor.persistence_mode, descriptor.max_span_days)
        logger.info(f"{label} window {window}: {len(segments)} segment(s)")

        driver = PaginationDriver(PaginationConfig(page_size=descriptor.page_size), self.pacer)
        errors: List[str] = []
        completed = 0
        completed_through: Optional[date] = None
        prefix_intact = True

        for i, segment in enumerate(segments):
            if i > 0:
                self.pacer.pause("segment")
            ctx = FetchContext(account=account, dimension=dimension, start=segment.start, end=segment.end)
            try:
                fetched: FetchResult = driver.run(
                    lambda offset, length: descriptor.fetch_fn(ctx, offset, length),
                    label=f"{label} {segment}",
                )
                fetched.record_count = self.persistence.write_segment(
                    descriptor, account.id, dimension_key, segment, fetched.records
                )
            except Exception as e:
                logger.error(f"{label} segment {segment} failed: {e}", exc_info=True)
                errors.append(f"{segment}: {e}")
                prefix_intact = False
                continue

            outcome.record_count += fetched.record_count

            if fetched.partial:
                logger.warning(f"{label} segment {segment} partially fetched ({fetched.record_count} rows kept)")
                errors.append(f"{segment}: partially fetched: {fetched.error}")
                prefix_intact = False
                continue

            completed += 1
            if prefix_intact and segment.last_period is not None:
                completed_through = segment.last_period
            logger.debug(f"{label} segment {segment}: {fetched.record_count} rows")

        outcome.error = join_errors(errors)
        if not errors:
            outcome.status = RunStatus.SUCCESS
        elif completed == 0 and outcome.record_count == 0:
            outcome.status = RunStatus.FAILED
        else:
            outcome.status = RunStatus.PARTIAL

        if tracks_cursor and completed_through is not None:
            closed = self.planner.last_closed_period(descriptor.granularity)
            if completed_through > closed:
                # The current period keeps changing upstream
                logger.info(f"{label} {completed_through} is still open, cursor held at {closed}")
                completed_through = closed

        if tracks_cursor and (completed_through is not None or cursor is not None):
            try:
                self._record_cursor(cursor, account.id, descriptor, dimension_key, completed_through, outcome)
            except Exception as e:
                logger.error(f"{label} cursor update failed: {e}", exc_info=True)
                outcome.error = join_errors([outcome.error, f"cursor update failed: {e}"])
                if outcome.status == RunStatus.SUCCESS:
                    outcome.status = RunStatus.PARTIAL

        return outcome

    def _record_cursor(
        self,
        cursor: Optional[SyncCursor],
        account_id: str,
        descriptor: TaskDescriptor,
        dimension_key: Optional[str],
        completed_through: Optional[date],
        outcome: RunOutcome,
    ) -> None:
        """Store the run status; last_end_timestamp only moves forward and only when a period completed"""
        if cursor is None:
            cursor = SyncCursor(
                account_id=account_id,
                task_type=descriptor.task_type.value,
                dimension_key=dimension_key,
            )
        if completed_through is not None:
            end_ts = period_end_timestamp(completed_through, descriptor.granularity)
            # Never move backward (an explicit end_date may sit before the stored mark)
            if cursor.last_end_timestamp is None or end_ts > cursor.last_end_timestamp:
                cursor.last_end_timestamp = end_ts
        cursor.last_sync_at = self.clock()
        cursor.last_record_count = outcome.record_count
        cursor.last_status = outcome.status
        cursor.last_error_message = outcome.error
        self.cursor_store.save(cursor)

    @staticmethod
    def _label(dimension: Optional[Dimension]) -> str:
        return dimension.key if dimension else "-"
