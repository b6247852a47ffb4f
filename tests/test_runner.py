"""Integration tests for SyncRunner against in-memory stores"""

from datetime import date, datetime

import pytest

from reportsync.core.exceptions import ConfigurationError
from reportsync.sync.fanout import FanoutEnumerator
from reportsync.sync.models import (
    DimensionKind,
    Granularity,
    Page,
    PersistenceMode,
    RunOptions,
    RunStatus,
    SyncMode,
)
from reportsync.sync.pacing import Pacer
from reportsync.sync.runner import SyncRunner
from reportsync.sync.tasks import ArchiveTarget, TaskType
from reportsync.sync.window import PlannerConfig, WindowPlanner

from conftest import NOW, ScriptedFetch, make_descriptor

END = date(2024, 3, 10)
DAYS = [date(2024, 3, 8), date(2024, 3, 9), date(2024, 3, 10)]


def _end_of(d: date) -> datetime:
    return datetime(d.year, d.month, d.day, 23, 59, 59, 999000)


def _daily(fetch, dims, n=2):
    for dim in dims:
        for d in DAYS:
            fetch.data[(dim, d)] = [{"id": f"{dim}-{d}-{i}"} for i in range(n)]


class RecordingPacer(Pacer):
    def __init__(self):
        self.reasons = []

    def pause(self, reason: str = "") -> None:
        self.reasons.append(reason)


@pytest.fixture
def fetch():
    return ScriptedFetch()


@pytest.fixture
def store_task(fetch):
    return make_descriptor(
        fetch,
        default_lookback=3,
        persistence_mode=PersistenceMode.OVERWRITE_BY_PERIOD,
        dimension_kind=DimensionKind.STORE,
        key_fields=(),
    )


@pytest.fixture
def account_task(fetch):
    return make_descriptor(
        fetch,
        default_lookback=3,
        persistence_mode=PersistenceMode.OVERWRITE_BY_PERIOD,
        key_fields=(),
    )


class TestColdAndWarmStart:
    """Tests for cursor creation and resumption"""

    def test_cold_start_90_days(self, runner, account, cursor_store, fetch):
        task = make_descriptor(fetch, default_lookback=90, max_span_days=31)
        result = runner.run(account, task, options=RunOptions(end_date=END))

        assert result.status == RunStatus.SUCCESS
        outcome = result.outcomes[0]
        assert outcome.start_date == date(2023, 12, 12)
        assert outcome.end_date == END
        assert [(s, e) for _, s, e in fetch.segments()] == [
            (date(2023, 12, 12), date(2024, 1, 11)),
            (date(2024, 1, 12), date(2024, 2, 11)),
            (date(2024, 2, 12), date(2024, 3, 10)),
        ]
        cursor = cursor_store.get(account.id, "allOrders")
        assert cursor.last_end_timestamp == datetime(2024, 3, 10, 23, 59, 59, 999000)
        assert cursor.last_status == RunStatus.SUCCESS
        assert cursor.last_sync_at == NOW

    def test_warm_start_five_days(self, runner, account, cursor_store, fetch):
        cursor_store.seed(account.id, "allOrders", None, _end_of(date(2024, 3, 5)))
        task = make_descriptor(fetch, default_lookback=90)

        result = runner.run(account, task, options=RunOptions(end_date=END))

        assert result.outcomes[0].start_date == date(2024, 3, 6)
        assert fetch.segments() == [(None, date(2024, 3, 6), END)]
        assert cursor_store.get(account.id, "allOrders").last_end_timestamp == _end_of(END)

    def test_empty_window_never_touches_cursor(self, runner, account, cursor_store, fetch):
        cursor_store.seed(account.id, "allOrders", None, _end_of(END))

        result = runner.run(account, make_descriptor(fetch))

        assert result.success
        assert result.skipped
        assert fetch.calls == []
        assert cursor_store.save_count == 0

    def test_cursor_never_moves_backward(self, runner, account, cursor_store, fetch):
        """An explicit end date behind the cursor is an empty window"""
        cursor_store.seed(account.id, "allOrders", None, _end_of(END))

        result = runner.run(account, make_descriptor(fetch), options=RunOptions(end_date=date(2024, 3, 1)))

        assert result.skipped
        assert cursor_store.get(account.id, "allOrders").last_end_timestamp == _end_of(END)


def _runner_at(moment, cursor_store, directory, persistence):
    planner = WindowPlanner(PlannerConfig(clock=lambda: moment))
    return SyncRunner(cursor_store, FanoutEnumerator(directory), persistence, planner, clock=lambda: moment)


class TestOpenPeriods:
    """The period containing now is fetched again once it has closed"""

    def test_day_synced_only_after_it_closes(self, account, cursor_store, directory, persistence, record_store, fetch):
        task = make_descriptor(
            fetch,
            default_lookback=1,
            persistence_mode=PersistenceMode.OVERWRITE_BY_PERIOD,
            key_fields=(),
        )
        day = date(2024, 3, 10)

        for moment, upstream in [
            (datetime(2024, 3, 10, 1, 0), 1),
            (datetime(2024, 3, 10, 7, 0), 20),
            (datetime(2024, 3, 11, 1, 0), 50),
        ]:
            fetch.data[(None, day)] = [{"n": i} for i in range(upstream)]
            _runner_at(moment, cursor_store, directory, persistence).run(account, task)

        assert [c[1] for c in fetch.calls] == [date(2024, 3, 9), day]
        live = [r for r in record_store.live("erp_test") if r["period"] == "2024-03-10"]
        assert len(live) == 50

    def test_month_synced_only_after_it_closes(self, account, cursor_store, directory, persistence, record_store, fetch):
        task = make_descriptor(
            fetch,
            granularity=Granularity.MONTH,
            default_lookback=1,
            persistence_mode=PersistenceMode.OVERWRITE_BY_PERIOD,
            key_fields=(),
        )
        march = date(2024, 3, 1)

        fetch.data[(None, march)] = [{"n": 0}]
        _runner_at(datetime(2024, 3, 1, 1, 0), cursor_store, directory, persistence).run(account, task)
        fetch.data[(None, march)] = [{"n": i} for i in range(10)]
        _runner_at(datetime(2024, 4, 1, 1, 0), cursor_store, directory, persistence).run(account, task)

        assert [c[1] for c in fetch.calls] == [date(2024, 2, 1), march]
        live = [r for r in record_store.live("erp_test") if r["period"] == "2024-03"]
        assert len(live) == 10
        assert cursor_store.get(account.id, "allOrders").last_end_timestamp == _end_of(date(2024, 3, 31))

    def test_explicit_end_today_holds_cursor_at_yesterday(
        self, runner, account, cursor_store, directory, persistence, fetch, account_task
    ):
        """The runner clock reads 2024-03-11 09:00"""
        today = date(2024, 3, 11)

        result = runner.run(account, account_task, options=RunOptions(end_date=today))

        assert result.success
        assert fetch.segments()[-1] == (None, today, today)
        assert cursor_store.get(account.id, "allOrders").last_end_timestamp == _end_of(END)

        fetch.calls = []
        _runner_at(datetime(2024, 3, 12, 9, 0), cursor_store, directory, persistence).run(account, account_task)

        assert [c[1] for c in fetch.calls] == [today]
        assert cursor_store.get(account.id, "allOrders").last_end_timestamp == _end_of(today)


class TestPartialFailures:
    """Tests for failure isolation and cursor advancement"""

    def test_one_failing_dimension(self, runner, account, directory, cursor_store, record_store, fetch, store_task):
        directory.add_dimensions(account.id, DimensionKind.STORE, ["101", "102", "103"])
        _daily(fetch, ["101", "102", "103"])
        fetch.fail_on = {("102", d) for d in DAYS}

        result = runner.run(account, store_task)

        statuses = {o.dimension_key: o.status for o in result.outcomes}
        assert statuses == {"101": RunStatus.SUCCESS, "102": RunStatus.FAILED, "103": RunStatus.SUCCESS}
        assert result.status == RunStatus.PARTIAL
        assert result.record_count == 12
        assert "102" in result.error_message
        assert cursor_store.get(account.id, "allOrders", "101").last_end_timestamp == _end_of(END)
        assert cursor_store.get(account.id, "allOrders", "102") is None

        # Upstream recovers: only the failed dimension has work left
        fetch.fail_on = set()
        fetch.calls = []
        retry = runner.run(account, store_task)

        assert retry.status == RunStatus.SUCCESS
        assert {o.dimension_key for o in retry.outcomes if not o.skipped} == {"102"}
        assert {c[0] for c in fetch.calls} == {"102"}
        assert len(record_store.live("erp_test")) == 18

    def test_middle_period_failure_holds_cursor(self, runner, account, cursor_store, record_store, fetch, account_task):
        _daily(fetch, [None])
        fetch.fail_on = {(None, date(2024, 3, 9))}

        result = runner.run(account, account_task)

        outcome = result.outcomes[0]
        assert outcome.status == RunStatus.PARTIAL
        assert outcome.record_count == 4
        cursor = cursor_store.get(account.id, "allOrders")
        assert cursor.last_end_timestamp == _end_of(date(2024, 3, 8))
        assert cursor.last_status == RunStatus.PARTIAL

        fetch.fail_on = set()
        fetch.calls = []
        runner.run(account, account_task)

        assert [c[1] for c in fetch.calls] == [date(2024, 3, 9), date(2024, 3, 10)]
        assert cursor_store.get(account.id, "allOrders").last_end_timestamp == _end_of(END)
        assert len(record_store.live("erp_test")) == 6

    def test_first_period_failure_leaves_no_cursor(self, runner, account, cursor_store, fetch, account_task):
        _daily(fetch, [None])
        fetch.fail_on = {(None, date(2024, 3, 8))}

        result = runner.run(account, account_task)

        assert result.outcomes[0].status == RunStatus.PARTIAL
        assert cursor_store.get(account.id, "allOrders") is None

    def test_everything_failing(self, runner, account, cursor_store, fetch, account_task):
        fetch.fail_on = {(None, d) for d in DAYS}

        result = runner.run(account, account_task)

        assert result.status == RunStatus.FAILED
        assert result.record_count == 0
        assert cursor_store.save_count == 0
        assert result.error_message.count("upstream rejected") == 3

    def test_failed_run_recorded_on_existing_cursor(self, runner, account, cursor_store, fetch, account_task):
        mark = _end_of(date(2024, 3, 7))
        cursor_store.seed(account.id, "allOrders", None, mark)
        fetch.fail_on = {(None, d) for d in DAYS}

        result = runner.run(account, account_task)

        assert result.status == RunStatus.FAILED
        cursor = cursor_store.get(account.id, "allOrders")
        assert cursor.last_status == RunStatus.FAILED
        assert "upstream rejected" in cursor.last_error_message
        assert cursor.last_end_timestamp == mark
        assert cursor.last_sync_at == NOW
        assert cursor.last_record_count == 0
        assert cursor_store.save_count == 1

    def test_partially_fetched_segment_is_kept_but_not_completed(self, runner, account, cursor_store, record_store, fetch):
        fetch.data[(None, END)] = [{"id": i} for i in range(5)]
        original = fetch.__call__

        def flaky(ctx, offset, length):
            if offset >= 2:
                raise ConnectionError("reset by peer")
            return original(ctx, offset, length)

        runner.run(account, make_descriptor(flaky, default_lookback=1, page_size=2))

        assert len(record_store.live("erp_test")) == 2
        assert cursor_store.get(account.id, "allOrders") is None

    def test_persistence_failure_is_isolated(self, runner, account, cursor_store, record_store, fetch, account_task):
        _daily(fetch, [None])
        record_store.fail_upsert = lambda table, rows: rows[0]["period"] == "2024-03-10"

        result = runner.run(account, account_task)

        outcome = result.outcomes[0]
        assert outcome.status == RunStatus.PARTIAL
        assert "database unavailable" in outcome.error
        assert outcome.record_count == 4
        assert cursor_store.get(account.id, "allOrders").last_end_timestamp == _end_of(date(2024, 3, 9))

    def test_dimension_lookup_failure(self, runner, account, directory, fetch, store_task):
        def broken(account_id, kind):
            raise RuntimeError("directory down")

        directory.list_dimensions = broken
        result = runner.run(account, store_task)

        assert result.status == RunStatus.FAILED
        assert "directory down" in result.error_message
        assert fetch.calls == []


class TestFanout:
    def test_zero_dimensions_is_skipped_success(self, runner, account, fetch, store_task):
        result = runner.run(account, store_task)

        assert result.success
        assert result.skipped
        assert result.outcomes == []
        assert fetch.calls == []

    def test_duplicate_dimensions_run_once(self, runner, account, directory, fetch, store_task):
        directory.add_dimensions(account.id, DimensionKind.STORE, ["101", "101", "102"])
        result = runner.run(account, store_task)
        assert [o.dimension_key for o in result.outcomes] == ["101", "102"]

    def test_pacing_between_segments_and_dimensions(
        self, cursor_store, directory, persistence, planner, account, fetch, store_task
    ):
        pacer = RecordingPacer()
        runner = SyncRunner(cursor_store, FanoutEnumerator(directory), persistence, planner, pacer)
        directory.add_dimensions(account.id, DimensionKind.STORE, ["101", "102"])

        runner.run(account, store_task)

        assert pacer.reasons.count("dimension") == 1
        assert pacer.reasons.count("segment") == 4


class TestModes:
    """Tests for full mode and idempotence"""

    def test_idempotent_full_runs(self, runner, account, cursor_store, record_store, fetch, account_task):
        _daily(fetch, [None], n=3)
        options = RunOptions(start_date=DAYS[0], end_date=END)

        runner.run(account, account_task, SyncMode.FULL, options)
        first = sorted((r["period"], r["record_key"], r["archived"]) for r in record_store.rows("erp_test"))
        runner.run(account, account_task, SyncMode.FULL, options)
        second = sorted((r["period"], r["record_key"], r["archived"]) for r in record_store.rows("erp_test"))

        assert first == second
        assert len(record_store.live("erp_test")) == 9
        assert cursor_store.save_count == 0

    def test_full_resync_archives_missing_rows(self, runner, account, record_store):
        data = {"rows": [{"sid": 1}, {"sid": 2}, {"sid": 3}]}

        def sellers(ctx, offset, length):
            return Page(data["rows"][offset:offset + length], len(data["rows"]))

        task = make_descriptor(
            sellers,
            task_type=TaskType.SELLER_LISTS,
            table="erp_sellers",
            granularity=Granularity.NONE,
            persistence_mode=PersistenceMode.ARCHIVE_THEN_FULL_RESYNC,
            key_fields=("sid",),
            archive_targets=(ArchiveTarget("erp_sellers"),),
        )
        runner.run(account, task, SyncMode.FULL)
        data["rows"] = [{"sid": 1}, {"sid": 3}]
        result = runner.run(account, task, SyncMode.FULL)

        assert result.success
        assert sorted(r["record_key"] for r in record_store.live("erp_sellers")) == ["1", "3"]
        assert [r["record_key"] for r in record_store.archived("erp_sellers")] == ["2"]

    def test_snapshot_task_rejects_incremental(self, runner, account, fetch):
        task = make_descriptor(
            fetch,
            granularity=Granularity.NONE,
            persistence_mode=PersistenceMode.ARCHIVE_THEN_FULL_RESYNC,
            archive_targets=(ArchiveTarget("erp_test"),),
        )
        with pytest.raises(ConfigurationError):
            runner.run(account, task, SyncMode.INCREMENTAL)
