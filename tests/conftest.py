"""Shared in-memory fakes for the sync engine tests"""

import dataclasses
from datetime import date, datetime
from typing import Any, Callable, Dict, List, Optional, Tuple

import pytest

from reportsync.core.exceptions import UpstreamError
from reportsync.etl.jobs import JobStatusStore, JobTaskStatus
from reportsync.sync.cursor_store import CursorStore
from reportsync.sync.fanout import Directory, FanoutEnumerator
from reportsync.sync.models import (
    Account,
    Dimension,
    DimensionKind,
    FetchContext,
    Granularity,
    Page,
    PersistenceMode,
    SyncCursor,
)
from reportsync.sync.persistence import PersistenceConfig, PersistencePolicy, RecordStore
from reportsync.sync.runner import SyncRunner
from reportsync.sync.tasks import TaskDescriptor, TaskType
from reportsync.sync.window import PlannerConfig, WindowPlanner

NOW = datetime(2024, 3, 11, 9, 0, 0)


class InMemoryRecordStore(RecordStore):
    """Tables of rows keyed by the upsert conflict columns"""

    def __init__(self):
        self.tables: Dict[str, Dict[Tuple, Dict[str, Any]]] = {}
        self.fail_upsert: Optional[Callable[[str, List[Dict[str, Any]]], bool]] = None
        self.upsert_calls = 0

    def upsert(self, table: str, rows: List[Dict[str, Any]], on_conflict: str) -> int:
        if self.fail_upsert and self.fail_upsert(table, rows):
            raise RuntimeError("database unavailable")
        self.upsert_calls += 1
        columns = on_conflict.split(",")
        stored = self.tables.setdefault(table, {})
        for row in rows:
            key = tuple(row[c] for c in columns)
            stored[key] = {**stored.get(key, {}), **row}
        return len(rows)

    def archive(self, table: str, filters: Dict[str, Any]) -> int:
        touched = 0
        for row in self.tables.get(table, {}).values():
            if row["archived"]:
                continue
            if all(row.get(k) == v for k, v in filters.items()):
                row["archived"] = True
                touched += 1
        return touched

    def insert(self, table: str, rows: List[Dict[str, Any]]) -> int:
        stored = self.tables.setdefault(table, {})
        for row in rows:
            stored[(len(stored),)] = dict(row)
        return len(rows)

    def rows(self, table: str) -> List[Dict[str, Any]]:
        return list(self.tables.get(table, {}).values())

    def live(self, table: str) -> List[Dict[str, Any]]:
        return [r for r in self.rows(table) if not r["archived"]]

    def archived(self, table: str) -> List[Dict[str, Any]]:
        return [r for r in self.rows(table) if r["archived"]]


class InMemoryCursorStore(CursorStore):
    def __init__(self):
        self.cursors: Dict[Tuple[str, str, str], SyncCursor] = {}
        self.save_count = 0

    def get(self, account_id, task_type, dimension_key=None):
        cursor = self.cursors.get((account_id, task_type, dimension_key or ""))
        return dataclasses.replace(cursor) if cursor else None

    def save(self, cursor: SyncCursor) -> None:
        self.save_count += 1
        key = (cursor.account_id, cursor.task_type, cursor.dimension_key or "")
        self.cursors[key] = dataclasses.replace(cursor)

    def seed(self, account_id, task_type, dimension_key, last_end_timestamp):
        self.save(SyncCursor(
            account_id=account_id,
            task_type=task_type,
            dimension_key=dimension_key,
            last_end_timestamp=last_end_timestamp,
        ))
        self.save_count = 0


class FakeDirectory(Directory):
    def __init__(self, accounts: Optional[List[Account]] = None):
        self.accounts = list(accounts or [])
        self.dimensions: Dict[Tuple[str, DimensionKind], List[Dimension]] = {}
        self.lookups = 0

    def add_dimensions(self, account_id: str, kind: DimensionKind, keys: List[str]) -> None:
        self.dimensions[(account_id, kind)] = [Dimension(kind, k, {"sid": k}) for k in keys]

    def get_active_accounts(self) -> List[Account]:
        return list(self.accounts)

    def get_account(self, account_id: str) -> Optional[Account]:
        return next((a for a in self.accounts if a.id == account_id), None)

    def list_dimensions(self, account_id: str, kind: DimensionKind) -> List[Dimension]:
        self.lookups += 1
        return list(self.dimensions.get((account_id, kind), []))


class InMemoryJobStatusStore(JobStatusStore):
    def __init__(self):
        self.rows: Dict[str, Dict[str, Any]] = {}

    def upsert(self, status: JobTaskStatus) -> None:
        row = self.rows.setdefault(status.job_name, {})
        row.update(status.to_row())

    def list(self) -> List[Dict[str, Any]]:
        return [self.rows[k] for k in sorted(self.rows)]


class ScriptedFetch:
    """
    Fetch handler serving records per (dimension_key, segment start).

    data[(dimension_key, start)] holds the full record list of a segment; it is
    sliced by offset/length like the upstream API. fail_on holds the same keys
    for which the first page raises UpstreamError.
    """

    def __init__(self, data=None, total_reported=True):
        self.data: Dict[Tuple[Optional[str], Optional[date]], List[Dict[str, Any]]] = dict(data or {})
        self.fail_on = set()
        self.total_reported = total_reported
        self.calls: List[Tuple[Optional[str], Optional[date], Optional[date], int, int]] = []

    def __call__(self, ctx: FetchContext, offset: int, length: int) -> Page:
        key = (ctx.dimension_key, ctx.start)
        self.calls.append((ctx.dimension_key, ctx.start, ctx.end, offset, length))
        if key in self.fail_on:
            raise UpstreamError(f"upstream rejected {key}", code="500")
        records = self.data.get(key, [])
        total = len(records) if self.total_reported else None
        return Page(records[offset:offset + length], total)

    def segments(self):
        starts = {(c[0], c[1], c[2]) for c in self.calls if c[3] == 0}
        return sorted(starts, key=lambda s: (str(s[0]), s[1] or date.min))


def make_descriptor(fetch_fn, **overrides) -> TaskDescriptor:
    fields = dict(
        task_type=TaskType.ALL_ORDERS,
        description="test task",
        fetch_fn=fetch_fn,
        table="erp_test",
        granularity=Granularity.DAY,
        default_lookback=7,
        persistence_mode=PersistenceMode.UPSERT_BY_KEY,
        key_fields=("id",),
        page_size=100,
    )
    fields.update(overrides)
    return TaskDescriptor(**fields)


@pytest.fixture
def account():
    return Account(id="acc-1", name="Main account", app_id="app-1", access_token="token-1")


@pytest.fixture
def planner():
    return WindowPlanner(PlannerConfig(timezone="Asia/Shanghai", clock=lambda: NOW))


@pytest.fixture
def record_store():
    return InMemoryRecordStore()


@pytest.fixture
def cursor_store():
    return InMemoryCursorStore()


@pytest.fixture
def directory(account):
    return FakeDirectory([account])


@pytest.fixture
def persistence(record_store):
    return PersistencePolicy(record_store, PersistenceConfig(clock=lambda: NOW))


@pytest.fixture
def runner(cursor_store, directory, persistence, planner):
    return SyncRunner(
        cursor_store=cursor_store,
        fanout=FanoutEnumerator(directory),
        persistence=persistence,
        planner=planner,
        clock=lambda: NOW,
    )
