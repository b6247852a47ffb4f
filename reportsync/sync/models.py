"""Value objects shared by the sync engine"""

from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Any, Dict, List, Optional


class Granularity(str, Enum):
    DAY = "day"
    MONTH = "month"
    NONE = "none"


class PersistenceMode(str, Enum):
    UPSERT_BY_KEY = "upsert_by_key"
    OVERWRITE_BY_PERIOD = "overwrite_by_period"
    ARCHIVE_THEN_FULL_RESYNC = "archive_then_full_resync"


class SyncMode(str, Enum):
    INCREMENTAL = "incremental"
    FULL = "full"


class RunStatus(str, Enum):
    SUCCESS = "success"
    PARTIAL = "partial"
    FAILED = "failed"


class DimensionKind(str, Enum):
    NONE = "none"
    STORE = "store"
    SELLER = "seller"
    SHOP = "shop"
    STORE_CURRENCY = "store_currency"


@dataclass(frozen=True)
class Account:
    id: str
    name: str = ""
    app_id: str = ""
    access_token: Optional[str] = None


@dataclass(frozen=True)
class Dimension:
    kind: DimensionKind
    key: str
    attrs: Dict[str, Any] = field(default_factory=dict, compare=False, hash=False)


@dataclass
class SyncCursor:
    """High-water mark of one (account, task, dimension)"""

    account_id: str
    task_type: str
    dimension_key: Optional[str] = None
    last_end_timestamp: Optional[datetime] = None
    last_sync_at: Optional[datetime] = None
    last_record_count: Optional[int] = None
    last_status: Optional[RunStatus] = None
    last_error_message: Optional[str] = None


@dataclass
class Page:
    """One page as returned by a fetch-page function"""

    records: List[Dict[str, Any]]
    total: Optional[int] = None


@dataclass
class FetchResult:
    records: List[Dict[str, Any]] = field(default_factory=list)
    total: int = 0
    partial: bool = False
    error: Optional[str] = None
    record_count: int = 0


@dataclass(frozen=True)
class FetchContext:
    """What a fetch handler needs to build one upstream request"""

    account: Account
    dimension: Optional[Dimension] = None
    start: Optional[date] = None
    end: Optional[date] = None

    @property
    def dimension_key(self) -> Optional[str]:
        return self.dimension.key if self.dimension else None


@dataclass
class RunOptions:
    """Per-invocation options passed down from the control surface"""

    end_date: Optional[date] = None
    start_date: Optional[date] = None
    default_lookback: Optional[int] = None


@dataclass
class RunOutcome:
    account_id: str
    task_type: str
    dimension_key: Optional[str] = None
    status: RunStatus = RunStatus.SUCCESS
    record_count: int = 0
    skipped: bool = False
    error: Optional[str] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None

    @property
    def success(self) -> bool:
        return self.status == RunStatus.SUCCESS

    def to_dict(self) -> Dict[str, Any]:
        return {
            "account_id": self.account_id,
            "task_type": self.task_type,
            "dimension_key": self.dimension_key,
            "status": self.status.value,
            "success": self.success,
            "record_count": self.record_count,
            "skipped": self.skipped,
            "error": self.error,
            "start_date": self.start_date.isoformat() if self.start_date else None,
            "end_date": self.end_date.isoformat() if self.end_date else None,
        }


def combine_status(statuses: List[RunStatus]) -> RunStatus:
    """success iff all succeeded, failed iff all failed, partial otherwise"""
    if not statuses or all(s == RunStatus.SUCCESS for s in statuses):
        return RunStatus.SUCCESS
    if all(s == RunStatus.FAILED for s in statuses):
        return RunStatus.FAILED
    return RunStatus.PARTIAL


def join_errors(errors: List[Optional[str]]) -> Optional[str]:
    messages = [e for e in errors if e]
    return "; ".join(messages) if messages else None


@dataclass
class AccountRunResult:
    """All dimension outcomes of one (account, task) run"""

    account_id: str
    task_type: str
    account_name: str = ""
    outcomes: List[RunOutcome] = field(default_factory=list)
    error: Optional[str] = None

    @property
    def status(self) -> RunStatus:
        if self.error and not self.outcomes:
            return RunStatus.FAILED
        status = combine_status([o.status for o in self.outcomes])
        if self.error and status == RunStatus.SUCCESS:
            return RunStatus.PARTIAL
        return status

    @property
    def success(self) -> bool:
        return self.status == RunStatus.SUCCESS

    @property
    def skipped(self) -> bool:
        return not self.error and all(o.skipped for o in self.outcomes)

    @property
    def record_count(self) -> int:
        return sum(o.record_count for o in self.outcomes)

    @property
    def error_message(self) -> Optional[str]:
        return join_errors([self.error] + [
            f"{o.dimension_key}: {o.error}" if o.dimension_key and o.error else o.error
            for o in self.outcomes
        ])

    def to_dict(self) -> Dict[str, Any]:
        return {
            "account_id": self.account_id,
            "account_name": self.account_name,
            "task_type": self.task_type,
            "status": self.status.value,
            "success": self.success,
            "skipped": self.skipped,
            "record_count": self.record_count,
            "error": self.error_message,
            "outcomes": [o.to_dict() for o in self.outcomes],
        }


@dataclass
class TaskSummary:
    account_count: int = 0
    success_count: int = 0
    fail_count: int = 0
    total_records: int = 0
    message: Optional[str] = None

    def add(self, result: AccountRunResult) -> None:
        if result.success:
            self.success_count += 1
        else:
            self.fail_count += 1
        self.total_records += result.record_count


@dataclass
class TaskReport:
    task_type: str
    description: str
    mode: SyncMode
    results: List[AccountRunResult] = field(default_factory=list)
    summary: TaskSummary = field(default_factory=TaskSummary)

    @property
    def success(self) -> bool:
        return self.summary.fail_count == 0

    @property
    def error_message(self) -> Optional[str]:
        return join_errors([self.summary.message if self.summary.fail_count else None] + [
            f"{r.account_id}: {r.error_message}" for r in self.results if r.error_message
        ])

    def to_dict(self) -> Dict[str, Any]:
        return {
            "task_type": self.task_type,
            "description": self.description,
            "mode": self.mode.value,
            "success": self.success,
            "error": self.error_message,
            "summary": {
                "account_count": self.summary.account_count,
                "success_count": self.summary.success_count,
                "fail_count": self.summary.fail_count,
                "total_records": self.summary.total_records,
                "message": self.summary.message,
            },
            "results": [r.to_dict() for r in self.results],
        }


@dataclass
class SyncReport:
    """Aggregate of a run over several task types"""

    mode: SyncMode
    task_reports: List[TaskReport] = field(default_factory=list)

    @property
    def success_count(self) -> int:
        return sum(r.summary.success_count for r in self.task_reports)

    @property
    def fail_count(self) -> int:
        return sum(r.summary.fail_count for r in self.task_reports)

    @property
    def total_records(self) -> int:
        return sum(r.summary.total_records for r in self.task_reports)

    @property
    def success(self) -> bool:
        return self.fail_count == 0

    @property
    def error_message(self) -> Optional[str]:
        return join_errors([
            f"[{r.task_type}] {r.error_message}" for r in self.task_reports if r.error_message
        ])

    def to_dict(self) -> Dict[str, Any]:
        return {
            "mode": self.mode.value,
            "success": self.success,
            "error": self.error_message,
            "summary": {
                "task_count": len(self.task_reports),
                "success_count": self.success_count,
                "fail_count": self.fail_count,
                "total_records": self.total_records,
            },
            "task_reports": [r.to_dict() for r in self.task_reports],
        }
