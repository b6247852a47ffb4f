"""Write strategies: upsert-by-key, overwrite-by-period, archive-then-full-resync"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional

from reportsync.core.exceptions import PersistenceError, SyncError, ValidationError
from reportsync.etl.transformers import RecordTransformer
from reportsync.logging_config.logger import setup_logger
from reportsync.sync.chunker import Segment
from reportsync.sync.models import PersistenceMode
from reportsync.sync.tasks import TaskDescriptor
from reportsync.sync.window import period_label

logger = setup_logger(__name__)


class RecordStore(ABC):
    """Table-oriented store the policies write through"""

    @abstractmethod
    def upsert(self, table: str, rows: List[Dict[str, Any]], on_conflict: str) -> int:
        pass

    @abstractmethod
    def archive(self, table: str, filters: Dict[str, Any]) -> int:
        """Set archived=True on live rows matching all filters; returns rows touched"""
        pass

    @abstractmethod
    def insert(self, table: str, rows: List[Dict[str, Any]]) -> int:
        pass


@dataclass
class PersistenceConfig:
    clock: Optional[Callable[[], datetime]] = field(default=None)

    def __post_init__(self):
        if self.clock is None:
            self.clock = lambda: datetime.now(timezone.utc)


def conflict_columns(descriptor: TaskDescriptor) -> str:
    """Unique key the task's table is upserted on"""
    if descriptor.persistence_mode == PersistenceMode.OVERWRITE_BY_PERIOD:
        return "account_id,dimension_key,period,record_key"
    if descriptor.global_scope:
        return "record_key"
    return "account_id,dimension_key,record_key"


class PersistencePolicy:
    def __init__(
        self,
        store: RecordStore,
        config: Optional[PersistenceConfig] = None,
        transformer: Optional[RecordTransformer] = None,
    ):
        self.store = store
        self.config = config or PersistenceConfig()
        self.transformer = transformer or RecordTransformer()

    def archive_before_full(self, descriptor: TaskDescriptor, account_id: str) -> int:
        """
        Archive every archive target of a full-resync task.
        Account-scoped targets are archived for this account only, the rest globally.
        """
        archived = 0
        for target in descriptor.archive_targets:
            filters = {}
            if target.account_scoped and not descriptor.global_scope:
                filters["account_id"] = account_id
            archived += self._call(
                f"archive {target.table}",
                lambda: self.store.archive(target.table, filters),
            )
        logger.info(f"[{descriptor.task_type.value}] archived {archived} rows before full resync")
        return archived

    def write_segment(
        self,
        descriptor: TaskDescriptor,
        account_id: str,
        dimension_key: Optional[str],
        segment: Segment,
        records: List[Dict[str, Any]],
    ) -> int:
        """Persist the records of one fetched segment; returns the number of rows written"""
        # Global reference rows belong to no account
        owner = "" if descriptor.global_scope else account_id
        mode = descriptor.persistence_mode
        period = period_label(segment.start, descriptor.granularity) if segment.start else ""

        if mode == PersistenceMode.OVERWRITE_BY_PERIOD:
            if len(segment.periods) != 1:
                raise ValidationError(
                    f"[{descriptor.task_type.value}] overwrite-by-period needs single-period segments, got {segment}"
                )
            filters = {
                "account_id": owner,
                "dimension_key": dimension_key or "",
                "period": period,
            }
            # An empty period still archives its previous rows
            self._call(
                f"archive {descriptor.table} {period}",
                lambda: self.store.archive(descriptor.table, filters),
            )

        rows = self.transformer.to_rows(
            records,
            descriptor.key_fields,
            owner,
            dimension_key,
            period=period,
            synced_at=self.config.clock(),
        )
        if not rows:
            return 0

        return self._call(
            f"upsert {descriptor.table}",
            lambda: self.store.upsert(descriptor.table, rows, on_conflict=conflict_columns(descriptor)),
        )

    @staticmethod
    def _call(action: str, fn):
        try:
            return fn()
        except SyncError:
            raise
        except Exception as e:
            raise PersistenceError(f"Failed to {action}: {e}") from e
