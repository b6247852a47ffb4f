"""Task identifiers, descriptors and the registration table"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Dict, Iterable, List, Optional, Tuple

from reportsync.core.exceptions import ConfigurationError
from reportsync.sync.models import (
    DimensionKind,
    FetchContext,
    Granularity,
    Page,
    PersistenceMode,
    SyncMode,
)

# fetch_fn(ctx, offset, length) -> Page
FetchPageFn = Callable[[FetchContext, int, int], Page]


class TaskType(str, Enum):
    """Closed set of task identifiers"""

    # Amazon reports (per store, by day)
    ALL_ORDERS = "allOrders"
    FBA_ORDERS = "fbaOrders"
    FBA_REFUND_ORDERS = "fbaRefundOrders"
    TRANSACTION = "transaction"
    REMOVAL_SHIPMENT = "removalShipment"
    # Statistics
    SALES_REPORT = "salesReport"
    RETURN_ORDER_ANALYSIS = "returnOrderAnalysis"
    FBA_STORAGE_FEE_MONTH = "fbaStorageFeeMonth"
    # Finance
    RECEIVABLE_REPORT = "receivableReport"
    FBA_COST_STREAM = "fbaCostStream"
    # Purchasing
    PURCHASE_ORDER = "purchaseOrder"
    # Reference data (full resync)
    SELLER_LISTS = "sellerLists"
    MARKETPLACES = "marketplaces"
    SUPPLIERS = "suppliers"
    WAREHOUSES = "warehouses"
    LISTINGS = "listings"

    @classmethod
    def parse(cls, value: str) -> "TaskType":
        try:
            return cls(value)
        except ValueError:
            choices = ", ".join(t.value for t in cls)
            raise ConfigurationError(f"Unknown task type: {value}. Choices: {choices}")


@dataclass(frozen=True)
class ArchiveTarget:
    """Table soft-deleted before a full resync; account_scoped=False archives the whole table"""

    table: str
    account_scoped: bool = True


@dataclass(frozen=True)
class TaskDescriptor:
    task_type: TaskType
    description: str
    fetch_fn: FetchPageFn
    table: str
    granularity: Granularity = Granularity.DAY
    default_lookback: int = 7
    max_span_days: Optional[int] = None
    persistence_mode: PersistenceMode = PersistenceMode.UPSERT_BY_KEY
    dimension_kind: DimensionKind = DimensionKind.NONE
    key_fields: Tuple[str, ...] = ()
    page_size: int = 1000
    archive_targets: Tuple[ArchiveTarget, ...] = field(default_factory=tuple)
    global_scope: bool = False

    @property
    def windowed(self) -> bool:
        return self.granularity != Granularity.NONE

    def supports(self, mode: SyncMode) -> bool:
        """Snapshot tasks have no cursor, so they only run as full resyncs"""
        if mode == SyncMode.INCREMENTAL:
            return self.windowed
        return True

    def validate(self) -> None:
        name = self.task_type.value
        if not callable(self.fetch_fn):
            raise ConfigurationError(f"[{name}] fetch_fn is not callable")
        if not self.table:
            raise ConfigurationError(f"[{name}] table is required")
        if self.page_size <= 0:
            raise ConfigurationError(f"[{name}] page_size must be positive")
        if self.windowed and self.default_lookback <= 0:
            raise ConfigurationError(f"[{name}] default_lookback must be positive")
        if self.max_span_days is not None and self.max_span_days <= 0:
            raise ConfigurationError(f"[{name}] max_span_days must be positive")
        if self.persistence_mode == PersistenceMode.ARCHIVE_THEN_FULL_RESYNC:
            if self.windowed:
                raise ConfigurationError(f"[{name}] full resync tasks must have granularity 'none'")
            if not self.archive_targets:
                raise ConfigurationError(f"[{name}] full resync tasks need archive_targets")
            if not self.key_fields:
                raise ConfigurationError(f"[{name}] full resync tasks need key_fields")
        if self.persistence_mode == PersistenceMode.OVERWRITE_BY_PERIOD and not self.windowed:
            raise ConfigurationError(f"[{name}] overwrite-by-period needs a day or month granularity")
        if self.persistence_mode == PersistenceMode.UPSERT_BY_KEY and not self.key_fields:
            raise ConfigurationError(f"[{name}] upsert-by-key tasks need key_fields")
        if self.global_scope and self.dimension_kind != DimensionKind.NONE:
            raise ConfigurationError(f"[{name}] global tasks cannot fan out")


class TaskRegistry:
    """Registration table built once at startup and injected into the orchestrator"""

    def __init__(self, descriptors: Iterable[TaskDescriptor] = ()):
        self._tasks: Dict[TaskType, TaskDescriptor] = {}
        for descriptor in descriptors:
            self.register(descriptor)

    def register(self, descriptor: TaskDescriptor) -> None:
        if not isinstance(descriptor.task_type, TaskType):
            raise ConfigurationError(f"Invalid task type: {descriptor.task_type!r}")
        if descriptor.task_type in self._tasks:
            raise ConfigurationError(f"Task type registered twice: {descriptor.task_type.value}")
        descriptor.validate()
        self._tasks[descriptor.task_type] = descriptor

    def get(self, task_type) -> TaskDescriptor:
        key = task_type if isinstance(task_type, TaskType) else TaskType.parse(task_type)
        descriptor = self._tasks.get(key)
        if descriptor is None:
            raise ConfigurationError(f"Task type not registered: {key.value}")
        return descriptor

    def task_types(self, mode: Optional[SyncMode] = None) -> List[TaskType]:
        return [t for t, d in self._tasks.items() if mode is None or d.supports(mode)]

    def describe(self, mode: Optional[SyncMode] = None) -> List[Dict[str, str]]:
        return [
            {
                "task_type": t.value,
                "description": self._tasks[t].description,
                "granularity": self._tasks[t].granularity.value,
                "persistence_mode": self._tasks[t].persistence_mode.value,
            }
            for t in self.task_types(mode)
        ]

    def __contains__(self, task_type) -> bool:
        try:
            return TaskType(task_type) in self._tasks
        except ValueError:
            return False

    def __len__(self) -> int:
        return len(self._tasks)
