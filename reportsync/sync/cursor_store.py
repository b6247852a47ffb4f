"""Persistence of SyncCursor rows"""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Dict, Optional

from reportsync.core.exceptions import PersistenceError
from reportsync.logging_config.logger import setup_logger
from reportsync.sync.models import RunStatus, SyncCursor

logger = setup_logger(__name__)

# Stored in place of the implicit null dimension so the unique key stays total
NO_DIMENSION = ""


class CursorStore(ABC):
    @abstractmethod
    def get(self, account_id: str, task_type: str, dimension_key: Optional[str] = None) -> Optional[SyncCursor]:
        pass

    @abstractmethod
    def save(self, cursor: SyncCursor) -> None:
        pass


def _parse_ts(value) -> Optional[datetime]:
    if value is None or isinstance(value, datetime):
        return value
    return datetime.fromisoformat(str(value).replace("Z", "+00:00"))


def _naive(value: Optional[datetime]) -> Optional[datetime]:
    # Period boundaries are wall-clock times in the sync timezone
    if value is not None and value.tzinfo is not None:
        return value.replace(tzinfo=None)
    return value


def cursor_to_row(cursor: SyncCursor) -> Dict[str, Any]:
    return {
        "account_id": cursor.account_id,
        "task_type": cursor.task_type,
        "dimension_key": cursor.dimension_key or NO_DIMENSION,
        "last_end_timestamp": cursor.last_end_timestamp.isoformat() if cursor.last_end_timestamp else None,
        "last_sync_at": cursor.last_sync_at.isoformat() if cursor.last_sync_at else None,
        "last_record_count": cursor.last_record_count,
        "last_status": cursor.last_status.value if cursor.last_status else None,
        "last_error_message": cursor.last_error_message,
    }


def cursor_from_row(row: Dict[str, Any]) -> SyncCursor:
    status = row.get("last_status")
    return SyncCursor(
        account_id=str(row["account_id"]),
        task_type=row["task_type"],
        dimension_key=row.get("dimension_key") or None,
        last_end_timestamp=_naive(_parse_ts(row.get("last_end_timestamp"))),
        last_sync_at=_parse_ts(row.get("last_sync_at")),
        last_record_count=row.get("last_record_count"),
        last_status=RunStatus(status) if status else None,
        last_error_message=row.get("last_error_message"),
    )


class SupabaseCursorStore(CursorStore):
    """Cursor rows keyed by (account_id, task_type, dimension_key)"""

    def __init__(self, supabase, table: str):
        self.supabase = supabase
        self.table = table

    def get(self, account_id: str, task_type: str, dimension_key: Optional[str] = None) -> Optional[SyncCursor]:
        try:
            response = (
                self.supabase.table(self.table)
                .select("*")
                .eq("account_id", account_id)
                .eq("task_type", task_type)
                .eq("dimension_key", dimension_key or NO_DIMENSION)
                .limit(1)
                .execute()
            )
        except Exception as e:
            raise PersistenceError(f"Failed to read cursor {account_id}/{task_type}/{dimension_key}: {e}") from e

        rows = response.data or []
        return cursor_from_row(rows[0]) if rows else None

    def save(self, cursor: SyncCursor) -> None:
        try:
            self.supabase.table(self.table).upsert(
                cursor_to_row(cursor),
                on_conflict="account_id,task_type,dimension_key",
            ).execute()
        except Exception as e:
            raise PersistenceError(
                f"Failed to save cursor {cursor.account_id}/{cursor.task_type}/{cursor.dimension_key}: {e}"
            ) from e
