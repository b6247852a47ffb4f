"""Supabase-backed record store and account directory"""

from typing import Any, Dict, List, Optional

from reportsync.logging_config.logger import setup_logger
from reportsync.sync.fanout import Directory
from reportsync.sync.models import Account, Dimension, DimensionKind
from reportsync.sync.persistence import RecordStore

logger = setup_logger(__name__)

INACTIVE_STATUSES = (0, "0")


class SupabaseRecordStore(RecordStore):
    """Batched writes through the Supabase table API"""

    def __init__(self, supabase, batch_size: int = 500):
        self.supabase = supabase
        self.batch_size = batch_size

    def upsert(self, table: str, rows: List[Dict[str, Any]], on_conflict: str) -> int:
        for i in range(0, len(rows), self.batch_size):
            self.supabase.table(table).upsert(
                rows[i : i + self.batch_size],
                on_conflict=on_conflict,
            ).execute()
        return len(rows)

    def archive(self, table: str, filters: Dict[str, Any]) -> int:
        # archived=False doubles as the mandatory filter for table-wide updates
        query = self.supabase.table(table).update({"archived": True}).eq("archived", False)
        for column, value in filters.items():
            query = query.eq(column, value)
        resp = query.execute()
        return len(resp.data or [])

    def insert(self, table: str, rows: List[Dict[str, Any]]) -> int:
        for i in range(0, len(rows), self.batch_size):
            self.supabase.table(table).insert(rows[i : i + self.batch_size]).execute()
        return len(rows)


class SupabaseDirectory(Directory):
    """
    Accounts come from the accounts table; stores come from the live seller rows
    mirrored by the sellerLists task (record_key = sid, upstream record in data).
    """

    def __init__(self, supabase, accounts_table: str, sellers_table: str):
        self.supabase = supabase
        self.accounts_table = accounts_table
        self.sellers_table = sellers_table

    @staticmethod
    def _to_account(row: Dict[str, Any]) -> Account:
        return Account(
            id=str(row["id"]),
            name=row.get("name") or "",
            app_id=row.get("app_id") or "",
            access_token=row.get("access_token"),
        )

    def get_active_accounts(self) -> List[Account]:
        resp = (
            self.supabase.table(self.accounts_table)
            .select("id,name,app_id,access_token")
            .eq("is_active", True)
            .order("id")
            .execute()
        )
        return [self._to_account(r) for r in (resp.data or [])]

    def get_account(self, account_id: str) -> Optional[Account]:
        resp = (
            self.supabase.table(self.accounts_table)
            .select("id,name,app_id,access_token")
            .eq("id", account_id)
            .eq("is_active", True)
            .limit(1)
            .execute()
        )
        rows = resp.data or []
        return self._to_account(rows[0]) if rows else None

    def _active_sellers(self, account_id: str) -> List[Dict[str, Any]]:
        resp = (
            self.supabase.table(self.sellers_table)
            .select("record_key,data")
            .eq("account_id", account_id)
            .eq("archived", False)
            .order("record_key")
            .execute()
        )
        sellers = []
        for r in resp.data or []:
            data = r.get("data") or {}
            if data.get("status") in INACTIVE_STATUSES:
                continue
            sellers.append({**data, "sid": data.get("sid", r.get("record_key"))})
        return sellers

    def list_dimensions(self, account_id: str, kind: DimensionKind) -> List[Dimension]:
        if kind == DimensionKind.NONE:
            return []

        dimensions = []
        for seller in self._active_sellers(account_id):
            if kind == DimensionKind.STORE:
                key = seller.get("sid")
            elif kind == DimensionKind.SELLER:
                key = seller.get("seller_id")
            elif kind == DimensionKind.SHOP:
                key = seller.get("name")
            else:
                currency = seller.get("currency") or seller.get("currency_code")
                key = f"{seller.get('sid')}:{currency}" if currency else None

            if key is None or key == "":
                continue
            dimensions.append(Dimension(kind=kind, key=str(key), attrs=seller))

        logger.debug(f"Account {account_id}: {len(dimensions)} {kind.value} rows from {self.sellers_table}")
        return dimensions
