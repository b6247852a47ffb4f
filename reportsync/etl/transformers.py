"""Shape upstream records into stored rows"""

import math
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Sequence

import numpy as np
import pandas as pd

from reportsync.logging_config.logger import setup_logger

logger = setup_logger(__name__)

KEY_SEPARATOR = "|"


def sanitize_value(val):
    """Convert NaN, inf, -inf and numpy types to JSON-compatible values"""
    if val is None:
        return None
    if isinstance(val, dict):
        return {k: sanitize_value(v) for k, v in val.items()}
    if isinstance(val, (list, tuple)):
        return [sanitize_value(v) for v in val]
    # Handle numpy types first
    if isinstance(val, (np.integer, np.floating, np.bool_)):
        val = val.item()
    # Handle float NaN/inf
    if isinstance(val, float):
        if math.isnan(val) or math.isinf(val):
            return None
    # Handle pandas NA
    if pd.api.types.is_scalar(val) and pd.isna(val):
        return None
    return val


def sanitize_records(records: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """
    Sanitize records for JSON serialization.
    Nested dicts and lists are sanitized too since records are stored as JSON.
    """
    return [
        {k: sanitize_value(v) for k, v in record.items()}
        for record in records
    ]


def _key_part(val) -> str:
    val = sanitize_value(val)
    if val is None:
        return ""
    # json_normalize turns int columns with gaps into floats
    if isinstance(val, float) and val.is_integer():
        val = int(val)
    return str(val)


class RecordTransformer:
    """Transformer from upstream records to (account, dimension, period, record_key) rows"""

    @staticmethod
    def record_keys(records: List[Dict[str, Any]], key_fields: Sequence[str]) -> List[str]:
        """
        Natural keys of records, key fields joined with '|'.
        Nested fields are addressed with dots, e.g. "item.sku".
        Without key fields the ordinal of the record is its key.
        """
        if not records:
            return []
        if not key_fields:
            return [str(i) for i in range(len(records))]

        df = pd.json_normalize(records, sep=".")
        missing = [f for f in key_fields if f not in df.columns]
        for f in missing:
            logger.warning(f"Key field '{f}' absent from all records")
            df[f] = None

        keys = df[list(key_fields)].astype(object).apply(
            lambda row: KEY_SEPARATOR.join(_key_part(v) for v in row),
            axis=1,
        )
        return keys.tolist()

    @staticmethod
    def to_rows(
        records: List[Dict[str, Any]],
        key_fields: Sequence[str],
        account_id: str,
        dimension_key: Optional[str],
        period: str = "",
        synced_at: Optional[datetime] = None,
    ) -> List[Dict[str, Any]]:
        """
        Transform upstream records into stored rows

        Args:
            records: Raw records of one segment
            key_fields: Natural key fields of the task
            account_id: Owning account
            dimension_key: Fan-out key, None for tasks without sub-dimensions
            period: ISO period label, "" for snapshots
            synced_at: Write timestamp (defaults to now, UTC)

        Returns:
            Rows de-duplicated by record_key (last occurrence wins), every row live
        """
        if not records:
            return []

        synced_at = synced_at or datetime.now(timezone.utc)

        df = pd.DataFrame({
            "record_key": RecordTransformer.record_keys(records, key_fields),
            "data": sanitize_records(records),
        })

        before = len(df)
        df = df.drop_duplicates(subset=["record_key"], keep="last")
        if len(df) < before:
            logger.debug(f"Dropped {before - len(df)} duplicate records for account {account_id}")

        df.insert(0, "account_id", account_id)
        df.insert(1, "dimension_key", dimension_key or "")
        df.insert(2, "period", period)
        df["archived"] = False
        df["synced_at"] = synced_at.isoformat()

        return df.to_dict(orient="records")
