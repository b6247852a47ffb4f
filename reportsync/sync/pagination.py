"""Offset/length pagination against one fetch-page function"""

from dataclasses import dataclass
from typing import Callable, Optional

from reportsync.logging_config.logger import setup_logger
from reportsync.sync.models import FetchResult, Page
from reportsync.sync.pacing import NoPacer, Pacer

logger = setup_logger(__name__)


@dataclass
class PaginationConfig:
    page_size: int = 1000
    max_pages: Optional[int] = None

    def __post_init__(self):
        if self.page_size <= 0:
            raise ValueError("page_size must be positive")
        if self.max_pages is not None and self.max_pages <= 0:
            raise ValueError("max_pages must be positive")


class PaginationDriver:
    """
    Drive fetch_page(offset, length) to exhaustion.

    Stops on a short page, once the total reported by the first page is reached,
    or when a page fetch raises. A failure after some records were accumulated
    returns a partial result; a failure on an empty accumulator propagates.
    """

    def __init__(self, config: Optional[PaginationConfig] = None, pacer: Optional[Pacer] = None):
        self.config = config or PaginationConfig()
        self.pacer = pacer or NoPacer()

    def run(self, fetch_page: Callable[[int, int], Page], label: str = "") -> FetchResult:
        length = self.config.page_size
        offset = 0
        pages = 0
        records = []
        reported_total: Optional[int] = None
        first_page_len: Optional[int] = None

        while True:
            if pages > 0:
                self.pacer.pause("page")
            try:
                page = fetch_page(offset, length)
            except Exception as e:
                if not records:
                    raise
                logger.warning(
                    f"{label} page at offset={offset} failed after {len(records)} records, "
                    f"keeping partial result: {e}"
                )
                return FetchResult(
                    records=records,
                    total=reported_total if reported_total is not None else first_page_len,
                    partial=True,
                    error=str(e),
                )

            pages += 1
            batch = list(page.records or [])
            if first_page_len is None:
                # Later pages report unreliable totals on some endpoints
                first_page_len = len(batch)
                reported_total = page.total
            records.extend(batch)

            logger.debug(f"{label} fetched {len(batch)} records (offset={offset})")

            if len(batch) < length:
                break
            if reported_total is not None and len(records) >= reported_total:
                break
            if self.config.max_pages is not None and pages >= self.config.max_pages:
                logger.warning(f"{label} stopped at max_pages={self.config.max_pages}")
                break
            offset += length

        total = reported_total if reported_total is not None else first_page_len
        return FetchResult(records=records, total=total or 0)
