"""Resolve an account into the sub-dimensions a task repeats over"""

from abc import ABC, abstractmethod
from typing import List, Optional

from reportsync.logging_config.logger import setup_logger
from reportsync.sync.models import Account, Dimension, DimensionKind

logger = setup_logger(__name__)


class Directory(ABC):
    """Read-only source of accounts and their sub-entities"""

    @abstractmethod
    def get_active_accounts(self) -> List[Account]:
        pass

    @abstractmethod
    def get_account(self, account_id: str) -> Optional[Account]:
        pass

    @abstractmethod
    def list_dimensions(self, account_id: str, kind: DimensionKind) -> List[Dimension]:
        pass


class FanoutEnumerator:
    def __init__(self, directory: Directory):
        self.directory = directory

    def resolve(self, account: Account, kind: DimensionKind) -> List[Optional[Dimension]]:
        """
        Ordered, de-duplicated dimensions for one run.

        Tasks without sub-dimensions get the single implicit None dimension.
        An empty list is a legitimate result and means there is nothing to sync.
        """
        if kind == DimensionKind.NONE:
            return [None]

        seen = set()
        dimensions: List[Optional[Dimension]] = []
        for dimension in self.directory.list_dimensions(account.id, kind):
            if not dimension.key or dimension.key in seen:
                continue
            seen.add(dimension.key)
            dimensions.append(dimension)

        logger.debug(f"Account {account.id}: {len(dimensions)} {kind.value} dimension(s)")
        return dimensions
