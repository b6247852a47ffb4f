"""Base connector class for upstream API integrations"""

from abc import ABC, abstractmethod
from typing import Any, Dict, Iterable, Optional

from reportsync.logging_config.logger import setup_logger


class BaseConnector(ABC):
    """
    Abstract base class for upstream API connectors.
    Subclasses must implement post and validate_connection methods.
    """

    def __init__(self, base_url: str, api_name: str):
        """
        Initialize connector

        Args:
            base_url: Root URL of the upstream API
            api_name: Name of the upstream API (used in log lines)
        """
        self.base_url = base_url.rstrip("/")
        self.api_name = api_name
        self.logger = setup_logger(f"{self.__class__.__module__}.{self.__class__.__name__}")

    @abstractmethod
    def post(
        self,
        account,
        path: str,
        body: Dict[str, Any],
        success_codes: Optional[Iterable[Any]] = None,
    ) -> Dict[str, Any]:
        """
        Call one upstream endpoint on behalf of an account

        Args:
            account: Account carrying the credentials
            path: Endpoint path relative to base_url
            body: JSON request body
            success_codes: Response codes treated as success for this endpoint family

        Returns:
            Decoded response envelope

        Raises:
            UpstreamError or RateLimitError on a non-success response
        """
        pass

    @abstractmethod
    def validate_connection(self, account) -> bool:
        """
        Validate that the API accepts the account credentials

        Returns:
            True if connection is valid, False otherwise
        """
        pass

    def log_info(self, message: str):
        """Log info message"""
        self.logger.info(f"[{self.api_name}] {message}")

    def log_warning(self, message: str):
        """Log warning message"""
        self.logger.warning(f"[{self.api_name}] {message}")

    def log_error(self, message: str, exc_info: bool = False):
        """Log error message"""
        self.logger.error(f"[{self.api_name}] {message}", exc_info=exc_info)
