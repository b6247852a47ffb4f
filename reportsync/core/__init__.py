from .base_connector import BaseConnector
from .exceptions import (
    ConfigurationError,
    PersistenceError,
    RateLimitError,
    SyncError,
    UpstreamError,
    ValidationError,
)

__all__ = [
    "BaseConnector",
    "SyncError",
    "ValidationError",
    "UpstreamError",
    "RateLimitError",
    "PersistenceError",
    "ConfigurationError",
]
