"""Custom exceptions for the sync engine"""


class SyncError(Exception):
    """Base exception for sync operations"""
    pass


class ValidationError(SyncError):
    """Missing or malformed required parameter"""
    pass


class UpstreamError(SyncError):
    """Upstream API answered with a non-success code"""

    def __init__(self, message: str, code=None, path: str = ""):
        super().__init__(message)
        self.code = code
        self.path = path


class RateLimitError(UpstreamError):
    """Upstream API throttled the request"""
    pass


class PersistenceError(SyncError):
    """Record store write failure"""
    pass


class ConfigurationError(SyncError):
    """Unknown task identifier or invalid task descriptor"""
    pass
