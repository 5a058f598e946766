"""
Custom exception classes for the whale consensus monitor.

Provides typed exceptions for better error handling and debugging.
"""

class MonitorException(Exception):
    """Base exception for all monitor-related errors."""

    def __init__(self, message: str, **context):
        super().__init__(message)
        self.message = message
        self.context = context

    def __str__(self):
        if self.context:
            ctx_str = ", ".join(f"{k}={v}" for k, v in self.context.items())
            return f"{self.message} [{ctx_str}]"
        return self.message


class ConfigurationException(MonitorException):
    """Raised when configuration is invalid."""
    pass


class NetworkException(MonitorException):
    """Raised when network/HTTP operations fail."""
    pass


class RpcException(NetworkException):
    """Raised when every RPC endpoint failed for a call."""
    pass


class EnrichmentException(MonitorException):
    """Raised when market or social lookups fail."""
    pass


class ParseException(MonitorException):
    """Raised when a transaction payload cannot be interpreted."""
    pass
