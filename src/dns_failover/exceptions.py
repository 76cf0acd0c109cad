"""
Exception classes for the DNS failover controller.

All exceptions inherit from DnsFailoverError and provide structured
error information with codes, messages, and optional details.
"""

from typing import Optional


class DnsFailoverError(Exception):
    """Base exception for all DNS failover errors."""

    def __init__(
        self,
        code: str,
        message: str,
        details: Optional[dict] = None,
    ) -> None:
        self.code = code
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(code={self.code!r}, message={self.message!r})"

    def to_dict(self) -> dict:
        """Convert exception to dictionary for serialization."""
        return {
            "error_type": self.__class__.__name__,
            "code": self.code,
            "message": self.message,
            "details": self.details,
        }


class ValidationError(DnsFailoverError):
    """Raised when admin input or an imported record is rejected."""

    pass


class ConfigurationError(DnsFailoverError):
    """Raised when the configuration is missing a required value."""

    pass


class ProbeError(DnsFailoverError):
    """Raised when the reachability prober itself fails (transport/backend error).

    This is an infrastructure failure and never a reachability verdict.
    """

    pass


class DnsProviderError(DnsFailoverError):
    """Raised when the DNS provider API rejects or fails a request."""

    pass


class PersistenceError(DnsFailoverError):
    """Raised when the relational store is unavailable or a write fails."""

    pass


class NotificationError(DnsFailoverError):
    """Raised when notification delivery fails."""

    pass


class CycleInProgressError(DnsFailoverError):
    """Raised when a manual check is requested while a cycle is running."""

    pass
