"""
Enumeration types for the DNS failover controller.

These enums provide type-safe constants for record kinds, resolve states,
outcome categories, and configuration options throughout the system.
"""

from enum import Enum


class ResolveStatus(Enum):
    """Whether a candidate is the currently active DNS target."""

    NEVER = "never"
    SUCCESS = "success"
    FAILED = "failed"


class RecordType(Enum):
    """DNS record kinds the failover engine can write."""

    A = "A"
    CNAME = "CNAME"


class DisconnectReason(Enum):
    """Simplified classification of an unreachable primary."""

    TIMEOUT = "timeout"
    REFUSED = "refused"
    UNREACHABLE = "unreachable"
    OTHER = "other"


class DomainOutcome(Enum):
    """Terminal state of one domain's evaluation within a cycle."""

    SKIPPED = "skipped"
    NORMAL = "normal"
    INFRA_FAILURE = "infra_failure"
    NO_FORWARDS = "no_forwards"
    NO_AVAILABLE_FORWARD = "no_available_forward"
    SWITCHED = "switched"
    CONFIG_GAP = "config_gap"
    COMMIT_FAILED = "commit_failed"
    ERROR = "error"


class CycleTrigger(Enum):
    """What started a cycle."""

    SCHEDULED = "scheduled"
    MANUAL = "manual"


class ProbeMode(Enum):
    """Which prober implementation to use."""

    LOCAL = "local"
    REMOTE = "remote"


class AdminRole(Enum):
    """Role of a chat administrator."""

    SUPER = "super"
    ADMIN = "admin"


class LogLevel(Enum):
    """Logging severity levels."""

    DEBUG = "debug"
    INFO = "info"
    WARN = "warn"
    ERROR = "error"


class HostValidationErrorCode(Enum):
    """Error codes for hostname validation failures."""

    EMPTY_INPUT = "empty_input"
    FORBIDDEN_CHARS = "forbidden_chars"
    TOO_LONG = "too_long"
    IDNA_ERROR = "idna_error"
