"""
DNS Failover - Cloudflare DNS failover controller with a Telegram admin bot.

This package periodically probes the primary address of every managed domain,
switches the DNS record to the first reachable forward when the primary goes
down, bans forwards that fail, and reports each cycle to the administrators.
"""

__version__ = "0.1.0"
__author__ = "DNS Failover Team"

from dns_failover.exceptions import (
    DnsFailoverError,
    ValidationError,
    ConfigurationError,
    ProbeError,
    DnsProviderError,
    PersistenceError,
    NotificationError,
    CycleInProgressError,
)
from dns_failover.enums import (
    ResolveStatus,
    RecordType,
    DisconnectReason,
    DomainOutcome,
    CycleTrigger,
    ProbeMode,
    AdminRole,
    LogLevel,
    HostValidationErrorCode,
)
from dns_failover.host_validator import (
    HostValidator,
    HostValidationResult,
    HostValidationError,
)
from dns_failover.config import (
    AutoCheckConfig,
    CloudflareConfig,
    TelegramConfig,
    ProbeConfig,
    BackendListenConfig,
    RetryConfig,
    PersistenceConfig,
    LoggingConfig,
    SystemConfig,
    ConfigValidationResult,
    create_default_config,
    load_config_from_file,
    save_config_to_file,
    apply_env_overrides,
    validate_config,
)
from dns_failover.db_models import (
    DomainRecord,
    ForwardRecord,
    TelegramAdmin,
)
from dns_failover.models import (
    ProbeProgress,
    ProbeResult,
    FailedDomain,
    DisconnectedDomain,
    BannedForward,
    SwitchedDomain,
    NoForwardDomain,
    DomainResult,
    CheckReport,
    ImportSummary,
)
from dns_failover.events import (
    CycleStarted,
    DomainStarted,
    ProbeAttempt,
    CandidateSkipped,
    CandidateProbed,
    DomainFinished,
    CycleFinished,
    describe_event,
)
from dns_failover.record_format import (
    parse_records,
    format_records,
)
from dns_failover.state_store import (
    StateStore,
)
from dns_failover.ban_ledger import (
    BanLedger,
)
from dns_failover.prober import (
    LocalProber,
    RemoteProber,
    create_prober,
)
from dns_failover.dns_provider import (
    DnsRecord,
    CloudflareClient,
)
from dns_failover.failure_counter import (
    FailureCounter,
)
from dns_failover.candidate_selector import (
    CandidateSelector,
    SelectionResult,
)
from dns_failover.failover_engine import (
    FailoverEngine,
)
from dns_failover.scheduler import (
    Scheduler,
)
from dns_failover.audit_logger import (
    AuditLogger,
    LogEntry,
)
from dns_failover.notifications import (
    TelegramApi,
    NotificationPayload,
    NotificationResult,
    NotificationChannel,
    TelegramChannel,
    NotificationRouter,
)
from dns_failover.i18n import (
    get_message,
    get_all_message_keys,
    has_translation,
    get_missing_translations,
    validate_translations,
    TRANSLATIONS,
    SUPPORTED_LANGUAGES,
    DEFAULT_LANGUAGE,
)
from dns_failover.reporter import (
    Reporter,
)
from dns_failover.admin_service import (
    AdminService,
)
from dns_failover.bot import (
    TelegramBot,
    create_bot,
    parse_command,
)
from dns_failover.probe_backend import (
    create_app,
)
from dns_failover.orchestrator import (
    FailoverOrchestrator,
)
from dns_failover.cli import (
    main as cli_main,
    create_parser,
)
from dns_failover.self_test import (
    SelfTest,
    SelfTestResult,
    EndpointTestResult,
    run_self_test,
)

__all__ = [
    # Exceptions
    "DnsFailoverError",
    "ValidationError",
    "ConfigurationError",
    "ProbeError",
    "DnsProviderError",
    "PersistenceError",
    "NotificationError",
    "CycleInProgressError",
    # Enums
    "ResolveStatus",
    "RecordType",
    "DisconnectReason",
    "DomainOutcome",
    "CycleTrigger",
    "ProbeMode",
    "AdminRole",
    "LogLevel",
    "HostValidationErrorCode",
    # Host Validator
    "HostValidator",
    "HostValidationResult",
    "HostValidationError",
    # Configuration
    "AutoCheckConfig",
    "CloudflareConfig",
    "TelegramConfig",
    "ProbeConfig",
    "BackendListenConfig",
    "RetryConfig",
    "PersistenceConfig",
    "LoggingConfig",
    "SystemConfig",
    "ConfigValidationResult",
    "create_default_config",
    "load_config_from_file",
    "save_config_to_file",
    "apply_env_overrides",
    "validate_config",
    # Persistent records
    "DomainRecord",
    "ForwardRecord",
    "TelegramAdmin",
    # Models
    "ProbeProgress",
    "ProbeResult",
    "FailedDomain",
    "DisconnectedDomain",
    "BannedForward",
    "SwitchedDomain",
    "NoForwardDomain",
    "DomainResult",
    "CheckReport",
    "ImportSummary",
    # Cycle events
    "CycleStarted",
    "DomainStarted",
    "ProbeAttempt",
    "CandidateSkipped",
    "CandidateProbed",
    "DomainFinished",
    "CycleFinished",
    "describe_event",
    # Record format
    "parse_records",
    "format_records",
    # State Store
    "StateStore",
    # Ban Ledger
    "BanLedger",
    # Prober
    "LocalProber",
    "RemoteProber",
    "create_prober",
    # DNS Provider
    "DnsRecord",
    "CloudflareClient",
    # Failover
    "FailureCounter",
    "CandidateSelector",
    "SelectionResult",
    "FailoverEngine",
    "Scheduler",
    # Audit Logger
    "AuditLogger",
    "LogEntry",
    # Notifications
    "TelegramApi",
    "NotificationPayload",
    "NotificationResult",
    "NotificationChannel",
    "TelegramChannel",
    "NotificationRouter",
    # i18n
    "get_message",
    "get_all_message_keys",
    "has_translation",
    "get_missing_translations",
    "validate_translations",
    "TRANSLATIONS",
    "SUPPORTED_LANGUAGES",
    "DEFAULT_LANGUAGE",
    # Reporting and administration
    "Reporter",
    "AdminService",
    "TelegramBot",
    "create_bot",
    "parse_command",
    # Probe backend
    "create_app",
    # Orchestrator
    "FailoverOrchestrator",
    # CLI
    "cli_main",
    "create_parser",
    # Self-Test
    "SelfTest",
    "SelfTestResult",
    "EndpointTestResult",
    "run_self_test",
]
