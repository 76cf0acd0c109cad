"""
Data models for the DNS failover controller.

This module defines the in-memory structures exchanged between components:
probe results, candidate selection results, and the per-cycle check report
with its five outcome categories. Persisted rows live in `db_models`.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional

from .enums import CycleTrigger, DisconnectReason, DomainOutcome


@dataclass
class ProbeProgress:
    """One connect attempt reported while a probe is running."""

    target: str
    address: str
    current: int
    total: int


@dataclass
class ProbeResult:
    """Terminal answer of a reachability probe."""

    target: str
    port: int
    reachable: bool
    target_ip: str = ""
    message: str = ""
    exhausted: bool = False  # All attempts used and none connected
    attempts: int = 0
    backend_public_ip: str = ""


@dataclass
class FailedDomain:
    """A domain whose probe could not be performed (infra failure)."""

    domain: str
    port: int
    error: str


@dataclass
class DisconnectedDomain:
    """A domain whose primary answered unreachable."""

    domain: str
    port: int
    reason: DisconnectReason
    message: str = ""


@dataclass
class BannedForward:
    """A candidate banned during the cycle after exhausting its attempts."""

    domain: str
    port: int
    forward_domain: str
    isp: str
    weight: int
    ban_until: int


@dataclass
class SwitchedDomain:
    """A successful DNS switch to a new candidate."""

    domain: str
    port: int
    record_type: str
    content: str
    forward_domain: str
    isp: str
    weight: int
    ip: str


@dataclass
class NoForwardDomain:
    """A domain that needs a switch but has nothing to switch to."""

    domain: str
    port: int
    configured: bool  # False when the domain has no forwards at all


@dataclass
class DomainResult:
    """Outcome of one domain's evaluation."""

    domain: str
    port: int
    outcome: DomainOutcome
    detail: str = ""


@dataclass
class CheckReport:
    """Aggregated outcomes of one cycle."""

    trigger: CycleTrigger = CycleTrigger.SCHEDULED
    started_at: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())
    finished_at: Optional[str] = None
    failed: list[FailedDomain] = field(default_factory=list)
    disconnected: list[DisconnectedDomain] = field(default_factory=list)
    banned: list[BannedForward] = field(default_factory=list)
    switched: list[SwitchedDomain] = field(default_factory=list)
    no_forward: list[NoForwardDomain] = field(default_factory=list)
    results: list[DomainResult] = field(default_factory=list)
    aborted: bool = False
    abort_reason: str = ""

    @property
    def checked_count(self) -> int:
        return sum(1 for r in self.results if r.outcome != DomainOutcome.SKIPPED)

    @property
    def normal_domains(self) -> list[DomainResult]:
        return [r for r in self.results if r.outcome == DomainOutcome.NORMAL]

    def has_noteworthy(self, include_failures: bool) -> bool:
        """Whether any category would appear in the digest."""
        if self.disconnected or self.banned or self.switched or self.no_forward:
            return True
        return include_failures and bool(self.failed)

    def is_empty(self) -> bool:
        return not self.has_noteworthy(include_failures=True)

    def mark_finished(self) -> None:
        self.finished_at = datetime.now(timezone.utc).isoformat()


@dataclass
class ImportSummary:
    """Counts reported after a bulk import."""

    domains_added: int = 0
    domains_updated: int = 0
    forwards_added: int = 0
    forwards_skipped: int = 0
