"""
Progress events emitted while a cycle runs.

The failover engine yields these from an async generator; whoever drives the
cycle (scheduler logging, chat progress message, CLI output) decides how to
present them.
"""

from dataclasses import dataclass
from typing import Optional, Union

from .enums import CycleTrigger, DomainOutcome
from .models import CheckReport, ProbeProgress


@dataclass
class CycleStarted:
    trigger: CycleTrigger
    total_domains: int


@dataclass
class DomainStarted:
    index: int
    total: int
    domain: str
    port: int


@dataclass
class ProbeAttempt:
    """A connect attempt against the primary or a candidate."""

    domain: str
    port: int
    role: str  # 'primary' or 'forward'
    progress: ProbeProgress


@dataclass
class CandidateSkipped:
    domain: str
    forward_domain: str
    ban_time: int


@dataclass
class CandidateProbed:
    domain: str
    forward_domain: str
    reachable: bool
    banned: bool
    message: str = ""
    error: Optional[str] = None


@dataclass
class DomainFinished:
    domain: str
    port: int
    outcome: DomainOutcome
    detail: str = ""


@dataclass
class CycleFinished:
    report: CheckReport


CycleEvent = Union[
    CycleStarted,
    DomainStarted,
    ProbeAttempt,
    CandidateSkipped,
    CandidateProbed,
    DomainFinished,
    CycleFinished,
]


def describe_event(event: CycleEvent) -> str:
    """One-line human-readable rendering of an event."""
    if isinstance(event, CycleStarted):
        return f"{event.trigger.value} check started: {event.total_domains} domain(s)"
    if isinstance(event, DomainStarted):
        return f"[{event.index}/{event.total}] checking {event.domain}:{event.port}"
    if isinstance(event, ProbeAttempt):
        p = event.progress
        return f"  {event.role} {p.target} attempt {p.current}/{p.total} ({p.address})"
    if isinstance(event, CandidateSkipped):
        return f"  skipped banned forward {event.forward_domain} (until {event.ban_time})"
    if isinstance(event, CandidateProbed):
        if event.error:
            return f"  forward {event.forward_domain}: probe error {event.error}"
        state = "reachable" if event.reachable else "unreachable"
        suffix = ", banned 24h" if event.banned else ""
        return f"  forward {event.forward_domain}: {state}{suffix}"
    if isinstance(event, DomainFinished):
        text = f"  {event.domain}:{event.port} -> {event.outcome.value}"
        return f"{text} ({event.detail})" if event.detail else text
    if isinstance(event, CycleFinished):
        r = event.report
        return (
            f"check finished: {len(r.switched)} switched, {len(r.disconnected)} disconnected, "
            f"{len(r.banned)} banned, {len(r.no_forward)} without forward, {len(r.failed)} failed"
        )
    return repr(event)
