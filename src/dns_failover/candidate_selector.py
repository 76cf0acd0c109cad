"""
Candidate Selector.

Orders a domain's forwards by weight (desc), sort order (asc), id (asc) and
probes them strictly in that order until one answers reachable:

- banned and unexpired: skipped without a probe
- prober error: counted as an infra failure, not banned, next candidate
- unreachable after exhausting every attempt: banned for 24h, next candidate
- unreachable for any other reason: next candidate, no ban
- reachable: selected, iteration stops
"""

from dataclasses import dataclass, field
from typing import AsyncIterator, Iterable, Optional, Union

from .audit_logger import AuditLogger
from .ban_ledger import AUTO_BAN_DURATION, BanLedger, is_eligible
from .db_models import DomainRecord, ForwardRecord
from .enums import LogLevel
from .events import CandidateProbed, CandidateSkipped, ProbeAttempt
from .exceptions import ProbeError
from .failure_counter import FailureCounter
from .models import ProbeProgress, ProbeResult
from .prober import Prober


@dataclass
class SelectionResult:
    """What the selector found for one domain."""

    selected: Optional[ForwardRecord] = None
    selected_ip: str = ""
    banned: list[ForwardRecord] = field(default_factory=list)
    skipped: list[ForwardRecord] = field(default_factory=list)
    probed: list[ForwardRecord] = field(default_factory=list)
    infra_errors: list[str] = field(default_factory=list)

    @property
    def found(self) -> bool:
        return self.selected is not None


SelectorEvent = Union[ProbeAttempt, CandidateSkipped, CandidateProbed, SelectionResult]


def order_candidates(candidates: Iterable[ForwardRecord]) -> list[ForwardRecord]:
    """Probe order: weight desc, then sort order asc, then id asc."""
    return sorted(candidates, key=lambda c: (-c.weight, c.sort_order, c.id))


class CandidateSelector:
    """Picks the first eligible, reachable forward of a domain."""

    def __init__(
        self,
        prober: Prober,
        ban_ledger: BanLedger,
        failure_counter: FailureCounter,
        logger: Optional[AuditLogger] = None,
    ) -> None:
        self._prober = prober
        self._ban_ledger = ban_ledger
        self._failure_counter = failure_counter
        self._logger = logger

    async def select(
        self,
        domain: DomainRecord,
        now: Optional[int] = None,
    ) -> AsyncIterator[SelectorEvent]:
        """
        Walk the candidates of `domain` in priority order.

        Yields progress events and, last, exactly one SelectionResult.
        """
        now = self._ban_ledger.now() if now is None else now
        result = SelectionResult()

        await self._ban_ledger.auto_unban_expired(domain.forwards, now)

        for candidate in order_candidates(domain.forwards):
            if not is_eligible(candidate, now):
                result.skipped.append(candidate)
                yield CandidateSkipped(
                    domain=domain.domain,
                    forward_domain=candidate.forward_domain,
                    ban_time=candidate.ban_time,
                )
                continue

            result.probed.append(candidate)
            probe_result: Optional[ProbeResult] = None
            try:
                async for event in self._prober.stream(candidate.forward_domain, domain.port):
                    if isinstance(event, ProbeProgress):
                        yield ProbeAttempt(
                            domain=domain.domain,
                            port=domain.port,
                            role="forward",
                            progress=event,
                        )
                    else:
                        probe_result = event
                if probe_result is None:
                    raise ProbeError(
                        code="no_result",
                        message="Prober finished without a result",
                        details={"target": candidate.forward_domain},
                    )
            except ProbeError as e:
                count = self._failure_counter.increment()
                result.infra_errors.append(f"{candidate.forward_domain}: {e.message}")
                self._log_error(
                    f"Probe of forward {candidate.forward_domain} failed, not banning",
                    {
                        "domain": domain.label,
                        "forward_domain": candidate.forward_domain,
                        "error_code": e.code,
                        "error": e.message,
                        "failure_count": count,
                    },
                )
                yield CandidateProbed(
                    domain=domain.domain,
                    forward_domain=candidate.forward_domain,
                    reachable=False,
                    banned=False,
                    error=e.message,
                )
                continue

            self._failure_counter.reset()

            if probe_result.reachable:
                result.selected = candidate
                result.selected_ip = probe_result.target_ip
                self._log(
                    LogLevel.INFO,
                    f"Forward {candidate.forward_domain} reachable, selected",
                    {
                        "domain": domain.label,
                        "forward_domain": candidate.forward_domain,
                        "ip": probe_result.target_ip,
                        "weight": candidate.weight,
                    },
                )
                yield CandidateProbed(
                    domain=domain.domain,
                    forward_domain=candidate.forward_domain,
                    reachable=True,
                    banned=False,
                )
                break

            banned = False
            if probe_result.exhausted:
                await self._ban_ledger.ban(candidate, AUTO_BAN_DURATION, now)
                result.banned.append(candidate)
                banned = True
            else:
                self._log(
                    LogLevel.INFO,
                    f"Forward {candidate.forward_domain} unreachable without exhausting attempts, not banning",
                    {
                        "domain": domain.label,
                        "forward_domain": candidate.forward_domain,
                        "message": probe_result.message,
                    },
                )

            yield CandidateProbed(
                domain=domain.domain,
                forward_domain=candidate.forward_domain,
                reachable=False,
                banned=banned,
                message=probe_result.message,
            )

        yield result

    def _log(self, level: LogLevel, message: str, data: dict) -> None:
        if self._logger:
            self._logger.log(level, "CandidateSelector", message, data)

    def _log_error(self, message: str, data: dict) -> None:
        self._log(LogLevel.ERROR, message, data)
