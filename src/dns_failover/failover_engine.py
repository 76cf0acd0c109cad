"""
Failover Engine.

Evaluates every enabled domain once per cycle, sequentially:

1. Probe the domain's own hostname:port.
   - prober error: infra failure, counted, no failover for this domain
   - reachable: connectivity normal, nothing to do
   - unreachable: classify the reason and fail over
2. Run the Candidate Selector over the domain's forwards.
3. Commit the selected candidate to DNS, then mark it active and every
   sibling inactive in one transaction.

A DNS commit failure leaves resolve states untouched and is reported as an
infra failure. Progress is exposed as an async stream of events; run_cycle()
drains it and returns the CheckReport.
"""

import time
from typing import AsyncIterator, Callable, Optional

from .audit_logger import AuditLogger
from .ban_ledger import BanLedger
from .candidate_selector import CandidateSelector, SelectionResult
from .db_models import DomainRecord
from .dns_provider import DnsGateway
from .enums import (
    CycleTrigger,
    DisconnectReason,
    DomainOutcome,
    LogLevel,
    RecordType,
    ResolveStatus,
)
from .events import (
    CycleEvent,
    CycleFinished,
    CycleStarted,
    DomainFinished,
    DomainStarted,
    ProbeAttempt,
)
from .exceptions import DnsFailoverError, DnsProviderError, ProbeError
from .failure_counter import FailureCounter
from .models import (
    BannedForward,
    CheckReport,
    DisconnectedDomain,
    DomainResult,
    FailedDomain,
    NoForwardDomain,
    ProbeProgress,
    ProbeResult,
    SwitchedDomain,
)
from .prober import Prober
from .state_store import StateStore


def classify_disconnect(message: str) -> DisconnectReason:
    """Map a prober failure message onto a coarse reason."""
    text = message.lower()
    if "timeout" in text or "timed out" in text:
        return DisconnectReason.TIMEOUT
    if "refused" in text:
        return DisconnectReason.REFUSED
    if "no route" in text or "unreachable" in text:
        return DisconnectReason.UNREACHABLE
    return DisconnectReason.OTHER


class FailoverEngine:
    """
    Per-domain health check and DNS failover.

    The engine holds no state between cycles beyond what is persisted on the
    domain and forward rows.
    """

    def __init__(
        self,
        store: StateStore,
        prober: Prober,
        dns_gateway: DnsGateway,
        failure_counter: FailureCounter,
        ttl: int = 60,
        proxied: bool = False,
        logger: Optional[AuditLogger] = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        """
        Initialize the failover engine.

        Args:
            store: Relational state store
            prober: Reachability prober used for primaries and forwards
            dns_gateway: Provider client used to commit switches
            failure_counter: Shared consecutive infra-failure counter
            ttl: TTL written with every record update
            proxied: Proxy flag written with every record update
            logger: Optional audit logger
            clock: Source of the current unix time
        """
        self._store = store
        self._prober = prober
        self._dns_gateway = dns_gateway
        self._failure_counter = failure_counter
        self._ttl = ttl
        self._proxied = proxied
        self._logger = logger
        self._clock = clock
        self._ban_ledger = BanLedger(store, logger=logger, clock=clock)
        self._selector = CandidateSelector(
            prober=prober,
            ban_ledger=self._ban_ledger,
            failure_counter=failure_counter,
            logger=logger,
        )

    @property
    def ban_ledger(self) -> BanLedger:
        return self._ban_ledger

    @property
    def failure_counter(self) -> FailureCounter:
        return self._failure_counter

    def _now(self) -> int:
        return int(self._clock())

    async def stream_cycle(
        self,
        trigger: CycleTrigger = CycleTrigger.SCHEDULED,
    ) -> AsyncIterator[CycleEvent]:
        """
        Run one cycle over all enabled domains, yielding progress.

        The last event is always CycleFinished carrying the report.

        Raises:
            PersistenceError: If the store is unavailable at cycle start
        """
        report = CheckReport(trigger=trigger)

        await self._store.ping()
        domains = await self._store.list_domains(include_disabled=False)

        total = len(domains)
        self._log_info(
            f"{trigger.value} check started",
            {"domains": total, "trigger": trigger.value},
        )
        yield CycleStarted(trigger=trigger, total_domains=total)

        for index, domain in enumerate(domains, start=1):
            yield DomainStarted(index=index, total=total, domain=domain.domain, port=domain.port)
            try:
                async for event in self.stream_domain(domain, report):
                    yield event
            except DnsFailoverError as e:
                # Isolate the failure to this domain
                self._log_error(
                    f"Error while evaluating {domain.label}",
                    {"domain": domain.label, "error_code": e.code, "error": e.message},
                )
                yield self._finish(report, domain, DomainOutcome.ERROR, e.message)

        report.mark_finished()
        self._log_info(
            f"{trigger.value} check finished",
            {
                "switched": len(report.switched),
                "disconnected": len(report.disconnected),
                "banned": len(report.banned),
                "no_forward": len(report.no_forward),
                "failed": len(report.failed),
                "failure_count": self._failure_counter.count,
            },
        )
        yield CycleFinished(report=report)

    async def run_cycle(self, trigger: CycleTrigger = CycleTrigger.SCHEDULED) -> CheckReport:
        """Run one cycle to completion and return its report."""
        report: Optional[CheckReport] = None
        async for event in self.stream_cycle(trigger):
            if isinstance(event, CycleFinished):
                report = event.report
        assert report is not None
        return report

    async def stream_domain(
        self,
        domain: DomainRecord,
        report: CheckReport,
    ) -> AsyncIterator[CycleEvent]:
        """Evaluate one domain, recording its outcome on `report`."""
        if domain.is_disable_check:
            yield self._finish(report, domain, DomainOutcome.SKIPPED, "check disabled")
            return

        now = self._now()

        primary: Optional[ProbeResult] = None
        try:
            async for event in self._prober.stream(domain.domain, domain.port):
                if isinstance(event, ProbeProgress):
                    yield ProbeAttempt(
                        domain=domain.domain,
                        port=domain.port,
                        role="primary",
                        progress=event,
                    )
                else:
                    primary = event
            if primary is None:
                raise ProbeError(
                    code="no_result",
                    message="Prober finished without a result",
                    details={"target": domain.domain},
                )
        except ProbeError as e:
            count = self._failure_counter.increment()
            report.failed.append(FailedDomain(domain=domain.domain, port=domain.port, error=e.message))
            self._log_error(
                f"Probe of {domain.label} failed",
                {
                    "domain": domain.label,
                    "error_code": e.code,
                    "error": e.message,
                    "failure_count": count,
                },
            )
            yield self._finish(report, domain, DomainOutcome.INFRA_FAILURE, e.message)
            return

        self._failure_counter.reset()

        if primary.reachable:
            self._log(
                LogLevel.DEBUG,
                f"{domain.label} connectivity normal",
                {"domain": domain.label, "ip": primary.target_ip},
            )
            yield self._finish(report, domain, DomainOutcome.NORMAL)
            return

        reason = classify_disconnect(primary.message)
        report.disconnected.append(DisconnectedDomain(
            domain=domain.domain,
            port=domain.port,
            reason=reason,
            message=primary.message,
        ))
        self._log(
            LogLevel.WARN,
            f"{domain.label} unreachable ({reason.value}), failing over",
            {"domain": domain.label, "reason": reason.value, "message": primary.message},
        )

        if not domain.forwards:
            report.no_forward.append(NoForwardDomain(
                domain=domain.domain, port=domain.port, configured=False,
            ))
            self._log(
                LogLevel.WARN,
                f"{domain.label} has no forwards configured",
                {"domain": domain.label},
            )
            yield self._finish(report, domain, DomainOutcome.NO_FORWARDS)
            return

        selection: Optional[SelectionResult] = None
        async for event in self._selector.select(domain, now):
            if isinstance(event, SelectionResult):
                selection = event
            else:
                yield event
        assert selection is not None

        for candidate in selection.banned:
            report.banned.append(BannedForward(
                domain=domain.domain,
                port=domain.port,
                forward_domain=candidate.forward_domain,
                isp=candidate.isp,
                weight=candidate.weight,
                ban_until=candidate.ban_time,
            ))

        if not selection.found:
            report.no_forward.append(NoForwardDomain(
                domain=domain.domain, port=domain.port, configured=True,
            ))
            self._log(
                LogLevel.ERROR,
                f"{domain.label} has no available forward",
                {
                    "domain": domain.label,
                    "skipped_banned": len(selection.skipped),
                    "probed": len(selection.probed),
                    "infra_errors": selection.infra_errors,
                },
            )
            yield self._finish(report, domain, DomainOutcome.NO_AVAILABLE_FORWARD)
            return

        outcome, detail = await self._commit(domain, selection, report, now)
        yield self._finish(report, domain, outcome, detail)

    async def _commit(
        self,
        domain: DomainRecord,
        selection: SelectionResult,
        report: CheckReport,
        now: int,
    ) -> tuple[DomainOutcome, str]:
        candidate = selection.selected
        ip = selection.selected_ip

        if not domain.record_id or not domain.zone_id:
            self._log(
                LogLevel.WARN,
                f"{domain.label} is missing record_id/zone_id, DNS update skipped",
                {
                    "domain": domain.label,
                    "record_id": domain.record_id,
                    "zone_id": domain.zone_id,
                    "forward_domain": candidate.forward_domain,
                },
            )
            return DomainOutcome.CONFIG_GAP, "record_id or zone_id missing"

        kind = (candidate.record_type or RecordType.A.value).upper()
        if kind == RecordType.A.value:
            content = ip
        elif kind == RecordType.CNAME.value:
            content = candidate.forward_domain
        else:
            self._log(
                LogLevel.WARN,
                f"Unsupported record type {kind} on forward {candidate.forward_domain}",
                {"domain": domain.label, "record_type": kind},
            )
            return DomainOutcome.CONFIG_GAP, f"unsupported record type {kind}"

        if not content:
            self._log(
                LogLevel.WARN,
                f"Prober reported no IP for {candidate.forward_domain}, DNS update skipped",
                {"domain": domain.label, "forward_domain": candidate.forward_domain},
            )
            return DomainOutcome.CONFIG_GAP, "no IP to write"

        try:
            await self._dns_gateway.update_record(
                zone_id=domain.zone_id,
                record_id=domain.record_id,
                kind=kind,
                name=domain.domain,
                content=content,
                ttl=self._ttl,
                proxied=self._proxied,
            )
        except DnsProviderError as e:
            count = self._failure_counter.increment()
            report.failed.append(FailedDomain(
                domain=domain.domain,
                port=domain.port,
                error=f"DNS update failed: {e.message}",
            ))
            self._log_error(
                f"DNS update for {domain.label} failed",
                {
                    "domain": domain.label,
                    "forward_domain": candidate.forward_domain,
                    "content": content,
                    "error_code": e.code,
                    "error": e.message,
                    "failure_count": count,
                },
            )
            return DomainOutcome.COMMIT_FAILED, e.message

        await self._store.activate_forward(domain.id, candidate.id, ip, now)
        for sibling in domain.forwards:
            if sibling.id != candidate.id:
                sibling.resolve_status = ResolveStatus.NEVER.value
        candidate.resolve_status = ResolveStatus.SUCCESS.value
        candidate.last_resolved_at = now
        candidate.ip = ip

        report.switched.append(SwitchedDomain(
            domain=domain.domain,
            port=domain.port,
            record_type=kind,
            content=content,
            forward_domain=candidate.forward_domain,
            isp=candidate.isp,
            weight=candidate.weight,
            ip=ip,
        ))
        self._log_info(
            f"{domain.label} switched to {candidate.forward_domain}",
            {
                "domain": domain.label,
                "record_type": kind,
                "content": content,
                "forward_domain": candidate.forward_domain,
                "weight": candidate.weight,
            },
        )
        return DomainOutcome.SWITCHED, f"{kind} -> {content}"

    def _finish(
        self,
        report: CheckReport,
        domain: DomainRecord,
        outcome: DomainOutcome,
        detail: str = "",
    ) -> DomainFinished:
        report.results.append(DomainResult(
            domain=domain.domain, port=domain.port, outcome=outcome, detail=detail,
        ))
        return DomainFinished(domain=domain.domain, port=domain.port, outcome=outcome, detail=detail)

    def _log(self, level: LogLevel, message: str, data: dict) -> None:
        if self._logger:
            self._logger.log(level, "FailoverEngine", message, data)

    def _log_info(self, message: str, data: dict) -> None:
        self._log(LogLevel.INFO, message, data)

    def _log_error(self, message: str, data: dict) -> None:
        self._log(LogLevel.ERROR, message, data)
