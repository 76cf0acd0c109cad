"""
Property-based tests for the Candidate Selector.

Uses Hypothesis to generate forward lists with random weights, ban states
and probe outcomes, and checks priority order, ban handling and the
single-selection guarantee.
"""

import asyncio
from typing import Optional

from hypothesis import given, settings
from hypothesis import strategies as st

from dns_failover.ban_ledger import AUTO_BAN_DURATION, BanLedger
from dns_failover.candidate_selector import (
    CandidateSelector,
    SelectionResult,
    order_candidates,
)
from dns_failover.db_models import DomainRecord, ForwardRecord
from dns_failover.enums import ResolveStatus
from dns_failover.events import CandidateProbed, CandidateSkipped, ProbeAttempt
from dns_failover.exceptions import ProbeError
from dns_failover.failure_counter import FailureCounter
from dns_failover.models import ProbeProgress, ProbeResult


NOW = 1_700_000_000


class RecordingStore:
    def __init__(self) -> None:
        self.saved: list[int] = []

    async def save_ban_state(self, forward: ForwardRecord) -> None:
        self.saved.append(forward.id)


class ScriptedProber:
    """
    Prober double driven by a per-target outcome.

    Outcomes: 'up' (reachable), 'down' (all attempts exhausted),
    'unresolved' (unreachable without exhausting), 'error' (ProbeError).
    """

    def __init__(self, outcomes: dict[str, str]) -> None:
        self._outcomes = outcomes
        self.calls: list[str] = []

    def get_name(self) -> str:
        return "scripted"

    async def stream(self, target: str, port: int):
        self.calls.append(target)
        outcome = self._outcomes.get(target, "up")
        if outcome == "error":
            raise ProbeError(code="network_error", message="probe backend unavailable")
        yield ProbeProgress(target=target, address=f"198.51.100.1:{port}", current=1, total=5)
        yield ProbeResult(
            target=target,
            port=port,
            reachable=outcome == "up",
            target_ip="" if outcome == "unresolved" else "198.51.100.1",
            message="" if outcome == "up" else "i/o timeout",
            exhausted=outcome == "down",
            attempts=5,
        )


@st.composite
def forward_strategy(draw, forward_id: int) -> ForwardRecord:
    banned = draw(st.sampled_from(["none", "active", "expired", "permanent"]))
    ban_time = {
        "none": 0,
        "active": NOW + draw(st.integers(min_value=1, max_value=AUTO_BAN_DURATION)),
        "expired": NOW - draw(st.integers(min_value=0, max_value=AUTO_BAN_DURATION)),
        "permanent": 0,
    }[banned]
    return ForwardRecord(
        id=forward_id,
        domain_record_id=1,
        forward_domain=f"fw{forward_id}.example.net",
        ip="",
        isp=draw(st.sampled_from(["", "isp-a", "isp-b"])),
        is_ban=banned != "none",
        ban_time=ban_time,
        weight=draw(st.integers(min_value=0, max_value=5)),
        sort_order=draw(st.integers(min_value=0, max_value=5)),
        record_type="A",
        resolve_status=ResolveStatus.NEVER.value,
    )


@st.composite
def scenario_strategy(draw) -> tuple[list[ForwardRecord], dict[str, str]]:
    count = draw(st.integers(min_value=0, max_value=6))
    forwards = [draw(forward_strategy(i)) for i in range(1, count + 1)]
    outcomes = {
        f.forward_domain: draw(st.sampled_from(["up", "down", "unresolved", "error"]))
        for f in forwards
    }
    return forwards, outcomes


def make_domain(forwards: list[ForwardRecord]) -> DomainRecord:
    return DomainRecord(id=1, domain="app.example.com", port=443, forwards=forwards)


async def drain(selector: CandidateSelector, domain: DomainRecord, now: int):
    events = []
    result: Optional[SelectionResult] = None
    async for event in selector.select(domain, now):
        if isinstance(event, SelectionResult):
            result = event
        else:
            events.append(event)
    return events, result


class TestOrderProperty:
    """Candidates are ordered by weight desc, sort order asc, id asc."""

    @given(scenario=scenario_strategy())
    @settings(max_examples=100)
    def test_order_is_sorted_permutation(self, scenario):
        forwards, _ = scenario
        ordered = order_candidates(forwards)

        assert sorted(f.id for f in ordered) == sorted(f.id for f in forwards)
        for a, b in zip(ordered, ordered[1:]):
            assert (-a.weight, a.sort_order, a.id) <= (-b.weight, b.sort_order, b.id)


class TestSelectionProperty:
    """Selection probes in order and stops at the first reachable candidate."""

    @given(scenario=scenario_strategy())
    @settings(max_examples=100, deadline=None)
    def test_banned_candidates_never_probed(self, scenario):
        forwards, outcomes = scenario
        unexpired = {
            f.forward_domain for f in forwards
            if f.is_ban and (f.ban_time == 0 or f.ban_time > NOW)
        }

        async def run_test():
            prober = ScriptedProber(outcomes)
            selector = CandidateSelector(prober, BanLedger(RecordingStore()), FailureCounter())
            _, result = await drain(selector, make_domain(forwards), NOW)

            assert not unexpired & set(prober.calls)
            assert {f.forward_domain for f in result.skipped} <= unexpired
            if not result.found:
                assert {f.forward_domain for f in result.skipped} == unexpired

        asyncio.run(run_test())

    @given(scenario=scenario_strategy())
    @settings(max_examples=100, deadline=None)
    def test_selects_first_reachable_in_priority_order(self, scenario):
        forwards, outcomes = scenario

        def eligible(f: ForwardRecord) -> bool:
            return not f.is_ban or (f.ban_time != 0 and f.ban_time <= NOW)

        ordered = [f for f in order_candidates(forwards) if eligible(f)]
        expected = next((f for f in ordered if outcomes[f.forward_domain] == "up"), None)

        async def run_test():
            prober = ScriptedProber(outcomes)
            selector = CandidateSelector(prober, BanLedger(RecordingStore()), FailureCounter())
            _, result = await drain(selector, make_domain(forwards), NOW)

            if expected is None:
                assert not result.found
                assert prober.calls == [f.forward_domain for f in ordered]
            else:
                assert result.selected is expected
                assert result.selected_ip == "198.51.100.1"
                stop = ordered.index(expected)
                assert prober.calls == [f.forward_domain for f in ordered[:stop + 1]]

        asyncio.run(run_test())

    @given(scenario=scenario_strategy())
    @settings(max_examples=100, deadline=None)
    def test_only_exhausted_candidates_are_banned(self, scenario):
        forwards, outcomes = scenario

        async def run_test():
            prober = ScriptedProber(outcomes)
            store = RecordingStore()
            selector = CandidateSelector(prober, BanLedger(store), FailureCounter())
            events, result = await drain(selector, make_domain(forwards), NOW)

            probed = set(prober.calls)
            for forward in result.banned:
                assert forward.forward_domain in probed
                assert outcomes[forward.forward_domain] == "down"
                assert forward.is_ban
                assert forward.ban_time == NOW + AUTO_BAN_DURATION
                assert forward.resolve_status == ResolveStatus.FAILED.value
            for name in probed:
                if outcomes[name] == "down":
                    assert name in {f.forward_domain for f in result.banned}

            banned_events = [e for e in events if isinstance(e, CandidateProbed) and e.banned]
            assert len(banned_events) == len(result.banned)

        asyncio.run(run_test())

    @given(scenario=scenario_strategy())
    @settings(max_examples=100, deadline=None)
    def test_probe_errors_count_but_never_ban(self, scenario):
        forwards, outcomes = scenario

        async def run_test():
            prober = ScriptedProber(outcomes)
            counter = FailureCounter()
            selector = CandidateSelector(prober, BanLedger(RecordingStore()), counter)
            _, result = await drain(selector, make_domain(forwards), NOW)

            errored = [name for name in prober.calls if outcomes[name] == "error"]
            assert len(result.infra_errors) == len(errored)
            for forward in result.banned:
                assert outcomes[forward.forward_domain] != "error"
            # The counter restarts after every answered probe
            trailing = 0
            for name in reversed(prober.calls):
                if outcomes[name] != "error":
                    break
                trailing += 1
            assert counter.count == trailing

        asyncio.run(run_test())


class TestSelectorEventsProperty:
    """Progress events mirror the probing walk."""

    def test_events_for_mixed_candidates(self):
        forwards = [
            ForwardRecord(id=1, domain_record_id=1, forward_domain="a.example.net", ip="", isp="",
                          is_ban=True, ban_time=NOW + 60, weight=9, sort_order=0,
                          record_type="A", resolve_status="never"),
            ForwardRecord(id=2, domain_record_id=1, forward_domain="b.example.net", ip="", isp="",
                          is_ban=False, ban_time=0, weight=5, sort_order=0,
                          record_type="A", resolve_status="never"),
            ForwardRecord(id=3, domain_record_id=1, forward_domain="c.example.net", ip="", isp="",
                          is_ban=False, ban_time=0, weight=1, sort_order=0,
                          record_type="A", resolve_status="never"),
        ]
        outcomes = {"b.example.net": "down", "c.example.net": "up"}

        async def run_test():
            prober = ScriptedProber(outcomes)
            selector = CandidateSelector(prober, BanLedger(RecordingStore()), FailureCounter())
            events, result = await drain(selector, make_domain(forwards), NOW)

            kinds = [type(e) for e in events]
            assert kinds == [
                CandidateSkipped,
                ProbeAttempt,
                CandidateProbed,
                ProbeAttempt,
                CandidateProbed,
            ]
            assert result.selected.forward_domain == "c.example.net"
            assert [f.forward_domain for f in result.banned] == ["b.example.net"]
            assert [f.forward_domain for f in result.skipped] == ["a.example.net"]

        asyncio.run(run_test())

    def test_expired_ban_is_lifted_before_probing(self):
        forward = ForwardRecord(id=1, domain_record_id=1, forward_domain="a.example.net", ip="",
                                isp="", is_ban=True, ban_time=NOW - 1, weight=0, sort_order=0,
                                record_type="A", resolve_status="failed")

        async def run_test():
            store = RecordingStore()
            prober = ScriptedProber({"a.example.net": "up"})
            selector = CandidateSelector(prober, BanLedger(store), FailureCounter())
            _, result = await drain(selector, make_domain([forward]), NOW)

            assert store.saved == [1]
            assert forward.is_ban is False
            assert result.selected is forward

        asyncio.run(run_test())
