"""
Property-based tests for simulation mode.

With simulation enabled the controller runs complete cycles, records every
decision in the store and renders digests, but sends nothing to Cloudflare
or Telegram.
"""

import asyncio
from unittest.mock import patch

import httpx
from hypothesis import given, settings
from hypothesis import strategies as st

from dns_failover.config import (
    AutoCheckConfig,
    CloudflareConfig,
    PersistenceConfig,
    SystemConfig,
    TelegramConfig,
)
from dns_failover.enums import CycleTrigger, DomainOutcome, ResolveStatus
from dns_failover.models import ProbeProgress, ProbeResult
from dns_failover.orchestrator import FailoverOrchestrator


class RoutingProber:
    """Reachability decided per hostname."""

    def __init__(self, reachable: set) -> None:
        self.reachable = reachable
        self.calls: list[str] = []

    def get_name(self) -> str:
        return "routing"

    async def stream(self, target, port):
        self.calls.append(target)
        yield ProbeProgress(target=target, address=f"192.0.2.1:{port}", current=1, total=1)
        if target in self.reachable:
            yield ProbeResult(target=target, port=port, reachable=True, target_ip="192.0.2.1", attempts=1)
        else:
            yield ProbeResult(
                target=target, port=port, reachable=False, target_ip="192.0.2.1",
                message="dial tcp 192.0.2.1:443: connect: connection refused",
                exhausted=True, attempts=1,
            )


def simulated_config() -> SystemConfig:
    return SystemConfig(
        auto_check=AutoCheckConfig(interval_seconds=60),
        cloudflare=CloudflareConfig(api_token="cf-token"),
        telegram=TelegramConfig(bot_token="123:abc", super_admin_id=42),
        persistence=PersistenceConfig(database_url="sqlite+aiosqlite:///:memory:"),
        simulation_mode=True,
    )


def forbid_network():
    return patch.object(
        httpx.AsyncClient, "send", side_effect=AssertionError("network used in simulation mode")
    )


class TestSimulationModeProperty:
    """Simulation mode performs full cycles without any HTTP traffic."""

    @given(
        forward_count=st.integers(min_value=1, max_value=4),
        reachable_index=st.one_of(st.none(), st.integers(min_value=0, max_value=3)),
    )
    @settings(max_examples=15, deadline=None)
    def test_scheduled_cycle_sends_nothing(self, forward_count, reachable_index):
        forwards = [f"edge{i}.example.net" for i in range(forward_count)]
        reachable = set()
        if reachable_index is not None and reachable_index < forward_count:
            reachable.add(forwards[reachable_index])

        async def run_test():
            prober = RoutingProber(reachable)
            async with FailoverOrchestrator(simulated_config(), prober=prober) as orchestrator:
                store = orchestrator.store
                domain = await store.add_domain("app.example.com", 443, record_id="rec", zone_id="zone")
                for index, name in enumerate(forwards):
                    await store.add_forward(domain.id, name, weight=forward_count - index)

                with forbid_network() as send:
                    report = await orchestrator.scheduler.tick()
                    assert send.call_count == 0

                assert report.trigger == CycleTrigger.SCHEDULED
                [result] = report.results
                [reloaded] = await store.list_domains()
                active = [
                    f.forward_domain for f in reloaded.forwards
                    if f.resolve_status == ResolveStatus.SUCCESS.value
                ]
                if reachable:
                    assert result.outcome == DomainOutcome.SWITCHED
                    assert active == sorted(reachable)
                    assert report.switched[0].content == "192.0.2.1"
                else:
                    assert result.outcome == DomainOutcome.NO_AVAILABLE_FORWARD
                    assert active == []
                    assert len(report.banned) == forward_count

        asyncio.run(run_test())

    def test_manual_check_once(self):
        async def run_test():
            prober = RoutingProber({"app.example.com"})
            async with FailoverOrchestrator(simulated_config(), prober=prober) as orchestrator:
                await orchestrator.store.add_domain("app.example.com", 443, record_id="r", zone_id="z")

                with forbid_network():
                    report = await orchestrator.check_once()

                assert report.trigger == CycleTrigger.MANUAL
                assert [r.outcome for r in report.results] == [DomainOutcome.NORMAL]
                assert orchestrator.reporter.render_manual(report).startswith("✅")
                assert not orchestrator.scheduler.is_busy()

        asyncio.run(run_test())

    def test_run_returns_when_nothing_enabled(self):
        async def run_test():
            config = simulated_config()
            config.auto_check.enabled = False
            config.telegram.bot_token = ""
            async with FailoverOrchestrator(config, prober=RoutingProber(set())) as orchestrator:
                await asyncio.wait_for(orchestrator.run(), timeout=5)
                assert not orchestrator.bot.is_running()

        asyncio.run(run_test())

    def test_run_stops_on_event(self):
        async def run_test():
            config = simulated_config()
            config.telegram.bot_token = ""
            async with FailoverOrchestrator(config, prober=RoutingProber(set())) as orchestrator:
                stop = asyncio.Event()
                stop.set()
                with forbid_network():
                    await asyncio.wait_for(orchestrator.run(stop), timeout=5)
                assert not orchestrator.scheduler.is_running()

        asyncio.run(run_test())
