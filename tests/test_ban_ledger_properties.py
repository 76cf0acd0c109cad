"""
Property-based tests for the Ban Ledger.

Covers eligibility of banned candidates, ban/unban persistence, and the
auto-unban of expired bans.
"""

import asyncio

from hypothesis import given, settings, assume
from hypothesis import strategies as st

from dns_failover.ban_ledger import (
    AUTO_BAN_DURATION,
    MANUAL_BAN_DURATION,
    BanLedger,
    is_eligible,
    needs_auto_unban,
)
from dns_failover.db_models import ForwardRecord
from dns_failover.enums import ResolveStatus


class RecordingStore:
    """Store double that records every persisted ban state."""

    def __init__(self) -> None:
        self.saved: list[tuple[int, bool, int, str]] = []

    async def save_ban_state(self, forward: ForwardRecord) -> None:
        self.saved.append((forward.id, forward.is_ban, forward.ban_time, forward.resolve_status))


def make_forward(forward_id: int = 1, is_ban: bool = False, ban_time: int = 0) -> ForwardRecord:
    return ForwardRecord(
        id=forward_id,
        domain_record_id=1,
        forward_domain=f"f{forward_id}.example.net",
        ip="",
        isp="",
        is_ban=is_ban,
        ban_time=ban_time,
        weight=0,
        sort_order=0,
        record_type="A",
        resolve_status=ResolveStatus.NEVER.value,
    )


now_strategy = st.integers(min_value=1_000_000, max_value=4_000_000_000)


class TestEligibilityProperty:
    """Eligibility follows the ban flag and its expiry."""

    @given(now=now_strategy, ban_time=st.integers(min_value=0, max_value=4_100_000_000))
    @settings(max_examples=100)
    def test_unbanned_always_eligible(self, now: int, ban_time: int):
        forward = make_forward(is_ban=False, ban_time=ban_time)
        assert is_eligible(forward, now)
        assert not needs_auto_unban(forward, now)

    @given(now=now_strategy, remaining=st.integers(min_value=1, max_value=MANUAL_BAN_DURATION))
    @settings(max_examples=100)
    def test_unexpired_ban_is_not_eligible(self, now: int, remaining: int):
        forward = make_forward(is_ban=True, ban_time=now + remaining)
        assert not is_eligible(forward, now)
        assert not needs_auto_unban(forward, now)

    @given(now=now_strategy, elapsed=st.integers(min_value=0, max_value=10_000_000))
    @settings(max_examples=100)
    def test_expired_ban_is_eligible_and_stale(self, now: int, elapsed: int):
        assume(now - elapsed > 0)
        forward = make_forward(is_ban=True, ban_time=now - elapsed)
        assert is_eligible(forward, now)
        assert needs_auto_unban(forward, now)

    @given(now=now_strategy)
    @settings(max_examples=50)
    def test_zero_ban_time_is_permanent(self, now: int):
        forward = make_forward(is_ban=True, ban_time=0)
        assert not is_eligible(forward, now)
        assert not needs_auto_unban(forward, now)


class TestBanPersistenceProperty:
    """Every ban change is written through to the store."""

    @given(now=now_strategy, duration=st.integers(min_value=1, max_value=MANUAL_BAN_DURATION))
    @settings(max_examples=50)
    def test_ban_sets_expiry_and_failed_status(self, now: int, duration: int):
        async def run_test():
            store = RecordingStore()
            ledger = BanLedger(store)
            forward = make_forward(forward_id=7)

            until = await ledger.ban(forward, duration, now=now)

            assert until == now + duration
            assert forward.is_ban is True
            assert forward.ban_time == now + duration
            assert forward.resolve_status == ResolveStatus.FAILED.value
            assert store.saved == [(7, True, now + duration, ResolveStatus.FAILED.value)]
            assert not ledger.is_eligible(forward, now)

        asyncio.run(run_test())

    @given(now=now_strategy)
    @settings(max_examples=30)
    def test_default_ban_lasts_one_day(self, now: int):
        async def run_test():
            ledger = BanLedger(RecordingStore())
            forward = make_forward()
            await ledger.ban(forward, now=now)
            assert forward.ban_time == now + AUTO_BAN_DURATION
            assert ledger.is_eligible(forward, now + AUTO_BAN_DURATION)

        asyncio.run(run_test())

    def test_manual_ban_lasts_one_year(self):
        async def run_test():
            ledger = BanLedger(RecordingStore(), clock=lambda: 1_700_000_000.0)
            forward = make_forward()
            await ledger.ban_manually(forward)
            assert forward.ban_time == 1_700_000_000 + MANUAL_BAN_DURATION

        asyncio.run(run_test())

    @given(is_ban=st.booleans(), ban_time=st.integers(min_value=0, max_value=4_000_000_000))
    @settings(max_examples=50)
    def test_unban_clears_flag_and_expiry(self, is_ban: bool, ban_time: int):
        async def run_test():
            store = RecordingStore()
            ledger = BanLedger(store)
            forward = make_forward(forward_id=3, is_ban=is_ban, ban_time=ban_time)

            await ledger.unban(forward)

            assert forward.is_ban is False
            assert forward.ban_time == 0
            assert store.saved[-1][:3] == (3, False, 0)

        asyncio.run(run_test())


class TestAutoUnbanProperty:
    """Only expired, non-permanent bans are lifted."""

    @given(
        now=now_strategy,
        states=st.lists(
            st.tuples(st.booleans(), st.integers(min_value=-1000, max_value=1000), st.booleans()),
            min_size=0,
            max_size=8,
        ),
    )
    @settings(max_examples=100)
    def test_auto_unban_releases_exactly_expired(self, now: int, states):
        async def run_test():
            store = RecordingStore()
            ledger = BanLedger(store)
            forwards = []
            for index, (is_ban, offset, permanent) in enumerate(states, start=1):
                ban_time = 0 if permanent else now + offset
                forwards.append(make_forward(forward_id=index, is_ban=is_ban, ban_time=ban_time))

            expected = {f.id for f in forwards if needs_auto_unban(f, now)}
            released = await ledger.auto_unban_expired(forwards, now=now)

            assert {f.id for f in released} == expected
            assert {saved[0] for saved in store.saved} == expected
            for forward in forwards:
                if forward.id in expected:
                    assert forward.is_ban is False
            # Whatever remains banned is still ineligible
            for forward in forwards:
                if forward.is_ban:
                    assert not is_eligible(forward, now)

        asyncio.run(run_test())
