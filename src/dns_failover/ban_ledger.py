"""
Ban Ledger for forward candidates.

A ban is derived state on a ForwardRecord:

- is_ban with ban_time in the future: excluded until ban_time
- is_ban with a non-zero ban_time in the past: stale, auto-unbanned on next read
- is_ban with ban_time == 0: permanent until an explicit unban

Every change is written through to the store immediately so a crash in the
middle of a cycle leaves the ban state consistent.
"""

import time
from typing import Callable, Iterable, Optional

from .audit_logger import AuditLogger
from .db_models import ForwardRecord
from .enums import LogLevel, ResolveStatus
from .state_store import StateStore


AUTO_BAN_DURATION = 24 * 60 * 60
MANUAL_BAN_DURATION = 365 * 24 * 60 * 60


def is_eligible(candidate: ForwardRecord, now: int) -> bool:
    """
    Whether a candidate may be probed.

    Args:
        candidate: The forward to check
        now: Current unix time in seconds

    Returns:
        False while an unexpired or permanent ban applies, True otherwise
    """
    if not candidate.is_ban:
        return True
    if candidate.ban_time == 0:
        return False
    return candidate.ban_time <= now


def needs_auto_unban(candidate: ForwardRecord, now: int) -> bool:
    """True for a banned candidate whose non-zero expiry has passed."""
    return candidate.is_ban and candidate.ban_time != 0 and candidate.ban_time <= now


class BanLedger:
    """Applies and lifts candidate bans, persisting each change."""

    def __init__(
        self,
        store: StateStore,
        logger: Optional[AuditLogger] = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._store = store
        self._logger = logger
        self._clock = clock

    def now(self) -> int:
        return int(self._clock())

    def is_eligible(self, candidate: ForwardRecord, now: Optional[int] = None) -> bool:
        return is_eligible(candidate, self.now() if now is None else now)

    async def ban(
        self,
        candidate: ForwardRecord,
        duration: int = AUTO_BAN_DURATION,
        now: Optional[int] = None,
    ) -> int:
        """
        Ban a candidate for `duration` seconds and mark it failed.

        Returns:
            The ban expiry (unix seconds)
        """
        now = self.now() if now is None else now
        candidate.is_ban = True
        candidate.ban_time = now + duration
        candidate.resolve_status = ResolveStatus.FAILED.value
        await self._store.save_ban_state(candidate)

        self._log(
            LogLevel.WARN,
            f"Forward {candidate.forward_domain} banned until {candidate.ban_time}",
            {
                "forward_id": candidate.id,
                "forward_domain": candidate.forward_domain,
                "duration_seconds": duration,
                "ban_time": candidate.ban_time,
            },
        )
        return candidate.ban_time

    async def ban_manually(self, candidate: ForwardRecord, now: Optional[int] = None) -> int:
        """Admin ban: one year, effectively permanent until unbanned."""
        return await self.ban(candidate, MANUAL_BAN_DURATION, now)

    async def unban(self, candidate: ForwardRecord) -> None:
        """Clear the ban flag and reset the expiry to zero."""
        candidate.is_ban = False
        candidate.ban_time = 0
        await self._store.save_ban_state(candidate)

        self._log(
            LogLevel.INFO,
            f"Forward {candidate.forward_domain} unbanned",
            {"forward_id": candidate.id, "forward_domain": candidate.forward_domain},
        )

    async def auto_unban_expired(
        self,
        candidates: Iterable[ForwardRecord],
        now: Optional[int] = None,
    ) -> list[ForwardRecord]:
        """
        Lift every ban whose non-zero expiry has passed.

        Returns:
            The candidates that were unbanned
        """
        now = self.now() if now is None else now
        released: list[ForwardRecord] = []
        for candidate in candidates:
            if needs_auto_unban(candidate, now):
                candidate.is_ban = False
                await self._store.save_ban_state(candidate)
                released.append(candidate)
                self._log(
                    LogLevel.INFO,
                    f"Forward {candidate.forward_domain} ban expired, auto-unbanned",
                    {
                        "forward_id": candidate.id,
                        "forward_domain": candidate.forward_domain,
                        "ban_time": candidate.ban_time,
                    },
                )
        return released

    def _log(self, level: LogLevel, message: str, data: dict) -> None:
        if self._logger:
            self._logger.log(level, "BanLedger", message, data)
