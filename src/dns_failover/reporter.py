"""
Notification Reporter.

Turns a CheckReport into an HTML digest and delivers it to every active
admin plus the super admin.

Scheduled digests are only sent when something is noteworthy. Infra
failures count as noteworthy only once the consecutive failure counter has
reached the configured threshold, so a single flaky probe never pages
anyone. Manual reports are always rendered and go to the requester only.
"""

import html
from datetime import datetime, timezone
from typing import Optional

from .audit_logger import AuditLogger
from .enums import CycleTrigger, LogLevel
from .failure_counter import FailureCounter
from .i18n import get_message
from .models import CheckReport
from .notifications import NotificationResult, NotificationRouter
from .state_store import StateStore


def format_unix_time(timestamp: int, language: str = "en") -> str:
    """
    Format a unix timestamp (UTC) for chat output.

    Args:
        timestamp: Seconds since the epoch; 0 means "never"
        language: 'en' or 'zh'
    """
    if timestamp <= 0:
        return "-"
    dt = datetime.fromtimestamp(timestamp, tz=timezone.utc)
    if language == "zh":
        return dt.strftime("%Y-%m-%d %H:%M UTC")
    return dt.strftime("%b %d, %Y, %H:%M UTC")


def format_iso_time(iso_timestamp: Optional[str], language: str = "en") -> str:
    if not iso_timestamp:
        return "-"
    try:
        dt = datetime.fromisoformat(iso_timestamp)
    except ValueError:
        return iso_timestamp
    return format_unix_time(int(dt.timestamp()), language)


def _label(domain: str, port: int) -> str:
    return f"<code>{html.escape(domain)}:{port}</code>"


class Reporter:
    """Renders and delivers cycle reports."""

    def __init__(
        self,
        router: NotificationRouter,
        store: StateStore,
        failure_counter: FailureCounter,
        super_admin_id: int = 0,
        api_fail_threshold: int = 3,
        language: str = "en",
        logger: Optional[AuditLogger] = None,
    ) -> None:
        """
        Initialize the reporter.

        Args:
            router: Router used to deliver digests
            store: State store, read for the active admin list
            failure_counter: Shared consecutive infra-failure counter
            super_admin_id: Chat id of the super admin (0 if unset)
            api_fail_threshold: Failures before infra errors are reported
            language: Language of the rendered digest
            logger: Optional audit logger
        """
        self._router = router
        self._store = store
        self._failure_counter = failure_counter
        self._super_admin_id = super_admin_id
        self._api_fail_threshold = api_fail_threshold
        self._language = language
        self._logger = logger

    def failures_visible(self) -> bool:
        """Whether infra failures have crossed the notification threshold."""
        return self._failure_counter.reached(self._api_fail_threshold)

    def _msg(self, key: str, **kwargs) -> str:
        return get_message(key, self._language, **kwargs)

    def render(self, report: CheckReport, include_failures: bool) -> Optional[str]:
        """
        Render the digest, or None when there is nothing noteworthy.

        Section order: switched, failed, disconnected, banned, no forward.
        """
        if not report.has_noteworthy(include_failures):
            return None

        title_key = (
            "report.title_manual"
            if report.trigger == CycleTrigger.MANUAL
            else "report.title_scheduled"
        )
        lines = [
            f"🔔 <b>{self._msg(title_key)}</b>",
            self._msg(
                "report.summary",
                checked=report.checked_count,
                time=format_iso_time(report.finished_at or report.started_at, self._language),
            ),
        ]

        if report.switched:
            lines.append("")
            lines.append(f"✅ <b>{self._msg('report.switched', count=len(report.switched))}</b>")
            for item in report.switched:
                lines.append("• " + self._msg(
                    "report.switched_line",
                    domain=_label(item.domain, item.port),
                    record_type=item.record_type,
                    content=f"<code>{html.escape(item.content)}</code>",
                    forward=html.escape(item.forward_domain),
                    isp=html.escape(item.isp or "-"),
                    weight=item.weight,
                ))

        if include_failures and report.failed:
            lines.append("")
            lines.append("⚠️ <b>" + self._msg(
                "report.failed",
                count=len(report.failed),
                failures=self._failure_counter.count,
            ) + "</b>")
            for item in report.failed:
                lines.append("• " + self._msg(
                    "report.failed_line",
                    domain=_label(item.domain, item.port),
                    error=html.escape(item.error),
                ))

        if report.disconnected:
            lines.append("")
            lines.append(f"🔌 <b>{self._msg('report.disconnected', count=len(report.disconnected))}</b>")
            for item in report.disconnected:
                lines.append("• " + self._msg(
                    "report.disconnected_line",
                    domain=_label(item.domain, item.port),
                    reason=self._msg(f"reason.{item.reason.value}"),
                ))

        if report.banned:
            lines.append("")
            lines.append(f"⛔ <b>{self._msg('report.banned', count=len(report.banned))}</b>")
            for item in report.banned:
                lines.append("• " + self._msg(
                    "report.banned_line",
                    forward=f"<code>{html.escape(item.forward_domain)}</code>",
                    isp=html.escape(item.isp or "-"),
                    weight=item.weight,
                    domain=_label(item.domain, item.port),
                    until=format_unix_time(item.ban_until, self._language),
                ))

        if report.no_forward:
            lines.append("")
            lines.append(f"🚨 <b>{self._msg('report.no_forward', count=len(report.no_forward))}</b>")
            for item in report.no_forward:
                key = "report.no_forward_configured" if item.configured else "report.no_forward_missing"
                lines.append("• " + self._msg(key, domain=_label(item.domain, item.port)))

        return "\n".join(lines)

    def render_manual(self, report: CheckReport) -> str:
        """Render a manual report; never empty."""
        text = self.render(report, include_failures=True)
        if text is not None:
            return text
        return "✅ " + self._msg("report.all_normal", checked=report.checked_count)

    async def recipients(self) -> list[int]:
        """Active admins plus the super admin, without duplicates."""
        chat_ids: list[int] = []
        if self._super_admin_id:
            chat_ids.append(self._super_admin_id)
        for uid in await self._store.active_admin_ids():
            if uid not in chat_ids:
                chat_ids.append(uid)
        return chat_ids

    async def send(self, report: CheckReport) -> list[NotificationResult]:
        """
        Deliver a scheduled digest if anything is noteworthy.

        Returns:
            One result per recipient; empty when the digest was suppressed
        """
        include_failures = self.failures_visible()
        text = self.render(report, include_failures)
        if text is None:
            self._log(
                LogLevel.DEBUG,
                "Nothing noteworthy, digest suppressed",
                {
                    "failed": len(report.failed),
                    "failure_count": self._failure_counter.count,
                    "threshold": self._api_fail_threshold,
                },
            )
            return []

        chat_ids = await self.recipients()
        if not chat_ids:
            self._log(LogLevel.WARN, "Digest has no recipients", {})
            return []

        results = await self._router.broadcast(chat_ids, text)
        delivered = sum(1 for r in results if r.success)
        self._log(
            LogLevel.INFO,
            f"Digest delivered to {delivered}/{len(chat_ids)} recipient(s)",
            {
                "switched": len(report.switched),
                "disconnected": len(report.disconnected),
                "banned": len(report.banned),
                "no_forward": len(report.no_forward),
                "failed_shown": len(report.failed) if include_failures else 0,
            },
        )
        return results

    def _log(self, level: LogLevel, message: str, data: dict) -> None:
        if self._logger:
            self._logger.log(level, "Reporter", message, data)
