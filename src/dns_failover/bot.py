"""
Telegram admin bot.

Built on aiogram: a Dispatcher long-polls for updates and a Router maps each
slash command to a handler through Command filters. Handlers authorise the
sender and call the AdminService. /check starts a manual cycle in its own
task and reports progress by editing a single message in place.
"""

import asyncio
import html
from contextlib import aclosing
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Optional

from aiogram import BaseMiddleware, Bot, Dispatcher, F, Router
from aiogram.client.default import DefaultBotProperties
from aiogram.enums import ParseMode
from aiogram.exceptions import TelegramAPIError
from aiogram.filters import Command
from aiogram.types import Message, Update

from .admin_service import AdminService
from .audit_logger import AuditLogger
from .config import TelegramConfig
from .db_models import DomainRecord, ForwardRecord, TelegramAdmin
from .enums import LogLevel, ResolveStatus
from .events import CycleFinished, DomainStarted
from .exceptions import (
    ConfigurationError,
    CycleInProgressError,
    DnsFailoverError,
    PersistenceError,
    ValidationError,
)
from .i18n import get_message
from .reporter import Reporter, format_unix_time
from .scheduler import Scheduler


MESSAGE_LIMIT = 4000


@dataclass
class CommandContext:
    """A parsed command and who sent it."""

    chat_id: int
    uid: int
    command: str
    args: list[str] = field(default_factory=list)
    body: str = ""
    username: str = ""
    first_name: str = ""
    last_name: str = ""


Handler = Callable[[CommandContext], Awaitable[Optional[str]]]


def create_bot(config: TelegramConfig) -> Bot:
    """Build an aiogram Bot that sends HTML without link previews."""
    return Bot(
        token=config.bot_token,
        default=DefaultBotProperties(
            parse_mode=ParseMode.HTML,
            link_preview_is_disabled=True,
        ),
    )


def parse_command(text: str) -> tuple[str, list[str], str]:
    """
    Split a message into command, arguments and body.

    The command and its arguments come from the first line; every further
    line is the body (used by /import).

    >>> parse_command("/set forward 3 weight 20")
    ('set', ['forward', '3', 'weight', '20'], '')
    """
    first, _, body = text.strip().partition("\n")
    tokens = first.split()
    if not tokens or not tokens[0].startswith("/"):
        return "", [], ""
    command = tokens[0][1:].split("@", 1)[0].lower()
    return command, tokens[1:], body.strip()


def context_from_message(message: Message) -> Optional[CommandContext]:
    """Build a CommandContext, or None for messages that carry no command."""
    if message.from_user is None or not message.text:
        return None
    command, args, body = parse_command(message.text)
    if not command:
        return None
    sender = message.from_user
    return CommandContext(
        chat_id=message.chat.id,
        uid=sender.id,
        command=command,
        args=args,
        body=body,
        username=sender.username or "",
        first_name=sender.first_name or "",
        last_name=sender.last_name or "",
    )


def split_message(text: str, limit: int = MESSAGE_LIMIT) -> list[str]:
    """Split text on line boundaries into chunks Telegram accepts."""
    chunks: list[str] = []
    current = ""
    for line in text.split("\n"):
        while len(line) > limit:
            if current:
                chunks.append(current)
                current = ""
            chunks.append(line[:limit])
            line = line[limit:]
        candidate = f"{current}\n{line}" if current else line
        if len(candidate) > limit:
            chunks.append(current)
            current = line
        else:
            current = candidate
    if current:
        chunks.append(current)
    return chunks


class ErrorBoundaryMiddleware(BaseMiddleware):
    """
    Keeps one failing update from reaching the polling loop.

    Telegram API failures (blocked bot, flood limits) and controller errors
    are logged and the update is dropped. Cancellation is never caught.
    """

    def __init__(self, logger: Optional[AuditLogger] = None) -> None:
        self._logger = logger

    async def __call__(
        self,
        handler: Callable[[Any, dict[str, Any]], Awaitable[Any]],
        event: Any,
        data: dict[str, Any],
    ) -> Any:
        try:
            return await handler(event, data)
        except TelegramAPIError as e:
            self._log("Reply could not be delivered", event, {"error": str(e)})
        except DnsFailoverError as e:
            self._log(
                "Command failed",
                event,
                {"error_code": e.code, "error": e.message},
            )
        return None

    def _log(self, message: str, event: Any, data: dict) -> None:
        if self._logger:
            chat = getattr(event, "chat", None)
            data = {"chat_id": getattr(chat, "id", None), **data}
            self._logger.log(LogLevel.ERROR, "TelegramBot", message, data)


class TelegramBot:
    """Admin command router on top of an aiogram Dispatcher."""

    def __init__(
        self,
        bot: Optional[Bot],
        service: AdminService,
        scheduler: Scheduler,
        reporter: Reporter,
        poll_timeout: int = 30,
        logger: Optional[AuditLogger] = None,
    ) -> None:
        """
        Initialize the bot.

        Args:
            bot: aiogram Bot used for polling and replies (None when no token
                is configured; run() then refuses to start)
            service: Admin operations
            scheduler: Scheduler used for manual checks
            reporter: Reporter used to render manual check results
            poll_timeout: Long-poll timeout for getUpdates in seconds
            logger: Optional audit logger
        """
        self._bot = bot
        self._service = service
        self._scheduler = scheduler
        self._reporter = reporter
        self._poll_timeout = poll_timeout
        self._logger = logger
        self._running = False
        self._stop: Optional[asyncio.Event] = None
        self._checks: set[asyncio.Task] = set()

        # command -> (handler, super admin only)
        self._commands: dict[str, tuple[Handler, bool]] = {
            "start": (self._cmd_help, False),
            "help": (self._cmd_help, False),
            "domains": (self._cmd_domains, False),
            "forwards": (self._cmd_forwards, False),
            "add_domain": (self._cmd_add_domain, False),
            "delete_domain": (self._cmd_delete_domain, False),
            "toggle": (self._cmd_toggle, False),
            "resolve": (self._cmd_resolve, False),
            "add_forward": (self._cmd_add_forward, False),
            "delete_forward": (self._cmd_delete_forward, False),
            "ban": (self._cmd_ban, False),
            "unban": (self._cmd_unban, False),
            "set": (self._cmd_set, False),
            "check": (self._cmd_check, False),
            "export": (self._cmd_export, False),
            "import": (self._cmd_import, False),
            "admins": (self._cmd_admins, True),
            "add_admin": (self._cmd_add_admin, True),
            "ban_admin": (self._cmd_ban_admin, True),
            "unban_admin": (self._cmd_unban_admin, True),
            "delete_admin": (self._cmd_delete_admin, True),
        }

        self._router = Router(name="admin")
        self._router.message.middleware(ErrorBoundaryMiddleware(logger))
        self._router.message(Command("id", ignore_case=True))(self._on_id)
        for name, (handler, super_only) in self._commands.items():
            self._router.message(Command(name, ignore_case=True))(
                self._command_handler(handler, super_only)
            )
        # Registered last so every known command matches first
        self._router.message(F.text.startswith("/"))(self._on_unknown)

        self._dispatcher = Dispatcher()
        self._dispatcher.include_router(self._router)

    @property
    def commands(self) -> list[str]:
        return sorted(self._commands)

    @property
    def dispatcher(self) -> Dispatcher:
        return self._dispatcher

    def _msg(self, key: str, **kwargs) -> str:
        return get_message(key, self._service.language, **kwargs)

    # Polling

    async def run(self, stop_event: Optional[asyncio.Event] = None) -> None:
        """
        Poll for updates until stopped.

        Manual checks still running when polling stops are awaited, never
        cancelled.

        Args:
            stop_event: Optional event to signal the bot to stop
        """
        if self._bot is None:
            raise ConfigurationError(
                code="missing_bot_token",
                message="Telegram bot token is not configured",
            )
        self._stop = asyncio.Event()
        self._running = True
        self._log(LogLevel.INFO, "Bot polling started", {})

        polling = asyncio.create_task(self._dispatcher.start_polling(
            self._bot,
            polling_timeout=self._poll_timeout,
            allowed_updates=["message"],
            handle_signals=False,
            close_bot_session=False,
        ))
        waiters = [asyncio.create_task(self._stop.wait())]
        if stop_event is not None:
            waiters.append(asyncio.create_task(stop_event.wait()))

        try:
            await asyncio.wait([polling, *waiters], return_when=asyncio.FIRST_COMPLETED)
            if polling.done():
                polling.result()
        finally:
            for task in (polling, *waiters):
                task.cancel()
            await asyncio.gather(polling, *waiters, return_exceptions=True)
            await self.wait_checks()
            self._running = False
            self._log(LogLevel.INFO, "Bot polling stopped", {})

    def stop(self) -> None:
        if self._stop is not None:
            self._stop.set()

    def is_running(self) -> bool:
        return self._running

    async def wait_checks(self) -> None:
        """Wait for every manual check started from chat to finish."""
        while self._checks:
            await asyncio.gather(*self._checks)

    # Dispatch

    async def handle_update(self, update: Update) -> None:
        """Feed one update through the router, as polling does."""
        await self._dispatcher.feed_update(self._bot, update)

    def _command_handler(self, handler: Handler, super_only: bool):
        async def on_command(message: Message) -> None:
            ctx = context_from_message(message)
            if ctx is None:
                return
            reply = await self.dispatch(ctx, handler, super_only)
            if reply:
                await self._reply(ctx.chat_id, reply)

        return on_command

    async def _on_id(self, message: Message) -> None:
        ctx = context_from_message(message)
        if ctx is not None:
            await self._reply(ctx.chat_id, self._msg("common.your_id", uid=ctx.uid))

    async def _on_unknown(self, message: Message) -> None:
        ctx = context_from_message(message)
        if ctx is None:
            return
        reply = await self.dispatch(ctx, None)
        if reply:
            await self._reply(ctx.chat_id, reply)

    async def dispatch(
        self,
        ctx: CommandContext,
        handler: Optional[Handler],
        super_only: bool = False,
    ) -> Optional[str]:
        """Authorise and run a command, returning its reply text."""
        if not await self._service.is_authorized(ctx.uid):
            self._log(
                LogLevel.WARN,
                "Unauthorised command rejected",
                {"uid": ctx.uid, "command": ctx.command},
            )
            return self._msg("auth.denied", uid=ctx.uid)

        if handler is None:
            return self._msg("common.unknown_command")

        if super_only and not self._service.is_super_admin(ctx.uid):
            return self._msg("auth.super_only")

        self._log(
            LogLevel.DEBUG,
            f"/{ctx.command} from {ctx.uid}",
            {"uid": ctx.uid, "args": ctx.args},
        )
        try:
            return await handler(ctx)
        except ValidationError as e:
            return html.escape(e.message)
        except DnsFailoverError as e:
            self._log(
                LogLevel.ERROR,
                f"/{ctx.command} failed",
                {"uid": ctx.uid, "error_code": e.code, "error": e.message},
            )
            return self._msg("common.error", error=html.escape(e.message))

    async def _send(self, chat_id: int, text: str) -> Message:
        return await self._bot.send_message(chat_id=chat_id, text=text)

    async def _reply(self, chat_id: int, text: str) -> None:
        for chunk in split_message(text):
            await self._send(chat_id, chunk)

    async def _edit_progress(self, chat_id: int, message_id: int, text: str) -> None:
        # A lost progress edit must not abandon the running cycle
        try:
            await self._bot.edit_message_text(text=text, chat_id=chat_id, message_id=message_id)
        except TelegramAPIError as e:
            self._log(
                LogLevel.WARN,
                "Progress message could not be edited",
                {"chat_id": chat_id, "error": str(e)},
            )

    @staticmethod
    def _int_arg(ctx: CommandContext, index: int) -> Optional[int]:
        if len(ctx.args) <= index:
            return None
        try:
            return int(ctx.args[index])
        except ValueError:
            return None

    def _usage(self, usage: str) -> str:
        return self._msg("common.usage", usage=html.escape(usage))

    # Rendering

    def _render_domain(self, domain: DomainRecord) -> str:
        state = self._msg("domain.check_off" if domain.is_disable_check else "domain.check_on")
        active = next(
            (f.forward_domain for f in domain.forwards
             if f.resolve_status == ResolveStatus.SUCCESS.value),
            "-",
        )
        return (
            f"#{domain.id} <code>{html.escape(domain.label)}</code> · {state} · "
            f"{len(domain.forwards)} → {html.escape(active)}"
        )

    def _render_forward(self, forward: ForwardRecord, now: int) -> str:
        status_key = {
            ResolveStatus.SUCCESS.value: "forward.status_active",
            ResolveStatus.FAILED.value: "forward.status_failed",
        }.get(forward.resolve_status, "forward.status_never")
        parts = [
            f"#{forward.id} <code>{html.escape(forward.forward_domain)}</code>",
            f"{forward.record_type} w{forward.weight} s{forward.sort_order}",
            html.escape(forward.isp or "-"),
            self._msg(status_key),
        ]
        if forward.is_ban:
            if forward.ban_time == 0:
                parts.append(self._msg("forward.banned_forever"))
            elif forward.ban_time > now:
                parts.append(self._msg(
                    "forward.banned_until",
                    until=format_unix_time(forward.ban_time, self._service.language),
                ))
        return " · ".join(parts)

    def _render_admin(self, admin: TelegramAdmin) -> str:
        name = f"@{admin.username}" if admin.username else " ".join(
            p for p in (admin.first_name, admin.last_name) if p
        )
        text = f"<code>{admin.uid}</code> {html.escape(name)}"
        if admin.remark:
            text += f" ({html.escape(admin.remark)})"
        if admin.is_ban:
            text += " ⛔"
        return text

    # Commands

    async def _cmd_help(self, ctx: CommandContext) -> str:
        return self._msg("help.text")

    async def _cmd_domains(self, ctx: CommandContext) -> str:
        domains = await self._service.list_domains()
        if not domains:
            return self._msg("domain.list_empty")
        lines = [f"<b>{self._msg('domain.list_header', count=len(domains))}</b>"]
        lines.extend(self._render_domain(domain) for domain in domains)
        return "\n".join(lines)

    async def _cmd_forwards(self, ctx: CommandContext) -> str:
        domain_id = self._int_arg(ctx, 0)
        if domain_id is None:
            return self._usage("/forwards <domain id>")
        domain, forwards = await self._service.list_forwards(domain_id)
        label = f"<code>{html.escape(domain.label)}</code>"
        if not forwards:
            return self._msg("forward.list_empty", domain=label)
        now = self._service.now()
        lines = [f"<b>{self._msg('forward.list_header', domain=label, count=len(forwards))}</b>"]
        lines.extend(self._render_forward(forward, now) for forward in forwards)
        return "\n".join(lines)

    async def _cmd_add_domain(self, ctx: CommandContext) -> str:
        if not ctx.args:
            return self._usage("/add_domain <domain> [port]")
        port = ctx.args[1] if len(ctx.args) > 1 else "80"
        domain = await self._service.add_domain(ctx.args[0], port)
        return self._msg("domain.added", domain=html.escape(domain.label), id=domain.id)

    async def _cmd_delete_domain(self, ctx: CommandContext) -> str:
        domain_id = self._int_arg(ctx, 0)
        if domain_id is None:
            return self._usage("/delete_domain <id>")
        domain = await self._service.delete_domain(domain_id)
        return self._msg("domain.deleted", domain=html.escape(domain.label))

    async def _cmd_toggle(self, ctx: CommandContext) -> str:
        domain_id = self._int_arg(ctx, 0)
        if domain_id is None:
            return self._usage("/toggle <id>")
        domain = await self._service.toggle_check(domain_id)
        key = "domain.toggled_off" if domain.is_disable_check else "domain.toggled_on"
        return self._msg(key, domain=html.escape(domain.label))

    async def _cmd_resolve(self, ctx: CommandContext) -> str:
        domain_id = self._int_arg(ctx, 0)
        if domain_id is None:
            return self._usage("/resolve <id>")
        domain, record = await self._service.resolve_domain(domain_id)
        return self._msg(
            "domain.resolved",
            domain=html.escape(domain.label),
            zone_id=domain.zone_id,
            record_id=domain.record_id,
            record_type=record.type,
        )

    async def _cmd_add_forward(self, ctx: CommandContext) -> str:
        domain_id = self._int_arg(ctx, 0)
        if domain_id is None or len(ctx.args) < 2:
            return self._usage("/add_forward <domain id> <forward> [weight] [isp] [A|CNAME]")
        weight = ctx.args[2] if len(ctx.args) > 2 else "0"
        isp = ctx.args[3] if len(ctx.args) > 3 else ""
        record_type = ctx.args[4] if len(ctx.args) > 4 else "A"
        forward = await self._service.add_forward(domain_id, ctx.args[1], weight, isp, record_type)
        domain = await self._service.get_domain(domain_id)
        return self._msg(
            "forward.added",
            forward=html.escape(forward.forward_domain),
            domain=html.escape(domain.label),
            id=forward.id,
        )

    async def _cmd_delete_forward(self, ctx: CommandContext) -> str:
        forward_id = self._int_arg(ctx, 0)
        if forward_id is None:
            return self._usage("/delete_forward <id>")
        forward = await self._service.delete_forward(forward_id)
        return self._msg("forward.deleted", forward=html.escape(forward.forward_domain))

    async def _cmd_ban(self, ctx: CommandContext) -> str:
        forward_id = self._int_arg(ctx, 0)
        if forward_id is None:
            return self._usage("/ban <forward id>")
        forward = await self._service.ban_forward(forward_id)
        return self._msg(
            "forward.banned",
            forward=html.escape(forward.forward_domain),
            until=format_unix_time(forward.ban_time, self._service.language),
        )

    async def _cmd_unban(self, ctx: CommandContext) -> str:
        forward_id = self._int_arg(ctx, 0)
        if forward_id is None:
            return self._usage("/unban <forward id>")
        forward = await self._service.unban_forward(forward_id)
        return self._msg("forward.unbanned", forward=html.escape(forward.forward_domain))

    async def _cmd_set(self, ctx: CommandContext) -> str:
        usage = "/set domain|forward <id> <field> <value>"
        target_id = self._int_arg(ctx, 1)
        if len(ctx.args) < 4 or target_id is None or ctx.args[0] not in ("domain", "forward"):
            return self._usage(usage)
        field_name = ctx.args[2]
        raw_value = " ".join(ctx.args[3:])
        if ctx.args[0] == "domain":
            domain = await self._service.set_domain_field(target_id, field_name, raw_value)
            value = getattr(domain, field_name)
        else:
            forward = await self._service.set_forward_field(target_id, field_name, raw_value)
            value = getattr(forward, field_name)
        return self._msg("common.updated", field=field_name, value=html.escape(str(value)))

    async def _cmd_check(self, ctx: CommandContext) -> Optional[str]:
        if self._scheduler.is_busy():
            return self._msg("check.busy")

        sent = await self._send(ctx.chat_id, self._msg("check.started"))
        # The cycle runs beside the dispatcher so other commands stay responsive
        task = asyncio.create_task(self._run_manual_check(ctx, sent.message_id))
        self._checks.add(task)
        task.add_done_callback(self._checks.discard)
        return None

    async def _run_manual_check(self, ctx: CommandContext, message_id: int) -> None:
        try:
            async with aclosing(self._scheduler.stream_manual()) as events:
                async for event in events:
                    if isinstance(event, DomainStarted):
                        await self._edit_progress(
                            ctx.chat_id,
                            message_id,
                            self._msg(
                                "check.progress",
                                index=event.index,
                                total=event.total,
                                domain=html.escape(f"{event.domain}:{event.port}"),
                            ),
                        )
                    elif isinstance(event, CycleFinished):
                        text = self._reporter.render_manual(event.report)
                        chunks = split_message(text)
                        await self._edit_progress(ctx.chat_id, message_id, chunks[0])
                        for chunk in chunks[1:]:
                            await self._send(ctx.chat_id, chunk)
        except CycleInProgressError:
            await self._edit_progress(ctx.chat_id, message_id, self._msg("check.busy"))
        except PersistenceError as e:
            self._log(
                LogLevel.ERROR,
                "Manual check aborted",
                {"uid": ctx.uid, "error_code": e.code, "error": e.message},
            )
            await self._edit_progress(
                ctx.chat_id,
                message_id,
                self._msg("check.aborted", error=html.escape(e.message)),
            )
        except DnsFailoverError as e:
            self._log(
                LogLevel.ERROR,
                "Manual check failed",
                {"uid": ctx.uid, "error_code": e.code, "error": e.message},
            )
            await self._edit_progress(
                ctx.chat_id,
                message_id,
                self._msg("common.error", error=html.escape(e.message)),
            )
        except TelegramAPIError as e:
            self._log(
                LogLevel.ERROR,
                "Manual check report could not be delivered",
                {"uid": ctx.uid, "error": str(e)},
            )

    async def _cmd_export(self, ctx: CommandContext) -> Optional[str]:
        content = await self._service.export_records(include_header=True)
        lines = [line for line in content.splitlines() if line and not line.startswith("#")]
        if not lines:
            return self._msg("export.empty")
        for chunk in split_message(content, MESSAGE_LIMIT - 20):
            await self._send(ctx.chat_id, f"<pre>{html.escape(chunk)}</pre>")
        return None

    async def _cmd_import(self, ctx: CommandContext) -> str:
        if not ctx.body:
            return self._msg("import.empty")
        summary = await self._service.import_records(ctx.body)
        return self._msg(
            "import.summary",
            domains_added=summary.domains_added,
            domains_updated=summary.domains_updated,
            forwards_added=summary.forwards_added,
            forwards_skipped=summary.forwards_skipped,
        )

    async def _cmd_admins(self, ctx: CommandContext) -> str:
        admins = await self._service.list_admins()
        if not admins:
            return self._msg("admin.list_empty")
        lines = [f"<b>{self._msg('admin.list_header', count=len(admins))}</b>"]
        lines.extend(self._render_admin(admin) for admin in admins)
        return "\n".join(lines)

    async def _cmd_add_admin(self, ctx: CommandContext) -> str:
        if not ctx.args:
            return self._usage("/add_admin <uid> [remark]")
        admin = await self._service.add_admin(
            ctx.args[0], remark=" ".join(ctx.args[1:]), added_by=ctx.uid
        )
        return self._msg("admin.added", uid=admin.uid)

    async def _cmd_ban_admin(self, ctx: CommandContext) -> str:
        if not ctx.args:
            return self._usage("/ban_admin <uid>")
        uid = await self._service.set_admin_ban(ctx.args[0], True)
        return self._msg("admin.banned", uid=uid)

    async def _cmd_unban_admin(self, ctx: CommandContext) -> str:
        if not ctx.args:
            return self._usage("/unban_admin <uid>")
        uid = await self._service.set_admin_ban(ctx.args[0], False)
        return self._msg("admin.unbanned", uid=uid)

    async def _cmd_delete_admin(self, ctx: CommandContext) -> str:
        if not ctx.args:
            return self._usage("/delete_admin <uid>")
        uid = await self._service.delete_admin(ctx.args[0])
        return self._msg("admin.deleted", uid=uid)

    def _log(self, level: LogLevel, message: str, data: dict) -> None:
        if self._logger:
            self._logger.log(level, "TelegramBot", message, data)
