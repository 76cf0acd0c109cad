"""
Failover Orchestrator for the DNS failover controller.

Builds and owns every long-lived component from a SystemConfig:
- State store on the configured database
- Reachability prober (local or remote backend)
- Cloudflare client used for commits and record lookup
- Failover engine, scheduler and consecutive failure counter
- Notification router, reporter, admin service and Telegram bot
"""

import asyncio
from typing import Optional

from aiogram import Bot

from .admin_service import AdminService
from .audit_logger import AuditLogger
from .bot import TelegramBot, create_bot
from .config import SystemConfig
from .dns_provider import CloudflareClient
from .enums import LogLevel
from .failover_engine import FailoverEngine
from .failure_counter import FailureCounter
from .models import CheckReport
from .notifications import NotificationRouter, TelegramApi, TelegramChannel
from .prober import Prober, create_prober
from .reporter import Reporter
from .scheduler import Scheduler
from .state_store import StateStore


class FailoverOrchestrator:
    """
    Wires the controller together and runs it.

    Use as an async context manager so the store is initialised on entry and
    its engine disposed on exit.
    """

    async def __aenter__(self) -> "FailoverOrchestrator":
        await self._store.init()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        if self._telegram_bot is not None:
            await self._telegram_bot.session.close()
        await self._store.close()

    def __init__(
        self,
        config: SystemConfig,
        state_store: Optional[StateStore] = None,
        prober: Optional[Prober] = None,
        dns_client: Optional[CloudflareClient] = None,
        telegram_api: Optional[TelegramApi] = None,
        telegram_bot: Optional[Bot] = None,
        logger: Optional[AuditLogger] = None,
    ) -> None:
        """
        Initialize the orchestrator.

        Args:
            config: System configuration
            state_store: Optional store (defaults to the configured database)
            prober: Optional prober (defaults to the configured mode)
            dns_client: Optional Cloudflare client
            telegram_api: Optional Bot API client used for digests
            telegram_bot: Optional aiogram Bot for the admin chat
            logger: Optional audit logger for logging
        """
        self._config = config
        self._logger = logger

        self._store = state_store or StateStore.from_url(config.persistence.database_url)
        self._prober = prober or create_prober(config.probe)
        self._dns_client = dns_client or CloudflareClient.from_config(
            config.cloudflare, simulation_mode=config.simulation_mode
        )
        self._telegram_api = telegram_api or TelegramApi.from_config(
            config.telegram, simulation_mode=config.simulation_mode
        )

        self._failure_counter = FailureCounter()
        self._engine = FailoverEngine(
            store=self._store,
            prober=self._prober,
            dns_gateway=self._dns_client,
            failure_counter=self._failure_counter,
            ttl=config.cloudflare.ttl,
            proxied=config.cloudflare.proxied,
            logger=logger,
        )

        self._router = NotificationRouter(config.retry, logger=logger)
        self._router.register_channel(TelegramChannel(self._telegram_api))
        self._reporter = Reporter(
            router=self._router,
            store=self._store,
            failure_counter=self._failure_counter,
            super_admin_id=config.telegram.super_admin_id,
            api_fail_threshold=config.auto_check.api_fail_threshold,
            language=config.language,
            logger=logger,
        )
        self._scheduler = Scheduler(
            engine=self._engine,
            reporter=self._reporter,
            interval_seconds=config.auto_check.interval_seconds,
            logger=logger,
        )
        self._service = AdminService(
            store=self._store,
            ban_ledger=self._engine.ban_ledger,
            dns_client=self._dns_client if config.cloudflare.api_token else None,
            super_admin_id=config.telegram.super_admin_id,
            language=config.language,
            logger=logger,
        )
        if telegram_bot is None and config.telegram.bot_token:
            telegram_bot = create_bot(config.telegram)
        self._telegram_bot = telegram_bot
        self._bot = TelegramBot(
            bot=telegram_bot,
            service=self._service,
            scheduler=self._scheduler,
            reporter=self._reporter,
            poll_timeout=config.telegram.poll_timeout,
            logger=logger,
        )

    async def run(self, stop_event: Optional[asyncio.Event] = None) -> None:
        """
        Run the scheduler and the bot until stopped.

        The scheduler only runs when auto check is enabled; the bot only runs
        when a bot token is configured.
        """
        stop_event = stop_event or asyncio.Event()
        tasks = []
        if self._config.auto_check.enabled:
            tasks.append(asyncio.create_task(self._scheduler.run(stop_event)))
        if self._config.telegram.bot_token:
            tasks.append(asyncio.create_task(self._bot.run(stop_event)))
        if not tasks:
            self._log(LogLevel.WARN, "Nothing to run: auto check disabled and no bot token", {})
            return

        self._log(
            LogLevel.INFO,
            "Controller started",
            {
                "probe_mode": self._config.probe.mode,
                "interval_seconds": self._config.auto_check.interval_seconds,
                "simulation_mode": self._config.simulation_mode,
            },
        )
        try:
            await asyncio.gather(*tasks)
        finally:
            stop_event.set()
            self._scheduler.stop()
            self._bot.stop()

    async def check_once(self) -> CheckReport:
        """Run one manual cycle to completion."""
        return await self._scheduler.trigger_manual()

    def _log(self, level: LogLevel, message: str, data: dict) -> None:
        if self._logger:
            self._logger.log(level, "Orchestrator", message, data)

    @property
    def config(self) -> SystemConfig:
        return self._config

    @property
    def store(self) -> StateStore:
        return self._store

    @property
    def engine(self) -> FailoverEngine:
        return self._engine

    @property
    def scheduler(self) -> Scheduler:
        return self._scheduler

    @property
    def reporter(self) -> Reporter:
        return self._reporter

    @property
    def service(self) -> AdminService:
        return self._service

    @property
    def bot(self) -> TelegramBot:
        return self._bot

    @property
    def failure_counter(self) -> FailureCounter:
        return self._failure_counter
