"""
Notification module for the DNS failover controller.

Provides a thin Telegram Bot API client, a Telegram notification channel and
a router that delivers digests to many chats with retry logic.

- Retry delivery with exponential backoff on failure
- Log failure with full error details when all retries fail
- Pause briefly between recipients of a broadcast
"""

import asyncio
from abc import abstractmethod
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any, Optional, Protocol, runtime_checkable

import httpx

from .config import RetryConfig, TelegramConfig
from .enums import LogLevel
from .exceptions import NotificationError

if TYPE_CHECKING:
    from .audit_logger import AuditLogger


TELEGRAM_API_BASE = "https://api.telegram.org"
BROADCAST_PAUSE_SECONDS = 0.05


class TelegramApi:
    """Minimal async Bot API client used to deliver digests and for the self-test."""

    def __init__(
        self,
        bot_token: str,
        base_url: str = TELEGRAM_API_BASE,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        simulation_mode: bool = False,
    ) -> None:
        """
        Args:
            bot_token: Bot token issued by BotFather
            base_url: API base URL
            timeout: Default request timeout in seconds
            transport: Optional httpx transport (tests use MockTransport)
            simulation_mode: If True, outgoing messages are not sent
        """
        self._base_url = f"{base_url.rstrip('/')}/bot{bot_token}"
        self._timeout = timeout
        self._transport = transport
        self._simulation_mode = simulation_mode

    @classmethod
    def from_config(
        cls,
        config: TelegramConfig,
        simulation_mode: bool = False,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> "TelegramApi":
        return cls(
            bot_token=config.bot_token,
            timeout=config.poll_timeout + 10,
            transport=transport,
            simulation_mode=simulation_mode,
        )

    @property
    def simulation_mode(self) -> bool:
        return self._simulation_mode

    async def call(
        self,
        method: str,
        params: Optional[dict[str, Any]] = None,
        timeout: Optional[float] = None,
    ) -> Any:
        """
        Call a Bot API method and return its `result`.

        Raises:
            NotificationError: On transport failure or an `ok: false` answer
        """
        url = f"{self._base_url}/{method}"
        try:
            async with httpx.AsyncClient(
                timeout=timeout or self._timeout, transport=self._transport
            ) as client:
                response = await client.post(url, json=params or {})
        except httpx.HTTPError as e:
            raise NotificationError(
                code="network_error",
                message=f"Telegram {method} failed: {type(e).__name__}",
                details={"method": method},
            ) from e

        try:
            payload = response.json()
        except ValueError as e:
            raise NotificationError(
                code="parse_error",
                message=f"Telegram {method} returned invalid JSON",
                details={"method": method, "status_code": response.status_code},
            ) from e

        if response.status_code != 200 or not payload.get("ok"):
            raise NotificationError(
                code="api_error",
                message=f"Telegram {method} failed: {payload.get('description', response.status_code)}",
                details={
                    "method": method,
                    "status_code": response.status_code,
                    "error_code": payload.get("error_code"),
                },
            )
        return payload.get("result")

    async def send_message(self, chat_id: int, text: str) -> dict:
        """Send an HTML message and return the sent Message object."""
        if self._simulation_mode:
            return {"message_id": 0, "chat": {"id": chat_id}, "text": text}
        return await self.call(
            "sendMessage",
            {
                "chat_id": chat_id,
                "text": text,
                "parse_mode": "HTML",
                "disable_web_page_preview": True,
            },
        )

    async def get_me(self) -> dict:
        return await self.call("getMe")


@dataclass
class NotificationPayload:
    """A message addressed to one chat."""

    chat_id: int
    text: str


@dataclass
class NotificationResult:
    """Result of a notification delivery attempt."""

    channel: str
    chat_id: int
    success: bool
    error: Optional[str] = None
    attempts: int = 1


@runtime_checkable
class NotificationChannel(Protocol):
    """Protocol defining the interface for notification channels."""

    @abstractmethod
    async def send(self, payload: NotificationPayload) -> bool:
        """
        Send a notification.

        Args:
            payload: The notification payload to send

        Returns:
            True if delivery was successful, False otherwise
        """
        ...

    @abstractmethod
    def get_name(self) -> str:
        ...


class TelegramChannel:
    """Telegram notification channel using the Bot API."""

    def __init__(self, api: TelegramApi) -> None:
        self._api = api

    async def send(self, payload: NotificationPayload) -> bool:
        """
        Send via sendMessage.

        Raises:
            NotificationError: If Telegram rejects the message
        """
        await self._api.send_message(payload.chat_id, payload.text)
        return True

    def get_name(self) -> str:
        """Return channel name."""
        return "telegram"


@dataclass
class RetryAttempt:
    """Record of a single retry attempt."""

    attempt_number: int
    error: str
    timestamp: str


class NotificationRouter:
    """
    Routes notifications to registered channels with retry logic.

    Implements:
    - Retry with exponential backoff
    - Error logging with full details once every retry failed
    - Broadcast to many chats with a short pause between recipients
    """

    def __init__(
        self,
        retry_config: RetryConfig,
        logger: Optional["AuditLogger"] = None,
        pause_seconds: float = BROADCAST_PAUSE_SECONDS,
    ) -> None:
        """
        Initialize the notification router.

        Args:
            retry_config: Configuration for retry behavior
            logger: Optional audit logger for error logging
            pause_seconds: Pause between recipients of a broadcast
        """
        self._channels: list[NotificationChannel] = []
        self._retry_config = retry_config
        self._logger = logger
        self._pause_seconds = pause_seconds

    def register_channel(self, channel: NotificationChannel) -> None:
        self._channels.append(channel)

    @property
    def channels(self) -> list[NotificationChannel]:
        """Get list of registered channels."""
        return self._channels.copy()

    async def notify(self, payload: NotificationPayload) -> list[NotificationResult]:
        """
        Send a notification to all registered channels with retry logic.

        Args:
            payload: The notification payload

        Returns:
            List of NotificationResult for each channel
        """
        results = []
        for channel in self._channels:
            result = await self._send_with_retry(channel, payload)
            results.append(result)
        return results

    async def broadcast(self, chat_ids: list[int], text: str) -> list[NotificationResult]:
        """
        Send the same text to every chat, one after another.

        A failed recipient never stops delivery to the rest.
        """
        results: list[NotificationResult] = []
        for index, chat_id in enumerate(chat_ids):
            if index and self._pause_seconds > 0:
                await asyncio.sleep(self._pause_seconds)
            results.extend(await self.notify(NotificationPayload(chat_id=chat_id, text=text)))
        return results

    async def _send_with_retry(
        self,
        channel: NotificationChannel,
        payload: NotificationPayload,
    ) -> NotificationResult:
        """
        Send notification to a single channel with retry logic.

        Args:
            channel: The notification channel
            payload: The notification payload

        Returns:
            NotificationResult with success status and attempt count
        """
        channel_name = channel.get_name()
        max_attempts = self._retry_config.max_retries + 1
        attempts = 0
        retry_attempts: list[RetryAttempt] = []
        last_error: Optional[str] = None

        while attempts < max_attempts:
            attempts += 1
            try:
                success = await channel.send(payload)
                if success:
                    return NotificationResult(
                        channel=channel_name,
                        chat_id=payload.chat_id,
                        success=True,
                        attempts=attempts,
                    )
                last_error = "Channel returned failure"
            except NotificationError as e:
                last_error = e.message
            retry_attempts.append(
                RetryAttempt(
                    attempt_number=attempts,
                    error=last_error,
                    timestamp=datetime.now(timezone.utc).isoformat(),
                )
            )

            # Don't delay after the last attempt
            if attempts < max_attempts:
                await asyncio.sleep(self._calculate_delay(attempts - 1))

        self._log_all_retries_failed(
            channel_name=channel_name,
            payload=payload,
            retry_attempts=retry_attempts,
        )

        return NotificationResult(
            channel=channel_name,
            chat_id=payload.chat_id,
            success=False,
            error=last_error,
            attempts=attempts,
        )

    def _calculate_delay(self, attempt: int) -> float:
        """
        Calculate delay with exponential backoff.

        Args:
            attempt: The attempt number (0-indexed)

        Returns:
            Delay in seconds
        """
        delay = self._retry_config.base_delay_seconds * (2 ** attempt)
        return min(delay, self._retry_config.max_delay_seconds)

    def _log_all_retries_failed(
        self,
        channel_name: str,
        payload: NotificationPayload,
        retry_attempts: list[RetryAttempt],
    ) -> None:
        if self._logger is None:
            return

        error_data = {
            "channel": channel_name,
            "chat_id": payload.chat_id,
            "text_length": len(payload.text),
            "total_attempts": len(retry_attempts),
            "attempts": [
                {
                    "attempt": attempt.attempt_number,
                    "error": attempt.error,
                    "timestamp": attempt.timestamp,
                }
                for attempt in retry_attempts
            ],
        }

        self._logger.log(
            level=LogLevel.ERROR,
            component="NotificationRouter",
            message=f"All notification retries failed for channel '{channel_name}'",
            data=error_data,
        )
