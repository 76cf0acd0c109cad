"""
Configuration dataclasses for the DNS failover controller.

This module defines all configuration structures used throughout the system,
including the check schedule, Cloudflare and Telegram credentials, the
reachability prober, persistence, and logging configuration, plus the JSON
loader with `.env` overrides for secrets.
"""

import json
import os
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

from .enums import ProbeMode


DEFAULT_CONFIG_PATH = Path.home() / ".dns_failover" / "config.json"
DEFAULT_DATABASE_URL = "sqlite+aiosqlite:///dns_failover.db"
CLOUDFLARE_API_BASE = "https://api.cloudflare.com/client/v4"
SUPPORTED_LANGUAGES = ("en", "zh")


@dataclass
class AutoCheckConfig:
    """Periodic check schedule and the infra-failure notification threshold."""

    interval_seconds: int = 300
    api_fail_threshold: int = 3
    enabled: bool = True


@dataclass
class CloudflareConfig:
    """Cloudflare API credentials and record defaults."""

    api_token: str = ""
    ttl: int = 60
    proxied: bool = False
    base_url: str = CLOUDFLARE_API_BASE


@dataclass
class TelegramConfig:
    """Telegram bot credentials."""

    bot_token: str = ""
    super_admin_id: int = 0
    poll_timeout: int = 30


@dataclass
class ProbeConfig:
    """Reachability prober settings."""

    mode: str = ProbeMode.LOCAL.value
    backend_url: str = ""
    key: str = ""
    timeout_seconds: float = 30.0
    max_attempts: int = 5
    attempt_timeout_seconds: float = 1.0
    attempt_spacing_seconds: float = 1.0


@dataclass
class BackendListenConfig:
    """Listen settings for the bundled probe backend."""

    host: str = "0.0.0.0"
    port: int = 8080
    key: str = ""


@dataclass
class RetryConfig:
    """Retry behavior for notification delivery."""

    max_retries: int = 3
    base_delay_seconds: float = 1.0
    max_delay_seconds: float = 60.0


@dataclass
class PersistenceConfig:
    """Relational store configuration."""

    database_url: str = DEFAULT_DATABASE_URL


@dataclass
class LoggingConfig:
    """Logging configuration."""

    level: str = "info"
    output_format: str = "text"  # 'json', 'text', 'both'


@dataclass
class SystemConfig:
    """Main system configuration combining all sub-configurations."""

    auto_check: AutoCheckConfig = field(default_factory=AutoCheckConfig)
    cloudflare: CloudflareConfig = field(default_factory=CloudflareConfig)
    telegram: TelegramConfig = field(default_factory=TelegramConfig)
    probe: ProbeConfig = field(default_factory=ProbeConfig)
    backend_listen: BackendListenConfig = field(default_factory=BackendListenConfig)
    retry: RetryConfig = field(default_factory=RetryConfig)
    persistence: PersistenceConfig = field(default_factory=PersistenceConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)
    language: str = "en"  # 'en' or 'zh'
    simulation_mode: bool = False


@dataclass
class ConfigValidationResult:
    """Result of configuration validation."""

    valid: bool
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)


def create_default_config(
    language: str = "en",
    database_url: Optional[str] = None,
    simulation_mode: bool = False,
) -> SystemConfig:
    """
    Create a default system configuration.

    Args:
        language: Report language ('en' or 'zh')
        database_url: SQLAlchemy URL of the store
        simulation_mode: Enable simulation mode (no DNS writes, no digest messages)

    Returns:
        SystemConfig with default settings
    """
    return SystemConfig(
        persistence=PersistenceConfig(
            database_url=database_url or DEFAULT_DATABASE_URL,
        ),
        language=language,
        simulation_mode=simulation_mode,
    )


def config_from_dict(data: dict) -> SystemConfig:
    """
    Build a SystemConfig from a decoded JSON document.

    Missing sections and keys fall back to their defaults.
    """
    auto_check_data = data.get("auto_check", {})
    cloudflare_data = data.get("cloudflare", {})
    telegram_data = data.get("telegram", {})
    probe_data = data.get("probe", {})
    backend_data = data.get("backend_listen", {})
    retry_data = data.get("retry", {})
    persistence_data = data.get("persistence", {})
    logging_data = data.get("logging", {})

    return SystemConfig(
        auto_check=AutoCheckConfig(
            interval_seconds=int(auto_check_data.get("interval_seconds", 300)),
            api_fail_threshold=int(auto_check_data.get("api_fail_threshold", 3)),
            enabled=bool(auto_check_data.get("enabled", True)),
        ),
        cloudflare=CloudflareConfig(
            api_token=cloudflare_data.get("api_token", ""),
            ttl=int(cloudflare_data.get("ttl", 60)),
            proxied=bool(cloudflare_data.get("proxied", False)),
            base_url=cloudflare_data.get("base_url", CLOUDFLARE_API_BASE),
        ),
        telegram=TelegramConfig(
            bot_token=telegram_data.get("bot_token", ""),
            super_admin_id=int(telegram_data.get("super_admin_id", 0)),
            poll_timeout=int(telegram_data.get("poll_timeout", 30)),
        ),
        probe=ProbeConfig(
            mode=probe_data.get("mode", ProbeMode.LOCAL.value),
            backend_url=probe_data.get("backend_url", ""),
            key=probe_data.get("key", ""),
            timeout_seconds=float(probe_data.get("timeout_seconds", 30.0)),
            max_attempts=int(probe_data.get("max_attempts", 5)),
            attempt_timeout_seconds=float(probe_data.get("attempt_timeout_seconds", 1.0)),
            attempt_spacing_seconds=float(probe_data.get("attempt_spacing_seconds", 1.0)),
        ),
        backend_listen=BackendListenConfig(
            host=backend_data.get("host", "0.0.0.0"),
            port=int(backend_data.get("port", 8080)),
            key=backend_data.get("key", ""),
        ),
        retry=RetryConfig(
            max_retries=int(retry_data.get("max_retries", 3)),
            base_delay_seconds=float(retry_data.get("base_delay_seconds", 1.0)),
            max_delay_seconds=float(retry_data.get("max_delay_seconds", 60.0)),
        ),
        persistence=PersistenceConfig(
            database_url=persistence_data.get("database_url", DEFAULT_DATABASE_URL),
        ),
        logging=LoggingConfig(
            level=logging_data.get("level", "info"),
            output_format=logging_data.get("output_format", "text"),
        ),
        language=data.get("language", "en"),
        simulation_mode=bool(data.get("simulation_mode", False)),
    )


def config_to_dict(config: SystemConfig) -> dict:
    """Serialize a SystemConfig to a JSON-compatible dictionary."""
    return {
        "auto_check": {
            "interval_seconds": config.auto_check.interval_seconds,
            "api_fail_threshold": config.auto_check.api_fail_threshold,
            "enabled": config.auto_check.enabled,
        },
        "cloudflare": {
            "api_token": config.cloudflare.api_token,
            "ttl": config.cloudflare.ttl,
            "proxied": config.cloudflare.proxied,
            "base_url": config.cloudflare.base_url,
        },
        "telegram": {
            "bot_token": config.telegram.bot_token,
            "super_admin_id": config.telegram.super_admin_id,
            "poll_timeout": config.telegram.poll_timeout,
        },
        "probe": {
            "mode": config.probe.mode,
            "backend_url": config.probe.backend_url,
            "key": config.probe.key,
            "timeout_seconds": config.probe.timeout_seconds,
            "max_attempts": config.probe.max_attempts,
            "attempt_timeout_seconds": config.probe.attempt_timeout_seconds,
            "attempt_spacing_seconds": config.probe.attempt_spacing_seconds,
        },
        "backend_listen": {
            "host": config.backend_listen.host,
            "port": config.backend_listen.port,
            "key": config.backend_listen.key,
        },
        "retry": {
            "max_retries": config.retry.max_retries,
            "base_delay_seconds": config.retry.base_delay_seconds,
            "max_delay_seconds": config.retry.max_delay_seconds,
        },
        "persistence": {
            "database_url": config.persistence.database_url,
        },
        "logging": {
            "level": config.logging.level,
            "output_format": config.logging.output_format,
        },
        "language": config.language,
        "simulation_mode": config.simulation_mode,
    }


def load_config_from_file(config_path: Path) -> Optional[SystemConfig]:
    """
    Load configuration from a JSON file.

    Args:
        config_path: Path to the configuration file

    Returns:
        SystemConfig if successful, None otherwise
    """
    try:
        with open(config_path, "r", encoding="utf-8") as f:
            data = json.load(f)
        return config_from_dict(data)
    except (json.JSONDecodeError, KeyError, TypeError, ValueError) as e:
        print(f"Error loading config: {e}", file=sys.stderr)
        return None
    except FileNotFoundError:
        return None


def save_config_to_file(config: SystemConfig, config_path: Path) -> bool:
    """
    Save configuration to a JSON file.

    Args:
        config: SystemConfig to save
        config_path: Path to save the configuration

    Returns:
        True if successful, False otherwise
    """
    try:
        config_path.parent.mkdir(parents=True, exist_ok=True)
        with open(config_path, "w", encoding="utf-8") as f:
            json.dump(config_to_dict(config), f, indent=2, ensure_ascii=False)
        return True
    except (OSError, TypeError) as e:
        print(f"Error saving config: {e}", file=sys.stderr)
        return False


def apply_env_overrides(
    config: SystemConfig,
    dotenv_path: Optional[Path] = None,
) -> SystemConfig:
    """
    Overlay secrets from the environment (and a `.env` file) onto a config.

    Recognised variables: CF_API_TOKEN, TELEGRAM_BOT_TOKEN,
    TELEGRAM_SUPER_ADMIN_ID, PROBE_BACKEND_URL, PROBE_BACKEND_KEY,
    DATABASE_URL.

    Args:
        config: Configuration to update in place
        dotenv_path: Optional explicit `.env` path

    Returns:
        The same config object, for chaining
    """
    load_dotenv(dotenv_path=dotenv_path)

    api_token = os.getenv("CF_API_TOKEN", "").strip()
    if api_token:
        config.cloudflare.api_token = api_token

    bot_token = os.getenv("TELEGRAM_BOT_TOKEN", "").strip()
    if bot_token:
        config.telegram.bot_token = bot_token

    super_admin = os.getenv("TELEGRAM_SUPER_ADMIN_ID", "").strip()
    if super_admin:
        try:
            config.telegram.super_admin_id = int(super_admin)
        except ValueError:
            print(
                f"Ignoring non-numeric TELEGRAM_SUPER_ADMIN_ID: {super_admin!r}",
                file=sys.stderr,
            )

    backend_url = os.getenv("PROBE_BACKEND_URL", "").strip()
    if backend_url:
        config.probe.backend_url = backend_url

    backend_key = os.getenv("PROBE_BACKEND_KEY", "").strip()
    if backend_key:
        config.probe.key = backend_key
        config.backend_listen.key = backend_key

    database_url = os.getenv("DATABASE_URL", "").strip()
    if database_url:
        config.persistence.database_url = database_url

    return config


def validate_config(config: SystemConfig) -> ConfigValidationResult:
    """
    Validate the system configuration.

    Checks:
    - Schedule interval and threshold are positive
    - Credentials needed by the configured mode are present
    - The prober mode and language are supported

    Returns:
        ConfigValidationResult with validation status
    """
    errors: list[str] = []
    warnings: list[str] = []

    if config.auto_check.interval_seconds < 1:
        errors.append("auto_check.interval_seconds must be >= 1")
    if config.auto_check.api_fail_threshold < 1:
        errors.append("auto_check.api_fail_threshold must be >= 1")

    if not config.cloudflare.api_token:
        if config.simulation_mode:
            warnings.append("Cloudflare API token is not configured")
        else:
            errors.append("Cloudflare API token is not configured")
    if config.cloudflare.ttl != 1 and config.cloudflare.ttl < 60:
        warnings.append("Cloudflare TTL below 60 is only valid as 1 (automatic)")

    if not config.telegram.bot_token:
        warnings.append("Telegram bot token is not configured - no notifications")
    if not config.telegram.super_admin_id:
        warnings.append("Telegram super admin id is not configured")

    valid_modes = {mode.value for mode in ProbeMode}
    if config.probe.mode not in valid_modes:
        errors.append(f"Unsupported probe mode: {config.probe.mode}")
    elif config.probe.mode == ProbeMode.REMOTE.value:
        if not config.probe.backend_url:
            errors.append("probe.backend_url is required in remote mode")
        if not config.probe.key:
            errors.append("probe.key is required in remote mode")
    if config.probe.max_attempts < 1:
        errors.append("probe.max_attempts must be >= 1")

    if config.retry.max_retries < 1:
        warnings.append("max_retries is less than 1 - no retries will be performed")

    if config.logging.output_format not in ("json", "text", "both"):
        errors.append(f"Unsupported log output format: {config.logging.output_format}")

    if config.language not in SUPPORTED_LANGUAGES:
        errors.append(f"Unsupported language: {config.language}")

    return ConfigValidationResult(
        valid=len(errors) == 0,
        errors=errors,
        warnings=warnings,
    )
