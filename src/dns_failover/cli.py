"""
Command-line interface for the DNS failover controller.

This module provides the main CLI entry point with commands for:
- run: Start the scheduler and the Telegram bot
- check: Run one check cycle and print the report
- import / export: Bulk records in the pipe format
- backend: Serve the probe backend
- config: Configuration management
- self-test: Verify configuration and connectivity
"""

import argparse
import asyncio
import signal
import sys
from pathlib import Path
from typing import Optional

import uvicorn

from . import __version__
from .audit_logger import AuditLogger
from .config import (
    DEFAULT_CONFIG_PATH,
    SUPPORTED_LANGUAGES,
    SystemConfig,
    apply_env_overrides,
    create_default_config,
    load_config_from_file,
    save_config_to_file,
    validate_config,
)
from .events import describe_event
from .exceptions import DnsFailoverError
from .orchestrator import FailoverOrchestrator
from .probe_backend import create_app
from .self_test import run_self_test


def load_config(args: argparse.Namespace) -> Optional[SystemConfig]:
    """
    Load the configuration for a command.

    An explicit --config must exist; the default path may be missing, in
    which case defaults are used. Environment secrets are applied last.
    """
    config_path = Path(args.config) if args.config else DEFAULT_CONFIG_PATH
    config = load_config_from_file(config_path)
    if config is None:
        if args.config:
            print(f"Error: Could not load config from {args.config}", file=sys.stderr)
            return None
        config = create_default_config()

    apply_env_overrides(config)

    if getattr(args, "dry_run", False):
        config.simulation_mode = True
    if getattr(args, "language", None):
        config.language = args.language
    return config


def create_logger(config: SystemConfig, verbose: bool = False) -> AuditLogger:
    level = "debug" if verbose else config.logging.level
    return AuditLogger.from_level_name(level, output_format=config.logging.output_format)


async def run_controller(config: SystemConfig, logger: AuditLogger) -> int:
    stop_event = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop_event.set)
        except NotImplementedError:
            # Signal handlers are unavailable on this platform
            pass

    async with FailoverOrchestrator(config, logger=logger) as orchestrator:
        await orchestrator.run(stop_event)
    return 0


async def run_check(config: SystemConfig, logger: AuditLogger, verbose: bool) -> int:
    async with FailoverOrchestrator(config, logger=logger) as orchestrator:
        report = None
        async for event in orchestrator.scheduler.stream_manual():
            if verbose:
                print(describe_event(event))
            report = getattr(event, "report", report)
        assert report is not None
        print(orchestrator.reporter.render_manual(report))
        return 1 if report.no_forward or report.failed else 0


async def run_import(config: SystemConfig, logger: AuditLogger, path: Path) -> int:
    content = path.read_text(encoding="utf-8")
    async with FailoverOrchestrator(config, logger=logger) as orchestrator:
        summary = await orchestrator.service.import_records(content)
    print(
        f"Domains added: {summary.domains_added}, updated: {summary.domains_updated}; "
        f"forwards added: {summary.forwards_added}, skipped: {summary.forwards_skipped}"
    )
    return 0


async def run_export(config: SystemConfig, logger: AuditLogger, path: Optional[Path]) -> int:
    async with FailoverOrchestrator(config, logger=logger) as orchestrator:
        content = await orchestrator.service.export_records()
    if path is None:
        print(content, end="" if content.endswith("\n") else "\n")
    else:
        path.write_text(content, encoding="utf-8")
        print(f"Records written to: {path}")
    return 0


def cmd_run(args: argparse.Namespace) -> int:
    """Handle the 'run' command."""
    config = load_config(args)
    if config is None:
        return 1
    result = validate_config(config)
    if not result.valid:
        for error in result.errors:
            print(f"Config error: {error}", file=sys.stderr)
        return 1
    return asyncio.run(run_controller(config, create_logger(config, args.verbose)))


def cmd_check(args: argparse.Namespace) -> int:
    """Handle the 'check' command."""
    config = load_config(args)
    if config is None:
        return 1
    try:
        return asyncio.run(run_check(config, create_logger(config, args.verbose), args.verbose))
    except DnsFailoverError as e:
        print(f"Error: {e.message}", file=sys.stderr)
        return 1


def cmd_import(args: argparse.Namespace) -> int:
    """Handle the 'import' command."""
    config = load_config(args)
    if config is None:
        return 1
    path = Path(args.file)
    if not path.exists():
        print(f"Error: File not found: {path}", file=sys.stderr)
        return 1
    try:
        return asyncio.run(run_import(config, create_logger(config), path))
    except DnsFailoverError as e:
        print(f"Error: {e.message}", file=sys.stderr)
        return 1


def cmd_export(args: argparse.Namespace) -> int:
    """Handle the 'export' command."""
    config = load_config(args)
    if config is None:
        return 1
    output = Path(args.file) if args.file else None
    try:
        return asyncio.run(run_export(config, create_logger(config), output))
    except DnsFailoverError as e:
        print(f"Error: {e.message}", file=sys.stderr)
        return 1


def cmd_backend(args: argparse.Namespace) -> int:
    """Handle the 'backend' command."""
    config = load_config(args)
    if config is None:
        return 1
    if not config.backend_listen.key:
        print("Error: backend key is not configured (PROBE_BACKEND_KEY)", file=sys.stderr)
        return 1

    logger = create_logger(config)
    app = create_app(key=config.backend_listen.key, public_ip=args.public_ip, logger=logger)
    uvicorn.run(
        app,
        host=args.host or config.backend_listen.host,
        port=args.port or config.backend_listen.port,
        log_level="info",
    )
    return 0


def cmd_self_test(args: argparse.Namespace) -> int:
    """Handle the 'self-test' command."""
    config = load_config(args)
    if config is None:
        return 1

    result = asyncio.run(run_self_test(
        config=config,
        print_output=True,
        language=config.language,
    ))
    return 0 if result.success else 1


def cmd_config(args: argparse.Namespace) -> int:
    """Handle the 'config' command."""
    config_path = Path(args.path) if args.path else DEFAULT_CONFIG_PATH

    if args.action == "show":
        config = load_config_from_file(config_path)
        if config is None:
            print(f"No configuration found at: {config_path}")
            print("Use 'config init' to create a default configuration.")
            return 1

        print(f"Configuration from: {config_path}")
        print(f"  Language: {config.language}")
        print(f"  Simulation mode: {config.simulation_mode}")
        print(f"  Check interval: {config.auto_check.interval_seconds}s")
        print(f"  API failure threshold: {config.auto_check.api_fail_threshold}")
        print(f"  Probe mode: {config.probe.mode}")
        print(f"  Database: {config.persistence.database_url}")
        print(f"  Log level: {config.logging.level}")
        return 0

    elif args.action == "init":
        if config_path.exists() and not args.force:
            print(f"Configuration already exists at: {config_path}")
            print("Use --force to overwrite.")
            return 1

        config = create_default_config(language=args.language or "en")
        if save_config_to_file(config, config_path):
            print(f"Configuration created at: {config_path}")
            return 0
        return 1

    elif args.action == "validate":
        config = load_config_from_file(config_path)
        if config is None:
            print(f"Error: Could not load config from {config_path}", file=sys.stderr)
            return 1

        apply_env_overrides(config)
        result = validate_config(config)
        for warning in result.warnings:
            print(f"Warning: {warning}")
        if not result.valid:
            for error in result.errors:
                print(f"Error: {error}", file=sys.stderr)
            return 1
        print(f"Configuration at {config_path} is valid.")
        return 0

    return 1


def _add_common_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--config", "-c",
        help="Path to configuration file",
    )
    parser.add_argument(
        "--language", "-l",
        choices=list(SUPPORTED_LANGUAGES),
        default=None,
        help="Report language (default: from config)",
    )


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser for the CLI."""
    parser = argparse.ArgumentParser(
        prog="dns-failover",
        description="Cloudflare DNS failover controller with a Telegram admin bot",
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}",
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # 'run' command
    run_parser = subparsers.add_parser(
        "run",
        help="Start the periodic checks and the Telegram bot",
    )
    _add_common_arguments(run_parser)
    run_parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Simulation mode - no DNS writes, no digest messages",
    )
    run_parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Enable debug logging",
    )
    run_parser.set_defaults(func=cmd_run)

    # 'check' command
    check_parser = subparsers.add_parser(
        "check",
        help="Run one check cycle and print the report",
    )
    _add_common_arguments(check_parser)
    check_parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Simulation mode - no DNS writes",
    )
    check_parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Print progress while checking",
    )
    check_parser.set_defaults(func=cmd_check)

    # 'import' command
    import_parser = subparsers.add_parser(
        "import",
        help="Import records in the pipe format",
    )
    import_parser.add_argument(
        "file",
        help="Path to the records file",
    )
    _add_common_arguments(import_parser)
    import_parser.set_defaults(func=cmd_import)

    # 'export' command
    export_parser = subparsers.add_parser(
        "export",
        help="Export records in the pipe format",
    )
    export_parser.add_argument(
        "file",
        nargs="?",
        help="Output file (default: stdout)",
    )
    _add_common_arguments(export_parser)
    export_parser.set_defaults(func=cmd_export)

    # 'backend' command
    backend_parser = subparsers.add_parser(
        "backend",
        help="Serve the probe backend",
    )
    _add_common_arguments(backend_parser)
    backend_parser.add_argument(
        "--host",
        help="Listen address (default: from config)",
    )
    backend_parser.add_argument(
        "--port", "-p",
        type=int,
        help="Listen port (default: from config)",
    )
    backend_parser.add_argument(
        "--public-ip",
        default="",
        help="Public address reported with every result",
    )
    backend_parser.set_defaults(func=cmd_backend)

    # 'config' command
    config_parser = subparsers.add_parser(
        "config",
        help="Configuration management",
    )
    config_parser.add_argument(
        "action",
        choices=["show", "init", "validate"],
        help="Configuration action",
    )
    config_parser.add_argument(
        "--path", "-p",
        help="Path to configuration file",
    )
    config_parser.add_argument(
        "--force", "-f",
        action="store_true",
        help="Force overwrite existing configuration",
    )
    config_parser.add_argument(
        "--language", "-l",
        choices=list(SUPPORTED_LANGUAGES),
        default=None,
        help="Default language for new configuration",
    )
    config_parser.set_defaults(func=cmd_config)

    # 'self-test' command
    self_test_parser = subparsers.add_parser(
        "self-test",
        help="Verify configuration and connectivity",
    )
    _add_common_arguments(self_test_parser)
    self_test_parser.set_defaults(func=cmd_self_test)

    return parser


def main(argv: Optional[list[str]] = None) -> int:
    """
    Main entry point for the CLI.

    Args:
        argv: Command line arguments (defaults to sys.argv[1:])

    Returns:
        Exit code
    """
    parser = create_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return 0

    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
