"""Command-line entry point for push-dispatch.

Handles a single "new message" event: loads configuration, wires the
dispatch engine, prints the JSON response as soon as the dispatch answers
(possibly with the early "delivering" acknowledgement), then waits for
background deliveries before exiting.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from collections.abc import Sequence
from contextlib import AsyncExitStack
from pathlib import Path
from typing import NoReturn

from pydantic import ValidationError

from push_dispatch.core.config import (
    ConfigurationError,
    EnvironmentVariableError,
    MainConfig,
    format_validation_error,
    load_main_config,
)
from push_dispatch.core.engine import DispatchEngine
from push_dispatch.core.errors import InvalidEventError, ResolutionError
from push_dispatch.core.responses import result_to_dict
from push_dispatch.core.service import parse_event
from push_dispatch.providers import DryRunProvider, MessagingAPIProvider
from push_dispatch.store import InMemoryUserStore
from push_dispatch.types import NotificationProvider
from push_dispatch.utils.http_client import AIOHTTPClient
from push_dispatch.utils.logging import configure_logging

__all__ = ["main"]

# Exit codes
EXIT_SUCCESS = 0
EXIT_CONFIG_ERROR = 1
EXIT_RUNTIME_ERROR = 1
EXIT_INVALID_EVENT = 2
EXIT_RESOLUTION_ERROR = 3

STDIN_MARKER = "-"


def parse_arguments(argv: Sequence[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="push-dispatch",
        description="Deliver a chat message push notification to every device of its recipient",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  push-dispatch --event event.json --config config.yaml --store users.yaml
  push-dispatch --event - --dry-run --store users.yaml < event.json
        """,
    )

    _ = parser.add_argument(
        "--event",
        "-e",
        required=True,
        help="Path to the JSON event body, or '-' to read it from stdin",
        metavar="PATH",
    )
    _ = parser.add_argument(
        "--config",
        "-c",
        type=Path,
        default=None,
        help="Path to main configuration file (optional with --dry-run)",
        metavar="PATH",
    )
    _ = parser.add_argument(
        "--store",
        "-s",
        type=Path,
        default=None,
        help="YAML file with a 'users' mapping seeding the device registry",
        metavar="PATH",
    )
    _ = parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Log pushes instead of sending them (overrides config)",
    )
    _ = parser.add_argument(
        "--log-level",
        type=str.upper,
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Override log level from configuration",
        metavar="LEVEL",
    )
    _ = parser.add_argument(
        "--no-syslog",
        action="store_true",
        help="Disable syslog integration (overrides config)",
    )

    return parser.parse_args(argv)


def build_config(config_path: Path | None, *, dry_run: bool) -> MainConfig:
    """Load the configuration file, or use defaults when none is given.

    Raises:
        ConfigurationError: If the configuration is missing or invalid
    """
    if config_path is not None:
        return load_main_config(config_path)
    try:
        return MainConfig.model_validate({"application": {"dry_run": dry_run}})
    except ValidationError as e:
        msg = (
            "No configuration file given and the defaults are not usable.\n"
            f"{format_validation_error(e, source='built-in defaults')}\n"
            "Pass --config PATH, or --dry-run to run without a provider."
        )
        raise ConfigurationError(msg) from e


def read_event(source: str) -> object:
    """Read and decode the JSON event body.

    Raises:
        InvalidEventError: If the body cannot be read or is not JSON
    """
    try:
        if source == STDIN_MARKER:
            text = sys.stdin.read()
        else:
            text = Path(source).read_text(encoding="utf-8")
    except OSError as e:
        msg = f"Failed to read event body from {source}: {e}"
        raise InvalidEventError(msg) from e

    try:
        return json.loads(text)  # pyright: ignore[reportAny]  # JSON boundary
    except json.JSONDecodeError as e:
        msg = f"Event body is not valid JSON: {e}"
        raise InvalidEventError(msg) from e


async def async_main(
    *,
    event_source: str,
    config_path: Path | None,
    store_path: Path | None,
    dry_run: bool = False,
    log_level: str | None = None,
    enable_syslog: bool = True,
) -> dict[str, object]:
    """Handle one event and return the response body.

    Raises:
        ConfigurationError: If configuration or the store file is invalid
        InvalidEventError: If the event body is malformed
        ResolutionError: If the recipient's devices cannot be resolved
    """
    config = build_config(config_path, dry_run=dry_run).with_application_overrides(
        dry_run=True if dry_run else None,
        log_level=log_level,
        syslog_enabled=None if enable_syslog else False,
    )

    configure_logging(
        log_level=config.application.log_level,
        enable_syslog=config.application.syslog_enabled,
        enable_console=True,
    )
    logger = logging.getLogger(__name__)

    event = parse_event(read_event(event_source))
    store = InMemoryUserStore.from_yaml(store_path) if store_path is not None else InMemoryUserStore()

    async with AsyncExitStack() as stack:
        provider: NotificationProvider
        if config.application.dry_run or config.provider is None:
            logger.info("Dry-run mode enabled, pushes will be logged only")
            provider = DryRunProvider()
        else:
            http_client = await stack.enter_async_context(
                AIOHTTPClient(
                    default_timeout_seconds=config.dispatch.provider_timeout_seconds,
                    connection_limit=config.dispatch.max_concurrent_sends,
                )
            )
            provider = MessagingAPIProvider(
                config=config.provider,
                http_client=http_client,
                request_timeout=config.dispatch.provider_timeout_seconds,
            )

        engine = await stack.enter_async_context(
            DispatchEngine.from_config(config, provider=provider, registry=store, directory=store)
        )
        result = await engine.service.handle(event)
        body = result_to_dict(result)

        print(json.dumps(body, ensure_ascii=False), flush=True)
        logger.info(
            "Response sent, waiting for background deliveries",
            extra={"background_tasks": engine.coordinator.background_task_count},
        )

    return body


def main(argv: Sequence[str] | None = None) -> NoReturn:
    """Run the CLI and exit.

    Exit Codes:
        0: Event handled (including per-device failures)
        1: Configuration or runtime error
        2: Invalid event body
        3: Recipient not found or device registry unreachable
    """
    args = parse_arguments(argv)

    event_arg: str = args.event  # pyright: ignore[reportAny]  # argparse boundary
    config_path_arg: Path | None = args.config  # pyright: ignore[reportAny]  # argparse boundary
    store_path_arg: Path | None = args.store  # pyright: ignore[reportAny]  # argparse boundary
    dry_run_arg: bool = args.dry_run  # pyright: ignore[reportAny]  # argparse boundary
    log_level_arg: str | None = args.log_level  # pyright: ignore[reportAny]  # argparse boundary
    no_syslog_arg: bool = args.no_syslog  # pyright: ignore[reportAny]  # argparse boundary

    try:
        _ = asyncio.run(
            async_main(
                event_source=event_arg,
                config_path=config_path_arg,
                store_path=store_path_arg,
                dry_run=dry_run_arg,
                log_level=log_level_arg,
                enable_syslog=not no_syslog_arg,
            )
        )

    except ConfigurationError as exc:
        print(f"Configuration error:\n{exc}", file=sys.stderr)
        sys.exit(EXIT_CONFIG_ERROR)

    except EnvironmentVariableError as exc:
        print(f"Environment variable error:\n{exc}", file=sys.stderr)
        sys.exit(EXIT_CONFIG_ERROR)

    except InvalidEventError as exc:
        print(json.dumps({"success": False, "error": str(exc)}), flush=True)
        sys.exit(EXIT_INVALID_EVENT)

    except ResolutionError as exc:
        print(json.dumps({"success": False, "error": str(exc)}), flush=True)
        sys.exit(EXIT_RESOLUTION_ERROR)

    except KeyboardInterrupt:
        print("\nInterrupted", file=sys.stderr)
        sys.exit(EXIT_RUNTIME_ERROR)

    except Exception as exc:
        print(f"Unexpected error: {exc}", file=sys.stderr)
        logging.exception("Unexpected error while handling event")
        sys.exit(EXIT_RUNTIME_ERROR)

    sys.exit(EXIT_SUCCESS)


if __name__ == "__main__":
    main()
