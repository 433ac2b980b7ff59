"""CLI entry point for nostrinbox services.

Provides a unified command-line interface to run either inbox service
or to send a single direct message. Services can run in one-shot mode
(``--once``) or continuously with a Prometheus metrics server.

Examples:
    ```bash
    python -m nostrinbox <service> [options]
    python -m nostrinbox messenger --once
    python -m nostrinbox notifier --log-level DEBUG
    python -m nostrinbox send npub1... "hello there"
    ```
"""

import argparse
import asyncio
import logging
import signal
import sys
from pathlib import Path
from typing import Any, NamedTuple

from nostrinbox.core import NostrInboxError, start_metrics_server
from nostrinbox.core.base_service import BaseService
from nostrinbox.core.logger import Logger, StructuredFormatter
from nostrinbox.core.yaml import load_yaml
from nostrinbox.models.constants import ServiceName
from nostrinbox.services.messages import Messenger
from nostrinbox.services.notifications import Notifier


CONFIG_BASE = Path("config")
SEND_COMMAND = "send"


class ServiceEntry(NamedTuple):
    """Registry entry mapping a service to its class and default config path."""

    cls: type[BaseService[Any]]
    config_path: Path


SERVICE_REGISTRY: dict[str, ServiceEntry] = {
    ServiceName.MESSENGER: ServiceEntry(Messenger, CONFIG_BASE / "messenger.yaml"),
    ServiceName.NOTIFIER: ServiceEntry(Notifier, CONFIG_BASE / "notifier.yaml"),
}

logger = Logger("cli")


def build_service(
    service_class: type[BaseService[Any]], service_dict: dict[str, Any]
) -> BaseService[Any]:
    """Instantiate a service from its parsed config, or with defaults when empty."""
    if service_dict:
        return service_class.from_dict(service_dict)
    return service_class()


async def run_service(
    service_name: str,
    service: BaseService[Any],
    *,
    once: bool,
) -> int:
    """Run a service in one-shot or continuous mode.

    In one-shot mode, the service runs a single cycle and exits.
    In continuous mode, a Prometheus metrics server is started and the
    service runs indefinitely until a shutdown signal is received.

    Args:
        service_name: Service identifier used for logging.
        service: The configured service instance.
        once: If True, run a single cycle and exit. If False, run continuously.

    Returns:
        Exit code: 0 for success, 1 for failure.
    """
    # One-shot mode: single cycle, no metrics server
    if once:
        try:
            async with service:
                await service.run()
            logger.info(f"{service_name}_completed")
            return 0
        except Exception as e:  # Intentionally broad: CLI error boundary for one-shot mode
            logger.error(f"{service_name}_failed", error=str(e))
            return 1

    # Continuous mode: metrics server + indefinite operation
    metrics_config = service.config.metrics
    metrics_server = await start_metrics_server(metrics_config)

    if metrics_config.enabled:
        logger.info(
            "metrics_server_started",
            host=metrics_config.host,
            port=metrics_config.port,
            path=metrics_config.path,
        )

    def handle_signal(sig: signal.Signals) -> None:
        logger.info("shutdown_signal", signal=sig.name)
        service.request_shutdown()

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, handle_signal, sig)

    try:
        async with service:
            await service.run_forever()
        return 0
    except Exception as e:  # Intentionally broad: CLI error boundary for continuous mode
        logger.error(f"{service_name}_failed", error=str(e))
        return 1
    finally:
        await metrics_server.stop()
        if metrics_config.enabled:
            logger.info("metrics_server_stopped")


async def send_message(messenger: Messenger, peer: str, text: str) -> int:
    """Send one direct message and report the scheme that delivered it.

    Returns:
        Exit code: 0 when delivered, 2 for invalid input, 1 otherwise.
    """
    try:
        async with messenger:
            result = await messenger.send(peer, text)
    except ValueError as e:
        logger.error("send_rejected", error=str(e))
        return 2
    except NostrInboxError as e:
        logger.error("send_failed", error=str(e))
        return 1
    logger.info(
        "send_completed",
        scheme=result.scheme,
        fell_back=result.fell_back,
        backup_stored=result.backup_stored,
        events=",".join(result.event_ids),
    )
    return 0


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command-line arguments for the service runner."""
    parser = argparse.ArgumentParser(
        prog="nostrinbox",
        description="nostrinbox Service Runner",
    )

    common = argparse.ArgumentParser(add_help=False)
    common.add_argument(
        "--config",
        type=Path,
        help="Service config path (default: config/<service>.yaml)",
    )
    common.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        default="INFO",
        help="Log level (default: INFO)",
    )

    commands = parser.add_subparsers(dest="command", required=True)
    for name in SERVICE_REGISTRY:
        service_parser = commands.add_parser(name, parents=[common], help=f"Run the {name}")
        service_parser.add_argument(
            "--once",
            action="store_true",
            help="Run once and exit (default: run continuously)",
        )

    send_parser = commands.add_parser(
        SEND_COMMAND, parents=[common], help="Send one direct message"
    )
    send_parser.add_argument("peer", help="Recipient public key (hex or npub)")
    send_parser.add_argument("text", help="Message text")

    return parser.parse_args(argv)


def setup_logging(level: str) -> None:
    """Configure the root logger with structured formatting.

    Installs a ``StructuredFormatter`` on the root handler so that all
    log output -- from both ``Logger`` (with ``structured_kv`` extra) and
    plain ``logging.getLogger()`` calls in models/utils/nips -- is unified
    as ``level name message key=value ...``.
    """
    handler = logging.StreamHandler()
    handler.setFormatter(StructuredFormatter())
    logging.root.addHandler(handler)
    logging.root.setLevel(getattr(logging, level))


def _load_yaml_dict(path: Path) -> dict[str, Any]:
    """Load a YAML file as a dict, returning ``{}`` if the file does not exist."""
    if not path.exists():
        logger.warning("config_not_found", path=str(path))
        return {}
    return load_yaml(str(path))


async def main(argv: list[str] | None = None) -> int:
    """Main entry point: parse args, build the service, and run the command."""
    args = parse_args(argv)
    setup_logging(args.log_level)

    service_name = ServiceName.MESSENGER if args.command == SEND_COMMAND else args.command
    entry = SERVICE_REGISTRY[service_name]
    service_dict = _load_yaml_dict(args.config or entry.config_path)

    try:
        if args.command == SEND_COMMAND:
            messenger = Messenger.from_dict(service_dict) if service_dict else Messenger()
            return await send_message(messenger, args.peer, args.text)
        service = build_service(entry.cls, service_dict)
        return await run_service(service_name, service, once=args.once)
    except NostrInboxError as e:
        logger.error("startup_failed", error=str(e))
        return 1
    except ValueError as e:
        logger.error("config_invalid", error=str(e))
        return 1
    except KeyboardInterrupt:
        logger.info("interrupted")
        return 130


def cli() -> None:
    """Synchronous entry point for console_scripts."""
    sys.exit(asyncio.run(main()))


if __name__ == "__main__":
    cli()
