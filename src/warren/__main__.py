"""Command-line entrypoint: publish to or subscribe to a queue."""

from __future__ import annotations

import argparse
import os
import sys
from pathlib import Path
from typing import Any

import yaml
from loguru import logger

from warren import __version__
from warren.adapters import AMQPAdapter, NullAdapter
from warren.config import default_config_path
from warren.errors import WarrenError
from warren.facade import Queue
from warren.filters import pipeline_from_names
from warren.logs import intercept_logging

ADAPTERS = ("amqp", "null")


# Characters loguru would treat as format fields or colour markup
_LOG_ESCAPES = str.maketrans({"{": "{{", "}": "}}", "<": "\\<"})
_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR")
LOG_FORMAT = "<green>{time:HH:mm:ss}</green> | <level>{level: <8}</level> | <cyan>{name}</cyan> | {message}"


def _safe_message_filter(record: Any) -> bool:
    """Escape message text (payloads, broker errors) before the sink formats it."""
    message = record.get("message")
    if isinstance(message, str):
        record["message"] = message.translate(_LOG_ESCAPES)
    return True


def _log_level(verbose: bool) -> str:
    if verbose:
        return "DEBUG"
    requested = (os.environ.get("LOG_LEVEL") or "").upper()
    return requested if requested in _LOG_LEVELS else "INFO"


def setup_logging(verbose: bool = False) -> None:
    """Send warren's logs to stderr; pika only reports warnings and worse.

    Level is DEBUG with ``verbose``, else ``$LOG_LEVEL``, else INFO.
    """
    logger.remove()
    logger.add(sys.stderr, level=_log_level(verbose), format=LOG_FORMAT, filter=_safe_message_filter)
    logger.enable("warren")
    intercept_logging(["pika"], "WARNING")


def build_queue(args: argparse.Namespace) -> Queue:
    """Queue with the adapter, filters and connection chosen on the command line."""
    if args.adapter == "null":
        return Queue(NullAdapter())
    # Without --filter the connection's own "filters" option (or YAML) applies
    filters = pipeline_from_names(args.filter, secret=os.environ.get("WARREN_SECRET")) if args.filter else None
    queue = Queue(AMQPAdapter(filters=filters), config_path=args.config, env=args.env)
    # Load eagerly so config errors surface before any broker I/O
    queue.connection
    return queue


def _print_message(payload: Any, metadata: dict[str, Any] | None = None) -> None:
    if metadata is not None:
        logger.debug("Delivery: {}", metadata)
    sys.stdout.write(yaml.safe_dump(payload, allow_unicode=True, explicit_start=True))
    sys.stdout.flush()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="warren", description="Publish to and consume from AMQP queues")
    parser.add_argument(
        "--config",
        "-c",
        type=Path,
        default=default_config_path(),
        help="Path to config file (default: $WARREN_CONFIG or config/warren.yml)",
    )
    parser.add_argument("--env", "-e", default=None, help="Config environment (default: $WARREN_ENV or development)")
    parser.add_argument("--adapter", choices=ADAPTERS, default="amqp", help="Broker adapter (default: amqp)")
    parser.add_argument(
        "--filter",
        "-f",
        action="append",
        help="Message filter, repeatable, applied in order (default: config filters, else yaml)",
    )
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable debug logging")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")

    sub = parser.add_subparsers(dest="command", required=True)

    pub = sub.add_parser("publish", help="Publish one message")
    pub.add_argument("queue", help="Queue name, or 'default' for the configured default queue")
    pub.add_argument("message", help="Message body, parsed as YAML")

    cons = sub.add_parser("subscribe", help="Print messages as they arrive")
    cons.add_argument("queue", help="Queue name, or 'default' for the configured default queue")
    cons.add_argument("--with-metadata", action="store_true", help="Log delivery metadata too")
    return parser


def main(argv: list[str] | None = None) -> None:
    """Main entrypoint."""
    args = build_parser().parse_args(argv)
    setup_logging(args.verbose)

    try:
        queue = build_queue(args)
        if args.command == "publish":
            payload = yaml.safe_load(args.message)
            queue.publish(args.queue, payload)
            logger.info("Published to {}", args.queue)
        else:
            queue.subscribe(args.queue, _print_message, with_metadata=args.with_metadata)
    except WarrenError as exc:
        logger.error("{}", exc)
        sys.exit(1)
    except KeyboardInterrupt:
        logger.info("Interrupted")


if __name__ == "__main__":
    main()
