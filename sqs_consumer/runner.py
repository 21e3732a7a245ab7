import argparse
import importlib
import signal
import sys
import threading
from dataclasses import asdict, replace
from typing import List, Optional

from .config import ConsumerConfig, load_config
from .consumer import Consumer
from .contracts import ConsumeFn
from .errors import TransportError, ValidationError
from .io_sqs import SQSClient
from .logging import get_logger, set_level

EXIT_OK = 0
EXIT_TRANSPORT = 1
EXIT_CONFIG = 2


# ==========================================================
# Helpers
# ==========================================================

def load_consume_fn(path: str) -> ConsumeFn:
    """Import a processing function from "pkg.module.func" or "pkg.module:func"."""
    if not path:
        raise ValueError("consume_fn path is required")
    if ":" in path:
        mod, attr = path.split(":", 1)
    else:
        if "." not in path:
            raise ValueError(f"consume_fn path must be module.function, got {path!r}")
        mod, attr = path.rsplit(".", 1)

    fn = getattr(importlib.import_module(mod), attr, None)
    if not callable(fn):
        raise ValueError(f"{path} is not a callable")
    return fn


def _install_signal_handlers(stop: threading.Event, logger) -> None:
    """SIGINT/SIGTERM stop new polls; in-flight batches finish."""

    def _handle(signum, _frame):
        logger.info("Shutdown requested", {"signal": signal.Signals(signum).name})
        stop.set()

    signal.signal(signal.SIGINT, _handle)
    signal.signal(signal.SIGTERM, _handle)


def _parse_args(argv: Optional[List[str]]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="sqs-consumer",
        description="Consume an SQS queue with a pool of workers.",
    )
    parser.add_argument("consume_fn", help="Processing function, e.g. myapp.handlers:handle")
    parser.add_argument("--config", default=None, help="YAML config file (default: $SQS_CONSUMER_CONFIG)")
    parser.add_argument("--queue", default=None, help="Queue URL (overrides config)")
    parser.add_argument("--concurrency", type=int, default=None, help="Number of workers (overrides config)")
    parser.add_argument("--log-level", default=None, help="DEBUG, INFO, WARNING or ERROR (default: $LOG_LEVEL)")
    parser.add_argument("--endpoint-url", default=None, help="Alternate SQS endpoint, e.g. LocalStack")
    parser.add_argument("--region", default=None, help="AWS region")
    return parser.parse_args(argv)


# ==========================================================
# Core Runner Logic
# ==========================================================

def main(argv: Optional[List[str]] = None, client=None, stop_event: Optional[threading.Event] = None) -> int:
    """
    Main entry point for the consumer process.

    Args:
        argv: command line (default: sys.argv[1:])
        client: queue client to use instead of a boto3-backed SQSClient
        stop_event: cancellation event; signal handlers are only installed
            when this is None

    Returns:
        Process exit code.
    """
    args = _parse_args(argv)
    if args.log_level:
        set_level(args.log_level)
    logger = get_logger("runner")

    try:
        config: ConsumerConfig = load_config(args.config)
        overrides = {}
        if args.queue:
            overrides["queue"] = args.queue
        if args.concurrency is not None:
            overrides["concurrency"] = args.concurrency
        config = replace(config, **overrides)

        consume_fn = load_consume_fn(args.consume_fn)
        if client is None:
            client = SQSClient(region=args.region, endpoint_url=args.endpoint_url)
        consumer = Consumer(config, client)
    except (ValidationError, ValueError, ImportError, FileNotFoundError) as e:
        logger.error(e, {"context": "startup"})
        return EXIT_CONFIG

    if stop_event is None:
        stop_event = threading.Event()
        _install_signal_handlers(stop_event, logger)

    logger.info("Starting worker", {"queue": consumer.config.queue, "consume_fn": args.consume_fn})
    try:
        stats = consumer.run(stop_event, consume_fn)
    except TransportError as e:
        logger.error(e, {"context": "run"})
        return EXIT_TRANSPORT
    except Exception as e:
        # anything else a worker re-raised, e.g. from a custom client
        logger.error(e, {"context": "run"})
        return EXIT_TRANSPORT

    logger.info("Graceful shutdown ✓", asdict(stats))
    return EXIT_OK


# ==========================================================
# Entrypoint
# ==========================================================

def cli() -> None:
    sys.exit(main())


if __name__ == "__main__":
    cli()
