"""Command-line entry point that runs the catch-all domain HTTP service."""

import argparse
import logging
import os
import re
import signal
import sys
import threading
from datetime import timedelta
from typing import Optional, Sequence

from werkzeug.serving import make_server

from catchall.api import create_app
from catchall.batch_processor import BatchEventProcessor
from catchall.cached_repository import CachedDomainRepository
from catchall.config import load_config
from catchall.domain_service import DomainService
from catchall.factory import new_domain_repository
from catchall.metrics import MetricsCollector
from catchall.processor import EventProcessor, Processor
from catchall.repository import RepositoryOptions, RepositoryType, as_batch_repository
from catchall.stats_service import StatsService

_TRUE = {"1", "t", "T", "TRUE", "true", "True"}
_FALSE = {"0", "f", "F", "FALSE", "false", "False"}

_UNIT_MICROSECONDS = {
    "ns": 0.001,
    "us": 1.0,
    "µs": 1.0,
    "μs": 1.0,
    "ms": 1_000.0,
    "s": 1_000_000.0,
    "m": 60_000_000.0,
    "h": 3_600_000_000.0,
}
_PART = r"(\d+(?:\.\d*)?|\.\d+)(ns|us|µs|μs|ms|s|m|h)"
_DURATION = re.compile(rf"(?:{_PART})+")
_DURATION_PART = re.compile(_PART)
_WAIT = 0.5


def _parse_bool(text: str) -> bool:
    if text in _TRUE:
        return True
    if text in _FALSE:
        return False
    raise argparse.ArgumentTypeError(f"invalid boolean value {text!r}")


def _parse_duration(text: str) -> timedelta:
    """Parse durations such as '300ms', '5m' or '1h30m'."""
    body = text
    negative = False
    if body[:1] in "+-" and body:
        negative = body[0] == "-"
        body = body[1:]
    if body == "0":
        return timedelta(0)
    if not body or not _DURATION.fullmatch(body):
        raise argparse.ArgumentTypeError(f"invalid duration {text!r}")
    total = sum(
        float(number) * _UNIT_MICROSECONDS[unit]
        for number, unit in _DURATION_PART.findall(body)
    )
    return timedelta(microseconds=-total if negative else total)


def _add_bool(parser: argparse.ArgumentParser, name: str, default: bool, help_text: str) -> None:
    parser.add_argument(
        f"-{name}",
        f"--{name}",
        dest=name.replace("-", "_"),
        nargs="?",
        const=True,
        default=default,
        type=_parse_bool,
        metavar="BOOL",
        help=help_text,
    )


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="catchall", description="Catch-all domain detection service."
    )
    parser.add_argument(
        "-config", "--config", dest="config", default="", help="Path to configuration file"
    )
    parser.add_argument(
        "-workers",
        "--workers",
        dest="workers",
        type=int,
        default=os.cpu_count() or 1,
        help="Number of event processing workers",
    )
    _add_bool(parser, "processor", False, "Enable event processor")
    _add_bool(parser, "mongodb", False, "Use MongoDB instead of in-memory storage")
    _add_bool(parser, "cache", True, "Enable repository caching")
    parser.add_argument(
        "-cache-ttl",
        "--cache-ttl",
        dest="cache_ttl",
        type=_parse_duration,
        default=timedelta(minutes=5),
        help="Cache TTL duration",
    )
    return parser


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    """Parse the command-line options."""
    return _build_parser().parse_args(argv)


def _make_logger() -> logging.Logger:
    logger = logging.getLogger("catchall.server")
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(
        logging.Formatter("CATCH-ALL: %(asctime)s %(message)s", "%Y/%m/%d %H:%M:%S")
    )
    logger.addHandler(handler)
    logger.setLevel(logging.INFO)
    logger.propagate = False
    return logger


def _install_signals(stop: threading.Event) -> dict:
    if threading.current_thread() is not threading.main_thread():
        return {}

    def handle(signum, frame) -> None:
        stop.set()

    return {sig: signal.signal(sig, handle) for sig in (signal.SIGINT, signal.SIGTERM)}


def _close(repo: object) -> None:
    closer = getattr(repo, "close", None)
    if callable(closer):
        closer()


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Run the service until SIGINT or SIGTERM; return the process exit status."""
    args = parse_args(argv)
    logger = _make_logger()
    logger.info("Starting catch-all domain service...")

    try:
        cfg = load_config(args.config)
    except (OSError, ValueError) as exc:
        logger.error("Failed to load configuration: %s", exc)
        return 1

    logger.info("Server configuration: %s", cfg.server)
    logger.info("MongoDB configuration: %s", cfg.mongodb)
    logger.info(
        "Business configuration: delivered threshold = %d", cfg.business.delivered_threshold
    )
    logger.info("Worker count: %d", args.workers)
    logger.info("Using MongoDB: %s", args.mongodb)
    logger.info("Cache enabled: %s, Cache TTL: %s", args.cache, args.cache_ttl)

    metrics_collector = MetricsCollector()
    repo_type = RepositoryType.MONGODB if args.mongodb else RepositoryType.MEMORY
    options = RepositoryOptions(enable_caching=args.cache, cache_ttl=args.cache_ttl)

    try:
        repo = new_domain_repository(
            repo_type, cfg.mongodb.uri, cfg.mongodb.database, logger, options
        )
    except Exception as exc:
        logger.error("Failed to initialize repository: %s", exc)
        return 1

    domain_service = DomainService(repo, logger)
    stats_service = StatsService(repo, logger)

    processor: Optional[Processor] = None
    if args.processor:
        batch_repo = as_batch_repository(repo)
        if batch_repo is not None and args.mongodb:
            logger.info("Using batch event processor")
            processor = BatchEventProcessor(
                domain_service, batch_repo, metrics_collector, logger, args.workers
            )
        else:
            logger.info("Using standard event processor")
            processor = EventProcessor(domain_service, metrics_collector, logger, args.workers)
        processor.start()

    app = create_app(domain_service, stats_service, metrics_collector, logger)
    addr = f"{cfg.server.host}:{cfg.server.port}"
    try:
        server = make_server(cfg.server.host, cfg.server.port, app, threaded=True)
    except OSError as exc:
        logger.error("Server error: %s", exc)
        if processor is not None:
            processor.stop()
        _close(repo)
        return 1

    stop = threading.Event()
    previous = _install_signals(stop)

    def serve() -> None:
        logger.info("Server listening on %s", addr)
        try:
            server.serve_forever()
        except Exception as exc:
            logger.error("Server error: %s", exc)
        finally:
            stop.set()

    server_thread = threading.Thread(target=serve, name="http-server", daemon=True)
    server_thread.start()

    try:
        while not stop.wait(_WAIT):
            pass
    except KeyboardInterrupt:
        pass
    finally:
        for sig, handler in previous.items():
            signal.signal(sig, handler)

    logger.info("Shutting down server...")

    if processor is not None:
        logger.info("Stopping event processor...")
        processor.stop()

    if args.cache and isinstance(repo, CachedDomainRepository):
        stats = repo.cache_stats()
        total = stats.hits + stats.misses
        if total > 0:
            logger.info(
                "Cache performance: %d hits, %d misses (%.1f%% hit ratio)",
                stats.hits,
                stats.misses,
                stats.hits / total * 100,
            )

    exit_code = 0
    shutdown = threading.Thread(target=server.shutdown, name="http-shutdown", daemon=True)
    shutdown.start()
    shutdown.join(cfg.server.shutdown_timeout.total_seconds())
    if shutdown.is_alive():
        logger.error("Server forced to shutdown: shutdown timed out")
        exit_code = 1
    else:
        server.server_close()
        logger.info("Server gracefully stopped")

    _close(repo)
    return exit_code


if __name__ == "__main__":
    sys.exit(main())