from __future__ import annotations

import argparse
import logging
import os
import signal
import threading
from typing import List, Optional

from .config.config_parser import ConfigError, parse_config_file
from .config.logging_config import init_logging
from .servers.handler import RequestHandler
from .servers.pipeline import QueryPipeline
from .servers.udp_server import DNSServer

DEFAULT_CONFIG_PATH = "config.yaml"
DEFAULT_PID_PATH = "dns-filter.pid"


def create_pid_file(path: str) -> None:
    """
    Write the current process id to path, replacing any previous contents.

    Inputs:
      - path: PID file location.
    Outputs:
      - None

    Raises:
      - OSError when the file cannot be written.
    """
    with open(path, "w", encoding="ascii") as f:
        f.write(str(os.getpid()))


def remove_pid_file(path: str) -> None:
    """Remove the PID file; a file that is already gone is not an error."""
    try:
        os.remove(path)
    except FileNotFoundError:
        pass
    except OSError as e:
        logging.getLogger("dnsfilter.main").warning(
            "Could not remove pid file %s: %s", path, e
        )


def build_request_handler(config) -> RequestHandler:
    """
    Wire the configured filters and forwarders into a RequestHandler.

    Inputs:
      - config: DNSFilterConfig.
    Outputs:
      - RequestHandler ready to be installed on a DNSServer.
    """
    filters = config.build_filter_set()
    pool = config.build_forwarder_pool()
    return RequestHandler(QueryPipeline(filters, pool))


def main(argv: List[str] | None = None) -> int:
    """
    Main entry point for the DNS filter.
    Parses arguments, loads configuration, writes the PID file and serves UDP
    DNS requests until SIGINT, SIGTERM or SIGHUP is received.

    Args:
        argv: Command-line arguments.

    Returns:
        An exit code (0 on clean shutdown, 1 on configuration or startup
        failure).

    Example use:
        CLI:
            PYTHONPATH=src python -m dnsfilter.main --config config.yaml --pid /run/dnsfilter.pid
    """
    parser = argparse.ArgumentParser(description="Filtering DNS forwarder")
    parser.add_argument(
        "-c", "--config", default=DEFAULT_CONFIG_PATH, help="Path to config file"
    )
    parser.add_argument("--pid", default=DEFAULT_PID_PATH, help="Path to pid file")
    args = parser.parse_args(argv)

    try:
        config = parse_config_file(args.config)
    except ConfigError as exc:
        print(f"Error processing configuration: {exc}")
        return 1

    init_logging(config.logging_config())
    logger = logging.getLogger("dnsfilter.main")
    logger.info("Loaded config from %s", args.config)

    request_handler = build_request_handler(config)
    pool = request_handler.pipeline.pool
    logger.info(
        "Forwarders: [%s], timeout: %dms, filters: %d",
        ", ".join(str(e) for e in pool.endpoints),
        pool.timeout_ms,
        len(request_handler.pipeline.filters),
    )

    try:
        create_pid_file(args.pid)
    except OSError as exc:
        logger.error("Couldn't create pid file %s: %s", args.pid, exc)
        return 1

    try:
        server = DNSServer(config.host, config.port, request_handler)
    except OSError as exc:
        logger.error(
            "Unable to listen and serve on %s:%d: %s", config.host, config.port, exc
        )
        remove_pid_file(args.pid)
        return 1

    shutdown_event = threading.Event()
    udp_error: Optional[BaseException] = None
    exit_code = 0

    def _request_shutdown(signum, _frame) -> None:
        if shutdown_event.is_set():
            return
        logger.info("Signal (%d) received, stopping", signum)
        shutdown_event.set()

    previous_handlers = {}
    for name in ("SIGINT", "SIGTERM", "SIGHUP"):
        sig = getattr(signal, name, None)
        if sig is None:
            continue
        try:
            previous_handlers[sig] = signal.signal(sig, _request_shutdown)
        except ValueError:
            # Only the main thread may install handlers.
            logger.warning("Could not install %s handler", name)

    def _run_udp() -> None:
        nonlocal udp_error
        try:
            server.serve_forever()
        except Exception as e:
            udp_error = e

    logger.info("Starting UDP listener on %s:%d", config.host, config.port)
    udp_thread = threading.Thread(target=_run_udp, name="dnsfilter-udp", daemon=True)
    udp_thread.start()
    logger.info("Startup Completed")

    try:
        while not shutdown_event.is_set():
            if not udp_thread.is_alive():
                break
            shutdown_event.wait(1.0)
    except KeyboardInterrupt:
        logger.info("Received interrupt, shutting down")
    finally:
        server.stop()
        udp_thread.join(timeout=5.0)
        remove_pid_file(args.pid)
        for sig, handler in previous_handlers.items():
            if handler is not None:
                signal.signal(sig, handler)

    if udp_error is not None:
        logger.error("Unable to listen and serve: %s", udp_error)
        exit_code = 1

    return exit_code


if __name__ == "__main__":
    raise SystemExit(main())
