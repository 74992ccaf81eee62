# -*- coding: utf-8 -*-

# SPDX-License-Identifier: BSL-1.1
# Copyright (c) 2025 Ziggiz Inc.
#
# This file is part of the ziggiz-courier-core-data-processing and is licensed under the
# Business Source License 1.1. You may not use this file except in
# compliance with the License. You may obtain a copy of the License at:
# https://github.com/ziggiz-courier/ziggiz-courier-core-data-processing/blob/main/LICENSE
# Main entry point for the log shipper

# Standard library imports
import argparse
import logging
import sys

from typing import Iterable, Iterator, List, Optional, Tuple

# Local/package imports
from ziggiz_courier_dropoff_stash.config import Config, configure_logging, load_config
from ziggiz_courier_dropoff_stash.errors import StashError
from ziggiz_courier_dropoff_stash.stash import Stash
from ziggiz_courier_dropoff_stash.telemetry import configure_tracing


def setup_logging(log_level: str = "INFO", config: Optional[Config] = None) -> None:
    """
    Configure logging with appropriate formatters and handlers.

    Args:
        log_level: The logging level to set (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        config: Optional configuration object to use for logging setup
    """
    if config:
        configure_logging(config)
        return

    level = getattr(logging, log_level.upper(), logging.INFO)

    formatter = logging.Formatter(
        "%(asctime)s %(levelname)s %(name)s %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    root_logger = logging.getLogger()
    root_logger.setLevel(level)

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    # The exporter is chatty at DEBUG
    logging.getLogger("opentelemetry").setLevel(logging.WARNING)


def iter_lines(inputs: List[str]) -> Iterator[bytes]:
    """
    Yield the raw lines of the given files, or of stdin when none are given.

    Args:
        inputs: File paths; "-" stands for stdin
    """
    for path in inputs or ["-"]:
        if path == "-":
            yield from sys.stdin.buffer
        else:
            with open(path, "rb") as f:
                yield from f


def ship(stash: Stash, lines: Iterable[bytes]) -> Tuple[int, int]:
    """
    Write each non-empty line as one frame.

    A failed write is logged and the next line is attempted; after a broken
    pipe the connection has already been redialed for it.

    Args:
        stash: The connected client
        lines: Raw lines, with or without line terminators

    Returns:
        Tuple of (lines sent, lines failed)
    """
    logger = logging.getLogger("ziggiz_courier_dropoff_stash.main")
    sent = failed = 0

    for line in lines:
        if not line.strip(b"\r\n"):
            continue
        try:
            stash.write(line)
            sent += 1
        except (OSError, StashError) as e:
            failed += 1
            logger.error(
                f"Failed to ship line to {stash.address}: {e}",
                extra={"state": stash.state.value},
            )

    return sent, failed


def run_shipper(config: Config, inputs: Optional[List[str]] = None) -> int:
    """
    Connect to the configured endpoint and ship the input lines.

    Args:
        config: The shipper configuration
        inputs: Input file paths, stdin when empty

    Returns:
        The process exit code: 0 when every line was delivered, 1 otherwise
    """
    logger = logging.getLogger("ziggiz_courier_dropoff_stash.main")

    if config.enable_tracing:
        configure_tracing()

    try:
        stash = Stash.connect(config.host, config.port, config.to_stash_options())
    except (StashError, ValueError) as e:
        logger.error(f"Failed to connect to {config.host}:{config.port}: {e}")
        return 1

    with stash:
        try:
            sent, failed = ship(stash, iter_lines(inputs or []))
        except KeyboardInterrupt:
            logger.info("Received keyboard interrupt, shutting down...")
            return 1

    logger.info(f"Shipped {sent} line(s) to {stash.address}, {failed} failed")
    return 1 if failed else 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Ziggiz Courier Dropoff Stash: ship log lines to a Logstash-style endpoint"
    )
    parser.add_argument(
        "inputs",
        nargs="*",
        help="Files to ship line by line (default: stdin, '-' also means stdin)",
    )
    parser.add_argument(
        "--config",
        type=str,
        help="Path to configuration file",
    )
    parser.add_argument(
        "--log-level",
        type=str,
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Logging level (overrides config file)",
    )
    parser.add_argument(
        "--host",
        type=str,
        help="Endpoint host (overrides config file)",
    )
    parser.add_argument(
        "--port",
        type=int,
        help="Endpoint port (overrides config file)",
    )
    parser.add_argument(
        "--protocol",
        type=str,
        choices=["tcp", "udp"],
        help="Protocol to use (tcp or udp, overrides config file)",
    )
    parser.add_argument(
        "--tls",
        action="store_true",
        default=None,
        help="Use TLS (overrides config file)",
    )
    parser.add_argument(
        "--skip-verify",
        action="store_true",
        default=None,
        help="Do not verify the server certificate (overrides config file)",
    )
    parser.add_argument(
        "--server-name",
        type=str,
        help="TLS server name, defaults to the host (overrides config file)",
    )
    parser.add_argument(
        "--tls-ca-certs",
        type=str,
        help="CA certificates used to verify the server (overrides config file)",
    )
    parser.add_argument(
        "--tls-certfile",
        type=str,
        help="Client certificate for mutual TLS (overrides config file)",
    )
    parser.add_argument(
        "--tls-keyfile",
        type=str,
        help="Client private key for mutual TLS (overrides config file)",
    )
    parser.add_argument(
        "--write-timeout",
        type=float,
        help="Seconds allowed for each write (overrides config file)",
    )
    parser.add_argument(
        "--dial-timeout",
        type=float,
        help="Seconds allowed for connecting (overrides config file)",
    )
    return parser


def apply_overrides(config: Config, args: argparse.Namespace) -> Config:
    """
    Override configuration values with the command line arguments that were given.

    Returns:
        A validated copy of the configuration
    """
    overrides = {
        "log_level": args.log_level,
        "host": args.host,
        "port": args.port,
        "protocol": args.protocol,
        "use_tls": args.tls,
        "skip_verify": args.skip_verify,
        "server_name": args.server_name,
        "tls_ca_certs": args.tls_ca_certs,
        "tls_certfile": args.tls_certfile,
        "tls_keyfile": args.tls_keyfile,
        "write_timeout": args.write_timeout,
        "dial_timeout": args.dial_timeout,
    }
    values = config.model_dump()
    values.update({key: value for key, value in overrides.items() if value is not None})
    return Config(**values)


def main(argv: Optional[List[str]] = None) -> None:
    """
    Main entry point for the log shipper.
    Parses command-line arguments, sets up logging, and ships the input lines.
    """
    args = build_parser().parse_args(argv)

    try:
        config = apply_overrides(load_config(args.config), args)

        setup_logging(config=config)
        logger = logging.getLogger("ziggiz_courier_dropoff_stash.main")

        if args.config:
            logger.info(f"Loaded configuration from {args.config}")
        else:
            logger.info("Using default or automatically detected configuration")

        logger.info("Starting Ziggiz Courier Dropoff Stash")
        exit_code = run_shipper(config, args.inputs)
    except Exception as e:
        # Setup basic logging if we couldn't load the configuration
        if not logging.root.handlers:
            setup_logging("ERROR")
        logger = logging.getLogger("ziggiz_courier_dropoff_stash.main")
        logger.exception(f"Unexpected error: {e}")
        sys.exit(1)

    sys.exit(exit_code)


if __name__ == "__main__":
    main()
