# -*- coding: utf-8 -*-

# SPDX-License-Identifier: BSL-1.1
# Copyright (c) 2025 Ziggiz Inc.
#
# This file is part of the ziggiz-courier-core-data-processing and is licensed under the
# Business Source License 1.1. You may not use this file except in
# compliance with the License. You may obtain a copy of the License at:
# https://github.com/ziggiz-courier/ziggiz-courier-core-data-processing/blob/main/LICENSE
# Dialing the log endpoint over TCP, UDP or TLS

# Standard library imports
import logging
import socket

from typing import Optional

# Local/package imports
from ziggiz_courier_dropoff_stash.config import StashOptions
from ziggiz_courier_dropoff_stash.errors import ConnectError
from ziggiz_courier_dropoff_stash.protocol.cert_verify import CertificateVerifier
from ziggiz_courier_dropoff_stash.protocol.tls import wrap_client_socket

logger = logging.getLogger("ziggiz_courier_dropoff_stash.protocol.dialer")


def format_address(host: str, port: int) -> str:
    """
    Join a host and port into a "host:port" address.

    IPv6 literals are bracketed, e.g. "[::1]:5000".
    """
    if ":" in host and not host.startswith("["):
        return f"[{host}]:{port}"
    return f"{host}:{port}"


def validate_target(host: str, port: int) -> None:
    """
    Check the host and port given to connect().

    Raises:
        ValueError: If the host is empty or the port is not in 1..65535
    """
    if not host:
        raise ValueError("host must not be empty")
    if isinstance(port, bool) or not isinstance(port, int) or not 0 < port < 65536:
        raise ValueError(f"Invalid port: {port!r}. Must be an integer in 1..65535")


def set_keep_alive(sock: socket.socket, interval: Optional[float]) -> None:
    """
    Enable TCP keep-alive probes on a connected socket.

    The idle time before the first probe and the interval between probes are
    both set to the given number of seconds where the platform allows it.

    Args:
        sock: A connected TCP socket
        interval: Keep-alive period in seconds, 0 or None leaves keep-alive off
    """
    if not interval:
        return

    seconds = max(1, int(interval))
    sock.setsockopt(socket.SOL_SOCKET, socket.SO_KEEPALIVE, 1)
    if hasattr(socket, "TCP_KEEPIDLE"):
        sock.setsockopt(socket.IPPROTO_TCP, socket.TCP_KEEPIDLE, seconds)
    elif hasattr(socket, "TCP_KEEPALIVE"):  # macOS
        sock.setsockopt(socket.IPPROTO_TCP, socket.TCP_KEEPALIVE, seconds)
    if hasattr(socket, "TCP_KEEPINTVL"):
        sock.setsockopt(socket.IPPROTO_TCP, socket.TCP_KEEPINTVL, seconds)


def dial_tcp(host: str, port: int, options: StashOptions) -> socket.socket:
    sock = socket.create_connection((host, port), timeout=options.dial_timeout or None)
    try:
        set_keep_alive(sock, options.keep_alive)
    except OSError:
        sock.close()
        raise
    return sock


def dial_udp(host: str, port: int, options: StashOptions) -> socket.socket:
    last_error: Optional[OSError] = None
    for family, socktype, proto, _, sockaddr in socket.getaddrinfo(
        host, port, 0, socket.SOCK_DGRAM
    ):
        sock = socket.socket(family, socktype, proto)
        try:
            sock.settimeout(options.dial_timeout or None)
            sock.connect(sockaddr)
            return sock
        except OSError as e:
            sock.close()
            last_error = e
    if last_error is not None:
        raise last_error
    raise OSError(f"No usable address found for {host}")


def dial(host: str, port: int, options: StashOptions) -> socket.socket:
    """
    Open the raw socket selected by options.protocol.

    Args:
        host: Host name or IP address of the log endpoint
        port: Port of the log endpoint
        options: The resolved option set

    Returns:
        A connected socket

    Raises:
        ConnectError: If resolution or the connection attempt fails
    """
    address = format_address(host, port)
    try:
        if options.protocol == "udp":
            sock = dial_udp(host, port, options)
        else:
            sock = dial_tcp(host, port, options)
    except OSError as e:
        raise ConnectError(
            f"dial {options.protocol} {address}: {e}", address=address
        ) from e

    logger.debug(
        "Dialed log endpoint",
        extra={
            "net.transport": f"ip_{options.protocol}",
            "net.peer.name": host,
            "net.peer.port": port,
        },
    )
    return sock


def open_transport(
    host: str,
    port: int,
    options: StashOptions,
    cert_verifier: Optional[CertificateVerifier] = None,
) -> socket.socket:
    """
    Dial the log endpoint and perform the TLS handshake when requested.

    Returns either a fully usable socket or raises; a socket opened along the
    way is closed before any error propagates.

    Args:
        host: Host name or IP address of the log endpoint
        port: Port of the log endpoint
        options: The resolved option set
        cert_verifier: Optional rules checked against the server certificate

    Returns:
        A connected socket, TLS-wrapped when options.use_tls is set

    Raises:
        ConnectError: If the dial fails
        TLSHandshakeError: If the handshake or certificate verification fails
    """
    sock = dial(host, port, options)
    if options.use_tls:
        sock = wrap_client_socket(
            sock, host, format_address(host, port), options, cert_verifier
        )
    return sock
