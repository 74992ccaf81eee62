# -*- coding: utf-8 -*-

# SPDX-License-Identifier: BSL-1.1
# Copyright (c) 2025 Ziggiz Inc.
#
# This file is part of the ziggiz-courier-core-data-processing and is licensed under the
# Business Source License 1.1. You may not use this file except in
# compliance with the License. You may obtain a copy of the License at:
# https://github.com/ziggiz-courier/ziggiz-courier-core-data-processing/blob/main/LICENSE
# TLS client support for shipping logs to a TLS-enabled endpoint

# Standard library imports
import logging
import socket
import ssl

from typing import Optional

# Local/package imports
from ziggiz_courier_dropoff_stash.config import StashOptions
from ziggiz_courier_dropoff_stash.errors import TLSHandshakeError
from ziggiz_courier_dropoff_stash.protocol.cert_verify import CertificateVerifier

logger = logging.getLogger("ziggiz_courier_dropoff_stash.protocol.tls")


class TLSContextBuilder:
    """
    Helper class to build SSL contexts for TLS connections.

    This class provides methods to create and configure client SSL contexts
    with appropriate security settings for shipping logs over TLS.
    """

    @staticmethod
    def create_client_context(
        ca_certs: Optional[str] = None,
        certfile: Optional[str] = None,
        keyfile: Optional[str] = None,
        skip_verify: bool = False,
        min_version: ssl.TLSVersion = ssl.TLSVersion.TLSv1_2,
        ciphers: Optional[str] = None,
    ) -> ssl.SSLContext:
        """
        Create an SSL context for the client.

        Args:
            ca_certs: Path to the CA certificates used to verify the server
                      (system defaults are used when None)
            certfile: Path to the client certificate file for mutual TLS
            keyfile: Path to the client private key file for mutual TLS
            skip_verify: Disable server certificate and hostname verification
            min_version: Minimum TLS version to negotiate (default: TLS 1.2)
            ciphers: Optional cipher string to restrict allowed ciphers

        Returns:
            The configured SSL context
        """
        context = ssl.create_default_context(ssl.Purpose.SERVER_AUTH, cafile=ca_certs)

        context.minimum_version = min_version

        if ciphers:
            context.set_ciphers(ciphers)

        # Present a client certificate when the server requires mutual TLS
        if certfile:
            context.load_cert_chain(certfile=certfile, keyfile=keyfile)

        if skip_verify:
            # check_hostname must be cleared before verify_mode can be relaxed
            context.check_hostname = False
            context.verify_mode = ssl.CERT_NONE

        return context


def resolve_client_context(options: StashOptions) -> ssl.SSLContext:
    """
    Return the explicit TLS context from options or synthesize a default one.

    Args:
        options: The resolved option set

    Returns:
        The SSL context to use for the handshake
    """
    if options.tls_context is not None:
        return options.tls_context
    return TLSContextBuilder.create_client_context(
        ca_certs=options.tls_ca_certs,
        certfile=options.tls_certfile,
        keyfile=options.tls_keyfile,
        skip_verify=options.skip_verify,
        min_version=options.tls_version,
        ciphers=options.tls_ciphers,
    )


def resolve_server_name(host: str, options: StashOptions) -> str:
    """Return the configured server name, or the target host when none is set."""
    if options.server_name:
        return options.server_name
    return host.strip("[]")


def wrap_client_socket(
    sock: socket.socket,
    host: str,
    address: str,
    options: StashOptions,
    cert_verifier: Optional[CertificateVerifier] = None,
) -> ssl.SSLSocket:
    """
    Run a client TLS handshake over an already connected socket.

    Args:
        sock: The connected TCP socket
        host: The target host, used as server name when none is configured
        address: The "host:port" address, for error reporting
        options: The resolved option set
        cert_verifier: Optional rules checked against the server certificate

    Returns:
        The TLS socket, handshake completed

    Raises:
        TLSHandshakeError: If the handshake or certificate verification fails.
            The raw socket is closed before the error is raised.
    """
    server_name = resolve_server_name(host, options)
    tls_sock: Optional[ssl.SSLSocket] = None

    try:
        context = resolve_client_context(options)
        tls_sock = context.wrap_socket(
            sock, server_hostname=server_name, do_handshake_on_connect=False
        )
        tls_sock.settimeout(options.dial_timeout or None)
        tls_sock.do_handshake()
    except (ssl.SSLError, ssl.CertificateError, OSError) as e:
        if tls_sock is not None:
            tls_sock.close()
        sock.close()
        raise TLSHandshakeError(
            f"tls handshake with {address} failed: {e}", address=address
        ) from e

    if cert_verifier and not cert_verifier.verify_certificate(tls_sock.getpeercert()):
        tls_sock.close()
        raise TLSHandshakeError(
            f"server certificate of {address} failed attribute verification",
            address=address,
        )

    cipher = tls_sock.cipher()
    logger.info(
        "TLS connection established",
        extra={
            "net.peer.address": address,
            "server_name": server_name,
            "version": tls_sock.version(),
            "cipher": cipher[0] if cipher else None,
        },
    )
    return tls_sock
