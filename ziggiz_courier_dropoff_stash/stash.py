# -*- coding: utf-8 -*-

# SPDX-License-Identifier: BSL-1.1
# Copyright (c) 2025 Ziggiz Inc.
#
# This file is part of the ziggiz-courier-core-data-processing and is licensed under the
# Business Source License 1.1. You may not use this file except in
# compliance with the License. You may obtain a copy of the License at:
# https://github.com/ziggiz-courier/ziggiz-courier-core-data-processing/blob/main/LICENSE
# Stash client: a framed, self-repairing connection to a log endpoint

# Standard library imports
import errno
import logging
import socket
import ssl
import threading

from enum import Enum
from typing import Optional

# Third-party imports
from opentelemetry.trace import Status, StatusCode

# Local/package imports
from ziggiz_courier_dropoff_stash.config import StashOptions
from ziggiz_courier_dropoff_stash.errors import ConnectError, ConnectionClosedError
from ziggiz_courier_dropoff_stash.protocol.cert_verify import (
    CertificateVerifier,
    create_verifier_from_config,
)
from ziggiz_courier_dropoff_stash.protocol.dialer import (
    format_address,
    open_transport,
    validate_target,
)
from ziggiz_courier_dropoff_stash.protocol.framing import frame_message
from ziggiz_courier_dropoff_stash.telemetry import get_tracer

BROKEN_PIPE_ERRNOS = frozenset({errno.EPIPE, errno.ESHUTDOWN})


class ConnectionState(Enum):
    """
    Lifecycle of a Stash connection.

    Values:
        CONNECTED: The socket is usable.
        DEGRADED: A broken pipe was seen and the redial failed; writes keep
            failing until a later redial or reconnect() succeeds.
        CLOSED: close() was called. Terminal.
    """

    CONNECTED = "connected"
    DEGRADED = "degraded"
    CLOSED = "closed"


def is_write_timeout(error: BaseException) -> bool:
    """
    Tell whether a write error is an expired write deadline.

    sendall() does not report how much of the frame went out before the
    deadline, so the stream may end in a partial frame.
    """
    return isinstance(error, (socket.timeout, TimeoutError))


def is_broken_pipe(error: BaseException) -> bool:
    """
    Tell whether a write error means the peer is gone for good.

    Only these errors trigger an immediate redial. Resets and refusals are
    reported to the caller without touching the connection; timeouts are
    handled by is_write_timeout().
    """
    if isinstance(error, (BrokenPipeError, ssl.SSLEOFError, ssl.SSLZeroReturnError)):
        return True
    return isinstance(error, OSError) and error.errno in BROKEN_PIPE_ERRNOS


class Stash:
    """
    A connection to a Logstash-style endpoint that frames every write with CR LF.

    Instances are created by Stash.connect() (or the module level connect()),
    which only returns fully established connections. write() is safe to call
    from several threads: each frame is sent whole under a per-connection lock.

    When a write fails with a broken pipe the connection is redialed once with
    the same address and options, and the original error is still raised: the
    payload of the failed call is not resent.
    """

    def __init__(
        self,
        host: str,
        port: int,
        sock: socket.socket,
        options: StashOptions,
        cert_verifier: Optional[CertificateVerifier] = None,
    ):
        self.logger = logging.getLogger("ziggiz_courier_dropoff_stash.stash")
        self.host = host
        self.port = port
        self.address = format_address(host, port)
        self.options = options
        self.cert_verifier = cert_verifier
        self.state = ConnectionState.CONNECTED
        self._sock = sock
        self._lock = threading.Lock()
        # Set when a write timed out and the stream may hold a partial frame
        self._needs_redial = False

    @classmethod
    def connect(
        cls,
        host: str,
        port: int,
        options: Optional[StashOptions] = None,
        **overrides,
    ) -> "Stash":
        """
        Connect to a log endpoint.

        Args:
            host: Host name or IP address of the endpoint
            port: Port of the endpoint
            options: Option set, defaults to StashOptions()
            **overrides: StashOptions fields to set on top of options,
                e.g. use_tls=True, write_timeout=5

        Returns:
            A connected Stash

        Raises:
            ValueError: If host, port or the options are invalid
            ConnectError: If the endpoint cannot be reached
            TLSHandshakeError: If the TLS handshake fails
        """
        validate_target(host, port)
        options = (options or StashOptions()).with_overrides(**overrides)

        cert_verifier = None
        if options.tls_cert_rules:
            cert_verifier = create_verifier_from_config(options.tls_cert_rules)

        sock = open_transport(host, port, options, cert_verifier)
        stash = cls(host, port, sock, options, cert_verifier)
        stash.logger.info(
            f"Connected to log endpoint {stash.address}",
            extra=stash._log_context(),
        )
        return stash

    @property
    def closed(self) -> bool:
        return self.state is ConnectionState.CLOSED

    def _log_context(self) -> dict:
        return {
            "net.transport": f"ip_{self.options.protocol}",
            "net.peer.name": self.host,
            "net.peer.port": self.port,
            "tls": self.options.use_tls,
        }

    def write(self, data: bytes) -> int:
        """
        Frame a payload and send it to the endpoint.

        Leading and trailing CR/LF bytes are stripped from the payload and a
        single CR LF is appended. When write_timeout is set, the whole frame
        must be sent within that many seconds from this call.

        A write that times out may leave part of its frame on the stream.
        The connection is then redialed before the next frame is sent, so
        the partial frame is never glued to the next record.

        Args:
            data: A bytes-like payload, may be empty

        Returns:
            The number of bytes sent: the trimmed payload length plus 2

        Raises:
            TypeError: If data is not bytes-like
            ConnectionClosedError: If the connection was closed
            ConnectError: If an earlier write timed out and the connection
                could not be redialed; nothing was sent
            OSError: The error raised by the socket. On a broken pipe the
                connection has been redialed for later writes, but this
                payload was not delivered.
        """
        frame = frame_message(data)

        tracer = get_tracer()
        with tracer.start_as_current_span("stash.write") as span:
            span.set_attribute("net.transport", f"ip_{self.options.protocol}")
            span.set_attribute("net.peer.name", self.host)
            span.set_attribute("net.peer.port", self.port)
            span.set_attribute("message.length", len(frame))

            with self._lock:
                if self.state is ConnectionState.CLOSED:
                    raise ConnectionClosedError()

                if self._needs_redial:
                    span.set_attribute("stash.redial", True)
                    if not self._redial():
                        raise ConnectError(
                            f"connection to {self.address} was interrupted mid-frame "
                            "and could not be redialed",
                            address=self.address,
                        )

                try:
                    self._sock.settimeout(self.options.write_timeout or None)
                    self._sock.sendall(frame)
                except OSError as e:
                    span.set_status(Status(StatusCode.ERROR, str(e)))
                    if is_broken_pipe(e):
                        self.logger.warning(
                            f"Broken pipe writing to {self.address}, redialing",
                            extra=self._log_context(),
                        )
                        span.set_attribute("stash.redial", True)
                        self._redial()
                    elif is_write_timeout(e):
                        self.logger.warning(
                            f"Write to {self.address} timed out, "
                            "redialing before the next write",
                            extra=self._log_context(),
                        )
                        self._needs_redial = True
                    raise

        return len(frame)

    def _redial(self) -> bool:
        """
        Replace the socket with a fresh connection. Caller must hold the lock.

        A failed redial is logged and leaves the connection DEGRADED with the
        old socket in place.

        Returns:
            True if the new connection was installed
        """
        try:
            new_sock = open_transport(
                self.host, self.port, self.options, self.cert_verifier
            )
        except ConnectError as e:
            self.state = ConnectionState.DEGRADED
            self.logger.error(
                f"Failed to redial {self.address}: {e}",
                extra=self._log_context(),
            )
            return False

        self._swap(new_sock)
        self.logger.info(f"Redialed {self.address}", extra=self._log_context())
        return True

    def _swap(self, new_sock: socket.socket) -> None:
        old_sock, self._sock = self._sock, new_sock
        self.state = ConnectionState.CONNECTED
        self._needs_redial = False
        try:
            old_sock.close()
        except OSError as e:
            self.logger.debug(f"Error closing replaced socket: {e}")

    def reconnect(self) -> None:
        """
        Dial a new connection with the stored address and options.

        Used to bring a DEGRADED connection back without waiting for the next
        failing write.

        Raises:
            ConnectionClosedError: If the connection was closed
            ConnectError: If the endpoint cannot be reached; the current
                socket stays in place
        """
        with self._lock:
            if self.state is ConnectionState.CLOSED:
                raise ConnectionClosedError()
            new_sock = open_transport(
                self.host, self.port, self.options, self.cert_verifier
            )
            self._swap(new_sock)
        self.logger.info(f"Reconnected to {self.address}", extra=self._log_context())

    def close(self) -> None:
        """
        Close the connection. Closing an already closed connection does nothing.
        """
        with self._lock:
            if self.state is ConnectionState.CLOSED:
                return
            self.state = ConnectionState.CLOSED
            self._sock.close()
        self.logger.info(
            f"Closed connection to {self.address}", extra=self._log_context()
        )

    def __enter__(self) -> "Stash":
        return self

    def __exit__(self, exc_type, exc_value, traceback) -> None:
        self.close()

    def __repr__(self) -> str:
        return (
            f"Stash(address='{self.address}', protocol='{self.options.protocol}', "
            f"tls={self.options.use_tls}, state={self.state.value})"
        )


def connect(
    host: str,
    port: int,
    options: Optional[StashOptions] = None,
    **overrides,
) -> Stash:
    """
    Connect to a log endpoint. See Stash.connect().
    """
    return Stash.connect(host, port, options, **overrides)
