# -*- coding: utf-8 -*-

# SPDX-License-Identifier: BSL-1.1
# Copyright (c) 2025 Ziggiz Inc.
#
# This file is part of the ziggiz-courier-core-data-processing and is licensed under the
# Business Source License 1.1. You may not use this file except in
# compliance with the License. You may obtain a copy of the License at:
# https://github.com/ziggiz-courier/ziggiz-courier-core-data-processing/blob/main/LICENSE
# Pytest configuration file

# Standard library imports
import logging
import socket
import ssl
import threading
import time

from pathlib import Path
from typing import List, Optional

# Third-party imports
import pytest

CERTS_DIR = Path(__file__).parent / "certs"
CRLF = b"\r\n"


# Define test categories
def pytest_configure(config):
    """Configure pytest with custom markers."""
    config.addinivalue_line("markers", "unit: mark a test as a unit test")
    config.addinivalue_line(
        "markers", "integration: mark a test as an integration test"
    )


@pytest.fixture(autouse=True)
def reset_logging():
    """Reset logging configuration after each test."""
    yield
    # Reset root logger after each test
    root_logger = logging.getLogger()
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)
    root_logger.setLevel(logging.WARNING)  # Default level


class FrameSink:
    """
    A loopback TCP (optionally TLS) listener that records everything it receives.

    Each accepted connection gets its own buffer, read by its own thread.
    """

    def __init__(self, ssl_context: Optional[ssl.SSLContext] = None):
        self.ssl_context = ssl_context
        self._listener = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        self._listener.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        self._listener.bind(("127.0.0.1", 0))
        self._listener.listen(16)
        self._listener.settimeout(0.1)
        self.host, self.port = self._listener.getsockname()
        self.connections: List[bytearray] = []
        self.peer_certs: List[dict] = []
        self.handshake_errors: List[Exception] = []
        self._lock = threading.Lock()
        self._stop = threading.Event()
        self._threads: List[threading.Thread] = []
        self._accept_thread = threading.Thread(target=self._accept_loop, daemon=True)

    def start(self) -> "FrameSink":
        self._accept_thread.start()
        return self

    def _accept_loop(self) -> None:
        while not self._stop.is_set():
            try:
                conn, _ = self._listener.accept()
            except socket.timeout:
                continue
            except OSError:
                break
            thread = threading.Thread(target=self._serve, args=(conn,), daemon=True)
            thread.start()
            self._threads.append(thread)

    def _serve(self, conn: socket.socket) -> None:
        if self.ssl_context is not None:
            conn.settimeout(5)
            try:
                conn = self.ssl_context.wrap_socket(conn, server_side=True)
            except (ssl.SSLError, OSError) as e:
                self.handshake_errors.append(e)
                conn.close()
                return
            self.peer_certs.append(conn.getpeercert())

        buffer = bytearray()
        with self._lock:
            self.connections.append(buffer)

        conn.settimeout(0.1)
        with conn:
            while not self._stop.is_set():
                try:
                    chunk = conn.recv(65536)
                except socket.timeout:
                    continue
                except OSError:
                    break
                if not chunk:
                    break
                with self._lock:
                    buffer.extend(chunk)

    @property
    def data(self) -> bytes:
        with self._lock:
            return b"".join(bytes(buffer) for buffer in self.connections)

    def wait_for_bytes(self, count: int, timeout: float = 5.0) -> bytes:
        deadline = time.monotonic() + timeout
        while time.monotonic() < deadline:
            data = self.data
            if len(data) >= count:
                return data
            time.sleep(0.01)
        return self.data

    def wait_for_connections(self, count: int, timeout: float = 5.0) -> int:
        deadline = time.monotonic() + timeout
        while time.monotonic() < deadline:
            with self._lock:
                if len(self.connections) >= count:
                    break
            time.sleep(0.01)
        with self._lock:
            return len(self.connections)

    def wait_for_frames(self, count: int, timeout: float = 5.0) -> List[bytes]:
        deadline = time.monotonic() + timeout
        while time.monotonic() < deadline:
            frames = self.frames()
            if len(frames) >= count:
                return frames
            time.sleep(0.01)
        return self.frames()

    def frames(self, data: Optional[bytes] = None) -> List[bytes]:
        """Split the received stream on CR LF, dropping the unterminated tail."""
        data = self.data if data is None else data
        return data.split(CRLF)[:-1]

    def close(self) -> None:
        self._stop.set()
        self._listener.close()
        self._accept_thread.join(timeout=2)
        for thread in self._threads:
            thread.join(timeout=2)


@pytest.fixture
def certs_dir() -> Path:
    """Directory holding the test CA, server and client certificates."""
    return CERTS_DIR


@pytest.fixture
def tcp_sink():
    """A plain TCP listener on 127.0.0.1."""
    sink = FrameSink().start()
    yield sink
    sink.close()


@pytest.fixture
def server_tls_context():
    """Server context using the test certificate for localhost/127.0.0.1."""
    context = ssl.create_default_context(ssl.Purpose.CLIENT_AUTH)
    context.load_cert_chain(
        certfile=str(CERTS_DIR / "server.crt"), keyfile=str(CERTS_DIR / "server.key")
    )
    return context


@pytest.fixture
def tls_sink(server_tls_context):
    """A TLS listener on 127.0.0.1 that does not ask for client certificates."""
    sink = FrameSink(ssl_context=server_tls_context).start()
    yield sink
    sink.close()


@pytest.fixture
def mutual_tls_sink(server_tls_context):
    """A TLS listener on 127.0.0.1 that requires a client certificate."""
    server_tls_context.verify_mode = ssl.CERT_REQUIRED
    server_tls_context.load_verify_locations(cafile=str(CERTS_DIR / "ca.crt"))
    sink = FrameSink(ssl_context=server_tls_context).start()
    yield sink
    sink.close()


@pytest.fixture
def refused_port():
    """A port on 127.0.0.1 that is bound but not listening."""
    sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    sock.bind(("127.0.0.1", 0))
    yield sock.getsockname()[1]
    sock.close()
