# -*- coding: utf-8 -*-

# SPDX-License-Identifier: BSL-1.1
# Copyright (c) 2025 Ziggiz Inc.
#
# This file is part of the ziggiz-courier-core-data-processing and is licensed under the
# Business Source License 1.1. You may not use this file except in
# compliance with the License. You may obtain a copy of the License at:
# https://github.com/ziggiz-courier/ziggiz-courier-core-data-processing/blob/main/LICENSE
# Exception types raised by the stash client

# Standard library imports
from typing import Optional


class StashError(Exception):
    """
    Base class for all errors raised by the stash client.
    """


class ConnectError(StashError):
    """
    Raised when a connection to the log endpoint cannot be established.

    Attributes:
        address: The "host:port" address that was being dialed, if known.
    """

    def __init__(self, message: str, address: Optional[str] = None):
        super().__init__(message)
        self.address = address


class TLSHandshakeError(ConnectError):
    """
    Raised when the TLS handshake fails or the server certificate is rejected.

    The underlying TCP socket has already been closed when this is raised.
    """


class ConnectionClosedError(StashError):
    """
    Raised when a closed connection is used.
    """

    def __init__(self, message: str = "use of closed connection"):
        super().__init__(message)
