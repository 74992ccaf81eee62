# -*- coding: utf-8 -*-

# SPDX-License-Identifier: BSL-1.1
# Copyright (c) 2025 Ziggiz Inc.
#
# This file is part of the ziggiz-courier-core-data-processing and is licensed under the
# Business Source License 1.1. You may not use this file except in
# compliance with the License. You may obtain a copy of the License at:
# https://github.com/ziggiz-courier/ziggiz-courier-core-data-processing/blob/main/LICENSE
# ziggiz_courier_dropoff_stash package
#
# Client-side transport that ships log records to a Logstash-style endpoint
# over TCP, UDP or TLS, framing every record with CR LF and redialing after a
# broken pipe.

# Local/package imports
from ziggiz_courier_dropoff_stash.config import StashOptions
from ziggiz_courier_dropoff_stash.errors import (
    ConnectError,
    ConnectionClosedError,
    StashError,
    TLSHandshakeError,
)
from ziggiz_courier_dropoff_stash.handler import JSONFormatter, StashHandler
from ziggiz_courier_dropoff_stash.protocol.framing import CRLF
from ziggiz_courier_dropoff_stash.stash import ConnectionState, Stash, connect

__all__ = [
    "CRLF",
    "ConnectError",
    "ConnectionClosedError",
    "ConnectionState",
    "JSONFormatter",
    "Stash",
    "StashError",
    "StashHandler",
    "StashOptions",
    "TLSHandshakeError",
    "connect",
]
