# -*- coding: utf-8 -*-

# SPDX-License-Identifier: BSL-1.1
# Copyright (c) 2025 Ziggiz Inc.
#
# This file is part of the ziggiz-courier-core-data-processing and is licensed under the
# Business Source License 1.1. You may not use this file except in
# compliance with the License. You may obtain a copy of the License at:
# https://github.com/ziggiz-courier/ziggiz-courier-core-data-processing/blob/main/LICENSE
# CR LF framing for outbound log messages

# Constants
CRLF = b"\r\n"


def trim_delimiter(data: bytes) -> bytes:
    """
    Remove every carriage return and line feed from both ends of a payload.

    Args:
        data: The raw payload

    Returns:
        The payload without leading or trailing CR/LF bytes
    """
    return memoryview(data).tobytes().strip(CRLF)


def frame_message(data: bytes) -> bytes:
    """
    Build the on-the-wire frame for a payload.

    The payload is trimmed first so that a caller passing an already
    terminated record (e.g. JSON followed by a newline) still produces
    exactly one delimiter on the wire.

    Args:
        data: A bytes-like payload, may be empty

    Returns:
        The trimmed payload followed by CR LF

    Raises:
        TypeError: If data is a str (the encoding is the caller's choice)
    """
    if isinstance(data, str):
        raise TypeError("payload must be bytes-like, not str")
    return trim_delimiter(data) + CRLF
