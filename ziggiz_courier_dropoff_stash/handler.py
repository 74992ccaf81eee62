# -*- coding: utf-8 -*-

# SPDX-License-Identifier: BSL-1.1
# Copyright (c) 2025 Ziggiz Inc.
#
# This file is part of the ziggiz-courier-core-data-processing and is licensed under the
# Business Source License 1.1. You may not use this file except in
# compliance with the License. You may obtain a copy of the License at:
# https://github.com/ziggiz-courier/ziggiz-courier-core-data-processing/blob/main/LICENSE
# Logging handler and JSON formatter that ship records through a Stash

# Standard library imports
import datetime
import json
import logging

from typing import Any, Dict, Optional

# Local/package imports
from ziggiz_courier_dropoff_stash.config import StashOptions
from ziggiz_courier_dropoff_stash.stash import Stash

PACKAGE_LOGGER_NAME = "ziggiz_courier_dropoff_stash"

# LogRecord attributes that are not user supplied "extra" fields
RESERVED_RECORD_ATTRS = frozenset(
    vars(logging.LogRecord("", logging.INFO, "", 0, "", (), None)).keys()
) | {"message", "asctime"}


class JSONFormatter(logging.Formatter):
    """
    Render a log record as a single JSON object.

    The object holds the record time (ISO 8601, UTC), level, logger name and
    message, any fields passed through ``extra=`` and the formatted exception
    when one is attached. Values that JSON cannot represent are converted
    with str().
    """

    def __init__(self, static_fields: Optional[Dict[str, Any]] = None):
        super().__init__()
        self.static_fields = static_fields or {}

    def format(self, record: logging.LogRecord) -> str:
        document: Dict[str, Any] = dict(self.static_fields)
        document.update(
            {
                "time": datetime.datetime.fromtimestamp(
                    record.created, tz=datetime.timezone.utc
                ).isoformat(),
                "level": record.levelname,
                "logger": record.name,
                "message": record.getMessage(),
            }
        )

        for key, value in vars(record).items():
            if key not in RESERVED_RECORD_ATTRS and not key.startswith("_"):
                document[key] = value

        if record.exc_info:
            document["exception"] = self.formatException(record.exc_info)
        if record.stack_info:
            document["stack"] = self.formatStack(record.stack_info)

        return json.dumps(document, default=str)


class StashHandler(logging.Handler):
    """
    A logging handler that writes each formatted record as one stash frame.

    The handler either wraps an existing Stash (and leaves closing it to the
    caller) or connects its own from host and port (and closes it in close()).
    Records are encoded as UTF-8. The default formatter is JSONFormatter.
    """

    def __init__(
        self,
        stash: Optional[Stash] = None,
        host: Optional[str] = None,
        port: Optional[int] = None,
        options: Optional[StashOptions] = None,
        level: int = logging.NOTSET,
        **overrides,
    ):
        """
        Initialize the handler.

        Args:
            stash: An already connected Stash to write to
            host: Endpoint host, used when stash is None
            port: Endpoint port, used when stash is None
            options: Option set used when connecting
            level: Handler level
            **overrides: StashOptions fields used when connecting

        Raises:
            ValueError: If neither stash nor host and port are given
            ConnectError: If the handler cannot connect
        """
        super().__init__(level)
        if stash is None:
            if host is None or port is None:
                raise ValueError("StashHandler needs either a stash or a host and port")
            stash = Stash.connect(host, port, options, **overrides)
            self.owns_stash = True
        else:
            self.owns_stash = False
        self.stash = stash
        self.setFormatter(JSONFormatter())
        # Records about the connection itself would re-enter write()
        self.addFilter(
            lambda record: not record.name.startswith(PACKAGE_LOGGER_NAME)
        )

    def emit(self, record: logging.LogRecord) -> None:
        try:
            msg = self.format(record)
            self.stash.write(msg.encode("utf-8"))
        except RecursionError:
            raise
        except Exception:
            self.handleError(record)

    def close(self) -> None:
        try:
            if self.owns_stash:
                self.stash.close()
        finally:
            super().close()
