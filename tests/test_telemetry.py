# -*- coding: utf-8 -*-

# SPDX-License-Identifier: BSL-1.1
# Copyright (c) 2025 Ziggiz Inc.
#
# This file is part of the ziggiz-courier-core-data-processing and is licensed under the
# Business Source License 1.1. You may not use this file except in
# compliance with the License. You may obtain a copy of the License at:
# https://github.com/ziggiz-courier/ziggiz-courier-core-data-processing/blob/main/LICENSE
# Tests for the telemetry module and write spans

# Standard library imports
import errno

from unittest.mock import MagicMock, patch

# Third-party imports
import pytest

from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import SimpleSpanProcessor
from opentelemetry.sdk.trace.export.in_memory_span_exporter import InMemorySpanExporter
from opentelemetry.trace import StatusCode

# Local/package imports
from ziggiz_courier_dropoff_stash.config import StashOptions
from ziggiz_courier_dropoff_stash.stash import Stash
from ziggiz_courier_dropoff_stash.telemetry import SERVICE_NAME, configure_tracing


@pytest.fixture
def span_exporter():
    """Route the client's spans to an in-memory exporter."""
    exporter = InMemorySpanExporter()
    provider = TracerProvider()
    provider.add_span_processor(SimpleSpanProcessor(exporter))
    with patch(
        "ziggiz_courier_dropoff_stash.stash.get_tracer",
        return_value=provider.get_tracer(SERVICE_NAME),
    ):
        yield exporter
    provider.shutdown()


class TestConfigureTracing:
    """Tests for installing the tracer provider."""

    @pytest.mark.unit
    def test_configure_tracing(self):
        with patch(
            "ziggiz_courier_dropoff_stash.telemetry.trace.set_tracer_provider"
        ) as mock_set:
            provider = configure_tracing()

        mock_set.assert_called_once_with(provider)
        assert isinstance(provider, TracerProvider)
        assert provider.resource.attributes["service.name"] == SERVICE_NAME
        provider.shutdown()


class TestWriteSpans:
    """Tests for the spans recorded around writes."""

    @pytest.mark.unit
    def test_write_span_attributes(self, span_exporter):
        stash = Stash("localhost", 5000, MagicMock(), StashOptions())

        stash.write(b"hello\n")

        (span,) = span_exporter.get_finished_spans()
        assert span.name == "stash.write"
        assert span.attributes["net.transport"] == "ip_tcp"
        assert span.attributes["net.peer.name"] == "localhost"
        assert span.attributes["net.peer.port"] == 5000
        assert span.attributes["message.length"] == 7

    @pytest.mark.unit
    def test_failed_write_span(self, span_exporter):
        sock = MagicMock()
        sock.sendall.side_effect = BrokenPipeError(errno.EPIPE, "Broken pipe")
        stash = Stash("localhost", 5000, sock, StashOptions())

        with patch(
            "ziggiz_courier_dropoff_stash.stash.open_transport",
            return_value=MagicMock(),
        ):
            with pytest.raises(BrokenPipeError):
                stash.write(b"lost")

        (span,) = span_exporter.get_finished_spans()
        assert span.status.status_code == StatusCode.ERROR
        assert span.attributes["stash.redial"] is True
        assert any(event.name == "exception" for event in span.events)
