from unittest.mock import Mock

import pytest
from fastapi.testclient import TestClient
from opentelemetry.sdk.trace.export import SpanExportResult

from prom_bridge import server
from prom_bridge.client import Client, HttpxTransport
from prom_bridge.vars import PROMETHEUS_URL


def test_lifespan_creates_client_from_env():
    with TestClient(server.app) as client:
        prometheus_client = server.app.state.prometheus_client
        assert isinstance(prometheus_client, Client)
        assert isinstance(prometheus_client.transport, HttpxTransport)
        assert prometheus_client.config.base_url == PROMETHEUS_URL

        assert client.get("/metrics").status_code == 200

    assert prometheus_client.transport.client.is_closed


def _span(event_type=None):
    span = Mock()
    span.attributes = {"asgi.event.type": event_type} if event_type else {}
    return span


class TestStreamedBodySpanFilter:
    @pytest.fixture
    def exporter(self):
        exporter = Mock()
        exporter.export.return_value = SpanExportResult.SUCCESS
        return exporter

    def test_drops_body_chunk_spans(self, exporter):
        span_filter = server.StreamedBodySpanFilter(exporter)
        request_span = _span()
        response_start = _span("http.response.start")

        result = span_filter.export(
            [
                _span("http.request"),
                request_span,
                response_start,
                _span("http.response.body"),
                _span("http.response.body"),
            ]
        )

        assert result == SpanExportResult.SUCCESS
        exporter.export.assert_called_once_with([request_span, response_start])

    def test_skips_batches_of_only_body_chunks(self, exporter):
        span_filter = server.StreamedBodySpanFilter(exporter)

        result = span_filter.export([_span("http.response.body"), _span("http.request")])

        assert result == SpanExportResult.SUCCESS
        exporter.export.assert_not_called()

    def test_event_types_can_be_narrowed(self, exporter):
        span_filter = server.StreamedBodySpanFilter(
            exporter, event_types={"http.response.body"}
        )
        receive = _span("http.request")

        span_filter.export([receive, _span("http.response.body")])

        exporter.export.assert_called_once_with([receive])

    def test_spans_without_attributes_are_kept(self, exporter):
        span_filter = server.StreamedBodySpanFilter(exporter)
        span = Mock()
        span.attributes = None

        span_filter.export([span])

        exporter.export.assert_called_once_with([span])

    def test_delegates_shutdown_and_flush(self, exporter):
        span_filter = server.StreamedBodySpanFilter(exporter)

        span_filter.force_flush(1000)
        span_filter.shutdown()

        exporter.force_flush.assert_called_once_with(1000)
        exporter.shutdown.assert_called_once_with()
