"""
Tests for trace_operation using an in-memory span exporter.
"""

from unittest.mock import patch
from uuid import uuid4

import pytest
from opentelemetry import trace
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import SimpleSpanProcessor
from opentelemetry.sdk.trace.export.in_memory_span_exporter import InMemorySpanExporter
from opentelemetry.trace import StatusCode

from chatapp.observability import tracing
from chatapp.observability.tracing import add_span_attributes, trace_operation


@pytest.fixture
def exporter():
    exporter = InMemorySpanExporter()
    provider = TracerProvider()
    provider.add_span_processor(SimpleSpanProcessor(exporter))
    with patch.object(tracing, "get_tracer", return_value=provider.get_tracer("test")):
        yield exporter


def test_span_is_current_and_carries_attributes(exporter: InMemorySpanExporter):
    conversation_id = uuid4()

    with trace_operation("send_message", conversation_id=conversation_id, model=None) as span:
        assert trace.get_current_span() is span
        span.set_attribute("tokens", 12)

    (finished,) = exporter.get_finished_spans()
    assert finished.name == "send_message"
    assert finished.attributes["conversation_id"] == str(conversation_id)
    assert finished.attributes["tokens"] == 12
    assert "model" not in finished.attributes


def test_exception_marks_span_errored(exporter: InMemorySpanExporter):
    with pytest.raises(RuntimeError):
        with trace_operation("send_message"):
            raise RuntimeError("generator down")

    (finished,) = exporter.get_finished_spans()
    assert finished.status.status_code == StatusCode.ERROR
    assert finished.events[0].name == "exception"


def test_add_span_attributes_stringifies(exporter: InMemorySpanExporter):
    with trace_operation("op") as span:
        add_span_attributes(span, ids=[1, 2], flag=True)

    attributes = exporter.get_finished_spans()[0].attributes
    assert attributes["ids"] == "[1, 2]"
    assert attributes["flag"] is True
