"""Batched delivery of finished spans to a sink."""

from tracelink.export.exporter import BatchSpanExporter, BatchState, ExporterStats
from tracelink.export.sinks import (
    ConsoleSpanSink,
    ElasticsearchSpanSink,
    InMemorySpanSink,
    OtlpHttpSpanSink,
    SpanSink,
    create_sink,
)

__all__ = [
    "BatchSpanExporter",
    "BatchState",
    "ExporterStats",
    "SpanSink",
    "OtlpHttpSpanSink",
    "ElasticsearchSpanSink",
    "ConsoleSpanSink",
    "InMemorySpanSink",
    "create_sink",
]
