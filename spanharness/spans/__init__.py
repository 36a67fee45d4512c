"""Span dumps — the file-backed record of what a supervised app traced."""

from spanharness.spans.reader import SpanDumpReader
from spanharness.spans.records import SpanDump, SpanRecord

__all__ = ["SpanDump", "SpanDumpReader", "SpanRecord"]
