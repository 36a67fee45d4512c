"""Span records — one line of a span dump, and helpers to query a dump.

The supervised app is the only writer, so these models are permissive:
unknown keys are kept, camelCase keys from the exporter are accepted.
"""

from __future__ import annotations

from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field

# OpenTelemetry StatusCode.ERROR
_STATUS_ERROR = 2


class SpanRecord(BaseModel):
    """A single span as the app's exporter wrote it."""

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    name: str = ""
    kind: Any = None
    trace_id: str = Field(
        default="", validation_alias=AliasChoices("trace_id", "traceId"),
    )
    span_id: str = Field(
        default="", validation_alias=AliasChoices("span_id", "spanId", "id"),
    )
    parent_span_id: str | None = Field(
        default=None,
        validation_alias=AliasChoices("parent_span_id", "parentSpanId", "parentId"),
    )
    attributes: dict[str, Any] = Field(default_factory=dict)
    resource: dict[str, Any] = Field(default_factory=dict)
    status: dict[str, Any] | None = None
    start_time: Any = Field(
        default=None,
        validation_alias=AliasChoices("start_time", "startTime", "timestamp"),
    )
    end_time: Any = Field(
        default=None, validation_alias=AliasChoices("end_time", "endTime"),
    )

    @property
    def is_root(self) -> bool:
        return not self.parent_span_id

    @property
    def is_error(self) -> bool:
        if not self.status:
            return False
        return self.status.get("code") in (_STATUS_ERROR, "ERROR", "error")

    @property
    def resource_attributes(self) -> dict[str, Any]:
        # Exporters nest them as {"attributes": {...}}; some write them flat
        nested = self.resource.get("attributes")
        if isinstance(nested, dict):
            return nested
        return self.resource


class SpanDump(BaseModel):
    """An ordered snapshot of a span dump."""

    spans: list[SpanRecord] = Field(default_factory=list)

    @property
    def span_count(self) -> int:
        return len(self.spans)

    @property
    def error_count(self) -> int:
        return sum(1 for s in self.spans if s.is_error)

    def by_name(self, name: str) -> list[SpanRecord]:
        return [s for s in self.spans if s.name == name]

    def by_kind(self, kind: Any) -> list[SpanRecord]:
        return [s for s in self.spans if s.kind == kind]

    def roots(self) -> list[SpanRecord]:
        return [s for s in self.spans if s.is_root]

    def children_of(self, span: SpanRecord) -> list[SpanRecord]:
        """Direct children of a span, in dump order."""
        if not span.span_id:
            return []
        return [s for s in self.spans if s.parent_span_id == span.span_id]

    def attribute_values(self, key: str) -> list[Any]:
        """Values of one attribute across all spans that carry it."""
        return [s.attributes[key] for s in self.spans if key in s.attributes]
