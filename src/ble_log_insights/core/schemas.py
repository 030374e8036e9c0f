"""Pydantic schemas for external records.

Input records accept the camelCase shape produced by the ingestion layer
(``eventName``, ``timestampMs``...) as well as snake_case field names, and are
converted into the frozen core dataclasses. Report models serialize back to
camelCase with every field present.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, TypeAdapter, ValidationError, field_validator
from pydantic.alias_generators import to_camel

from .models import MAX_LEVEL, MIN_LEVEL, EventCountBucket, LogEvent, MalformedInputError


class ReportModel(BaseModel):
    """Base for JSON report shapes."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    def to_json_dict(self) -> dict[str, Any]:
        """Return the camelCase, JSON-ready representation."""
        return self.model_dump(by_alias=True, mode="json")


class LogEventRecord(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")

    event_name: str
    level: int = Field(ge=MIN_LEVEL, le=MAX_LEVEL)
    timestamp_ms: int
    stage: str | None = None
    op: str | None = None
    result: str | None = None
    session_id: str | None = None
    link_code: str | None = None
    device_mac: str | None = None
    request_id: str | None = None
    payload: Any = Field(default=None, validation_alias=AliasChoices("payload", "msgJson", "msg"))
    id: str | None = None
    error_code: str | None = None

    @field_validator("id", "request_id", "session_id", "link_code", mode="before")
    @classmethod
    def _ids_as_text(cls, v: Any) -> Any:
        # Numeric ids are common in exported logs.
        if isinstance(v, int) and not isinstance(v, bool):
            return str(v)
        return v

    def to_event(self, *, default_id: str | None = None) -> LogEvent:
        return LogEvent(
            event_name=self.event_name,
            level=self.level,
            timestamp_ms=self.timestamp_ms,
            stage=self.stage,
            op=self.op,
            result=self.result,
            session_id=self.session_id,
            link_code=self.link_code,
            device_mac=self.device_mac,
            request_id=self.request_id,
            payload=self.payload,
            id=self.id if self.id is not None else default_id,
            error_code=self.error_code,
        )


class EventCountRecord(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")

    event_name: str
    level: int = Field(ge=MIN_LEVEL, le=MAX_LEVEL)
    count: int = Field(ge=0)

    def to_bucket(self) -> EventCountBucket:
        return EventCountBucket(event_name=self.event_name, level=self.level, count=self.count)


_EVENTS = TypeAdapter(list[LogEventRecord])
_BUCKETS = TypeAdapter(list[EventCountRecord])


def describe_validation_error(exc: ValidationError, what: str) -> str:
    """Summarize a pydantic error as a single descriptive message."""
    errors = exc.errors()
    first = errors[0]
    loc = tuple(first.get("loc", ()))
    if loc and isinstance(loc[0], int):
        where = f"{what} #{loc[0]}"
        loc = loc[1:]
    else:
        where = what
    field = ".".join(str(p) for p in loc) or "record"
    more = f" (+{len(errors) - 1} more)" if len(errors) > 1 else ""
    return f"Malformed {where}: {field}: {first['msg']}{more}"


def parse_events(records: Iterable[Mapping[str, Any]]) -> list[LogEvent]:
    """Validate raw event records and convert them to LogEvent.

    Events without an explicit id get their input position as id.
    """
    try:
        parsed = _EVENTS.validate_python(list(records))
    except ValidationError as exc:
        raise MalformedInputError(describe_validation_error(exc, "event")) from exc
    return [r.to_event(default_id=str(i)) for i, r in enumerate(parsed)]


def parse_buckets(records: Iterable[Mapping[str, Any]]) -> list[EventCountBucket]:
    """Validate raw (eventName, level, count) records."""
    try:
        parsed = _BUCKETS.validate_python(list(records))
    except ValidationError as exc:
        raise MalformedInputError(describe_validation_error(exc, "bucket")) from exc
    return [r.to_bucket() for r in parsed]
