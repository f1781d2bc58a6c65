"""parse_dates: normalize date fields using the schema's accepted formats."""

from datetime import UTC, date, datetime
from typing import Any, Literal

from pydantic import Field, field_validator

from ingestline.contracts.errors import DateParseError
from ingestline.contracts.record import Record
from ingestline.core.schema import format_utc
from ingestline.plugins.base import BaseCommand
from ingestline.plugins.config_base import CommandConfig


class ParseDatesConfig(CommandConfig):
    """Configuration for parse_dates.

    Example YAML:
        - parse_dates:
            fields: [last_modified, created]
            on_unparseable: drop
    """

    fields: list[str] = Field(..., description="Fields whose values are dates")
    on_unparseable: Literal["fail", "drop", "keep"] = Field(
        default="fail",
        description="fail: per-input DateParseError; drop: discard the value; keep: leave it unchanged",
    )

    @field_validator("fields")
    @classmethod
    def validate_fields_not_empty(cls, v: list[str]) -> list[str]:
        if not v:
            raise ValueError("fields cannot be empty")
        return v


class ParseDates(BaseCommand):
    """Rewrite date values as ISO-8601 UTC strings ("2024-05-01T10:00:00Z")."""

    name = "parse_dates"
    config_class = ParseDatesConfig

    def _normalize(self, field_name: str, value: Any) -> str | None:
        if isinstance(value, datetime):
            parsed: datetime | None = value if value.tzinfo is not None else value.replace(tzinfo=UTC)
        elif isinstance(value, date):
            parsed = datetime(value.year, value.month, value.day, tzinfo=UTC)
        elif isinstance(value, str):
            parsed = self.context.schema.parse_date(value)
        else:
            parsed = None

        if parsed is not None:
            return format_utc(parsed)
        if self.config.on_unparseable == "fail":
            raise DateParseError(f"{self.path}: value {value!r} of field {field_name!r} matches no accepted date format")
        return None

    def process(self, record: Record) -> bool:
        for field_name in self.config.fields:
            if field_name not in record:
                continue
            normalized: list[Any] = []
            for value in record.get(field_name):
                result = self._normalize(field_name, value)
                if result is not None:
                    normalized.append(result)
                elif self.config.on_unparseable == "keep":
                    normalized.append(value)
            record.replace(field_name, normalized)
        return self.forward(record)
