"""Field manipulation commands: set_values, add_values, remove_fields, rename_field."""

import re
from typing import Any

from pydantic import Field, model_validator

from ingestline.contracts.record import ATTACHMENT_PREFIX, Record
from ingestline.plugins.base import BaseCommand
from ingestline.plugins.config_base import CommandConfig

# A value of exactly "{{field}}" copies that field's current values
_FIELD_REFERENCE = re.compile(r"^\{\{\s*([A-Za-z_][\w.\-]*)\s*\}\}$")


def _resolve_values(record: Record, value: Any) -> list[Any]:
    """Expand a configured value into the list of values to write."""
    raw = value if isinstance(value, list) else [value]
    resolved: list[Any] = []
    for item in raw:
        match = _FIELD_REFERENCE.match(item) if isinstance(item, str) else None
        if match:
            resolved.extend(record.get(match.group(1)))
        else:
            resolved.append(item)
    return resolved


class ValuesConfig(CommandConfig):
    """Configuration for set_values and add_values.

    Example YAML:
        - set_values:
            values:
              source: crawler
              title: "{{resourcename}}"
              tags: [a, b]
    """

    values: dict[str, Any] = Field(..., description="Field name to value (or list of values)")


class SetValues(BaseCommand):
    """Replace fields with configured values."""

    name = "set_values"
    config_class = ValuesConfig

    def process(self, record: Record) -> bool:
        for field_name, value in self.config.values.items():
            record.replace(field_name, _resolve_values(record, value))
        return self.forward(record)


class AddValues(BaseCommand):
    """Append configured values to fields, creating them if needed."""

    name = "add_values"
    config_class = ValuesConfig

    def process(self, record: Record) -> bool:
        for field_name, value in self.config.values.items():
            record.put_all(field_name, _resolve_values(record, value))
        return self.forward(record)


class RemoveFieldsConfig(CommandConfig):
    """Exactly one of fields (blacklist) or keep_only (whitelist)."""

    fields: list[str] | None = None
    keep_only: list[str] | None = None

    @model_validator(mode="after")
    def validate_exactly_one_mode(self) -> "RemoveFieldsConfig":
        if (self.fields is None) == (self.keep_only is None):
            raise ValueError("remove_fields requires exactly one of 'fields' or 'keep_only'")
        return self


class RemoveFields(BaseCommand):
    """Remove listed fields, or everything except a whitelist.

    Attachment fields survive keep_only mode so extraction can still run
    later in the chain.
    """

    name = "remove_fields"
    config_class = RemoveFieldsConfig

    def process(self, record: Record) -> bool:
        if self.config.fields is not None:
            for field_name in self.config.fields:
                record.remove(field_name)
        else:
            keep = set(self.config.keep_only)
            for field_name in record.fields():
                if field_name not in keep and not field_name.startswith(ATTACHMENT_PREFIX):
                    record.remove(field_name)
        return self.forward(record)


class RenameFieldConfig(CommandConfig):
    source: str = Field(..., min_length=1)
    target: str = Field(..., min_length=1)


class RenameField(BaseCommand):
    """Move a field's values to a new name, replacing any existing target.

    A missing source leaves the record untouched.
    """

    name = "rename_field"
    config_class = RenameFieldConfig

    def process(self, record: Record) -> bool:
        if self.config.source in record:
            record.replace(self.config.target, record.remove(self.config.source))
        return self.forward(record)
