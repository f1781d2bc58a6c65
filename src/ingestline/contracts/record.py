"""Record and Document: the data flowing through the command chain.

A Record is a mutable multimap from field name to a list of values. It is
owned by exactly one command at a time and mutated in place as it moves down
the chain. A missing field is distinct from a field with an empty value list.

A Document is the immutable snapshot a terminal command hands to the
DocumentLoader. Attachment fields (raw stream, MIME hints) never make it
into a Document.
"""

from __future__ import annotations

import copy
import io
from collections.abc import Iterable, Iterator, Mapping
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any

from ingestline.contracts.errors import MissingIdentityError

# Attachment fields carry the raw input alongside the record. They are
# consumed by extract_content and stripped from documents.
ATTACHMENT_PREFIX = "_attachment"
ATTACHMENT_BODY = "_attachment_body"
ATTACHMENT_NAME = "_attachment_name"
ATTACHMENT_MIME_TYPE = "_attachment_mimetype"
ATTACHMENT_CHARSET = "_attachment_charset"

# Field storing the input location explicitly, independent of the unique key
FILE_URI_FIELD = "file_uri"


def _as_values(value: Any) -> list[Any]:
    """Normalize a single value or an iterable of values into a list."""
    if isinstance(value, list | tuple):
        return list(value)
    return [value]


def _rewindable(stream: Any) -> Any:
    seekable = getattr(stream, "seekable", None)
    if seekable is None or seekable():
        return stream
    return io.BytesIO(stream.read())


class Record:
    """Mutable named-field multimap.

    Example:
        record = Record({"id": "/data/a.txt"})
        record.put("tags", "x")
        record["tags"].append("y")
        record.get("tags")  # ["x", "y"]
        record.get("missing")  # []
        "missing" in record  # False
    """

    __slots__ = ("_fields",)

    def __init__(self, fields: Mapping[str, Any] | None = None) -> None:
        self._fields: dict[str, list[Any]] = {}
        if fields is not None:
            for name, value in fields.items():
                self._fields[name] = _as_values(value)

    def get(self, name: str) -> list[Any]:
        """Return the live value list for a field, or a new empty list if missing."""
        if name in self._fields:
            return self._fields[name]
        return []

    def first(self, name: str, default: Any = None) -> Any:
        """Return the first value of a field, or default if missing or empty."""
        values = self._fields.get(name)
        if not values:
            return default
        return values[0]

    def put(self, name: str, value: Any) -> None:
        """Append a single value to a field, creating the field if needed."""
        self._fields.setdefault(name, []).append(value)

    def put_all(self, name: str, values: Iterable[Any]) -> None:
        """Append every value to a field, creating the field if needed."""
        self._fields.setdefault(name, []).extend(values)

    def replace(self, name: str, value: Any) -> None:
        """Replace all values of a field with a single value (or list of values)."""
        self._fields[name] = _as_values(value)

    def remove(self, name: str) -> list[Any]:
        """Remove a field entirely, returning its former values (empty if missing)."""
        return self._fields.pop(name, [])

    def remove_value(self, name: str, value: Any) -> bool:
        """Remove every occurrence of value from a field.

        Returns:
            True if at least one value was removed.
        """
        values = self._fields.get(name)
        if not values:
            return False
        kept = [v for v in values if v != value]
        removed = len(kept) != len(values)
        self._fields[name] = kept
        return removed

    def fields(self) -> list[str]:
        """Return field names in insertion order."""
        return list(self._fields)

    def items(self) -> Iterator[tuple[str, list[Any]]]:
        return iter(self._fields.items())

    def copy(self) -> Record:
        """Return an independent copy.

        Value lists are deep-copied. Attachment values are shared because
        streams cannot be copied; a non-seekable body is first buffered in
        memory (on this record too) so every copy can rewind it.
        """
        bodies = self._fields.get(ATTACHMENT_BODY)
        if bodies:
            self._fields[ATTACHMENT_BODY] = [_rewindable(stream) for stream in bodies]
        clone = Record()
        for name, values in self._fields.items():
            if name.startswith(ATTACHMENT_PREFIX):
                clone._fields[name] = list(values)
            else:
                clone._fields[name] = copy.deepcopy(values)
        return clone

    def to_dict(self) -> dict[str, list[Any]]:
        """Return a shallow dict copy of the fields (lists are copied)."""
        return {name: list(values) for name, values in self._fields.items()}

    def __getitem__(self, name: str) -> list[Any]:
        return self._fields[name]

    def __setitem__(self, name: str, value: Any) -> None:
        self.replace(name, value)

    def __delitem__(self, name: str) -> None:
        del self._fields[name]

    def __contains__(self, name: object) -> bool:
        return name in self._fields

    def __iter__(self) -> Iterator[str]:
        return iter(self._fields)

    def __len__(self) -> int:
        return len(self._fields)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Record):
            return NotImplemented
        return self._fields == other._fields

    def __repr__(self) -> str:
        shown = {k: v for k, v in self._fields.items() if k != ATTACHMENT_BODY}
        return f"Record({shown!r})"


@dataclass(frozen=True)
class Document:
    """Finalized record handed to a DocumentLoader.

    Fields map to tuples so a Document cannot be mutated after construction.
    The only sanctioned rewrite is with_identity(), used by loaders applying
    the identity-assignment policy.
    """

    fields: Mapping[str, tuple[Any, ...]] = field(default_factory=dict)

    def __post_init__(self) -> None:
        frozen = {name: tuple(values) for name, values in self.fields.items()}
        object.__setattr__(self, "fields", MappingProxyType(frozen))

    @classmethod
    def from_record(cls, record: Record, unique_key: str) -> Document:
        """Snapshot a record, dropping attachment fields.

        Raises:
            MissingIdentityError: If the record has no value for unique_key
        """
        if not record.get(unique_key):
            raise MissingIdentityError(f"Record has no value for unique key field {unique_key!r}")
        return cls({name: tuple(values) for name, values in record.items() if not name.startswith(ATTACHMENT_PREFIX)})

    def identity(self, unique_key: str) -> str:
        """Return the document's identity as a string."""
        values = self.fields.get(unique_key)
        if not values:
            raise MissingIdentityError(f"Document has no value for unique key field {unique_key!r}")
        return str(values[0])

    def with_identity(self, unique_key: str, identity: str) -> Document:
        """Return a copy with only the identity field rewritten."""
        updated = dict(self.fields)
        updated[unique_key] = (identity,)
        return Document(updated)

    def get(self, name: str) -> tuple[Any, ...]:
        return self.fields.get(name, ())

    def to_dict(self) -> dict[str, Any]:
        """Return a JSON-friendly dict; single-valued fields are unwrapped."""
        return {name: values[0] if len(values) == 1 else list(values) for name, values in self.fields.items()}
