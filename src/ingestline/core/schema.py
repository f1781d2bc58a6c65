"""Schema boundary.

The index schema and its loading mechanism are owned elsewhere. The core only
needs the name of the unique identity field and the date formats accepted
when normalizing date fields. SchemaResolver is the seam; the default
resolver reads both from the extraction config's schema section.
"""

from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Protocol, runtime_checkable

import structlog

from ingestline.core.config import SchemaSettings

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class ResolvedSchema:
    """Immutable schema facts shared by commands and loaders."""

    unique_key: str
    date_formats: tuple[str, ...]

    def parse_date(self, value: str) -> datetime | None:
        """Parse value with the first matching format.

        Naive results are taken as UTC; aware results are converted to UTC.

        Returns:
            The parsed datetime, or None if no format matches
        """
        text = value.strip()
        for fmt in self.date_formats:
            try:
                parsed = datetime.strptime(text, fmt)
            except ValueError:
                continue
            if parsed.tzinfo is None:
                return parsed.replace(tzinfo=UTC)
            return parsed.astimezone(UTC)
        return None


def format_utc(value: datetime) -> str:
    """Render a datetime as ISO-8601 UTC with a trailing Z."""
    return value.astimezone(UTC).strftime("%Y-%m-%dT%H:%M:%S.%f").rstrip("0").rstrip(".") + "Z"


@runtime_checkable
class SchemaResolver(Protocol):
    """Provides schema facts at task setup."""

    def resolve(self) -> ResolvedSchema: ...


class ConfigSchemaResolver:
    """Resolves schema facts from the extraction config's schema section."""

    def __init__(self, settings: SchemaSettings) -> None:
        self._settings = settings

    def resolve(self) -> ResolvedSchema:
        for fmt in self._settings.date_formats:
            logger.debug("Adding date format", date_format=fmt)
        return ResolvedSchema(
            unique_key=self._settings.unique_key,
            date_formats=tuple(self._settings.date_formats),
        )
