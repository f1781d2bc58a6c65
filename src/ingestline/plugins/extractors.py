# src/ingestline/plugins/extractors.py
"""Built-in content extractors.

Real format parsing (PDF, Office, HTML) is delegated to an external
extraction service or library behind the Extractor protocol. PlainTextExtractor
covers text inputs and is the default.
"""

import mimetypes
from typing import Any, BinaryIO

from pydantic import Field

from ingestline.contracts.errors import ExtractionError, ServiceError
from ingestline.contracts.extractor import Extractor
from ingestline.contracts.record import ATTACHMENT_CHARSET, ATTACHMENT_MIME_TYPE, ATTACHMENT_NAME, Record
from ingestline.plugins.config_base import CommandConfig
from ingestline.plugins.hookspecs import hookimpl

_DEFAULT_MIME_TYPE = "application/octet-stream"

# Non-text/* types whose payload is still text
_TEXTUAL_APPLICATION_TYPES = frozenset(
    {
        "application/json",
        "application/xml",
        "application/xhtml+xml",
        "application/javascript",
        "application/x-yaml",
        "application/yaml",
    }
)


class PlainTextExtractorConfig(CommandConfig):
    charset: str = Field(default="utf-8", description="Charset used when the record carries no charset hint")
    content_field: str = Field(default="content", min_length=1)
    max_bytes: int | None = Field(default=None, gt=0, description="Reject inputs larger than this")
    text_only: bool = Field(default=True, description="Reject inputs whose MIME type is not textual")


def _is_textual(mime_type: str) -> bool:
    return mime_type.startswith("text/") or mime_type in _TEXTUAL_APPLICATION_TYPES or mime_type.endswith("+xml")


class PlainTextExtractor:
    """Decodes text inputs into a content field plus basic metadata.

    Sets on the record:
        <content_field>: decoded text
        content_type: MIME type (hint from the record, else guessed from the
            resource name)
        content_length: size in bytes
        content_encoding: charset used for decoding
    """

    name = "plain_text"

    def __init__(self, options: dict[str, Any] | None = None) -> None:
        self._config = PlainTextExtractorConfig.from_dict(options)

    def _mime_type(self, record: Record) -> str:
        hinted = record.first(ATTACHMENT_MIME_TYPE)
        if hinted:
            return str(hinted)
        resource_name = record.first(ATTACHMENT_NAME)
        if resource_name:
            guessed, _ = mimetypes.guess_type(str(resource_name), strict=False)
            if guessed:
                return guessed
        return _DEFAULT_MIME_TYPE

    def extract(self, stream: BinaryIO, record: Record) -> None:
        mime_type = self._mime_type(record)
        if self._config.text_only and not _is_textual(mime_type):
            raise ExtractionError(f"Unsupported content type {mime_type!r} for {record.first(ATTACHMENT_NAME)!r}")

        limit = self._config.max_bytes
        try:
            data = stream.read() if limit is None else stream.read(limit + 1)
        except OSError as e:
            # Storage-side failure, not a problem with the input itself
            raise ServiceError(f"Cannot read input stream: {e}") from e
        if limit is not None and len(data) > limit:
            raise ExtractionError(f"Input exceeds max_bytes ({limit})")

        charset = str(record.first(ATTACHMENT_CHARSET) or self._config.charset)
        try:
            text = data.decode(charset)
        except (UnicodeDecodeError, LookupError) as e:
            raise ExtractionError(f"Cannot decode input as {charset}: {e}") from e

        record.replace(self._config.content_field, text)
        record.replace("content_type", mime_type)
        record.replace("content_length", len(data))
        record.replace("content_encoding", charset)

    def close(self) -> None:
        pass


class BuiltinExtractors:
    """Registers the built-in extractors with the CommandRegistry."""

    @hookimpl
    def ingestline_get_extractors(self) -> list[type[Extractor]]:
        return [PlainTextExtractor]
