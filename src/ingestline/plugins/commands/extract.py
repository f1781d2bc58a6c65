"""extract_content: run the configured extractor over the record's attachment."""

from typing import BinaryIO

from pydantic import Field

from ingestline.contracts.errors import ExtractionError
from ingestline.contracts.record import ATTACHMENT_BODY, Record
from ingestline.plugins.base import BaseCommand
from ingestline.plugins.config_base import CommandConfig


class ExtractContentConfig(CommandConfig):
    keep_attachment: bool = Field(default=False, description="Leave the raw stream on the record after extraction")


class ExtractContent(BaseCommand):
    """Populate content and metadata fields from the raw input stream.

    The extractor itself is chosen in the extraction config's ``extractor``
    section and shared by every extract_content command in the chain.
    """

    name = "extract_content"
    config_class = ExtractContentConfig

    def process(self, record: Record) -> bool:
        stream: BinaryIO | None = record.first(ATTACHMENT_BODY)
        if stream is None:
            raise ExtractionError(f"{self.path}: record has no {ATTACHMENT_BODY} attachment to extract from")
        # Record copies in fork/try_rules branches share one stream
        if stream.seekable():
            stream.seek(0)
        self.context.extractor.extract(stream, record)
        if not self.config.keep_attachment:
            record.remove(ATTACHMENT_BODY)
        return self.forward(record)
