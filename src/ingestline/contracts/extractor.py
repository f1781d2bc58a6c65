"""Boundary to the content-extraction algorithm.

MIME sniffing and binary format parsing live outside this package. An
Extractor reads the raw stream attached to a record and populates content and
metadata fields on it.
"""

from typing import BinaryIO, Protocol, runtime_checkable

from ingestline.contracts.record import Record


@runtime_checkable
class Extractor(Protocol):
    """Content extractor plugged into the extract_content command.

    Implementations raise ExtractionError for inputs they cannot handle.
    Any other exception is treated as a bug and fails the task.
    """

    name: str

    def extract(self, stream: BinaryIO, record: Record) -> None:
        """Read stream and populate fields on record in place."""
        ...

    def close(self) -> None: ...
