# tests/fixtures/framework.py
"""In-memory doubles for the framework-side collaborators of a task.

LocalTaskContext and ListChannel from ingestline.engine.local cover the task
context and output channel; this module adds what tests need beyond them:
an in-memory filesystem, a loader that records transaction calls, and a
configurable extractor.
"""

from __future__ import annotations

import io
from collections.abc import Sequence
from typing import Any, BinaryIO

from ingestline.contracts.errors import ExtractionError
from ingestline.contracts.loader import PingStatus
from ingestline.contracts.record import Document, Record


class InMemoryFileSystem:
    """FileSystem over a dict of location -> bytes.

    Tracks every stream it hands out so tests can assert they were closed.
    """

    def __init__(self, files: dict[str, bytes] | None = None) -> None:
        self.files: dict[str, bytes] = dict(files or {})
        self.opened: list[io.BytesIO] = []

    def add(self, location: str, data: bytes | str) -> str:
        self.files[location] = data.encode("utf-8") if isinstance(data, str) else data
        return location

    def delete(self, location: str) -> None:
        del self.files[location]

    def exists(self, path: str) -> bool:
        return path in self.files

    def open(self, path: str) -> BinaryIO:
        if path not in self.files:
            raise FileNotFoundError(path)
        stream = io.BytesIO(self.files[path])
        self.opened.append(stream)
        return stream

    def length(self, path: str) -> int:
        if path not in self.files:
            raise FileNotFoundError(path)
        return len(self.files[path])

    @property
    def all_closed(self) -> bool:
        return all(stream.closed for stream in self.opened)


class RecordingLoader:
    """DocumentLoader that records every call instead of emitting anywhere."""

    def __init__(self, *, fail_on_commit: BaseException | None = None) -> None:
        self.documents: list[Document] = []
        self.calls: list[str] = []
        self._fail_on_commit = fail_on_commit

    def begin_transaction(self) -> None:
        self.calls.append("begin")

    def load(self, documents: Sequence[Document]) -> None:
        self.calls.append("load")
        self.documents.extend(documents)

    def commit_transaction(self) -> None:
        self.calls.append("commit")
        if self._fail_on_commit is not None:
            raise self._fail_on_commit

    def rollback(self) -> None:
        self.calls.append("rollback")

    def shutdown(self) -> None:
        self.calls.append("shutdown")

    def ping(self) -> PingStatus:
        return PingStatus(ok=True)

    def count(self, call: str) -> int:
        return self.calls.count(call)


class StubExtractor:
    """Extractor that decodes UTF-8 into ``content``, or fails on demand.

    Args:
        fail_on: Substring; inputs whose bytes contain it raise ExtractionError
        crash_with: Raised for every input (a bug or an interrupt, not a per-input error)
    """

    name = "stub"

    def __init__(self, *, fail_on: bytes | None = None, crash_with: BaseException | None = None) -> None:
        self._fail_on = fail_on
        self._crash_with = crash_with
        self.extracted = 0
        self.closed = False

    def extract(self, stream: BinaryIO, record: Record) -> None:
        if self._crash_with is not None:
            raise self._crash_with
        data = stream.read()
        if self._fail_on is not None and self._fail_on in data:
            raise ExtractionError("cannot parse input")
        self.extracted += 1
        record.replace("content", data.decode("utf-8"))

    def close(self) -> None:
        self.closed = True


class RecordingCommand:
    """Chain terminus that records the records it receives."""

    name = "recording"

    def __init__(self, verdict: bool = True) -> None:
        self.verdict = verdict
        self.received: list[Record] = []

    def process(self, record: Record) -> bool:
        self.received.append(record)
        return self.verdict

    def describe(self) -> dict[str, Any]:
        return {"type": self.name}

    def close(self) -> None:
        pass
