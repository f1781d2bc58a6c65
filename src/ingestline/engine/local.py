# src/ingestline/engine/local.py
"""In-process stand-ins for the batch framework.

LocalTaskContext plays the supervising framework for a single task on a
workstation: an in-memory counter table, a progress tally, and a pluggable
output channel (in-memory list or JSON Lines file).
"""

from __future__ import annotations

import json
from collections.abc import Mapping
from pathlib import Path
from types import TracebackType
from typing import IO, Any, Self

from ingestline.contracts.errors import OutputChannelError
from ingestline.contracts.framework import OutputChannel
from ingestline.contracts.record import Document


class LocalCounter:
    """Monotonic in-memory counter."""

    def __init__(self) -> None:
        self._value = 0

    @property
    def value(self) -> int:
        return self._value

    def increment(self, amount: int = 1) -> None:
        self._value += amount


class ListChannel:
    """Output channel collecting (key, value) pairs in memory."""

    def __init__(self) -> None:
        self.pairs: list[tuple[str, Any]] = []

    def write(self, key: str, value: Any) -> None:
        self.pairs.append((key, value))

    def keys(self) -> list[str]:
        return [key for key, _ in self.pairs]


class JsonLinesChannel:
    """Output channel writing one JSON object per document.

    Each line is {"id": <key>, "document": <fields>}. The file is opened
    lazily on the first write and truncated.
    """

    def __init__(self, path: Path, *, encoding: str = "utf-8") -> None:
        self._path = path
        self._encoding = encoding
        self._file: IO[str] | None = None
        self.written = 0

    @property
    def path(self) -> Path:
        return self._path

    def write(self, key: str, value: Any) -> None:
        payload = value.to_dict() if isinstance(value, Document) else value
        try:
            if self._file is None:
                self._file = open(self._path, "w", encoding=self._encoding)  # noqa: SIM115
            json.dump({"id": key, "document": payload}, self._file, default=str)
            self._file.write("\n")
        except OSError as e:
            raise OutputChannelError(f"Cannot write to {self._path}: {e}") from e
        self.written += 1

    def close(self) -> None:
        if self._file is not None:
            self._file.close()
            self._file = None

    def __enter__(self) -> Self:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        self.close()


class LocalTaskContext:
    """TaskContext for running one task in-process.

    Attributes:
        configuration: Flat job configuration
        task_id: Task attempt identifier
        channel: Receives every write()
        progress_calls: Number of progress() calls received
    """

    def __init__(
        self,
        configuration: Mapping[str, str] | None = None,
        *,
        task_id: str = "local-task-0",
        channel: OutputChannel | None = None,
    ) -> None:
        self.configuration: dict[str, str] = dict(configuration or {})
        self.task_id = task_id
        self.channel: OutputChannel = channel if channel is not None else ListChannel()
        self.progress_calls = 0
        self._counters: dict[tuple[str, str], LocalCounter] = {}

    def counter(self, group: str, name: str) -> LocalCounter:
        key = (group, name)
        if key not in self._counters:
            self._counters[key] = LocalCounter()
        return self._counters[key]

    def counter_value(self, group: str, name: str) -> int:
        """Current value of a counter; 0 if it was never touched."""
        counter = self._counters.get((group, name))
        return 0 if counter is None else counter.value

    def counters(self) -> dict[str, dict[str, int]]:
        """Snapshot of every counter, grouped."""
        snapshot: dict[str, dict[str, int]] = {}
        for (group, name), counter in sorted(self._counters.items()):
            snapshot.setdefault(group, {})[name] = counter.value
        return snapshot

    def write(self, key: str, value: Any) -> None:
        self.channel.write(key, value)

    def progress(self) -> None:
        self.progress_calls += 1
