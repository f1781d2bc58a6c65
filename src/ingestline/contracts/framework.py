"""Protocols for the supervising batch framework.

The framework that schedules tasks owns input slicing, counters, the output
channel and liveness tracking. Tasks see it only through these protocols.
ingestline.engine.local provides an in-process implementation for local
runs and tests.
"""

from collections.abc import Mapping
from typing import Any, BinaryIO, Protocol, runtime_checkable


@runtime_checkable
class Counter(Protocol):
    """Increment-only named counter."""

    @property
    def value(self) -> int: ...

    def increment(self, amount: int = 1) -> None: ...


@runtime_checkable
class OutputChannel(Protocol):
    """Durable hand-off point for (key, value) pairs.

    The framework's own retry and commit semantics cover everything past
    this boundary.
    """

    def write(self, key: str, value: Any) -> None: ...


@runtime_checkable
class TaskContext(OutputChannel, Protocol):
    """Everything a task receives from the framework that runs it.

    Attributes:
        configuration: Flat string-to-string job configuration
        task_id: Identifier of this task attempt (stable across retries of
            the same attempt, unique across tasks)
    """

    configuration: Mapping[str, str]
    task_id: str

    def counter(self, group: str, name: str) -> Counter: ...

    def progress(self) -> None:
        """Tell the framework the task is alive and making progress."""
        ...


@runtime_checkable
class FileSystem(Protocol):
    """Distributed filesystem abstraction used to read inputs."""

    def exists(self, path: str) -> bool: ...

    def open(self, path: str) -> BinaryIO: ...

    def length(self, path: str) -> int: ...
