"""DocumentLoader protocol shared by batch and streaming implementations."""

from collections.abc import Sequence
from dataclasses import dataclass
from typing import Protocol, runtime_checkable

from ingestline.contracts.record import Document


@dataclass(frozen=True)
class PingStatus:
    """Health status returned by DocumentLoader.ping()."""

    ok: bool
    detail: str = ""


@runtime_checkable
class DocumentLoader(Protocol):
    """Emits finished documents to the output boundary.

    Lifecycle:
        begin_transaction() -> load(...)* -> commit_transaction() -> shutdown()

    rollback() may replace commit_transaction() on fatal failure. Batch
    implementations treat the transaction calls as bookkeeping only because
    the framework already makes task output atomic and replayable.
    """

    def begin_transaction(self) -> None: ...

    def load(self, documents: Sequence[Document]) -> None: ...

    def commit_transaction(self) -> None: ...

    def rollback(self) -> None: ...

    def shutdown(self) -> None: ...

    def ping(self) -> PingStatus: ...
