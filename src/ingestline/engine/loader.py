# src/ingestline/engine/loader.py
"""DocumentLoader implementations.

OutputChannelDocumentLoader is the task-local loader used in batch runs. It
never talks to the index store: each document's identity is rewritten per
the active IdentityPolicy and the (identity, document) pair is written to the
framework's output channel. The framework's retry and commit semantics cover
everything past that point, so the transaction calls only track state.

BufferedDocumentLoader implements the same contract with real transaction
semantics (buffer until commit, discard on rollback), the way a streaming
deployment writing to a live sink behaves.
"""

from __future__ import annotations

from collections.abc import Callable, Sequence
from dataclasses import dataclass

import structlog

from ingestline.contracts.enums import TransactionState
from ingestline.contracts.errors import OutputChannelError, TransactionStateError
from ingestline.contracts.framework import OutputChannel
from ingestline.contracts.loader import PingStatus
from ingestline.contracts.record import Document
from ingestline.core.identity import IdentityPolicy

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class LoaderContext:
    """Everything the task-local loader needs, passed explicitly at construction.

    Attributes:
        unique_key: Name of the identity field
        identity_policy: Policy applied to each document's identity
        channel: Framework output channel receiving (identity, document) pairs
    """

    unique_key: str
    identity_policy: IdentityPolicy
    channel: OutputChannel


class _TransactionTracker:
    """Shared begin/commit/rollback/shutdown state checks."""

    def __init__(self) -> None:
        self.state = TransactionState.IDLE
        self.is_shut_down = False

    def _check_open_for_work(self) -> None:
        if self.is_shut_down:
            raise TransactionStateError("Loader has been shut down")

    def begin_transaction(self) -> None:
        self._check_open_for_work()
        if self.state is TransactionState.OPEN:
            raise TransactionStateError("Transaction already open; nested transactions are not supported")
        self.state = TransactionState.OPEN

    def commit_transaction(self) -> None:
        self._check_open_for_work()
        if self.state is not TransactionState.OPEN:
            raise TransactionStateError(f"Cannot commit: transaction is {self.state}")
        self.state = TransactionState.COMMITTED

    def rollback(self) -> None:
        # Rollback after a failed commit or before begin is allowed
        self.state = TransactionState.ROLLED_BACK

    def shutdown(self) -> None:
        self.is_shut_down = True

    def ping(self) -> PingStatus:
        if self.is_shut_down:
            return PingStatus(ok=False, detail="shut down")
        return PingStatus(ok=True, detail=f"transaction {self.state}")


class OutputChannelDocumentLoader(_TransactionTracker):
    """Task-local loader writing (identity, document) pairs to the output channel.

    Example:
        loader = OutputChannelDocumentLoader(LoaderContext("id", IdentityPolicy.fixed_prefix("LOAD-"), context))
        loader.begin_transaction()
        loader.load([doc])  # channel receives ("LOAD-/data/a.txt", doc')
        loader.commit_transaction()
    """

    def __init__(self, context: LoaderContext) -> None:
        super().__init__()
        self._context = context
        self.documents_loaded = 0

    def load(self, documents: Sequence[Document]) -> None:
        """Rewrite identities and hand each document to the output channel.

        Raises:
            TransactionStateError: If no transaction is open
            OutputChannelError: If the channel write is interrupted
        """
        if self.state is not TransactionState.OPEN:
            raise TransactionStateError(f"Cannot load documents: transaction is {self.state}")
        unique_key = self._context.unique_key
        policy = self._context.identity_policy
        for document in documents:
            identity = policy.assign(document.identity(unique_key))
            if policy.rewrites:
                document = document.with_identity(unique_key, identity)
            try:
                self._context.channel.write(identity, document)
            except InterruptedError as e:
                raise OutputChannelError(f"Interrupted while writing document {identity!r}") from e
            self.documents_loaded += 1
            logger.debug("Document handed to output channel", identity=identity)


class BufferedDocumentLoader(_TransactionTracker):
    """Loader that publishes documents only when the transaction commits.

    Args:
        sink: Called once per committed document, in load order
    """

    def __init__(self, sink: Callable[[Document], None]) -> None:
        super().__init__()
        self._sink = sink
        self._pending: list[Document] = []

    @property
    def pending(self) -> int:
        return len(self._pending)

    def load(self, documents: Sequence[Document]) -> None:
        if self.state is not TransactionState.OPEN:
            raise TransactionStateError(f"Cannot load documents: transaction is {self.state}")
        self._pending.extend(documents)

    def commit_transaction(self) -> None:
        super().commit_transaction()
        pending, self._pending = self._pending, []
        for document in pending:
            self._sink(document)
        logger.debug("Committed buffered documents", count=len(pending))

    def rollback(self) -> None:
        discarded = len(self._pending)
        self._pending = []
        super().rollback()
        if discarded:
            logger.info("Rolled back buffered documents", count=discarded)
