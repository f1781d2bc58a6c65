"""Status codes and modes shared across subsystem boundaries."""

from enum import StrEnum


class TaskState(StrEnum):
    """Lifecycle state of an ExtractionTask.

    Normal progression:
        UNINITIALIZED -> CONFIGURED -> TRANSACTION_OPEN
        -> (PROCESSING_INPUT -> TRANSACTION_OPEN)* -> COMMITTING -> STOPPED

    FAILED is terminal and reachable from any non-terminal state.
    """

    UNINITIALIZED = "uninitialized"
    CONFIGURED = "configured"
    TRANSACTION_OPEN = "transaction_open"
    PROCESSING_INPUT = "processing_input"
    COMMITTING = "committing"
    STOPPED = "stopped"
    FAILED = "failed"


class InputOutcome(StrEnum):
    """What happened to a single input reference."""

    PROCESSED = "processed"  # Chain accepted the record
    FILTERED = "filtered"  # Chain ran but a command dropped the record
    SKIPPED_MISSING = "skipped_missing"  # Input no longer exists
    FAILED = "failed"  # Per-input error, counted and skipped


class IdentityMode(StrEnum):
    """How document identities are derived from input keys."""

    PASSTHROUGH = "passthrough"
    FIXED_PREFIX = "fixed_prefix"
    RANDOM_PREFIX = "random_prefix"


class TransactionState(StrEnum):
    """Transaction state tracked by document loaders."""

    IDLE = "idle"
    OPEN = "open"
    COMMITTED = "committed"
    ROLLED_BACK = "rolled_back"


class ExtractionCounter(StrEnum):
    """Names of the task's increment-only counters."""

    FILES_READ = "FILES_READ"
    BYTES_READ = "BYTES_READ"
    RECORDS_FILTERED = "RECORDS_FILTERED"
    FILES_SKIPPED = "FILES_SKIPPED"
