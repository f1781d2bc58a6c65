"""Exception taxonomy for extraction tasks.

Errors fall into two families that the task lifecycle treats differently:

- ConfigurationError and the lifecycle errors (CommitError, OutputChannelError,
  state errors) are fatal. They escape immediately and fail the task.
- RecordProcessingError covers failures scoped to a single input. The task
  counts them under a per-category counter, logs them with the input's
  location, and moves on to the next input.

Anything else raised from a command is a bug in system code and crashes the
task rather than being counted.
"""

from typing import NotRequired, TypedDict


class ProcessingErrorInfo(TypedDict):
    """Structured payload logged for a per-input failure."""

    input: str  # Location of the offending input
    category: str  # Exception class name, also the counter name
    error: str  # String representation of the exception
    command: NotRequired[str]  # Config path of the failing command, if known


class IngestlineError(Exception):
    """Base class for all ingestline errors."""


# =============================================================================
# Fatal: configuration and setup
# =============================================================================


class ConfigurationError(IngestlineError):
    """Raised when task configuration is invalid. Always fatal."""


class ChainBuildError(ConfigurationError):
    """Raised when the command chain cannot be built from configuration.

    Attributes:
        path: Config path of the offending command (e.g. "commands[2]")
    """

    def __init__(self, message: str, *, path: str | None = None) -> None:
        self.path = path
        if path is not None:
            message = f"{path}: {message}"
        super().__init__(message)


class TaskSetupError(ConfigurationError):
    """Raised when ExtractionTask.setup() fails for any reason."""


class ScriptSyntaxError(ConfigurationError):
    """Raised when an embedded script is not valid Python syntax."""


class ScriptSecurityError(ConfigurationError):
    """Raised when an embedded script contains forbidden constructs."""


# =============================================================================
# Per-input: counted and skipped
# =============================================================================


class RecordProcessingError(IngestlineError):
    """Base class for failures isolated to a single input.

    The class name of the concrete exception is used as the error counter
    name, so subclasses double as failure categories.
    """


class ExtractionError(RecordProcessingError):
    """Raised when content extraction fails for an input."""


class ServiceError(RecordProcessingError):
    """Raised when a storage or service call fails while processing an input."""


class ScriptEvaluationError(RecordProcessingError):
    """Raised when an embedded script fails while processing a record.

    Attributes:
        command: Config path of the scripted command that failed
    """

    def __init__(self, message: str, *, command: str) -> None:
        self.command = command
        super().__init__(f"{command}: {message}")


class ConditionEvaluationError(RecordProcessingError):
    """Raised when a filter or branch condition fails to evaluate against a record."""


class DateParseError(RecordProcessingError):
    """Raised when a date field matches none of the accepted formats."""


class MissingIdentityError(RecordProcessingError):
    """Raised when a record reaches the loader without a unique key value."""


class NoRuleMatchedError(RecordProcessingError):
    """Raised by try_rules when no rule accepts the record and throwing is enabled."""


# =============================================================================
# Fatal: lifecycle
# =============================================================================


class CommitError(IngestlineError):
    """Raised when committing the task's transaction fails."""


class OutputChannelError(IngestlineError):
    """Raised when a document cannot be handed to the output channel."""


class TaskStateError(IngestlineError):
    """Raised when a task operation is called in the wrong lifecycle state."""


class TransactionStateError(IngestlineError):
    """Raised on begin/commit/rollback calls that violate transaction nesting."""


class LivenessStateError(IngestlineError):
    """Raised when liveness signaling is stopped without a matching start."""
