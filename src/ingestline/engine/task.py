# src/ingestline/engine/task.py
"""ExtractionTask: the per-task extraction-and-indexing lifecycle.

A task is one unit of a larger batch job. The framework hands it a private
slice of input locations and calls:

    setup(context)            once, before any input
    process_input(location)   once per input, strictly sequentially
    cleanup()                 once, after the last input

State machine:

    UNINITIALIZED -> CONFIGURED -> TRANSACTION_OPEN
        -> (PROCESSING_INPUT -> TRANSACTION_OPEN)* -> COMMITTING -> STOPPED

Any fatal error moves the task to FAILED. Setup failures are fatal and
happen before any input is touched. Per-input failures (RecordProcessingError)
are counted, logged with the input location, and never escape
process_input(). A missing input is not an error at all. Commit failures are
fatal and surfaced as CommitError.

Exactly one transaction spans the task: begun at the end of setup and
committed exactly once in cleanup (or rolled back by abort()).
"""

from __future__ import annotations

import os
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from pathlib import Path, PurePosixPath
from typing import BinaryIO
from urllib.parse import urlparse

import structlog

from ingestline.contracts.enums import ExtractionCounter, InputOutcome, TaskState
from ingestline.contracts.errors import (
    CommitError,
    ConfigurationError,
    ProcessingErrorInfo,
    RecordProcessingError,
    ScriptEvaluationError,
    TaskSetupError,
    TaskStateError,
)
from ingestline.contracts.extractor import Extractor
from ingestline.contracts.framework import FileSystem, TaskContext
from ingestline.contracts.loader import DocumentLoader
from ingestline.contracts.record import ATTACHMENT_BODY, ATTACHMENT_NAME, FILE_URI_FIELD, Record
from ingestline.core.config import (
    ExtractionSettings,
    TaskSettings,
    extraction_parameters,
    load_extraction_settings,
)
from ingestline.core.filesystem import LocalFileSystem
from ingestline.core.identity import IdentityPolicy
from ingestline.core.logging import bind_task_context, unbind_task_context
from ingestline.core.schema import ConfigSchemaResolver, ResolvedSchema, SchemaResolver
from ingestline.engine.chain import Chain, ChainBuilder
from ingestline.engine.liveness import LivenessSignaler
from ingestline.engine.loader import LoaderContext, OutputChannelDocumentLoader
from ingestline.plugins.manager import CommandRegistry

logger = structlog.get_logger(__name__)

COUNTER_GROUP = "ingestline.engine.task.ExtractionCounters"
ERROR_COUNTER_GROUP = "ingestline.engine.task.ExtractionTask.errors"


def resource_name(location: str) -> str:
    """Base name of an input location, used as a content-type hint."""
    return PurePosixPath(urlparse(location).path if "://" in location else location).name


def create_extractor(registry: CommandRegistry, settings: ExtractionSettings) -> Extractor:
    """Instantiate the configured extractor.

    Raises:
        ConfigurationError: If no extractor is registered under the configured name
    """
    extractor_cls = registry.get_extractor_by_name(settings.extractor.name)
    if extractor_cls is None:
        known = ", ".join(sorted(e.name for e in registry.get_extractors()))
        raise ConfigurationError(f"Unknown extractor {settings.extractor.name!r} (known: {known})")
    extractor: Extractor = extractor_cls(settings.extractor.options)  # type: ignore[call-arg]
    return extractor


@dataclass
class TaskSummary:
    """Per-outcome input counts for one task run."""

    outcomes: dict[InputOutcome, int] = field(default_factory=lambda: dict.fromkeys(InputOutcome, 0))
    failed_inputs: list[str] = field(default_factory=list)

    def record(self, location: str, outcome: InputOutcome) -> None:
        self.outcomes[outcome] += 1
        if outcome is InputOutcome.FAILED:
            self.failed_inputs.append(location)

    @property
    def total(self) -> int:
        return sum(self.outcomes.values())


class ExtractionTask:
    """Controls one task's lifecycle: configuration, transaction, inputs, commit.

    Collaborators default to the production implementations and can be
    injected for other environments or tests.

    Example:
        task = ExtractionTask()
        summary = task.run(context, ["/data/a.txt", "/data/b.txt"])
    """

    def __init__(
        self,
        *,
        registry: CommandRegistry | None = None,
        filesystem: FileSystem | None = None,
        extractor: Extractor | None = None,
        schema_resolver: SchemaResolver | None = None,
        loader_factory: Callable[[LoaderContext], DocumentLoader] | None = None,
    ) -> None:
        self._registry = registry
        self._filesystem = filesystem
        self._extractor = extractor
        self._schema_resolver = schema_resolver
        self._loader_factory = loader_factory or OutputChannelDocumentLoader

        self._state = TaskState.UNINITIALIZED
        self._context: TaskContext | None = None
        self._loader: DocumentLoader | None = None
        self._chain: Chain | None = None
        self._signaler: LivenessSignaler | None = None
        self._schema: ResolvedSchema | None = None
        self._identity_policy: IdentityPolicy | None = None

    @property
    def state(self) -> TaskState:
        return self._state

    @property
    def chain(self) -> Chain:
        if self._chain is None:
            raise TaskStateError("Task has not been set up")
        return self._chain

    @property
    def loader(self) -> DocumentLoader:
        if self._loader is None:
            raise TaskStateError("Task has not been set up")
        return self._loader

    @property
    def signaler(self) -> LivenessSignaler:
        if self._signaler is None:
            raise TaskStateError("Task has not been set up")
        return self._signaler

    @property
    def identity_policy(self) -> IdentityPolicy:
        if self._identity_policy is None:
            raise TaskStateError("Task has not been set up")
        return self._identity_policy

    @property
    def context(self) -> TaskContext:
        if self._context is None:
            raise TaskStateError("Task has not been set up")
        return self._context

    @property
    def filesystem(self) -> FileSystem:
        if self._filesystem is None:
            raise TaskStateError("Task has not been set up")
        return self._filesystem

    @property
    def schema(self) -> ResolvedSchema:
        if self._schema is None:
            raise TaskStateError("Task has not been set up")
        return self._schema

    def _require_state(self, *expected: TaskState) -> None:
        if self._state not in expected:
            wanted = " or ".join(s.value for s in expected)
            raise TaskStateError(f"Task is {self._state.value}; expected {wanted}")

    # === Setup ===

    def setup(self, context: TaskContext) -> None:
        """Configure the task and open its transaction.

        Raises:
            TaskSetupError: On any configuration, schema or chain-build failure
        """
        self._require_state(TaskState.UNINITIALIZED)
        self._context = context
        try:
            self._configure(context)
            self._state = TaskState.CONFIGURED
            self.loader.begin_transaction()
        except Exception as e:
            self._state = TaskState.FAILED
            self._release()
            logger.error("Task setup failed", task_id=context.task_id, error=str(e), error_type=type(e).__name__)
            if isinstance(e, TaskSetupError):
                raise
            raise TaskSetupError(f"Task setup failed: {e}") from e
        self._state = TaskState.TRANSACTION_OPEN
        logger.info("Task ready", task_id=context.task_id, commands=len(self.chain.commands))

    def _configure(self, context: TaskContext) -> None:
        configuration = dict(context.configuration)
        logger.debug("Task configuration", cwd=os.getcwd(), configuration=dict(sorted(configuration.items())))

        task_settings = TaskSettings.from_configuration(configuration)
        config_path = Path(task_settings.extraction_config) if task_settings.extraction_config else None
        settings = load_extraction_settings(config_path, extraction_parameters(configuration))

        resolver = self._schema_resolver or ConfigSchemaResolver(settings.schema_settings)
        self._schema = resolver.resolve()

        registry = self._registry
        if registry is None:
            registry = CommandRegistry()
            registry.register_builtin_plugins()

        extractor = self._extractor or create_extractor(registry, settings)
        self._extractor = extractor
        if self._filesystem is None:
            self._filesystem = LocalFileSystem()

        self._identity_policy = IdentityPolicy.from_settings(
            task_settings.id_prefix,
            seed=task_settings.random_seed,
            task_id=context.task_id,
        )
        self._loader = self._loader_factory(
            LoaderContext(
                unique_key=self._schema.unique_key,
                identity_policy=self._identity_policy,
                channel=context,
            )
        )
        builder = ChainBuilder(registry, schema=self._schema, loader=self._loader, extractor=extractor)
        self._chain = builder.build_chain(settings.commands)
        self._signaler = LivenessSignaler(context.progress, interval_seconds=task_settings.liveness_interval_seconds)

    # === Per-input processing ===

    def process_input(self, location: str) -> InputOutcome:
        """Run one input through the chain.

        Per-input errors are counted and reported via the returned outcome.
        Anything else (including interruption) closes the stream, stops
        signaling, marks the task FAILED and propagates.
        """
        self._require_state(TaskState.TRANSACTION_OPEN)
        self._state = TaskState.PROCESSING_INPUT
        bind_task_context(input=location)
        self.signaler.start_signaling()
        try:
            return self._process(location)
        except BaseException:
            self._state = TaskState.FAILED
            raise
        finally:
            self.signaler.stop_signaling()
            unbind_task_context("input")
            if self._state is TaskState.PROCESSING_INPUT:
                self._state = TaskState.TRANSACTION_OPEN

    def _process(self, location: str) -> InputOutcome:
        filesystem = self.filesystem
        if not filesystem.exists(location):
            return self._skip_missing(location)

        logger.info("Processing file", input=location)
        try:
            length = filesystem.length(location)
            stream = filesystem.open(location)
        except FileNotFoundError:
            return self._skip_missing(location)

        with stream:
            record = self._seed_record(location, stream)
            try:
                accepted = self.chain.process(record)
            except RecordProcessingError as e:
                self._count_error(location, e)
                return InputOutcome.FAILED

        self._increment(ExtractionCounter.FILES_READ, 1)
        self._increment(ExtractionCounter.BYTES_READ, length)
        if not accepted:
            self._increment(ExtractionCounter.RECORDS_FILTERED, 1)
            return InputOutcome.FILTERED
        return InputOutcome.PROCESSED

    def _skip_missing(self, location: str) -> InputOutcome:
        # Inputs may be deleted between job submission and execution
        logger.info("Ignoring file that has been deleted since the job was submitted", input=location)
        self._increment(ExtractionCounter.FILES_SKIPPED, 1)
        return InputOutcome.SKIPPED_MISSING

    def _seed_record(self, location: str, stream: BinaryIO) -> Record:
        schema = self.schema
        record = Record()
        # Input location doubles as the document id unless a command overrides it
        record.put(schema.unique_key, location)
        record.put(FILE_URI_FIELD, location)
        record.put(ATTACHMENT_NAME, resource_name(location))
        record.put(ATTACHMENT_BODY, stream)
        return record

    def _increment(self, name: ExtractionCounter, amount: int) -> None:
        self.context.counter(COUNTER_GROUP, name.value).increment(amount)

    def _count_error(self, location: str, error: RecordProcessingError) -> None:
        category = type(error).__name__
        self.context.counter(ERROR_COUNTER_GROUP, category).increment(1)
        info: ProcessingErrorInfo = {"input": location, "category": category, "error": str(error)}
        if isinstance(error, ScriptEvaluationError):
            info["command"] = error.command
        logger.error("Unable to process file", **info, exc_info=error)

    # === Shutdown ===

    def cleanup(self) -> None:
        """Commit the task's transaction exactly once and release resources.

        Raises:
            CommitError: If commit or loader shutdown fails; the task is FAILED
        """
        self._require_state(TaskState.TRANSACTION_OPEN)
        self._state = TaskState.COMMITTING
        try:
            self.loader.commit_transaction()
            self.loader.shutdown()
        except Exception as e:
            self._state = TaskState.FAILED
            logger.error("Commit failed", error=str(e), error_type=type(e).__name__)
            raise CommitError(f"Failed to commit task output: {e}") from e
        except BaseException:
            # Interrupted mid-commit: surfaced as-is, never retried
            self._state = TaskState.FAILED
            raise
        finally:
            self._release()
        self._state = TaskState.STOPPED
        logger.info("Task committed")

    def abort(self) -> None:
        """Roll back the transaction after a fatal failure. The task ends FAILED."""
        if self._state is TaskState.STOPPED:
            raise TaskStateError("Task already committed; nothing to abort")
        if self._loader is not None:
            try:
                self._loader.rollback()
                self._loader.shutdown()
            except Exception as e:
                # Keep the original failure as the one that propagates
                logger.error("Rollback failed", error=str(e), error_type=type(e).__name__)
        self._release()
        self._state = TaskState.FAILED
        logger.warning("Task aborted")

    def _release(self) -> None:
        if self._chain is not None:
            self._chain.close()
        if self._extractor is not None:
            self._extractor.close()
        self._close_signaler()

    def _close_signaler(self) -> None:
        if self._signaler is not None:
            self._signaler.close()

    # === Convenience driver ===

    def run(self, context: TaskContext, inputs: Iterable[str]) -> TaskSummary:
        """Set up, process every input in order, then commit.

        On an escaping fatal error the transaction is rolled back and the
        error re-raised.
        """
        self.setup(context)
        summary = TaskSummary()
        try:
            for location in inputs:
                summary.record(location, self.process_input(location))
        except BaseException:
            self.abort()
            raise
        self.cleanup()
        return summary
