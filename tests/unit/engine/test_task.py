# tests/unit/engine/test_task.py
"""Tests for the ExtractionTask lifecycle.

The task runs against in-process doubles: LocalTaskContext for the framework,
InMemoryFileSystem for inputs and StubExtractor for content extraction.
"""

import io
from pathlib import Path
from typing import BinaryIO

import pytest

from ingestline.contracts.enums import ExtractionCounter, InputOutcome, TaskState
from ingestline.contracts.errors import CommitError, TaskSetupError, TaskStateError
from ingestline.contracts.record import Document
from ingestline.core.config import EXTRACTION_CONFIG_KEY, ID_PREFIX_KEY, LIVENESS_INTERVAL_KEY, RANDOM_SEED_KEY
from ingestline.engine.local import ListChannel, LocalTaskContext
from ingestline.engine.task import COUNTER_GROUP, ERROR_COUNTER_GROUP, ExtractionTask, TaskSummary, resource_name
from ingestline.plugins.manager import CommandRegistry
from tests.fixtures import InMemoryFileSystem, RecordingLoader, StubExtractor

COMMANDS_KEY = "ingestline.extraction.commands"

HELLO_WORLD_CONFIG = """\
commands:
  - extract_content: {}
  - set_values:
      values:
        tags: "{{ content }}"
  - script:
      script: |
        if "hello" not in record.get("tags"):
            return False
        record["tags"].append("world")
        return child.process(record)
  - load_documents: {}
"""


def _task(
    filesystem: InMemoryFileSystem,
    *,
    extractor: StubExtractor | None = None,
    loader: RecordingLoader | None = None,
    registry: CommandRegistry | None = None,
) -> ExtractionTask:
    return ExtractionTask(
        registry=registry,
        filesystem=filesystem,
        extractor=extractor or StubExtractor(),
        loader_factory=(lambda ctx: loader) if loader is not None else None,
    )


def _documents(context: LocalTaskContext) -> list[tuple[str, Document]]:
    assert isinstance(context.channel, ListChannel)
    return context.channel.pairs


def _count(context: LocalTaskContext, name: ExtractionCounter) -> int:
    return context.counter_value(COUNTER_GROUP, name.value)


@pytest.fixture
def files() -> InMemoryFileSystem:
    return InMemoryFileSystem({"/data/a.txt": b"alpha", "/data/b.txt": b"bravo!"})


class TestResourceName:
    @pytest.mark.parametrize(
        ("location", "expected"),
        [
            ("/data/a.txt", "a.txt"),
            ("hdfs://nn:8020/data/in/report.pdf", "report.pdf"),
            ("plain", "plain"),
        ],
    )
    def test_base_name(self, location: str, expected: str) -> None:
        assert resource_name(location) == expected


class TestTaskSummary:
    def test_tallies_outcomes(self) -> None:
        summary = TaskSummary()

        summary.record("a", InputOutcome.PROCESSED)
        summary.record("b", InputOutcome.FAILED)
        summary.record("c", InputOutcome.PROCESSED)

        assert summary.outcomes[InputOutcome.PROCESSED] == 2
        assert summary.outcomes[InputOutcome.SKIPPED_MISSING] == 0
        assert summary.failed_inputs == ["b"]
        assert summary.total == 3


class TestExtractionTaskRun:
    def test_fixed_prefix_scenario(self, files: InMemoryFileSystem) -> None:
        context = LocalTaskContext({ID_PREFIX_KEY: "LOAD-"})
        task = _task(files)

        summary = task.run(context, ["/data/a.txt", "/data/b.txt"])

        assert [key for key, _ in _documents(context)] == ["LOAD-/data/a.txt", "LOAD-/data/b.txt"]
        _, first = _documents(context)[0]
        assert first.identity("id") == "LOAD-/data/a.txt"
        assert first.get("content") == ("alpha",)
        assert first.get("file_uri") == ("/data/a.txt",)
        assert summary.outcomes[InputOutcome.PROCESSED] == 2
        assert _count(context, ExtractionCounter.FILES_READ) == 2
        assert _count(context, ExtractionCounter.BYTES_READ) == 11
        assert task.state is TaskState.STOPPED

    def test_passthrough_by_default(self, files: InMemoryFileSystem) -> None:
        context = LocalTaskContext()

        _task(files).run(context, ["/data/a.txt"])

        assert [key for key, _ in _documents(context)] == ["/data/a.txt"]

    def test_attachments_never_reach_output(self, files: InMemoryFileSystem) -> None:
        context = LocalTaskContext()

        _task(files).run(context, ["/data/a.txt"])

        _, document = _documents(context)[0]
        assert not any(name.startswith("_attachment") for name in document.fields)

    def test_random_prefix_is_reproducible(self, files: InMemoryFileSystem) -> None:
        config = {ID_PREFIX_KEY: "random", RANDOM_SEED_KEY: "seed-1"}
        first = LocalTaskContext(config)
        second = LocalTaskContext(config)

        _task(files).run(first, ["/data/a.txt", "/data/b.txt"])
        _task(files).run(second, ["/data/a.txt", "/data/b.txt"])

        keys = [key for key, _ in _documents(first)]
        assert keys == [key for key, _ in _documents(second)]
        assert all("#/data/" in key for key in keys)
        assert keys[0].split("#", 1)[0].isdigit()

    def test_random_seed_defaults_to_task_id(self, files: InMemoryFileSystem) -> None:
        first = LocalTaskContext({ID_PREFIX_KEY: "random"}, task_id="task-1")
        second = LocalTaskContext({ID_PREFIX_KEY: "random"}, task_id="task-1")

        _task(files).run(first, ["/data/a.txt"])
        _task(files).run(second, ["/data/a.txt"])

        assert _documents(first)[0][0] == _documents(second)[0][0]

    def test_commit_happens_exactly_once(self, files: InMemoryFileSystem) -> None:
        loader = RecordingLoader()

        _task(files, loader=loader).run(LocalTaskContext(), ["/data/a.txt", "/data/b.txt"])

        assert loader.count("begin") == 1
        assert loader.count("commit") == 1
        assert loader.count("rollback") == 0
        assert loader.calls[-1] == "shutdown"
        assert len(loader.documents) == 2

    def test_streams_closed_and_signaling_balanced(self, files: InMemoryFileSystem) -> None:
        task = _task(files, extractor=StubExtractor(fail_on=b"bravo"))

        task.run(LocalTaskContext(), ["/data/a.txt", "/data/b.txt"])

        assert files.all_closed
        assert len(files.opened) == 2
        assert task.signaler.starts == task.signaler.stops == 2
        assert task.signaler.active is False

    def test_extractor_closed_after_commit(self, files: InMemoryFileSystem) -> None:
        extractor = StubExtractor()

        _task(files, extractor=extractor).run(LocalTaskContext(), ["/data/a.txt"])

        assert extractor.closed is True

    def test_scripted_hello_world(self, files: InMemoryFileSystem, tmp_path: Path) -> None:
        config_path = tmp_path / "extraction.yaml"
        config_path.write_text(HELLO_WORLD_CONFIG, encoding="utf-8")
        files.add("/data/hello.txt", "hello")
        context = LocalTaskContext({EXTRACTION_CONFIG_KEY: str(config_path)})

        summary = _task(files).run(context, ["/data/hello.txt", "/data/a.txt"])

        assert [key for key, _ in _documents(context)] == ["/data/hello.txt"]
        _, document = _documents(context)[0]
        assert document.get("tags") == ("hello", "world")
        assert summary.outcomes[InputOutcome.PROCESSED] == 1
        assert summary.outcomes[InputOutcome.FILTERED] == 1

    def test_filtered_input_counts(self, files: InMemoryFileSystem) -> None:
        context = LocalTaskContext(
            {COMMANDS_KEY: "[{extract_content: {}}, {filter: {condition: \"'!' in record.first('content')\"}}, {load_documents: {}}]"}
        )

        summary = _task(files).run(context, ["/data/a.txt", "/data/b.txt"])

        assert [key for key, _ in _documents(context)] == ["/data/b.txt"]
        assert summary.outcomes[InputOutcome.FILTERED] == 1
        assert _count(context, ExtractionCounter.RECORDS_FILTERED) == 1
        assert _count(context, ExtractionCounter.FILES_READ) == 2


class TestMissingInputs:
    def test_missing_input_is_skipped(self, files: InMemoryFileSystem) -> None:
        context = LocalTaskContext()

        summary = _task(files).run(context, ["/data/gone.txt", "/data/a.txt"])

        assert summary.outcomes[InputOutcome.SKIPPED_MISSING] == 1
        assert summary.outcomes[InputOutcome.PROCESSED] == 1
        assert _count(context, ExtractionCounter.FILES_SKIPPED) == 1
        assert _count(context, ExtractionCounter.FILES_READ) == 1
        assert [key for key, _ in _documents(context)] == ["/data/a.txt"]

    def test_skipping_is_repeatable(self, files: InMemoryFileSystem) -> None:
        context = LocalTaskContext()
        task = _task(files)
        task.setup(context)

        assert task.process_input("/data/gone.txt") is InputOutcome.SKIPPED_MISSING
        assert task.process_input("/data/gone.txt") is InputOutcome.SKIPPED_MISSING
        task.cleanup()

        assert _documents(context) == []
        assert files.opened == []
        assert _count(context, ExtractionCounter.FILES_SKIPPED) == 2

    def test_deleted_between_exists_and_open(self, files: InMemoryFileSystem) -> None:
        class _Racy(InMemoryFileSystem):
            def exists(self, path: str) -> bool:
                return True

        context = LocalTaskContext()

        summary = _task(_Racy()).run(context, ["/data/a.txt"])

        assert summary.outcomes[InputOutcome.SKIPPED_MISSING] == 1


class TestPerInputErrors:
    def test_error_is_counted_and_processing_continues(self, files: InMemoryFileSystem) -> None:
        context = LocalTaskContext()
        task = _task(files, extractor=StubExtractor(fail_on=b"alpha"))

        summary = task.run(context, ["/data/a.txt", "/data/b.txt"])

        assert summary.failed_inputs == ["/data/a.txt"]
        assert summary.outcomes[InputOutcome.PROCESSED] == 1
        assert context.counter_value(ERROR_COUNTER_GROUP, "ExtractionError") == 1
        assert [key for key, _ in _documents(context)] == ["/data/b.txt"]
        # Failed inputs are not counted as read
        assert _count(context, ExtractionCounter.FILES_READ) == 1
        assert task.state is TaskState.STOPPED

    def test_script_error_counted_by_category(self, files: InMemoryFileSystem) -> None:
        context = LocalTaskContext({COMMANDS_KEY: "[{script: {script: 'return 1 / 0'}}]"})

        summary = _task(files).run(context, ["/data/a.txt"])

        assert summary.failed_inputs == ["/data/a.txt"]
        assert context.counter_value(ERROR_COUNTER_GROUP, "ScriptEvaluationError") == 1

    def test_storage_failure_counted_as_service_error(self, files: InMemoryFileSystem) -> None:
        class _Unreadable(io.BytesIO):
            def read(self, size: int | None = -1) -> bytes:
                raise OSError("datanode unreachable")

        class _FlakyStorage(InMemoryFileSystem):
            def open(self, path: str) -> BinaryIO:
                if path != "/data/a.txt":
                    return super().open(path)
                stream = _Unreadable()
                self.opened.append(stream)
                return stream

        storage = _FlakyStorage(files.files)
        context = LocalTaskContext()

        summary = ExtractionTask(filesystem=storage).run(context, ["/data/a.txt", "/data/b.txt"])

        assert summary.failed_inputs == ["/data/a.txt"]
        assert context.counter_value(ERROR_COUNTER_GROUP, "ServiceError") == 1
        assert storage.all_closed

    def test_unexpected_error_is_fatal_and_rolls_back(self, files: InMemoryFileSystem) -> None:
        loader = RecordingLoader()
        task = _task(files, extractor=StubExtractor(crash_with=RuntimeError("extractor bug")), loader=loader)

        with pytest.raises(RuntimeError, match="extractor bug"):
            task.run(LocalTaskContext(), ["/data/a.txt", "/data/b.txt"])

        assert task.state is TaskState.FAILED
        assert loader.count("commit") == 0
        assert loader.count("rollback") == 1
        assert files.all_closed
        assert task.signaler.starts == task.signaler.stops == 1

    def test_interrupt_during_processing_rolls_back(self, files: InMemoryFileSystem) -> None:
        loader = RecordingLoader()
        task = _task(files, extractor=StubExtractor(crash_with=KeyboardInterrupt()), loader=loader)

        with pytest.raises(KeyboardInterrupt):
            task.run(LocalTaskContext(), ["/data/a.txt", "/data/b.txt"])

        assert task.state is TaskState.FAILED
        assert files.all_closed
        assert task.signaler.starts == task.signaler.stops == 1
        assert loader.count("rollback") == 1
        assert loader.count("commit") == 0


class TestSetup:
    def test_setup_opens_transaction(self, files: InMemoryFileSystem) -> None:
        loader = RecordingLoader()
        task = _task(files, loader=loader)

        task.setup(LocalTaskContext())

        assert task.state is TaskState.TRANSACTION_OPEN
        assert loader.calls == ["begin"]
        task.cleanup()

    def test_unknown_command_fails_setup(self, files: InMemoryFileSystem) -> None:
        task = _task(files)

        with pytest.raises(TaskSetupError, match="no_such_command"):
            task.setup(LocalTaskContext({COMMANDS_KEY: "[{no_such_command: {}}]"}))

        assert task.state is TaskState.FAILED

    def test_script_syntax_error_fails_setup(self, files: InMemoryFileSystem) -> None:
        task = _task(files)

        with pytest.raises(TaskSetupError):
            task.setup(LocalTaskContext({COMMANDS_KEY: "[{script: {script: 'return ('}}]"}))

        assert task.state is TaskState.FAILED

    def test_missing_config_file_fails_setup(self, files: InMemoryFileSystem, tmp_path: Path) -> None:
        task = _task(files)

        with pytest.raises(TaskSetupError, match="not found"):
            task.setup(LocalTaskContext({EXTRACTION_CONFIG_KEY: str(tmp_path / "absent.yaml")}))

    def test_invalid_liveness_interval_fails_setup(self, files: InMemoryFileSystem) -> None:
        task = _task(files)

        with pytest.raises(TaskSetupError):
            task.setup(LocalTaskContext({LIVENESS_INTERVAL_KEY: "-5"}))

    def test_unknown_extractor_fails_setup(self, files: InMemoryFileSystem) -> None:
        task = ExtractionTask(filesystem=files)

        with pytest.raises(TaskSetupError, match="Unknown extractor"):
            task.setup(LocalTaskContext({"ingestline.extraction.extractor.name": "ocr"}))

    def test_setup_failure_releases_extractor(self, files: InMemoryFileSystem) -> None:
        extractor = StubExtractor()
        task = _task(files, extractor=extractor)

        with pytest.raises(TaskSetupError):
            task.setup(LocalTaskContext({COMMANDS_KEY: "[{no_such_command: {}}]"}))

        assert extractor.closed is True

    def test_failed_begin_transaction_fails_setup(self, files: InMemoryFileSystem) -> None:
        class _Unavailable(RecordingLoader):
            def begin_transaction(self) -> None:
                raise OSError("index unavailable")

        extractor = StubExtractor()
        task = _task(files, extractor=extractor, loader=_Unavailable())

        with pytest.raises(TaskSetupError, match="index unavailable"):
            task.setup(LocalTaskContext())

        assert task.state is TaskState.FAILED
        assert extractor.closed is True

    def test_no_input_touched_on_setup_failure(self, files: InMemoryFileSystem) -> None:
        task = _task(files)

        with pytest.raises(TaskSetupError):
            task.run(LocalTaskContext({COMMANDS_KEY: "[{no_such_command: {}}]"}), ["/data/a.txt"])

        assert files.opened == []

    def test_default_registry_and_extractor(self, files: InMemoryFileSystem) -> None:
        context = LocalTaskContext()

        ExtractionTask(filesystem=files).run(context, ["/data/a.txt"])

        _, document = _documents(context)[0]
        assert document.get("content") == ("alpha",)
        assert document.get("content_type") == ("text/plain",)


class TestStateMachine:
    def test_process_before_setup_rejected(self, files: InMemoryFileSystem) -> None:
        with pytest.raises(TaskStateError):
            _task(files).process_input("/data/a.txt")

    def test_setup_twice_rejected(self, files: InMemoryFileSystem) -> None:
        task = _task(files)
        task.setup(LocalTaskContext())

        with pytest.raises(TaskStateError):
            task.setup(LocalTaskContext())

        task.cleanup()

    def test_cleanup_twice_rejected(self, files: InMemoryFileSystem) -> None:
        task = _task(files)
        task.setup(LocalTaskContext())
        task.cleanup()

        with pytest.raises(TaskStateError):
            task.cleanup()

    def test_process_after_cleanup_rejected(self, files: InMemoryFileSystem) -> None:
        task = _task(files)
        task.setup(LocalTaskContext())
        task.cleanup()

        with pytest.raises(TaskStateError):
            task.process_input("/data/a.txt")

    def test_accessors_require_setup(self, files: InMemoryFileSystem) -> None:
        task = _task(files)

        with pytest.raises(TaskStateError):
            _ = task.chain
        with pytest.raises(TaskStateError):
            _ = task.identity_policy

    def test_collaborator_accessors_require_setup(self) -> None:
        task = ExtractionTask()

        with pytest.raises(TaskStateError):
            _ = task.context
        with pytest.raises(TaskStateError):
            _ = task.filesystem
        with pytest.raises(TaskStateError):
            _ = task.schema


class TestCommitAndAbort:
    def test_commit_failure_raises_commit_error(self, files: InMemoryFileSystem) -> None:
        loader = RecordingLoader(fail_on_commit=OSError("index unavailable"))
        task = _task(files, loader=loader)
        task.setup(LocalTaskContext())
        task.process_input("/data/a.txt")

        with pytest.raises(CommitError, match="index unavailable"):
            task.cleanup()

        assert task.state is TaskState.FAILED
        assert loader.count("commit") == 1

    def test_commit_failure_releases_resources(self, files: InMemoryFileSystem) -> None:
        extractor = StubExtractor()
        task = _task(files, extractor=extractor, loader=RecordingLoader(fail_on_commit=OSError("boom")))
        task.setup(LocalTaskContext())

        with pytest.raises(CommitError):
            task.cleanup()

        assert extractor.closed is True

    def test_abort_rolls_back(self, files: InMemoryFileSystem) -> None:
        loader = RecordingLoader()
        task = _task(files, loader=loader)
        task.setup(LocalTaskContext())
        task.process_input("/data/a.txt")

        task.abort()

        assert loader.calls[-2:] == ["rollback", "shutdown"]
        assert loader.count("commit") == 0
        assert task.state is TaskState.FAILED

    def test_interrupt_during_commit_propagates_unwrapped(self, files: InMemoryFileSystem) -> None:
        extractor = StubExtractor()
        loader = RecordingLoader(fail_on_commit=KeyboardInterrupt())
        task = _task(files, extractor=extractor, loader=loader)
        task.setup(LocalTaskContext())
        task.process_input("/data/a.txt")

        with pytest.raises(KeyboardInterrupt):
            task.cleanup()

        assert task.state is TaskState.FAILED
        assert loader.count("commit") == 1
        assert extractor.closed is True

    def test_abort_after_commit_rejected(self, files: InMemoryFileSystem) -> None:
        task = _task(files)
        task.setup(LocalTaskContext())
        task.cleanup()

        with pytest.raises(TaskStateError):
            task.abort()


class TestLiveness:
    def test_long_input_signals_progress(self, files: InMemoryFileSystem) -> None:
        import threading

        release = threading.Event()

        class _SlowExtractor(StubExtractor):
            def extract(self, stream, record):  # type: ignore[no-untyped-def]
                release.wait(timeout=5)
                super().extract(stream, record)

        context = LocalTaskContext({LIVENESS_INTERVAL_KEY: "0.01"})
        original_progress = context.progress

        def progress() -> None:
            original_progress()
            release.set()

        context.progress = progress  # type: ignore[method-assign]
        task = _task(files, extractor=_SlowExtractor())

        task.run(context, ["/data/a.txt"])

        assert context.progress_calls >= 1
