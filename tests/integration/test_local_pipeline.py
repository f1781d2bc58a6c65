# tests/integration/test_local_pipeline.py
"""End-to-end task runs against the local disk.

Uses the production collaborators throughout: LocalFileSystem, the builtin
command registry, PlainTextExtractor and the JSON Lines output channel.
"""

import json
from pathlib import Path

import pytest

from ingestline.contracts.enums import ExtractionCounter, InputOutcome, TaskState
from ingestline.core.config import EXTRACTION_CONFIG_KEY, ID_PREFIX_KEY
from ingestline.engine.local import JsonLinesChannel, LocalTaskContext
from ingestline.engine.task import COUNTER_GROUP, ERROR_COUNTER_GROUP, ExtractionTask

PIPELINE_CONFIG = """\
schema:
  unique_key: id
extractor:
  name: plain_text
commands:
  - extract_content: {}
  - if:
      condition: "'report' in record.first('content', '')"
      then:
        - set_values: {values: {kind: report}}
      else:
        - set_values: {values: {kind: other}}
  - fork:
      branches:
        - - script:
              script: |
                record["id"] = "summary-" + record.first("id")
                record["content"] = "summary"
          - load_documents: {}
  - remove_fields: {fields: [file_uri]}
  - load_documents: {}
"""


@pytest.fixture
def workspace(tmp_path: Path) -> Path:
    (tmp_path / "in").mkdir()
    (tmp_path / "in" / "q1.txt").write_text("quarterly report", encoding="utf-8")
    (tmp_path / "in" / "memo.txt").write_text("lunch moved", encoding="utf-8")
    (tmp_path / "in" / "image.png").write_bytes(b"\x89PNG\r\n")
    (tmp_path / "extraction.yaml").write_text(PIPELINE_CONFIG, encoding="utf-8")
    return tmp_path


def _read_lines(path: Path) -> list[dict]:  # type: ignore[type-arg]
    return [json.loads(line) for line in path.read_text(encoding="utf-8").splitlines()]


class TestLocalPipeline:
    def test_full_run(self, workspace: Path) -> None:
        output = workspace / "out.jsonl"
        report = str(workspace / "in" / "q1.txt")
        memo = str(workspace / "in" / "memo.txt")
        gone = str(workspace / "in" / "deleted.txt")
        configuration = {
            EXTRACTION_CONFIG_KEY: str(workspace / "extraction.yaml"),
            ID_PREFIX_KEY: "LOAD-",
        }

        with JsonLinesChannel(output) as channel:
            context = LocalTaskContext(configuration, channel=channel)
            task = ExtractionTask()
            summary = task.run(context, [report, gone, memo])

        assert task.state is TaskState.STOPPED
        assert summary.outcomes[InputOutcome.PROCESSED] == 2
        assert summary.outcomes[InputOutcome.SKIPPED_MISSING] == 1

        lines = _read_lines(output)
        assert [line["id"] for line in lines] == [
            f"LOAD-summary-{report}",
            f"LOAD-{report}",
            f"LOAD-summary-{memo}",
            f"LOAD-{memo}",
        ]
        summary_doc, report_doc = lines[0]["document"], lines[1]["document"]
        assert summary_doc["content"] == "summary"
        assert summary_doc["file_uri"] == report
        assert report_doc["kind"] == "report"
        assert report_doc["content"] == "quarterly report"
        assert "file_uri" not in report_doc
        assert lines[3]["document"]["kind"] == "other"

        assert context.counter_value(COUNTER_GROUP, ExtractionCounter.FILES_READ.value) == 2
        assert context.counter_value(COUNTER_GROUP, ExtractionCounter.FILES_SKIPPED.value) == 1

    def test_unsupported_input_is_counted(self, workspace: Path) -> None:
        output = workspace / "out.jsonl"
        image = str(workspace / "in" / "image.png")
        memo = str(workspace / "in" / "memo.txt")

        with JsonLinesChannel(output) as channel:
            context = LocalTaskContext({EXTRACTION_CONFIG_KEY: str(workspace / "extraction.yaml")}, channel=channel)
            summary = ExtractionTask().run(context, [image, memo])

        assert summary.failed_inputs == [image]
        assert context.counter_value(ERROR_COUNTER_GROUP, "ExtractionError") == 1
        assert [line["id"] for line in _read_lines(output)] == [f"summary-{memo}", memo]

    def test_file_uri_inputs(self, workspace: Path) -> None:
        memo = workspace / "in" / "memo.txt"
        context = LocalTaskContext()

        summary = ExtractionTask().run(context, [memo.as_uri()])

        assert summary.outcomes[InputOutcome.PROCESSED] == 1
        key, document = context.channel.pairs[0]  # type: ignore[attr-defined]
        assert key == memo.as_uri()
        assert document.get("content") == ("lunch moved",)
