"""Scripted command: transformation logic embedded in configuration.

Example YAML:
    - script:
        script: |
          if "hello" not in record.get("tags"):
              return False
          record["tags"].append("world")
          return child.process(record)

The script is parsed and validated when the chain is built; a syntax error
or forbidden construct fails task setup. Failures while running the script
against a record are raised as ScriptEvaluationError, which the task counts
as a per-input error. Errors raised further down the chain (via
child.process) keep their own category.
"""

from typing import Any

import structlog
from pydantic import Field

from ingestline.contracts.errors import RecordProcessingError, ScriptEvaluationError
from ingestline.contracts.record import Record
from ingestline.engine.expression_parser import ExpressionEvaluationError, ExpressionSecurityError
from ingestline.engine.script import FALL_THROUGH, Script
from ingestline.plugins.base import BaseCommand, Command
from ingestline.plugins.config_base import CommandConfig
from ingestline.plugins.context import CommandContext

logger = structlog.get_logger(__name__)


class ScriptConfig(CommandConfig):
    script: str = Field(..., min_length=1, description="Restricted Python statements run per record")


class ScriptedCommand(BaseCommand):
    """Runs an embedded script under the process(record) -> bool contract.

    ``return <value>`` ends the script with bool(value) as the verdict;
    falling off the end forwards the record to the child.

    Attributes:
        errors: Number of records whose script evaluation failed
    """

    name = "script"
    config_class = ScriptConfig

    def __init__(self, options: dict[str, Any] | None, context: CommandContext, child: Command, *, path: str) -> None:
        super().__init__(options, context, child, path=path)
        self._script = Script(self.config.script)
        self.errors = 0

    def process(self, record: Record) -> bool:
        try:
            result = self._script.run(record, self.child)
        except RecordProcessingError:
            raise
        except (ExpressionEvaluationError, ExpressionSecurityError, ArithmeticError, LookupError, TypeError, ValueError) as e:
            self.errors += 1
            logger.warning("Script evaluation failed", command=self.path, error=str(e), error_type=type(e).__name__)
            raise ScriptEvaluationError(str(e), command=self.path) from e
        if result is FALL_THROUGH:
            return self.forward(record)
        return bool(result)
