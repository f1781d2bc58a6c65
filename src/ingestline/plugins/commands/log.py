"""log: emit the record's fields as a structured log event."""

from typing import Literal

import structlog
from pydantic import Field

from ingestline.contracts.record import ATTACHMENT_PREFIX, Record
from ingestline.plugins.base import BaseCommand
from ingestline.plugins.config_base import CommandConfig

logger = structlog.get_logger(__name__)


class LogConfig(CommandConfig):
    level: Literal["debug", "info", "warning"] = "debug"
    message: str = "Record"
    fields: list[str] | None = Field(default=None, description="Fields to include; all non-attachment fields if omitted")


class LogRecord(BaseCommand):
    name = "log"
    config_class = LogConfig

    def process(self, record: Record) -> bool:
        if self.config.fields is None:
            shown = {k: v for k, v in record.items() if not k.startswith(ATTACHMENT_PREFIX)}
        else:
            shown = {k: record.get(k) for k in self.config.fields}
        getattr(logger, self.config.level)(self.config.message, command=self.path, record=shown)
        return self.forward(record)
