"""load_documents: terminal command handing the record to the DocumentLoader."""

from ingestline.contracts.record import Document, Record
from ingestline.plugins.base import BaseCommand


class LoadDocuments(BaseCommand):
    """Snapshot the record as a Document and load it.

    Usually the last command of a chain or branch. Anything configured after
    it still runs, so a chain can load a record and keep transforming it for
    a second load further down.
    """

    name = "load_documents"

    def process(self, record: Record) -> bool:
        document = Document.from_record(record, self.context.schema.unique_key)
        self.context.loader.load([document])
        return self.forward(record)
