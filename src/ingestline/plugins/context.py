# src/ingestline/plugins/context.py
"""Build-time context handed to every command constructor.

The context is an explicit, immutable bundle of what commands may depend on:
schema facts, the document loader, the extractor, and a way to build nested
sub-chains. It replaces hidden sharing of task fields between the task, the
commands and the loader.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Protocol

from ingestline.contracts.extractor import Extractor
from ingestline.contracts.loader import DocumentLoader
from ingestline.core.schema import ResolvedSchema

if TYPE_CHECKING:
    from ingestline.plugins.base import Command


class SubchainBuilder(Protocol):
    """Builds a nested chain from a list of command configs."""

    def build(self, commands: Sequence[dict[str, Any]], *, path: str, final_child: Command) -> Command: ...


@dataclass(frozen=True)
class CommandContext:
    """Immutable dependencies available to commands.

    Attributes:
        schema: Unique key and date formats from the schema boundary
        loader: Where terminal commands emit documents
        extractor: Content extractor used by extract_content
        builder: Builds sub-chains for branching commands
    """

    schema: ResolvedSchema
    loader: DocumentLoader
    extractor: Extractor
    builder: SubchainBuilder
