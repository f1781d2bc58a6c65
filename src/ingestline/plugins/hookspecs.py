# src/ingestline/plugins/hookspecs.py
"""pluggy hook specifications for ingestline plugins.

Command types and extractors register themselves by implementing these
hooks. The CommandRegistry calls them during discovery.

Usage (implementing a plugin):
    from ingestline.plugins.hookspecs import hookimpl

    class MyCommands:
        @hookimpl
        def ingestline_get_commands(self):
            return [MyCommand]
"""

from typing import TYPE_CHECKING

import pluggy

if TYPE_CHECKING:
    from ingestline.contracts.extractor import Extractor
    from ingestline.plugins.base import BaseCommand

# Project name for pluggy
PROJECT_NAME = "ingestline"

hookspec = pluggy.HookspecMarker(PROJECT_NAME)
hookimpl = pluggy.HookimplMarker(PROJECT_NAME)


class IngestlineCommandSpec:
    """Hook specifications for command plugins."""

    @hookspec
    def ingestline_get_commands(self) -> list[type["BaseCommand"]]:  # type: ignore[empty-body]
        """Return command classes (not instances)."""


class IngestlineExtractorSpec:
    """Hook specifications for extractor plugins."""

    @hookspec
    def ingestline_get_extractors(self) -> list[type["Extractor"]]:  # type: ignore[empty-body]
        """Return extractor classes (not instances)."""
