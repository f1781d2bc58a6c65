# src/ingestline/plugins/manager.py
"""Command and extractor registry.

Uses pluggy for hook-based registration. Chain building looks command types
up here by name; an unknown name fails the build.
"""

from typing import Any

import pluggy

from ingestline.contracts.extractor import Extractor
from ingestline.plugins.base import BaseCommand
from ingestline.plugins.hookspecs import (
    PROJECT_NAME,
    IngestlineCommandSpec,
    IngestlineExtractorSpec,
)


class CommandRegistry:
    """Manages command/extractor registration and lookup.

    Usage:
        registry = CommandRegistry()
        registry.register_builtin_plugins()

        command_cls = registry.get_command_by_name("set_values")
    """

    def __init__(self) -> None:
        self._pm = pluggy.PluginManager(PROJECT_NAME)
        self._pm.add_hookspecs(IngestlineCommandSpec)
        self._pm.add_hookspecs(IngestlineExtractorSpec)

        # Caches - map name to class for duplicate detection
        self._commands: dict[str, type[BaseCommand]] = {}
        self._extractors: dict[str, type[Extractor]] = {}

    def register_builtin_plugins(self) -> None:
        """Register the built-in commands and extractors.

        Call this once at startup.
        """
        from ingestline.plugins.commands import BuiltinCommands
        from ingestline.plugins.extractors import BuiltinExtractors

        self.register(BuiltinCommands())
        self.register(BuiltinExtractors())

    def register(self, plugin: Any) -> None:
        """Register an object implementing one or more hooks.

        Raises:
            ValueError: If a command or extractor name is already registered
        """
        self._pm.register(plugin)
        try:
            self._refresh_caches()
        except ValueError:
            self._pm.unregister(plugin)
            raise

    def _refresh_caches(self) -> None:
        new_commands: dict[str, type[BaseCommand]] = {}
        new_extractors: dict[str, type[Extractor]] = {}

        for commands in self._pm.hook.ingestline_get_commands():
            for cls in commands:
                name = cls.name
                if name in new_commands:
                    raise ValueError(f"Duplicate command name: '{name}'. Already registered by {new_commands[name].__name__}")
                new_commands[name] = cls

        for extractors in self._pm.hook.ingestline_get_extractors():
            for cls in extractors:
                name = cls.name
                if name in new_extractors:
                    raise ValueError(f"Duplicate extractor name: '{name}'. Already registered by {new_extractors[name].__name__}")
                new_extractors[name] = cls

        self._commands = new_commands
        self._extractors = new_extractors

    def get_commands(self) -> list[type[BaseCommand]]:
        return list(self._commands.values())

    def get_extractors(self) -> list[type[Extractor]]:
        return list(self._extractors.values())

    def get_command_by_name(self, name: str) -> type[BaseCommand] | None:
        return self._commands.get(name)

    def get_extractor_by_name(self, name: str) -> type[Extractor] | None:
        return self._extractors.get(name)
