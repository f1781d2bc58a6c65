"""Built-in command types."""

from ingestline.plugins.base import BaseCommand
from ingestline.plugins.commands.control import DropRecord, Filter, Fork, If, TryRules
from ingestline.plugins.commands.dates import ParseDates
from ingestline.plugins.commands.extract import ExtractContent
from ingestline.plugins.commands.fields import AddValues, RemoveFields, RenameField, SetValues
from ingestline.plugins.commands.load import LoadDocuments
from ingestline.plugins.commands.log import LogRecord
from ingestline.plugins.commands.script import ScriptedCommand
from ingestline.plugins.hookspecs import hookimpl

BUILTIN_COMMANDS: tuple[type[BaseCommand], ...] = (
    SetValues,
    AddValues,
    RemoveFields,
    RenameField,
    Filter,
    DropRecord,
    Fork,
    If,
    TryRules,
    ScriptedCommand,
    ExtractContent,
    ParseDates,
    LogRecord,
    LoadDocuments,
)


class BuiltinCommands:
    """Registers the built-in command types with the CommandRegistry."""

    @hookimpl
    def ingestline_get_commands(self) -> list[type[BaseCommand]]:
        return list(BUILTIN_COMMANDS)


__all__ = [
    "BUILTIN_COMMANDS",
    "AddValues",
    "BuiltinCommands",
    "DropRecord",
    "ExtractContent",
    "Filter",
    "Fork",
    "If",
    "LoadDocuments",
    "LogRecord",
    "ParseDates",
    "RemoveFields",
    "RenameField",
    "ScriptedCommand",
    "SetValues",
    "TryRules",
]
