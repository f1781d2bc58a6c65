# src/ingestline/engine/chain.py
"""Builds command chains from declarative configuration.

A chain is configured as a list of single-key mappings, each naming a command
type and its options:

    commands:
      - extract_content: {}
      - set_values:
          values: {source: crawler}
      - load_documents: {}

Each command's child is the next command in the list; the last command's
child is the chain's final child. Branching commands (fork, if, try_rules)
build their nested sub-chains through the same builder.

Building is fail-fast and deterministic: every command type is resolved and
every option validated when the task is set up, and the same configuration
always yields a structurally identical chain (compare Chain.describe()).
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Any

import structlog

from ingestline.contracts.errors import ChainBuildError, ConfigurationError
from ingestline.contracts.extractor import Extractor
from ingestline.contracts.loader import DocumentLoader
from ingestline.contracts.record import Record
from ingestline.core.schema import ResolvedSchema
from ingestline.engine.expression_parser import ExpressionSecurityError, ExpressionSyntaxError
from ingestline.plugins.base import BaseCommand, Command, EndOfChain, describe_chain
from ingestline.plugins.context import CommandContext
from ingestline.plugins.manager import CommandRegistry

logger = structlog.get_logger(__name__)


def _parse_entry(entry: Any, path: str) -> tuple[str, dict[str, Any] | None]:
    """Split a {command_type: options} entry into its parts."""
    if not isinstance(entry, dict) or len(entry) != 1:
        raise ChainBuildError(
            f"each command must be a mapping with exactly one key (the command type), got {entry!r}",
            path=path,
        )
    ((command_type, options),) = entry.items()
    if not isinstance(command_type, str):
        raise ChainBuildError(f"command type must be a string, got {command_type!r}", path=path)
    return command_type, options


@dataclass
class Chain:
    """A built command chain.

    Attributes:
        root: First command; process() enters here
        commands: Top-level commands in configured order
    """

    root: Command
    commands: list[BaseCommand] = field(default_factory=list)

    def process(self, record: Record) -> bool:
        return self.root.process(record)

    def describe(self) -> list[dict[str, Any]]:
        return describe_chain(self.root)

    def close(self) -> None:
        """Close every top-level command; branching commands close their sub-chains."""
        for command in self.commands:
            command.close()


class ChainBuilder:
    """Resolves command types against a registry and wires chains together.

    Example:
        builder = ChainBuilder(registry, schema=schema, loader=loader, extractor=extractor)
        chain = builder.build_chain(settings.commands)
    """

    def __init__(
        self,
        registry: CommandRegistry,
        *,
        schema: ResolvedSchema,
        loader: DocumentLoader,
        extractor: Extractor,
    ) -> None:
        self._registry = registry
        self._context = CommandContext(schema=schema, loader=loader, extractor=extractor, builder=self)

    @property
    def context(self) -> CommandContext:
        return self._context

    def build_chain(self, commands: Sequence[dict[str, Any]], *, path: str = "commands") -> Chain:
        """Build the root chain, ending in EndOfChain.

        Raises:
            ChainBuildError: On unknown command types or invalid options
        """
        if not commands:
            raise ChainBuildError("chain has no commands", path=path)
        built: list[BaseCommand] = []
        root = self._build(commands, path=path, final_child=EndOfChain(), built=built)
        logger.debug("Built command chain", commands=[c.name for c in built])
        return Chain(root=root, commands=built)

    def build(self, commands: Sequence[dict[str, Any]], *, path: str, final_child: Command) -> Command:
        """Build a nested sub-chain whose last command forwards to final_child.

        An empty list yields final_child itself.
        """
        return self._build(commands, path=path, final_child=final_child, built=[])

    def _build(
        self,
        commands: Sequence[dict[str, Any]],
        *,
        path: str,
        final_child: Command,
        built: list[BaseCommand],
    ) -> Command:
        if not isinstance(commands, list | tuple):
            raise ChainBuildError(f"expected a list of commands, got {type(commands).__name__}", path=path)

        child = final_child
        # Children first, so each constructor receives its wired child
        for index in reversed(range(len(commands))):
            entry_path = f"{path}[{index}]"
            command_type, options = _parse_entry(commands[index], entry_path)
            command_cls = self._registry.get_command_by_name(command_type)
            if command_cls is None:
                known = ", ".join(sorted(c.name for c in self._registry.get_commands()))
                raise ChainBuildError(f"unknown command type {command_type!r} (known: {known})", path=entry_path)
            try:
                command = command_cls(options, self._context, child, path=entry_path)
            except ChainBuildError:
                raise
            except (ConfigurationError, ExpressionSyntaxError, ExpressionSecurityError) as e:
                raise ChainBuildError(str(e), path=entry_path) from e
            built.append(command)
            child = command
        built.reverse()
        return child
