# src/ingestline/plugins/base.py
"""Base class for command implementations.

Every command follows one contract:

    process(record) -> bool

True means the record was accepted and forwarded to the child (or emitted, for
terminal commands). False means the record was filtered; nothing further down
that branch sees it, and the caller propagates False upward unless it is a
branching command designed to continue on other branches.

Commands are constructed once, at chain build time, in reverse order so each
command receives its already-built child. Constructors validate options via
their CommandConfig model and must raise on any configuration problem so the
task fails at setup rather than on its first record.

Lifecycle:
    __init__(options, context, child, path) -> process(record)* -> close()

Commands must not keep per-record mutable state between process() calls
unless it is intended to accumulate (counters).
"""

from abc import ABC, abstractmethod
from typing import Any, ClassVar, Protocol, runtime_checkable

from ingestline.contracts.record import Record
from ingestline.plugins.config_base import CommandConfig
from ingestline.plugins.context import CommandContext


@runtime_checkable
class Command(Protocol):
    """Anything that can sit in a chain."""

    def process(self, record: Record) -> bool: ...

    def describe(self) -> dict[str, Any]: ...

    def close(self) -> None: ...


class EndOfChain:
    """Final child of the root chain: accepts everything, emits nothing."""

    name = "end"

    def process(self, record: Record) -> bool:
        return True

    def describe(self) -> dict[str, Any]:
        return {"type": self.name}

    def close(self) -> None:
        pass


def describe_chain(head: Command, stop_at: Command | None = None) -> list[dict[str, Any]]:
    """Describe commands from head along child links until stop_at.

    Args:
        head: First command of the (sub-)chain
        stop_at: Command where the sub-chain rejoins its parent, if any

    Returns:
        One description per command, in chain order
    """
    described: list[dict[str, Any]] = []
    current: Command | None = head
    while current is not None and current is not stop_at:
        described.append(current.describe())
        current = current.child if isinstance(current, BaseCommand) else None
    return described


def close_chain(head: Command, stop_at: Command | None = None) -> None:
    """Close commands from head along child links until stop_at."""
    current: Command | None = head
    while current is not None and current is not stop_at:
        current.close()
        current = current.child if isinstance(current, BaseCommand) else None


class BaseCommand(ABC):
    """Base class for all commands.

    Subclasses set ``name`` (the type name used in configuration) and
    ``config_class`` (their options model), and implement process().

    Example:
        class Uppercase(BaseCommand):
            name = "uppercase"
            config_class = UppercaseConfig

            def process(self, record: Record) -> bool:
                record[self.config.field] = [v.upper() for v in record.get(self.config.field)]
                return self.forward(record)
    """

    name: ClassVar[str]
    config_class: ClassVar[type[CommandConfig]] = CommandConfig

    def __init__(
        self,
        options: dict[str, Any] | None,
        context: CommandContext,
        child: Command,
        *,
        path: str,
    ) -> None:
        """Validate options and wire the child.

        Args:
            options: Raw options mapping from the extraction config
            context: Immutable build-time dependencies
            child: Next command in this chain
            path: Config path of this command, used in error messages

        Raises:
            CommandConfigError: If options are invalid
        """
        self.path = path
        self.context = context
        self.child = child
        self.config: Any = self.config_class.from_dict(options)

    @abstractmethod
    def process(self, record: Record) -> bool:
        """Transform, filter or forward a record."""

    def forward(self, record: Record) -> bool:
        """Hand the record to the child and return its verdict."""
        return self.child.process(record)

    def describe(self) -> dict[str, Any]:
        """Structural description of this command, for comparing built chains."""
        description: dict[str, Any] = {
            "type": self.name,
            "path": self.path,
            "options": self.config.model_dump(mode="json"),
        }
        branches = self.describe_branches()
        if branches:
            description["branches"] = branches
        return description

    def describe_branches(self) -> dict[str, list[dict[str, Any]]]:
        """Descriptions of nested sub-chains; empty for linear commands."""
        return {}

    def close(self) -> None:
        """Release resources. Override when the command holds any."""
        pass

    def __repr__(self) -> str:
        return f"{type(self).__name__}(path={self.path!r})"
