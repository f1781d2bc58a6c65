# src/ingestline/plugins/config_base.py
"""Base class for typed command configurations.

Command options arrive as plain dicts from the extraction config. Each command
declares a pydantic model that rejects unknown keys and reports missing
required options by name, so a broken chain fails at task setup rather than
on the first record.

Example usage:
    class RenameFieldConfig(CommandConfig):
        source: str
        target: str

    cfg = RenameFieldConfig.from_dict(options)
"""

from typing import Any, Self

from pydantic import BaseModel, ValidationError

from ingestline.contracts.errors import ConfigurationError


class CommandConfigError(ConfigurationError):
    """Raised when command configuration is invalid."""


class CommandConfig(BaseModel):
    """Base class for typed command configurations."""

    model_config = {"extra": "forbid", "frozen": True}

    @classmethod
    def from_dict(cls, config: dict[str, Any] | None) -> Self:
        """Create config from dict with a clear error on validation failure.

        None is accepted as an empty mapping (``- load_documents:`` in YAML).

        Raises:
            CommandConfigError: If configuration is invalid.
        """
        if config is None:
            config = {}
        if not isinstance(config, dict):
            raise CommandConfigError(f"Invalid configuration for {cls.__name__}: options must be a mapping, got {type(config).__name__}.")
        try:
            return cls.model_validate(config)
        except ValidationError as e:
            raise CommandConfigError(f"Invalid configuration for {cls.__name__}: {e}") from e
