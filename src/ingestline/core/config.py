# src/ingestline/core/config.py
"""
Configuration schema and loading for extraction tasks.

A task receives a flat string-to-string configuration map from its framework.
Two things are derived from it:

- TaskSettings: task-scoped keys (identity prefix, random seed, liveness
  interval), read directly from the flat map.
- ExtractionSettings: the command chain, schema and extractor configuration,
  loaded from the YAML file named by EXTRACTION_CONFIG_KEY with Dynaconf,
  then overlaid with any flat "ingestline.extraction.*" keys.

Uses Pydantic for validation. Settings are frozen (immutable) after
construction.
"""

import os
import re
from collections.abc import Mapping
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator

from ingestline.contracts.errors import ConfigurationError

# Flat configuration keys
EXTRACTION_KEY_MARKER = "extraction"
EXTRACTION_PREFIX = "ingestline.extraction."
EXTRACTION_CONFIG_KEY = "ingestline.extraction.config"
ID_PREFIX_KEY = "ingestline.task.id_prefix"
RANDOM_SEED_KEY = "ingestline.task.random_seed"
LIVENESS_INTERVAL_KEY = "ingestline.liveness.interval_seconds"

# Sentinel value of ID_PREFIX_KEY selecting the random identity policy
RANDOM_ID_PREFIX = "random"

DEFAULT_UNIQUE_KEY = "id"

# strftime equivalents of the classic extracting-handler default date formats
DEFAULT_DATE_FORMATS: tuple[str, ...] = (
    "%Y-%m-%dT%H:%M:%SZ",
    "%Y-%m-%dT%H:%M:%S.%fZ",
    "%Y-%m-%dT%H:%M:%S",
    "%Y-%m-%dT%H:%M:%S%z",
    "%Y-%m-%d",
    "%Y-%m-%d %H:%M:%S",
    "%Y-%m-%d %I:%M:%S %p",
    "%a %b %d %H:%M:%S %Z %Y",
    "%a, %d %b %Y %H:%M:%S %Z",
    "%A, %d-%b-%y %H:%M:%S %Z",
    "%a %b %d %H:%M:%S %Y",
)

_ENV_VAR_PATTERN = re.compile(r"\$\{([A-Za-z_][A-Za-z0-9_]*)(?::-([^}]*))?\}")


class SchemaSettings(BaseModel):
    """Index schema facts the core depends on.

    The schema itself is owned by the index; only the unique key field name
    and the accepted date formats cross this boundary.
    """

    model_config = {"frozen": True, "extra": "forbid"}

    unique_key: str = Field(default=DEFAULT_UNIQUE_KEY, min_length=1, description="Name of the unique identity field")
    date_formats: tuple[str, ...] = Field(
        default=DEFAULT_DATE_FORMATS,
        description="strftime formats accepted when parsing date fields",
    )

    @field_validator("date_formats")
    @classmethod
    def validate_date_formats_not_empty(cls, v: tuple[str, ...]) -> tuple[str, ...]:
        if not v:
            raise ValueError("date_formats cannot be empty")
        return v


class ExtractorSettings(BaseModel):
    """Which extractor the extract_content command uses."""

    model_config = {"frozen": True, "extra": "forbid"}

    name: str = Field(default="plain_text", description="Registered extractor name")
    options: dict[str, Any] = Field(default_factory=dict, description="Extractor-specific options")


def _default_commands() -> list[dict[str, Any]]:
    return [{"extract_content": {}}, {"load_documents": {}}]


class ExtractionSettings(BaseModel):
    """Top-level extraction configuration.

    Example YAML:
        schema:
          unique_key: id
        extractor:
          name: plain_text
          options:
            charset: utf-8
        commands:
          - extract_content: {}
          - filter:
              condition: "len(record.get('content')) > 0"
          - load_documents: {}
    """

    model_config = {"frozen": True, "extra": "forbid"}

    schema_settings: SchemaSettings = Field(default_factory=SchemaSettings, alias="schema")
    extractor: ExtractorSettings = Field(default_factory=ExtractorSettings)
    commands: list[dict[str, Any]] = Field(
        default_factory=_default_commands,
        description="Command chain: list of single-key {command_type: options} mappings",
    )

    @field_validator("commands")
    @classmethod
    def validate_commands_not_empty(cls, v: list[dict[str, Any]]) -> list[dict[str, Any]]:
        if not v:
            raise ValueError("commands cannot be empty")
        return v


class TaskSettings(BaseModel):
    """Task-scoped settings read from the flat configuration map."""

    model_config = {"frozen": True, "extra": "forbid"}

    id_prefix: str | None = Field(default=None, description="Literal identity prefix, or 'random'")
    random_seed: str | None = Field(default=None, description="Seed for the random identity prefix policy")
    liveness_interval_seconds: float = Field(default=60.0, gt=0)
    extraction_config: str | None = Field(default=None, description="Location of the extraction config YAML")

    @classmethod
    def from_configuration(cls, configuration: Mapping[str, str]) -> "TaskSettings":
        """Build settings from the framework's flat configuration map.

        Raises:
            ConfigurationError: If a value fails validation
        """
        raw: dict[str, Any] = {
            "id_prefix": configuration.get(ID_PREFIX_KEY),
            "random_seed": configuration.get(RANDOM_SEED_KEY),
            "extraction_config": configuration.get(EXTRACTION_CONFIG_KEY),
        }
        if LIVENESS_INTERVAL_KEY in configuration:
            raw["liveness_interval_seconds"] = configuration[LIVENESS_INTERVAL_KEY]
        try:
            return cls.model_validate(raw)
        except ValidationError as e:
            raise ConfigurationError(f"Invalid task configuration: {e}") from e


def extraction_parameters(configuration: Mapping[str, str]) -> dict[str, str]:
    """Return the subset of the flat configuration relevant to extraction.

    Keys containing "extraction" with a non-None value are kept.
    """
    return {key: value for key, value in configuration.items() if value is not None and EXTRACTION_KEY_MARKER in key}


def _expand_env_vars(config: dict[str, Any]) -> dict[str, Any]:
    """Recursively expand ${VAR} and ${VAR:-default} patterns in config values."""

    def _expand_string(value: str) -> str:
        def replacer(match: re.Match[str]) -> str:
            env_value = os.environ.get(match.group(1))
            if env_value is not None:
                return env_value
            default = match.group(2)
            if default is not None:
                return default
            # Unresolved references are left as-is and surface in validation
            return match.group(0)

        return _ENV_VAR_PATTERN.sub(replacer, value)

    def _expand_value(value: Any) -> Any:
        if isinstance(value, str):
            return _expand_string(value)
        elif isinstance(value, dict):
            return {k: _expand_value(v) for k, v in value.items()}
        elif isinstance(value, list):
            return [_expand_value(item) for item in value]
        else:
            return value

    return {k: _expand_value(v) for k, v in config.items()}


def _apply_flat_overrides(raw_config: dict[str, Any], parameters: Mapping[str, str]) -> dict[str, Any]:
    """Overlay "ingestline.extraction.a.b=value" keys onto the nested config.

    Values are parsed as YAML scalars or flow collections so list-valued
    settings (e.g. schema.date_formats) can be overridden from a flat map.
    """
    merged = dict(raw_config)
    for key, value in sorted(parameters.items()):
        if key == EXTRACTION_CONFIG_KEY or not key.startswith(EXTRACTION_PREFIX):
            continue
        path = key[len(EXTRACTION_PREFIX) :].split(".")
        target = merged
        for part in path[:-1]:
            nested = target.get(part)
            nested = dict(nested) if isinstance(nested, dict) else {}
            target[part] = nested
            target = nested
        target[path[-1]] = yaml.safe_load(value)
    return merged


def _read_config_file(config_path: Path) -> dict[str, Any]:
    from dynaconf import Dynaconf

    # Dynaconf silently accepts missing files
    if not config_path.exists():
        raise ConfigurationError(f"Extraction config not found: {config_path}")

    dynaconf_settings = Dynaconf(
        envvar_prefix="INGESTLINE",
        settings_files=[str(config_path)],
        environments=False,
        load_dotenv=False,
        merge_enabled=True,
    )
    internal_keys = {"LOAD_DOTENV", "ENVIRONMENTS", "SETTINGS_FILES"}
    # Dynaconf returns uppercase top-level keys; pydantic expects lowercase
    return {k.lower(): v for k, v in dynaconf_settings.as_dict().items() if k not in internal_keys}


def load_extraction_settings(
    config_path: Path | None,
    parameters: Mapping[str, str] | None = None,
) -> ExtractionSettings:
    """Load extraction settings from YAML with environment and flat-key overrides.

    Precedence (highest first):
    1. Flat "ingestline.extraction.*" keys from the task configuration
    2. Environment variables (INGESTLINE_*)
    3. Config file
    4. Defaults from the Pydantic schema

    Args:
        config_path: YAML file location, or None to use defaults only
        parameters: Extraction subset of the flat task configuration

    Returns:
        Validated ExtractionSettings

    Raises:
        ConfigurationError: If the file is missing or validation fails
    """
    raw_config: dict[str, Any] = {} if config_path is None else _read_config_file(config_path)
    raw_config = _expand_env_vars(raw_config)
    if parameters:
        raw_config = _apply_flat_overrides(raw_config, parameters)
    try:
        return ExtractionSettings.model_validate(raw_config)
    except ValidationError as e:
        raise ConfigurationError(f"Invalid extraction configuration: {e}") from e
