# src/ingestline/cli.py
"""ingestline command line interface.

Local runner that plays the batch framework for a single task: reads input
locations, runs them through the configured chain, and writes the produced
documents to a JSON Lines file.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING

import typer
import yaml

from ingestline import __version__
from ingestline.contracts.errors import ConfigurationError, IngestlineError

if TYPE_CHECKING:
    from ingestline.engine.local import LocalTaskContext
    from ingestline.plugins.manager import CommandRegistry

__all__ = ["app"]

# Module-level singleton for the command registry
_registry_cache: CommandRegistry | None = None


def _get_registry() -> CommandRegistry:
    """Get initialized command registry (singleton)."""
    global _registry_cache

    from ingestline.plugins.manager import CommandRegistry

    if _registry_cache is None:
        registry = CommandRegistry()
        registry.register_builtin_plugins()
        _registry_cache = registry
    return _registry_cache


app = typer.Typer(
    name="ingestline",
    help="ingestline: batch extraction and indexing tasks.",
    no_args_is_help=True,
)


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        typer.echo(f"ingestline version {__version__}")
        raise typer.Exit()


def _load_dotenv(env_file: Path | None = None) -> bool:
    """Load environment variables from a .env file.

    Raises:
        typer.Exit: If an explicit env_file path doesn't exist
    """
    from dotenv import load_dotenv

    if env_file is not None:
        if not env_file.exists():
            typer.secho(f"Error: .env file not found: {env_file}", fg=typer.colors.RED, err=True)
            raise typer.Exit(1)
        return load_dotenv(env_file, override=False)
    return load_dotenv(override=False)


@app.callback()
def main(
    version: bool | None = typer.Option(
        None,
        "--version",
        "-V",
        callback=version_callback,
        is_eager=True,
        help="Show version and exit.",
    ),
    log_level: str = typer.Option(
        "INFO",
        "--log-level",
        "-l",
        help="Log level (DEBUG, INFO, WARNING, ERROR).",
    ),
    json_logs: bool = typer.Option(
        False,
        "--json-logs",
        help="Output structured JSON logs (for machine processing).",
    ),
    no_dotenv: bool = typer.Option(
        False,
        "--no-dotenv",
        help="Skip loading .env file.",
    ),
    env_file: Path | None = typer.Option(
        None,
        "--env-file",
        help="Path to .env file (skips automatic search).",
    ),
) -> None:
    """ingestline: batch extraction and indexing tasks."""
    from ingestline.core.logging import configure_logging

    configure_logging(json_output=json_logs, level=log_level.upper())

    if not no_dotenv:
        _load_dotenv(env_file=env_file)
    elif env_file is not None:
        typer.secho("Warning: --env-file ignored because --no-dotenv is set.", fg=typer.colors.YELLOW, err=True)


def _format_error(title: str, message: str, hint: str | None = None) -> None:
    """Display a formatted error panel on stderr."""
    from rich.console import Console
    from rich.panel import Panel
    from rich.text import Text

    content = Text()
    content.append(message, style="white")
    if hint:
        content.append("\n\n")
        content.append("Hint: ", style="yellow bold")
        content.append(hint, style="yellow")

    Console(stderr=True).print(Panel(content, title=f"[red bold]{title}[/]", border_style="red", padding=(0, 1)))


def _parse_params(params: list[str]) -> dict[str, str]:
    parsed: dict[str, str] = {}
    for param in params:
        key, sep, value = param.partition("=")
        if not sep or not key:
            _format_error("Invalid Parameter", f"Expected KEY=VALUE, got {param!r}")
            raise typer.Exit(1)
        parsed[key.strip()] = value
    return parsed


def _collect_inputs(paths: list[str], inputs_file: Path | None) -> list[str]:
    inputs = list(paths)
    if inputs_file is not None:
        try:
            lines = inputs_file.read_text(encoding="utf-8").splitlines()
        except OSError as e:
            _format_error("Input List Unreadable", str(e))
            raise typer.Exit(1) from None
        inputs.extend(line.strip() for line in lines if line.strip() and not line.lstrip().startswith("#"))
    return inputs


def _print_counters(context: LocalTaskContext) -> None:
    for group, counters in context.counters().items():
        typer.echo(f"{group}:")
        for name, value in counters.items():
            typer.echo(f"  {name:20} {value}")


@app.command()
def run(
    paths: list[str] = typer.Argument(None, help="Input locations to process, in order."),
    config: Path | None = typer.Option(
        None,
        "--config",
        "-c",
        help="Path to extraction config YAML (defaults to extract_content + load_documents).",
    ),
    inputs_file: Path | None = typer.Option(
        None,
        "--inputs-file",
        "-i",
        help="File listing one input location per line.",
    ),
    output: Path | None = typer.Option(
        None,
        "--output",
        "-o",
        help="JSON Lines file receiving the produced documents.",
    ),
    id_prefix: str | None = typer.Option(
        None,
        "--id-prefix",
        help="Literal document id prefix, or 'random' for a per-document random prefix.",
    ),
    seed: str | None = typer.Option(
        None,
        "--seed",
        help="Seed for the random id prefix (defaults to the task id).",
    ),
    task_id: str = typer.Option(
        "local-task-0",
        "--task-id",
        help="Task identifier reported to the pipeline.",
    ),
    params: list[str] = typer.Option(
        [],
        "--param",
        "-p",
        help="Extra configuration entry KEY=VALUE (repeatable).",
    ),
    output_format: str = typer.Option(
        "console",
        "--format",
        "-f",
        help="Summary format: 'console' or 'json'.",
    ),
) -> None:
    """Run one extraction task over the given inputs."""
    from ingestline.core.config import EXTRACTION_CONFIG_KEY, ID_PREFIX_KEY, RANDOM_SEED_KEY
    from ingestline.engine.local import JsonLinesChannel, ListChannel, LocalTaskContext
    from ingestline.engine.task import ExtractionTask

    if output_format not in ("console", "json"):
        _format_error("Invalid Format", f"Unknown format {output_format!r}", hint="Use 'console' or 'json'.")
        raise typer.Exit(1)

    inputs = _collect_inputs(paths or [], inputs_file)
    configuration = _parse_params(params)
    if config is not None:
        configuration[EXTRACTION_CONFIG_KEY] = str(config.expanduser())
    if id_prefix is not None:
        configuration[ID_PREFIX_KEY] = id_prefix
    if seed is not None:
        configuration[RANDOM_SEED_KEY] = seed

    channel = JsonLinesChannel(output) if output is not None else ListChannel()
    context = LocalTaskContext(configuration, task_id=task_id, channel=channel)
    task = ExtractionTask(registry=_get_registry())
    try:
        summary = task.run(context, inputs)
    except ConfigurationError as e:
        _format_error("Configuration Error", str(e), hint="Run 'ingestline validate' to check the extraction config.")
        raise typer.Exit(1) from None
    except IngestlineError as e:
        _format_error("Task Failed", str(e))
        raise typer.Exit(1) from None
    finally:
        if isinstance(channel, JsonLinesChannel):
            channel.close()

    if output_format == "json":
        typer.echo(
            json.dumps(
                {
                    "task_id": task_id,
                    "outcomes": {outcome.value: count for outcome, count in summary.outcomes.items()},
                    "failed_inputs": summary.failed_inputs,
                    "counters": context.counters(),
                }
            )
        )
        return

    typer.echo(f"Processed {summary.total} input(s)")
    for outcome, count in summary.outcomes.items():
        typer.echo(f"  {outcome.value:20} {count}")
    _print_counters(context)
    if output is not None:
        typer.echo(f"Documents written to {output}")


@app.command()
def validate(
    config: Path = typer.Option(
        ...,
        "--config",
        "-c",
        help="Path to extraction config YAML.",
    ),
) -> None:
    """Build the command chain without running it and print its structure."""
    from ingestline.core.config import load_extraction_settings
    from ingestline.core.identity import IdentityPolicy
    from ingestline.core.schema import ConfigSchemaResolver
    from ingestline.engine.chain import ChainBuilder
    from ingestline.engine.loader import LoaderContext, OutputChannelDocumentLoader
    from ingestline.engine.local import ListChannel
    from ingestline.engine.task import create_extractor

    registry = _get_registry()
    try:
        settings = load_extraction_settings(config.expanduser())
        schema = ConfigSchemaResolver(settings.schema_settings).resolve()
        extractor = create_extractor(registry, settings)
        loader = OutputChannelDocumentLoader(LoaderContext(schema.unique_key, IdentityPolicy.passthrough(), ListChannel()))
        chain = ChainBuilder(registry, schema=schema, loader=loader, extractor=extractor).build_chain(settings.commands)
    except ConfigurationError as e:
        _format_error("Configuration Validation Failed", str(e), hint="Check command names, options and script syntax.")
        raise typer.Exit(1) from None

    typer.echo("Extraction configuration valid!")
    typer.echo(f"  Unique key: {schema.unique_key}")
    typer.echo(f"  Extractor: {extractor.name}")
    typer.echo(f"  Commands: {len(chain.commands)}")
    typer.echo(yaml.safe_dump(chain.describe(), sort_keys=False, default_flow_style=False).rstrip())
    chain.close()
    extractor.close()


@dataclass(frozen=True)
class CommandInfo:
    """Metadata for a registered command or extractor.

    Attributes:
        name: The identifier used in configuration files.
        description: First line of the class docstring.
    """

    name: str
    description: str


def _describe(cls: type) -> str:
    if cls.__doc__:
        for line in cls.__doc__.strip().split("\n"):
            cleaned = line.strip()
            if cleaned:
                return cleaned
    return f"{getattr(cls, 'name', cls.__name__)} command"


@app.command("commands")
def commands_list() -> None:
    """List available command types and extractors."""
    registry = _get_registry()
    sections = {
        "commands": [CommandInfo(cls.name, _describe(cls)) for cls in registry.get_commands()],
        "extractors": [CommandInfo(cls.name, _describe(cls)) for cls in registry.get_extractors()],
    }
    for title, infos in sections.items():
        typer.echo(f"\n{title.upper()}:")
        if not infos:
            typer.echo("  (none available)")
        for info in sorted(infos, key=lambda i: i.name):
            typer.echo(f"  {info.name:20} - {info.description}")
    typer.echo()
