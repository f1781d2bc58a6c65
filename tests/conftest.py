# tests/conftest.py
"""Shared test fixtures.

Hypothesis Configuration:
- "ci" profile: Fast tests for CI (100 examples) - default
- "nightly" profile: Thorough tests (1000 examples)
- "debug" profile: Minimal tests with verbose output (10 examples)

Set profile via environment variable:
    HYPOTHESIS_PROFILE=nightly pytest tests/property/
"""

from __future__ import annotations

import logging
import os
from collections.abc import Callable, Iterator
from typing import Any

import pytest
import structlog
from hypothesis import Phase, Verbosity, settings

from ingestline.core.config import DEFAULT_DATE_FORMATS
from ingestline.core.schema import ResolvedSchema
from ingestline.engine.chain import Chain, ChainBuilder
from ingestline.plugins.manager import CommandRegistry
from tests.fixtures import InMemoryFileSystem, RecordingLoader, StubExtractor

# =============================================================================
# Logging isolation
# =============================================================================


@pytest.fixture(autouse=True)
def _reset_logging() -> Iterator[None]:
    """Undo configure_logging() and context bindings made during a test.

    CLI tests configure logging against CliRunner's captured stderr, which is
    closed once the invocation returns.
    """
    yield
    structlog.contextvars.clear_contextvars()
    root = logging.getLogger()
    root.handlers = []
    root.setLevel(logging.WARNING)
    structlog.reset_defaults()


# =============================================================================
# Chain-building fixtures
# =============================================================================


@pytest.fixture
def registry() -> CommandRegistry:
    registry = CommandRegistry()
    registry.register_builtin_plugins()
    return registry


@pytest.fixture
def schema() -> ResolvedSchema:
    return ResolvedSchema(unique_key="id", date_formats=DEFAULT_DATE_FORMATS)


@pytest.fixture
def recording_loader() -> RecordingLoader:
    loader = RecordingLoader()
    loader.begin_transaction()
    return loader


@pytest.fixture
def stub_extractor() -> StubExtractor:
    return StubExtractor()


@pytest.fixture
def memory_fs() -> InMemoryFileSystem:
    return InMemoryFileSystem()


@pytest.fixture
def builder(
    registry: CommandRegistry,
    schema: ResolvedSchema,
    recording_loader: RecordingLoader,
    stub_extractor: StubExtractor,
) -> ChainBuilder:
    return ChainBuilder(registry, schema=schema, loader=recording_loader, extractor=stub_extractor)


@pytest.fixture
def build_chain(builder: ChainBuilder) -> Callable[[list[dict[str, Any]]], Chain]:
    """Build a root chain from command configs with the shared test doubles."""

    def _build(commands: list[dict[str, Any]]) -> Chain:
        return builder.build_chain(commands)

    return _build


# =============================================================================
# Hypothesis profiles
# =============================================================================

settings.register_profile(
    "ci",
    max_examples=100,
    phases=[Phase.explicit, Phase.reuse, Phase.generate, Phase.shrink],
    deadline=None,  # Disable deadline for CI (timing varies)
)

settings.register_profile(
    "nightly",
    max_examples=1000,
    phases=[Phase.explicit, Phase.reuse, Phase.generate, Phase.shrink],
    deadline=None,
)

settings.register_profile(
    "debug",
    max_examples=10,
    verbosity=Verbosity.verbose,
    phases=[Phase.explicit, Phase.reuse, Phase.generate, Phase.shrink],
    deadline=None,
)

settings.load_profile(os.getenv("HYPOTHESIS_PROFILE", "ci"))
