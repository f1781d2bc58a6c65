# tests/fixtures/__init__.py
"""Shared test doubles for ingestline tests."""

from tests.fixtures.framework import InMemoryFileSystem, RecordingCommand, RecordingLoader, StubExtractor

__all__ = [
    "InMemoryFileSystem",
    "RecordingCommand",
    "RecordingLoader",
    "StubExtractor",
]
