# src/ingestline/core/__init__.py
"""Core infrastructure: configuration, identity policy, schema boundary, filesystem, logging."""

from ingestline.core.config import (
    EXTRACTION_CONFIG_KEY,
    ID_PREFIX_KEY,
    LIVENESS_INTERVAL_KEY,
    RANDOM_SEED_KEY,
    ExtractionSettings,
    ExtractorSettings,
    SchemaSettings,
    TaskSettings,
    extraction_parameters,
    load_extraction_settings,
)
from ingestline.core.filesystem import LocalFileSystem
from ingestline.core.identity import IdentityPolicy
from ingestline.core.schema import ConfigSchemaResolver, ResolvedSchema, SchemaResolver

__all__ = [
    "EXTRACTION_CONFIG_KEY",
    "ID_PREFIX_KEY",
    "LIVENESS_INTERVAL_KEY",
    "RANDOM_SEED_KEY",
    "ConfigSchemaResolver",
    "ExtractionSettings",
    "ExtractorSettings",
    "IdentityPolicy",
    "LocalFileSystem",
    "ResolvedSchema",
    "SchemaResolver",
    "SchemaSettings",
    "TaskSettings",
    "extraction_parameters",
    "load_extraction_settings",
]
