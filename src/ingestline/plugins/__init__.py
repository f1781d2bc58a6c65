# src/ingestline/plugins/__init__.py
"""Command and extractor plugins, registered through pluggy hooks."""
