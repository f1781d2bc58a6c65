"""
Ingestline: batch extraction tasks feeding record-transformation chains.

Each task extracts records from a private slice of input files, runs them
through a configured command chain, and hands finished documents to the
framework's output channel for a downstream index-writing stage.
"""

__version__ = "0.1.0"
