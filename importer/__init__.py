"""Incremental importer for Patreon stream video embeds."""

from .ingest import ImportStats, PostImporter, main

__all__ = ["ImportStats", "PostImporter", "main"]
