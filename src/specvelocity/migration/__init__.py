"""Backfill of velocity data from Git history."""

from specvelocity.migration.manager import DocumentResult, MigrationManager, MigrationReport

__all__ = ["DocumentResult", "MigrationManager", "MigrationReport"]
