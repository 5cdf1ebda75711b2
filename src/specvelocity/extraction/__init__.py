"""Revision history and document discovery."""

from specvelocity.extraction.git_extractor import GitRevisionSource
from specvelocity.extraction.scanner import discover_documents

__all__ = ["GitRevisionSource", "discover_documents"]
