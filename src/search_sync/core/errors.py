"""
Error Types

This module defines the exception hierarchy shared by the search
synchronization layer.

Design Goals
------------
- Configuration gaps (unmapped types, non-searchable relations) are NOT
  errors; they are skipped where they are found
- Unusable configuration raises `SearchConfigError`
- Search engine failures raise `SearchServiceError` and propagate to the
  caller (lifecycle hook or reindex task)
"""

from __future__ import annotations


class SearchSyncError(RuntimeError):
    """Base error for search synchronization failures."""


class SearchConfigError(SearchSyncError):
    """Raised when content model configuration cannot be interpreted."""


class SearchServiceError(SearchSyncError):
    """Raised when the search engine rejects or fails a request."""
