"""
Custom exception classes for the environment resync tool.
"""

from __future__ import annotations


class ResyncError(Exception):
    """Base exception for resync errors."""


class ConfigurationError(ResyncError):
    """Raised when a store's connection settings are missing or invalid."""


class StoreConnectionError(ResyncError):
    """Raised when an adapter cannot reach its source or target store."""


class SchemaConflictError(ResyncError):
    """Raised when a schema object already exists on the target.

    This means clear() did not run, or did not fully succeed.
    """


class DataIntegrityError(ResyncError):
    """Raised when the target rejects a write during data load."""
