"""
Environment Resync Tool

Wipes a target environment's data stores and refills them from a source
environment: Cassandra, Gremlin, PostgreSQL, Elasticsearch and MongoDB,
each verified by per-object row counts.
"""

from __future__ import annotations

from .cli import main
from .exceptions import (
    ConfigurationError,
    DataIntegrityError,
    ResyncError,
    SchemaConflictError,
    StoreConnectionError,
)
from .models import StoreKind
from .orchestrator import Orchestrator, RunResult, StoreOutcome
from .utils import setup_logging

# Package version
__version__ = "0.1.0"

__all__ = [
    "ConfigurationError",
    "DataIntegrityError",
    "Orchestrator",
    "ResyncError",
    "RunResult",
    "SchemaConflictError",
    "StoreConnectionError",
    "StoreKind",
    "StoreOutcome",
    "main",
    "setup_logging",
]
