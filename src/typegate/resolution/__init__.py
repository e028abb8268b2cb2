"""Dependency resolution, caching and type host synchronization."""

from .cache import ModuleCache
from .models import (
    BatchOutcome,
    CacheEntry,
    DependencyReference,
    Failed,
    Loaded,
    Loading,
    VirtualLibrary,
    virtual_path,
)
from .resolver import DependencyResolver
from .sync import InMemoryTypeHost, TypeHost, VirtualLibrarySynchronizer, iter_virtual_files

__all__ = [
    "ModuleCache",
    "BatchOutcome",
    "CacheEntry",
    "DependencyReference",
    "Failed",
    "Loaded",
    "Loading",
    "VirtualLibrary",
    "virtual_path",
    "DependencyResolver",
    "InMemoryTypeHost",
    "TypeHost",
    "VirtualLibrarySynchronizer",
    "iter_virtual_files",
]
