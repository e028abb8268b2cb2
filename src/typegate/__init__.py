"""typegate - fetch and cache npm declaration files for a type-checking host.

Resolves package versions, loads declaration files (falling back to the
``@types`` package when a package ships none), walks dependencies to a
bounded depth and patches a host's virtual file list.
"""

from .config import ResolverConfig
from .engine import TypeAcquisitionEngine
from .exceptions import (
    ConfigError,
    DependencyLoadError,
    FetchError,
    ManifestError,
    MissingTypePackageError,
    ModuleLoadError,
    StaleReadError,
    TypegateError,
    VersionResolutionError,
)
from .registry import JsDelivrClient, PackageManifest, RegistryClient, has_declarations, types_package_name
from .resolution import (
    BatchOutcome,
    DependencyReference,
    DependencyResolver,
    Failed,
    InMemoryTypeHost,
    Loaded,
    Loading,
    ModuleCache,
    TypeHost,
    VirtualLibrary,
    VirtualLibrarySynchronizer,
)

__version__ = "0.1.0"

__all__ = [
    "ResolverConfig",
    "TypeAcquisitionEngine",
    "ConfigError",
    "DependencyLoadError",
    "FetchError",
    "ManifestError",
    "MissingTypePackageError",
    "ModuleLoadError",
    "StaleReadError",
    "TypegateError",
    "VersionResolutionError",
    "JsDelivrClient",
    "PackageManifest",
    "RegistryClient",
    "has_declarations",
    "types_package_name",
    "BatchOutcome",
    "DependencyReference",
    "DependencyResolver",
    "Failed",
    "InMemoryTypeHost",
    "Loaded",
    "Loading",
    "ModuleCache",
    "TypeHost",
    "VirtualLibrary",
    "VirtualLibrarySynchronizer",
]
