"""Exception hierarchy for declaration acquisition."""

from __future__ import annotations


class TypegateError(Exception):
    """Base class for all errors raised by typegate."""


class ConfigError(TypegateError):
    """Configuration file could not be read or parsed."""


class VersionResolutionError(TypegateError):
    """A version query does not resolve to a published version."""

    def __init__(self, package: str, query: str):
        self.package = package
        self.query = query
        super().__init__(f"Version {query} of module {package} does not exist")


class FetchError(TypegateError):
    """Listing a file tree or fetching a file failed."""


class ManifestError(FetchError):
    """The package manifest could not be parsed."""


class ModuleLoadError(TypegateError):
    """A cached entry holds a recorded failure."""


class StaleReadError(TypegateError):
    """A cached entry was read while still loading."""


class DependencyLoadError(TypegateError):
    """A top-level reference failed somewhere in its dependency tree."""


class MissingTypePackageError(TypegateError):
    """The fallback type-only package could not be loaded."""
