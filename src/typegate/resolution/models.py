"""Data models for cached modules, references and virtual files."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Mapping, Optional, Tuple, Union

from ..constants import Constants, EntryState
from ..registry.manifest import PackageManifest


@dataclass(frozen=True)
class Loading:
    """Fetch in progress; carries no payload."""

    state = EntryState.LOADING


@dataclass(frozen=True)
class Loaded:
    """A fetched package version: manifest plus selected file contents."""

    manifest: PackageManifest
    files: Mapping[str, str] = field(default_factory=dict)

    state = EntryState.LOADED


@dataclass(frozen=True)
class Failed:
    """A recorded load failure."""

    message: str

    state = EntryState.ERROR


CacheEntry = Union[Loading, Loaded, Failed]

# package name -> loaded entry, for one resolution walk
ResolvedTree = Dict[str, Loaded]


@dataclass(frozen=True)
class DependencyReference:
    """A package the caller wants declarations for.

    ``version`` None means latest. Diffing compares ``package`` only.
    """

    package: str
    version: Optional[str] = None

    @property
    def query(self) -> str:
        return self.version or Constants.DEFAULT_VERSION_QUERY

    def as_tuple(self) -> Tuple[str, str]:
        return self.package, self.query


@dataclass(frozen=True)
class BatchOutcome:
    """Result slot for one top-level reference of a batch resolution.

    Exactly one of ``tree`` (on success) or ``error`` is meaningful.
    """

    tree: ResolvedTree = field(default_factory=dict)
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None


# "package@query" -> outcome
BatchResult = Dict[str, BatchOutcome]


@dataclass(frozen=True)
class VirtualLibrary:
    """A (path, content) pair exposed to the type host."""

    file_path: str
    content: str


def virtual_path(package: str, file_path: str, root: str = Constants.VIRTUAL_ROOT) -> str:
    """Synthesize the host path of ``file_path`` inside ``package``."""
    if not file_path.startswith("/"):
        file_path = f"/{file_path}"
    return f"{root}{package}{file_path}"


ReferenceLike = Union[DependencyReference, Tuple[str, Optional[str]], str]


def as_reference(value: ReferenceLike) -> DependencyReference:
    """Coerce a reference, ``(package, version)`` tuple or bare name."""
    if isinstance(value, DependencyReference):
        return value
    if isinstance(value, str):
        return DependencyReference(value)
    package, version = value
    return DependencyReference(package, version)
