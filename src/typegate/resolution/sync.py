"""Synchronize resolved declaration files into a type host.

The host owns a flat list of virtual files. A sync call diffs the old and
new reference lists by package name, resolves only what was added or
removed, then writes the patched list back in a single call. Version
changes on a package that stays referenced are not detected.
"""

from __future__ import annotations

import logging
from typing import Callable, Iterator, List, Optional, Protocol, Sequence, Tuple

from ..common.logging_utils import Timer, extra_context
from ..constants import Constants
from ..exceptions import DependencyLoadError

from .models import (
    BatchResult,
    DependencyReference,
    ReferenceLike,
    VirtualLibrary,
    as_reference,
    virtual_path,
)
from .resolver import DependencyResolver

logger = logging.getLogger(__name__)

DepLoadErrorCallback = Callable[[str, DependencyLoadError], None]


class TypeHost(Protocol):
    """A type-checking environment exposing its virtual file list."""

    def get_extra_libs(self) -> List[VirtualLibrary]:
        ...

    def set_extra_libs(self, libs: List[VirtualLibrary]) -> None:
        ...


class InMemoryTypeHost:
    """Type host keeping its virtual files in a list.

    Counts write-backs so callers can tell whether a sync touched the host.
    """

    def __init__(self, libs: Optional[Sequence[VirtualLibrary]] = None):
        self._libs: List[VirtualLibrary] = list(libs or [])
        self.write_count = 0

    def get_extra_libs(self) -> List[VirtualLibrary]:
        return list(self._libs)

    def set_extra_libs(self, libs: List[VirtualLibrary]) -> None:
        self._libs = list(libs)
        self.write_count += 1

    def paths(self) -> List[str]:
        return [lib.file_path for lib in self._libs]


def iter_virtual_files(
    results: BatchResult,
    on_dep_load_error: Optional[DepLoadErrorCallback] = None,
) -> Iterator[Tuple[str, str, str]]:
    """Yield ``(package, file_path, content)`` for every successful slot.

    Failed slots are skipped and reported through ``on_dep_load_error``.
    """
    for dep_name, outcome in results.items():
        if not outcome.ok:
            if on_dep_load_error is not None:
                on_dep_load_error(dep_name, DependencyLoadError(outcome.error))
            continue
        for package, loaded in outcome.tree.items():
            for file_path, content in loaded.files.items():
                yield package, file_path, content


class VirtualLibrarySynchronizer:
    """Applies reference-list changes to a type host."""

    def __init__(
        self,
        resolver: DependencyResolver,
        host: TypeHost,
        virtual_root: str = Constants.VIRTUAL_ROOT,
    ):
        self._resolver = resolver
        self._host = host
        self._virtual_root = virtual_root

    async def sync(
        self,
        old_refs: Sequence[ReferenceLike],
        new_refs: Sequence[ReferenceLike],
        on_dep_load_error: Optional[DepLoadErrorCallback] = None,
    ) -> None:
        """Patch the host from ``old_refs`` to ``new_refs``.

        Args:
            old_refs: References the host currently reflects.
            new_refs: References it should reflect afterwards.
            on_dep_load_error: Called once per added reference that failed
                to resolve, with its ``package@version`` key and the error.
        """
        old = [as_reference(ref) for ref in old_refs]
        new = [as_reference(ref) for ref in new_refs]
        add_refs, del_refs = diff_references(old, new)
        if not add_refs and not del_refs:
            logger.debug("References unchanged; skipping host update")
            return

        with Timer() as timer:
            add_deps = await self._resolver.resolve_deps([ref.as_tuple() for ref in add_refs])
            del_deps = await self._resolver.resolve_deps([ref.as_tuple() for ref in del_refs])

        libs = self._host.get_extra_libs()
        removed = 0
        for package, file_path, _ in iter_virtual_files(del_deps):
            removed += _remove_path(libs, virtual_path(package, file_path, self._virtual_root))

        added = 0
        for package, file_path, content in iter_virtual_files(add_deps, on_dep_load_error):
            path = virtual_path(package, file_path, self._virtual_root)
            _remove_path(libs, path)
            libs.append(VirtualLibrary(path, content))
            added += 1

        self._host.set_extra_libs(libs)
        logger.info(
            "Synchronized type host: +%d refs, -%d refs (%d files added, %d removed)",
            len(add_refs),
            len(del_refs),
            added,
            removed,
            extra=extra_context(
                event="sync", component="synchronizer", outcome="success", duration_ms=timer.duration_ms()
            ),
        )


def diff_references(
    old: Sequence[DependencyReference], new: Sequence[DependencyReference]
) -> Tuple[List[DependencyReference], List[DependencyReference]]:
    """Return ``(added, removed)`` references, compared by package name only."""
    old_names = {ref.package for ref in old}
    new_names = {ref.package for ref in new}
    added = [ref for ref in new if ref.package not in old_names]
    removed = [ref for ref in old if ref.package not in new_names]
    return added, removed


def _remove_path(libs: List[VirtualLibrary], path: str) -> int:
    for index, lib in enumerate(libs):
        if lib.file_path == path:
            del libs[index]
            return 1
    return 0
