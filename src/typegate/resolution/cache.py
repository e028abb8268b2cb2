"""Per-(package, version) cache of fetched declaration files.

Each slot holds one of three entries: ``Loading`` while a fetch is in
flight, ``Loaded`` with the manifest and file contents, or ``Failed`` with
a message. Slots are keyed by the concrete version the registry resolved,
except that a query which does not resolve is recorded under the query
string itself.

Concurrent requests for the same uncached (package, version, extensions)
key share one fetch: the first caller performs it and the others wait for
it to finish. ``force_reload`` always starts a new fetch.
"""

from __future__ import annotations

import asyncio
import logging
from collections import OrderedDict
from typing import Any, Awaitable, Dict, Iterable, List, Optional, Set, Tuple, TypeVar

import semantic_version

from ..common.logging_utils import Timer, extra_context, is_debug_enabled
from ..constants import Constants
from ..exceptions import (
    FetchError,
    ModuleLoadError,
    StaleReadError,
    TypegateError,
    VersionResolutionError,
)
from ..registry.client import RegistryClient
from ..registry.manifest import PackageManifest
from .models import CacheEntry, Failed, Loaded, Loading

logger = logging.getLogger(__name__)

T = TypeVar("T")

MemoKey = Tuple[str, str, Optional[Tuple[str, ...]]]


def _memo_key(package: str, version: str, extensions: Optional[Iterable[str]]) -> MemoKey:
    exts = tuple(sorted(set(extensions))) if extensions is not None else None
    return package, version, exts


def _selected(name: str, extensions: Optional[Tuple[str, ...]]) -> bool:
    if name == Constants.MANIFEST_FILE:
        return True
    if extensions is None:
        return True
    return any(name.endswith(ext) for ext in extensions)


class ModuleCache:
    """Cache of package versions fetched through a registry client."""

    def __init__(
        self,
        client: RegistryClient,
        max_entries: Optional[int] = None,
        call_timeout: Optional[float] = None,
    ):
        """Initialize the cache.

        Args:
            client: Registry client used for all network access.
            max_entries: Optional cap on cached (package, version) slots;
                least recently used slots are evicted beyond it.
            call_timeout: Optional deadline in seconds for each registry call.
        """
        self._client = client
        self._max_entries = max_entries
        self._call_timeout = call_timeout
        self._slots: Dict[str, Dict[str, CacheEntry]] = {}
        self._fetched: Set[MemoKey] = set()
        self._inflight: Dict[MemoKey, "asyncio.Future[None]"] = {}
        self._lru: "OrderedDict[Tuple[str, str], None]" = OrderedDict()
        self._fetches = 0
        self._hits = 0
        self._evictions = 0

    async def get(
        self,
        package: str,
        version_query: str,
        extensions: Optional[Iterable[str]] = None,
        force_reload: bool = False,
    ) -> Loaded:
        """Return the loaded entry for ``package@version_query``.

        Args:
            package: Package name.
            version_query: Version, tag or range forwarded to the registry.
            extensions: File suffixes to keep besides the manifest; None keeps
                every file.
            force_reload: Fetch again even if the key was fetched before.

        Returns:
            The Loaded entry.

        Raises:
            VersionResolutionError: The query does not resolve.
            ModuleLoadError: The fetch failed; the entry records the message.
            StaleReadError: The entry is still loading.
        """
        version = await self._resolve(package, version_query)
        key = _memo_key(package, version, extensions)

        if force_reload:
            await self._fetch(package, version, key)
            return self._read_then_evict(package, version)

        while True:
            pending = self._inflight.get(key)
            if pending is not None:
                # a cancelled leader leaves the key unfetched; the loop then fetches
                await asyncio.shield(pending)
                continue
            if key not in self._fetched:
                await self._fetch(package, version, key)
                break
            self._hits += 1
            if is_debug_enabled(logger):
                logger.debug(
                    "Cache hit",
                    extra=extra_context(
                        event="cache_hit", component="module_cache", package=package, version=version
                    ),
                )
            break

        return self._read_then_evict(package, version)

    def entry(self, package: str, version: str) -> Optional[CacheEntry]:
        """Return the raw entry stored for ``package@version`` without fetching."""
        return self._slots.get(package, {}).get(version)

    def versions(self, package: str) -> List[str]:
        """Cached version keys of ``package``, newest semver first.

        Keys that are not semantic versions (failed tag queries) sort last.
        """
        semver: List[semantic_version.Version] = []
        other: List[str] = []
        for key in self._slots.get(package, {}):
            try:
                semver.append(semantic_version.Version(key))
            except ValueError:
                other.append(key)
        return [str(v) for v in sorted(semver, reverse=True)] + sorted(other)

    def invalidate(self, package: str, version: Optional[str] = None) -> None:
        """Drop one cached version, or every version of ``package``.

        The next ``get`` for a dropped key fetches again.
        """
        if version is not None:
            self._drop(package, version)
            return
        for cached in list(self._slots.get(package, {})):
            self._drop(package, cached)

    def clear(self) -> None:
        """Drop all cached entries."""
        self._slots.clear()
        self._fetched.clear()
        self._lru.clear()

    def stats(self) -> Dict[str, Any]:
        """Get cache statistics."""
        counts = {"loading": 0, "loaded": 0, "error": 0}
        for versions in self._slots.values():
            for cached in versions.values():
                counts[cached.state.value] += 1
        return {
            "packages": len(self._slots),
            "total_entries": sum(counts.values()),
            "loading_entries": counts["loading"],
            "loaded_entries": counts["loaded"],
            "error_entries": counts["error"],
            "in_flight": len(self._inflight),
            "fetches": self._fetches,
            "hits": self._hits,
            "evictions": self._evictions,
            "max_entries": self._max_entries,
        }

    async def _resolve(self, package: str, version_query: str) -> str:
        try:
            return await self._call(self._client.resolve_version(package, version_query))
        except TypegateError as exc:
            error = exc if isinstance(exc, VersionResolutionError) else VersionResolutionError(package, version_query)
            logger.warning(
                "%s",
                error,
                extra=extra_context(
                    event="version_resolution",
                    component="module_cache",
                    outcome="not_found",
                    package=package,
                    version=version_query,
                ),
            )
            self._store(package, version_query, Failed(str(error)))
            self._evict(keep=(package, version_query))
            if error is exc:
                raise
            raise error from exc

    async def _fetch(self, package: str, version: str, key: MemoKey) -> None:
        """Run one fetch sequence for ``key`` and store its outcome."""
        done: "asyncio.Future[None]" = asyncio.get_running_loop().create_future()
        self._inflight[key] = done
        self._store(package, version, Loading())
        self._fetches += 1
        try:
            with Timer() as timer:
                loaded = await self._load(package, version, key[2])
        except asyncio.CancelledError:
            self._store(package, version, Failed(f"Loading {package}@{version} was cancelled"))
            raise
        except TypegateError as exc:
            logger.warning(
                "Failed to load %s@%s: %s",
                package,
                version,
                exc,
                extra=extra_context(
                    event="module_load", component="module_cache", outcome="error", package=package, version=version
                ),
            )
            self._store(package, version, Failed(str(exc)))
            self._fetched.add(key)
        except Exception as exc:
            self._store(package, version, Failed(str(exc) or type(exc).__name__))
            self._fetched.add(key)
            raise
        else:
            self._store(package, version, loaded)
            self._fetched.add(key)
            logger.info(
                "Loaded %s@%s (%d files)",
                package,
                version,
                len(loaded.files),
                extra=extra_context(
                    event="module_load",
                    component="module_cache",
                    outcome="success",
                    package=package,
                    version=version,
                    duration_ms=timer.duration_ms(),
                ),
            )
        finally:
            if self._inflight.get(key) is done:
                del self._inflight[key]
            done.set_result(None)

    async def _load(self, package: str, version: str, extensions: Optional[Tuple[str, ...]]) -> Loaded:
        names = await self._call(self._client.list_files(package, version))
        selected = [name for name in names if _selected(name, extensions)]
        contents = await asyncio.gather(
            *(self._call(self._client.fetch_file(package, version, name)) for name in selected)
        )
        files = dict(zip(selected, contents))
        manifest = PackageManifest.from_json(files.get(Constants.MANIFEST_FILE))
        return Loaded(manifest=manifest, files=files)

    async def _call(self, awaitable: Awaitable[T]) -> T:
        """Await a registry call under the configured deadline."""
        if self._call_timeout is None:
            return await awaitable
        try:
            return await asyncio.wait_for(awaitable, self._call_timeout)
        except asyncio.TimeoutError as exc:
            raise FetchError(f"Registry call timed out after {self._call_timeout}s") from exc

    def _read(self, package: str, version: str) -> Loaded:
        cached = self.entry(package, version)
        if isinstance(cached, Loaded):
            self._touch(package, version)
            return cached
        if isinstance(cached, Failed):
            raise ModuleLoadError(cached.message)
        if isinstance(cached, Loading):
            raise StaleReadError(f"Module {package}@{version} is not loaded yet")
        # evicted between fetch and read
        raise StaleReadError(f"Module {package}@{version} is not loaded yet")

    def _read_then_evict(self, package: str, version: str) -> Loaded:
        # the slot being returned is read before anything is evicted
        try:
            return self._read(package, version)
        finally:
            self._evict(keep=(package, version))

    def _store(self, package: str, version: str, cached: CacheEntry) -> None:
        self._slots.setdefault(package, {})[version] = cached
        self._touch(package, version)

    def _touch(self, package: str, version: str) -> None:
        self._lru[(package, version)] = None
        self._lru.move_to_end((package, version))

    def _drop(self, package: str, version: str) -> None:
        versions = self._slots.get(package)
        if versions is not None:
            versions.pop(version, None)
            if not versions:
                del self._slots[package]
        self._lru.pop((package, version), None)
        self._fetched = {k for k in self._fetched if k[:2] != (package, version)}

    def _evict(self, keep: Optional[Tuple[str, str]] = None) -> None:
        """Drop least recently used slots beyond the cap.

        In-flight slots and ``keep`` are skipped, so the cache can briefly
        exceed the cap while sibling fetches overlap.
        """
        if self._max_entries is None:
            return
        in_flight = {key[:2] for key in self._inflight}
        for slot in list(self._lru):
            if len(self._lru) <= self._max_entries:
                break
            if slot in in_flight or slot == keep:
                continue
            logger.debug("Evicting %s@%s", *slot)
            self._drop(*slot)
            self._evictions += 1
