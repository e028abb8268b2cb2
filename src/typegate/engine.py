"""Wiring of client, cache, resolver and synchronizer."""

from __future__ import annotations

import logging
from typing import Iterable, Optional, Sequence, Tuple

from .config import ResolverConfig
from .registry.client import JsDelivrClient, RegistryClient
from .resolution.cache import ModuleCache
from .resolution.models import BatchResult, Loaded, ReferenceLike, ResolvedTree
from .resolution.resolver import DependencyResolver
from .resolution.sync import DepLoadErrorCallback, TypeHost, VirtualLibrarySynchronizer

logger = logging.getLogger(__name__)


class TypeAcquisitionEngine:
    """Caller-facing entry point.

    Owns one module cache for its lifetime, so every request made through
    the engine shares fetched packages. When no registry client is given a
    ``JsDelivrClient`` is created and its HTTP session is closed by
    ``close()`` or on leaving ``async with``.

    Usage:
        async with TypeAcquisitionEngine() as engine:
            await engine.sync(host, [], [("lodash", "4")])
    """

    def __init__(
        self,
        config: Optional[ResolverConfig] = None,
        client: Optional[RegistryClient] = None,
    ):
        self._config = config or ResolverConfig()
        self._owns_client = client is None
        if client is None:
            client = JsDelivrClient(
                api_url=self._config.registry_api_url,
                cdn_url=self._config.cdn_url,
                timeout=self._config.request_timeout,
                max_connections=self._config.max_connections,
            )
        self._client = client
        self._cache = ModuleCache(
            client,
            max_entries=self._config.max_cache_entries,
            call_timeout=self._config.call_timeout,
        )
        self._resolver = DependencyResolver(
            self._cache,
            max_depth=self._config.max_depth,
            extensions=self._config.declaration_extensions,
        )

    @property
    def config(self) -> ResolverConfig:
        return self._config

    @property
    def cache(self) -> ModuleCache:
        return self._cache

    @property
    def resolver(self) -> DependencyResolver:
        return self._resolver

    async def get_module(
        self,
        package: str,
        version: str,
        extensions: Optional[Iterable[str]] = None,
        force_reload: bool = False,
    ) -> Loaded:
        """Fetch one package version; see ``ModuleCache.get``."""
        return await self._cache.get(package, version, extensions, force_reload)

    async def resolve_dep(self, package: str, version: str) -> ResolvedTree:
        return await self._resolver.resolve_dep(package, version)

    async def resolve_deps(self, refs: Sequence[Tuple[str, str]]) -> BatchResult:
        return await self._resolver.resolve_deps(refs)

    async def sync(
        self,
        host: TypeHost,
        old_refs: Sequence[ReferenceLike],
        new_refs: Sequence[ReferenceLike],
        on_dep_load_error: Optional[DepLoadErrorCallback] = None,
    ) -> None:
        """Patch ``host`` from ``old_refs`` to ``new_refs``."""
        synchronizer = VirtualLibrarySynchronizer(self._resolver, host, self._config.virtual_root)
        await synchronizer.sync(old_refs, new_refs, on_dep_load_error)

    async def close(self) -> None:
        if self._owns_client and isinstance(self._client, JsDelivrClient):
            await self._client.stop()

    async def __aenter__(self) -> "TypeAcquisitionEngine":
        """Async context manager entry."""
        if self._owns_client and isinstance(self._client, JsDelivrClient):
            await self._client.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        """Async context manager exit."""
        await self.close()
