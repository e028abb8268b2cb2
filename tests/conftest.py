"""Shared fakes for registry and type host tests."""

import asyncio
import json
from typing import Dict, Iterable, List, Optional, Tuple

import pytest

from typegate.exceptions import FetchError, VersionResolutionError
from typegate.registry.client import RegistryClient
from typegate.resolution.cache import ModuleCache
from typegate.resolution.resolver import DependencyResolver
from typegate.resolution.sync import InMemoryTypeHost


def manifest_json(**fields) -> str:
    """Serialize a package.json body."""
    return json.dumps(fields)


class FakeRegistry(RegistryClient):
    """In-memory registry recording every call."""

    def __init__(self, delay: float = 0.0):
        self.packages: Dict[str, Dict[str, Dict[str, str]]] = {}
        self.aliases: Dict[Tuple[str, str], str] = {}
        self.broken: set = set()
        self.calls: List[Tuple[str, ...]] = []
        self.delay = delay

    def add(
        self,
        name: str,
        version: str,
        manifest: Optional[dict] = None,
        files: Optional[Dict[str, str]] = None,
        aliases: Iterable[str] = (),
    ) -> None:
        tree = {"/package.json": json.dumps(manifest or {"name": name, "version": version})}
        tree.update(files or {})
        self.packages.setdefault(name, {})[version] = tree
        self.aliases[(name, "latest")] = version
        for alias in aliases:
            self.aliases[(name, alias)] = version

    def break_files(self, name: str, version: str) -> None:
        self.broken.add((name, version))

    def count(self, method: str, name: Optional[str] = None) -> int:
        return sum(1 for call in self.calls if call[0] == method and (name is None or call[1] == name))

    async def _pause(self) -> None:
        if self.delay:
            await asyncio.sleep(self.delay)
        else:
            await asyncio.sleep(0)

    async def resolve_version(self, package: str, query: str) -> str:
        self.calls.append(("resolve_version", package, query))
        await self._pause()
        versions = self.packages.get(package, {})
        if query in versions:
            return query
        alias = self.aliases.get((package, query))
        if alias is None:
            raise VersionResolutionError(package, query)
        return alias

    async def list_files(self, package: str, version: str) -> List[str]:
        self.calls.append(("list_files", package, version))
        await self._pause()
        if (package, version) in self.broken:
            raise FetchError(f"Failed to load file tree of {package}@{version}")
        return list(self.packages[package][version])

    async def fetch_file(self, package: str, version: str, path: str) -> str:
        self.calls.append(("fetch_file", package, version, path))
        await self._pause()
        try:
            return self.packages[package][version][path]
        except KeyError:
            raise FetchError(f"Failed to load file {path} from {package}@{version}") from None


@pytest.fixture
def registry():
    return FakeRegistry()


@pytest.fixture
def cache(registry):
    return ModuleCache(registry)


@pytest.fixture
def resolver(cache):
    return DependencyResolver(cache)


@pytest.fixture
def host():
    return InMemoryTypeHost()
