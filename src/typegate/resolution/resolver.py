"""Recursive dependency resolution over the module cache."""

from __future__ import annotations

import asyncio
import logging
from typing import Dict, Iterable, Optional, Sequence, Tuple

from ..common.logging_utils import extra_context, is_debug_enabled
from ..constants import Constants
from ..exceptions import MissingTypePackageError, TypegateError
from ..registry.manifest import has_declarations, types_package_name
from .cache import ModuleCache
from .models import BatchOutcome, BatchResult, Loaded, ResolvedTree

logger = logging.getLogger(__name__)


class DependencyResolver:
    """Walks a package's dependency tree, loading declaration files.

    Packages that ship no declarations are paired with their ``@types``
    fallback package. Recursion stops past ``max_depth``; dependencies of
    dependencies of dependencies are not fetched with the default of 2.
    """

    def __init__(
        self,
        cache: ModuleCache,
        max_depth: int = Constants.MAX_DEPTH,
        extensions: Iterable[str] = Constants.DECLARATION_EXTENSIONS,
    ):
        self._cache = cache
        self._max_depth = max_depth
        self._extensions = tuple(extensions)

    @property
    def cache(self) -> ModuleCache:
        return self._cache

    async def resolve_dep(self, package: str, version: str, depth: int = 0) -> ResolvedTree:
        """Resolve ``package@version`` and its dependencies.

        Args:
            package: Package name.
            version: Version query for the package.
            depth: Current recursion depth.

        Returns:
            Mapping of package name to loaded entry. Fallback type packages
            appear under their own names.

        Raises:
            TypegateError: The package itself, or any dependency, failed to load.
        """
        if is_debug_enabled(logger):
            logger.debug(
                "Resolving %s@%s",
                package,
                version,
                extra=extra_context(event="resolve", component="resolver", package=package, version=version, depth=depth),
            )
        if depth > self._max_depth:
            logger.warning("Dependency tree is too deep at %s@%s (depth %d)", package, version, depth)
            return {}

        primary = await self._cache.get(package, version, self._extensions)
        tree: ResolvedTree = {package: primary}

        fallback: Optional[Loaded] = None
        if not has_declarations(primary.manifest):
            fallback_name = types_package_name(package)
            if fallback_name is not None:
                try:
                    fallback = await self._load_fallback(fallback_name, package, version)
                except MissingTypePackageError as exc:
                    logger.warning("%s", exc)
                else:
                    tree[fallback_name] = fallback

        deps: Dict[str, str] = dict(primary.manifest.dependencies)
        if fallback is not None:
            deps.update(fallback.manifest.dependencies)
        if not deps:
            return tree

        subtrees = await asyncio.gather(
            *(self.resolve_dep(name, spec, depth + 1) for name, spec in deps.items())
        )
        # nearest entry wins: direct dependencies before anything they pulled in
        for name, subtree in zip(deps, subtrees):
            if name in subtree:
                tree.setdefault(name, subtree[name])
        for subtree in subtrees:
            for name, loaded in subtree.items():
                tree.setdefault(name, loaded)
        return tree

    async def resolve_deps(self, refs: Sequence[Tuple[str, str]]) -> BatchResult:
        """Resolve independent top-level references concurrently.

        Every reference gets its own slot keyed ``package@version``; a failure
        fills only that slot with an error message.
        """
        outcomes = await asyncio.gather(
            *(self.resolve_dep(package, version) for package, version in refs),
            return_exceptions=True,
        )
        result: BatchResult = {}
        for (package, version), outcome in zip(refs, outcomes):
            key = f"{package}@{version}"
            if isinstance(outcome, BaseException):
                if not isinstance(outcome, Exception):
                    raise outcome
                logger.error(
                    "Failed to load %s: %s",
                    key,
                    outcome,
                    extra=extra_context(
                        event="resolve_batch", component="resolver", outcome="error", package=package, version=version
                    ),
                )
                result[key] = BatchOutcome(error=str(outcome) or type(outcome).__name__)
            else:
                result[key] = BatchOutcome(tree=outcome)
        return result

    async def _load_fallback(self, fallback_name: str, package: str, version: str) -> Loaded:
        try:
            return await self._cache.get(fallback_name, version, self._extensions)
        except TypegateError as exc:
            raise MissingTypePackageError(
                f"Failed to load type for {package}@{version} and {fallback_name}@{version}: {exc}"
            ) from exc
