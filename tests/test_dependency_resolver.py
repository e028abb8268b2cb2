"""Tests for recursive dependency resolution and batch resolution."""

import asyncio

import pytest

from conftest import FakeRegistry
from typegate.exceptions import ModuleLoadError, VersionResolutionError
from typegate.resolution.cache import ModuleCache
from typegate.resolution.resolver import DependencyResolver


class TestResolveDep:
    """Tests for DependencyResolver.resolve_dep."""

    def test_self_describing_package_skips_fallback(self, registry, resolver):
        registry.add("pkg", "1.0.0", manifest={"types": "index.d.ts"}, files={"/index.d.ts": "x"})

        tree = asyncio.run(resolver.resolve_dep("pkg", "1.0.0"))

        assert list(tree) == ["pkg"]
        assert registry.count("resolve_version", "@types/pkg") == 0

    def test_fallback_types_package_is_loaded(self, registry, resolver):
        registry.add("lodash", "4.17.21", manifest={"main": "lodash.js"}, aliases=["4"])
        registry.add("@types/lodash", "4.14.0", manifest={"types": "index.d.ts"}, aliases=["4"])

        tree = asyncio.run(resolver.resolve_dep("lodash", "4"))

        assert set(tree) == {"lodash", "@types/lodash"}
        assert "/package.json" in tree["@types/lodash"].files

    def test_scoped_fallback_name_is_flattened(self, registry, resolver):
        registry.add("@babel/core", "7.0.0", manifest={})
        registry.add("@types/babel__core", "7.0.0", manifest={"types": "index.d.ts"})

        tree = asyncio.run(resolver.resolve_dep("@babel/core", "latest"))

        assert "@types/babel__core" in tree

    def test_missing_fallback_is_not_fatal(self, registry, resolver):
        registry.add("untyped", "1.0.0", manifest={"main": "index.js"})

        tree = asyncio.run(resolver.resolve_dep("untyped", "1.0.0"))

        assert list(tree) == ["untyped"]
        assert registry.count("resolve_version", "@types/untyped") == 1

    def test_dependencies_are_resolved_recursively(self, registry, resolver):
        registry.add("app", "1.0.0", manifest={"types": "a.d.ts", "dependencies": {"mid": "^2.0.0"}})
        registry.add("mid", "2.1.0", manifest={"types": "m.d.ts", "dependencies": {"leaf": "~3.0.0"}}, aliases=["^2.0.0"])
        registry.add("leaf", "3.0.5", manifest={"types": "l.d.ts"}, aliases=["~3.0.0"])

        tree = asyncio.run(resolver.resolve_dep("app", "1.0.0"))

        assert set(tree) == {"app", "mid", "leaf"}

    def test_fallback_dependencies_are_unioned(self, registry, resolver):
        registry.add("plain", "1.0.0", manifest={"dependencies": {"a": "1"}})
        registry.add("@types/plain", "1.0.0", manifest={"types": "index.d.ts", "dependencies": {"b": "1"}})
        registry.add("a", "1.0.0", manifest={"types": "a.d.ts"}, aliases=["1"])
        registry.add("b", "1.0.0", manifest={"types": "b.d.ts"}, aliases=["1"])

        tree = asyncio.run(resolver.resolve_dep("plain", "1.0.0"))

        assert set(tree) == {"plain", "@types/plain", "a", "b"}

    def test_depth_bound_stops_fetching(self, registry, resolver):
        chain = ["d0", "d1", "d2", "d3", "d4"]
        for index, name in enumerate(chain):
            deps = {chain[index + 1]: "1.0.0"} if index + 1 < len(chain) else {}
            registry.add(name, "1.0.0", manifest={"types": "index.d.ts", "dependencies": deps})

        tree = asyncio.run(resolver.resolve_dep("d0", "1.0.0"))

        assert set(tree) == {"d0", "d1", "d2"}
        assert registry.count("resolve_version", "d3") == 0
        assert registry.count("resolve_version", "d4") == 0

    @pytest.mark.parametrize("depth", [3, 4, 10])
    def test_beyond_bound_returns_empty_without_calls(self, registry, resolver, depth):
        registry.add("pkg", "1.0.0")

        tree = asyncio.run(resolver.resolve_dep("pkg", "1.0.0", depth=depth))

        assert tree == {}
        assert registry.calls == []

    def test_custom_depth_bound(self, registry):
        registry.add("a", "1.0.0", manifest={"types": "a.d.ts", "dependencies": {"b": "1.0.0"}})
        registry.add("b", "1.0.0", manifest={"types": "b.d.ts"})
        resolver = DependencyResolver(ModuleCache(registry), max_depth=0)

        tree = asyncio.run(resolver.resolve_dep("a", "1.0.0"))

        assert set(tree) == {"a"}

    def test_nearest_entry_wins_on_merge(self, registry, resolver):
        registry.add("root", "1.0.0", manifest={"types": "r.d.ts", "dependencies": {"x": "1.0.0", "y": "1.0.0"}})
        registry.add("x", "1.0.0", manifest={"types": "x.d.ts", "dependencies": {"y": "2.0.0"}})
        registry.add("y", "1.0.0", manifest={"types": "y.d.ts"}, files={"/y.d.ts": "v1"})
        registry.add("y", "2.0.0", manifest={"types": "y.d.ts"}, files={"/y.d.ts": "v2"})

        tree = asyncio.run(resolver.resolve_dep("root", "1.0.0"))

        assert set(tree) == {"root", "x", "y"}
        assert tree["y"].files["/y.d.ts"] == "v1"

    def test_primary_version_failure_propagates(self, registry, resolver):
        registry.add("pkg", "1.0.0")

        with pytest.raises(VersionResolutionError):
            asyncio.run(resolver.resolve_dep("pkg", "5.0.0"))

    def test_child_failure_propagates(self, registry, resolver):
        registry.add("root", "1.0.0", manifest={"types": "r.d.ts", "dependencies": {"bad": "1.0.0"}})
        registry.add("bad", "1.0.0")
        registry.break_files("bad", "1.0.0")

        with pytest.raises(ModuleLoadError):
            asyncio.run(resolver.resolve_dep("root", "1.0.0"))

    def test_only_declaration_files_are_loaded(self, registry, resolver):
        registry.add("pkg", "1.0.0", manifest={"types": "index.d.ts"}, files={"/index.d.ts": "", "/index.js": ""})

        tree = asyncio.run(resolver.resolve_dep("pkg", "1.0.0"))

        assert set(tree["pkg"].files) == {"/package.json", "/index.d.ts"}


class TestResolveDeps:
    """Tests for DependencyResolver.resolve_deps."""

    def test_one_failure_is_isolated(self, registry, resolver):
        registry.add("a", "1.0.0", manifest={"types": "a.d.ts"})
        registry.add("b", "1.0.0", manifest={"types": "b.d.ts"})
        registry.add("c", "1.0.0", manifest={"types": "c.d.ts"})

        result = asyncio.run(
            resolver.resolve_deps([("a", "1.0.0"), ("missing", "1.0.0"), ("b", "1.0.0"), ("c", "latest")])
        )

        assert len(result) == 4
        failed = [key for key, outcome in result.items() if not outcome.ok]
        assert failed == ["missing@1.0.0"]
        assert "missing" in result["missing@1.0.0"].error
        assert result["missing@1.0.0"].tree == {}
        assert set(result["a@1.0.0"].tree) == {"a"}
        assert set(result["c@latest"].tree) == {"c"}

    def test_subtree_failure_fails_only_its_reference(self, registry, resolver):
        registry.add("good", "1.0.0", manifest={"types": "g.d.ts"})
        registry.add("root", "1.0.0", manifest={"types": "r.d.ts", "dependencies": {"gone": "1.0.0"}})

        result = asyncio.run(resolver.resolve_deps([("root", "1.0.0"), ("good", "1.0.0")]))

        assert not result["root@1.0.0"].ok
        assert result["good@1.0.0"].ok

    def test_small_cache_cap_with_wide_fan_out(self):
        registry = FakeRegistry(delay=0.01)
        registry.add("root", "1.0.0", manifest={"types": "r.d.ts", "dependencies": {"x": "1.0.0", "y": "1.0.0", "z": "1.0.0"}})
        for name in ("x", "y", "z"):
            registry.add(name, "1.0.0", manifest={"types": "index.d.ts"})
        resolver = DependencyResolver(ModuleCache(registry, max_entries=2))

        result = asyncio.run(resolver.resolve_deps([("root", "1.0.0")]))

        assert result["root@1.0.0"].ok
        assert set(result["root@1.0.0"].tree) == {"root", "x", "y", "z"}
        assert resolver.cache.stats()["total_entries"] <= 2

    def test_empty_batch(self, resolver):
        assert asyncio.run(resolver.resolve_deps([])) == {}
