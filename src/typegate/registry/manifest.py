"""Package manifest extraction and declaration classification.

Only the handful of ``package.json`` fields that matter for locating type
declarations are kept: entry points, declared type entries, the conditional
exports map and runtime dependencies.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Optional, Union

from ..constants import Constants
from ..exceptions import ManifestError

ExportTarget = Union[str, Mapping[str, str]]


def _opt_str(value: Any) -> Optional[str]:
    return value if isinstance(value, str) else None


def _parse_exports(raw: Any) -> Dict[str, ExportTarget]:
    """Normalize an ``exports`` field to ``{subpath: target}``.

    A bare string is the ``"."`` export. Conditions whose value is not a
    string are dropped; nested condition objects are not followed.
    """
    if isinstance(raw, str):
        return {".": raw}
    if not isinstance(raw, dict):
        return {}
    exports: Dict[str, ExportTarget] = {}
    for key, value in raw.items():
        if isinstance(value, str):
            exports[key] = value
        elif isinstance(value, dict):
            exports[key] = {k: v for k, v in value.items() if isinstance(v, str)}
    return exports


@dataclass(frozen=True)
class PackageManifest:
    """Subset of a published package's metadata."""

    main: Optional[str] = None
    module: Optional[str] = None
    browser: Optional[str] = None
    typings: Optional[str] = None
    types: Optional[str] = None
    exports: Mapping[str, ExportTarget] = field(default_factory=dict)
    dependencies: Mapping[str, str] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "PackageManifest":
        deps = data.get("dependencies")
        dependencies = (
            {name: spec for name, spec in deps.items() if isinstance(spec, str)}
            if isinstance(deps, dict)
            else {}
        )
        return cls(
            main=_opt_str(data.get("main")),
            module=_opt_str(data.get("module")),
            # browser may also be a replacement map; only the string form is an entry point
            browser=_opt_str(data.get("browser")),
            typings=_opt_str(data.get("typings")),
            types=_opt_str(data.get("types")),
            exports=_parse_exports(data.get("exports")),
            dependencies=dependencies,
        )

    @classmethod
    def from_json(cls, text: Optional[str]) -> "PackageManifest":
        """Parse manifest JSON; a missing manifest yields an empty one."""
        if text is None:
            return cls()
        try:
            data = json.loads(text)
        except json.JSONDecodeError as exc:
            raise ManifestError(f"Invalid {Constants.MANIFEST_FILE}: {exc}") from exc
        if not isinstance(data, dict):
            raise ManifestError(f"Invalid {Constants.MANIFEST_FILE}: expected an object")
        return cls.from_dict(data)


def _is_declaration(path: Optional[str]) -> bool:
    return bool(path) and path.endswith(Constants.DECLARATION_SUFFIX)


def has_declarations(manifest: PackageManifest) -> bool:
    """Return True when the manifest points at its own declaration files.

    Checked in order: ``typings``, ``types``, any string export, then the
    ``types``/``typings`` condition of any export condition map.
    """
    if _is_declaration(manifest.typings) or _is_declaration(manifest.types):
        return True
    for target in manifest.exports.values():
        if isinstance(target, str):
            if _is_declaration(target):
                return True
        elif _is_declaration(target.get("types")) or _is_declaration(target.get("typings")):
            return True
    return False


def types_package_name(package: str) -> Optional[str]:
    """Return the conventional type-only package name for ``package``.

    ``lodash`` -> ``@types/lodash``, ``@babel/core`` -> ``@types/babel__core``.
    Packages already in the ``@types`` scope have no fallback.
    """
    if package.startswith(Constants.TYPES_SCOPE):
        return None
    if package.startswith("@") and "/" in package:
        scope, name = package[1:].split("/", 1)
        return f"{Constants.TYPES_SCOPE}{scope}__{name}"
    return f"{Constants.TYPES_SCOPE}{package}"
