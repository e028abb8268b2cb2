"""Registry access and package manifest handling."""

from .client import JsDelivrClient, RegistryClient
from .manifest import PackageManifest, has_declarations, types_package_name

__all__ = [
    "RegistryClient",
    "JsDelivrClient",
    "PackageManifest",
    "has_declarations",
    "types_package_name",
]
