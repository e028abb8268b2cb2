"""Runtime configuration for declaration acquisition."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field, fields, replace
from typing import Any, Dict, Mapping, Optional, Tuple

import yaml

from .constants import Constants
from .exceptions import ConfigError

logger = logging.getLogger(__name__)

# env suffix -> (field name, converter)
_ENV_FIELDS = {
    "REGISTRY_API_URL": ("registry_api_url", str),
    "CDN_URL": ("cdn_url", str),
    "REQUEST_TIMEOUT": ("request_timeout", float),
    "CALL_TIMEOUT": ("call_timeout", float),
    "MAX_DEPTH": ("max_depth", int),
    "MAX_CACHE_ENTRIES": ("max_cache_entries", int),
}


@dataclass
class ResolverConfig:
    """Configuration for the registry client, cache and resolver."""

    registry_api_url: str = Constants.REGISTRY_API_URL
    cdn_url: str = Constants.CDN_URL
    request_timeout: float = Constants.REQUEST_TIMEOUT
    call_timeout: Optional[float] = None
    max_depth: int = Constants.MAX_DEPTH
    declaration_extensions: Tuple[str, ...] = field(
        default_factory=lambda: tuple(Constants.DECLARATION_EXTENSIONS)
    )
    max_cache_entries: Optional[int] = None
    virtual_root: str = Constants.VIRTUAL_ROOT
    max_connections: int = Constants.MAX_CONNECTIONS

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "ResolverConfig":
        """Create config from a plain mapping.

        Unknown keys are ignored. ``declaration_extensions`` accepts a single
        string or a list.

        Args:
            data: Mapping of field names to values.

        Returns:
            ResolverConfig instance.
        """
        known = {f.name for f in fields(cls)}
        values: Dict[str, Any] = {}
        for key, value in data.items():
            if key not in known:
                logger.debug("Ignoring unknown config key: %s", key)
                continue
            values[key] = value

        exts = values.get("declaration_extensions")
        if isinstance(exts, str):
            values["declaration_extensions"] = (exts,)
        elif exts is not None:
            values["declaration_extensions"] = tuple(exts)

        try:
            config = cls(**values)
            config.request_timeout = float(config.request_timeout)
            if config.call_timeout is not None:
                config.call_timeout = float(config.call_timeout)
            config.max_depth = int(config.max_depth)
            if config.max_cache_entries is not None:
                config.max_cache_entries = int(config.max_cache_entries)
            config.max_connections = int(config.max_connections)
        except (TypeError, ValueError) as exc:
            raise ConfigError(f"Invalid configuration value: {exc}") from exc
        return config

    @classmethod
    def load(cls, path: Optional[str]) -> "ResolverConfig":
        """Load config from a YAML file.

        A top-level ``typegate:`` section is used when present, otherwise the
        whole document. A missing file yields defaults.

        Args:
            path: Path to YAML config file.

        Returns:
            ResolverConfig instance.
        """
        if not path:
            return cls()

        if not os.path.isfile(path):
            logger.warning("Config file not found: %s", path)
            return cls()

        try:
            with open(path, "r", encoding="utf-8") as f:
                data = yaml.safe_load(f)
        except (OSError, yaml.YAMLError) as exc:
            raise ConfigError(f"Failed to load config {path}: {exc}") from exc

        if data is None:
            return cls()
        if not isinstance(data, dict):
            raise ConfigError(f"Config {path} must contain a mapping")
        section = data.get(Constants.CONFIG_SECTION, data)
        if not isinstance(section, dict):
            raise ConfigError(f"Section '{Constants.CONFIG_SECTION}' in {path} must be a mapping")
        return cls.from_mapping(section)

    def with_env_overrides(self, environ: Optional[Mapping[str, str]] = None) -> "ResolverConfig":
        """Return a copy with ``TYPEGATE_*`` environment overrides applied.

        Invalid values are logged and skipped.
        """
        env = os.environ if environ is None else environ
        overrides: Dict[str, Any] = {}
        for suffix, (name, convert) in _ENV_FIELDS.items():
            raw = env.get(f"{Constants.ENV_PREFIX}{suffix}")
            if raw is None or not raw.strip():
                continue
            try:
                overrides[name] = convert(raw.strip())
            except ValueError:
                logger.warning("Ignoring invalid %s%s=%r", Constants.ENV_PREFIX, suffix, raw)
        return replace(self, **overrides)
