"""Constants used in the project."""

from enum import Enum


class EntryState(Enum):
    """Load states of a cached (package, version) slot.

    Args:
        Enum (string): State names.
    """

    LOADING = "loading"
    LOADED = "loaded"
    ERROR = "error"


class Constants:  # pylint: disable=too-few-public-methods
    """General constants used in the project.
    Data holder for configuration constants; not intended to provide behavior.
    """

    REGISTRY_API_URL = "https://data.jsdelivr.com/v1"
    CDN_URL = "https://cdn.jsdelivr.net/npm"
    MANIFEST_FILE = "/package.json"
    DECLARATION_SUFFIX = ".d.ts"
    DECLARATION_EXTENSIONS = (".d.ts",)
    TYPES_SCOPE = "@types/"
    DEFAULT_VERSION_QUERY = "latest"
    VIRTUAL_ROOT = "file:///node_modules/"
    MAX_DEPTH = 2
    REQUEST_TIMEOUT = 30  # Timeout in seconds for all HTTP requests
    MAX_CONNECTIONS = 100
    USER_AGENT = "typegate/0.1"
    LOG_FORMAT = "[%(levelname)s] %(message)s"
    ENV_PREFIX = "TYPEGATE_"
    ENV_LOG_LEVEL = "TYPEGATE_LOG_LEVEL"
    CONFIG_SECTION = "typegate"
