"""Registry client: version resolution, file listing and file content."""

from __future__ import annotations

import abc
import asyncio
import logging
import urllib.parse
from typing import Any, List, Optional

import aiohttp

from ..common.logging_utils import Timer, extra_context, is_debug_enabled, safe_url
from ..constants import Constants
from ..exceptions import FetchError, VersionResolutionError

logger = logging.getLogger(__name__)


class RegistryClient(abc.ABC):
    """Interface consumed by the module cache."""

    @abc.abstractmethod
    async def resolve_version(self, package: str, query: str) -> str:
        """Resolve a version query or tag to a concrete version.

        Raises:
            VersionResolutionError: The query matches no published version.
        """

    @abc.abstractmethod
    async def list_files(self, package: str, version: str) -> List[str]:
        """Return every file path published for ``package@version``.

        Paths are absolute within the package, e.g. ``/index.d.ts``.
        """

    @abc.abstractmethod
    async def fetch_file(self, package: str, version: str, path: str) -> str:
        """Return the text content of one published file."""


class JsDelivrClient(RegistryClient):
    """Registry client backed by the jsDelivr data API and npm CDN."""

    def __init__(
        self,
        api_url: str = Constants.REGISTRY_API_URL,
        cdn_url: str = Constants.CDN_URL,
        timeout: float = Constants.REQUEST_TIMEOUT,
        max_connections: int = Constants.MAX_CONNECTIONS,
    ):
        """Initialize the client.

        Args:
            api_url: Base URL of the jsDelivr data API.
            cdn_url: Base URL serving npm package files.
            timeout: Total request timeout in seconds.
            max_connections: Connection pool limit.
        """
        self._api_url = api_url.rstrip("/")
        self._cdn_url = cdn_url.rstrip("/")
        self._timeout = aiohttp.ClientTimeout(total=timeout)
        self._max_connections = max_connections
        self._session: Optional[aiohttp.ClientSession] = None

    async def start(self) -> None:
        """Start the HTTP session."""
        if self._session is None:
            connector = aiohttp.TCPConnector(limit=self._max_connections)
            self._session = aiohttp.ClientSession(
                timeout=self._timeout,
                connector=connector,
                headers={"User-Agent": Constants.USER_AGENT},
            )

    async def stop(self) -> None:
        """Stop the HTTP session."""
        if self._session:
            await self._session.close()
            self._session = None

    def resolve_url(self, package: str, query: str) -> str:
        return f"{self._api_url}/package/resolve/npm/{package}@{_quote(query)}"

    def file_tree_url(self, package: str, version: str) -> str:
        return f"{self._api_url}/package/npm/{package}@{_quote(version)}/flat"

    def file_url(self, package: str, version: str, path: str) -> str:
        request_path = path if path.startswith("/") else f"/{path}"
        return f"{self._cdn_url}/{package}@{_quote(version)}{request_path}"

    async def resolve_version(self, package: str, query: str) -> str:
        try:
            data = await self._get_json(self.resolve_url(package, query))
        except FetchError as exc:
            raise VersionResolutionError(package, query) from exc
        version = data.get("version") if isinstance(data, dict) else None
        if not isinstance(version, str) or not version:
            raise VersionResolutionError(package, query)
        return version

    async def list_files(self, package: str, version: str) -> List[str]:
        data = await self._get_json(self.file_tree_url(package, version))
        files = data.get("files") if isinstance(data, dict) else None
        if not isinstance(files, list):
            raise FetchError(f"Malformed file tree for {package}@{version}")
        return [item["name"] for item in files if isinstance(item, dict) and isinstance(item.get("name"), str)]

    async def fetch_file(self, package: str, version: str, path: str) -> str:
        url = self.file_url(package, version, path)
        try:
            return await self._get_text(url)
        except FetchError as exc:
            raise FetchError(f"Failed to load file {path} from {package}@{version}") from exc

    async def _get_json(self, url: str) -> Any:
        response = await self._request(url)
        try:
            return await response.json(content_type=None)
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as exc:
            raise FetchError(f"Failed to load {url}") from exc
        finally:
            response.release()

    async def _get_text(self, url: str) -> str:
        response = await self._request(url)
        try:
            return await response.text()
        except (aiohttp.ClientError, asyncio.TimeoutError, UnicodeDecodeError) as exc:
            raise FetchError(f"Failed to load {url}") from exc
        finally:
            response.release()

    async def _request(self, url: str) -> aiohttp.ClientResponse:
        """GET ``url``; non-2xx statuses and transport errors raise FetchError."""
        if self._session is None:
            await self.start()
        assert self._session is not None
        target = safe_url(url)
        with Timer() as timer:
            if is_debug_enabled(logger):
                logger.debug(
                    "HTTP request",
                    extra=extra_context(
                        event="http_request", component="registry_client", action="GET", target=target
                    ),
                )
            try:
                response = await self._session.get(url)
            except aiohttp.ClientError as exc:
                logger.warning("Request to %s failed: %s", target, exc)
                raise FetchError(f"Failed to load {url}") from exc
            except asyncio.TimeoutError as exc:
                logger.warning("Request to %s timed out", target)
                raise FetchError(f"Timed out loading {url}") from exc

        if not 200 <= response.status < 300:
            response.release()
            logger.debug(
                "HTTP non-2xx",
                extra=extra_context(
                    event="http_response",
                    component="registry_client",
                    outcome="non_2xx",
                    status_code=response.status,
                    duration_ms=timer.duration_ms(),
                    target=target,
                ),
            )
            raise FetchError(f"Failed to load {url}")

        if is_debug_enabled(logger):
            logger.debug(
                "HTTP response ok",
                extra=extra_context(
                    event="http_response",
                    component="registry_client",
                    outcome="success",
                    status_code=response.status,
                    duration_ms=timer.duration_ms(),
                    target=target,
                ),
            )
        return response

    async def __aenter__(self) -> "JsDelivrClient":
        """Async context manager entry."""
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        """Async context manager exit."""
        await self.stop()


def _quote(value: str) -> str:
    return urllib.parse.quote(value, safe="^~.-_+*")
