"""Latest-version lookups against package registries."""

import logging
from typing import Protocol
from urllib.parse import quote

import httpx
from packaging.version import InvalidVersion, Version

from .models import Ecosystem

logger = logging.getLogger(__name__)


class VersionResolver(Protocol):
    """Returns the latest published version of a package, or None when unresolved."""

    async def resolve_latest_version(self, name: str, ecosystem: Ecosystem) -> str | None: ...


def normalize_resolved(value: object) -> str | None:
    """Normalize a registry answer; anything that is not a usable version string is unresolved."""
    if not isinstance(value, str):
        return None
    value = value.strip()
    return value or None


class RegistryClient:
    """Shared JSON fetching and caching for registry resolvers."""

    def __init__(self, timeout: float = 30.0, client: httpx.AsyncClient | None = None):
        """Initialize registry client.

        Args:
            timeout: Request timeout in seconds
            client: Optional shared HTTP client; one is created per request otherwise
        """
        self.timeout = timeout
        self._client = client
        self._cache: dict[str, dict] = {}

    async def _fetch_json(self, url: str) -> dict | None:
        """Fetch a JSON document, returning None when the package does not exist.

        Raises:
            httpx.HTTPError: On network failures and non-404 error responses
        """
        if url in self._cache:
            return self._cache[url]

        if self._client is not None:
            response = await self._client.get(url, timeout=self.timeout)
        else:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.get(url)

        if response.status_code == 404:
            return None
        response.raise_for_status()

        data = response.json()
        self._cache[url] = data
        return data


class PypiResolver(RegistryClient):
    """Resolver for Python package versions."""

    base_url = "https://pypi.org/pypi"

    async def get_latest_version(self, package_name: str) -> str | None:
        """Get latest version for a package.

        Args:
            package_name: Name of the package

        Returns:
            Latest version string, or None if the package is unknown
        """
        metadata = await self._fetch_json(f"{self.base_url}/{quote(package_name)}/json")
        if not metadata:
            return None

        # Use info.version as authoritative latest
        latest = normalize_resolved(metadata.get("info", {}).get("version"))
        if latest:
            return latest

        # Fallback: find max stable version from releases
        versions = []
        for version_str in metadata.get("releases", {}):
            try:
                version = Version(version_str)
            except InvalidVersion:
                continue  # Skip invalid versions
            if not version.is_prerelease:
                versions.append(version)

        return str(max(versions)) if versions else None


class NpmResolver(RegistryClient):
    """Resolver for npm package versions."""

    base_url = "https://registry.npmjs.org"

    async def get_latest_version(self, package_name: str) -> str | None:
        # Scoped packages keep their '@' but the slash must be escaped.
        metadata = await self._fetch_json(f"{self.base_url}/{quote(package_name, safe='@')}")
        if not metadata:
            return None
        return normalize_resolved(metadata.get("dist-tags", {}).get("latest"))


class RegistryResolver:
    """Dispatches lookups to the registry of each ecosystem.

    Failures are logged and reported as unresolved; they never propagate to
    the caller, so one failed lookup cannot abort its siblings.
    """

    def __init__(self, timeout: float = 30.0, client: httpx.AsyncClient | None = None):
        self.resolvers = {
            Ecosystem.NPM: NpmResolver(timeout=timeout, client=client),
            Ecosystem.PYTHON: PypiResolver(timeout=timeout, client=client),
        }

    async def resolve_latest_version(self, name: str, ecosystem: Ecosystem) -> str | None:
        ecosystem = Ecosystem(ecosystem)
        resolver = self.resolvers.get(ecosystem)
        if resolver is None:
            logger.warning("No registry configured for %s, skipping %s", ecosystem.value, name)
            return None

        try:
            latest = await resolver.get_latest_version(name)
        except httpx.TimeoutException:
            logger.warning("Timeout fetching %s version for %s", ecosystem.value, name)
            return None
        except httpx.HTTPError as e:
            logger.warning("HTTP error fetching %s version for %s: %s", ecosystem.value, name, e)
            return None
        except Exception as e:
            logger.error("Error fetching %s version for %s: %s", ecosystem.value, name, e)
            return None

        if latest is None:
            logger.info("%s package %s not found or has no published version", ecosystem.value, name)
        return latest
