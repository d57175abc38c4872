"""
Package Source - read access to super packages.

The calculation service only needs ``await source.get_package(package_id)``;
this module provides an in-memory source and an HTTP source for the package
management API.
"""
import logging
from typing import Optional

import httpx

from ..engine.errors import CalculationTimeoutError, NetworkError, PackageNotFoundError
from ..engine.models import Package

logger = logging.getLogger(__name__)


class PackageSource:
    """Interface for package lookups."""

    async def get_package(self, package_id: str) -> Package:
        """Return the package or raise PackageNotFoundError."""
        raise NotImplementedError

    async def aclose(self):
        pass


class InMemoryPackageSource(PackageSource):
    """Packages held in a dict, keyed by id."""

    def __init__(self, packages: Optional[list[Package]] = None):
        self.packages: dict[str, Package] = {}
        self.fetch_count = 0
        for package in packages or []:
            self.put(package)

    def put(self, package: Package):
        self.packages[package.id] = package

    def remove(self, package_id: str):
        self.packages.pop(package_id, None)

    async def get_package(self, package_id: str) -> Package:
        self.fetch_count += 1
        package = self.packages.get(package_id)
        if package is None:
            raise PackageNotFoundError(package_id)
        return package


class HttpPackageSource(PackageSource):
    """
    Fetches packages from the package management API.

    ``GET {base_url}/packages/{id}`` returning the package document, either
    bare or wrapped as ``{"success": true, "data": {...}}``.
    """

    def __init__(
        self,
        base_url: str,
        timeout_seconds: float = 5.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.base_url = base_url.rstrip('/')
        self.timeout_seconds = timeout_seconds
        self._client = client or httpx.AsyncClient(timeout=timeout_seconds)

    async def get_package(self, package_id: str) -> Package:
        url = f"{self.base_url}/packages/{package_id}"
        try:
            resp = await self._client.get(url)
        except httpx.TimeoutException as exc:
            logger.warning("Package fetch timed out for %s: %s", package_id, exc)
            raise CalculationTimeoutError(self.timeout_seconds, {"package_id": package_id}) from exc
        except httpx.HTTPError as exc:
            logger.error("Package fetch failed for %s: %s", package_id, exc, exc_info=True)
            raise NetworkError(f"Package service unreachable: {exc}", {"package_id": package_id}) from exc

        if resp.status_code == 404:
            raise PackageNotFoundError(package_id)
        if resp.status_code >= 400:
            logger.error("Package API returned %s for %s", resp.status_code, package_id)
            raise NetworkError(
                f"Package service returned HTTP {resp.status_code}",
                {"package_id": package_id, "status_code": resp.status_code},
            )

        try:
            data = resp.json()
        except ValueError as exc:
            logger.error("Package API returned invalid JSON for %s", package_id)
            raise NetworkError("Invalid response from package service", {"package_id": package_id}) from exc

        if isinstance(data, dict) and 'data' in data and isinstance(data['data'], dict):
            data = data['data']
        return Package.from_dict(data)

    async def aclose(self):
        await self._client.aclose()
