"""
Price Calculation Service - debounced, cached, race-safe price calculation.

Every request for a quote is tagged with a per-quote token that only ever
increases. A request dispatches once its debounce window has elapsed and only
if it still holds the newest token; a response that comes back after a newer
token was issued is discarded. The service never mutates a quote: it returns
a CalculationOutcome for the QuoteLinkManager to apply.
"""
import asyncio
import logging
from collections import OrderedDict
from typing import Optional

from ..config.settings import Settings, get_settings
from ..engine.errors import CalculationTimeoutError, NetworkError, PackageNotFoundError, PricingError
from ..engine.matrix_resolver import PricingMatrixResolver
from ..engine.models import CalculationOutcome, Package, Price, Resolution, TripParameters
from ..engine.validation_advisor import ValidationAdvisor
from .package_source import PackageSource

logger = logging.getLogger(__name__)

# (package_id, package_version, tier_index, nights, period_label)
CacheKey = tuple[str, int, int, int, str]


class CalculationHandle:
    """A submitted calculation: await ``result()`` or ``cancel()`` it."""

    def __init__(self, service: 'PriceCalculationService', quote_id: str, token: int, task: asyncio.Task):
        self.service = service
        self.quote_id = quote_id
        self.token = token
        self.task = task

    async def result(self) -> CalculationOutcome:
        return await self.task

    def cancel(self):
        """Invalidate this request's effect and abort the pending work."""
        self.service.invalidate_token(self.quote_id, self.token)
        self.task.cancel()

    def __await__(self):
        return self.task.__await__()


class PriceCalculationService:
    """
    Orchestrates package fetches, matrix resolution and validation.

    The only component of the engine that performs I/O.
    """

    def __init__(
        self,
        source: PackageSource,
        settings: Optional[Settings] = None,
        resolver: Optional[PricingMatrixResolver] = None,
        advisor: Optional[ValidationAdvisor] = None,
    ):
        self.source = source
        self.settings = settings or get_settings()
        self.resolver = resolver or PricingMatrixResolver(allow_approximate=self.settings.allow_approximate)
        self.advisor = advisor or ValidationAdvisor(self.resolver)

        self._tokens: dict[str, int] = {}
        self._versions: dict[str, int] = {}
        self._cache: OrderedDict = OrderedDict()

        self.dispatch_count = 0
        self.cache_hits = 0
        self.cache_misses = 0

    # ------------------------------------------------------------------
    # Tokens
    # ------------------------------------------------------------------

    def _issue_token(self, quote_id: str) -> int:
        token = self._tokens.get(quote_id, 0) + 1
        self._tokens[quote_id] = token
        return token

    def current_token(self, quote_id: str) -> int:
        return self._tokens.get(quote_id, 0)

    def is_current(self, quote_id: str, token: int) -> bool:
        return self._tokens.get(quote_id, 0) == token

    def cancel(self, quote_id: str):
        """Invalidate every in-flight request for ``quote_id``."""
        self._issue_token(quote_id)
        logger.debug("Cancelled pending calculations for quote %s", quote_id)

    def invalidate_token(self, quote_id: str, token: int):
        """Invalidate ``token`` if it is still the newest one for the quote."""
        if self.is_current(quote_id, token):
            self._issue_token(quote_id)

    # ------------------------------------------------------------------
    # Requests
    # ------------------------------------------------------------------

    async def request_calculation(
        self,
        quote_id: str,
        package_id: str,
        params: TripParameters,
        debounce: bool = True,
    ) -> CalculationOutcome:
        """
        Calculate the price for a quote, last-wins within the debounce window.

        Returns a superseded outcome when a newer request for the same quote
        was issued before this one completed.

        Raises:
            ResolutionError, NetworkError, CalculationTimeoutError,
            PackageNotFoundError
        """
        token = self._issue_token(quote_id)
        return await self._run(quote_id, token, package_id, params, debounce)

    def submit(
        self,
        quote_id: str,
        package_id: str,
        params: TripParameters,
        debounce: bool = True,
    ) -> CalculationHandle:
        """Schedule a calculation on the running loop and return its handle."""
        token = self._issue_token(quote_id)
        task = asyncio.ensure_future(self._run(quote_id, token, package_id, params, debounce))
        return CalculationHandle(self, quote_id, token, task)

    async def calculate_price(self, quote_id: str, package_id: str, params: TripParameters) -> dict:
        """``{price, tierLabel, periodLabel, warnings}`` for the quote editor."""
        outcome = await self.request_calculation(quote_id, package_id, params)
        return outcome.to_summary()

    async def _run(
        self,
        quote_id: str,
        token: int,
        package_id: str,
        params: TripParameters,
        debounce: bool,
    ) -> CalculationOutcome:
        if debounce and self.settings.debounce_seconds > 0:
            await asyncio.sleep(self.settings.debounce_seconds)

        if not self.is_current(quote_id, token):
            logger.debug("Quote %s: request %s superseded before dispatch", quote_id, token)
            return self._superseded(quote_id, package_id, token, params)

        self.dispatch_count += 1
        try:
            outcome = await self._calculate(quote_id, token, package_id, params)
        except PricingError:
            if not self.is_current(quote_id, token):
                logger.debug("Quote %s: discarding failure of stale request %s", quote_id, token)
                return self._superseded(quote_id, package_id, token, params)
            raise

        if not self.is_current(quote_id, token):
            logger.debug("Quote %s: discarding stale response for request %s", quote_id, token)
            return self._superseded(quote_id, package_id, token, params)
        return outcome

    def _superseded(self, quote_id, package_id, token, params) -> CalculationOutcome:
        return CalculationOutcome(
            quote_id=quote_id,
            package_id=package_id,
            token=token,
            params=params,
            superseded=True,
        )

    async def _calculate(
        self,
        quote_id: str,
        token: int,
        package_id: str,
        params: TripParameters,
    ) -> CalculationOutcome:
        package = await self.get_package(package_id)
        if not package.is_active:
            raise PackageNotFoundError(package_id, {"status": package.status})

        resolution, period = self.resolver.locate(package, params)
        key = self.cache_key(package, resolution)
        cached = self._lookup(key)
        self.resolver.apply_price(package, resolution, period, cached)
        if cached is None:
            self._store(key, resolution.price)
        warnings = self.advisor.advise(package, params, resolution)

        return CalculationOutcome(
            quote_id=quote_id,
            package_id=package_id,
            token=token,
            params=params,
            resolution=resolution,
            warnings=warnings,
            package_version=package.version,
            package_name=package.name,
            currency=package.currency,
            cache_hit=cached is not None,
        )

    # ------------------------------------------------------------------
    # Package content and result cache
    # ------------------------------------------------------------------

    async def get_package(self, package_id: str) -> Package:
        """
        Fetch the current package. Every calculation fetches, since only the
        package API knows the current version; a new version purges the
        cached prices of the old one.
        """
        timeout = self.settings.fetch_timeout_seconds
        try:
            package = await asyncio.wait_for(self.source.get_package(package_id), timeout)
        except asyncio.TimeoutError as exc:
            logger.warning("Package %s fetch exceeded %ss", package_id, timeout)
            raise CalculationTimeoutError(timeout, {"package_id": package_id}) from exc
        except PackageNotFoundError:
            self.invalidate(package_id)
            raise
        except PricingError:
            raise
        except OSError as exc:
            logger.error("Package %s fetch failed: %s", package_id, exc)
            raise NetworkError(str(exc) or "Network request failed", {"package_id": package_id}) from exc

        known = self._versions.get(package_id)
        if known is not None and known != package.version:
            logger.info(
                "Package %s changed version %s -> %s, dropping cached prices",
                package_id, known, package.version,
            )
            self._purge_stale_versions(package_id, package.version)
        self._versions[package_id] = package.version
        return package

    @staticmethod
    def cache_key(package: Package, resolution: Resolution) -> CacheKey:
        return (
            package.id,
            package.version,
            resolution.tier_index,
            resolution.nights,
            resolution.period_label,
        )

    def _lookup(self, key: CacheKey) -> Optional[Price]:
        price = self._cache.get(key)
        if price is None:
            self.cache_misses += 1
            return None
        self._cache.move_to_end(key)
        self.cache_hits += 1
        logger.debug("Cache hit for %s", key)
        return price

    def _store(self, key: CacheKey, price: Price):
        self._cache[key] = price
        while len(self._cache) > self.settings.cache_max_entries:
            self._cache.popitem(last=False)

    def _purge_stale_versions(self, package_id: str, version: int):
        stale = [k for k in self._cache if k[0] == package_id and k[1] != version]
        for key in stale:
            del self._cache[key]

    def cached_price(self, key: CacheKey) -> Optional[Price]:
        return self._cache.get(key)

    def invalidate(self, package_id: str):
        """Forget the known version and every cached price for the package."""
        self._versions.pop(package_id, None)
        for key in [k for k in self._cache if k[0] == package_id]:
            del self._cache[key]

    @property
    def cache_size(self) -> int:
        return len(self._cache)
