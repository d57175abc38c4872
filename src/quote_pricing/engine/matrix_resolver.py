"""
Pricing Matrix Resolver - resolves a package price for a set of trip parameters.

Resolution order:
1. Group-size tier (first containing tier, else nearest - flagged)
2. Duration (exact, else nearest available night count - flagged)
3. Period (special date range first, else calendar month)
4. Price cell for (tier, nights) within the period

Pure and synchronous: no I/O, no side effects.
"""
import logging
from datetime import date
from typing import Optional

from .errors import ResolutionError
from .models import (
    GroupSizeTier,
    Package,
    Price,
    PricingPeriod,
    Resolution,
    TripParameters,
    is_on_request,
)

logger = logging.getLogger(__name__)

MONTH_NAMES = (
    "January", "February", "March", "April", "May", "June",
    "July", "August", "September", "October", "November", "December",
)


def month_name(day: date) -> str:
    """English calendar month name (locale independent)."""
    return MONTH_NAMES[day.month - 1]


class PricingMatrixResolver:
    """
    Resolves prices from a package's pricing matrix.

    Overlapping tiers are resolved by declaration order: the first tier whose
    range contains the group size wins. With ``allow_approximate=False`` the
    resolver raises instead of falling back to the nearest tier or duration.
    """

    def __init__(self, allow_approximate: bool = True):
        self.allow_approximate = allow_approximate

    def resolve(self, package: Package, params: TripParameters) -> Resolution:
        """
        Resolve the price for ``params`` from ``package``.

        Raises:
            ResolutionError: NO_TIERS_DEFINED, NO_PERIOD_MATCH, PRICE_NOT_FOUND
                or APPROXIMATION_REJECTED
        """
        resolution, period = self.locate(package, params)
        return self.apply_price(package, resolution, period)

    def locate(self, package: Package, params: TripParameters) -> tuple[Resolution, PricingPeriod]:
        """
        Select tier, duration and period without reading the price cell.

        The returned resolution has ``price=None`` until apply_price() fills it.
        """
        trace = []

        tier_index, tier, tier_approximate = self.select_tier(package, params.number_of_people)
        if tier_approximate:
            trace.append(("Tier", f"No tier contains {params.number_of_people} people, nearest tier used", tier.label))
        else:
            trace.append(("Tier", f"{params.number_of_people} people matched tier {tier_index}", tier.label))

        nights, duration_approximate = self.select_nights(package, params.number_of_nights)
        if duration_approximate:
            trace.append(("Duration", f"{params.number_of_nights} nights not offered, nearest duration used", str(nights)))
        else:
            trace.append(("Duration", "Requested duration available", str(nights)))

        if not self.allow_approximate and (tier_approximate or duration_approximate):
            raise ResolutionError(
                ResolutionError.APPROXIMATION_REJECTED,
                "Parameters do not match the package exactly",
                {
                    "package_id": package.id,
                    "tier_approximate": tier_approximate,
                    "duration_approximate": duration_approximate,
                },
            )

        period = self.select_period(package, params.arrival_date)
        if period.is_special:
            trace.append(("Period", f"Special period covers {params.arrival_date.isoformat()}", period.period_label))
        else:
            trace.append(("Period", "Using calendar month", period.period_label))

        resolution = Resolution(
            tier_index=tier_index,
            tier_label=tier.label,
            period_label=period.period_label,
            period_type=period.period_type,
            nights=nights,
            price=None,
            tier_approximate=tier_approximate,
            duration_approximate=duration_approximate,
        )
        for step, desc, val in trace:
            resolution.add_trace(step, desc, val)
        return resolution, period

    def apply_price(
        self,
        package: Package,
        resolution: Resolution,
        period: PricingPeriod,
        cached: Optional[Price] = None,
    ) -> Resolution:
        """Fill in the price, from ``cached`` when given, else from the period's cell."""
        if cached is not None:
            price = cached
            source = "Cached matrix price"
        else:
            cell = period.find_price(resolution.tier_index, resolution.nights)
            if cell is None:
                raise ResolutionError(
                    ResolutionError.PRICE_NOT_FOUND,
                    f"No price for tier '{resolution.tier_label}' and {resolution.nights} nights "
                    f"in period '{period.period_label}'",
                    {
                        "package_id": package.id,
                        "tier_index": resolution.tier_index,
                        "nights": resolution.nights,
                        "period_label": period.period_label,
                    },
                )
            price = cell.price
            source = "Matrix price"

        resolution.price = price
        if is_on_request(price):
            resolution.add_trace("Price", "Price is on request", "ON_REQUEST")
        else:
            resolution.add_trace("Price", source, f"{price:.2f}")
        return resolution

    def select_tier(self, package: Package, people: int) -> tuple[int, GroupSizeTier, bool]:
        """Return (tier_index, tier, approximate)."""
        tiers = package.group_size_tiers
        if not tiers:
            raise ResolutionError(
                ResolutionError.NO_TIERS_DEFINED,
                f"Package '{package.id}' has no group size tiers",
                {"package_id": package.id},
            )

        for index, tier in enumerate(tiers):
            if tier.contains(people):
                return index, tier, False

        # min() keeps the first of equally distant tiers
        index = min(range(len(tiers)), key=lambda i: tiers[i].distance(people))
        logger.warning(
            "Package %s: %s people outside every tier, using nearest tier %r",
            package.id, people, tiers[index].label,
        )
        return index, tiers[index], True

    def select_nights(self, package: Package, nights: int) -> tuple[int, bool]:
        """Return (nights, approximate); ties go to the shorter stay."""
        options = sorted(set(package.duration_options))
        if not options or nights in options:
            return nights, False

        nearest = min(options, key=lambda n: (abs(n - nights), n))
        logger.warning(
            "Package %s: %s nights not offered, using nearest duration %s",
            package.id, nights, nearest,
        )
        return nearest, True

    def select_period(self, package: Package, arrival: date) -> PricingPeriod:
        """Special periods win over months; earliest declared special wins."""
        specials = [p for p in package.pricing_matrix if p.is_special]
        months = [p for p in package.pricing_matrix if not p.is_special]

        for period in specials:
            if period.covers(arrival):
                return period

        wanted = month_name(arrival).lower()
        for period in months:
            if period.period_label.strip().lower() == wanted:
                return period

        raise ResolutionError(
            ResolutionError.NO_PERIOD_MATCH,
            f"No pricing period covers {arrival.isoformat()}",
            {
                "package_id": package.id,
                "arrival_date": arrival.isoformat(),
                "available_periods": [p.period_label for p in package.pricing_matrix],
            },
        )

    def find_period(self, package: Package, label: str) -> Optional[PricingPeriod]:
        for period in package.pricing_matrix:
            if period.period_label == label:
                return period
        return None
