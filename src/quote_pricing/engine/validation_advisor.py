"""
Validation Advisor - non-blocking warnings about quote parameters.

Warnings are advisory only; a price is applied whatever they say.
"""
from typing import Optional

from .matrix_resolver import PricingMatrixResolver
from .models import Package, Resolution, TripParameters, ValidationWarning


class ValidationAdvisor:
    """Checks trip parameters against the package the price was resolved from."""

    def __init__(self, resolver: Optional[PricingMatrixResolver] = None):
        self.resolver = resolver or PricingMatrixResolver()

    def advise(
        self,
        package: Package,
        params: TripParameters,
        resolution: Resolution,
    ) -> list[ValidationWarning]:
        warnings = []

        options = sorted(set(package.duration_options))
        if options and params.number_of_nights not in options:
            warnings.append(ValidationWarning(
                field="numberOfNights",
                message=(
                    f"{params.number_of_nights} nights is not available for this package. "
                    f"Available durations: {', '.join(str(n) for n in options)} nights"
                ),
                suggested_values=options,
            ))

        if 0 <= resolution.tier_index < len(package.group_size_tiers):
            tier = package.group_size_tiers[resolution.tier_index]
            if not tier.contains(params.number_of_people):
                warnings.append(ValidationWarning(
                    field="numberOfPeople",
                    message=(
                        f"{params.number_of_people} people is outside the selected tier "
                        f"'{tier.label}' ({tier.range_label} people)"
                    ),
                    suggested_values=[tier.min_people, tier.max_people],
                ))

        period = self.resolver.find_period(package, resolution.period_label)
        if period is not None and period.is_special and not period.covers(params.arrival_date):
            warnings.append(ValidationWarning(
                field="arrivalDate",
                message=(
                    f"Arrival date {params.arrival_date.isoformat()} is outside the special period "
                    f"'{period.period_label}' ({period.date_range_label})"
                ),
                suggested_values=[
                    d.isoformat() for d in (period.start_date, period.end_date) if d is not None
                ],
            ))

        return warnings
