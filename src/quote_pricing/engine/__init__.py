"""Engine subpackage - pure pricing-matrix resolution and validation."""
from .matrix_resolver import PricingMatrixResolver
from .validation_advisor import ValidationAdvisor
from .models import (
    ON_REQUEST,
    CalculationOutcome,
    LinkedPackage,
    Package,
    PriceChangeReason,
    PriceHistoryEntry,
    Quote,
    Resolution,
    TripParameters,
    ValidationWarning,
)

__all__ = [
    'PricingMatrixResolver', 'ValidationAdvisor', 'ON_REQUEST', 'CalculationOutcome',
    'LinkedPackage', 'Package', 'PriceChangeReason', 'PriceHistoryEntry', 'Quote',
    'Resolution', 'TripParameters', 'ValidationWarning',
]
