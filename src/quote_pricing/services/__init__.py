"""Services subpackage - calculation, link life cycle, history and persistence."""
from .calculation_service import CalculationHandle, PriceCalculationService
from .package_source import HttpPackageSource, InMemoryPackageSource, PackageSource
from .price_history import PriceHistoryTracker
from .quote_link_manager import LinkState, PriceComparison, QuoteLinkManager
from .quote_store import InMemoryQuoteStore, JsonQuoteStore, QuoteStore

__all__ = [
    'CalculationHandle', 'PriceCalculationService', 'HttpPackageSource', 'InMemoryPackageSource',
    'PackageSource', 'PriceHistoryTracker', 'LinkState', 'PriceComparison', 'QuoteLinkManager',
    'InMemoryQuoteStore', 'JsonQuoteStore', 'QuoteStore',
]
