"""
Shared engine state for the API: one package source, one calculation service
(so debounce tokens and the price cache are process-wide), one quote store.
"""
from dataclasses import dataclass, field
from typing import Optional

from ..config.settings import Settings, get_settings
from ..services.calculation_service import PriceCalculationService
from ..services.package_source import HttpPackageSource, InMemoryPackageSource, PackageSource
from ..services.price_history import PriceHistoryTracker
from ..services.quote_link_manager import QuoteLinkManager
from ..services.quote_store import QuoteStore, build_quote_store
from ..engine.models import Quote


@dataclass
class EngineState:
    settings: Settings
    source: PackageSource
    calculator: PriceCalculationService
    store: QuoteStore
    history: PriceHistoryTracker = field(default_factory=PriceHistoryTracker)

    def manager_for(self, quote: Quote, user_id: str) -> QuoteLinkManager:
        return QuoteLinkManager(quote, self.calculator, user_id, history=self.history)


def build_state(settings: Optional[Settings] = None, source: Optional[PackageSource] = None) -> EngineState:
    settings = settings or get_settings()
    if source is None:
        if settings.package_api_url:
            source = HttpPackageSource(settings.package_api_url, timeout_seconds=settings.fetch_timeout_seconds)
        else:
            source = InMemoryPackageSource()
    return EngineState(
        settings=settings,
        source=source,
        calculator=PriceCalculationService(source, settings=settings),
        store=build_quote_store(settings.quote_store_dir),
    )


_state: Optional[EngineState] = None


def get_state() -> EngineState:
    """FastAPI dependency returning the process-wide engine state."""
    global _state
    if _state is None:
        _state = build_state()
    return _state


def set_state(state: Optional[EngineState]):
    global _state
    _state = state


def current_state() -> Optional[EngineState]:
    """The built state, or None when no request has needed one yet."""
    return _state
