"""
Quote Link Manager - life cycle of a quote's link to a super package.

States:
    UNLINKED    no linked_package (also every legacy quote)
    LINKED      total_price follows the latest successful calculation
    CUSTOMIZED  the agent overrode the price (custom_price_applied)

Every accepted price change is appended to the quote's price history with a
reason, so the log always ends on the current total_price.
"""
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from ..engine.errors import InvalidPriceError, PriceRequiredError, QuoteStateError
from ..engine.models import (
    CalculationOutcome,
    LinkedPackage,
    Price,
    PriceChangeReason,
    Quote,
    QuoteEvent,
    TripParameters,
    is_on_request,
)
from .calculation_service import PriceCalculationService
from .price_history import PriceHistoryTracker

logger = logging.getLogger(__name__)


class LinkState(str, Enum):
    UNLINKED = "unlinked"
    LINKED = "linked"
    CUSTOMIZED = "customized"


@dataclass
class PriceComparison:
    """Current quote price against a fresh calculation (not applied)."""
    old_price: Optional[float]
    new_price: Price
    difference: Optional[float]
    percentage_change: Optional[float]
    package_version_changed: bool
    outcome: CalculationOutcome


def _money(value: float) -> float:
    return round(float(value), 2)


class QuoteLinkManager:
    """Applies link transitions and calculation results to a single quote."""

    def __init__(
        self,
        quote: Quote,
        calculator: PriceCalculationService,
        user_id: str,
        history: Optional[PriceHistoryTracker] = None,
    ):
        self.quote = quote
        self.calculator = calculator
        self.user_id = user_id
        self.history = history or PriceHistoryTracker()

    @property
    def state(self) -> LinkState:
        linked = self.quote.linked_package
        if linked is None:
            return LinkState.UNLINKED
        if linked.custom_price_applied:
            return LinkState.CUSTOMIZED
        return LinkState.LINKED

    def _require_link(self, operation: str) -> LinkedPackage:
        if self.quote.linked_package is None:
            raise QuoteStateError(
                f"Cannot {operation}: quote '{self.quote.id}' is not linked to a package",
                {"quote_id": self.quote.id, "state": self.state.value},
            )
        return self.quote.linked_package

    def _set_parameters(self, params: TripParameters):
        self.quote.number_of_people = params.number_of_people
        self.quote.number_of_nights = params.number_of_nights
        self.quote.arrival_date = params.arrival_date

    def _record(self, price: float, reason: PriceChangeReason):
        self.quote.total_price = price
        self.history.append(self.quote, price, reason, self.user_id)

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    async def select_package(self, package_id: str, params: Optional[TripParameters] = None) -> CalculationOutcome:
        """
        Link the quote to ``package_id`` and price it.

        An ON_REQUEST price links the package and leaves total_price as it
        was; a quote without one needs set_manual_price() before saving.
        """
        if params is not None:
            self._set_parameters(params)
        params = self.quote.trip_parameters

        outcome = await self.calculator.request_calculation(self.quote.id, package_id, params, debounce=False)
        if outcome.superseded:
            return outcome

        resolution = outcome.resolution
        on_request = resolution.is_on_request
        self.quote.linked_package = LinkedPackage(
            package_id=package_id,
            package_name=outcome.package_name,
            package_version=outcome.package_version,
            selected_tier_index=resolution.tier_index,
            selected_tier_label=resolution.tier_label,
            selected_nights=resolution.nights,
            selected_period_label=resolution.period_label,
            calculated_price=resolution.price,
            custom_price_applied=False,
            price_was_on_request=on_request,
            last_recalculated_at=self.history.clock(),
        )

        if on_request:
            # total_price stays as it was; a quote that had none needs a manual price
            logger.info("Quote %s linked to package %s, price on request", self.quote.id, package_id)
        else:
            self._record(_money(resolution.price + self.quote.events_total), PriceChangeReason.PACKAGE_SELECTION)
            logger.info(
                "Quote %s linked to package %s at %.2f (%s, %s)",
                self.quote.id, package_id, self.quote.total_price,
                resolution.tier_label, resolution.period_label,
            )
        return outcome

    async def on_parameter_change(self, params: TripParameters) -> CalculationOutcome:
        """
        Record new trip parameters and recalculate (debounced, last-wins).

        LINKED quotes take the new price; CUSTOMIZED quotes only refresh the
        calculated figure for comparison.
        """
        linked = self._require_link("recalculate")
        self._set_parameters(params)

        outcome = await self.calculator.request_calculation(self.quote.id, linked.package_id, params)
        if outcome.superseded or self.quote.linked_package is not linked:
            return outcome

        self._apply_recalculation(linked, outcome)
        return outcome

    def _apply_recalculation(self, linked: LinkedPackage, outcome: CalculationOutcome):
        resolution = outcome.resolution
        linked.package_version = outcome.package_version
        linked.package_name = outcome.package_name or linked.package_name
        linked.selected_tier_index = resolution.tier_index
        linked.selected_tier_label = resolution.tier_label
        linked.selected_nights = resolution.nights
        linked.selected_period_label = resolution.period_label
        linked.calculated_price = resolution.price
        linked.price_was_on_request = resolution.is_on_request
        linked.last_recalculated_at = self.history.clock()

        if resolution.is_on_request:
            logger.info("Quote %s: recalculated price is on request, total left as is", self.quote.id)
            return
        if linked.custom_price_applied:
            logger.info(
                "Quote %s: custom price %.2f kept, package now prices at %.2f",
                self.quote.id, self.quote.total_price or 0.0, resolution.price,
            )
            return

        self._record(_money(resolution.price + self.quote.events_total), PriceChangeReason.RECALCULATION)

    def set_manual_price(self, value: float):
        """Override the price. Linked quotes become CUSTOMIZED."""
        if isinstance(value, bool) or is_on_request(value):
            raise InvalidPriceError(f"Manual price must be a number, got {value!r}")
        try:
            value = float(value)
        except (TypeError, ValueError) as exc:
            raise InvalidPriceError(f"Manual price must be a number, got {value!r}") from exc
        if value < 0:
            raise InvalidPriceError(f"Manual price must be non-negative, got {value}")

        if self.quote.linked_package is not None:
            self.quote.linked_package.custom_price_applied = True
        self._record(_money(value), PriceChangeReason.MANUAL_OVERRIDE)
        logger.info("Quote %s: manual price %.2f applied", self.quote.id, value)

    def reset_to_calculated_price(self):
        """Drop the custom price and go back to the package price."""
        linked = self._require_link("reset to calculated price")
        if is_on_request(linked.calculated_price):
            raise QuoteStateError(
                "Package price is on request; there is no calculated price to reset to",
                {"quote_id": self.quote.id},
            )
        linked.custom_price_applied = False
        self._record(_money(linked.calculated_price + self.quote.events_total), PriceChangeReason.RECALCULATION)
        logger.info("Quote %s: reset to calculated price %.2f", self.quote.id, self.quote.total_price)

    def unlink_package(self):
        """
        Sever the package link. Nothing else on the quote changes: price,
        trip parameters and inclusions stay exactly as they are.
        """
        if self.quote.linked_package is None:
            return
        package_id = self.quote.linked_package.package_id
        self.calculator.cancel(self.quote.id)
        self.quote.linked_package = None
        logger.info("Quote %s unlinked from package %s", self.quote.id, package_id)

    # ------------------------------------------------------------------
    # Events
    # ------------------------------------------------------------------

    def add_event(self, event_id: str, name: str, price: float) -> QuoteEvent:
        """Add a paid event on top of the current price."""
        if any(e.event_id == event_id for e in self.quote.selected_events):
            raise QuoteStateError(f"Event '{event_id}' is already on the quote", {"event_id": event_id})
        if isinstance(price, bool) or is_on_request(price):
            raise InvalidPriceError(f"Event price must be a non-negative number, got {price!r}")
        try:
            amount = float(price)
        except (TypeError, ValueError) as exc:
            raise InvalidPriceError(f"Event price must be a non-negative number, got {price!r}") from exc
        if amount < 0:
            raise InvalidPriceError(f"Event price must be a non-negative number, got {price!r}")
        if self.quote.total_price is None:
            raise PriceRequiredError("Enter a quote price before adding events", {"quote_id": self.quote.id})

        event = QuoteEvent(event_id=event_id, name=name, price=amount)
        self.quote.selected_events.append(event)
        self._record(_money(self.quote.total_price + event.price), PriceChangeReason.EVENT_ADDED)
        return event

    def remove_event(self, event_id: str) -> QuoteEvent:
        for event in self.quote.selected_events:
            if event.event_id == event_id:
                break
        else:
            raise QuoteStateError(f"Event '{event_id}' is not on the quote", {"event_id": event_id})

        self.quote.selected_events.remove(event)
        if self.quote.total_price is not None:
            self._record(_money(max(0.0, self.quote.total_price - event.price)), PriceChangeReason.EVENT_REMOVED)
        return event

    # ------------------------------------------------------------------
    # Read-only
    # ------------------------------------------------------------------

    async def preview_recalculation(self) -> PriceComparison:
        """Price the quote's current parameters without applying the result."""
        linked = self._require_link("preview recalculation")
        outcome = await self.calculator.request_calculation(
            f"{self.quote.id}:preview", linked.package_id, self.quote.trip_parameters, debounce=False,
        )

        old_price = self.quote.total_price
        new_price = outcome.price
        difference = None
        percentage = None
        if not is_on_request(new_price) and new_price is not None:
            new_price = _money(new_price + self.quote.events_total)
            if old_price is not None:
                difference = _money(new_price - old_price)
                percentage = round(difference / old_price * 100, 2) if old_price > 0 else 0.0

        return PriceComparison(
            old_price=old_price,
            new_price=new_price,
            difference=difference,
            percentage_change=percentage,
            package_version_changed=outcome.package_version != linked.package_version,
            outcome=outcome,
        )
