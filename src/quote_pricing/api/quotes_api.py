"""
Quotes API - FastAPI router for the quote/package link life cycle.
"""
from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Header
from pydantic import BaseModel, Field

from ..engine.errors import PriceRequiredError
from ..engine.models import CalculationOutcome, Quote, TripParameters, dump_price
from ..services.quote_link_manager import QuoteLinkManager
from ..services.reporting import price_history_summary
from .state import EngineState, get_state

router = APIRouter(prefix="/quotes", tags=["quotes"])


# Pydantic models for API
class QuoteCreate(BaseModel):
    """Request model for creating a draft quote."""
    id: str
    number_of_people: int = Field(ge=1)
    number_of_nights: int = Field(ge=1)
    arrival_date: date
    total_price: Optional[float] = Field(default=None, ge=0)
    currency: str = "GBP"
    inclusions: list[str] = []


class TripParametersModel(BaseModel):
    number_of_people: int = Field(ge=1)
    number_of_nights: int = Field(ge=1)
    arrival_date: date

    def to_params(self) -> TripParameters:
        return TripParameters(
            number_of_people=self.number_of_people,
            number_of_nights=self.number_of_nights,
            arrival_date=self.arrival_date,
        )


class LinkRequest(BaseModel):
    """Request model for linking a package (parameters default to the quote's)."""
    package_id: str
    number_of_people: Optional[int] = Field(default=None, ge=1)
    number_of_nights: Optional[int] = Field(default=None, ge=1)
    arrival_date: Optional[date] = None
    manual_price: Optional[float] = Field(default=None, ge=0)


class ManualPriceRequest(BaseModel):
    total_price: float = Field(ge=0)


class EventRequest(BaseModel):
    event_id: str
    name: str
    price: float = Field(ge=0)


def user_id_header(x_user_id: str = Header(default="system")) -> str:
    return x_user_id


def load_manager(quote_id: str, state: EngineState, user_id: str) -> QuoteLinkManager:
    quote = state.store.load_quote(quote_id)
    return state.manager_for(quote, user_id)


def quote_payload(manager: QuoteLinkManager, outcome: Optional[CalculationOutcome] = None) -> dict:
    payload = {
        "quote": manager.quote.to_dict(),
        "state": manager.state.value,
    }
    if outcome is not None:
        payload["calculation"] = {
            **outcome.to_summary(),
            "superseded": outcome.superseded,
            "cacheHit": outcome.cache_hit,
            "pricePerPerson": outcome.price_per_person,
        }
    return payload


# Endpoints

@router.post("")
async def create_quote(data: QuoteCreate, state: EngineState = Depends(get_state)):
    """Create (or replace) a draft quote document."""
    quote = Quote(**data.model_dump())
    state.store.save_quote(quote)
    return {"quote": quote.to_dict(), "state": "unlinked"}


@router.get("/{quote_id}")
async def get_quote(quote_id: str, state: EngineState = Depends(get_state)):
    manager = load_manager(quote_id, state, "system")
    return quote_payload(manager)


@router.post("/{quote_id}/link")
async def link_package(
    quote_id: str,
    request: LinkRequest,
    state: EngineState = Depends(get_state),
    user_id: str = Depends(user_id_header),
):
    """Link a package and price the quote from it."""
    manager = load_manager(quote_id, state, user_id)
    quote = manager.quote
    params = TripParameters(
        number_of_people=request.number_of_people or quote.number_of_people,
        number_of_nights=request.number_of_nights or quote.number_of_nights,
        arrival_date=request.arrival_date or quote.arrival_date,
    )
    outcome = await manager.select_package(request.package_id, params)
    if outcome.superseded:
        return quote_payload(manager, outcome)

    if quote.total_price is None and request.manual_price is not None:
        manager.set_manual_price(request.manual_price)

    if quote.total_price is None:
        raise PriceRequiredError(
            "The package price is on request for these parameters; supply manual_price",
            {
                "quote_id": quote_id,
                "tier_label": outcome.resolution.tier_label,
                "period_label": outcome.resolution.period_label,
            },
        )

    state.store.save_quote(quote)
    return quote_payload(manager, outcome)


@router.patch("/{quote_id}/parameters")
async def change_parameters(
    quote_id: str,
    request: TripParametersModel,
    state: EngineState = Depends(get_state),
    user_id: str = Depends(user_id_header),
):
    """Apply edited trip parameters; linked quotes recalculate (debounced)."""
    manager = load_manager(quote_id, state, user_id)
    params = request.to_params()
    if manager.quote.linked_package is None:
        manager.quote.number_of_people = params.number_of_people
        manager.quote.number_of_nights = params.number_of_nights
        manager.quote.arrival_date = params.arrival_date
        state.store.save_quote(manager.quote)
        return quote_payload(manager)

    outcome = await manager.on_parameter_change(params)
    if not outcome.superseded:
        state.store.save_quote(manager.quote)
    return quote_payload(manager, outcome)


@router.put("/{quote_id}/price")
async def set_manual_price(
    quote_id: str,
    request: ManualPriceRequest,
    state: EngineState = Depends(get_state),
    user_id: str = Depends(user_id_header),
):
    manager = load_manager(quote_id, state, user_id)
    manager.set_manual_price(request.total_price)
    state.store.save_quote(manager.quote)
    return quote_payload(manager)


@router.post("/{quote_id}/price/reset")
async def reset_price(
    quote_id: str,
    state: EngineState = Depends(get_state),
    user_id: str = Depends(user_id_header),
):
    manager = load_manager(quote_id, state, user_id)
    manager.reset_to_calculated_price()
    state.store.save_quote(manager.quote)
    return quote_payload(manager)


@router.delete("/{quote_id}/link")
async def unlink_package(
    quote_id: str,
    state: EngineState = Depends(get_state),
    user_id: str = Depends(user_id_header),
):
    manager = load_manager(quote_id, state, user_id)
    manager.unlink_package()
    state.store.save_quote(manager.quote)
    return quote_payload(manager)


@router.post("/{quote_id}/recalculate-price")
async def recalculate_price(
    quote_id: str,
    state: EngineState = Depends(get_state),
    user_id: str = Depends(user_id_header),
):
    """Compare the current price with a fresh calculation without applying it."""
    manager = load_manager(quote_id, state, user_id)
    comparison = await manager.preview_recalculation()
    resolution = comparison.outcome.resolution
    return {
        "comparison": {
            "oldPrice": comparison.old_price,
            "newPrice": dump_price(comparison.new_price),
            "priceDifference": comparison.difference,
            "percentageChange": comparison.percentage_change,
            "currency": manager.quote.currency,
        },
        "priceCalculation": comparison.outcome.to_summary(),
        "packageInfo": {
            "packageId": manager.quote.linked_package.package_id,
            "currentVersion": comparison.outcome.package_version,
            "linkedVersion": manager.quote.linked_package.package_version,
            "versionChanged": comparison.package_version_changed,
        },
        "tierIndex": resolution.tier_index if resolution else None,
    }


@router.post("/{quote_id}/events")
async def add_event(
    quote_id: str,
    request: EventRequest,
    state: EngineState = Depends(get_state),
    user_id: str = Depends(user_id_header),
):
    manager = load_manager(quote_id, state, user_id)
    manager.add_event(request.event_id, request.name, request.price)
    state.store.save_quote(manager.quote)
    return quote_payload(manager)


@router.delete("/{quote_id}/events/{event_id}")
async def remove_event(
    quote_id: str,
    event_id: str,
    state: EngineState = Depends(get_state),
    user_id: str = Depends(user_id_header),
):
    manager = load_manager(quote_id, state, user_id)
    manager.remove_event(event_id)
    state.store.save_quote(manager.quote)
    return quote_payload(manager)


@router.get("/{quote_id}/history")
async def get_price_history(quote_id: str, state: EngineState = Depends(get_state)):
    """Read-only price audit log with summary statistics."""
    quote = state.store.load_quote(quote_id)
    return {
        "entries": [entry.to_dict() for entry in quote.price_history],
        "summary": price_history_summary(quote),
    }
