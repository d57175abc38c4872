from contextlib import asynccontextmanager
from datetime import date

from fastapi import Depends, FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from quote_pricing import __version__
from quote_pricing.config.settings import configure_logging, get_settings
from quote_pricing.engine.errors import PricingError
from quote_pricing.engine.models import TripParameters
from quote_pricing.services.reporting import matrix_records
from quote_pricing.api.quotes_api import router as quotes_router
from quote_pricing.api.state import EngineState, current_state, get_state, set_state


@asynccontextmanager
async def lifespan(app: FastAPI):
    configure_logging(get_settings())
    yield
    state = current_state()
    if state is not None:
        await state.source.aclose()
        set_state(None)


app = FastAPI(
    title="Quote Pricing Engine API",
    description="Package-derived pricing for holiday quotes",
    version=__version__,
    lifespan=lifespan,
)

# Enable CORS for the quote editor
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include quote link life cycle API
app.include_router(quotes_router)


@app.exception_handler(PricingError)
async def pricing_error_handler(request: Request, exc: PricingError):
    return JSONResponse(status_code=exc.status_code, content={"error": exc.to_dict()})


class CalcRequest(BaseModel):
    quote_id: str
    package_id: str
    number_of_people: int = Field(ge=1)
    number_of_nights: int = Field(ge=1)
    arrival_date: date


@app.get("/")
async def root():
    return {"status": "online", "message": "Quote Pricing Engine API Active"}


@app.post("/calculate")
async def calculate_price(req: CalcRequest, state: EngineState = Depends(get_state)):
    """Debounced price calculation for the quote editor; nothing is saved."""
    params = TripParameters(
        number_of_people=req.number_of_people,
        number_of_nights=req.number_of_nights,
        arrival_date=req.arrival_date,
    )
    outcome = await state.calculator.request_calculation(req.quote_id, req.package_id, params)
    if outcome.superseded:
        return {"superseded": True}
    return {
        **outcome.to_summary(),
        "superseded": False,
        "pricePerPerson": outcome.price_per_person,
        "currency": outcome.currency,
        "packageVersion": outcome.package_version,
        "tierApproximate": outcome.resolution.tier_approximate,
        "durationApproximate": outcome.resolution.duration_approximate,
        "trace": outcome.resolution.get_trace_text(),
    }


@app.get("/packages/{package_id}/matrix")
async def get_package_matrix(package_id: str, state: EngineState = Depends(get_state)):
    package = await state.calculator.get_package(package_id)
    return {
        "package_id": package.id,
        "version": package.version,
        "currency": package.currency,
        "rows": matrix_records(package),
    }


@app.get("/system/status")
async def get_status(state: EngineState = Depends(get_state)):
    calculator = state.calculator
    return {
        "engine_active": True,
        "version": __version__,
        "package_source": type(state.source).__name__,
        "quote_store": type(state.store).__name__,
        "cache_entries": calculator.cache_size,
        "cache_hits": calculator.cache_hits,
        "cache_misses": calculator.cache_misses,
        "dispatches": calculator.dispatch_count,
        "debounce_seconds": state.settings.debounce_seconds,
    }
