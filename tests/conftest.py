from datetime import date, datetime, timedelta, timezone

import pytest

from quote_pricing.config.settings import Settings
from quote_pricing.engine.models import Package, Quote, TripParameters
from quote_pricing.services.calculation_service import PriceCalculationService
from quote_pricing.services.package_source import InMemoryPackageSource
from quote_pricing.services.price_history import PriceHistoryTracker
from quote_pricing.services.quote_link_manager import QuoteLinkManager


def lakes_package_doc(version=1, june_five_nights=1500, status="active") -> dict:
    """Package API document used across the suite."""
    return {
        "id": "pkg-lakes",
        "name": "Lakes Explorer",
        "version": version,
        "currency": "GBP",
        "status": status,
        "groupSizeTiers": [
            {"label": "10-15", "minPeople": 10, "maxPeople": 15},
            {"label": "16-20", "minPeople": 16, "maxPeople": 20},
        ],
        "durationOptions": [3, 5, 7],
        "pricingMatrix": [
            {
                "periodLabel": "June",
                "periodType": "month",
                "prices": [
                    {"tierIndex": 0, "nights": 3, "price": 1000},
                    {"tierIndex": 0, "nights": 5, "price": june_five_nights},
                    {"tierIndex": 0, "nights": 7, "price": 2000},
                    {"tierIndex": 1, "nights": 3, "price": 900},
                    {"tierIndex": 1, "nights": 5, "price": 1350},
                    {"tierIndex": 1, "nights": 7, "price": "ON_REQUEST"},
                ],
            },
            {
                "periodLabel": "July",
                "periodType": "month",
                "prices": [
                    {"tierIndex": 0, "nights": 3, "price": 1100},
                    {"tierIndex": 0, "nights": 5, "price": 1650},
                    {"tierIndex": 0, "nights": 7, "price": 2200},
                    {"tierIndex": 1, "nights": 3, "price": 990},
                    {"tierIndex": 1, "nights": 5, "price": 1480},
                    {"tierIndex": 1, "nights": 7, "price": 1950},
                ],
            },
            {
                "periodLabel": "Summer Festival",
                "periodType": "special",
                "startDate": "2024-07-20",
                "endDate": "2024-07-27",
                "prices": [
                    {"tierIndex": 0, "nights": 5, "price": 1900},
                    {"tierIndex": 0, "nights": 7, "price": 2600},
                    {"tierIndex": 1, "nights": 5, "price": 1700},
                    {"tierIndex": 1, "nights": 7, "price": "ON_REQUEST"},
                ],
            },
        ],
    }


def make_package(**kwargs) -> Package:
    return Package.from_dict(lakes_package_doc(**kwargs))


class FixedClock:
    """Deterministic UTC clock that advances one minute per call."""

    def __init__(self, start=datetime(2024, 5, 1, 9, 0, tzinfo=timezone.utc)):
        self.now = start

    def __call__(self):
        current = self.now
        self.now = self.now + timedelta(minutes=1)
        return current


@pytest.fixture
def package():
    return make_package()


@pytest.fixture
def settings():
    # No debounce: requests dispatch at once
    return Settings(debounce_seconds=0.0, fetch_timeout_seconds=1.0)


@pytest.fixture
def source(package):
    return InMemoryPackageSource([package])


@pytest.fixture
def calculator(source, settings):
    return PriceCalculationService(source, settings=settings)


@pytest.fixture
def quote():
    return Quote(
        id="q-1",
        number_of_people=12,
        number_of_nights=5,
        arrival_date=date(2024, 6, 10),
        inclusions=["Breakfast daily", "Guided fell walk"],
    )


@pytest.fixture
def history():
    return PriceHistoryTracker(clock=FixedClock())


@pytest.fixture
def manager(quote, calculator, history):
    return QuoteLinkManager(quote, calculator, "agent-7", history=history)


@pytest.fixture
def june_params():
    return TripParameters(number_of_people=12, number_of_nights=5, arrival_date=date(2024, 6, 10))
