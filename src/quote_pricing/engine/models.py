"""
Data models for the quote pricing engine.

Uses dataclasses for structured, type-safe data representation. Packages and
quotes travel as camelCase documents (package API / quote store); the
``from_dict``/``to_dict`` helpers translate between the two.
"""
from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Optional, Union


class _OnRequest:
    """Sentinel price: no fixed figure, the agent must quote manually."""

    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self):
        return "ON_REQUEST"

    def __str__(self):
        return "ON_REQUEST"

    def __reduce__(self):
        return (_OnRequest, ())


ON_REQUEST = _OnRequest()
ON_REQUEST_LABEL = "ON_REQUEST"

Price = Union[float, _OnRequest]


def is_on_request(price) -> bool:
    """True for the sentinel (or its wire form)."""
    return price is ON_REQUEST or price == ON_REQUEST_LABEL


def parse_price(value) -> Price:
    """Parse a wire price: a non-negative number or the ON_REQUEST string."""
    if is_on_request(value):
        return ON_REQUEST
    if isinstance(value, bool) or value is None:
        raise ValueError(f"Invalid price value: {value!r}")
    amount = float(value)
    if amount < 0:
        raise ValueError(f"Price must be non-negative, got {amount}")
    return amount


def dump_price(price: Price):
    """Wire form of a price."""
    return ON_REQUEST_LABEL if is_on_request(price) else price


def parse_date(value) -> Optional[date]:
    """Accept date, datetime or ISO string; datetimes collapse to their date."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    text = str(value)
    if "T" in text:
        return datetime.fromisoformat(text.replace("Z", "+00:00")).date()
    return date.fromisoformat(text)


def parse_datetime(value) -> Optional[datetime]:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value
    return datetime.fromisoformat(str(value).replace("Z", "+00:00"))


@dataclass
class TraceStep:
    """A single step in the price resolution trace."""
    step: str
    description: str
    value: Optional[str] = None


# ---------------------------------------------------------------------------
# Package (read-only to the engine)
# ---------------------------------------------------------------------------

@dataclass
class GroupSizeTier:
    """A group-size bracket of a package."""
    label: str
    min_people: int
    max_people: int

    def contains(self, people: int) -> bool:
        return self.min_people <= people <= self.max_people

    def distance(self, people: int) -> int:
        """Minimum absolute distance from ``people`` to either bound."""
        return min(abs(people - self.min_people), abs(people - self.max_people))

    @property
    def range_label(self) -> str:
        return f"{self.min_people}-{self.max_people}"


@dataclass
class MatrixPrice:
    """One cell of a period's price list."""
    tier_index: int
    nights: int
    price: Price


@dataclass
class PricingPeriod:
    """A pricing-matrix row: a calendar month or a special date range."""
    period_label: str
    period_type: str = "month"  # "month" or "special"
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    prices: list[MatrixPrice] = field(default_factory=list)

    @property
    def is_special(self) -> bool:
        return self.period_type == "special"

    def covers(self, day: date) -> bool:
        """Inclusive date-range check for special periods."""
        if self.start_date is None or self.end_date is None:
            return False
        return self.start_date <= day <= self.end_date

    def find_price(self, tier_index: int, nights: int) -> Optional[MatrixPrice]:
        for cell in self.prices:
            if cell.tier_index == tier_index and cell.nights == nights:
                return cell
        return None

    @property
    def date_range_label(self) -> str:
        if self.start_date is None or self.end_date is None:
            return self.period_label
        return f"{self.start_date.isoformat()} to {self.end_date.isoformat()}"


@dataclass
class Package:
    """A super package with its pricing matrix."""
    id: str
    version: int
    group_size_tiers: list[GroupSizeTier] = field(default_factory=list)
    duration_options: list[int] = field(default_factory=list)
    pricing_matrix: list[PricingPeriod] = field(default_factory=list)
    name: str = ""
    currency: str = "GBP"
    status: str = "active"

    @property
    def is_active(self) -> bool:
        return self.status == "active"

    @classmethod
    def from_dict(cls, data: dict) -> 'Package':
        """Build a package from its API document."""
        tiers = [
            GroupSizeTier(
                label=str(t.get('label', '')),
                min_people=int(t.get('minPeople', t.get('min_people'))),
                max_people=int(t.get('maxPeople', t.get('max_people'))),
            )
            for t in data.get('groupSizeTiers', data.get('group_size_tiers', []))
        ]

        periods = []
        for entry in data.get('pricingMatrix', data.get('pricing_matrix', [])):
            prices = [
                MatrixPrice(
                    tier_index=int(p.get('tierIndex', p.get('tier_index'))),
                    nights=int(p['nights']),
                    price=parse_price(p['price']),
                )
                for p in entry.get('prices', [])
            ]
            periods.append(PricingPeriod(
                period_label=str(entry.get('periodLabel', entry.get('period', ''))),
                period_type=entry.get('periodType', entry.get('period_type', 'month')),
                start_date=parse_date(entry.get('startDate', entry.get('start_date'))),
                end_date=parse_date(entry.get('endDate', entry.get('end_date'))),
                prices=prices,
            ))

        return cls(
            id=str(data.get('id', data.get('_id', ''))),
            version=int(data.get('version', 1)),
            group_size_tiers=tiers,
            duration_options=[int(n) for n in data.get('durationOptions', data.get('duration_options', []))],
            pricing_matrix=periods,
            name=data.get('name', ''),
            currency=data.get('currency', 'GBP'),
            status=data.get('status', 'active'),
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "version": self.version,
            "currency": self.currency,
            "status": self.status,
            "groupSizeTiers": [
                {"label": t.label, "minPeople": t.min_people, "maxPeople": t.max_people}
                for t in self.group_size_tiers
            ],
            "durationOptions": list(self.duration_options),
            "pricingMatrix": [
                {
                    "periodLabel": p.period_label,
                    "periodType": p.period_type,
                    "startDate": p.start_date.isoformat() if p.start_date else None,
                    "endDate": p.end_date.isoformat() if p.end_date else None,
                    "prices": [
                        {"tierIndex": c.tier_index, "nights": c.nights, "price": dump_price(c.price)}
                        for c in p.prices
                    ],
                }
                for p in self.pricing_matrix
            ],
        }


# ---------------------------------------------------------------------------
# Calculation inputs and outputs
# ---------------------------------------------------------------------------

@dataclass
class TripParameters:
    """The scalar trip parameters a price depends on."""
    number_of_people: int
    number_of_nights: int
    arrival_date: date

    def __post_init__(self):
        self.arrival_date = parse_date(self.arrival_date)


@dataclass
class Resolution:
    """Result of resolving a price from a package's pricing matrix."""
    tier_index: int
    tier_label: str
    period_label: str
    period_type: str
    nights: int
    price: Optional[Price]
    tier_approximate: bool = False
    duration_approximate: bool = False
    trace: list[TraceStep] = field(default_factory=list)

    @property
    def is_on_request(self) -> bool:
        return is_on_request(self.price)

    def add_trace(self, step: str, description: str, value: str = None):
        """Add a step to the resolution trace."""
        self.trace.append(TraceStep(step=step, description=description, value=value))

    def get_trace_text(self) -> str:
        """Get human-readable trace as formatted text."""
        lines = []
        for t in self.trace:
            if t.value:
                lines.append(f"• {t.step}: {t.description} = {t.value}")
            else:
                lines.append(f"• {t.step}: {t.description}")
        return "\n".join(lines)


@dataclass
class ValidationWarning:
    """A non-blocking advisory about quote parameters."""
    field: str  # "numberOfNights", "numberOfPeople" or "arrivalDate"
    message: str
    suggested_values: list = field(default_factory=list)


@dataclass
class CalculationOutcome:
    """What the calculation service hands back for one request."""
    quote_id: str
    package_id: str
    token: int
    params: TripParameters
    resolution: Optional[Resolution] = None
    warnings: list[ValidationWarning] = field(default_factory=list)
    package_version: Optional[int] = None
    package_name: str = ""
    currency: str = ""
    cache_hit: bool = False
    superseded: bool = False

    @property
    def price(self) -> Optional[Price]:
        return self.resolution.price if self.resolution else None

    @property
    def price_per_person(self) -> Optional[float]:
        if self.resolution is None or self.resolution.is_on_request:
            return None
        if not self.params.number_of_people:
            return None
        return self.resolution.price / self.params.number_of_people

    def to_summary(self) -> dict:
        """The ``{price, tierLabel, periodLabel, warnings}`` view for the editor UI."""
        return {
            "price": dump_price(self.price) if self.resolution else None,
            "tierLabel": self.resolution.tier_label if self.resolution else None,
            "periodLabel": self.resolution.period_label if self.resolution else None,
            "warnings": [w.message for w in self.warnings],
        }


# ---------------------------------------------------------------------------
# Quote (the engine mutates linked_package and price_history)
# ---------------------------------------------------------------------------

class PriceChangeReason(str, Enum):
    PACKAGE_SELECTION = "package_selection"
    RECALCULATION = "recalculation"
    MANUAL_OVERRIDE = "manual_override"
    EVENT_ADDED = "event_added"
    EVENT_REMOVED = "event_removed"


@dataclass(frozen=True)
class PriceHistoryEntry:
    """One immutable entry of a quote's price audit log."""
    price: float
    reason: PriceChangeReason
    timestamp: datetime
    user_id: str

    def to_dict(self) -> dict:
        return {
            "price": self.price,
            "reason": self.reason.value,
            "timestamp": self.timestamp.isoformat(),
            "userId": self.user_id,
        }

    @classmethod
    def from_dict(cls, data: dict) -> 'PriceHistoryEntry':
        return cls(
            price=float(data['price']),
            reason=PriceChangeReason(data['reason']),
            timestamp=parse_datetime(data['timestamp']),
            user_id=str(data.get('userId', data.get('user_id', ''))),
        )


@dataclass
class LinkedPackage:
    """Which package/tier/period a quote's price was derived from."""
    package_id: str
    package_version: int
    selected_tier_index: int
    selected_tier_label: str
    selected_period_label: str
    calculated_price: Price
    selected_nights: Optional[int] = None
    package_name: str = ""
    custom_price_applied: bool = False
    price_was_on_request: bool = False
    last_recalculated_at: Optional[datetime] = None

    def to_dict(self) -> dict:
        return {
            "packageId": self.package_id,
            "packageName": self.package_name,
            "packageVersion": self.package_version,
            "selectedTierIndex": self.selected_tier_index,
            "selectedTierLabel": self.selected_tier_label,
            "selectedNights": self.selected_nights,
            "selectedPeriodLabel": self.selected_period_label,
            "calculatedPrice": dump_price(self.calculated_price),
            "customPriceApplied": self.custom_price_applied,
            "priceWasOnRequest": self.price_was_on_request,
            "lastRecalculatedAt": self.last_recalculated_at.isoformat() if self.last_recalculated_at else None,
        }

    @classmethod
    def from_dict(cls, data: dict) -> 'LinkedPackage':
        return cls(
            package_id=str(data['packageId']),
            package_name=data.get('packageName', ''),
            package_version=int(data.get('packageVersion', 1)),
            selected_tier_index=int(data.get('selectedTierIndex', 0)),
            selected_tier_label=data.get('selectedTierLabel', ''),
            selected_nights=data.get('selectedNights'),
            selected_period_label=data.get('selectedPeriodLabel', ''),
            calculated_price=parse_price(data['calculatedPrice']),
            custom_price_applied=bool(data.get('customPriceApplied', False)),
            price_was_on_request=bool(data.get('priceWasOnRequest', False)),
            last_recalculated_at=parse_datetime(data.get('lastRecalculatedAt')),
        )


@dataclass
class QuoteEvent:
    """A paid event (excursion, activity) added on top of the package price."""
    event_id: str
    name: str
    price: float


@dataclass
class Quote:
    """A holiday quote document."""
    id: str
    number_of_people: int
    number_of_nights: int
    arrival_date: date
    total_price: Optional[float] = None
    currency: str = "GBP"
    inclusions: list[str] = field(default_factory=list)
    selected_events: list[QuoteEvent] = field(default_factory=list)
    linked_package: Optional[LinkedPackage] = None
    price_history: list[PriceHistoryEntry] = field(default_factory=list)

    def __post_init__(self):
        self.arrival_date = parse_date(self.arrival_date)

    @property
    def trip_parameters(self) -> TripParameters:
        return TripParameters(
            number_of_people=self.number_of_people,
            number_of_nights=self.number_of_nights,
            arrival_date=self.arrival_date,
        )

    @property
    def events_total(self) -> float:
        return sum(e.price for e in self.selected_events)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "numberOfPeople": self.number_of_people,
            "numberOfNights": self.number_of_nights,
            "arrivalDate": self.arrival_date.isoformat() if self.arrival_date else None,
            "totalPrice": self.total_price,
            "currency": self.currency,
            "inclusions": list(self.inclusions),
            "selectedEvents": [
                {"eventId": e.event_id, "name": e.name, "price": e.price}
                for e in self.selected_events
            ],
            "linkedPackage": self.linked_package.to_dict() if self.linked_package else None,
            "priceHistory": [e.to_dict() for e in self.price_history],
        }

    @classmethod
    def from_dict(cls, data: dict) -> 'Quote':
        linked = data.get('linkedPackage')
        total = data.get('totalPrice')
        return cls(
            id=str(data['id']),
            number_of_people=int(data['numberOfPeople']),
            number_of_nights=int(data['numberOfNights']),
            arrival_date=parse_date(data['arrivalDate']),
            total_price=float(total) if total is not None else None,
            currency=data.get('currency', 'GBP'),
            inclusions=list(data.get('inclusions', [])),
            selected_events=[
                QuoteEvent(event_id=str(e['eventId']), name=e.get('name', ''), price=float(e['price']))
                for e in data.get('selectedEvents', [])
            ],
            linked_package=LinkedPackage.from_dict(linked) if linked else None,
            price_history=[PriceHistoryEntry.from_dict(e) for e in data.get('priceHistory', [])],
        )
