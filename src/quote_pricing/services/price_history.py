"""
Price History Tracker - append-only audit log of a quote's price.

Entries are immutable and only ever appended; rolling a price back appends a
new entry instead of removing the override that preceded it.
"""
import logging
from datetime import datetime, timezone
from typing import Callable, Optional, Union

from ..engine.errors import InvalidPriceError
from ..engine.models import PriceChangeReason, PriceHistoryEntry, Quote, is_on_request

logger = logging.getLogger(__name__)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class PriceHistoryTracker:
    """Builds price history entries with a reason and the acting user."""

    def __init__(self, clock: Callable[[], datetime] = utc_now):
        self.clock = clock

    def append(
        self,
        quote: Quote,
        price: float,
        reason: Union[PriceChangeReason, str],
        user_id: str,
    ) -> PriceHistoryEntry:
        """Push ``{price, reason, timestamp, user_id}`` onto the quote's history."""
        if is_on_request(price) or price is None or isinstance(price, bool):
            raise InvalidPriceError(f"Price history only records amounts, got {price!r}")
        try:
            reason = PriceChangeReason(reason)
        except ValueError as exc:
            raise InvalidPriceError(f"Unknown price change reason {reason!r}") from exc

        entry = PriceHistoryEntry(
            price=float(price),
            reason=reason,
            timestamp=self.clock(),
            user_id=str(user_id),
        )
        quote.price_history.append(entry)
        logger.debug("Quote %s: price %.2f recorded (%s) by %s", quote.id, entry.price, reason.value, user_id)
        return entry

    def latest(self, quote: Quote) -> Optional[PriceHistoryEntry]:
        return quote.price_history[-1] if quote.price_history else None

    def entries_for(self, quote: Quote, reason: Union[PriceChangeReason, str]) -> list[PriceHistoryEntry]:
        reason = PriceChangeReason(reason)
        return [e for e in quote.price_history if e.reason == reason]
