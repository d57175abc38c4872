"""
Quote Store - whole-document quote persistence.

Handles loading and saving quote documents; saving validates that a quote
whose package price was ON_REQUEST has been given a manual price.
"""
import copy
import json
import logging
from pathlib import Path
from typing import Optional

from ..engine.errors import PriceRequiredError, QuoteNotFoundError
from ..engine.models import Quote

logger = logging.getLogger(__name__)


def validate_for_save(quote: Quote):
    """Raise PriceRequiredError for an ON_REQUEST quote without a manual price."""
    linked = quote.linked_package
    if quote.total_price is None and linked is not None and linked.price_was_on_request:
        raise PriceRequiredError(
            "Package price is on request; enter a manual price before saving",
            {"quote_id": quote.id, "package_id": linked.package_id},
        )


class QuoteStore:
    """Interface for quote persistence."""

    def load_quote(self, quote_id: str) -> Quote:
        raise NotImplementedError

    def save_quote(self, quote: Quote) -> Quote:
        raise NotImplementedError

    def list_quote_ids(self) -> list[str]:
        raise NotImplementedError


class InMemoryQuoteStore(QuoteStore):
    """Quote documents kept in a dict (copies, so callers never share state)."""

    def __init__(self):
        self._documents: dict[str, dict] = {}

    def load_quote(self, quote_id: str) -> Quote:
        document = self._documents.get(quote_id)
        if document is None:
            raise QuoteNotFoundError(quote_id)
        return Quote.from_dict(copy.deepcopy(document))

    def save_quote(self, quote: Quote) -> Quote:
        validate_for_save(quote)
        self._documents[quote.id] = quote.to_dict()
        return quote

    def list_quote_ids(self) -> list[str]:
        return sorted(self._documents)


class JsonQuoteStore(QuoteStore):
    """One JSON document per quote under ``directory``."""

    def __init__(self, directory: Path):
        self.directory = Path(directory)
        self.directory.mkdir(parents=True, exist_ok=True)

    def _path(self, quote_id: str) -> Path:
        safe = "".join(c for c in str(quote_id) if c.isalnum() or c in "-_")
        if not safe:
            raise QuoteNotFoundError(quote_id)
        return self.directory / f"{safe}.json"

    def load_quote(self, quote_id: str) -> Quote:
        path = self._path(quote_id)
        if not path.exists():
            raise QuoteNotFoundError(quote_id)
        with open(path, 'r', encoding='utf-8') as f:
            return Quote.from_dict(json.load(f))

    def save_quote(self, quote: Quote) -> Quote:
        validate_for_save(quote)
        path = self._path(quote.id)
        tmp_path = path.with_suffix('.json.tmp')
        with open(tmp_path, 'w', encoding='utf-8') as f:
            json.dump(quote.to_dict(), f, indent=2)
        tmp_path.replace(path)
        logger.debug("Saved quote %s to %s", quote.id, path)
        return quote

    def list_quote_ids(self) -> list[str]:
        return sorted(p.stem for p in self.directory.glob('*.json'))


def build_quote_store(directory: Optional[Path] = None) -> QuoteStore:
    return JsonQuoteStore(directory) if directory else InMemoryQuoteStore()
