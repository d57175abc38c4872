"""
Error types for quote/package price integration.

Every error carries a stable ``code``, an HTTP ``status_code``, whether the
caller may retry it, and the recovery actions the quote editor should offer.
"""
from typing import Optional

# Recovery actions offered to the quote editor
RETRY = "retry"
MANUAL_PRICE = "manual_price"
UNLINK_PACKAGE = "unlink_package"
ADJUST_PARAMETERS = "adjust_parameters"
SELECT_DIFFERENT_PACKAGE = "select_different_package"


class PricingError(Exception):
    """Base exception for pricing engine errors."""

    code = "PRICING_ERROR"
    status_code = 500
    retryable = False
    recovery_actions: tuple = ()

    def __init__(self, message: str, context: Optional[dict] = None):
        super().__init__(message)
        self.message = message
        self.context = context or {}

    def to_dict(self) -> dict:
        return {
            "code": self.code,
            "message": self.message,
            "retryable": self.retryable,
            "recovery_actions": list(self.recovery_actions),
            "context": self.context,
        }


# Resolution errors: deterministic, never retried

class ResolutionError(PricingError):
    """No price can be resolved from the pricing matrix."""

    NO_TIERS_DEFINED = "NO_TIERS_DEFINED"
    NO_PERIOD_MATCH = "NO_PERIOD_MATCH"
    PRICE_NOT_FOUND = "PRICE_NOT_FOUND"
    APPROXIMATION_REJECTED = "APPROXIMATION_REJECTED"

    status_code = 422
    recovery_actions = (ADJUST_PARAMETERS, MANUAL_PRICE)

    def __init__(self, code: str, message: str, context: Optional[dict] = None):
        super().__init__(message, context)
        self.code = code


# Transient errors: the caller may retry, then fall back to a manual price

class NetworkError(PricingError):
    code = "NETWORK_ERROR"
    status_code = 503
    retryable = True
    recovery_actions = (RETRY, MANUAL_PRICE)

    def __init__(self, message: str = "Network request failed", context: Optional[dict] = None):
        super().__init__(message, context)


class CalculationTimeoutError(PricingError):
    code = "CALCULATION_TIMEOUT"
    status_code = 504
    retryable = True
    recovery_actions = (RETRY, MANUAL_PRICE)

    def __init__(self, timeout_seconds: float, context: Optional[dict] = None):
        super().__init__(
            f"Price calculation timed out after {timeout_seconds:g}s",
            {"timeout_seconds": timeout_seconds, **(context or {})},
        )


# Referential errors

class PackageNotFoundError(PricingError):
    """The package was deleted or deactivated; the only way out is to unlink."""

    code = "PACKAGE_NOT_FOUND"
    status_code = 404
    recovery_actions = (UNLINK_PACKAGE,)

    def __init__(self, package_id: str, context: Optional[dict] = None):
        super().__init__(
            f"Package '{package_id}' not found or no longer active",
            {"package_id": package_id, **(context or {})},
        )
        self.package_id = package_id


# Caller errors

class QuoteStateError(PricingError):
    """An operation is not valid in the quote's current link state."""

    code = "INVALID_STATE"
    status_code = 409


class InvalidPriceError(PricingError):
    code = "INVALID_PRICE"
    status_code = 400


class PriceRequiredError(PricingError):
    """Quote priced ON_REQUEST cannot be saved until a manual price is supplied."""

    code = "PRICE_REQUIRED"
    status_code = 422
    recovery_actions = (MANUAL_PRICE,)


class QuoteNotFoundError(PricingError):
    code = "QUOTE_NOT_FOUND"
    status_code = 404

    def __init__(self, quote_id: str):
        super().__init__(f"Quote '{quote_id}' not found", {"quote_id": quote_id})
