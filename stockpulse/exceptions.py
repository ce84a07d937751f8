"""
Error taxonomy for the analytics engine.

Fetch errors are raised by the Shopify client; retryable ones are retried a
bounded number of times by ``ShopifyClient.safe_call``. Record and enrichment
errors are caught where they happen and counted, only ``CollectionError``
reaches the caller.
"""

from typing import Any, Dict, Optional


class StockPulseError(Exception):
    """Base class for all engine errors"""

    def __init__(self, message: str, context: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.context = context or {}

    def to_dict(self) -> Dict[str, Any]:
        return {
            "error": self.message,
            "error_type": type(self).__name__,
            "context": self.context,
        }


class FetchError(StockPulseError):
    """A call to the commerce API failed"""

    retryable: bool = False


class RateLimited(FetchError):
    """API answered 429 or a GraphQL THROTTLED error"""

    retryable = True

    def __init__(self, message: str = "Rate limited", retry_after: Optional[float] = None, **kwargs):
        super().__init__(message, **kwargs)
        self.retry_after = retry_after


class FetchTimeout(FetchError):
    """Call exceeded the hard wall-clock timeout"""

    retryable = True


class HttpError(FetchError):
    """Non-2xx response; 5xx responses are treated as transient"""

    def __init__(self, status: int, message: str = "", transient: Optional[bool] = None, **kwargs):
        super().__init__(message or f"HTTP {status}", **kwargs)
        self.status = status
        self.transient = transient

    @property
    def retryable(self) -> bool:  # type: ignore[override]
        if self.transient is not None:
            return self.transient
        return self.status >= 500


class ValidationError(StockPulseError):
    """Malformed order record or line item"""


class PartialEnrichmentFailure(StockPulseError):
    """A variant, inventory chunk or location could not be resolved"""


class CollectionError(StockPulseError):
    """The first page of an order collection failed, so there is no data at all"""
