"""运费报价模块。"""

from .engine import QuoteOrchestrator
from .models import MultiVendorQuoteResult, QuoteOption, QuoteRequest, QuoteResult
from .multi_vendor import ConsolidationStrategy, MultiVendorCoordinator
from .providers import (
    AggregatorProvider,
    InternalRateProvider,
    IShippingProvider,
    PostalZoneProvider,
    ProviderCapability,
)
from .service import ShippingQuoteService

__all__ = [
    "AggregatorProvider",
    "ConsolidationStrategy",
    "IShippingProvider",
    "InternalRateProvider",
    "MultiVendorCoordinator",
    "MultiVendorQuoteResult",
    "PostalZoneProvider",
    "ProviderCapability",
    "QuoteOption",
    "QuoteOrchestrator",
    "QuoteRequest",
    "QuoteResult",
    "ShippingQuoteService",
]
