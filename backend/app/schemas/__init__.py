from .pricing import (
    FxRateCreate,
    FxRateResponse,
    PricingRuleCreate,
    PricingRuleResponse,
    RepriceRequest,
    ApplyRepriceRequest,
    RepriceRowResponse,
    RepricePreviewResponse,
    ApplyRepriceResponse,
)
from .routing import (
    RoutingWeights,
    RoutingConfigUpdate,
    RoutingConfigResponse,
    RoutingDecisionResponse,
    SupplierGroupSummary,
    RouteOrderResponse,
)
from .shipping import ShippingPreviewRequest, ShippingQuoteRequest, ShippingQuoteResponse, CartItem
from .offers import SupplierOfferResponse, OfferImportResponse

__all__ = [
    "FxRateCreate",
    "FxRateResponse",
    "PricingRuleCreate",
    "PricingRuleResponse",
    "RepriceRequest",
    "ApplyRepriceRequest",
    "RepriceRowResponse",
    "RepricePreviewResponse",
    "ApplyRepriceResponse",
    "RoutingWeights",
    "RoutingConfigUpdate",
    "RoutingConfigResponse",
    "RoutingDecisionResponse",
    "SupplierGroupSummary",
    "RouteOrderResponse",
    "ShippingPreviewRequest",
    "ShippingQuoteRequest",
    "ShippingQuoteResponse",
    "CartItem",
    "SupplierOfferResponse",
    "OfferImportResponse",
]
