from .catalog import Product, Variant, ProductCategory, PackType
from .supplier import Supplier, SupplierOffer, SupplierAssignment, Availability
from .pricing import (
    FxRate,
    CostBasis,
    PricingRule,
    PriceChangeLog,
    PricingScope,
    RoundingStrategy,
    CostSource,
)
from .order import Order, OrderItem, OrderStatus
from .routing import (
    RoutingConfig,
    RoutingDecision,
    ProcurementTask,
    ProcurementTaskLine,
    RoutingStrategy,
    ProcurementTaskStatus,
)
from .shipping import (
    ShippingZone,
    ShippingZoneCountry,
    ShippingRule,
    CarrierPolicy,
    ShippingRuleBand,
    ShippingCarrier,
    CarrierPolicyType,
)

__all__ = [
    "Product",
    "Variant",
    "ProductCategory",
    "PackType",
    "Supplier",
    "SupplierOffer",
    "SupplierAssignment",
    "Availability",
    "FxRate",
    "CostBasis",
    "PricingRule",
    "PriceChangeLog",
    "PricingScope",
    "RoundingStrategy",
    "CostSource",
    "Order",
    "OrderItem",
    "OrderStatus",
    "RoutingConfig",
    "RoutingDecision",
    "ProcurementTask",
    "ProcurementTaskLine",
    "RoutingStrategy",
    "ProcurementTaskStatus",
    "ShippingZone",
    "ShippingZoneCountry",
    "ShippingRule",
    "CarrierPolicy",
    "ShippingRuleBand",
    "ShippingCarrier",
    "CarrierPolicyType",
]
