from __future__ import annotations

import os
from datetime import datetime, timedelta

# Must be set before app.db.database creates its engine
os.environ["DATABASE_URL"] = "sqlite://"

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app import models  # noqa: F401  (registers tables on Base.metadata)
from app.db.database import Base, get_db
from app.models import (
    CarrierPolicy,
    CostBasis,
    FxRate,
    Order,
    OrderItem,
    Product,
    ShippingRule,
    ShippingZone,
    ShippingZoneCountry,
    Supplier,
    SupplierOffer,
    Variant,
)
from app.models.catalog import PackType, ProductCategory
from app.models.order import OrderStatus


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def db(engine):
    TestingSession = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    session = TestingSession()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def client(db):
    from app.main import app

    def _override_get_db():
        yield db

    app.dependency_overrides[get_db] = _override_get_db
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


@pytest.fixture
def make_variant(db):
    counter = {"n": 0}

    def _make(
        category=ProductCategory.BOLT,
        size="M6",
        length=20,
        strength_class="8.8",
        finish="zinc",
        pack_type=PackType.PACK_10,
        price_usd_cents=1000,
        slug=None,
        active=True,
    ) -> Variant:
        counter["n"] += 1
        n = counter["n"]
        product = Product(
            slug=f"{category.value}-{size.lower()}-{n}",
            category=category,
            size=size,
            length=length if category is ProductCategory.BOLT else None,
            strength_class=strength_class if category is ProductCategory.BOLT else None,
            finish=finish,
            active=True,
        )
        db.add(product)
        db.flush()
        variant = Variant(
            product_id=product.id,
            slug=slug or f"{product.slug}-{pack_type.value.lower()}",
            pack_type=pack_type,
            price_usd_cents=price_usd_cents,
            active=active,
        )
        db.add(variant)
        db.commit()
        db.refresh(variant)
        return variant

    return _make


@pytest.fixture
def make_supplier(db):
    def _make(name: str) -> Supplier:
        supplier = Supplier(name=name)
        db.add(supplier)
        db.commit()
        db.refresh(supplier)
        return supplier

    return _make


@pytest.fixture
def make_offer(db):
    def _make(supplier: Supplier, **fields) -> SupplierOffer:
        fields.setdefault("unit_cost_jpy", 100)
        offer = SupplierOffer(supplier_id=supplier.id, **fields)
        db.add(offer)
        db.commit()
        db.refresh(offer)
        return offer

    return _make


@pytest.fixture
def record_fx(db):
    def _make(rate: float = 150.0, captured_at=None) -> FxRate:
        fx = FxRate(pair="JPYUSD", rate=rate, source="manual", captured_at=captured_at or datetime.utcnow())
        db.add(fx)
        db.commit()
        return fx

    return _make


@pytest.fixture
def record_cost(db):
    def _make(variant: Variant, cost_jpy: int, days_ago: float = 1, **fields) -> CostBasis:
        cost = CostBasis(
            variant_id=variant.id,
            cost_jpy_per_pack=cost_jpy,
            captured_at=datetime.utcnow() - timedelta(days=days_ago),
            **fields,
        )
        db.add(cost)
        db.commit()
        return cost

    return _make


@pytest.fixture
def make_paid_order(db):
    def _make(items, status=OrderStatus.PAID) -> Order:
        order = Order(email="buyer@example.com", status=status.value, country_code="AU")
        for variant, quantity in items:
            order.items.append(
                OrderItem(
                    variant_id=variant.id,
                    quantity=quantity,
                    unit_price_usd_cents=variant.price_usd_cents,
                )
            )
        db.add(order)
        db.commit()
        db.refresh(order)
        return order

    return _make


@pytest.fixture
def shipping_zone(db):
    """Oceania zone (AU, NZ) with JP Post and DHL rules for every band."""
    zone = ShippingZone(name="Oceania", is_active=True)
    zone.countries = [ShippingZoneCountry(code="AU"), ShippingZoneCountry(code="NZ")]
    prices = {
        ("JP_POST", "BAND_A_10PCS"): (1200, 7, 14),
        ("JP_POST", "BAND_B_20PCS"): (1800, 7, 14),
        ("JP_POST", "BAND_C_BULK"): (3000, 10, 20),
        ("DHL", "BAND_A_10PCS"): (2500, 2, 4),
        ("DHL", "BAND_B_20PCS"): (3800, 2, 4),
        ("DHL", "BAND_C_BULK"): (5500, 3, 5),
    }
    zone.rules = [
        ShippingRule(
            carrier=carrier,
            band=band,
            price_usd_cents=price,
            eta_min_days=eta_min,
            eta_max_days=eta_max,
            tracking_included=True,
            notes="Remote areas may take longer" if carrier == "DHL" and band == "BAND_C_BULK" else None,
        )
        for (carrier, band), (price, eta_min, eta_max) in prices.items()
    ]
    zone.policy = CarrierPolicy(policy="DEFAULT", force_dhl_over_subtotal_usd_cents=20000)
    db.add(zone)
    db.commit()
    db.refresh(zone)
    return zone
