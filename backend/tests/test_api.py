import io

import pytest
from openpyxl import load_workbook

from app.models import PriceChangeLog, Variant
from app.models.catalog import PackType, ProductCategory


@pytest.fixture
def priced_variant(make_variant, record_cost):
    variant = make_variant(slug="bolt-m6-20-p10", price_usd_cents=1000)
    record_cost(variant, 1000)
    return variant


def test_health(client):
    assert client.get("/health").json() == {"status": "healthy"}
    assert client.get("/").status_code == 200


# ---------------------------------------------------------------- pricing


def test_record_fx_rate(client):
    response = client.post("/api/pricing/fx", json={"jpy_per_usd": 151.25})

    assert response.status_code == 201
    body = response.json()
    assert body["pair"] == "JPYUSD"
    assert body["rate"] == 151.25
    assert body["source"] == "manual"


def test_record_fx_rate_rejects_non_positive(client):
    assert client.post("/api/pricing/fx", json={"jpy_per_usd": 0}).status_code == 422


def test_pricing_rule_crud(client):
    response = client.post(
        "/api/pricing/rules",
        json={
            "scope": "size",
            "size": " m6 ",
            "category": "bolt",
            "target_gross_margin": 0.4,
            "min_price_usd": 5,
            "max_price_usd": 120.5,
            "rounding": "USD_0_49",
            "max_weekly_change_pct": 0.1,
        },
    )
    assert response.status_code == 201
    rule = response.json()
    assert rule["size"] == "M6"
    assert rule["category"] is None
    assert rule["min_price_usd_cents"] == 500
    assert rule["max_price_usd_cents"] == 12050

    assert [r["id"] for r in client.get("/api/pricing/rules").json()] == [rule["id"]]

    assert client.delete(f"/api/pricing/rules/{rule['id']}").status_code == 200
    assert client.delete(f"/api/pricing/rules/{rule['id']}").status_code == 404
    assert client.get("/api/pricing/rules").json() == []


@pytest.mark.parametrize(
    "overrides",
    [
        {"scope": "category"},
        {"scope": "size"},
        {"scope": "variant"},
        {"min_price_usd": 200, "max_price_usd": 100},
        {"target_gross_margin": 0.99},
    ],
)
def test_pricing_rule_validation(client, overrides):
    payload = {
        "scope": "global",
        "target_gross_margin": 0.4,
        "min_price_usd": 5,
        "max_price_usd": 100,
        "rounding": "USD_0_99",
        "max_weekly_change_pct": 0.1,
    }
    payload.update(overrides)
    assert client.post("/api/pricing/rules", json=payload).status_code == 422


def test_preview_without_fx_is_conflict(client, priced_variant):
    response = client.post("/api/pricing/preview", json={})
    assert response.status_code == 409
    assert "FX rate not set" in response.json()["detail"]


def test_preview_and_apply(client, db, priced_variant, record_fx):
    record_fx(100.0)

    preview = client.post("/api/pricing/preview", json={"allow_override": True})
    assert preview.status_code == 200
    body = preview.json()
    assert body["count"] == 1
    assert body["changed"] == 1
    row = body["rows"][0]
    assert row["slug"] == "bolt-m6-20-p10"
    assert row["recommended_price_usd_cents"] % 100 == 99
    assert row["breakdown"]["cost"]["confidence"] == "high"

    # The default rule created during preview is persisted
    rules = client.get("/api/pricing/rules").json()
    assert len(rules) == 1
    assert rules[0]["scope"] == "global"

    applied = client.post("/api/pricing/apply", json={"allow_override": True, "admin_user_id": "ops"})
    assert applied.json() == {"ok": True, "updated": 1}

    db.expire_all()
    assert db.get(Variant, priced_variant.id).price_usd_cents == row["recommended_price_usd_cents"]
    assert db.query(PriceChangeLog).one().applied_by_admin_id == "ops"


def test_preview_rejects_out_of_range_limit(client):
    assert client.post("/api/pricing/preview", json={"limit": 501}).status_code == 422


def test_preview_csv(client, priced_variant, record_fx):
    record_fx(100.0)
    response = client.post("/api/pricing/preview.csv", json={})

    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/csv")
    assert "pricing-preview.csv" in response.headers["content-disposition"]
    lines = response.text.strip().split("\n")
    assert lines[0] == "variant_id,slug,category,size,pack_type,current_usd,recommended_usd,pct_change"
    assert "bolt-m6-20-p10" in lines[1]
    assert ",10.00," in lines[1]


def test_preview_xlsx(client, priced_variant, record_fx):
    record_fx(100.0)
    response = client.post("/api/pricing/preview.xlsx", json={})

    assert response.status_code == 200
    workbook = load_workbook(io.BytesIO(response.content))
    assert workbook.sheetnames == ["Summary", "Preview"]
    preview = workbook["Preview"]
    assert preview["B1"].value == "slug"
    assert preview["B2"].value == "bolt-m6-20-p10"


# ---------------------------------------------------------------- routing


def test_routing_config_roundtrip(client):
    initial = client.get("/api/routing/config").json()
    assert initial["enabled"] is False
    assert initial["strategy"] == "BALANCED"

    updated = client.put(
        "/api/routing/config",
        json={"enabled": True, "strategy": "FASTEST", "weights": {"cost": 0.7}},
    ).json()
    assert updated["enabled"] is True
    assert updated["strategy"] == "FASTEST"
    assert updated["weights"]["cost"] == 0.7
    assert updated["weights"]["lead"] == 0.3


def test_route_unknown_order(client):
    assert client.post("/api/routing/orders/missing/route").status_code == 404
    assert client.get("/api/routing/orders/missing/decisions").status_code == 404


def test_route_when_disabled(client, make_variant, make_paid_order):
    order = make_paid_order([(make_variant(), 1)])
    response = client.post(f"/api/routing/orders/{order.id}/route")

    assert response.status_code == 400
    assert response.json()["detail"] == "Routing is disabled"


def test_route_rejects_zero_quantity_line(client, make_variant, make_paid_order):
    order = make_paid_order([(make_variant(), 0)])
    client.put("/api/routing/config", json={"enabled": True})

    response = client.post(f"/api/routing/orders/{order.id}/route")

    assert response.status_code == 422
    assert "qty_packs must be positive" in response.json()["detail"]


def test_route_order_and_list_decisions(client, make_variant, make_supplier, make_offer, make_paid_order):
    bolt = make_variant(pack_type=PackType.PACK_10)
    washer = make_variant(category=ProductCategory.WASHER, size="M10")
    supplier = make_supplier("Nagoya Fastener")
    make_offer(supplier, variant_id=bolt.id, unit_cost_jpy=80, lead_time_days=4)
    order = make_paid_order([(bolt, 5), (washer, 1)])
    client.put("/api/routing/config", json={"enabled": True, "strategy": "CHEAPEST"})

    response = client.post(f"/api/routing/orders/{order.id}/route")

    assert response.status_code == 200
    body = response.json()
    assert body["strategy"] == "CHEAPEST"
    assert body["decisions"] == 2
    assert body["needs_assignment"] == 1
    assert body["suppliers"] == [
        {
            "supplier_id": supplier.id,
            "total_packs": 5,
            "estimated_cost_jpy": 400,
            "lead_time_days_estimate": 4,
            "line_count": 1,
        }
    ]

    decisions = client.get(f"/api/routing/orders/{order.id}/decisions").json()
    assert len(decisions) == 2
    assert {d["chosen_supplier_id"] for d in decisions} == {supplier.id, None}
    manual = {d["variant_id"]: d["needs_manual_assignment"] for d in decisions}
    assert manual == {bolt.id: False, washer.id: True}

    csv_response = client.get(f"/api/routing/orders/{order.id}/decisions.csv")
    assert csv_response.status_code == 200
    header = csv_response.text.split("\n")[0]
    assert header.startswith("order_item_id,variant_id,chosen_supplier_id")


# ---------------------------------------------------------------- shipping


def test_shipping_preview_forces_dhl(client, shipping_zone):
    response = client.post(
        "/api/shipping/preview",
        json={"country_code": "AU", "bands": ["BAND_A_10PCS", "BAND_B_20PCS"], "subtotal_usd": 250, "weight_kg": 1},
    )

    assert response.status_code == 200
    body = response.json()
    assert body["carrier"] == "DHL"
    assert body["forced_dhl"] is True
    assert body["forced_reason"] == "subtotal"
    assert body["shipping_price_usd_cents"] == 4300
    assert body["band_breakdown"]["surcharge_usd_cents"] == 500


def test_shipping_preview_without_rules_is_conflict(client):
    response = client.post(
        "/api/shipping/preview",
        json={"country_code": "US", "bands": ["BAND_A_10PCS"], "subtotal_usd": 10, "weight_kg": 0.3},
    )
    assert response.status_code == 409


def test_shipping_preview_requires_bands(client):
    response = client.post("/api/shipping/preview", json={"country_code": "AU", "bands": []})
    assert response.status_code == 422


def test_shipping_quote(client, shipping_zone, make_variant):
    variant = make_variant(slug="nut-m8-p20", category=ProductCategory.NUT, size="M8", pack_type=PackType.PACK_20)
    response = client.post(
        "/api/shipping/quote",
        json={"country_code": "nz", "items": [{"variant_id": variant.slug, "quantity": 2}]},
    )

    assert response.status_code == 200
    body = response.json()
    assert body["zone"]["name"] == "Oceania"
    assert body["subtotal_usd_cents"] == 2000
    assert body["weight_kg"] == pytest.approx(1.2)
    assert body["shipping_price_usd_cents"] == 3800


def test_shipping_quote_unknown_variant(client, shipping_zone):
    response = client.post(
        "/api/shipping/quote",
        json={"country_code": "AU", "items": [{"variant_id": "nope", "quantity": 1}]},
    )
    assert response.status_code == 400


# ---------------------------------------------------------------- offers


def test_offer_import_and_list(client, make_variant):
    make_variant(slug="bolt-m6-20-p10")
    content = (
        "supplier_name,variant_id,unit_cost_jpy,lead_time_days,availability\n"
        "Osaka Screw,bolt-m6-20-p10,120,5,in_stock\n"
        "Osaka Screw,,,5,in_stock\n"
    ).encode("utf-8")

    response = client.post("/api/offers/import", files={"file": ("offers.csv", content, "text/csv")})

    assert response.status_code == 200
    body = response.json()
    assert body["created"] == 1
    assert body["failed"] == 1
    assert body["cost_basis_written"] == 1
    assert body["errors"] == [{"row": 3, "error": "unit_cost_jpy required"}]

    offers = client.get("/api/offers/").json()
    assert len(offers) == 1
    assert offers[0]["unit_cost_jpy"] == 120
    assert offers[0]["availability"] == "in_stock"

    filtered = client.get("/api/offers/", params={"supplier_id": "someone-else"}).json()
    assert filtered == []


def test_offer_import_rejects_empty_file(client):
    response = client.post("/api/offers/import", files={"file": ("offers.csv", b"", "text/csv")})
    assert response.status_code == 400


def test_offer_import_rejects_missing_columns(client):
    response = client.post(
        "/api/offers/import",
        files={"file": ("offers.csv", b"supplier_name,size\nA,M6\n", "text/csv")},
    )
    assert response.status_code == 400
    assert "unit_cost_jpy" in response.json()["detail"]


def test_manual_task_assignment_and_status_flow(client, make_variant, make_supplier, make_paid_order):
    washer = make_variant(category=ProductCategory.WASHER, size="M10")
    supplier = make_supplier("Sendai Washer")
    order = make_paid_order([(washer, 3)])
    client.put("/api/routing/config", json={"enabled": True})
    client.post(f"/api/routing/orders/{order.id}/route")

    tasks = client.get(f"/api/routing/orders/{order.id}/tasks").json()
    assert [t["status"] for t in tasks] == ["needs_assignment"]
    task_id = tasks[0]["id"]

    # No rules yet, so there is nothing to suggest
    assert client.post(f"/api/routing/tasks/{task_id}/assign-supplier", json={}).status_code == 409
    assert client.post(f"/api/routing/tasks/{task_id}/status", json={"status": "requested"}).status_code == 409

    rule = client.put(
        f"/api/routing/suppliers/{supplier.id}/assignments",
        json={"category": "washer", "size": "m10", "priority": 2},
    )
    assert rule.status_code == 200
    assert rule.json()["size"] == "M10"

    assigned = client.post(f"/api/routing/tasks/{task_id}/assign-supplier", json={})
    assert assigned.status_code == 200
    assert assigned.json()["supplier_id"] == supplier.id
    assert assigned.json()["status"] == "new"

    requested = client.post(f"/api/routing/tasks/{task_id}/status", json={"status": "requested"})
    assert requested.status_code == 200
    assert requested.json()["status"] == "requested"
    assert requested.json()["requested_at"] is not None


def test_task_endpoints_validate_input(client, make_supplier):
    assert client.post("/api/routing/tasks/missing/assign-supplier", json={}).status_code == 404
    assert client.post("/api/routing/tasks/missing/status", json={"status": "po_sent"}).status_code == 422
    assert client.post("/api/routing/tasks/missing/status", json={"status": "closed"}).status_code == 404
    assert client.get("/api/routing/orders/missing/tasks").status_code == 404

    supplier = make_supplier("Osaka Screw")
    bad_size = client.put(
        f"/api/routing/suppliers/{supplier.id}/assignments",
        json={"category": "bolt", "size": "six"},
    )
    assert bad_size.status_code == 409
    assert client.put(
        "/api/routing/suppliers/missing/assignments", json={"category": "bolt"}
    ).status_code == 404


# ---------------------------------------------------------------- shipping configuration


def test_configure_zone_rules_and_policy_then_quote(client):
    zone = client.post("/api/shipping/zones", json={"name": "North America", "countries": ["us", "ca"]})
    assert zone.status_code == 201
    zone_id = zone.json()["id"]
    assert sorted(c["code"] for c in zone.json()["countries"]) == ["CA", "US"]

    for carrier, price, eta in (("JP_POST", 15, (8, 15)), ("DHL", 29, (2, 4))):
        rule = client.post(
            "/api/shipping/rules",
            json={
                "zone_id": zone_id,
                "band": "BAND_A_10PCS",
                "carrier": carrier,
                "price_usd": price,
                "eta_min_days": eta[0],
                "eta_max_days": eta[1],
            },
        )
        assert rule.status_code == 200
    assert len(client.get("/api/shipping/rules", params={"zone_id": zone_id}).json()) == 2

    policy = client.post(
        "/api/shipping/policies",
        json={"zone_id": zone_id, "policy": "CHEAPEST", "force_dhl_over_subtotal_usd": 150},
    )
    assert policy.status_code == 200
    assert policy.json()["force_dhl_over_subtotal_usd_cents"] == 15000

    cheap = client.post(
        "/api/shipping/preview",
        json={"country_code": "CA", "bands": ["BAND_A_10PCS"], "subtotal_usd": 40, "weight_kg": 0.3},
    ).json()
    assert cheap["carrier"] == "JP_POST"
    assert cheap["shipping_price_usd_cents"] == 1500

    zones = client.get("/api/shipping/zones").json()
    assert zones[0]["policy"]["policy"] == "CHEAPEST"


def test_zone_endpoints_report_conflicts_and_missing(client, shipping_zone):
    assert client.post("/api/shipping/zones", json={"name": "Oceania"}).status_code == 409
    assert client.post("/api/shipping/zones", json={"name": "Pacific", "countries": ["NZ"]}).status_code == 409
    assert client.put("/api/shipping/zones/missing", json={"name": "X", "is_active": True}).status_code == 404
    assert client.delete("/api/shipping/zones/missing").status_code == 404

    updated = client.put(
        f"/api/shipping/zones/{shipping_zone.id}",
        json={"name": "Oceania", "is_active": False, "countries": ["AU"]},
    )
    assert updated.status_code == 200
    assert updated.json()["is_active"] is False

    assert client.delete(f"/api/shipping/zones/{shipping_zone.id}").json() == {"ok": True}
    assert client.get("/api/shipping/zones").json() == []


def test_rule_endpoint_validation(client, shipping_zone):
    payload = {
        "zone_id": shipping_zone.id,
        "band": "BAND_A_10PCS",
        "carrier": "DHL",
        "price_usd": 20,
        "eta_min_days": 5,
        "eta_max_days": 2,
    }
    assert client.post("/api/shipping/rules", json=payload).status_code == 422
    assert client.post("/api/shipping/rules", json={**payload, "zone_id": "missing"}).status_code == 404
    assert client.post("/api/shipping/rules", json={**payload, "price_usd": 0}).status_code == 422
    assert client.delete("/api/shipping/rules/missing").status_code == 404


def test_rules_csv_export_and_import(client, shipping_zone):
    exported = client.get("/api/shipping/rules/export.csv")
    assert exported.status_code == 200
    assert exported.headers["content-type"].startswith("text/csv")
    assert "shipping_rules.csv" in exported.headers["content-disposition"]

    edited = exported.text.replace("Oceania,BAND_A_10PCS,DHL,25.00", "Oceania,BAND_A_10PCS,DHL,26.00")
    response = client.post(
        "/api/shipping/rules/import",
        files={"file": ("rules.csv", edited.encode("utf-8") + b"Atlantis,BAND_A_10PCS,DHL,9,1,2,true,\n", "text/csv")},
    )

    assert response.status_code == 200
    body = response.json()
    assert body["upserted"] == 6
    assert body["errors"] == [{"row": 8, "error": "Unknown zone: Atlantis"}]
    prices = {(r["band"], r["carrier"]): r["price_usd_cents"] for r in client.get("/api/shipping/rules").json()}
    assert prices[("BAND_A_10PCS", "DHL")] == 2600


def test_rules_import_rejects_empty_file(client):
    response = client.post("/api/shipping/rules/import", files={"file": ("rules.csv", b"", "text/csv")})
    assert response.status_code == 400
