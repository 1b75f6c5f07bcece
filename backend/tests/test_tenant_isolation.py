# Overview: Pytest coverage for chain isolation across the HTTP surface.

"""
Multi-Tenant Isolation Tests

SECURITY TESTS: Prove that one chain never sees another chain's data.

Admin A owns S1 and S3; admin B owns S2. These tests verify that:
1. Orders created under S2 never appear for admin A
2. Asking for a foreign store_id is rejected (403) and logged
3. Single-entity reads outside the scope answer 404, not 403
4. Root (software vendor) sees no store data at all
"""

import pytest

from laundrypos.models import SecurityEvent

from conftest import auth_headers, token_for


def _order(client, headers, product, phone="0901234567"):
    resp = client.post("/api/orders", json={
        "customer_name": "Lan",
        "customer_phone": phone,
        "items": [{"product_id": product.id, "quantity": 1}],
    }, headers=headers)
    assert resp.status_code == 201
    return resp.json["order"]


@pytest.fixture()
def orders(client, chain, product_s1, product_s2, employer_s1_headers, employer_s2_headers):
    return {
        "s1": _order(client, employer_s1_headers, product_s1),
        "s2": _order(client, employer_s2_headers, product_s2, phone="0912345678"),
    }


class TestOrderIsolation:

    def test_admin_lists_only_own_chain(self, client, orders, admin_a_headers, admin_b_headers):
        a_ids = [o["id"] for o in client.get("/api/orders", headers=admin_a_headers).json["orders"]]
        b_ids = [o["id"] for o in client.get("/api/orders", headers=admin_b_headers).json["orders"]]

        assert a_ids == [orders["s1"]["id"]]
        assert b_ids == [orders["s2"]["id"]]

    def test_foreign_store_filter_is_forbidden(self, client, chain, orders, admin_a_headers):
        resp = client.get(f"/api/orders?store_id={chain['s2'].id}", headers=admin_a_headers)

        assert resp.status_code == 403
        assert "orders" not in resp.json

    def test_foreign_store_request_is_logged(self, client, db_session, chain, orders, admin_a_headers):
        client.get(f"/api/orders?store_id={chain['s2'].id}", headers=admin_a_headers)

        event = db_session.query(SecurityEvent).filter_by(event_type="ACCESS_DENIED").one()
        assert event.user_id == chain["admin_a"].id
        assert event.store_id == chain["s2"].id
        assert event.success is False

    def test_own_store_filter_narrows(self, client, chain, orders, product_s3, admin_a_headers):
        s3_headers = auth_headers(token_for(chain["employer_s3"]))
        s3_order = _order(client, s3_headers, product_s3, phone="0987654321")

        resp = client.get(f"/api/orders?store_id={chain['s3'].id}", headers=admin_a_headers)
        assert [o["id"] for o in resp.json["orders"]] == [s3_order["id"]]

        everything = client.get("/api/orders?store_id=all", headers=admin_a_headers)
        assert len(everything.json["orders"]) == 2

    def test_employer_store_param_is_ignored(self, client, chain, orders, employer_s1_headers):
        resp = client.get(f"/api/orders?store_id={chain['s2'].id}", headers=employer_s1_headers)

        assert resp.status_code == 200
        assert [o["id"] for o in resp.json["orders"]] == [orders["s1"]["id"]]

    @pytest.mark.parametrize(
        "method,suffix,body",
        [
            ("get", "", None),
            ("patch", "", {"note": "mine now"}),
            ("post", "/status", {"status": "completed", "payment_method": "cash"}),
            ("patch", "/debt", None),
            ("patch", "/debt/paid", None),
            ("delete", "", None),
        ],
    )
    def test_foreign_order_is_not_found(self, client, orders, admin_a_headers, method, suffix, body):
        path = f"/api/orders/{orders['s2']['id']}{suffix}"
        kwargs = {"headers": admin_a_headers}
        if body is not None:
            kwargs["json"] = body

        resp = getattr(client, method)(path, **kwargs)
        assert resp.status_code == 404

    def test_cross_chain_product_cannot_be_ordered(self, client, chain, product_s2, employer_s1_headers):
        resp = client.post("/api/orders", json={
            "items": [{"product_id": product_s2.id, "quantity": 1}],
        }, headers=employer_s1_headers)
        assert resp.status_code == 400


class TestRootSeesNothing:

    @pytest.mark.parametrize(
        "path,key",
        [
            ("/api/orders", "orders"),
            ("/api/customers", "customers"),
            ("/api/products", "products"),
            ("/api/stores", "stores"),
            ("/api/promotions", "promotions"),
        ],
    )
    def test_lists_are_empty(self, client, orders, promo_s1, root_headers, path, key):
        resp = client.get(path, headers=root_headers)
        assert resp.status_code == 200
        assert resp.json[key] == []

    def test_requested_store_does_not_widen_root(self, client, chain, orders, root_headers):
        resp = client.get(f"/api/orders?store_id={chain['s1'].id}", headers=root_headers)
        assert resp.status_code == 200
        assert resp.json["orders"] == []

    def test_single_reads_are_not_found(self, client, orders, root_headers):
        assert client.get(f"/api/orders/{orders['s1']['id']}", headers=root_headers).status_code == 404

    def test_reports_are_empty(self, client, orders, root_headers):
        resp = client.get("/api/reports/revenue?period=day", headers=root_headers)
        assert resp.status_code == 200
        assert resp.json["data"] == []


class TestCatalogIsolation:

    def test_products_are_chain_scoped(self, client, chain, product_s1, product_s2, admin_a_headers):
        names = [p["name"] for p in client.get("/api/products", headers=admin_a_headers).json["products"]]
        assert names == ["Wash and fold"]

    def test_foreign_product_is_not_found(self, client, chain, product_s2, admin_a_headers):
        assert client.get(f"/api/products/{product_s2.id}", headers=admin_a_headers).status_code == 404

    def test_stores_are_chain_scoped(self, client, chain, admin_a_headers, employer_s2_headers):
        a_names = sorted(s["name"] for s in client.get("/api/stores", headers=admin_a_headers).json["stores"])
        assert a_names == ["Store S1", "Store S3"]

        e_names = [s["name"] for s in client.get("/api/stores", headers=employer_s2_headers).json["stores"]]
        assert e_names == ["Store S2"]

    def test_customers_follow_orders(self, client, orders, admin_a_headers, admin_b_headers):
        a_phones = [c["phone"] for c in client.get("/api/customers", headers=admin_a_headers).json["customers"]]
        b_phones = [c["phone"] for c in client.get("/api/customers", headers=admin_b_headers).json["customers"]]

        assert a_phones == ["0901234567"]
        assert b_phones == ["0912345678"]
