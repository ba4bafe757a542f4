"""
HTTP API tests

Exercise the blueprints end to end through the Flask test client: actor
header handling, status codes for each error kind, and the JSON shapes the
register front end relies on.
"""

from datetime import timedelta

from sqlalchemy.exc import SQLAlchemyError

from retailpos.extensions import db
from retailpos.models import Inventory, SalesTransaction
from retailpos.services import sales_service
from retailpos.time_utils import utcnow

from conftest import MANAGER_ID, actor_headers


def _sale_payload(store, product, payment_method, quantity=1, amount=None):
    return {
        "store_id": store.id,
        "items": [{"product_id": product.id, "quantity": quantity}],
        "payments": [{
            "payment_method_id": payment_method.id,
            "amount_cents": amount if amount is not None else product.price_cents * quantity,
        }],
    }


class TestActorHeader:
    def test_missing_header_is_401(self, client, db_session, store):
        response = client.get("/api/sales/transactions/1")
        assert response.status_code == 401

    def test_invalid_header_is_401(self, client, db_session, store):
        response = client.get("/api/sales/transactions/1", headers={"X-User-Id": "abc"})
        assert response.status_code == 401

        response = client.get("/api/sales/transactions/1", headers={"X-User-Id": "0"})
        assert response.status_code == 401


class TestSalesRoutes:
    def test_settle_transaction(self, client, db_session, store, make_product, cash):
        product = make_product(price_cents=1250, stock=10)

        response = client.post(
            "/api/sales/transactions",
            json=_sale_payload(store, product, cash, quantity=2, amount=3000),
            headers=actor_headers(),
        )

        assert response.status_code == 201
        tx = response.get_json()["transaction"]
        assert tx["status"] == "completed"
        assert tx["total_cents"] == 2500
        assert tx["change_cents"] == 500
        assert tx["cashier_id"] == 101
        assert len(tx["items"]) == 1
        assert len(tx["payments"]) == 1
        assert tx["transaction_number"].startswith("TR-")

        db.session.expire_all()
        assert db.session.query(Inventory.quantity).filter_by(product_id=product.id).scalar() == 8

    def test_settle_validation_error_is_400(self, client, db_session, store, make_product, cash):
        product = make_product(stock=10)
        payload = _sale_payload(store, product, cash)
        payload["items"][0]["quantity"] = "2.5"

        response = client.post("/api/sales/transactions", json=payload, headers=actor_headers())

        assert response.status_code == 400
        body = response.get_json()
        assert "error" in body
        assert body["details"]["field"] == "items[0].quantity"
        assert db.session.query(SalesTransaction).count() == 0

    def test_unknown_product_is_404(self, client, db_session, store, cash):
        payload = {
            "store_id": store.id,
            "items": [{"product_id": 4242, "quantity": 1}],
            "payments": [{"payment_method_id": cash.id, "amount_cents": 100}],
        }

        response = client.post("/api/sales/transactions", json=payload, headers=actor_headers())

        assert response.status_code == 404

    def test_database_failure_is_generic_500(self, client, db_session, store, make_product, cash, make_discount, monkeypatch):
        product = make_product(stock=10)
        promo = make_discount()

        def _broken_usage(discount_id):
            raise SQLAlchemyError("(sqlite3.OperationalError) no such table: discounts_backup")

        monkeypatch.setattr(sales_service, "consume_usage", _broken_usage)
        payload = _sale_payload(store, product, cash, quantity=1, amount=900)
        payload["discount_id"] = promo.id

        response = client.post("/api/sales/transactions", json=payload, headers=actor_headers())

        assert response.status_code == 500
        body = response.get_json()
        assert body["error"] == "An unexpected error occurred while saving. Please try again."
        raw = response.get_data(as_text=True)
        assert "sqlite3" not in raw
        assert "discounts_backup" not in raw
        db.session.expire_all()
        assert db.session.query(SalesTransaction).count() == 0

    def test_get_and_returnable(self, client, db_session, store, make_product, cash):
        product = make_product(stock=10)
        created = client.post(
            "/api/sales/transactions",
            json=_sale_payload(store, product, cash, quantity=3),
            headers=actor_headers(),
        ).get_json()["transaction"]

        response = client.get(f"/api/sales/transactions/{created['id']}", headers=actor_headers())
        assert response.status_code == 200
        assert response.get_json()["transaction"]["id"] == created["id"]

        response = client.get(f"/api/sales/transactions/{created['id']}/returnable", headers=actor_headers())
        assert response.status_code == 200
        rows = response.get_json()["items"]
        assert rows[0]["available_quantity"] == 3

        assert client.get("/api/sales/transactions/9999", headers=actor_headers()).status_code == 404

    def test_void_then_void_again(self, client, db_session, store, make_product, cash):
        product = make_product(stock=10)
        created = client.post(
            "/api/sales/transactions",
            json=_sale_payload(store, product, cash, quantity=2),
            headers=actor_headers(),
        ).get_json()["transaction"]
        url = f"/api/sales/transactions/{created['id']}/void"

        response = client.post(url, json={"reason": "Wrong item"}, headers=actor_headers(MANAGER_ID))
        assert response.status_code == 200
        voided = response.get_json()["transaction"]
        assert voided["status"] == "voided"
        assert voided["void_reason"] == "Wrong item"
        assert voided["voided_by"] == MANAGER_ID

        response = client.post(url, json={}, headers=actor_headers(MANAGER_ID))
        assert response.status_code == 409

        db.session.expire_all()
        assert db.session.query(Inventory.quantity).filter_by(product_id=product.id).scalar() == 10


class TestReturnRoutes:
    def _sale(self, client, store, product, cash, quantity):
        return client.post(
            "/api/sales/transactions",
            json=_sale_payload(store, product, cash, quantity=quantity),
            headers=actor_headers(),
        ).get_json()["transaction"]

    def _return(self, client, store, tx, quantity):
        return client.post(
            "/api/returns",
            json={
                "sales_transaction_id": tx["id"],
                "store_id": store.id,
                "reason": "Changed mind",
                "items": [{"sales_item_id": tx["items"][0]["id"], "quantity": quantity}],
            },
            headers=actor_headers(),
        )

    def test_over_return_is_422(self, client, db_session, store, make_product, cash):
        product = make_product(name="Blender", stock=10)
        tx = self._sale(client, store, product, cash, 3)

        created = self._return(client, store, tx, 1)
        assert created.status_code == 201
        return_id = created.get_json()["return"]["id"]

        approved = client.post(f"/api/returns/{return_id}/approve", headers=actor_headers(MANAGER_ID))
        assert approved.status_code == 200
        assert approved.get_json()["transaction_status"] == "completed"

        response = self._return(client, store, tx, 4)

        assert response.status_code == 422
        body = response.get_json()
        assert "available: 2" in body["error"]
        assert "Blender" in body["error"]
        assert body["details"]["available"] == 2

    def test_return_lifecycle(self, client, db_session, store, make_product, cash):
        product = make_product(price_cents=800, stock=10)
        tx = self._sale(client, store, product, cash, 4)

        created = self._return(client, store, tx, 1)
        return_id = created.get_json()["return"]["id"]
        assert created.get_json()["return"]["refund_cents"] == 800

        # Only one pending return at a time
        assert self._return(client, store, tx, 1).status_code == 409

        updated = client.put(
            f"/api/returns/{return_id}",
            json={"items": [{"sales_item_id": tx["items"][0]["id"], "quantity": 2}]},
            headers=actor_headers(),
        )
        assert updated.status_code == 200
        assert updated.get_json()["return"]["refund_cents"] == 1600

        approved = client.post(f"/api/returns/{return_id}/approve", headers=actor_headers(MANAGER_ID))
        assert approved.get_json()["transaction_status"] == "refunded"

        # Approved returns are final
        assert client.delete(f"/api/returns/{return_id}", headers=actor_headers()).status_code == 409
        assert client.post(f"/api/returns/{return_id}/reject", headers=actor_headers()).status_code == 409

    def test_reject_and_delete(self, client, db_session, store, make_product, cash):
        product = make_product(stock=10)
        tx = self._sale(client, store, product, cash, 4)

        first = self._return(client, store, tx, 1).get_json()["return"]["id"]
        rejected = client.post(f"/api/returns/{first}/reject", headers=actor_headers(MANAGER_ID))
        assert rejected.status_code == 200
        assert rejected.get_json()["return"]["status"] == "rejected"

        second = self._return(client, store, tx, 1).get_json()["return"]["id"]
        deleted = client.delete(f"/api/returns/{second}", headers=actor_headers())
        assert deleted.status_code == 200
        assert client.get(f"/api/returns/{second}", headers=actor_headers()).status_code == 404

    def test_backdated_return_date_is_409(self, client, db_session, store, make_product, cash):
        product = make_product(stock=10)
        tx = self._sale(client, store, product, cash, 2)
        sale = db.session.get(SalesTransaction, tx["id"])
        sale.transaction_date = utcnow() - timedelta(days=365)
        db.session.commit()

        response = client.post(
            "/api/returns",
            json={
                "sales_transaction_id": tx["id"],
                "store_id": store.id,
                "return_date": "2000-01-01",
                "items": [{"sales_item_id": tx["items"][0]["id"], "quantity": 1}],
            },
            headers=actor_headers(),
        )

        assert response.status_code == 409
        assert "return window" in response.get_json()["error"]

    def test_missing_items_is_400(self, client, db_session, store, make_product, cash):
        product = make_product(stock=10)
        tx = self._sale(client, store, product, cash, 1)

        response = client.post(
            "/api/returns",
            json={"sales_transaction_id": tx["id"], "store_id": store.id, "items": []},
            headers=actor_headers(),
        )
        assert response.status_code == 400


class TestTransferRoutes:
    def test_transfer_flow(self, client, db_session, store, store_b, make_product):
        product = make_product(cost_cents=500, stock=10)

        created = client.post(
            "/api/transfers",
            json={
                "from_store_id": store.id,
                "to_store_id": store_b.id,
                "items": [{"product_id": product.id, "quantity": 4}],
            },
            headers=actor_headers(),
        )
        assert created.status_code == 201
        transfer = created.get_json()["transfer"]
        assert transfer["status"] == "draft"
        assert transfer["total_value_cents"] == 2000
        base = f"/api/transfers/{transfer['id']}"

        # Cannot ship before approval
        assert client.post(f"{base}/ship", headers=actor_headers()).status_code == 409

        for step, status in [("submit", "pending"), ("approve", "approved"), ("ship", "shipped"), ("receive", "received")]:
            response = client.post(f"{base}/{step}", json={}, headers=actor_headers(MANAGER_ID))
            assert response.status_code == 200, step
            assert response.get_json()["transfer"]["status"] == status

        db.session.expire_all()
        quantities = dict(
            db.session.query(Inventory.store_id, Inventory.quantity).filter_by(product_id=product.id).all()
        )
        assert quantities == {store.id: 6, store_b.id: 4}

    def test_insufficient_stock_is_422(self, client, db_session, store, store_b, make_product):
        product = make_product(stock=1)

        response = client.post(
            "/api/transfers",
            json={
                "from_store_id": store.id,
                "to_store_id": store_b.id,
                "items": [{"product_id": product.id, "quantity": 2}],
            },
            headers=actor_headers(),
        )

        assert response.status_code == 422
        assert "available: 1" in response.get_json()["error"]

    def test_edit_and_delete_draft(self, client, db_session, store, store_b, make_product):
        product = make_product(stock=10)
        transfer_id = client.post(
            "/api/transfers",
            json={
                "from_store_id": store.id,
                "to_store_id": store_b.id,
                "items": [{"product_id": product.id, "quantity": 2}],
            },
            headers=actor_headers(),
        ).get_json()["transfer"]["id"]

        updated = client.put(
            f"/api/transfers/{transfer_id}",
            json={"notes": "Urgent", "items": [{"product_id": product.id, "quantity": 5}]},
            headers=actor_headers(),
        )
        assert updated.status_code == 200
        assert updated.get_json()["transfer"]["items"][0]["quantity_requested"] == 5

        assert client.delete(f"/api/transfers/{transfer_id}", headers=actor_headers()).status_code == 200
        assert client.get(f"/api/transfers/{transfer_id}", headers=actor_headers()).status_code == 404


class TestInventoryRoutes:
    def test_receive_adjust_and_history(self, client, db_session, store, make_product):
        product = make_product(cost_cents=600, stock=10)

        received = client.post(
            "/api/inventory/receive",
            json={"store_id": store.id, "product_id": product.id, "quantity": 10, "unit_cost_cents": 900},
            headers=actor_headers(MANAGER_ID),
        )
        assert received.status_code == 201
        assert received.get_json()["movement"]["type"] == "purchase"

        adjusted = client.post(
            "/api/inventory/adjust",
            json={"store_id": store.id, "product_id": product.id, "quantity": 5, "direction": "decrease"},
            headers=actor_headers(MANAGER_ID),
        )
        assert adjusted.status_code == 201
        assert adjusted.get_json()["movement"]["quantity_after"] == 15

        level = client.get(f"/api/inventory/{store.id}/{product.id}", headers=actor_headers())
        assert level.status_code == 200
        inventory = level.get_json()["inventory"]
        assert inventory["quantity"] == 15
        assert inventory["average_cost_cents"] == 750

        history = client.get(f"/api/inventory/{store.id}/{product.id}/movements?limit=2", headers=actor_headers())
        assert history.status_code == 200
        types = [m["type"] for m in history.get_json()["movements"]]
        assert types == ["adjustment", "purchase"]

    def test_adjust_below_zero_is_422(self, client, db_session, store, make_product):
        product = make_product(stock=1)

        response = client.post(
            "/api/inventory/adjust",
            json={"store_id": store.id, "product_id": product.id, "quantity": 2, "direction": "decrease"},
            headers=actor_headers(MANAGER_ID),
        )

        assert response.status_code == 422

    def test_unknown_stock_level_is_404(self, client, db_session, store):
        assert client.get(f"/api/inventory/{store.id}/4242", headers=actor_headers()).status_code == 404


class TestHealth:
    def test_health(self, client, db_session, store, cash):
        response = client.get("/health")

        assert response.status_code == 200
        body = response.get_json()
        assert body["status"] == "healthy"
        assert body["checks"]["database"]["details"]["stores"] == 1
        assert body["checks"]["database"]["details"]["active_payment_methods"] == 1
