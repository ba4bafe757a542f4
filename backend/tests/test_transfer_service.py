"""
Inter-store transfer tests: lifecycle, source stock checks, partial
shipment/receipt and destination cost averaging.
"""

import pytest

from retailpos.extensions import db
from retailpos.errors import InvalidState, NotFoundError, QuantityExceeded, ValidationError
from retailpos.models import Inventory, StockMovement, StockTransfer, TransferItem
from retailpos.services import inventory_service, transfer_service
from retailpos.time_utils import utctoday

from conftest import CASHIER_ID, MANAGER_ID


def _inventory(store, product):
    return db.session.query(Inventory).filter_by(store_id=store.id, product_id=product.id).first()


def _create(store, store_b, product, quantity=4, **kwargs):
    return transfer_service.create_transfer(
        from_store_id=store.id,
        to_store_id=store_b.id,
        user_id=CASHIER_ID,
        items=[{"product_id": product.id, "quantity": quantity}],
        **kwargs,
    )


def _approved(store, store_b, product, quantity=4):
    transfer = _create(store, store_b, product, quantity)
    transfer_service.submit_transfer(transfer.id, user_id=CASHIER_ID)
    return transfer_service.approve_transfer(transfer.id, user_id=MANAGER_ID)


class TestCreateTransfer:
    def test_draft_with_cost_snapshot(self, db_session, store, store_b, make_product):
        product = make_product(cost_cents=600, stock=10)

        transfer = _create(store, store_b, product, 4, notes="Weekend restock")

        assert transfer.status == "draft"
        assert transfer.transfer_number.startswith(f"TRF-{utctoday():%Y%m%d}-")
        assert transfer.transfer_date == utctoday()
        assert transfer.requested_by == CASHIER_ID
        assert transfer.notes == "Weekend restock"
        assert transfer.total_value_cents == 2400
        assert [(i.product_id, i.quantity_requested, i.unit_cost_cents) for i in transfer.items] == [
            (product.id, 4, 600),
        ]
        # Nothing moves until shipment
        assert _inventory(store, product).quantity == 10

    def test_same_store_rejected(self, db_session, store, make_product):
        product = make_product(stock=10)

        with pytest.raises(ValidationError):
            transfer_service.create_transfer(
                from_store_id=store.id,
                to_store_id=store.id,
                user_id=CASHIER_ID,
                items=[{"product_id": product.id, "quantity": 1}],
            )

    def test_insufficient_source_stock(self, db_session, store, store_b, make_product):
        product = make_product(name="Kettle", stock=3)

        with pytest.raises(QuantityExceeded) as exc_info:
            _create(store, store_b, product, 5)

        assert "Kettle" in exc_info.value.message
        assert "available: 3" in exc_info.value.message
        assert db.session.query(StockTransfer).count() == 0

    def test_duplicate_product_lines_rejected(self, db_session, store, store_b, make_product):
        product = make_product(stock=10)

        with pytest.raises(ValidationError):
            transfer_service.create_transfer(
                from_store_id=store.id,
                to_store_id=store_b.id,
                user_id=CASHIER_ID,
                items=[
                    {"product_id": product.id, "quantity": 1},
                    {"product_id": product.id, "quantity": 2},
                ],
            )

    def test_unknown_store(self, db_session, store, make_product):
        product = make_product(stock=10)

        with pytest.raises(NotFoundError):
            transfer_service.create_transfer(
                from_store_id=store.id,
                to_store_id=9999,
                user_id=CASHIER_ID,
                items=[{"product_id": product.id, "quantity": 1}],
            )


class TestEditTransfer:
    def test_update_replaces_lines(self, db_session, store, store_b, make_product):
        first = make_product(cost_cents=600, stock=10)
        second = make_product(cost_cents=250, stock=10)
        transfer = _create(store, store_b, first, 2)

        updated = transfer_service.update_transfer(
            transfer.id,
            user_id=CASHIER_ID,
            items=[{"product_id": second.id, "quantity": 6}],
            notes="Swapped",
        )

        assert [(i.product_id, i.quantity_requested) for i in updated.items] == [(second.id, 6)]
        assert updated.total_value_cents == 1500
        assert updated.notes == "Swapped"
        assert db.session.query(TransferItem).count() == 1

    def test_pending_is_still_editable(self, db_session, store, store_b, make_product):
        product = make_product(stock=10)
        transfer = _create(store, store_b, product, 2)
        transfer_service.submit_transfer(transfer.id, user_id=CASHIER_ID)

        updated = transfer_service.update_transfer(
            transfer.id, user_id=CASHIER_ID, items=[{"product_id": product.id, "quantity": 3}],
        )
        assert updated.items[0].quantity_requested == 3

    def test_approved_is_locked(self, db_session, store, store_b, make_product):
        product = make_product(stock=10)
        transfer = _approved(store, store_b, product, 2)

        with pytest.raises(InvalidState):
            transfer_service.update_transfer(transfer.id, user_id=CASHIER_ID, notes="Too late")
        with pytest.raises(InvalidState):
            transfer_service.delete_transfer(transfer.id, user_id=CASHIER_ID)

    def test_delete_draft(self, db_session, store, store_b, make_product):
        product = make_product(stock=10)
        transfer = _create(store, store_b, product, 2)

        transfer_service.delete_transfer(transfer.id, user_id=CASHIER_ID)

        assert db.session.query(StockTransfer).count() == 0
        assert db.session.query(TransferItem).count() == 0


class TestTransferLifecycle:
    def test_full_flow_moves_stock(self, db_session, store, store_b, make_product):
        product = make_product(cost_cents=600, stock=10)
        transfer = _approved(store, store_b, product, 4)
        assert transfer.approved_by == MANAGER_ID

        shipped = transfer_service.ship_transfer(transfer.id, user_id=CASHIER_ID)
        assert shipped.status == "shipped"
        assert shipped.shipped_by == CASHIER_ID
        assert shipped.items[0].quantity_shipped == 4
        assert _inventory(store, product).quantity == 6
        assert _inventory(store_b, product) is None

        received = transfer_service.receive_transfer(transfer.id, user_id=MANAGER_ID)
        assert received.status == "received"
        assert received.received_by == MANAGER_ID
        assert received.items[0].quantity_received == 4
        assert _inventory(store_b, product).quantity == 4

        movements = (
            db.session.query(StockMovement)
            .filter_by(reference_type="stock_transfer", reference_id=transfer.id)
            .order_by(StockMovement.id)
            .all()
        )
        assert [(m.type, m.store_id, m.quantity_change) for m in movements] == [
            ("transfer_out", store.id, -4),
            ("transfer_in", store_b.id, 4),
        ]

    def test_stock_rechecked_at_ship_time(self, db_session, store, store_b, make_product):
        product = make_product(stock=5)
        transfer = _approved(store, store_b, product, 5)
        inventory_service.adjust_stock(
            store_id=store.id, product_id=product.id, quantity=3, direction="decrease", user_id=MANAGER_ID,
        )

        with pytest.raises(QuantityExceeded):
            transfer_service.ship_transfer(transfer.id, user_id=CASHIER_ID)

        assert transfer_service.get_transfer(transfer.id).status == "approved"
        assert _inventory(store, product).quantity == 2

    def test_partial_ship_and_receive(self, db_session, store, store_b, make_product):
        product = make_product(cost_cents=600, stock=10)
        transfer = _approved(store, store_b, product, 5)
        item_id = transfer.items[0].id

        shipped = transfer_service.ship_transfer(transfer.id, user_id=CASHIER_ID, items=[{"id": item_id, "quantity": 3}])
        assert shipped.items[0].quantity_shipped == 3
        assert shipped.total_value_cents == 1800
        assert _inventory(store, product).quantity == 7

        received = transfer_service.receive_transfer(transfer.id, user_id=MANAGER_ID, items=[{"id": item_id, "quantity": 2}])
        assert received.items[0].quantity_received == 2
        assert _inventory(store_b, product).quantity == 2

    def test_over_ship_and_over_receive_rejected(self, db_session, store, store_b, make_product):
        product = make_product(stock=10)
        transfer = _approved(store, store_b, product, 3)
        item_id = transfer.items[0].id

        with pytest.raises(QuantityExceeded):
            transfer_service.ship_transfer(transfer.id, user_id=CASHIER_ID, items=[{"id": item_id, "quantity": 4}])
        assert _inventory(store, product).quantity == 10

        transfer_service.ship_transfer(transfer.id, user_id=CASHIER_ID, items=[{"id": item_id, "quantity": 2}])
        with pytest.raises(QuantityExceeded):
            transfer_service.receive_transfer(transfer.id, user_id=MANAGER_ID, items=[{"id": item_id, "quantity": 3}])
        assert transfer_service.get_transfer(transfer.id).status == "shipped"

    def test_unknown_item_override_rejected(self, db_session, store, store_b, make_product):
        product = make_product(stock=10)
        transfer = _approved(store, store_b, product, 3)

        with pytest.raises(ValidationError):
            transfer_service.ship_transfer(transfer.id, user_id=CASHIER_ID, items=[{"id": 9999, "quantity": 1}])

    def test_destination_moving_average(self, db_session, store, store_b, make_product):
        product = make_product(cost_cents=600, stock=10)
        inventory_service.receive_stock(
            store_id=store.id, product_id=product.id, quantity=10, unit_cost_cents=900, user_id=MANAGER_ID,
        )
        inventory_service.receive_stock(
            store_id=store_b.id, product_id=product.id, quantity=5, unit_cost_cents=1000, user_id=MANAGER_ID,
        )
        assert _inventory(store, product).average_cost_cents == 750

        transfer = _approved(store, store_b, product, 5)
        transfer_service.ship_transfer(transfer.id, user_id=CASHIER_ID)
        assert transfer_service.get_transfer(transfer.id).items[0].unit_cost_cents == 750

        transfer_service.receive_transfer(transfer.id, user_id=MANAGER_ID)

        destination = _inventory(store_b, product)
        assert destination.quantity == 10
        # (5 * 1000 + 5 * 750) / 10
        assert destination.average_cost_cents == 875
        assert destination.last_cost_cents == 750
        # Source average is unaffected by shipping
        assert _inventory(store, product).average_cost_cents == 750

    @pytest.mark.parametrize("action", ["ship_transfer", "receive_transfer"])
    def test_out_of_order_steps_rejected(self, db_session, store, store_b, make_product, action):
        product = make_product(stock=10)
        transfer = _create(store, store_b, product, 2)

        with pytest.raises(InvalidState):
            getattr(transfer_service, action)(transfer.id, user_id=CASHIER_ID)

    def test_reject_pending(self, db_session, store, store_b, make_product):
        product = make_product(stock=10)
        transfer = _create(store, store_b, product, 2)
        transfer_service.submit_transfer(transfer.id, user_id=CASHIER_ID)

        rejected = transfer_service.reject_transfer(transfer.id, user_id=MANAGER_ID)

        assert rejected.status == "rejected"
        assert rejected.rejected_by == MANAGER_ID
        with pytest.raises(InvalidState):
            transfer_service.approve_transfer(transfer.id, user_id=MANAGER_ID)

    def test_draft_cannot_be_rejected(self, db_session, store, store_b, make_product):
        product = make_product(stock=10)
        transfer = _create(store, store_b, product, 2)

        with pytest.raises(InvalidState):
            transfer_service.reject_transfer(transfer.id, user_id=MANAGER_ID)

    def test_cancel_until_shipped(self, db_session, store, store_b, make_product):
        product = make_product(stock=10)
        approved = _approved(store, store_b, product, 2)
        cancelled = transfer_service.cancel_transfer(approved.id, user_id=MANAGER_ID)
        assert cancelled.status == "cancelled"
        assert cancelled.cancelled_by == MANAGER_ID

        shipped = _approved(store, store_b, product, 2)
        transfer_service.ship_transfer(shipped.id, user_id=CASHIER_ID)
        with pytest.raises(InvalidState):
            transfer_service.cancel_transfer(shipped.id, user_id=MANAGER_ID)
