"""
Undo / redo of inventory movements.

Undo flips a movement to reversed and applies the inverse to stock;
redo re-applies it. Sale movements are immutable.
"""

import pytest

from stockpilot.extensions import db
from stockpilot.models import InventoryMovement, ProductBatch
from stockpilot.services import inventory_service
from stockpilot.time_utils import utcnow
from stockpilot.validation import ConflictError, PermissionDeniedError


@pytest.fixture
def stocked(product, admin_user, expiry):
    """product (stock 5, untracked) after a stock-in of 10."""
    movement, _ = inventory_service.record_stock_in(
        product_id=product.id, quantity=10, batch_expiry_date=expiry, actor=admin_user,
    )
    return movement


class TestUndo:

    def test_undo_stock_in_removes_batch_and_restores_stock(self, db_session, stocked, admin_user):
        movement, product = inventory_service.undo_movement(
            movement_id=stocked.id, actor=admin_user, notes="Wrong delivery",
        )

        assert product.stock == 5
        assert product.batches == []
        assert product.expiry_date is None
        assert db_session.query(ProductBatch).count() == 0

        assert movement.state == "reversed"
        assert movement.is_undone is True
        assert movement.undone_by_user_id == admin_user.id
        assert movement.undo_notes == "Wrong delivery"
        assert movement.original_stock_after == 15
        assert movement.batch_id is None

    def test_undo_adjustment_remove_gives_stock_back(self, product, admin_user):
        removed, _ = inventory_service.record_stock_adjustment(
            product_id=product.id, quantity_change=-2, reason="Damaged", actor=admin_user,
        )
        _, p = inventory_service.undo_movement(movement_id=removed.id, actor=admin_user)
        assert p.stock == 5

    def test_undo_twice_is_refused(self, stocked, admin_user):
        inventory_service.undo_movement(movement_id=stocked.id, actor=admin_user)
        with pytest.raises(ConflictError, match="already been undone"):
            inventory_service.undo_movement(movement_id=stocked.id, actor=admin_user)

    def test_sale_movement_cannot_be_undone(self, db_session, product, admin_user):
        sale = InventoryMovement(
            product_id=product.id,
            product_name=product.name,
            type="sale",
            quantity=-1,
            movement_date=utcnow(),
            stock_before=5,
            stock_after=4,
        )
        db_session.add(sale)
        db_session.commit()

        with pytest.raises(ConflictError, match="Sale movements cannot be undone"):
            inventory_service.undo_movement(movement_id=sale.id, actor=admin_user)

    def test_undo_refused_when_stock_would_go_negative(self, empty_product, admin_user, expiry):
        received, _ = inventory_service.record_stock_in(
            product_id=empty_product.id, quantity=5, batch_expiry_date=expiry, actor=admin_user,
        )
        inventory_service.record_stock_adjustment(
            product_id=empty_product.id, quantity_change=-4, reason="Sold at market", actor=admin_user,
        )

        with pytest.raises(ConflictError) as exc:
            inventory_service.undo_movement(movement_id=received.id, actor=admin_user)

        assert str(exc.value) == "Undo would result in negative stock (-4). Current stock: 1."
        db.session.expire_all()
        assert empty_product.stock == 1
        assert db.session.get(InventoryMovement, received.id).is_undone is False

    def test_employee_cannot_undo(self, stocked, employee_user):
        with pytest.raises(PermissionDeniedError):
            inventory_service.undo_movement(movement_id=stocked.id, actor=employee_user)


class TestRedo:

    def test_redo_stock_in_creates_new_batch(self, stocked, admin_user, expiry):
        original_code = stocked.batch_code
        inventory_service.undo_movement(movement_id=stocked.id, actor=admin_user)

        movement, product = inventory_service.redo_movement(movement_id=stocked.id, actor=admin_user)

        assert product.stock == 15
        assert movement.state == "applied"
        assert movement.undone_at is None
        assert movement.original_stock_after is None
        assert len(product.batches) == 1
        assert product.batches[0].remaining_quantity == 10
        assert movement.batch_id == product.batches[0].id
        assert movement.batch_code != original_code
        assert product.expiry_date == expiry

    def test_redo_applied_movement_is_refused(self, stocked, admin_user):
        with pytest.raises(ConflictError, match="Only undone movements can be redone"):
            inventory_service.redo_movement(movement_id=stocked.id, actor=admin_user)

    def test_undo_redo_undo_cycle(self, stocked, admin_user):
        inventory_service.undo_movement(movement_id=stocked.id, actor=admin_user)
        inventory_service.redo_movement(movement_id=stocked.id, actor=admin_user)
        movement, product = inventory_service.undo_movement(movement_id=stocked.id, actor=admin_user)

        assert movement.state == "reversed"
        assert product.stock == 5

    def test_employee_cannot_redo(self, stocked, admin_user, employee_user):
        inventory_service.undo_movement(movement_id=stocked.id, actor=admin_user)
        with pytest.raises(PermissionDeniedError):
            inventory_service.redo_movement(movement_id=stocked.id, actor=employee_user)


class TestUndoRoutes:

    def test_admin_undo_route(self, client, admin_headers, stocked):
        resp = client.post(
            f"/api/inventory/movements/{stocked.id}/undo",
            json={"notes": "duplicate entry"},
            headers=admin_headers,
        )
        assert resp.status_code == 200
        assert resp.json["movement"]["state"] == "reversed"
        assert resp.json["product"]["stock"] == 5

    def test_undo_route_rejects_non_text_notes(self, client, admin_headers, stocked):
        resp = client.post(
            f"/api/inventory/movements/{stocked.id}/undo",
            json={"notes": 42},
            headers=admin_headers,
        )
        assert resp.status_code == 400
        assert "notes" in resp.json["errors"]
        db.session.refresh(stocked)
        assert stocked.is_undone is False

    def test_employee_undo_route_forbidden(self, client, employee_headers, stocked):
        resp = client.post(f"/api/inventory/movements/{stocked.id}/undo", headers=employee_headers)
        assert resp.status_code == 403
        assert resp.json["success"] is False

    def test_redo_unknown_movement(self, client, admin_headers):
        resp = client.post("/api/inventory/movements/4242/redo", headers=admin_headers)
        assert resp.status_code == 404
