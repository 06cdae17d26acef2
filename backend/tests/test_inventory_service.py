"""
Inventory ledger tests.

Verifies:
- Stock-in appends a batch and moves the counter by exactly the quantity
- Adjustments that would go negative are rejected without any write
- Removals draw from batches first expiry first
- Batch remainders never exceed the stock counter
"""

from datetime import date

import pytest

from stockpilot.extensions import db
from stockpilot.models import InventoryMovement, ProductBatch
from stockpilot.services import inventory_service
from stockpilot.validation import ConflictError, NotFoundError, ValidationError


def _batch_total(product):
    return sum(b.remaining_quantity for b in product.batches)


class TestStockIn:

    def test_stock_in_on_untracked_stock_creates_single_batch(self, product, admin_user, expiry):
        movement, p = inventory_service.record_stock_in(
            product_id=product.id, quantity=10, batch_expiry_date=expiry, actor=admin_user,
        )

        assert p.stock == 15
        assert movement.stock_before == 5
        assert movement.stock_after == 15
        assert movement.quantity == 10
        assert movement.type == "stock-in"
        assert movement.notes == "Stocked in 10 units."
        assert len(p.batches) == 1
        assert p.batches[0].initial_quantity == 10
        assert p.batches[0].remaining_quantity == 10
        assert movement.batch_id == p.batches[0].id

    def test_stock_in_records_actor_and_batch_expiry(self, empty_product, employee_user, expiry):
        movement, p = inventory_service.record_stock_in(
            product_id=empty_product.id, quantity=4, batch_expiry_date=expiry, actor=employee_user,
        )

        assert movement.user_id == employee_user.id
        assert movement.user_name == employee_user.name
        assert movement.batch_expiry_date == expiry
        assert movement.state == "applied"
        assert p.expiry_date == expiry

    def test_batch_cost_defaults_to_product_cost(self, empty_product, admin_user, expiry):
        _, p = inventory_service.record_stock_in(
            product_id=empty_product.id, quantity=2, batch_expiry_date=expiry, actor=admin_user,
        )
        assert p.batches[0].cost_per_unit_cents == empty_product.cost_cents

        _, p = inventory_service.record_stock_in(
            product_id=empty_product.id, quantity=2, batch_expiry_date=expiry, actor=admin_user,
            cost_per_unit_cents=777,
        )
        assert p.batches[1].cost_per_unit_cents == 777

    def test_expiry_only_moves_later(self, empty_product, admin_user):
        inventory_service.record_stock_in(
            product_id=empty_product.id, quantity=1, batch_expiry_date=date(2031, 1, 1), actor=admin_user,
        )
        _, p = inventory_service.record_stock_in(
            product_id=empty_product.id, quantity=1, batch_expiry_date=date(2030, 1, 1), actor=admin_user,
        )
        assert p.expiry_date == date(2031, 1, 1)

    @pytest.mark.parametrize("quantity", [0, -3])
    def test_rejects_non_positive_quantity(self, product, admin_user, expiry, quantity):
        with pytest.raises(ValidationError) as exc:
            inventory_service.record_stock_in(
                product_id=product.id, quantity=quantity, batch_expiry_date=expiry, actor=admin_user,
            )
        assert exc.value.field == "quantity"

    def test_requires_expiry_date(self, product, admin_user):
        with pytest.raises(ValidationError) as exc:
            inventory_service.record_stock_in(
                product_id=product.id, quantity=1, batch_expiry_date=None, actor=admin_user,
            )
        assert exc.value.field == "batch_expiry_date"

    def test_unknown_product(self, db_session, admin_user, expiry):
        with pytest.raises(NotFoundError):
            inventory_service.record_stock_in(
                product_id=9999, quantity=1, batch_expiry_date=expiry, actor=admin_user,
            )
        assert db_session.query(InventoryMovement).count() == 0


class TestAdjustments:

    def test_negative_result_is_rejected_without_writes(self, db_session, product, admin_user):
        with pytest.raises(ConflictError) as exc:
            inventory_service.record_stock_adjustment(
                product_id=product.id, quantity_change=-6, reason="Damaged", actor=admin_user,
            )

        assert str(exc.value) == "Adjustment would result in negative stock (-1). Current stock: 5."
        db.session.expire_all()
        assert product.stock == 5
        assert db_session.query(InventoryMovement).count() == 0

    def test_zero_change_is_rejected(self, product, admin_user):
        with pytest.raises(ConflictError):
            inventory_service.record_stock_adjustment(
                product_id=product.id, quantity_change=0, reason="Count", actor=admin_user,
            )

    def test_reason_is_required(self, product, admin_user):
        with pytest.raises(ValidationError) as exc:
            inventory_service.record_stock_adjustment(
                product_id=product.id, quantity_change=2, reason="  ", actor=admin_user,
            )
        assert exc.value.field == "reason"

    def test_add_and_remove_types_and_notes(self, product, admin_user):
        added, p = inventory_service.record_stock_adjustment(
            product_id=product.id, quantity_change=3, reason="Found in storage", actor=admin_user,
        )
        assert added.type == "adjustment-add"
        assert added.notes == "Found in storage"
        assert p.stock == 8

        removed, p = inventory_service.record_stock_adjustment(
            product_id=product.id, quantity_change=-2, reason="Damaged", notes="water leak", actor=admin_user,
        )
        assert removed.type == "adjustment-remove"
        assert removed.quantity == -2
        assert removed.notes == "Damaged - water leak"
        assert (removed.stock_before, removed.stock_after) == (8, 6)

    def test_removal_consumes_earliest_expiry_first(self, empty_product, admin_user):
        inventory_service.record_stock_in(
            product_id=empty_product.id, quantity=5, batch_expiry_date=date(2031, 1, 1), actor=admin_user,
        )
        inventory_service.record_stock_in(
            product_id=empty_product.id, quantity=5, batch_expiry_date=date(2030, 1, 1), actor=admin_user,
        )

        _, p = inventory_service.record_stock_adjustment(
            product_id=empty_product.id, quantity_change=-3, reason="Expired samples", actor=admin_user,
        )

        remaining = {b.expiry_date: b.remaining_quantity for b in p.batches}
        assert remaining == {date(2030, 1, 1): 2, date(2031, 1, 1): 5}
        assert p.stock == 7

    def test_batch_total_never_exceeds_stock(self, product, admin_user, expiry):
        inventory_service.record_stock_in(
            product_id=product.id, quantity=10, batch_expiry_date=expiry, actor=admin_user,
        )
        _, p = inventory_service.record_stock_adjustment(
            product_id=product.id, quantity_change=-12, reason="Recount", actor=admin_user,
        )

        assert p.stock == 3
        assert _batch_total(p) <= p.stock


class TestLedgerQueries:

    def test_movements_newest_first_and_filters(self, product, admin_user, expiry):
        inventory_service.record_stock_in(
            product_id=product.id, quantity=2, batch_expiry_date=expiry, actor=admin_user,
        )
        inventory_service.record_stock_adjustment(
            product_id=product.id, quantity_change=1, reason="Found", actor=admin_user,
        )

        movements = inventory_service.list_movements(product_id=product.id)
        assert [m.type for m in movements] == ["adjustment-add", "stock-in"]

        only_stock_in = inventory_service.list_movements(movement_type="stock-in")
        assert len(only_stock_in) == 1

    def test_unknown_type_filter(self, db_session):
        with pytest.raises(ValidationError):
            inventory_service.list_movements(movement_type="teleport")

    def test_stock_in_history_shows_batch_state(self, product, admin_user, expiry):
        inventory_service.record_stock_in(
            product_id=product.id, quantity=6, batch_expiry_date=expiry, actor=admin_user,
        )
        inventory_service.record_stock_adjustment(
            product_id=product.id, quantity_change=-8, reason="Breakage", actor=admin_user,
        )

        history = inventory_service.get_stock_in_history(product.id)
        assert len(history) == 1
        assert history[0]["batch"]["initial_quantity"] == 6
        assert history[0]["batch"]["remaining_quantity"] == 0


class TestInventoryRoutes:

    def test_stock_in_route(self, client, admin_headers, product):
        resp = client.post("/api/inventory/stock-in", json={
            "product_id": product.id,
            "quantity": 10,
            "batch_expiry_date": "2031-06-30",
        }, headers=admin_headers)

        assert resp.status_code == 201
        body = resp.json
        assert body["success"] is True
        assert body["movement"]["stock_after"] == 15
        assert body["product"]["stock"] == 15
        assert body["product"]["expiry_date"] == "2031-06-30"
        assert len(body["product"]["batches"]) == 1

    def test_stock_in_route_field_errors(self, client, admin_headers, product):
        resp = client.post("/api/inventory/stock-in", json={
            "product_id": product.id,
            "quantity": 2,
            "batch_expiry_date": "30-06-2031x",
        }, headers=admin_headers)

        assert resp.status_code == 400
        assert resp.json["success"] is False
        assert "batch_expiry_date" in resp.json["errors"]

    def test_negative_adjustment_route_returns_conflict(self, client, admin_headers, product):
        resp = client.post("/api/inventory/adjustments", json={
            "product_id": product.id,
            "quantity_change": -50,
            "reason": "Lost",
        }, headers=admin_headers)

        assert resp.status_code == 409
        assert "negative stock" in resp.json["error"]

    @pytest.mark.parametrize("field, value", [
        ("reason", 5),
        ("reason", ["Recount"]),
        ("notes", {"text": "shelf B"}),
    ])
    def test_adjustment_route_rejects_non_text(self, client, admin_headers, db_session, product, field, value):
        payload = {"product_id": product.id, "quantity_change": 1, "reason": "Recount"}
        payload[field] = value

        resp = client.post("/api/inventory/adjustments", json=payload, headers=admin_headers)

        assert resp.status_code == 400
        assert field in resp.json["errors"]
        assert db_session.query(InventoryMovement).count() == 0

    def test_list_movements_route(self, client, admin_headers, product):
        client.post("/api/inventory/adjustments", json={
            "product_id": product.id, "quantity_change": 1, "reason": "Found",
        }, headers=admin_headers)

        resp = client.get(f"/api/inventory/movements?product_id={product.id}", headers=admin_headers)
        assert resp.status_code == 200
        assert resp.json["count"] == 1
        assert resp.json["items"][0]["state"] == "applied"


def test_stock_in_persists_batch_and_movement(db_session, product, admin_user, expiry):
    inventory_service.record_stock_in(
        product_id=product.id, quantity=3, batch_expiry_date=expiry, actor=admin_user,
    )
    assert db_session.query(ProductBatch).count() == 1
    assert db_session.query(InventoryMovement).filter_by(product_id=product.id).count() == 1
