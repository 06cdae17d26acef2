"""
Product catalogue tests: creation with initial stock, price history,
images on the asset host and deletion.
"""

import io
from datetime import date
from unittest.mock import patch

import pytest

from stockpilot.models import InventoryMovement, PriceHistoryEntry, Product, ProductImage
from stockpilot.services import image_storage, products_service
from stockpilot.services.image_storage import ImageStorageError
from stockpilot.validation import ConflictError, PermissionDeniedError, ValidationError


def _uploaded(public_id):
    return {"url": f"https://res.cloudinary.com/demo/image/upload/{public_id}.png", "public_id": public_id}


class TestCreateProduct:

    def test_initial_stock_goes_through_ledger(self, client, admin_headers, db_session, category):
        resp = client.post("/api/products", json={
            "sku": "MIL-001",
            "name": "Oat Milk",
            "category_id": category.id,
            "price_cents": 3200,
            "cost_cents": 2100,
            "stock": 8,
            "expiry_date": "2031-06-30",
        }, headers=admin_headers)

        assert resp.status_code == 201
        body = resp.json["product"]
        assert body["stock"] == 8
        assert body["category_name"] == "Beverages"
        assert len(body["batches"]) == 1
        assert body["batches"][0]["remaining_quantity"] == 8
        assert body["batches"][0]["expiry_date"] == "2031-06-30"

        movement = db_session.query(InventoryMovement).filter_by(product_id=body["id"]).one()
        assert movement.type == "stock-in"
        assert movement.quantity == 8
        assert movement.stock_before == 0
        assert movement.notes == "Initial stock of 8 units."

    def test_no_initial_stock_means_no_movement(self, client, admin_headers, db_session):
        resp = client.post("/api/products", json={
            "sku": "MIL-002", "name": "Soy Milk", "price_cents": 2900,
        }, headers=admin_headers)

        assert resp.status_code == 201
        assert resp.json["product"]["stock"] == 0
        assert resp.json["product"]["stock_status"] == "out_of_stock"
        assert db_session.query(InventoryMovement).count() == 0

    def test_creation_records_first_price(self, db_session, admin_user):
        product = products_service.create_product(
            patch={"sku": "JUI-001", "name": "Mango Juice", "price_cents": 1800}, actor=admin_user,
        )
        assert [h.price_cents for h in product.price_history] == [1800]
        assert product.price_history[0].changed_by_name == admin_user.name

    def test_duplicate_sku(self, client, admin_headers, product):
        resp = client.post("/api/products", json={
            "sku": "TEA-001", "name": "Another Tea", "price_cents": 100,
        }, headers=admin_headers)
        assert resp.status_code == 409

    def test_missing_required_fields(self, client, admin_headers):
        resp = client.post("/api/products", json={"name": "Nameless"}, headers=admin_headers)
        assert resp.status_code == 400
        assert resp.json["success"] is False

    @pytest.mark.parametrize("field, value", [
        ("price_cents", -1),
        ("price_cents", 12.5),
        ("stock", -4),
    ])
    def test_invalid_numbers(self, client, admin_headers, field, value):
        payload = {"sku": "BAD-001", "name": "Bad", "price_cents": 100, field: value}
        resp = client.post("/api/products", json=payload, headers=admin_headers)
        assert resp.status_code == 400
        assert field in resp.json["errors"]


class TestUpdateProduct:

    def test_stock_is_not_writable(self, client, admin_headers, product):
        resp = client.put(f"/api/products/{product.id}", json={"stock": 50}, headers=admin_headers)

        assert resp.status_code == 400
        assert "stock" in resp.json["errors"]

    def test_price_change_appends_history(self, db_session, product, admin_user):
        products_service.update_product(product_id=product.id, patch={"name": "Jasmine Tea"}, actor=admin_user)
        assert db_session.query(PriceHistoryEntry).filter_by(product_id=product.id).count() == 0

        updated = products_service.update_product(
            product_id=product.id, patch={"price_cents": 1700}, actor=admin_user,
        )
        assert [h.price_cents for h in updated.price_history] == [1700]

    def test_sku_conflict_on_update(self, product, empty_product, admin_user):
        with pytest.raises(ConflictError):
            products_service.update_product(product_id=empty_product.id, patch={"sku": "TEA-001"}, actor=admin_user)

    def test_unknown_category(self, product, admin_user):
        with pytest.raises(ValidationError) as exc:
            products_service.update_product(product_id=product.id, patch={"category_id": 404}, actor=admin_user)
        assert exc.value.field == "category_id"


class TestProductImages:

    def test_multipart_create_uploads_images(self, client, admin_headers, db_session):
        with patch.object(image_storage, "upload_image", side_effect=[_uploaded("img-a"), _uploaded("img-b")]):
            resp = client.post("/api/products", data={
                "sku": "CUP-001",
                "name": "Ceramic Cup",
                "price_cents": "4500",
                "description": "",
                "images": [(io.BytesIO(b"a"), "a.png"), (io.BytesIO(b"b"), "b.png")],
            }, headers=admin_headers, content_type="multipart/form-data")

        assert resp.status_code == 201
        body = resp.json["product"]
        assert [img["public_id"] for img in body["images"]] == ["img-a", "img-b"]
        assert body["description"] is None
        assert body["price_cents"] == 4500

    def test_failed_upload_deletes_already_uploaded(self, db_session, admin_user):
        with patch.object(image_storage, "upload_image",
                          side_effect=[_uploaded("img-a"), ImageStorageError("Image upload failed")]), \
                patch.object(image_storage, "delete_image", return_value=True) as deleted:
            with pytest.raises(ImageStorageError):
                products_service.create_product(
                    patch={"sku": "CUP-002", "name": "Glass Cup", "price_cents": 900},
                    actor=admin_user,
                    image_files=["first", "second"],
                )

        deleted.assert_called_once_with("img-a")
        assert db_session.query(Product).count() == 0

    def test_failed_write_deletes_uploaded(self, db_session, admin_user):
        with patch.object(image_storage, "upload_image", return_value=_uploaded("img-c")), \
                patch.object(image_storage, "delete_image", return_value=True) as deleted, \
                patch.object(products_service, "stock_in", side_effect=ConflictError("ledger unavailable")):
            with pytest.raises(ConflictError):
                products_service.create_product(
                    patch={"sku": "CUP-003", "name": "Tall Cup", "price_cents": 900},
                    actor=admin_user,
                    initial_stock=2,
                    image_files=["file"],
                )

        deleted.assert_called_once_with("img-c")
        assert db_session.query(Product).count() == 0
        assert db_session.query(ProductImage).count() == 0

    def test_remove_image_ids(self, db_session, product, admin_user):
        with patch.object(image_storage, "upload_image", return_value=_uploaded("img-d")):
            products_service.update_product(product_id=product.id, patch={}, actor=admin_user, image_files=["file"])
        image = db_session.query(ProductImage).filter_by(product_id=product.id).one()

        with patch.object(image_storage, "delete_image", return_value=True) as deleted:
            updated = products_service.update_product(
                product_id=product.id, patch={}, actor=admin_user, remove_image_ids=[image.id],
            )

        deleted.assert_called_once_with("img-d")
        assert updated.images == []

    def test_unknown_image_id(self, product, admin_user):
        with pytest.raises(ValidationError) as exc:
            products_service.update_product(product_id=product.id, patch={}, actor=admin_user, remove_image_ids=[77])
        assert exc.value.field == "remove_image_ids"


class TestListAndDelete:

    def test_low_stock_filter(self, product, empty_product):
        low = products_service.list_products(stock_status="low")
        assert [p["sku"] for p in low["items"]] == ["TEA-001"]

        out = products_service.list_products(stock_status="out_of_stock")
        assert [p["sku"] for p in out["items"]] == ["COF-001"]

    def test_invalid_stock_status(self, client, admin_headers):
        resp = client.get("/api/products?stock_status=plenty", headers=admin_headers)
        assert resp.status_code == 400

    def test_search(self, product, empty_product):
        result = products_service.list_products(search="coffee")
        assert [p["sku"] for p in result["items"]] == ["COF-001"]

    def test_delete_keeps_history(self, db_session, admin_user, category):
        product = products_service.create_product(
            patch={"sku": "OLD-001", "name": "Old Stock", "price_cents": 500, "expiry_date": date(2031, 1, 1)},
            actor=admin_user,
            initial_stock=3,
        )
        product_id = product.id

        products_service.delete_product(product_id=product_id, actor=admin_user)

        assert db_session.get(Product, product_id) is None
        movement = db_session.query(InventoryMovement).one()
        assert movement.product_id is None
        assert movement.product_name == "Old Stock"

    def test_employee_cannot_delete(self, product, employee_user):
        with pytest.raises(PermissionDeniedError):
            products_service.delete_product(product_id=product.id, actor=employee_user)
