"""
Spreadsheet import tests: header synonyms, per-row failures and the
CSV / Excel upload routes.
"""

import io
from datetime import date

from openpyxl import Workbook

from stockpilot.extensions import db
from stockpilot.models import Customer, CustomerCategory, Order
from stockpilot.services import import_service
from stockpilot.services.import_schemas import (
    CUSTOMER_HEADER_SYNONYMS,
    OrderItemImportSchema,
    _to_cents,
    normalize_headers,
)


def test_normalize_headers_maps_synonyms():
    row = normalize_headers({" Tên Khách Hàng ": "An", "電話": "0909", "Unknown": 1}, CUSTOMER_HEADER_SYNONYMS)
    assert row == {"name": "An", "phone": "0909", "unknown": 1}


def test_money_cells_become_cents():
    assert _to_cents("1,500.50") == 150050
    assert _to_cents(15) == 1500
    assert _to_cents(12.3) == 1230
    assert _to_cents("N/A") is None


def test_item_row_without_quantity_is_invalid():
    _, problems = OrderItemImportSchema().prepare({"Mã đơn hàng": "DH001", "Mã sản phẩm": "TEA-001"})
    assert problems == ["quantity must be at least 1"]


class TestCustomerImport:

    def test_mixed_rows(self, db_session, customer):
        rows = [
            {
                "Tên khách hàng": "Minh Pham",
                "Mã khách hàng": "KH010",
                "Email": "MINH@Example.com",
                "Điện thoại": "0908000111",
                "Địa chỉ": "N/A",
                "Phân loại khách hàng": "Retail",
            },
            {"Tên khách hàng": "", "Mã khách hàng": "KH011"},
            {"Tên khách hàng": "Linh T.", "Mã khách hàng": "KH001"},
            {"Tên khách hàng": "Broken Mail", "Email": "not-an-email"},
        ]

        result = import_service.import_customers(rows)

        assert result["imported"] == 1
        assert result["skipped"] == 2
        assert result["failed"] == 1
        assert result["success"] is False
        assert result["errors"] == ["Row 5: invalid email 'not-an-email'"]

        minh = db_session.query(Customer).filter_by(customer_code="KH010").one()
        assert minh.email == "minh@example.com"
        assert minh.address is None
        assert minh.category.code == "RETAIL"

    def test_duplicates_fail_when_not_skipped(self, customer):
        result = import_service.import_customers(
            [{"Name": "Someone", "Email": "LINH@example.com"}], skip_duplicates=False,
        )
        assert result["failed"] == 1
        assert "already exists" in result["errors"][0]

    def test_update_existing_keeps_values_for_empty_cells(self, db_session, customer):
        result = import_service.import_customers(
            [{"Mã khách hàng": "KH001", "Tên khách hàng": "Linh Tran Thi", "Email": "", "Điện thoại": "0911222333"}],
            update_existing=True,
        )

        assert result["updated"] == 1
        assert result["success"] is True
        db.session.refresh(customer)
        assert customer.name == "Linh Tran Thi"
        assert customer.phone == "0911222333"
        assert customer.email == "linh@example.com"

    def test_existing_category_is_reused(self, db_session, customer_category):
        import_service.import_customers([
            {"Name": "A", "Category": "wholesale"},
            {"Name": "B", "Category": "Wholesale"},
        ])
        assert db_session.query(CustomerCategory).count() == 1


class TestOrderImport:

    def _items(self, *rows):
        return [
            {"Mã đơn hàng": number, "Mã sản phẩm": sku, "Số lượng": qty, "Đơn giá": price}
            for number, sku, qty, price in rows
        ]

    def test_imports_orders_and_reports_failures(self, db_session, customer, product, admin_user):
        orders = [
            {"Mã đơn hàng": "DH001", "Mã khách hàng": "KH001", "Ngày tạo đơn hàng": "15/03/2026",
             "Tổng tiền đơn hàng": "30", "Ghi chú": "Imported"},
            {"Mã đơn hàng": "DH002", "Mã khách hàng": "KH999", "Ngày tạo đơn hàng": "16/03/2026"},
            {"Mã đơn hàng": "DH003", "Mã khách hàng": "KH001"},
            {"Mã đơn hàng": "DH004", "Mã khách hàng": "KH001"},
        ]
        items = self._items(
            ("DH001", "TEA-001", "2", "15"),
            ("DH002", "TEA-001", "1", "15"),
            ("DH003", "NOPE-1", "1", "10"),
        )

        result = import_service.import_orders(orders, items, actor=admin_user)

        assert result["imported"] == 1
        assert result["failed"] == 3
        assert result["success"] is False
        assert result["warnings"] == []
        assert result["errors"] == [
            "Row 3: customer code 'KH999' not found",
            "Row 4: unknown product code(s): NOPE-1",
            "Row 5: order DH004 has no items",
        ]

        order = db_session.query(Order).filter_by(order_number="DH001").one()
        assert order.order_date.date() == date(2026, 3, 15)
        assert order.total_amount_cents == 3000
        assert order.notes == "Imported"
        db.session.refresh(product)
        assert product.stock == 3

    def test_total_mismatch_is_a_warning(self, customer, product, admin_user):
        result = import_service.import_orders(
            [{"Mã đơn hàng": "DH010", "Mã khách hàng": "KH001", "Tổng tiền đơn hàng": "25"}],
            self._items(("DH010", "TEA-001", "1", "15")),
            actor=admin_user,
        )
        assert result["imported"] == 1
        assert result["success"] is True
        assert result["warnings"] == ["Row 2: sheet total 2500 differs from computed 1500"]

    def test_insufficient_stock_fails_the_order(self, db_session, customer, product, admin_user):
        result = import_service.import_orders(
            [{"Mã đơn hàng": "DH020", "Mã khách hàng": "KH001"}],
            self._items(("DH020", "TEA-001", "50", "15")),
            actor=admin_user,
        )
        assert result["imported"] == 0
        assert "Insufficient stock" in result["errors"][0]
        assert db_session.query(Order).count() == 0

    def test_bad_item_row_fails_its_order(self, customer, product, admin_user):
        result = import_service.import_orders(
            [{"Mã đơn hàng": "DH030", "Mã khách hàng": "KH001"}],
            self._items(("DH030", "TEA-001", "0", "15")),
            actor=admin_user,
        )
        assert result["errors"] == [
            "Row 2: (items) quantity must be at least 1",
            "Row 2: order DH030 has invalid item rows",
        ]


class TestImportRoutes:

    def test_csv_upload_with_bom(self, client, admin_headers, db_session):
        content = "\ufeffTên khách hàng,Email\nAn Nguyen,an@example.com\n,\n".encode("utf-8")

        resp = client.post(
            "/api/imports/customers",
            data={"file": (io.BytesIO(content), "customers.csv")},
            headers=admin_headers,
            content_type="multipart/form-data",
        )

        assert resp.status_code == 200
        assert resp.json["imported"] == 1
        assert db_session.query(Customer).filter_by(email="an@example.com").count() == 1

    def test_xlsx_upload(self, client, admin_headers, db_session):
        wb = Workbook()
        ws = wb.active
        ws.append(["Name", "Code", "Email"])
        ws.append(["Bao Le", "KH020", "bao@example.com"])
        ws.append([None, None, None])
        ws.append(["Chi Vo", "KH021", None])
        buf = io.BytesIO()
        wb.save(buf)
        buf.seek(0)

        resp = client.post(
            "/api/imports/customers",
            data={"file": (buf, "customers.xlsx")},
            headers=admin_headers,
            content_type="multipart/form-data",
        )

        assert resp.status_code == 200
        assert resp.json["imported"] == 2
        assert {c.customer_code for c in db_session.query(Customer)} == {"KH020", "KH021"}

    def test_unsupported_format(self, client, admin_headers):
        resp = client.post(
            "/api/imports/customers",
            data={"file": (io.BytesIO(b"hello"), "customers.txt")},
            headers=admin_headers,
            content_type="multipart/form-data",
        )
        assert resp.status_code == 400
        assert "Unsupported file format" in resp.json["error"]

    def test_missing_file(self, client, admin_headers):
        resp = client.post("/api/imports/customers", data={}, headers=admin_headers,
                           content_type="multipart/form-data")
        assert resp.status_code == 400

    def test_order_upload(self, client, admin_headers, customer, product):
        orders_csv = "Mã đơn hàng,Mã khách hàng,Ngày tạo đơn hàng\nDH100,KH001,2026-04-01\n".encode("utf-8")
        items_csv = "Mã đơn hàng,Mã sản phẩm,Số lượng,Đơn giá\nDH100,TEA-001,1,15\n".encode("utf-8")

        resp = client.post(
            "/api/imports/orders",
            data={
                "orders_file": (io.BytesIO(orders_csv), "orders.csv"),
                "items_file": (io.BytesIO(items_csv), "items.csv"),
            },
            headers=admin_headers,
            content_type="multipart/form-data",
        )

        assert resp.status_code == 200
        assert resp.json["imported"] == 1
