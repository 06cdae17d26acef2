# Overview: Bulk import of customers and orders from parsed spreadsheet rows.

"""
Spreadsheet imports.

Rows arrive as dicts keyed by the sheet's header row. Headers are
normalized through the synonym tables in import_schemas, then each row is
handed to the regular create/update operation on its own. A failing row
is rolled back and reported as "Row N: <reason>" (N is the sheet row,
the header being row 1); the remaining rows still import.
"""

from __future__ import annotations

from collections import defaultdict
from datetime import datetime

from flask import current_app

from ..extensions import db
from ..models import Product, User
from . import customer_category_service, customers_service, orders_service
from .import_schemas import CustomerImportSchema, OrderImportSchema, OrderItemImportSchema
from .revalidation import revalidate_after_write

FIRST_DATA_ROW = 2


def _row_error(errors: list[str], row_number: int, message: str) -> None:
    errors.append(f"Row {row_number}: {message}")


def import_customers(rows: list[dict], *, skip_duplicates: bool = True, update_existing: bool = False) -> dict:
    """
    Create customers from sheet rows.

    Rows without a name are skipped. An existing customer (same code, else
    same email) is updated when update_existing, skipped when
    skip_duplicates, and reported as a failure otherwise.
    """
    schema = CustomerImportSchema()
    imported = updated = skipped = failed = 0
    errors: list[str] = []

    for row_number, raw in enumerate(rows, start=FIRST_DATA_ROW):
        data, problems = schema.prepare(raw)
        if not problems and not data.get("name"):
            skipped += 1
            continue
        if problems:
            failed += 1
            _row_error(errors, row_number, "; ".join(problems))
            continue

        existing = None
        if data["customer_code"]:
            existing = customers_service.find_by_code(data["customer_code"])
        if existing is None and data["email"]:
            existing = customers_service.find_by_email(data["email"])

        if existing is not None and not update_existing:
            if skip_duplicates:
                skipped += 1
            else:
                failed += 1
                _row_error(errors, row_number, f"customer '{data['name']}' already exists")
            continue

        try:
            patch = {k: v for k, v in data.items() if k != "category_name"}
            if data["category_name"]:
                patch["category_id"] = customer_category_service.find_or_create_by_name(data["category_name"]).id

            if existing is not None:
                # keep stored values where the sheet cell is empty
                patch = {k: v for k, v in patch.items() if v is not None}
                customers_service.update_customer(customer_id=existing.id, patch=patch, commit=False)
                updated += 1
            else:
                customers_service.create_customer(patch=patch, commit=False)
                imported += 1
            db.session.commit()
        except ValueError as e:
            db.session.rollback()
            failed += 1
            _row_error(errors, row_number, str(e))

    if imported or updated:
        revalidate_after_write()
    current_app.logger.info(
        "Customer import: imported=%s updated=%s skipped=%s failed=%s", imported, updated, skipped, failed
    )
    return {
        "success": failed == 0,
        "imported": imported,
        "updated": updated,
        "skipped": skipped,
        "failed": failed,
        "errors": errors,
    }


def import_orders(order_rows: list[dict], item_rows: list[dict], *, actor: User) -> dict:
    """
    Create orders from an orders sheet plus an items sheet joined on the
    order number ('ma don hang'). Customers are matched by code, products
    by SKU. Each order goes through orders_service.create_order, so stock
    is consumed and sale movements are written as for a manual order.
    """
    order_schema = OrderImportSchema()
    item_schema = OrderItemImportSchema()
    errors: list[str] = []
    warnings: list[str] = []
    imported = failed = 0

    items_by_order: dict[str, list[dict]] = defaultdict(list)
    bad_item_orders: set[str] = set()
    for row_number, raw in enumerate(item_rows, start=FIRST_DATA_ROW):
        item, problems = item_schema.prepare(raw)
        if problems:
            _row_error(errors, row_number, f"(items) {'; '.join(problems)}")
            if item.get("order_number"):
                bad_item_orders.add(item["order_number"])
            continue
        items_by_order[item["order_number"]].append(item)

    for row_number, raw in enumerate(order_rows, start=FIRST_DATA_ROW):
        data, problems = order_schema.prepare(raw)
        if problems:
            failed += 1
            _row_error(errors, row_number, "; ".join(problems))
            continue

        number = data["order_number"]
        if number in bad_item_orders:
            failed += 1
            _row_error(errors, row_number, f"order {number} has invalid item rows")
            continue
        lines = items_by_order.get(number)
        if not lines:
            failed += 1
            _row_error(errors, row_number, f"order {number} has no items")
            continue

        customer = customers_service.find_by_code(data["customer_code"])
        if customer is None:
            failed += 1
            _row_error(errors, row_number, f"customer code '{data['customer_code']}' not found")
            continue

        items = []
        missing = []
        for line in lines:
            product = db.session.query(Product).filter(Product.sku == line["sku"]).first()
            if product is None:
                missing.append(line["sku"])
                continue
            items.append({
                "product_id": product.id,
                "quantity": line["quantity"],
                "unit_price_cents": line["unit_price_cents"],
            })
        if missing:
            failed += 1
            _row_error(errors, row_number, f"unknown product code(s): {', '.join(missing)}")
            continue

        order_date = datetime.combine(data["order_date"], datetime.min.time()) if data["order_date"] else None
        try:
            order = orders_service.create_order(
                patch={"customer_id": customer.id, "notes": data["notes"]},
                items=items,
                actor=actor,
                order_number=number,
                order_date=order_date,
            )
        except ValueError as e:
            failed += 1
            _row_error(errors, row_number, str(e))
            continue

        imported += 1
        if data["total_cents"] is not None and data["total_cents"] != order.total_amount_cents:
            warnings.append(
                f"Row {row_number}: sheet total {data['total_cents']} differs from computed {order.total_amount_cents}"
            )

    current_app.logger.info("Order import: imported=%s failed=%s by %s", imported, failed, actor.email)
    return {
        "success": failed == 0 and imported > 0,
        "imported": imported,
        "failed": failed,
        "errors": errors,
        "warnings": warnings,
    }
