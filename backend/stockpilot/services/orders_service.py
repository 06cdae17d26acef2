# Overview: Order lifecycle: creation with stock consumption, edits, status transitions and soft deletion.

"""
Orders service.

INVARIANTS:
- An order, its line items, the stock decrements and the sale movements
  are written in one transaction. An order never exists without its sale
  movements and vice versa.
- Each line consumes batches first expiry first; the batches used are
  recorded on the line.
- Money is integer cents:
    subtotal = sum(unit_price * quantity)
    discount = round(subtotal * pct / 100) or fixed amount, clamped to [0, subtotal]
    total    = subtotal - discount + shipping
    cogs     = sum(product cost * quantity)
    profit   = total - cogs
- Only pending/processing orders can be edited. Replacing items first
  returns the old quantities (adjustment-add movements, batch remainders
  restored) and then sells the new ones.
- Soft-deleted orders keep their stock effect.
"""

from __future__ import annotations

from datetime import date, datetime

from flask import current_app

from ..extensions import db
from ..models import Customer, Order, OrderBatchUsage, OrderLineItem, User
from ..models.inventory import MOVEMENT_ADJUSTMENT_ADD, MOVEMENT_SALE
from ..models.orders import (
    DISCOUNT_FIXED,
    DISCOUNT_PERCENTAGE,
    EDITABLE_STATUSES,
    ORDER_STATUSES,
)
from ..validation import (
    ConflictError,
    NotFoundError,
    PermissionDeniedError,
    ValidationError,
    parse_int_field,
)
from .concurrency import run_atomic
from .inventory_service import consume_batches, get_product_for_update, restore_batches, write_movement
from .pagination import paginate
from .revalidation import revalidate_after_write
from stockpilot.time_utils import end_of_day, utcnow

ORDER_MUTABLE_FIELDS = {"customer_id", "discount_type", "discount_value", "shipping_fee_cents", "notes"}

# target status -> statuses it may be entered from; unlisted targets are free
STATUS_PRECONDITIONS = {
    "shipped": ("pending", "processing"),
    "delivered": ("shipped",),
    "completed": ("shipped", "delivered"),
}


def calculate_discount(subtotal_cents: int, discount_type: str | None, discount_value: int | None) -> int:
    if not discount_type or discount_value is None:
        return 0
    if discount_type == DISCOUNT_PERCENTAGE:
        amount = (subtotal_cents * discount_value + 50) // 100
    elif discount_type == DISCOUNT_FIXED:
        amount = discount_value
    else:
        raise ValidationError("discount_type must be 'percentage' or 'fixed'", "discount_type")
    return max(0, min(amount, subtotal_cents))


def apply_totals(order: Order, subtotal_cents: int, cogs_cents: int) -> None:
    order.subtotal_cents = subtotal_cents
    order.discount_amount_cents = calculate_discount(subtotal_cents, order.discount_type, order.discount_value)
    order.shipping_fee_cents = order.shipping_fee_cents or 0
    order.total_amount_cents = subtotal_cents - order.discount_amount_cents + order.shipping_fee_cents
    order.cost_of_goods_sold_cents = cogs_cents
    order.profit_cents = order.total_amount_cents - cogs_cents


def generate_order_number(on: date | None = None) -> str:
    """ORD-YYYYMMDD-NNNN, next sequence for the day."""
    day = on or utcnow().date()
    prefix = f"ORD-{day.strftime('%Y%m%d')}-"
    last = (
        db.session.query(Order.order_number)
        .filter(Order.order_number.like(f"{prefix}%"))
        .order_by(Order.order_number.desc())
        .first()
    )
    sequence = 1
    if last:
        tail = last[0].rsplit("-", 1)[-1]
        if tail.isdigit():
            sequence = int(tail) + 1
    return f"{prefix}{sequence:04d}"


def parse_order_items(raw_items) -> list[dict]:
    """Validate the items array; at least one line is required."""
    if not isinstance(raw_items, list) or not raw_items:
        raise ValidationError("An order needs at least one item.", "items")

    items = []
    for i, raw in enumerate(raw_items):
        if not isinstance(raw, dict):
            raise ValidationError(f"items[{i}] must be an object", f"items[{i}]")
        try:
            product_id = parse_int_field(raw, "product_id")
            quantity = parse_int_field(raw, "quantity", minimum=1)
            unit_price = parse_int_field(raw, "unit_price_cents", required=False, minimum=0)
        except ValidationError as e:
            raise ValidationError(str(e), f"items[{i}].{e.field}") from e
        notes = raw.get("notes")
        items.append({
            "product_id": product_id,
            "quantity": quantity,
            "unit_price_cents": unit_price,
            "notes": str(notes).strip() or None if notes is not None else None,
        })
    return items


def _get_customer(customer_id, message: str = "Customer not found.") -> Customer:
    customer = db.session.get(Customer, customer_id) if customer_id is not None else None
    if not customer:
        raise NotFoundError(message)
    return customer


def _sell_items(order: Order, items: list[dict], actor: User) -> tuple[int, int]:
    """Consume stock for each item and attach line items. Returns (subtotal, cogs)."""
    subtotal = 0
    cogs = 0
    for item in items:
        try:
            product = get_product_for_update(item["product_id"])
        except NotFoundError:
            raise NotFoundError(f"Product with ID {item['product_id']} not found.")

        quantity = item["quantity"]
        if product.stock < quantity:
            raise ConflictError(
                f"Insufficient stock for product {product.name}. "
                f"Available: {product.stock}, Requested: {quantity}."
            )

        usages = consume_batches(product, quantity)
        write_movement(
            product,
            movement_type=MOVEMENT_SALE,
            delta=-quantity,
            actor=actor,
            notes=f"Sale for order {order.order_number}.",
            related_order_id=order.id,
        )

        unit_price = item["unit_price_cents"]
        if unit_price is None:
            unit_price = product.price_cents
        line = OrderLineItem(
            product_id=product.id,
            product_name=product.name,
            product_sku=product.sku,
            quantity=quantity,
            unit_price_cents=unit_price,
            cost_cents=product.cost_cents or 0,
            notes=item.get("notes"),
        )
        for usage in usages:
            line.batches_used.append(OrderBatchUsage(**usage))
        order.items.append(line)

        subtotal += unit_price * quantity
        cogs += (product.cost_cents or 0) * quantity
    return subtotal, cogs


def _return_items(order: Order, actor: User) -> None:
    """Give back the stock of every current line and drop the lines."""
    for line in list(order.items):
        if line.product_id is not None:
            try:
                product = get_product_for_update(line.product_id)
            except NotFoundError:
                product = None
            if product is not None:
                restore_batches(product, line.batches_used)
                write_movement(
                    product,
                    movement_type=MOVEMENT_ADJUSTMENT_ADD,
                    delta=line.quantity,
                    actor=actor,
                    notes=f"Stock reversal for order {order.order_number} edit",
                    related_order_id=order.id,
                )
        order.items.remove(line)
    db.session.flush()


def create_order(
    *,
    patch: dict,
    items,
    actor: User,
    order_number: str | None = None,
    order_date: datetime | None = None,
) -> Order:
    """
    Create a pending order and sell its items.

    Raises NotFoundError for an unknown customer or product, ConflictError
    for insufficient stock or a duplicate order number.
    """
    parsed_items = parse_order_items(items)
    if patch.get("discount_type") is None:
        patch = {**patch, "discount_value": None}

    def _op():
        customer = _get_customer(patch.get("customer_id"))

        number = order_number or generate_order_number()
        if order_number and db.session.query(Order.id).filter(Order.order_number == number).first():
            raise ConflictError(f"Order number {number} already exists.")

        order = Order(
            order_number=number,
            customer_id=customer.id,
            customer_name=customer.name,
            discount_type=patch.get("discount_type"),
            discount_value=patch.get("discount_value"),
            shipping_fee_cents=patch.get("shipping_fee_cents") or 0,
            status="pending",
            order_date=order_date or utcnow(),
            notes=patch.get("notes"),
            created_by_user_id=actor.id,
            created_by_name=actor.name,
            is_deleted=False,
        )
        db.session.add(order)
        db.session.flush()

        subtotal, cogs = _sell_items(order, parsed_items, actor)
        apply_totals(order, subtotal, cogs)
        return order

    order = run_atomic(_op)
    current_app.logger.info(
        "Order %s created for customer %s: total=%s by %s",
        order.order_number, order.customer_id, order.total_amount_cents, actor.email,
    )
    revalidate_after_write()
    return order


def get_order(order_id: int) -> Order:
    order = db.session.get(Order, order_id)
    if not order:
        raise NotFoundError("Order not found.")
    return order


def update_order(*, order_id: int, patch: dict, actor: User, items=None) -> Order:
    """
    Edit a pending/processing order. When `items` is given the lines are
    replaced and stock reconciled.
    """
    parsed_items = parse_order_items(items) if items is not None else None

    def _op():
        order = get_order(order_id)
        if order.is_deleted:
            raise NotFoundError("Order not found.")
        if order.status not in EDITABLE_STATUSES:
            raise ConflictError(
                f"Cannot edit order in '{order.status}' status. "
                "Only pending and processing orders can be edited."
            )

        if "customer_id" in patch and patch["customer_id"] != order.customer_id:
            customer = _get_customer(patch["customer_id"], "New customer not found.")
            order.customer_id = customer.id
            order.customer_name = customer.name

        for key in ("discount_type", "discount_value", "shipping_fee_cents", "notes"):
            if key in patch:
                setattr(order, key, patch[key])
        if order.discount_type is None:
            order.discount_value = None
        if order.shipping_fee_cents is None:
            order.shipping_fee_cents = 0
        if order.discount_type == DISCOUNT_PERCENTAGE and (order.discount_value or 0) > 100:
            raise ValidationError("percentage discount cannot exceed 100", "discount_value")

        if parsed_items is not None:
            _return_items(order, actor)
            subtotal, cogs = _sell_items(order, parsed_items, actor)
        else:
            subtotal = sum(line.line_total_cents for line in order.items)
            cogs = sum(line.cost_cents * line.quantity for line in order.items)

        apply_totals(order, subtotal, cogs)
        return order

    order = run_atomic(_op)
    current_app.logger.info("Order %s edited by %s", order.order_number, actor.email)
    revalidate_after_write()
    return order


def update_order_status(*, order_id: int, status: str, actor: User) -> Order:
    if status not in ORDER_STATUSES:
        raise ValidationError("Invalid status value provided.", "status")

    def _op():
        order = get_order(order_id)
        if order.is_deleted:
            raise NotFoundError("Order not found.")

        allowed_from = STATUS_PRECONDITIONS.get(status)
        if allowed_from is not None and order.status not in allowed_from:
            raise ConflictError(f"Order cannot be marked as {status} from '{order.status}' status.")

        order.status = status
        return order

    order = run_atomic(_op)
    current_app.logger.info("Order %s status -> %s by %s", order.order_number, status, actor.email)
    revalidate_after_write()
    return order


def delete_order(*, order_id: int, actor: User) -> Order:
    """Admin-only soft delete. Stock consumed by the order is not returned."""
    if not actor.is_admin:
        raise PermissionDeniedError("Only administrators can delete orders.")

    def _op():
        order = get_order(order_id)
        if order.is_deleted:
            raise ConflictError("Order is already deleted.")
        order.is_deleted = True
        order.deleted_at = utcnow()
        order.deleted_by_user_id = actor.id
        order.deleted_by_name = actor.name
        return order

    order = run_atomic(_op)
    current_app.logger.warning("Order %s soft-deleted by %s", order.order_number, actor.email)
    revalidate_after_write()
    return order


def _filtered_orders(
    query,
    *,
    search: str | None,
    customer_id: int | None,
    status: str | None,
    date_from: date | None,
    date_to: date | None,
):
    if search:
        pattern = f"%{search.strip()}%"
        query = query.filter(db.or_(Order.order_number.ilike(pattern), Order.customer_name.ilike(pattern)))
    if customer_id is not None:
        query = query.filter(Order.customer_id == customer_id)
    if status and status != "all":
        if status not in ORDER_STATUSES:
            raise ValidationError("Invalid status filter.", "status")
        query = query.filter(Order.status == status)
    if date_from is not None:
        query = query.filter(Order.order_date >= datetime.combine(date_from, datetime.min.time()))
    if date_to is not None:
        query = query.filter(Order.order_date <= end_of_day(date_to))
    return query


def list_orders(
    *,
    search: str | None = None,
    customer_id: int | None = None,
    status: str | None = None,
    date_from: date | None = None,
    date_to: date | None = None,
    page: int | None = None,
    per_page: int | None = None,
) -> dict:
    """Live (not deleted) orders, newest first. date_to includes the whole day."""
    query = _filtered_orders(
        db.session.query(Order).filter(Order.is_deleted.is_(False)),
        search=search, customer_id=customer_id, status=status, date_from=date_from, date_to=date_to,
    )
    query = query.order_by(Order.order_date.desc(), Order.id.desc())
    return paginate(query, page, per_page, serialize=lambda o: o.to_dict(include_items=False))


def list_deleted_orders(
    *,
    actor: User,
    search: str | None = None,
    customer_id: int | None = None,
    status: str | None = None,
    date_from: date | None = None,
    date_to: date | None = None,
    page: int | None = None,
    per_page: int | None = None,
) -> dict:
    """Admin only. Most recently deleted first."""
    if not actor.is_admin:
        raise PermissionDeniedError("Only administrators can view deleted orders.")
    query = _filtered_orders(
        db.session.query(Order).filter(Order.is_deleted.is_(True)),
        search=search, customer_id=customer_id, status=status, date_from=date_from, date_to=date_to,
    )
    query = query.order_by(Order.deleted_at.desc(), Order.id.desc())
    return paginate(query, page, per_page, serialize=lambda o: o.to_dict(include_items=False))
