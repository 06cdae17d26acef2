# Overview: Inventory ledger operations; every stock change writes the counter and its movement together.

"""
Inventory ledger.

INVARIANTS:
- Product.stock never goes negative.
- Product.stock == sum(quantity) over the product's applied movements.
  The counter update and the movement insert are one transaction
  (run_atomic); there is no state in which one exists without the other.
- Sum of batch remaining quantities never exceeds Product.stock. Stock
  that is not covered by a batch is "untracked" (initial stock without
  expiry, adjustment-add).
- Sale movements are immutable. Other movements can be undone once and
  redone once per undo (applied -> reversed -> applied).

Batch consumption is first-expiry-first-out: earliest expiry first,
batches without expiry last, ties by creation order.
"""

from __future__ import annotations

import secrets
from datetime import date

from flask import current_app

from ..extensions import db
from ..models import InventoryMovement, Product, ProductBatch, User
from ..models.inventory import (
    MOVEMENT_ADJUSTMENT_ADD,
    MOVEMENT_ADJUSTMENT_REMOVE,
    MOVEMENT_SALE,
    MOVEMENT_STOCK_IN,
    MOVEMENT_TYPES,
)
from ..validation import ConflictError, NotFoundError, PermissionDeniedError, ValidationError
from .concurrency import lock_for_update, run_atomic
from .revalidation import revalidate_after_write
from stockpilot.time_utils import utcnow

DEFAULT_MOVEMENT_LIMIT = 100
MAX_MOVEMENT_LIMIT = 500


def generate_batch_code() -> str:
    return f"BATCH-{utcnow().strftime('%Y%m%d%H%M%S')}-{secrets.token_hex(2).upper()}"


def get_product_for_update(product_id: int) -> Product:
    product = lock_for_update(
        db.session.query(Product).filter(Product.id == product_id)
    ).first()
    if not product:
        raise NotFoundError("Product not found.")
    return product


def _fefo_batches(product: Product) -> list[ProductBatch]:
    live = [b for b in product.batches if b.remaining_quantity > 0]
    return sorted(live, key=lambda b: (b.expiry_date is None, b.expiry_date or date.max, b.id or 0))


def consume_batches(product: Product, quantity: int) -> list[dict]:
    """
    Draw `quantity` units from the product's batches, first expiry first.
    Returns the usage per batch. Units beyond the batch totals come from
    untracked stock and are not listed.
    """
    usages = []
    remaining = quantity
    for batch in _fefo_batches(product):
        if remaining <= 0:
            break
        used = min(batch.remaining_quantity, remaining)
        batch.remaining_quantity -= used
        remaining -= used
        usages.append({
            "batch_id": batch.id,
            "batch_code": batch.batch_code,
            "expiry_date": batch.expiry_date,
            "quantity_used": used,
        })
    return usages


def restore_batches(product: Product, usages) -> None:
    """Put previously consumed units back into batches that still exist."""
    by_id = {b.id: b for b in product.batches}
    for usage in usages:
        batch = by_id.get(usage.batch_id)
        if batch is not None:
            batch.remaining_quantity = min(
                batch.initial_quantity, batch.remaining_quantity + usage.quantity_used
            )


def _reconcile_batches(product: Product) -> None:
    """Trim batch remainders so they never exceed the stock counter."""
    excess = sum(b.remaining_quantity for b in product.batches) - product.stock
    if excess > 0:
        consume_batches(product, excess)


def _recompute_expiry(product: Product) -> None:
    dated = [b.expiry_date for b in product.batches if b.expiry_date is not None]
    product.expiry_date = max(dated) if dated else None


def _raise_expiry(product: Product, expiry: date | None) -> None:
    if expiry is not None and (product.expiry_date is None or expiry > product.expiry_date):
        product.expiry_date = expiry


def _add_batch(product: Product, *, quantity: int, expiry_date: date | None, cost_per_unit_cents: int) -> ProductBatch:
    batch = ProductBatch(
        batch_code=generate_batch_code(),
        expiry_date=expiry_date,
        initial_quantity=quantity,
        remaining_quantity=quantity,
        cost_per_unit_cents=cost_per_unit_cents,
    )
    product.batches.append(batch)
    _raise_expiry(product, expiry_date)
    db.session.flush()
    return batch


def write_movement(
    product: Product,
    *,
    movement_type: str,
    delta: int,
    actor: User | None,
    notes: str | None = None,
    related_order_id: int | None = None,
) -> InventoryMovement:
    """
    Apply `delta` to product.stock and stage the matching movement row.
    Caller owns the transaction.
    """
    stock_before = product.stock
    stock_after = stock_before + delta
    if stock_after < 0:
        raise ConflictError(
            f"Stock cannot be negative. Current: {stock_before}, Change: {delta}"
        )

    product.stock = stock_after
    movement = InventoryMovement(
        product_id=product.id,
        product_name=product.name,
        type=movement_type,
        quantity=delta,
        movement_date=utcnow(),
        user_id=actor.id if actor else None,
        user_name=actor.name if actor else None,
        stock_before=stock_before,
        stock_after=stock_after,
        related_order_id=related_order_id,
        notes=notes,
    )
    db.session.add(movement)
    return movement


def stock_in(
    product: Product,
    *,
    quantity: int,
    batch_expiry_date: date | None,
    actor: User | None,
    cost_per_unit_cents: int | None = None,
    notes: str | None = None,
) -> InventoryMovement:
    """Batch + counter + movement for a receipt, inside the caller's transaction."""
    cost = product.cost_cents if cost_per_unit_cents is None else cost_per_unit_cents
    batch = _add_batch(product, quantity=quantity, expiry_date=batch_expiry_date, cost_per_unit_cents=cost)
    movement = write_movement(
        product,
        movement_type=MOVEMENT_STOCK_IN,
        delta=quantity,
        actor=actor,
        notes=notes or f"Stocked in {quantity} units.",
    )
    movement.batch = batch
    movement.batch_code = batch.batch_code
    movement.batch_expiry_date = batch_expiry_date
    movement.unit_cost_cents = cost
    return movement


def record_stock_in(
    *,
    product_id: int,
    quantity: int,
    batch_expiry_date: date,
    actor: User,
    cost_per_unit_cents: int | None = None,
) -> tuple[InventoryMovement, Product]:
    """
    Receive a new batch of stock.

    Returns (movement, product). Raises ValidationError for bad input,
    NotFoundError when the product is missing.
    """
    if not isinstance(quantity, int) or isinstance(quantity, bool) or quantity <= 0:
        raise ValidationError("Quantity must be a positive integer.", "quantity")
    if batch_expiry_date is None:
        raise ValidationError("Batch expiry date is required.", "batch_expiry_date")
    if cost_per_unit_cents is not None and cost_per_unit_cents < 0:
        raise ValidationError("cost_per_unit_cents must be >= 0", "cost_per_unit_cents")

    def _op():
        product = get_product_for_update(product_id)
        movement = stock_in(
            product,
            quantity=quantity,
            batch_expiry_date=batch_expiry_date,
            actor=actor,
            cost_per_unit_cents=cost_per_unit_cents,
        )
        return movement, product

    movement, product = run_atomic(_op)
    current_app.logger.info(
        "Stock-in: product=%s qty=%s batch=%s stock %s->%s by %s",
        product.id, quantity, movement.batch_code, movement.stock_before, movement.stock_after, actor.email,
    )
    revalidate_after_write()
    return movement, product


def record_stock_adjustment(
    *,
    product_id: int,
    quantity_change: int,
    reason: str,
    actor: User,
    notes: str | None = None,
) -> tuple[InventoryMovement, Product]:
    """
    Apply a signed manual correction.

    A negative result is rejected before anything is written. Removals
    draw from batches first expiry first.
    """
    if not isinstance(quantity_change, int) or isinstance(quantity_change, bool):
        raise ValidationError("Quantity change must be an integer.", "quantity_change")
    if quantity_change == 0:
        raise ConflictError("Quantity change cannot be zero.")
    if not isinstance(reason, str) or not reason.strip():
        raise ValidationError("Reason is required.", "reason")
    reason = reason.strip()
    notes = _optional_text(notes, "notes")

    def _op():
        product = get_product_for_update(product_id)
        stock_before = product.stock
        stock_after = stock_before + quantity_change
        if stock_after < 0:
            raise ConflictError(
                f"Adjustment would result in negative stock ({stock_after}). Current stock: {stock_before}."
            )

        movement_type = MOVEMENT_ADJUSTMENT_ADD if quantity_change > 0 else MOVEMENT_ADJUSTMENT_REMOVE
        if quantity_change < 0:
            consume_batches(product, -quantity_change)
        movement = write_movement(
            product,
            movement_type=movement_type,
            delta=quantity_change,
            actor=actor,
            notes=f"{reason} - {notes}" if notes else reason,
        )
        _reconcile_batches(product)
        return movement, product

    movement, product = run_atomic(_op)
    current_app.logger.info(
        "Adjustment: product=%s change=%s stock %s->%s by %s",
        product.id, quantity_change, movement.stock_before, movement.stock_after, actor.email,
    )
    revalidate_after_write()
    return movement, product


def _optional_text(value, field: str) -> str | None:
    if value is None:
        return None
    if not isinstance(value, str):
        raise ValidationError(f"{field} must be text.", field)
    return value.strip() or None


def _require_admin(actor: User, action: str) -> None:
    if actor is None or not actor.is_admin:
        raise PermissionDeniedError(f"Only administrators can {action} inventory movements.")


def _get_movement_for_update(movement_id: int) -> InventoryMovement:
    movement = lock_for_update(
        db.session.query(InventoryMovement).filter(InventoryMovement.id == movement_id)
    ).first()
    if not movement:
        raise NotFoundError("Movement not found.")
    return movement


def _movement_product(movement: InventoryMovement) -> Product:
    if movement.product_id is None:
        raise NotFoundError("The product for this movement no longer exists.")
    return get_product_for_update(movement.product_id)


def undo_movement(*, movement_id: int, actor: User, notes: str | None = None) -> tuple[InventoryMovement, Product]:
    """
    Reverse a movement's effect on stock and mark it reversed.

    Refused for sale movements, for movements already reversed, and when
    the inverse would make stock negative. Undoing a stock-in removes the
    batch it created.
    """
    _require_admin(actor, "undo")
    notes = _optional_text(notes, "notes")

    def _op():
        movement = _get_movement_for_update(movement_id)
        if movement.type == MOVEMENT_SALE:
            raise ConflictError("Sale movements cannot be undone.")
        if movement.is_undone:
            raise ConflictError("This movement has already been undone.")

        product = _movement_product(movement)
        inverse = -movement.quantity
        stock_before = product.stock
        if stock_before + inverse < 0:
            raise ConflictError(
                f"Undo would result in negative stock ({stock_before + inverse}). Current stock: {stock_before}."
            )

        product.stock = stock_before + inverse

        if movement.type == MOVEMENT_STOCK_IN and movement.batch_id is not None:
            batch = next((b for b in product.batches if b.id == movement.batch_id), None)
            movement.batch = None
            if batch is not None:
                product.batches.remove(batch)
            _recompute_expiry(product)

        _reconcile_batches(product)

        movement.is_undone = True
        movement.undone_at = utcnow()
        movement.undone_by_user_id = actor.id
        movement.undone_by_name = actor.name
        movement.undo_notes = notes
        movement.original_stock_after = movement.stock_after
        return movement, product

    movement, product = run_atomic(_op)
    current_app.logger.info(
        "Undo: movement=%s type=%s product=%s stock now %s by %s",
        movement.id, movement.type, product.id, product.stock, actor.email,
    )
    revalidate_after_write()
    return movement, product


def redo_movement(*, movement_id: int, actor: User) -> tuple[InventoryMovement, Product]:
    """
    Re-apply a reversed movement and clear its undo overlay.

    A redone stock-in gets a new batch; the original batch identity is not
    restored.
    """
    _require_admin(actor, "redo")

    def _op():
        movement = _get_movement_for_update(movement_id)
        if movement.type == MOVEMENT_SALE:
            raise ConflictError("Sale movements cannot be redone.")
        if not movement.is_undone:
            raise ConflictError("Only undone movements can be redone.")

        product = _movement_product(movement)
        stock_before = product.stock
        if stock_before + movement.quantity < 0:
            raise ConflictError(
                f"Redo would result in negative stock ({stock_before + movement.quantity}). Current stock: {stock_before}."
            )

        product.stock = stock_before + movement.quantity

        if movement.type == MOVEMENT_STOCK_IN:
            cost = movement.unit_cost_cents if movement.unit_cost_cents is not None else product.cost_cents
            batch = _add_batch(
                product,
                quantity=movement.quantity,
                expiry_date=movement.batch_expiry_date,
                cost_per_unit_cents=cost,
            )
            movement.batch = batch
            movement.batch_code = batch.batch_code
        elif movement.quantity < 0:
            consume_batches(product, -movement.quantity)

        _reconcile_batches(product)

        movement.is_undone = False
        movement.undone_at = None
        movement.undone_by_user_id = None
        movement.undone_by_name = None
        movement.undo_notes = None
        movement.original_stock_after = None
        return movement, product

    movement, product = run_atomic(_op)
    current_app.logger.info(
        "Redo: movement=%s type=%s product=%s stock now %s by %s",
        movement.id, movement.type, product.id, product.stock, actor.email,
    )
    revalidate_after_write()
    return movement, product


def get_movement(movement_id: int) -> InventoryMovement:
    movement = db.session.get(InventoryMovement, movement_id)
    if not movement:
        raise NotFoundError("Movement not found.")
    return movement


def list_movements(
    *,
    product_id: int | None = None,
    movement_type: str | None = None,
    include_undone: bool = True,
    limit: int | None = None,
) -> list[InventoryMovement]:
    """Newest first."""
    if movement_type is not None and movement_type not in MOVEMENT_TYPES:
        raise ValidationError(f"type must be one of: {', '.join(MOVEMENT_TYPES)}", "type")

    limit = limit or DEFAULT_MOVEMENT_LIMIT
    limit = max(1, min(limit, MAX_MOVEMENT_LIMIT))

    query = db.session.query(InventoryMovement)
    if product_id is not None:
        query = query.filter(InventoryMovement.product_id == product_id)
    if movement_type is not None:
        query = query.filter(InventoryMovement.type == movement_type)
    if not include_undone:
        query = query.filter(InventoryMovement.is_undone.is_(False))

    return query.order_by(
        InventoryMovement.movement_date.desc(), InventoryMovement.id.desc()
    ).limit(limit).all()


def get_stock_in_history(product_id: int) -> list[dict]:
    """Stock-in movements of one product, each with its batch's current state."""
    if not db.session.get(Product, product_id):
        raise NotFoundError("Product not found.")

    movements = (
        db.session.query(InventoryMovement)
        .filter(
            InventoryMovement.product_id == product_id,
            InventoryMovement.type == MOVEMENT_STOCK_IN,
        )
        .order_by(InventoryMovement.movement_date.desc(), InventoryMovement.id.desc())
        .all()
    )
    history = []
    for movement in movements:
        entry = movement.to_dict()
        entry["batch"] = movement.batch.to_dict() if movement.batch else None
        history.append(entry)
    return history
