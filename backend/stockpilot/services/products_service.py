# Overview: Product catalogue operations: listing, CRUD, images and price history.

"""
Products service.

Stock is not a writable product field. Initial stock given on creation is
recorded through the inventory ledger (a stock-in movement and batch in
the same transaction); every later change goes through inventory_service.

Images live on the asset host. Uploads happen before the database write;
if the write fails the freshly uploaded assets are deleted again.
Asset deletion after a successful write is best effort.
"""

from __future__ import annotations

from flask import current_app

from ..extensions import db
from ..models import (
    Category,
    InventoryMovement,
    OrderLineItem,
    PriceHistoryEntry,
    Product,
    ProductImage,
    User,
)
from ..validation import ConflictError, NotFoundError, PermissionDeniedError, ValidationError
from . import image_storage
from .concurrency import run_atomic
from .inventory_service import stock_in
from .pagination import paginate
from .revalidation import revalidate_after_write
from stockpilot.time_utils import utcnow

PRODUCT_MUTABLE_FIELDS = {
    "sku",
    "name",
    "description",
    "category_id",
    "unit_of_measure",
    "price_cents",
    "cost_cents",
    "low_stock_threshold",
    "expiry_date",
}

STOCK_STATUSES = ("low", "in_stock", "out_of_stock")


def apply_product_patch(p: Product, patch: dict) -> None:
    for k, v in patch.items():
        if k not in PRODUCT_MUTABLE_FIELDS:
            continue
        setattr(p, k, v)


def list_products(
    *,
    category_id: int | None = None,
    search: str | None = None,
    stock_status: str | None = None,
    page: int | None = None,
    per_page: int | None = None,
) -> dict:
    """
    Filtered, paginated product listing ordered by name.

    stock_status: "low" (0 < stock < threshold), "in_stock" (stock > 0),
    "out_of_stock" (stock == 0); "all" or None disables the filter.
    """
    query = db.session.query(Product)

    if category_id is not None:
        query = query.filter(Product.category_id == category_id)

    if search:
        pattern = f"%{search.strip()}%"
        query = query.filter(db.or_(
            Product.name.ilike(pattern),
            Product.sku.ilike(pattern),
            Product.description.ilike(pattern),
        ))

    if stock_status and stock_status != "all":
        if stock_status not in STOCK_STATUSES:
            raise ValidationError(f"stock_status must be one of: all, {', '.join(STOCK_STATUSES)}", "stock_status")
        if stock_status == "low":
            query = query.filter(Product.stock > 0, Product.stock < Product.low_stock_threshold)
        elif stock_status == "in_stock":
            query = query.filter(Product.stock > 0)
        else:
            query = query.filter(Product.stock <= 0)

    query = query.order_by(Product.name.asc(), Product.id.asc())
    return paginate(query, page, per_page)


def get_product(product_id: int) -> Product:
    product = db.session.get(Product, product_id)
    if not product:
        raise NotFoundError("Product not found.")
    return product


def _check_sku_available(sku: str, exclude_id: int | None = None) -> None:
    query = db.session.query(Product).filter(Product.sku == sku)
    if exclude_id is not None:
        query = query.filter(Product.id != exclude_id)
    if query.first():
        raise ConflictError(f"A product with SKU '{sku}' already exists.")


def _check_category(category_id: int | None) -> None:
    if category_id is not None and not db.session.get(Category, category_id):
        raise ValidationError("Category not found.", "category_id")


def _upload_images(files) -> list[dict]:
    """Upload all files or none: a failure deletes the ones already uploaded."""
    uploaded: list[dict] = []
    try:
        for f in files:
            uploaded.append(image_storage.upload_image(f))
    except Exception:
        image_storage.delete_images(u["public_id"] for u in uploaded)
        raise
    return uploaded


def _record_price(product: Product, actor: User | None) -> None:
    product.price_history.append(PriceHistoryEntry(
        price_cents=product.price_cents,
        changed_at=utcnow(),
        changed_by_user_id=actor.id if actor else None,
        changed_by_name=actor.name if actor else None,
    ))


def create_product(
    *,
    patch: dict,
    actor: User,
    initial_stock: int = 0,
    image_files=(),
) -> Product:
    """
    Create a product from a validated patch.

    Raises ConflictError for a duplicate SKU, ValidationError for an unknown
    category or negative initial stock.
    """
    sku = patch.get("sku")
    if not sku:
        raise ValidationError("sku is required", "sku")
    if initial_stock < 0:
        raise ValidationError("stock must be >= 0", "stock")
    _check_sku_available(sku)
    _check_category(patch.get("category_id"))

    uploaded = _upload_images(image_files)

    def _op():
        p = Product()
        apply_product_patch(p, patch)
        p.price_cents = p.price_cents or 0
        p.cost_cents = p.cost_cents or 0
        p.low_stock_threshold = p.low_stock_threshold or 0
        p.stock = 0
        for position, image in enumerate(uploaded):
            p.images.append(ProductImage(url=image["url"], public_id=image["public_id"], position=position))
        _record_price(p, actor)
        db.session.add(p)
        db.session.flush()

        if initial_stock > 0:
            stock_in(
                p,
                quantity=initial_stock,
                batch_expiry_date=p.expiry_date,
                actor=actor,
                notes=f"Initial stock of {initial_stock} units.",
            )
        return p

    try:
        product = run_atomic(_op)
    except Exception:
        image_storage.delete_images(u["public_id"] for u in uploaded)
        raise

    current_app.logger.info("Product %s (%s) created by %s", product.id, product.sku, actor.email)
    revalidate_after_write()
    return product


def update_product(
    *,
    product_id: int,
    patch: dict,
    actor: User,
    image_files=(),
    remove_image_ids=(),
) -> Product:
    """
    Patch product fields, append price history on a price change, add new
    images and drop the listed image ids.
    """
    product = get_product(product_id)
    if "sku" in patch and patch["sku"] != product.sku:
        _check_sku_available(patch["sku"], exclude_id=product.id)
    if "category_id" in patch:
        _check_category(patch["category_id"])

    remove_ids = {int(i) for i in remove_image_ids}
    unknown = remove_ids - {img.id for img in product.images}
    if unknown:
        raise ValidationError(f"Unknown image id(s): {', '.join(str(i) for i in sorted(unknown))}", "remove_image_ids")

    uploaded = _upload_images(image_files)
    removed_public_ids: list[str] = []

    def _op():
        p = get_product(product_id)
        old_price = p.price_cents
        apply_product_patch(p, patch)
        if p.price_cents != old_price:
            _record_price(p, actor)

        removed_public_ids.clear()
        for img in list(p.images):
            if img.id in remove_ids:
                removed_public_ids.append(img.public_id)
                p.images.remove(img)

        next_position = max((img.position for img in p.images), default=-1) + 1
        for offset, image in enumerate(uploaded):
            p.images.append(ProductImage(
                url=image["url"], public_id=image["public_id"], position=next_position + offset,
            ))
        return p

    try:
        product = run_atomic(_op)
    except Exception:
        image_storage.delete_images(u["public_id"] for u in uploaded)
        raise

    image_storage.delete_images(removed_public_ids)
    current_app.logger.info("Product %s updated by %s", product.id, actor.email)
    revalidate_after_write()
    return product


def delete_product(*, product_id: int, actor: User) -> None:
    """
    Admin only. Batches, images and price history go with the product;
    movements and order lines keep their denormalized name.
    """
    if not actor.is_admin:
        raise PermissionDeniedError("Only administrators can delete products.")

    product = get_product(product_id)
    public_ids = [img.public_id for img in product.images]

    def _op():
        db.session.query(InventoryMovement).filter(
            InventoryMovement.product_id == product_id
        ).update({"product_id": None, "batch_id": None}, synchronize_session=False)
        db.session.query(OrderLineItem).filter(
            OrderLineItem.product_id == product_id
        ).update({"product_id": None}, synchronize_session=False)
        db.session.delete(get_product(product_id))

    run_atomic(_op)

    image_storage.delete_images(public_ids)
    current_app.logger.info("Product %s deleted by %s", product_id, actor.email)
    revalidate_after_write()
