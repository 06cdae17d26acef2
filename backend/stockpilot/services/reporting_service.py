# Overview: Dashboard and report aggregates over orders, products and the inventory ledger.

from __future__ import annotations

from datetime import timedelta

from flask import current_app
from sqlalchemy import func

from ..extensions import db
from ..models import Customer, InventoryMovement, Order, Product
from ..models.orders import ACTIVE_STATUSES
from stockpilot.time_utils import start_of_month, to_iso_date, utcnow


def _counted_orders():
    """Orders that count towards revenue: not cancelled, not soft-deleted."""
    return db.session.query(Order).filter(
        Order.is_deleted.is_(False),
        Order.status != "cancelled",
    )


def get_overview_stats() -> dict:
    now = utcnow()
    month_revenue = (
        _counted_orders()
        .filter(Order.order_date >= start_of_month(now))
        .with_entities(func.coalesce(func.sum(Order.total_amount_cents), 0))
        .scalar()
    )
    active_orders = (
        db.session.query(func.count(Order.id))
        .filter(Order.is_deleted.is_(False), Order.status.in_(ACTIVE_STATUSES))
        .scalar()
    )
    return {
        "total_products": db.session.query(func.count(Product.id)).scalar() or 0,
        "active_orders": active_orders or 0,
        "total_customers": db.session.query(func.count(Customer.id)).scalar() or 0,
        "monthly_revenue_cents": int(month_revenue or 0),
    }


def get_recent_activity(limit: int = 3) -> dict:
    orders = (
        db.session.query(Order)
        .filter(Order.is_deleted.is_(False))
        .order_by(Order.order_date.desc(), Order.id.desc())
        .limit(limit)
        .all()
    )
    movements = (
        db.session.query(InventoryMovement)
        .order_by(InventoryMovement.movement_date.desc(), InventoryMovement.id.desc())
        .limit(limit)
        .all()
    )
    return {
        "recent_orders": [o.to_dict(include_items=False) for o in orders],
        "recent_movements": [m.to_dict() for m in movements],
    }


def get_inventory_alerts(limit: int | None = None) -> dict:
    """
    Low stock: 0 < stock < threshold. Expiring: expiry date between today
    and today + EXPIRY_ALERT_DAYS (already expired products are not listed).
    """
    today = utcnow().date()
    horizon = today + timedelta(days=current_app.config.get("EXPIRY_ALERT_DAYS", 30))

    low_query = (
        db.session.query(Product)
        .filter(Product.stock > 0, Product.stock < Product.low_stock_threshold)
        .order_by(Product.stock.asc(), Product.name.asc())
    )
    expiring_query = (
        db.session.query(Product)
        .filter(
            Product.expiry_date.isnot(None),
            Product.expiry_date >= today,
            Product.expiry_date <= horizon,
        )
        .order_by(Product.expiry_date.asc(), Product.name.asc())
    )
    if limit:
        low_query = low_query.limit(limit)
        expiring_query = expiring_query.limit(limit)

    return {
        "low_stock": [
            {
                "id": p.id,
                "name": p.name,
                "sku": p.sku,
                "stock": p.stock,
                "low_stock_threshold": p.low_stock_threshold,
            }
            for p in low_query.all()
        ],
        "expiring_soon": [
            {
                "id": p.id,
                "name": p.name,
                "sku": p.sku,
                "stock": p.stock,
                "expiry_date": to_iso_date(p.expiry_date),
                "days_left": (p.expiry_date - today).days,
            }
            for p in expiring_query.all()
        ],
    }


def get_sales_summary() -> dict:
    row = _counted_orders().with_entities(
        func.count(Order.id),
        func.coalesce(func.sum(Order.total_amount_cents), 0),
        func.coalesce(func.sum(Order.profit_cents), 0),
    ).one()
    return {
        "total_orders": int(row[0] or 0),
        "total_revenue_cents": int(row[1] or 0),
        "total_profit_cents": int(row[2] or 0),
    }
