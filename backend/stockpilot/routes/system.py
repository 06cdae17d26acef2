# backend/stockpilot/routes/system.py
"""
System health and version endpoints.
"""

import sys
import time

from flask import Blueprint, current_app
from sqlalchemy.exc import SQLAlchemyError

from ..extensions import cache, db
from ..models import Product, User
from stockpilot.time_utils import to_utc_z, utcnow

system_bp = Blueprint("system", __name__)


def check_database_health() -> dict:
    start_time = time.time()
    try:
        user_count = db.session.query(User).count()
        product_count = db.session.query(Product).count()
    except SQLAlchemyError:
        current_app.logger.exception("Database health check failed")
        return {
            "status": "unhealthy",
            "latency_ms": round((time.time() - start_time) * 1000, 2),
            "error": "Database error",
        }
    return {
        "status": "healthy",
        "latency_ms": round((time.time() - start_time) * 1000, 2),
        "details": {"users": user_count, "products": product_count},
    }


def check_image_storage() -> dict:
    # Unconfigured storage only disables uploads
    if current_app.extensions.get("image_storage"):
        return {"status": "healthy"}
    return {"status": "degraded", "detail": "Image storage not configured"}


@system_bp.get("/health")
def health():
    """
    Returns 200 when the database answers (storage may be degraded),
    503 otherwise.
    """
    start_time = time.time()
    database_health = check_database_health()
    storage_health = check_image_storage()

    if database_health["status"] == "unhealthy":
        overall_status, http_status = "unhealthy", 503
    elif storage_health["status"] == "degraded":
        overall_status, http_status = "degraded", 200
    else:
        overall_status, http_status = "healthy", 200

    return {
        "status": overall_status,
        "timestamp": to_utc_z(utcnow()),
        "total_latency_ms": round((time.time() - start_time) * 1000, 2),
        "checks": {
            "database": database_health,
            "image_storage": storage_health,
            "cache": {"status": "healthy", "type": current_app.config.get("CACHE_TYPE")},
        },
    }, http_status


@system_bp.get("/version")
def version():
    """Non-sensitive deployment information."""
    return {
        "api_version": "0.1.0",
        "environment": "development" if current_app.debug else "production",
        "python_version": sys.version.split()[0],
        "server_time": to_utc_z(utcnow()),
        "cache_backend": type(cache.cache).__name__ if cache.cache is not None else None,
    }
