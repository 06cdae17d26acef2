# Overview: Marks cached read endpoints stale after successful writes.

from flask import current_app

from ..extensions import cache

# Read endpoints cached with @cache.cached(); keys follow Flask-Caching's
# default "view/<request.path>" scheme.
DASHBOARD_PATHS = (
    "/api/dashboard/overview",
    "/api/dashboard/recent-activity",
    "/api/dashboard/alerts",
)
REPORT_PATHS = (
    "/api/reports/sales-summary",
    "/api/reports/alerts",
)
STALE_AFTER_WRITE = DASHBOARD_PATHS + REPORT_PATHS


def revalidate_paths(*paths: str) -> None:
    keys = [f"view/{path}" for path in paths]
    if keys:
        cache.delete_many(*keys)
        current_app.logger.debug("Revalidated %s", ", ".join(paths))


def revalidate_after_write() -> None:
    revalidate_paths(*STALE_AFTER_WRITE)
