from __future__ import annotations

from flask import current_app


def paginate(query, page: int | None, per_page: int | None, *, serialize=None) -> dict:
    """
    Slice a query into one page.

    Returns {"items", "count", "pagination": {page, per_page, total,
    total_pages, has_next, has_prev}}.
    """
    default_size = current_app.config.get("DEFAULT_PAGE_SIZE", 10)
    max_size = current_app.config.get("MAX_PAGE_SIZE", 100)
    per_page = min(max(per_page or default_size, 1), max_size)
    page = max(page or 1, 1)

    total = query.count()
    total_pages = (total + per_page - 1) // per_page if total > 0 else 1

    rows = query.offset((page - 1) * per_page).limit(per_page).all()
    serialize = serialize or (lambda row: row.to_dict())

    return {
        "items": [serialize(row) for row in rows],
        "count": len(rows),
        "pagination": {
            "page": page,
            "per_page": per_page,
            "total": total,
            "total_pages": total_pages,
            "has_next": page < total_pages,
            "has_prev": page > 1,
        },
    }
