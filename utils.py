"""Utility / helper functions used across the application."""

from __future__ import annotations

import datetime
import logging
import math
from datetime import timezone
from typing import Optional

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Datetime helpers
# ---------------------------------------------------------------------------

def utc_now() -> datetime.datetime:
    """Return current UTC datetime.  Used as SQLAlchemy column default."""
    return datetime.datetime.now(timezone.utc)


def as_utc(value: Optional[datetime.datetime]) -> Optional[datetime.datetime]:
    """Attach UTC to naive datetimes read back from SQLite."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def isoformat(value: Optional[datetime.datetime]) -> Optional[str]:
    value = as_utc(value)
    return value.isoformat() if value else None


def parse_iso_datetime(raw: Optional[str]) -> Optional[datetime.datetime]:
    if not raw:
        return None
    try:
        parsed = datetime.datetime.fromisoformat(raw.replace("Z", "+00:00"))
    except (ValueError, TypeError):
        logger.warning("Could not parse datetime: %r", raw)
        return None
    return as_utc(parsed)


# ---------------------------------------------------------------------------
# Safe type conversions
# ---------------------------------------------------------------------------

def safe_int(value, default: int = 0) -> int:
    """Safely convert *value* to ``int``, returning *default* on failure."""
    if value is None or value == "":
        return default
    try:
        return int(value)
    except (ValueError, TypeError):
        logger.warning("Could not convert %r to int, using default %s", value, default)
        return default


# ---------------------------------------------------------------------------
# Pagination
# ---------------------------------------------------------------------------

MAX_PAGE_SIZE = 100


def page_args(args, default_limit: int = 20) -> tuple[int, int]:
    """Read ``page`` / ``limit`` from request args, clamped to sane values."""
    page = max(safe_int(args.get("page"), 1), 1)
    limit = safe_int(args.get("limit"), default_limit)
    if limit < 1:
        limit = default_limit
    return page, min(limit, MAX_PAGE_SIZE)


def paginate(query, page: int, limit: int):
    """Return ``(items, pagination_dict)`` for a SQLAlchemy query."""
    total = query.order_by(None).count()
    items = query.offset((page - 1) * limit).limit(limit).all()
    total_pages = math.ceil(total / limit) if total else 0
    return items, {
        "page": page,
        "limit": limit,
        "totalCount": total,
        "totalPages": total_pages,
        "hasNext": page < total_pages,
        "hasPrev": page > 1,
    }
