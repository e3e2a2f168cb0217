"""
Pagination parameter validation and result metadata.
"""

import math
from typing import Any, Dict, Optional, Tuple

from fieldservice_authz.config import DEFAULT_PAGE_LIMIT, MAX_PAGE_LIMIT


def _to_int(value: Any, default: int) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def validate_params(page: Optional[Any] = None, limit: Optional[Any] = None) -> Tuple[int, int, int]:
    """Clamp page/limit to sane values and return (page, limit, offset)."""
    page = max(_to_int(page, 1), 1)
    limit = _to_int(limit, DEFAULT_PAGE_LIMIT)
    limit = min(max(limit, 1), MAX_PAGE_LIMIT)
    return page, limit, (page - 1) * limit


def generate_metadata(page: int, limit: int, total: int) -> Dict[str, Any]:
    total_pages = math.ceil(total / limit) if limit else 0
    return {
        "page": page,
        "limit": limit,
        "total": total,
        "totalPages": total_pages,
        "hasNext": page < total_pages,
        "hasPrev": page > 1,
    }
