"""
Search, filter and sort clause building from entity metadata.

Fragments use ``$n`` placeholders continuing from ``param_offset`` and report
the offset after their own parameters, so they can be chained before the RLS
fragment is composed on top.
"""

import logging
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

from fieldservice_authz.models import QueryFragment

logger = logging.getLogger(__name__)

FILTER_OPERATORS = {
    "eq": "=",
    "gt": ">",
    "gte": ">=",
    "lt": "<",
    "lte": "<=",
    "not": "<>",
}


def _col(alias: str, field: str) -> str:
    return f"{alias}.{field}" if alias else field


def build_search_clause(term: Optional[str], searchable_fields: Sequence[str],
                        alias: str = "", param_offset: int = 0) -> QueryFragment:
    """ILIKE over every searchable field, sharing one parameter."""
    term = (term or "").strip()
    if not term or not searchable_fields:
        return QueryFragment(clause="", params=[], param_offset=param_offset)

    slot = f"${param_offset + 1}"
    conditions = [f"{_col(alias, f)} ILIKE {slot}" for f in searchable_fields]
    return QueryFragment(
        clause=f"({' OR '.join(conditions)})",
        params=[f"%{term}%"],
        param_offset=param_offset + 1,
        applied={"search": term},
    )


def build_filter_clause(filters: Optional[Mapping[str, Any]], filterable_fields: Sequence[str],
                        alias: str = "", param_offset: int = 0) -> QueryFragment:
    """
    Exact-match and operator filters over whitelisted fields.

    A value may be a scalar (equality) or a mapping of operator to value,
    e.g. ``{"priority": {"gte": 3}}`` or ``{"status": {"in": ["a", "b"]}}``.
    Fields outside *filterable_fields* and unknown operators are ignored.
    """
    conditions: List[str] = []
    params: List[Any] = []
    applied: Dict[str, Any] = {}
    allowed = set(filterable_fields)

    for field, value in (filters or {}).items():
        if field not in allowed:
            logger.debug("Ignoring filter on non-filterable field %s", field)
            continue
        column = _col(alias, field)
        ops = value if isinstance(value, Mapping) else {"eq": value}
        for op, operand in ops.items():
            if op == "in":
                items = list(operand) if isinstance(operand, (list, tuple, set)) else [operand]
                if not items:
                    conditions.append("1=0")
                    continue
                slots = []
                for item in items:
                    params.append(item)
                    slots.append(f"${param_offset + len(params)}")
                conditions.append(f"{column} IN ({', '.join(slots)})")
            elif op in FILTER_OPERATORS:
                if operand is None:
                    conditions.append(f"{column} IS NULL" if op == "eq" else f"{column} IS NOT NULL")
                    applied[field] = value
                    continue
                params.append(operand)
                conditions.append(f"{column} {FILTER_OPERATORS[op]} ${param_offset + len(params)}")
            else:
                logger.debug("Ignoring unknown filter operator %s on %s", op, field)
                continue
            applied[field] = value

    return QueryFragment(
        clause=" AND ".join(conditions),
        params=params,
        param_offset=param_offset + len(params),
        applied=applied,
    )


def build_sort_clause(sort_by: Optional[str], sort_order: Optional[str],
                      sortable_fields: Sequence[str], default_sort: Tuple[str, str],
                      alias: str = "") -> str:
    """ORDER BY body; falls back to the default sort for unknown fields."""
    field, order = default_sort
    if sort_by and sort_by in sortable_fields:
        field = sort_by
    if sort_order and sort_order.upper() in ("ASC", "DESC"):
        order = sort_order.upper()
    return f"{_col(alias, field)} {order}"


def join_fragments(*fragments: QueryFragment) -> Tuple[str, List[Any]]:
    """AND together chained fragments into one clause and value list."""
    clauses = [f.clause for f in fragments if f.clause]
    values: List[Any] = []
    for f in fragments:
        values.extend(f.params)
    return " AND ".join(clauses), values
