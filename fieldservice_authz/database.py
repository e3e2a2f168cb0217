"""
Database engine initialisation and RLS-aware entity queries.
"""

import logging
import re
import sys
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

import pandas as pd
from sqlalchemy import create_engine, text

from fieldservice_authz.composer import compose
from fieldservice_authz.config import get_env
from fieldservice_authz.models import ComposedPredicate, EntityMetadata, RequestAuthContext
from fieldservice_authz.pagination import generate_metadata, validate_params
from fieldservice_authz.query_builder import (
    build_filter_clause,
    build_search_clause,
    build_sort_clause,
    join_fragments,
)
from fieldservice_authz.rls import build_filter

logger = logging.getLogger(__name__)

_PLACEHOLDER_RE = re.compile(r"\$(\d+)\b")


def init_engine():
    """Create a SQLAlchemy engine and verify the connection."""
    db_uri = get_env("DB_URI")
    engine = create_engine(db_uri, echo=False, future=True)
    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
    except Exception as e:
        print("ERROR: could not connect to DB:", e, file=sys.stderr)
        sys.exit(1)
    print("[init] Connected to DB.")
    return engine


def bind_positional(sql: str, values: Sequence[Any]) -> Tuple[str, Dict[str, Any]]:
    """Rewrite ``$n`` placeholders to SQLAlchemy ``:pn`` binds with a params dict."""
    bound = _PLACEHOLDER_RE.sub(lambda m: f":p{m.group(1)}", sql)
    return bound, {f"p{i}": v for i, v in enumerate(values, start=1)}


class EntityRepository:
    """Runs generic CRUD queries for one entity with RLS composed on top."""

    def __init__(self, engine, metadata: EntityMetadata):
        self.engine = engine
        self.metadata = metadata

    # ── Query helpers ────────────────────────────────────────────────

    @property
    def _from(self) -> str:
        return f"{self.metadata.table_name} {self.metadata.alias}"

    @property
    def _from_as(self) -> str:
        return f"{self.metadata.table_name} AS {self.metadata.alias}"

    def _column(self, field: str) -> str:
        return f"{self.metadata.alias}.{field}"

    def apply_rls(self, ctx: Optional[RequestAuthContext], existing_clause: str = "",
                  existing_values: Sequence[Any] = ()) -> ComposedPredicate:
        fragment = build_filter(ctx.rls if ctx is not None else None, self.metadata.rls)
        return compose(existing_clause, existing_values, fragment)

    # ── Reads ────────────────────────────────────────────────────────

    def find_by_id(self, record_id: int, ctx: Optional[RequestAuthContext] = None) -> Optional[Dict[str, Any]]:
        """Return the row, or None when it does not exist or RLS hides it."""
        where = self.apply_rls(ctx, f"{self._column(self.metadata.primary_key)} = $1", [record_id])
        sql, params = bind_positional(
            f"SELECT {self.metadata.alias}.* FROM {self._from} {where.where_clause}", where.values,
        )
        with self.engine.connect() as conn:
            row = conn.execute(text(sql), params).mappings().first()
        return dict(row) if row else None

    def find_all(self, ctx: Optional[RequestAuthContext] = None, search: Optional[str] = None,
                 filters: Optional[Mapping[str, Any]] = None, sort_by: Optional[str] = None,
                 sort_order: Optional[str] = None, page: Any = None, limit: Any = None,
                 include_inactive: bool = False) -> Dict[str, Any]:
        meta = self.metadata
        page, limit, offset = validate_params(page, limit)

        search_fragment = build_search_clause(search, meta.searchable_fields, meta.alias)
        filter_options = dict(filters or {})
        if not include_inactive and "is_active" in meta.filterable_fields:
            filter_options.setdefault("is_active", True)
        filter_fragment = build_filter_clause(
            filter_options, meta.filterable_fields, meta.alias, search_fragment.param_offset,
        )
        order_by = build_sort_clause(sort_by, sort_order, meta.sortable_fields, meta.default_sort, meta.alias)

        base_clause, base_values = join_fragments(search_fragment, filter_fragment)
        where = self.apply_rls(ctx, base_clause, base_values)

        n = len(where.values)
        count_sql, count_params = bind_positional(
            f"SELECT COUNT(*) FROM {self._from} {where.where_clause}", where.values,
        )
        data_sql, data_params = bind_positional(
            f"SELECT {meta.alias}.* FROM {self._from} {where.where_clause} "
            f"ORDER BY {order_by} LIMIT ${n + 1} OFFSET ${n + 2}",
            where.values + [limit, offset],
        )
        with self.engine.connect() as conn:
            total = int(conn.execute(text(count_sql), count_params).scalar() or 0)
            df = pd.read_sql_query(text(data_sql), conn, params=data_params)

        df = df.astype(object).where(df.notna(), None)
        return {
            "data": df.to_dict(orient="records"),
            "pagination": generate_metadata(page, limit, total),
            "appliedFilters": {
                "search": search or None,
                "filters": filter_options,
                "sortBy": sort_by or meta.default_sort[0],
                "sortOrder": sort_order or meta.default_sort[1],
            },
            "rlsApplied": where.rls_applied,
        }

    # ── Writes ───────────────────────────────────────────────────────

    def create(self, data: Mapping[str, Any]) -> Dict[str, Any]:
        fields = list(data)
        slots = ", ".join(f"${i}" for i in range(1, len(fields) + 1))
        sql, params = bind_positional(
            f"INSERT INTO {self.metadata.table_name} ({', '.join(fields)}) VALUES ({slots}) RETURNING *",
            [data[f] for f in fields],
        )
        with self.engine.begin() as conn:
            row = conn.execute(text(sql), params).mappings().first()
        logger.info("%s created: id=%s", self.metadata.entity_name, row[self.metadata.primary_key])
        return dict(row)

    def update(self, record_id: int, data: Mapping[str, Any],
               ctx: Optional[RequestAuthContext] = None) -> Optional[Dict[str, Any]]:
        """Update a row visible to *ctx*; None when it does not exist or RLS hides it."""
        where = self.apply_rls(ctx, f"{self._column(self.metadata.primary_key)} = $1", [record_id])
        # SET values are numbered after the WHERE values.
        offset = len(where.values)
        fields = list(data)
        assignments = [f"{f} = ${offset + i}" for i, f in enumerate(fields, start=1)]
        values: List[Any] = where.values + [data[f] for f in fields]
        sql, params = bind_positional(
            f"UPDATE {self._from_as} SET {', '.join(assignments)} {where.where_clause} RETURNING *",
            values,
        )
        with self.engine.begin() as conn:
            row = conn.execute(text(sql), params).mappings().first()
        if row:
            logger.info("%s updated: id=%s", self.metadata.entity_name, record_id)
        return dict(row) if row else None

    def delete(self, record_id: int, ctx: Optional[RequestAuthContext] = None) -> Optional[Dict[str, Any]]:
        where = self.apply_rls(ctx, f"{self._column(self.metadata.primary_key)} = $1", [record_id])
        sql, params = bind_positional(
            f"DELETE FROM {self._from_as} {where.where_clause} RETURNING *", where.values,
        )
        with self.engine.begin() as conn:
            row = conn.execute(text(sql), params).mappings().first()
        if row:
            logger.warning("%s permanently deleted: id=%s", self.metadata.entity_name, record_id)
        return dict(row) if row else None
