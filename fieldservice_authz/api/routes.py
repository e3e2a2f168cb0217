"""
Flask route handlers for the generic entity REST API.
"""

import re
import sys
import traceback
from datetime import datetime, timezone
from typing import Any, Dict

from flask import g, jsonify, request
from sqlalchemy import text

from fieldservice_authz.api.auth import token_required
from fieldservice_authz.database import EntityRepository
from fieldservice_authz.dispatcher import GenericEntityDispatcher, validate_body
from fieldservice_authz.errors import (
    AuthenticationError,
    AuthorizationDenied,
    ConfigurationError,
    PlaceholderMismatchError,
    UnknownEntityError,
    ValidationError,
)
from fieldservice_authz.rbac import load_access_context

# Query parameters with a meaning of their own; everything else is a filter.
RESERVED_PARAMS = {"search", "sortBy", "sortOrder", "page", "limit", "includeInactive"}

_FILTER_KEY_RE = re.compile(r"^(?P<field>[A-Za-z_][A-Za-z0-9_]*)(?:\[(?P<op>[a-z]+)\])?$")


def parse_filters(args) -> Dict[str, Any]:
    """Turn ``status=pending&priority[gte]=3&id[in]=1,2`` into filter options."""
    filters: Dict[str, Any] = {}
    for key, value in args.items():
        if key in RESERVED_PARAMS:
            continue
        m = _FILTER_KEY_RE.match(key)
        if not m:
            continue
        field, op = m.group("field"), m.group("op")
        if op is None:
            filters[field] = value
            continue
        operand = value.split(",") if op == "in" else value
        existing = filters.get(field)
        if not isinstance(existing, dict):
            existing = {} if existing is None else {"eq": existing}
        existing[op] = operand
        filters[field] = existing
    return filters


def _error(status: int, error: str, message: str):
    return jsonify({
        "error": error,
        "message": message,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }), status


def register_routes(app, engine, config, registry):
    """Register all API routes on the Flask *app*."""
    dispatcher = GenericEntityDispatcher(config, registry)

    def repository(ctx) -> EntityRepository:
        return EntityRepository(engine, ctx.metadata)

    def not_found(ctx):
        return _error(404, "Not Found", f"{ctx.entity_name} not found")

    # ── Health / info ────────────────────────────────────────────────

    @app.route("/", methods=["GET"])
    def index():
        return jsonify({
            "service": "Field Service API",
            "version": "1.0.0",
            "status": "running",
            "permissionsVersion": config.version,
            "endpoints": {
                "entities": "/api/v2/<entity>",
                "profile": "/api/user/profile",
                "health": "/health",
            },
        })

    @app.route("/health", methods=["GET"])
    def health():
        checks = {"database": False, "permissions": config is not None}
        try:
            if engine:
                with engine.connect() as conn:
                    conn.execute(text("SELECT 1"))
                checks["database"] = True
        except Exception as e:
            print(f"[WARN] Health check database error: {e}", file=sys.stderr)

        all_healthy = all(checks.values())
        return jsonify({
            "status": "healthy" if all_healthy else "unhealthy",
            "checks": checks,
        }), 200 if all_healthy else 503

    # ── Profile ──────────────────────────────────────────────────────

    @app.route("/api/user/profile", methods=["GET"])
    @token_required
    def get_profile():
        # Deactivated accounts are rejected even with a valid token.
        try:
            user = load_access_context(engine, g.user.user_id)
        except ValueError as e:
            return _error(401, "Unauthorized", str(e))
        role = config.role(user.role)
        return jsonify({
            "success": True,
            "user": {"id": user.user_id, "email": user.email, "role": user.role},
            "role": {
                "name": role.name,
                "priority": role.priority,
                "permissions": sorted(role.permissions),
            } if role else None,
        }), 200

    # ── Generic entity CRUD ──────────────────────────────────────────

    @app.route("/api/v2/<entity>", methods=["GET"])
    @token_required
    def list_entities(entity):
        ctx = dispatcher.dispatch(g.user, entity, "read")
        args = request.args
        result = repository(ctx).find_all(
            ctx,
            search=args.get("search"),
            filters=parse_filters(args),
            sort_by=args.get("sortBy"),
            sort_order=args.get("sortOrder"),
            page=args.get("page"),
            limit=args.get("limit"),
            include_inactive=args.get("includeInactive", "").lower() == "true",
        )
        return jsonify({"success": True, **result}), 200

    @app.route("/api/v2/<entity>/<int:record_id>", methods=["GET"])
    @token_required
    def get_entity(entity, record_id):
        ctx = dispatcher.dispatch(g.user, entity, "read")
        row = repository(ctx).find_by_id(record_id, ctx)
        if row is None:
            return not_found(ctx)
        return jsonify({"success": True, "data": row}), 200

    @app.route("/api/v2/<entity>", methods=["POST"])
    @token_required
    def create_entity(entity):
        ctx = dispatcher.dispatch(g.user, entity, "create")
        body = validate_body(ctx, request.get_json(silent=True))
        row = repository(ctx).create(body)
        return jsonify({"success": True, "data": row}), 201

    @app.route("/api/v2/<entity>/<int:record_id>", methods=["PATCH", "PUT"])
    @token_required
    def update_entity(entity, record_id):
        ctx = dispatcher.dispatch(g.user, entity, "update")
        body = validate_body(ctx, request.get_json(silent=True))
        row = repository(ctx).update(record_id, body, ctx)
        if row is None:
            return not_found(ctx)
        return jsonify({"success": True, "data": row}), 200

    @app.route("/api/v2/<entity>/<int:record_id>", methods=["DELETE"])
    @token_required
    def delete_entity(entity, record_id):
        ctx = dispatcher.dispatch(g.user, entity, "delete")
        row = repository(ctx).delete(record_id, ctx)
        if row is None:
            return not_found(ctx)
        return jsonify({"success": True, "data": row}), 200

    # ── Error handlers ───────────────────────────────────────────────

    @app.errorhandler(AuthenticationError)
    def unauthenticated(e):
        return _error(401, "Unauthorized", e.message)

    @app.errorhandler(AuthorizationDenied)
    def forbidden(e):
        return _error(403, "Forbidden", e.message)

    @app.errorhandler(UnknownEntityError)
    def unknown_entity(e):
        return _error(404, "Not Found", e.message)

    @app.errorhandler(ValidationError)
    def validation_error(e):
        return _error(400, "Validation Error", e.message)

    @app.errorhandler(ConfigurationError)
    @app.errorhandler(PlaceholderMismatchError)
    def configuration_error(e):
        print(f"[ERROR] {type(e).__name__}: {e.message}", file=sys.stderr)
        traceback.print_exc()
        return _error(500, "Internal Error", "Entity configuration error")

    @app.errorhandler(404)
    def route_not_found(e):
        return _error(404, "Not Found", "Endpoint not found")

    @app.errorhandler(405)
    def method_not_allowed(e):
        return _error(405, "Method Not Allowed", str(e))
