"""
JWT verification helpers and middleware for the Flask API.

Identity is resolved upstream; tokens carry the user id (``sub``) and role
name, and this module only verifies them.
"""

from datetime import datetime, timedelta, timezone
from functools import wraps
from typing import Any, Dict, Optional

import jwt
from flask import g, jsonify, request

from fieldservice_authz.config import SECRET_KEY, TOKEN_EXPIRY_HOURS
from fieldservice_authz.models import AccessContext


def generate_token(ctx: AccessContext) -> str:
    """Generate a JWT token for an authenticated user."""
    now = datetime.now(timezone.utc)
    payload = {
        "sub": str(ctx.user_id),
        "email": ctx.email,
        "role": ctx.role,
        "iat": now,
        "exp": now + timedelta(hours=TOKEN_EXPIRY_HOURS),
    }
    return jwt.encode(payload, SECRET_KEY, algorithm="HS256")


def verify_token(token: str) -> Optional[Dict[str, Any]]:
    """Verify a JWT token and return the decoded payload (or None)."""
    try:
        return jwt.decode(token, SECRET_KEY, algorithms=["HS256"])
    except jwt.ExpiredSignatureError:
        return None
    except jwt.InvalidTokenError:
        return None


def context_from_payload(payload: Dict[str, Any]) -> Optional[AccessContext]:
    """Build an AccessContext from verified claims; None when claims are incomplete."""
    sub = payload.get("sub")
    try:
        user_id = int(sub) if sub is not None else None
    except (TypeError, ValueError):
        return None
    if user_id is None:
        return None
    role = str(payload.get("role") or "").strip().lower()
    return AccessContext(user_id=user_id, email=str(payload.get("email") or ""), role=role)


def token_required(f):
    """Decorator that protects endpoints with JWT authentication."""
    @wraps(f)
    def decorated(*args, **kwargs):
        auth_header = request.headers.get("Authorization", "")
        if not auth_header:
            return jsonify({"error": "Authentication token is missing"}), 401

        parts = auth_header.split(" ")
        if len(parts) != 2 or parts[0].lower() != "bearer":
            return jsonify({"error": "Invalid authorization header format"}), 401

        payload = verify_token(parts[1])
        if not payload:
            return jsonify({"error": "Invalid or expired token"}), 401

        user = context_from_payload(payload)
        if user is None:
            return jsonify({"error": "Invalid token payload"}), 401

        # Attach the verified identity to the request context
        g.user = user
        return f(*args, **kwargs)

    return decorated
