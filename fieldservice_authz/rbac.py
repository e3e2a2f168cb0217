"""
Role-Based Access Control – loading user context, permission checks and
RLS policy resolution.
"""

import logging
from typing import Optional

from sqlalchemy import text

from fieldservice_authz.models import AccessContext
from fieldservice_authz.permissions import AuthzConfig

logger = logging.getLogger(__name__)


def load_access_context(engine, user_id: int) -> AccessContext:
    """Look up an active user and their role name."""
    sql = text("""
        SELECT u.id, u.email, r.name AS role
        FROM users u
        JOIN roles r ON r.id = u.role_id
        WHERE u.id = :uid AND u.is_active = true
    """)
    with engine.connect() as conn:
        row = conn.execute(sql, {"uid": user_id}).mappings().first()

    if not row:
        raise ValueError("Unknown user or user inactive (no match in users).")

    return AccessContext(
        user_id=int(row["id"]),
        email=str(row["email"]),
        role=str(row["role"]).strip().lower(),
    )


def role_has_at_least(config: AuthzConfig, role: Optional[str], threshold: Optional[str]) -> bool:
    """True when *role* ranks at or above *threshold*. Unknown names never qualify."""
    actual = config.role(role)
    minimum = config.role(threshold)
    if actual is None or minimum is None:
        return False
    return actual.priority >= minimum.priority


def is_allowed(config: AuthzConfig, role: Optional[str], resource: str, operation: str) -> bool:
    """Decide whether *role* may perform *operation* on *resource*. Fails closed."""
    actual = config.role(role)
    if actual is None or not actual.is_active:
        logger.debug("Permission denied: unknown or inactive role %r", role)
        return False

    rule = config.rule(resource, operation)
    if rule is None:
        logger.debug("Permission denied: no rule for %s:%s", resource, operation)
        return False

    if rule.allowed_roles is not None:
        return actual.name in rule.allowed_roles
    return role_has_at_least(config, actual.name, rule.minimum_role)


def resolve_policy(config: AuthzConfig, role: Optional[str], resource: str) -> Optional[str]:
    """Return the RLS policy token for (role, resource), or None when unset."""
    actual = config.role(role)
    if actual is None:
        return None
    return config.rls_policies.get(resource, {}).get(actual.name)
