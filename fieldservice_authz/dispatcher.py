"""
Generic entity request pipeline.

    authenticate → resolve entity → permission gate → RLS policy → body validation

Each stage is a pure decision over data already available and raises to
terminate the request; nothing is retried.
"""

import logging
from typing import Any, Dict, Mapping, Optional, Tuple

from fieldservice_authz.errors import (
    AuthenticationError,
    AuthorizationDenied,
    UnknownEntityError,
    ValidationError,
)
from fieldservice_authz.metadata import (
    ENTITY_METADATA,
    derive_createable_fields,
    derive_updateable_fields,
    get_metadata,
    normalize_entity_name,
)
from fieldservice_authz.models import AccessContext, EntityMetadata, RequestAuthContext
from fieldservice_authz.permissions import AuthzConfig
from fieldservice_authz.rbac import is_allowed, resolve_policy
from fieldservice_authz.rls import describe_policy

logger = logging.getLogger(__name__)

OPERATIONS = ("create", "read", "update", "delete")


class GenericEntityDispatcher:
    """Resolves a request into a RequestAuthContext or raises."""

    def __init__(self, config: AuthzConfig, registry: Mapping[str, EntityMetadata] = ENTITY_METADATA):
        self.config = config
        self.registry = registry

    # ── Stages ───────────────────────────────────────────────────────

    def authenticate(self, user: Optional[AccessContext]) -> AccessContext:
        if user is None:
            raise AuthenticationError("Not authenticated")
        if not user.role:
            raise AuthenticationError("User has no assigned role")
        return user

    def resolve_entity(self, url_entity: Optional[str]) -> Tuple[str, EntityMetadata]:
        entity_name = normalize_entity_name(url_entity)
        if entity_name is None:
            logger.warning("Unknown entity requested: %r", url_entity)
            raise UnknownEntityError(f"Unknown entity: {url_entity}")
        # Raises ConfigurationError when the alias table and registry disagree.
        return entity_name, get_metadata(entity_name, self.registry)

    def require_permission(self, user: AccessContext, metadata: EntityMetadata, operation: str) -> None:
        resource = metadata.rls_resource
        if not is_allowed(self.config, user.role, resource, operation):
            logger.warning(
                "Permission denied: user=%s role=%s %s:%s",
                user.user_id, user.role, resource, operation,
            )
            raise AuthorizationDenied(f"You do not have permission to {operation} {resource}")

    def attach_rls(self, user: AccessContext, entity_name: str, metadata: EntityMetadata,
                   operation: str) -> RequestAuthContext:
        policy = resolve_policy(self.config, user.role, metadata.rls_resource)
        logger.debug(
            "RLS context: user=%s role=%s resource=%s policy=%s",
            user.user_id, user.role, metadata.rls_resource, describe_policy(policy, metadata.rls),
        )
        return RequestAuthContext(
            role=user.role,
            user_id=user.user_id,
            entity_name=entity_name,
            resource=metadata.rls_resource,
            operation=operation,
            policy=policy,
            metadata=metadata,
        )

    # ── Pipeline ─────────────────────────────────────────────────────

    def dispatch(self, user: Optional[AccessContext], url_entity: Optional[str],
                 operation: str) -> RequestAuthContext:
        """Run every stage in order and return the request's auth context."""
        user = self.authenticate(user)
        entity_name, metadata = self.resolve_entity(url_entity)
        self.require_permission(user, metadata, operation)
        return self.attach_rls(user, entity_name, metadata, operation)


def validate_body(context: RequestAuthContext, body: Any) -> Dict[str, Any]:
    """Strip unknown fields and check required/updateable fields for the operation."""
    if not isinstance(body, dict):
        raise ValidationError("Request body must be a JSON object")

    metadata = context.metadata
    if context.operation == "create":
        allowed = derive_createable_fields(metadata)
        value = {k: v for k, v in body.items() if k in allowed}
        missing = [f for f in metadata.required_fields if value.get(f) in (None, "")]
        if missing:
            raise ValidationError(f"Missing required fields: {', '.join(missing)}")
        return value

    if context.operation == "update":
        allowed = derive_updateable_fields(metadata)
        value = {k: v for k, v in body.items() if k in allowed}
        if not value:
            raise ValidationError(
                f"No valid updateable fields provided. Allowed: {', '.join(allowed)}"
            )
        return value

    return {}
