"""
Permission data loading – roles, permission rules and the RLS policy table.

The data is read once at startup into an immutable ``AuthzConfig`` that is
passed explicitly to every resolver call.
"""

import json
import logging
from dataclasses import dataclass
from pathlib import Path
from types import MappingProxyType
from typing import Any, Dict, Mapping, Optional, Tuple, Union

from fieldservice_authz.config import PERMISSIONS_PATH, UNSET_CLASSIFICATIONS
from fieldservice_authz.errors import ConfigurationError
from fieldservice_authz.models import EntityMetadata, PermissionRule, Role
from fieldservice_authz.rls import SHARED_TOKENS

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AuthzConfig:
    """Immutable role, permission and RLS tables."""
    version: str
    roles: Mapping[str, Role]
    rules: Mapping[Tuple[str, str], PermissionRule]
    rls_policies: Mapping[str, Mapping[str, Optional[str]]]

    @property
    def resources(self):
        return sorted({resource for resource, _ in self.rules})

    def role(self, name: Optional[str]) -> Optional[Role]:
        if not name or not isinstance(name, str):
            return None
        return self.roles.get(name.strip().lower())

    def rule(self, resource: str, operation: str) -> Optional[PermissionRule]:
        return self.rules.get((resource, operation))


def _parse_rule(resource: str, operation: str, raw: Dict[str, Any],
                roles: Mapping[str, Any]) -> PermissionRule:
    minimum_role = raw.get("minimumRole")
    allowed = raw.get("allowedRoles")
    if (minimum_role is None) == (allowed is None):
        raise ConfigurationError(
            f"Permission {resource}:{operation} must define exactly one of minimumRole or allowedRoles."
        )
    if minimum_role is not None and minimum_role not in roles:
        raise ConfigurationError(
            f"Permission {resource}:{operation} references unknown role '{minimum_role}'."
        )
    if allowed is not None:
        unknown = [r for r in allowed if r not in roles]
        if unknown:
            raise ConfigurationError(
                f"Permission {resource}:{operation} references unknown roles {unknown}."
            )
    return PermissionRule(
        resource=resource,
        operation=operation,
        minimum_role=minimum_role,
        allowed_roles=frozenset(allowed) if allowed is not None else None,
        description=raw.get("description", ""),
    )


def _grants(rule: PermissionRule, role_name: str, roles: Mapping[str, Dict[str, Any]]) -> bool:
    if rule.allowed_roles is not None:
        return role_name in rule.allowed_roles
    return roles[role_name]["priority"] >= roles[rule.minimum_role]["priority"]


def parse_config(data: Dict[str, Any]) -> AuthzConfig:
    """Build an AuthzConfig from the decoded permissions document."""
    raw_roles = data.get("roles")
    raw_resources = data.get("resources")
    if not isinstance(raw_roles, dict) or not raw_roles:
        raise ConfigurationError("Permission data has no roles.")
    if not isinstance(raw_resources, dict):
        raise ConfigurationError("Permission data has no resources.")

    role_data: Dict[str, Dict[str, Any]] = {}
    for name, entry in raw_roles.items():
        priority = entry.get("priority")
        if not isinstance(priority, int) or isinstance(priority, bool):
            raise ConfigurationError(f"Role '{name}' has no integer priority.")
        role_data[name.lower()] = entry

    priorities = [entry["priority"] for entry in role_data.values()]
    if len(set(priorities)) != len(priorities):
        raise ConfigurationError("Role priorities must be unique.")

    rules: Dict[Tuple[str, str], PermissionRule] = {}
    rls_policies: Dict[str, Mapping[str, Optional[str]]] = {}
    for resource, entry in raw_resources.items():
        for operation, raw_rule in (entry.get("permissions") or {}).items():
            rules[(resource, operation)] = _parse_rule(resource, operation, raw_rule, role_data)
        table = entry.get("rowLevelSecurity") or {}
        unknown = [r for r in table if r.lower() not in role_data]
        if unknown:
            raise ConfigurationError(
                f"rowLevelSecurity for '{resource}' references unknown roles {unknown}."
            )
        bad = {r: token for r, token in table.items() if token is not None and not isinstance(token, str)}
        if bad:
            raise ConfigurationError(
                f"rowLevelSecurity for '{resource}' has non-string policy tokens {bad}."
            )
        rls_policies[resource] = MappingProxyType({r.lower(): token for r, token in table.items()})

    roles: Dict[str, Role] = {}
    for name, entry in role_data.items():
        granted = frozenset(
            f"{rule.resource}:{rule.operation}"
            for rule in rules.values()
            if _grants(rule, name, role_data)
        )
        roles[name] = Role(
            name=name,
            priority=entry["priority"],
            description=entry.get("description", ""),
            is_active=entry.get("isActive", True),
            permissions=granted,
        )

    return AuthzConfig(
        version=str(data.get("version", "1.0.0")),
        roles=MappingProxyType(roles),
        rules=MappingProxyType(rules),
        rls_policies=MappingProxyType(rls_policies),
    )


def load_config(path: Union[str, Path] = PERMISSIONS_PATH) -> AuthzConfig:
    """Read and parse the permissions file."""
    path = Path(path)
    try:
        with path.open(encoding="utf-8") as fh:
            data = json.load(fh)
    except FileNotFoundError:
        raise ConfigurationError(f"Permissions file not found: {path}") from None
    except json.JSONDecodeError as e:
        raise ConfigurationError(f"Permissions file {path} is not valid JSON: {e}") from e

    config = parse_config(data)
    logger.info(
        "Loaded permissions v%s: %d roles, %d rules",
        config.version, len(config.roles), len(config.rules),
    )
    return config


def validate_against(config: AuthzConfig, registry: Mapping[str, EntityMetadata]) -> None:
    """
    Boot-time cross-check of permission data against entity metadata.

    Every entity must name a resource that has permission rules, must declare
    an unset-policy classification, and every ownership policy token in the
    RLS table must be one the entity recognizes (or a shared token).
    """
    for entity_name, meta in registry.items():
        if not meta.rls_resource:
            raise ConfigurationError(f"Entity '{entity_name}' has no rls_resource.")
        if meta.rls.unset_policy not in UNSET_CLASSIFICATIONS:
            raise ConfigurationError(
                f"Entity '{entity_name}' has no valid unset-policy classification "
                f"(got {meta.rls.unset_policy!r})."
            )
        if not any(resource == meta.rls_resource for resource, _ in config.rules):
            raise ConfigurationError(
                f"Entity '{entity_name}' resource '{meta.rls_resource}' has no permission rules."
            )
        for role_name, token in config.rls_policies.get(meta.rls_resource, {}).items():
            if token is None or token in SHARED_TOKENS or token in meta.rls.ownership:
                continue
            raise ConfigurationError(
                f"RLS policy '{token}' for role '{role_name}' on '{meta.rls_resource}' "
                f"is not recognized by entity '{entity_name}'."
            )
    logger.debug("Permission data validated against %d entities", len(registry))
