"""
Domain dataclasses used across the application.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, FrozenSet, List, Mapping, Optional, Tuple

from fieldservice_authz.predicates import Predicate


@dataclass(frozen=True)
class Role:
    """A role loaded from the permission data. Immutable after boot."""
    name: str
    priority: int              # total order for minimum-role checks
    description: str = ""
    is_active: bool = True
    permissions: FrozenSet[str] = frozenset()   # "resource:operation"


@dataclass(frozen=True)
class PermissionRule:
    """Who may perform one operation on one resource."""
    resource: str
    operation: str
    minimum_role: Optional[str] = None
    allowed_roles: Optional[FrozenSet[str]] = None
    description: str = ""


@dataclass(frozen=True)
class RLSConfig:
    """Per-entity row-level-security configuration."""
    alias: str                       # table alias used in generated SQL
    ownership: Mapping[str, str]     # ownership policy token -> owner column
    unset_policy: Optional[str]      # "failsafe" | "permissive"


@dataclass(frozen=True)
class EntityMetadata:
    """Static description of one entity exposed by the generic API."""
    entity_name: str
    table_name: str
    rls_resource: str
    rls: RLSConfig
    primary_key: str = "id"
    searchable_fields: Tuple[str, ...] = ()
    filterable_fields: Tuple[str, ...] = ()
    sortable_fields: Tuple[str, ...] = ()
    default_sort: Tuple[str, str] = ("created_at", "DESC")
    required_fields: Tuple[str, ...] = ()
    immutable_fields: Tuple[str, ...] = ()
    field_access: Mapping[str, Mapping[str, str]] = field(default_factory=dict)

    @property
    def alias(self) -> str:
        return self.rls.alias


@dataclass
class AccessContext:
    """Represents an authenticated user's identity, as stored in the database."""
    user_id: int
    email: str
    role: str


@dataclass(frozen=True)
class RLSContext:
    """The policy and identity a filter is built from."""
    policy: Optional[str]      # None means no policy configured (Unset)
    user_id: Optional[Any]


@dataclass(frozen=True)
class Fragment:
    """A predicate plus whether row-level security was evaluated for it."""
    predicate: Predicate
    applied: bool

    @property
    def clause(self) -> str:
        return self.predicate.render()[0]

    @property
    def values(self) -> List[Any]:
        return self.predicate.render()[1]


@dataclass(frozen=True)
class RequestAuthContext:
    """Per-request authorization result handed to the data-access layer."""
    role: str
    user_id: Optional[Any]
    entity_name: str
    resource: str
    operation: str
    policy: Optional[str]
    metadata: EntityMetadata

    @property
    def rls(self) -> RLSContext:
        return RLSContext(policy=self.policy, user_id=self.user_id)


@dataclass(frozen=True)
class QueryFragment:
    """Search or filter output from the query builder."""
    clause: str
    params: List[Any]
    param_offset: int
    applied: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class ComposedPredicate:
    """Final WHERE clause and values, in lock-step."""
    where_clause: str
    values: List[Any]
    rls_applied: bool
