"""
Entity metadata registry – the static description of every entity the
generic API exposes: table, alias, searchable/filterable/sortable fields,
field access, and row-level-security configuration.

The ``unset_policy`` of each entity decides what an unconfigured role sees:
"failsafe" denies every row, "permissive" adds no restriction. These values
are security configuration and must be kept as they are.
"""

from types import MappingProxyType
from typing import Dict, List, Mapping, Optional

from fieldservice_authz.config import UNSET_FAILSAFE, UNSET_PERMISSIVE
from fieldservice_authz.errors import ConfigurationError
from fieldservice_authz.models import EntityMetadata, RLSConfig

_TIMESTAMPS = ("created_at", "updated_at")


def _access(create: str = "any", update: str = "any") -> Dict[str, str]:
    return {"create": create, "update": update}


def _system_fields() -> Dict[str, Dict[str, str]]:
    return {
        "id": _access("none", "none"),
        "created_at": _access("none", "none"),
        "updated_at": _access("none", "none"),
        "is_active": _access("any", "any"),
    }


def _fields(**extra) -> Mapping[str, Mapping[str, str]]:
    access = _system_fields()
    access.update(extra)
    return MappingProxyType(access)


ENTITY_METADATA: Mapping[str, EntityMetadata] = MappingProxyType({
    "user": EntityMetadata(
        entity_name="user",
        table_name="users",
        rls_resource="users",
        rls=RLSConfig(
            alias="u",
            ownership=MappingProxyType({"own_record_only": "id"}),
            unset_policy=UNSET_FAILSAFE,
        ),
        searchable_fields=("first_name", "last_name", "email"),
        filterable_fields=("id", "email", "first_name", "last_name", "role_id",
                           "is_active", "status") + _TIMESTAMPS,
        sortable_fields=("id", "email", "first_name", "last_name", "role_id",
                         "is_active", "status") + _TIMESTAMPS,
        required_fields=("email", "first_name", "last_name"),
        immutable_fields=("id", "email", "auth0_id"),
        field_access=_fields(
            email=_access("any", "none"),
            auth0_id=_access("any", "none"),
            first_name=_access(),
            last_name=_access(),
            role_id=_access(),
            status=_access(),
        ),
    ),
    "role": EntityMetadata(
        entity_name="role",
        table_name="roles",
        rls_resource="roles",
        rls=RLSConfig(alias="r", ownership=MappingProxyType({}), unset_policy=UNSET_PERMISSIVE),
        searchable_fields=("name", "description"),
        filterable_fields=("id", "name", "description", "priority", "status",
                           "is_active", "is_system_role") + _TIMESTAMPS,
        sortable_fields=("id", "name", "description", "priority", "status",
                         "is_active", "is_system_role") + _TIMESTAMPS,
        default_sort=("priority", "DESC"),
        required_fields=("name", "priority"),
        immutable_fields=("id", "name"),
        field_access=_fields(
            name=_access("any", "none"),
            description=_access(),
            priority=_access(),
            status=_access(),
        ),
    ),
    "customer": EntityMetadata(
        entity_name="customer",
        table_name="customers",
        rls_resource="customers",
        rls=RLSConfig(
            alias="c",
            ownership=MappingProxyType({"own_record_only": "id"}),
            unset_policy=UNSET_PERMISSIVE,
        ),
        searchable_fields=("email", "phone", "company_name"),
        filterable_fields=("id", "email", "phone", "company_name", "is_active",
                           "status") + _TIMESTAMPS,
        sortable_fields=("id", "email", "company_name", "is_active", "status") + _TIMESTAMPS,
        required_fields=("email",),
        immutable_fields=("id",),
        field_access=_fields(
            email=_access(),
            phone=_access(),
            company_name=_access(),
            status=_access(),
        ),
    ),
    "technician": EntityMetadata(
        entity_name="technician",
        table_name="technicians",
        rls_resource="technicians",
        rls=RLSConfig(
            alias="t",
            ownership=MappingProxyType({"own_record_only": "id"}),
            unset_policy=UNSET_PERMISSIVE,
        ),
        searchable_fields=("license_number",),
        filterable_fields=("id", "license_number", "hourly_rate", "is_active",
                           "status") + _TIMESTAMPS,
        sortable_fields=("id", "license_number", "hourly_rate", "is_active",
                         "status") + _TIMESTAMPS,
        required_fields=("license_number",),
        immutable_fields=("id",),
        field_access=_fields(
            license_number=_access(),
            hourly_rate=_access(),
            certifications=_access(),
            skills=_access(),
            status=_access(),
        ),
    ),
    "workOrder": EntityMetadata(
        entity_name="workOrder",
        table_name="work_orders",
        rls_resource="work_orders",
        rls=RLSConfig(
            alias="wo",
            ownership=MappingProxyType({
                "own_work_orders_only": "customer_id",
                "assigned_work_orders_only": "assigned_technician_id",
            }),
            unset_policy=UNSET_FAILSAFE,
        ),
        searchable_fields=("title", "description"),
        filterable_fields=("id", "title", "customer_id", "assigned_technician_id",
                           "is_active", "status", "priority", "scheduled_start",
                           "scheduled_end") + _TIMESTAMPS,
        sortable_fields=("id", "title", "priority", "status", "scheduled_start",
                         "scheduled_end", "completed_at") + _TIMESTAMPS,
        required_fields=("title", "customer_id"),
        immutable_fields=("id", "customer_id"),
        field_access=_fields(
            title=_access(),
            description=_access(),
            priority=_access(),
            status=_access(),
            customer_id=_access("any", "none"),
            assigned_technician_id=_access(),
            scheduled_start=_access(),
            scheduled_end=_access(),
            completed_at=_access("none", "any"),
        ),
    ),
    "invoice": EntityMetadata(
        entity_name="invoice",
        table_name="invoices",
        rls_resource="invoices",
        rls=RLSConfig(
            alias="i",
            ownership=MappingProxyType({"own_invoices_only": "customer_id"}),
            unset_policy=UNSET_FAILSAFE,
        ),
        searchable_fields=("invoice_number",),
        filterable_fields=("id", "invoice_number", "customer_id", "work_order_id",
                           "status", "is_active", "due_date") + _TIMESTAMPS,
        sortable_fields=("id", "invoice_number", "total", "status", "due_date",
                         "paid_at") + _TIMESTAMPS,
        required_fields=("invoice_number", "customer_id", "amount", "total"),
        immutable_fields=("id", "invoice_number", "customer_id"),
        field_access=_fields(
            invoice_number=_access("any", "none"),
            customer_id=_access("any", "none"),
            work_order_id=_access(),
            amount=_access(),
            tax=_access(),
            total=_access(),
            status=_access(),
            due_date=_access(),
            paid_at=_access("none", "any"),
        ),
    ),
    "contract": EntityMetadata(
        entity_name="contract",
        table_name="contracts",
        rls_resource="contracts",
        rls=RLSConfig(
            alias="c",
            ownership=MappingProxyType({"own_contracts_only": "customer_id"}),
            unset_policy=UNSET_FAILSAFE,
        ),
        searchable_fields=("contract_number",),
        filterable_fields=("id", "contract_number", "customer_id", "status",
                           "is_active", "start_date", "end_date") + _TIMESTAMPS,
        sortable_fields=("id", "contract_number", "value", "status", "start_date",
                         "end_date") + _TIMESTAMPS,
        required_fields=("contract_number", "customer_id", "start_date"),
        immutable_fields=("id", "contract_number", "customer_id"),
        field_access=_fields(
            contract_number=_access("any", "none"),
            customer_id=_access("any", "none"),
            start_date=_access(),
            end_date=_access(),
            terms=_access(),
            value=_access(),
            billing_cycle=_access(),
            status=_access(),
        ),
    ),
    "inventory": EntityMetadata(
        entity_name="inventory",
        table_name="inventory",
        rls_resource="inventory",
        rls=RLSConfig(alias="i", ownership=MappingProxyType({}), unset_policy=UNSET_PERMISSIVE),
        searchable_fields=("name", "sku", "description"),
        filterable_fields=("id", "name", "sku", "quantity", "location", "supplier",
                           "is_active", "status") + _TIMESTAMPS,
        sortable_fields=("id", "name", "sku", "quantity", "unit_cost", "status") + _TIMESTAMPS,
        default_sort=("name", "ASC"),
        required_fields=("name", "sku"),
        immutable_fields=("id", "sku"),
        field_access=_fields(
            name=_access(),
            sku=_access("any", "none"),
            description=_access(),
            quantity=_access(),
            reorder_level=_access(),
            unit_cost=_access(),
            location=_access(),
            supplier=_access(),
            status=_access(),
        ),
    ),
})

# URL forms (plural, singular, hyphenated) -> internal entity names.
ENTITY_URL_MAP: Mapping[str, str] = MappingProxyType({
    "users": "user",
    "roles": "role",
    "customers": "customer",
    "technicians": "technician",
    "work-orders": "workOrder",
    "workorders": "workOrder",
    "work_orders": "workOrder",
    "invoices": "invoice",
    "contracts": "contract",
    "inventory": "inventory",
    "user": "user",
    "role": "role",
    "customer": "customer",
    "technician": "technician",
    "work-order": "workOrder",
    "workorder": "workOrder",
    "invoice": "invoice",
    "contract": "contract",
})


def normalize_entity_name(url_entity: Optional[str]) -> Optional[str]:
    """Map a URL entity parameter to its internal entity name, or None."""
    if not url_entity:
        return None
    return ENTITY_URL_MAP.get(url_entity.strip().lower())


def get_metadata(entity_name: str,
                 registry: Mapping[str, EntityMetadata] = ENTITY_METADATA) -> EntityMetadata:
    """Return metadata for an internal entity name; missing metadata is a configuration defect."""
    try:
        return registry[entity_name]
    except KeyError:
        raise ConfigurationError(f"No metadata registered for entity '{entity_name}'.") from None


def derive_updateable_fields(metadata: EntityMetadata) -> List[str]:
    """Fields that are not immutable and whose update access is not 'none'."""
    immutable = set(metadata.immutable_fields)
    return [
        name for name, access in metadata.field_access.items()
        if name not in immutable and access.get("update", "none") != "none"
    ]


def derive_createable_fields(metadata: EntityMetadata) -> List[str]:
    """Fields whose create access is not 'none'."""
    return [
        name for name, access in metadata.field_access.items()
        if access.get("create", "none") != "none"
    ]
