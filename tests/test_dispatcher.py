"""
Unit tests for the generic entity request pipeline.
"""

import pytest

from fieldservice_authz.dispatcher import GenericEntityDispatcher, validate_body
from fieldservice_authz.errors import (
    AuthenticationError,
    AuthorizationDenied,
    ConfigurationError,
    UnknownEntityError,
    ValidationError,
)
from fieldservice_authz.metadata import ENTITY_METADATA
from fieldservice_authz.models import AccessContext


@pytest.fixture
def dispatcher(config):
    return GenericEntityDispatcher(config)


def _user(role, user_id=99):
    return AccessContext(user_id=user_id, email=f"{role}@example.com", role=role)


# ── Tests: authenticate ──────────────────────────────────────────────

def test_missing_user_is_unauthenticated(dispatcher):
    with pytest.raises(AuthenticationError, match="Not authenticated"):
        dispatcher.dispatch(None, "work-orders", "read")


def test_user_without_role_is_unauthenticated(dispatcher):
    with pytest.raises(AuthenticationError, match="no assigned role"):
        dispatcher.dispatch(_user(""), "work-orders", "read")


# ── Tests: resolve_entity ────────────────────────────────────────────

@pytest.mark.parametrize("url_entity", ["work-orders", "workorders", "work_orders", "Work-Order"])
def test_url_forms_resolve_to_work_orders(dispatcher, url_entity):
    entity_name, meta = dispatcher.resolve_entity(url_entity)
    assert entity_name == "workOrder"
    assert meta.table_name == "work_orders"


def test_unknown_entity(dispatcher):
    with pytest.raises(UnknownEntityError, match="Unknown entity: widgets"):
        dispatcher.dispatch(_user("admin"), "widgets", "read")


def test_mapped_entity_without_metadata_is_configuration_error(config):
    registry = {k: v for k, v in ENTITY_METADATA.items() if k != "invoice"}
    dispatcher = GenericEntityDispatcher(config, registry)
    with pytest.raises(ConfigurationError):
        dispatcher.dispatch(_user("admin"), "invoices", "read")


# ── Tests: require_permission ────────────────────────────────────────

def test_permission_denied_message(dispatcher):
    with pytest.raises(AuthorizationDenied, match="You do not have permission to delete invoices"):
        dispatcher.dispatch(_user("manager"), "invoices", "delete")


def test_unknown_role_is_denied(dispatcher):
    with pytest.raises(AuthorizationDenied):
        dispatcher.dispatch(_user("superuser"), "work-orders", "read")


# ── Tests: dispatch ──────────────────────────────────────────────────

def test_dispatch_attaches_policy(dispatcher):
    ctx = dispatcher.dispatch(_user("customer", 99), "work-orders", "read")
    assert ctx.entity_name == "workOrder"
    assert ctx.resource == "work_orders"
    assert ctx.operation == "read"
    assert ctx.policy == "own_work_orders_only"
    assert ctx.rls.user_id == 99


def test_dispatch_unset_policy_is_none(dispatcher):
    ctx = dispatcher.dispatch(_user("admin", 1), "inventory", "read")
    assert ctx.policy is None


# ── Tests: validate_body ─────────────────────────────────────────────

def test_create_strips_unknown_and_system_fields(dispatcher):
    ctx = dispatcher.dispatch(_user("customer"), "work-orders", "create")
    body = validate_body(ctx, {"title": "Leak", "customer_id": 99, "id": 5, "hack": 1})
    assert body == {"title": "Leak", "customer_id": 99}


def test_create_missing_required(dispatcher):
    ctx = dispatcher.dispatch(_user("customer"), "work-orders", "create")
    with pytest.raises(ValidationError, match="Missing required fields: title"):
        validate_body(ctx, {"customer_id": 99})


def test_update_drops_immutable_fields(dispatcher):
    ctx = dispatcher.dispatch(_user("technician", 7), "work-orders", "update")
    body = validate_body(ctx, {"status": "done", "customer_id": 1, "id": 9})
    assert body == {"status": "done"}


def test_update_with_nothing_updateable(dispatcher):
    ctx = dispatcher.dispatch(_user("technician", 7), "work-orders", "update")
    with pytest.raises(ValidationError, match="No valid updateable fields"):
        validate_body(ctx, {"customer_id": 1})


def test_body_must_be_object(dispatcher):
    ctx = dispatcher.dispatch(_user("customer"), "work-orders", "create")
    with pytest.raises(ValidationError, match="JSON object"):
        validate_body(ctx, ["title"])
