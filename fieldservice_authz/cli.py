"""
Command-line tooling for inspecting permission data.

    fieldservice-authz explain --role customer --entity work-orders --user-id 99
    fieldservice-authz matrix
    fieldservice-authz check-config
    fieldservice-authz token --role technician --user-id 7
    fieldservice-authz secret-key
"""

import argparse
import secrets
import sys
from typing import List, Optional

import pandas as pd

from fieldservice_authz.api.auth import generate_token
from fieldservice_authz.composer import compose
from fieldservice_authz.config import PERMISSIONS_PATH, configure_logging
from fieldservice_authz.dispatcher import OPERATIONS
from fieldservice_authz.errors import AuthzError
from fieldservice_authz.metadata import ENTITY_METADATA, get_metadata, normalize_entity_name
from fieldservice_authz.models import AccessContext, RLSContext
from fieldservice_authz.permissions import AuthzConfig, load_config, validate_against
from fieldservice_authz.rbac import is_allowed, resolve_policy
from fieldservice_authz.rls import build_filter, describe_policy


def policy_matrix(config: AuthzConfig) -> pd.DataFrame:
    """Role × entity table of resolved RLS policies (unset shown as such)."""
    roles = sorted(config.roles.values(), key=lambda r: r.priority, reverse=True)
    data = {
        meta.rls_resource: [
            describe_policy(resolve_policy(config, role.name, meta.rls_resource), meta.rls)
            for role in roles
        ]
        for meta in ENTITY_METADATA.values()
    }
    return pd.DataFrame(data, index=[role.name for role in roles])


def explain(config: AuthzConfig, role: str, url_entity: str, operation: str,
            user_id: Optional[int], where: str = "", values: Optional[List[str]] = None) -> int:
    entity_name = normalize_entity_name(url_entity)
    if entity_name is None:
        print(f"[explain] Unknown entity: {url_entity}")
        return 2
    meta = get_metadata(entity_name)

    allowed = is_allowed(config, role, meta.rls_resource, operation)
    print(f"[explain] {role} {operation} {meta.rls_resource}: {'ALLOWED' if allowed else 'DENIED'}")
    if not allowed:
        return 1

    policy = resolve_policy(config, role, meta.rls_resource)
    fragment = build_filter(RLSContext(policy=policy, user_id=user_id), meta.rls)
    composed = compose(where, values or [], fragment)
    print(f"[explain] Policy:      {describe_policy(policy, meta.rls)}")
    print(f"[explain] RLS applied: {composed.rls_applied}")
    print(f"[explain] WHERE:       {composed.where_clause or '(none)'}")
    print(f"[explain] Values:      {composed.values}")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="fieldservice-authz", description=__doc__.splitlines()[1])
    parser.add_argument("--permissions", default=str(PERMISSIONS_PATH), help="permissions JSON file")
    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("explain", help="show the permission and RLS decision for one request")
    p.add_argument("--role", required=True)
    p.add_argument("--entity", required=True)
    p.add_argument("--operation", default="read", choices=OPERATIONS)
    p.add_argument("--user-id", type=int)
    p.add_argument("--where", default="", help="existing clause, e.g. 'wo.status = $1'")
    p.add_argument("--value", action="append", dest="values", help="value for the existing clause")

    sub.add_parser("matrix", help="print the role × resource RLS policy table")
    sub.add_parser("check-config", help="validate permission data against entity metadata")

    p = sub.add_parser("token", help="issue a development JWT for the API")
    p.add_argument("--role", required=True)
    p.add_argument("--user-id", type=int, required=True)
    p.add_argument("--email", default="")

    sub.add_parser("secret-key", help="print a fresh JWT_SECRET_KEY line for .env")
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    configure_logging("WARNING")

    if args.command == "secret-key":
        print(f"JWT_SECRET_KEY={secrets.token_hex(32)}")
        return 0

    try:
        config = load_config(args.permissions)
        validate_against(config, ENTITY_METADATA)
    except AuthzError as e:
        print(f"[ERROR] {e.message}", file=sys.stderr)
        return 1

    if args.command == "check-config":
        print(f"[check] permissions v{config.version}: {len(config.roles)} roles, "
              f"{len(config.rules)} rules, {len(ENTITY_METADATA)} entities – OK")
        return 0

    if args.command == "matrix":
        print(policy_matrix(config).to_string())
        return 0

    if args.command == "token":
        role = config.role(args.role)
        if role is None:
            print(f"[ERROR] Unknown role: {args.role}", file=sys.stderr)
            return 1
        print(generate_token(AccessContext(user_id=args.user_id, email=args.email, role=role.name)))
        return 0

    try:
        return explain(config, args.role, args.entity, args.operation,
                       args.user_id, args.where, args.values)
    except AuthzError as e:
        print(f"[ERROR] {e.message}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
