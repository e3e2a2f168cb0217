"""
Row-level-security filter building.

One generic builder interprets each entity's ``RLSConfig`` as data. Every
input maps to a defined fragment and nothing here raises: unknown policies
and ownership policies with no identity to bind deny all rows.
"""

import logging
from typing import Optional

from fieldservice_authz.config import UNSET_PERMISSIVE
from fieldservice_authz.models import Fragment, RLSConfig, RLSContext
from fieldservice_authz.predicates import FALSE, TRUE, Equals

logger = logging.getLogger(__name__)

ALL_RECORDS = "all_records"
OWN_RECORD_ONLY = "own_record_only"
DENY_ALL = "deny_all"
UNSET = None

# Tokens every entity understands without an ownership column.
SHARED_TOKENS = frozenset({ALL_RECORDS, DENY_ALL})


def build_filter(context: Optional[RLSContext], rls_config: RLSConfig) -> Fragment:
    """Return the RLS fragment for a policy context on one entity."""
    if context is None:
        logger.debug("No RLS context for alias %s", rls_config.alias)
        return Fragment(TRUE, applied=False)

    policy = context.policy

    if policy == ALL_RECORDS:
        return Fragment(TRUE, applied=True)

    if policy is UNSET:
        if rls_config.unset_policy == UNSET_PERMISSIVE:
            return Fragment(TRUE, applied=False)
        # Failsafe, and anything that is not explicitly permissive.
        logger.debug("Unset RLS policy on failsafe alias %s, denying", rls_config.alias)
        return Fragment(FALSE, applied=True)

    column = rls_config.ownership.get(policy) if isinstance(policy, str) else None
    if column is not None:
        if context.user_id is None:
            logger.error("RLS user id missing for %s policy", policy)
            return Fragment(FALSE, applied=True)
        return Fragment(Equals(f"{rls_config.alias}.{column}", context.user_id), applied=True)

    if policy == DENY_ALL:
        logger.debug("RLS deny_all policy for alias %s", rls_config.alias)
    else:
        logger.warning("Unknown RLS policy %r for alias %s, denying", policy, rls_config.alias)
    return Fragment(FALSE, applied=True)


def describe_policy(policy: Optional[str], rls_config: Optional[RLSConfig] = None) -> str:
    """
    Human-readable label for a policy token.

    With an entity's ``rls_config``, ownership tokens that entity does not
    recognize are labelled "unknown" since ``build_filter`` denies them.
    """
    if policy is UNSET:
        return "unset"
    if not isinstance(policy, str) or not policy:
        return "unknown"
    if policy in SHARED_TOKENS:
        return policy
    if rls_config is not None and policy not in rls_config.ownership:
        return "unknown"
    return f"filter_by_{policy}"
