"""
Predicate composition – merges the RLS fragment into an existing WHERE
clause, keeping ``$n`` placeholders and values in lock-step.
"""

import re
from typing import Any, List, Sequence

from fieldservice_authz.errors import PlaceholderMismatchError
from fieldservice_authz.models import ComposedPredicate, Fragment

_PLACEHOLDER_RE = re.compile(r"\$(\d+)\b")
_WHERE_RE = re.compile(r"(?is)^\s*where\b")
_OR_SCAN_RE = re.compile(r"(?i)'(?:[^']|'')*'|\(|\)|\bor\b")


# ── Helper functions ─────────────────────────────────────────────────

def placeholders(clause: str) -> List[int]:
    """Return the positional placeholder numbers in order of appearance."""
    return [int(n) for n in _PLACEHOLDER_RE.findall(clause or "")]


def check_placeholders(clause: str, values: Sequence[Any]) -> None:
    """Distinct placeholders must be exactly $1..$n with n == len(values)."""
    found = set(placeholders(clause))
    expected = set(range(1, len(values) + 1))
    if found != expected:
        raise PlaceholderMismatchError(
            f"Placeholders {sorted(found)} do not match {len(values)} values in: {clause}"
        )


def has_where(clause: str) -> bool:
    return bool(_WHERE_RE.match(clause or ""))


def strip_where(clause: str) -> str:
    """Return the condition part of a clause, without a leading WHERE."""
    return _WHERE_RE.sub("", clause or "", count=1).strip()


def has_top_level_or(condition: str) -> bool:
    """True when ``OR`` appears outside parentheses and string literals."""
    depth = 0
    for m in _OR_SCAN_RE.finditer(condition or ""):
        token = m.group()
        if token == "(":
            depth += 1
        elif token == ")":
            depth -= 1
        elif not token.startswith("'") and depth == 0:
            return True
    return False


def _with_where(clause: str) -> str:
    clause = (clause or "").strip()
    if not clause:
        return ""
    return clause if has_where(clause) else f"WHERE {clause}"


# ── Main composition function ────────────────────────────────────────

def compose(existing_clause: str, existing_values: Sequence[Any], fragment: Fragment) -> ComposedPredicate:
    """
    Append an RLS fragment to an existing clause.

    The fragment is rendered after ``len(existing_values)`` parameters, so its
    ``$1`` becomes ``$n+1``. RLS is always the last predicate appended.
    """
    values = list(existing_values)
    base = _with_where(existing_clause)
    rls_text, rls_values = fragment.predicate.render(offset=len(values))

    if not rls_text:
        where_clause = base
    elif base:
        condition = strip_where(base)
        # AND binds tighter than OR; group so RLS applies to every branch.
        if has_top_level_or(condition):
            base = f"WHERE ({condition})"
        where_clause = f"{base} AND {rls_text}"
    else:
        where_clause = f"WHERE {rls_text}"
    values.extend(rls_values)

    check_placeholders(where_clause, values)
    return ComposedPredicate(where_clause=where_clause, values=values, rls_applied=fragment.applied)
