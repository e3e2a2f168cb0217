"""
Tagged predicate values, rendered to ``$n`` clause text only when composed.

A predicate renders in its own coordinate space starting after ``offset``
parameters, so ``Equals("wo.customer_id", 99).render()`` is
``("wo.customer_id = $1", [99])`` and ``.render(offset=2)`` is
``("wo.customer_id = $3", [99])``.
"""

from dataclasses import dataclass
from typing import Any, List, Tuple

DENY_CLAUSE = "1=0"


class Predicate:
    """Base class for predicate nodes."""

    def render(self, offset: int = 0) -> Tuple[str, List[Any]]:
        raise NotImplementedError


@dataclass(frozen=True)
class RawTrue(Predicate):
    """No restriction. Renders to an empty clause."""

    def render(self, offset: int = 0) -> Tuple[str, List[Any]]:
        return "", []


@dataclass(frozen=True)
class RawFalse(Predicate):
    """Matches nothing."""

    def render(self, offset: int = 0) -> Tuple[str, List[Any]]:
        return DENY_CLAUSE, []


@dataclass(frozen=True)
class Equals(Predicate):
    """``column = $n`` bound to a single value."""
    column: str
    value: Any

    def render(self, offset: int = 0) -> Tuple[str, List[Any]]:
        return f"{self.column} = ${offset + 1}", [self.value]


@dataclass(frozen=True)
class And(Predicate):
    """Conjunction; empty parts are dropped, placeholders run on across parts."""
    parts: Tuple[Predicate, ...]

    def render(self, offset: int = 0) -> Tuple[str, List[Any]]:
        clauses: List[str] = []
        values: List[Any] = []
        for part in self.parts:
            text, part_values = part.render(offset + len(values))
            if text:
                clauses.append(text)
                values.extend(part_values)
        return " AND ".join(clauses), values


TRUE = RawTrue()
FALSE = RawFalse()
