# Copyright 2019-present Kensho Technologies, LLC.
"""The closed set of pattern group shapes the compiler knows how to push down."""
from dataclasses import dataclass
from typing import Optional, Tuple, Union

from .patterns import PatternGroup, TriplePattern, Variable


@dataclass(frozen=True)
class FixedTriple:
    """A single fully-bound pattern: an existence check."""

    pattern: TriplePattern


@dataclass(frozen=True)
class TypeQuery:
    """A single type-membership pattern with a variable subject and a bound class."""

    pattern: TriplePattern


@dataclass(frozen=True)
class VariablePredicateSingleSubject:
    """A single pattern with a bound subject and a variable predicate."""

    pattern: TriplePattern


@dataclass(frozen=True)
class VariableObjectSingleTriple:
    """A single pattern with a bound predicate and a variable object."""

    pattern: TriplePattern


@dataclass(frozen=True)
class ClosedChain:
    """Several patterns whose object variables are all used as subjects elsewhere."""

    patterns: Tuple[TriplePattern, ...]


@dataclass(frozen=True)
class MultiHop:
    """A linear path of patterns from a bound start entity, in path order."""

    patterns: Tuple[TriplePattern, ...]

    @property
    def end_variable(self) -> Optional[Variable]:
        """Return the variable at the end of the path, or None if the path ends bound."""
        end = self.patterns[-1].object
        return end if isinstance(end, Variable) else None


@dataclass(frozen=True)
class Unsupported:
    """A group that cannot be pushed down, and must be evaluated row-at-a-time."""

    reason: str


BaseShape = Union[
    FixedTriple,
    TypeQuery,
    VariablePredicateSingleSubject,
    VariableObjectSingleTriple,
    ClosedChain,
    MultiHop,
]


@dataclass(frozen=True)
class OptionalJoin:
    """A pushed-down base shape, left-joined with the group's optional groups."""

    base: BaseShape
    optional_groups: Tuple[PatternGroup, ...]


Shape = Union[BaseShape, OptionalJoin, Unsupported]


def get_shape_name(shape: Shape) -> str:
    """Return the name of the shape, as used in logs and compiled queries."""
    return type(shape).__name__
