# Copyright 2017-present Kensho Technologies, LLC.
"""Terms, triple patterns, pattern groups and pending writes."""
from dataclasses import dataclass, field
import datetime
import decimal
from typing import TYPE_CHECKING, Iterator, List, Optional, Tuple, Union

import funcy

from ..exceptions import MalformedPattern
from .helpers import validate_safe_string


if TYPE_CHECKING:
    from .expressions import FilterExpression


XSD_NAMESPACE = "http://www.w3.org/2001/XMLSchema#"
XSD_STRING = XSD_NAMESPACE + "string"
XSD_INTEGER = XSD_NAMESPACE + "integer"
XSD_DOUBLE = XSD_NAMESPACE + "double"
XSD_BOOLEAN = XSD_NAMESPACE + "boolean"
XSD_DECIMAL = XSD_NAMESPACE + "decimal"
XSD_DATE = XSD_NAMESPACE + "date"
XSD_DATETIME = XSD_NAMESPACE + "dateTime"

# Literals of these datatypes are stored as native property values, with no datatype companion.
NATIVE_DATATYPES = frozenset({XSD_STRING, XSD_INTEGER, XSD_DOUBLE, XSD_BOOLEAN})

LiteralValueType = Union[str, int, float, bool, decimal.Decimal, datetime.date, datetime.datetime]


def infer_datatype(value: LiteralValueType) -> str:
    """Return the XSD datatype IRI matching the Python type of the given literal value."""
    # bool is a subclass of int, and datetime is a subclass of date, so order matters here.
    if isinstance(value, bool):
        return XSD_BOOLEAN
    elif isinstance(value, int):
        return XSD_INTEGER
    elif isinstance(value, float):
        return XSD_DOUBLE
    elif isinstance(value, decimal.Decimal):
        return XSD_DECIMAL
    elif isinstance(value, datetime.datetime):
        return XSD_DATETIME
    elif isinstance(value, datetime.date):
        return XSD_DATE
    elif isinstance(value, str):
        return XSD_STRING
    else:
        raise MalformedPattern(
            "Cannot represent value {} of type {} as a literal.".format(value, type(value).__name__)
        )


@dataclass(frozen=True)
class Variable:
    """A named placeholder in a triple pattern."""

    name: str

    def __post_init__(self) -> None:
        """Ensure the variable name can be used verbatim as a Cypher identifier."""
        validate_safe_string(self.name, value_description="variable name")
        if self.name.startswith("_"):
            raise MalformedPattern(
                "Variable names starting with an underscore are reserved for generated "
                "identifiers: {}".format(self.name)
            )

    def __str__(self) -> str:
        """Return the variable in its usual "?name" notation."""
        return "?" + self.name


@dataclass(frozen=True)
class EntityRef:
    """A reference to an entity (graph node), identified by its IRI."""

    uri: str

    def __post_init__(self) -> None:
        """Validate that the reference is not empty."""
        if not isinstance(self.uri, str) or not self.uri:
            raise MalformedPattern("Expected a non-empty string IRI, got: {}".format(self.uri))

    def __str__(self) -> str:
        """Return the IRI in angle-bracket notation."""
        return "<{}>".format(self.uri)


@dataclass(frozen=True)
class Literal:
    """A literal value, with its XSD datatype."""

    value: LiteralValueType
    datatype: Optional[str] = None

    def __post_init__(self) -> None:
        """Infer the datatype if it was not given explicitly."""
        if self.datatype is None:
            object.__setattr__(self, "datatype", infer_datatype(self.value))

    def __str__(self) -> str:
        """Return the literal in a readable, Turtle-like notation."""
        if self.datatype == XSD_STRING:
            return '"{}"'.format(self.value)
        return '"{}"^^<{}>'.format(self.value, self.datatype)


RdfValue = Union[Literal, EntityRef]
SubjectTerm = Union[Variable, EntityRef]
PredicateTerm = Union[Variable, EntityRef]
ObjectTerm = Union[Variable, EntityRef, Literal]


@dataclass(frozen=True)
class TriplePattern:
    """A subject-predicate-object template in which any slot may be a variable."""

    subject: SubjectTerm
    predicate: PredicateTerm
    object: ObjectTerm

    def __post_init__(self) -> None:
        """Validate the kinds of terms allowed in each slot."""
        if not isinstance(self.subject, (Variable, EntityRef)):
            raise MalformedPattern(
                "Subject must be a variable or an entity, got: {}".format(self.subject)
            )
        if not isinstance(self.predicate, (Variable, EntityRef)):
            raise MalformedPattern(
                "Predicate must be a variable or an entity, got: {}".format(self.predicate)
            )
        if not isinstance(self.object, (Variable, EntityRef, Literal)):
            raise MalformedPattern(
                "Object must be a variable, an entity or a literal, got: {}".format(self.object)
            )

    def get_variables(self) -> Tuple[Variable, ...]:
        """Return the pattern's variables, in subject-predicate-object order, without repeats."""
        return tuple(funcy.distinct(term for term in self if isinstance(term, Variable)))

    def __iter__(self) -> Iterator[ObjectTerm]:
        """Iterate over the subject, predicate and object."""
        return iter((self.subject, self.predicate, self.object))

    def __str__(self) -> str:
        """Return the pattern in a readable, SPARQL-like notation."""
        return "{} {} {} .".format(self.subject, self.predicate, self.object)


@dataclass(frozen=True)
class PatternGroup:
    """A conjunction of triple patterns, with attached filters and optional groups.

    Pattern groups are immutable, and two groups with the same structure compare and hash
    equal, so the group itself is its canonical form.
    """

    patterns: Tuple[TriplePattern, ...]
    filters: Tuple["FilterExpression", ...] = field(default_factory=tuple)
    optional_groups: Tuple["PatternGroup", ...] = field(default_factory=tuple)

    def __post_init__(self) -> None:
        """Coerce the members to tuples, so that groups built from lists stay hashable."""
        object.__setattr__(self, "patterns", tuple(self.patterns))
        object.__setattr__(self, "filters", tuple(self.filters))
        object.__setattr__(self, "optional_groups", tuple(self.optional_groups))

    def get_pattern_variables(self) -> Tuple[Variable, ...]:
        """Return the variables of this group's own patterns, in order of first appearance."""
        return tuple(
            funcy.distinct(funcy.cat(pattern.get_variables() for pattern in self.patterns))
        )

    def get_all_variables(self) -> Tuple[Variable, ...]:
        """Return every pattern variable, including those of optional groups, in order."""
        nested_variables = funcy.cat(
            optional_group.get_all_variables() for optional_group in self.optional_groups
        )
        return tuple(funcy.distinct(funcy.concat(self.get_pattern_variables(), nested_variables)))

    def without_optional_groups(self) -> "PatternGroup":
        """Return the base group: the same patterns and filters, with no optional groups."""
        return PatternGroup(self.patterns, self.filters)


def _validate_group(group: PatternGroup, visible_variables: Tuple[Variable, ...]) -> None:
    """Validate one group, given the variables visible to it from enclosing groups."""
    if not group.patterns:
        raise MalformedPattern("Pattern groups must contain at least one pattern: {}".format(group))

    for pattern in group.patterns:
        if not isinstance(pattern, TriplePattern):
            raise MalformedPattern("Expected TriplePattern, got: {}".format(pattern))

    available_variables = set(visible_variables) | set(group.get_all_variables())
    for filter_expression in group.filters:
        filter_expression.validate()
        free_variables = set(filter_expression.get_variables()) - available_variables
        if free_variables:
            raise MalformedPattern(
                "Filter {} references variables {} that appear in no pattern.".format(
                    filter_expression, sorted(str(variable) for variable in free_variables)
                )
            )

    enclosing_variables = tuple(funcy.concat(visible_variables, group.get_pattern_variables()))
    for optional_group in group.optional_groups:
        _validate_group(optional_group, enclosing_variables)


def validate_pattern_group(group: PatternGroup) -> None:
    """Raise MalformedPattern if the pattern group can never be evaluated."""
    if not isinstance(group, PatternGroup):
        raise MalformedPattern("Expected PatternGroup, got: {}".format(group))
    _validate_group(group, ())


@dataclass(frozen=True)
class _PendingWrite:
    """A fully-bound fact that is waiting to be added or removed."""

    subject: EntityRef
    predicate: EntityRef
    object: RdfValue

    def __post_init__(self) -> None:
        """Ensure the fact is fully bound."""
        if not isinstance(self.subject, EntityRef) or not isinstance(self.predicate, EntityRef):
            raise MalformedPattern(
                "Pending writes need a bound subject and predicate, got: {} {}".format(
                    self.subject, self.predicate
                )
            )
        if not isinstance(self.object, (EntityRef, Literal)):
            raise MalformedPattern(
                "Pending writes need a bound object, got: {}".format(self.object)
            )


@dataclass(frozen=True)
class AddFact(_PendingWrite):
    """A fact to be added to the graph."""


@dataclass(frozen=True)
class RemoveFact(_PendingWrite):
    """A fact to be removed from the graph."""


PendingWrite = Union[AddFact, RemoveFact]
PendingWriteList = List[PendingWrite]
