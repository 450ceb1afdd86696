# Copyright 2019-present Kensho Technologies, LLC.
"""Translate filter expressions into boolean Cypher expressions."""
from dataclasses import dataclass
from typing import Any, Dict, Mapping, NamedTuple

from ..deserialization import serialize_literal
from ..exceptions import UnsupportedFilterKind
from .cypher_helpers import ParameterAllocator
from .expressions import FilterExpression, FilterOperand
from .patterns import EntityRef, Literal, Variable


class VariableReference(NamedTuple):
    """How a variable can be read inside one branch of a compiled query."""

    # Cypher expression evaluating to the variable's comparable value: the IRI string of an
    # entity or predicate, or the stored value of a literal.
    expression: str
    # Whether the variable is bound to a literal in this branch.
    is_literal: bool


class CypherFilterContext(object):
    """The variables in scope, and the parameters allocated so far, during translation."""

    def __init__(
        self,
        variable_references: Mapping[str, VariableReference],
        allocator: ParameterAllocator,
    ) -> None:
        """Create a context that reads variables via the given references.

        Args:
            variable_references: variable name -> VariableReference for the current branch
            allocator: ParameterAllocator shared by every fragment of the compiled query
        """
        self.variable_references = variable_references
        self.allocator = allocator

    def get_reference(self, variable: Variable) -> VariableReference:
        """Return the reference to the given variable in the current branch."""
        reference = self.variable_references.get(variable.name)
        if reference is None:
            raise AssertionError(
                "Filter variable {} is not in scope. In scope: {}".format(
                    variable, sorted(self.variable_references)
                )
            )
        return reference

    def is_literal_operand(self, operand: FilterOperand) -> bool:
        """Return True if the operand evaluates to a literal in the current branch."""
        if isinstance(operand, Variable):
            return self.get_reference(operand).is_literal
        return isinstance(operand, Literal)

    def render_operand(self, operand: FilterOperand) -> str:
        """Render a variable as its accessor, and a constant as a fresh parameter."""
        if isinstance(operand, Variable):
            return self.get_reference(operand).expression
        elif isinstance(operand, EntityRef):
            return self.allocator.allocate(operand.uri)
        elif isinstance(operand, Literal):
            stored_value, _ = serialize_literal(operand)
            return self.allocator.allocate(stored_value)
        else:
            raise AssertionError(
                "Unreachable code reached: unexpected operand {} {}".format(
                    type(operand).__name__, operand
                )
            )


@dataclass(frozen=True)
class FilterTranslation:
    """A boolean Cypher expression, and the parameters it was translated with."""

    fragment: str
    parameters: Dict[str, Any]


##############
# Public API #
##############


def translate_filter(
    expression: FilterExpression,
    variable_references: Mapping[str, VariableReference],
    allocator: ParameterAllocator,
) -> FilterTranslation:
    """Translate the filter expression into a boolean Cypher expression.

    Args:
        expression: FilterExpression to translate
        variable_references: variable name -> VariableReference for the branch being emitted
        allocator: ParameterAllocator of the query being emitted, so that parameter names stay
                   unique across every fragment of the query

    Returns:
        FilterTranslation with the fragment, and every parameter allocated so far

    Raises:
        UnsupportedFilterKind: if the expression contains a construct with no Cypher equivalent.
                               The caller is expected to evaluate the group some other way.
    """
    context = CypherFilterContext(variable_references, allocator)
    fragment = expression.to_cypher(context)
    return FilterTranslation(fragment=fragment, parameters=allocator.parameters)


def is_translatable_filter(expression: FilterExpression) -> bool:
    """Return True if the expression could be translated, without emitting anything."""
    # Every variable renders as itself, so translation only fails on untranslatable constructs.
    placeholder_references = {
        variable.name: VariableReference(variable.name, is_literal=False)
        for variable in expression.get_variables()
    }
    try:
        translate_filter(expression, placeholder_references, ParameterAllocator())
    except UnsupportedFilterKind:
        return False
    return True
