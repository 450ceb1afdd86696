# Copyright 2017-present Kensho Technologies, LLC.
"""Boolean filter expressions attached to pattern groups."""
from typing import TYPE_CHECKING, Tuple, Union

import funcy

from ..exceptions import MalformedPattern, UnsupportedFilterKind
from .compiler_entities import CompilerEntity
from .patterns import NATIVE_DATATYPES, XSD_STRING, EntityRef, Literal, Variable


if TYPE_CHECKING:
    from .filters import CypherFilterContext


FilterOperand = Union[Variable, Literal, EntityRef]

# Entities and literals are never equal, and are not ordered with respect to each other.
_MIXED_KIND_COMPARISON_RESULTS = {
    "=": "false",
    "!=": "true",
    "<": "null",
    "<=": "null",
    ">": "null",
    ">=": "null",
}


def _validate_operator_name(operator: str, supported_operators: frozenset) -> None:
    """Ensure the named operator is valid and supported."""
    if not isinstance(operator, str):
        raise MalformedPattern(
            "Expected operator as string, got: {} {}".format(type(operator).__name__, operator)
        )

    if operator not in supported_operators:
        raise MalformedPattern(
            "Unrecognized operator {}, supported operators are: {}".format(
                operator, sorted(supported_operators)
            )
        )


def _validate_operand(operand: FilterOperand, description: str) -> None:
    """Ensure the operand is a variable, a literal or an entity reference."""
    if not isinstance(operand, (Variable, Literal, EntityRef)):
        raise MalformedPattern(
            "Expected {} to be a Variable, Literal or EntityRef, got: {} {}".format(
                description, type(operand).__name__, operand
            )
        )


def _validate_variable(variable: Variable) -> None:
    """Ensure the argument is a variable."""
    if not isinstance(variable, Variable):
        raise MalformedPattern(
            "Expected Variable, got: {} {}".format(type(variable).__name__, variable)
        )


def _get_operand_variables(*operands: FilterOperand) -> Tuple[Variable, ...]:
    """Return the distinct variables among the operands, in order."""
    return tuple(funcy.distinct(operand for operand in operands if isinstance(operand, Variable)))


class FilterExpression(CompilerEntity):
    """A boolean expression over the variables of a pattern group."""

    __slots__ = ()

    def get_variables(self) -> Tuple[Variable, ...]:
        """Return the distinct variables referenced by this expression, in order."""
        raise NotImplementedError()

    def to_cypher(self, context: "CypherFilterContext") -> str:
        """Return a string with the Cypher representation of this expression."""
        raise NotImplementedError()


class Comparison(FilterExpression):
    """A comparison of two operands."""

    SUPPORTED_OPERATORS = frozenset({"<", "<=", ">", ">=", "=", "!="})

    __slots__ = ("operator", "left", "right")

    def __init__(self, operator: str, left: FilterOperand, right: FilterOperand) -> None:
        """Construct an expression that compares two operands.

        Args:
            operator: one of "<", "<=", ">", ">=", "=" or "!="
            left: Variable, Literal or EntityRef on the left side of the operator
            right: Variable, Literal or EntityRef on the right side of the operator
        """
        super(Comparison, self).__init__(operator, left, right)
        self.operator = operator
        self.left = left
        self.right = right
        self.validate()

    def validate(self) -> None:
        """Validate that the Comparison is correctly representable."""
        _validate_operator_name(self.operator, Comparison.SUPPORTED_OPERATORS)
        _validate_operand(self.left, "left operand")
        _validate_operand(self.right, "right operand")

    def get_variables(self) -> Tuple[Variable, ...]:
        """Return the variables among the two operands."""
        return _get_operand_variables(self.left, self.right)

    def to_cypher(self, context: "CypherFilterContext") -> str:
        """Return a string with the Cypher representation of this comparison.

        Literals of non-native datatypes are stored in their lexical form, which does not
        compare like their value, so comparisons with them are never pushed down. Comparisons
        of an entity with a literal do not depend on the row, and are rendered as constants.
        """
        self.validate()

        for operand in (self.left, self.right):
            if isinstance(operand, Literal) and operand.datatype not in NATIVE_DATATYPES:
                raise UnsupportedFilterKind(
                    "Comparisons with literals of datatype {} have no Cypher translation: "
                    "{}".format(operand.datatype, self)
                )

        if context.is_literal_operand(self.left) != context.is_literal_operand(self.right):
            return _MIXED_KIND_COMPARISON_RESULTS[self.operator]

        translation_table = {
            "=": "=",
            "!=": "<>",
            ">=": ">=",
            "<=": "<=",
            ">": ">",
            "<": "<",
        }
        return "{left} {operator} {right}".format(
            left=context.render_operand(self.left),
            operator=translation_table[self.operator],
            right=context.render_operand(self.right),
        )


class _BinaryConnective(FilterExpression):
    """A boolean connective joining two expressions."""

    CYPHER_OPERATOR = ""

    __slots__ = ("left", "right")

    def __init__(self, left: FilterExpression, right: FilterExpression) -> None:
        """Construct an expression joining the two given expressions."""
        super(_BinaryConnective, self).__init__(left, right)
        self.left = left
        self.right = right
        self.validate()

    def validate(self) -> None:
        """Validate that both sides are filter expressions."""
        for side_name, side in (("left", self.left), ("right", self.right)):
            if not isinstance(side, FilterExpression):
                raise MalformedPattern(
                    "Expected FilterExpression {}, got: {} {}".format(
                        side_name, type(side).__name__, side
                    )
                )
            side.validate()

    def get_variables(self) -> Tuple[Variable, ...]:
        """Return the variables of both sides."""
        return tuple(
            funcy.distinct(funcy.concat(self.left.get_variables(), self.right.get_variables()))
        )

    def to_cypher(self, context: "CypherFilterContext") -> str:
        """Return the connective, parenthesized exactly as written."""
        return "({} {} {})".format(
            self.left.to_cypher(context), self.CYPHER_OPERATOR, self.right.to_cypher(context)
        )


class Conjunction(_BinaryConnective):
    """True if both expressions are true."""

    CYPHER_OPERATOR = "AND"

    __slots__ = ()


class Disjunction(_BinaryConnective):
    """True if either expression is true."""

    CYPHER_OPERATOR = "OR"

    __slots__ = ()


class Negation(FilterExpression):
    """True if the inner expression is false."""

    __slots__ = ("inner",)

    def __init__(self, inner: FilterExpression) -> None:
        """Construct an expression negating the given expression."""
        super(Negation, self).__init__(inner)
        self.inner = inner
        self.validate()

    def validate(self) -> None:
        """Validate that the negated value is a filter expression."""
        if not isinstance(self.inner, FilterExpression):
            raise MalformedPattern(
                "Expected FilterExpression, got: {} {}".format(
                    type(self.inner).__name__, self.inner
                )
            )
        self.inner.validate()

    def get_variables(self) -> Tuple[Variable, ...]:
        """Return the variables of the inner expression."""
        return self.inner.get_variables()

    def to_cypher(self, context: "CypherFilterContext") -> str:
        """Return a string with the Cypher representation of this negation."""
        return "(NOT {})".format(self.inner.to_cypher(context))


class TypeTest(FilterExpression):
    """Test whether a variable is bound to a literal, or to an entity."""

    IS_LITERAL = "is_literal"
    IS_URI = "is_uri"
    SUPPORTED_TESTS = frozenset({IS_LITERAL, IS_URI})

    __slots__ = ("test", "variable")

    def __init__(self, test: str, variable: Variable) -> None:
        """Construct a type test of the given variable."""
        super(TypeTest, self).__init__(test, variable)
        self.test = test
        self.variable = variable
        self.validate()

    def validate(self) -> None:
        """Validate the test name and its argument."""
        _validate_operator_name(self.test, TypeTest.SUPPORTED_TESTS)
        _validate_variable(self.variable)

    def get_variables(self) -> Tuple[Variable, ...]:
        """Return the tested variable."""
        return (self.variable,)

    def to_cypher(self, context: "CypherFilterContext") -> str:
        """Compile the test into a property existence check, or into a constant false."""
        reference = context.get_reference(self.variable)
        if self.test == TypeTest.IS_LITERAL:
            matches_kind = reference.is_literal
        else:
            matches_kind = not reference.is_literal

        if matches_kind:
            return "{} IS NOT NULL".format(reference.expression)
        else:
            return "false"


class Bound(FilterExpression):
    """True if the variable is bound, which is only ever false inside optional groups."""

    __slots__ = ("variable",)

    def __init__(self, variable: Variable) -> None:
        """Construct a boundness test of the given variable."""
        super(Bound, self).__init__(variable)
        self.variable = variable
        self.validate()

    def validate(self) -> None:
        """Validate that the argument is a variable."""
        _validate_variable(self.variable)

    def get_variables(self) -> Tuple[Variable, ...]:
        """Return the tested variable."""
        return (self.variable,)

    def to_cypher(self, context: "CypherFilterContext") -> str:
        """Return a string with the Cypher representation of this test."""
        return "{} IS NOT NULL".format(context.get_reference(self.variable).expression)


class StringPredicate(FilterExpression):
    """Substring, prefix or suffix test of a variable against a string literal."""

    SUPPORTED_OPERATORS = frozenset({"contains", "starts_with", "ends_with"})

    __slots__ = ("operator", "variable", "literal")

    def __init__(self, operator: str, variable: Variable, literal: Literal) -> None:
        """Construct a string test of the variable against the literal."""
        super(StringPredicate, self).__init__(operator, variable, literal)
        self.operator = operator
        self.variable = variable
        self.literal = literal
        self.validate()

    def validate(self) -> None:
        """Validate that the operator is known and the literal is a string."""
        _validate_operator_name(self.operator, StringPredicate.SUPPORTED_OPERATORS)
        _validate_variable(self.variable)
        if not isinstance(self.literal, Literal) or self.literal.datatype != XSD_STRING:
            raise MalformedPattern(
                "Expected a string Literal, got: {} {}".format(
                    type(self.literal).__name__, self.literal
                )
            )

    def get_variables(self) -> Tuple[Variable, ...]:
        """Return the tested variable."""
        return (self.variable,)

    def to_cypher(self, context: "CypherFilterContext") -> str:
        """Return a string with the Cypher representation of this test."""
        translation_table = {
            "contains": "CONTAINS",
            "starts_with": "STARTS WITH",
            "ends_with": "ENDS WITH",
        }
        return "{} {} {}".format(
            context.render_operand(self.variable),
            translation_table[self.operator],
            context.render_operand(self.literal),
        )


class FunctionCall(FilterExpression):
    """A call of a named function, which the database is not assumed to know."""

    __slots__ = ("name", "arguments")

    def __init__(self, name: str, arguments: Tuple[FilterOperand, ...]) -> None:
        """Construct a call of the named function with the given arguments."""
        arguments = tuple(arguments)
        super(FunctionCall, self).__init__(name, arguments)
        self.name = name
        self.arguments = arguments
        self.validate()

    def validate(self) -> None:
        """Validate the function name and its arguments."""
        if not isinstance(self.name, str) or not self.name:
            raise MalformedPattern("Expected a non-empty function name, got: {}".format(self.name))
        for argument in self.arguments:
            _validate_operand(argument, "function argument")

    def get_variables(self) -> Tuple[Variable, ...]:
        """Return the variables among the arguments."""
        return _get_operand_variables(*self.arguments)

    def to_cypher(self, context: "CypherFilterContext") -> str:
        """Function calls are never pushed down."""
        raise UnsupportedFilterKind(
            "Function {} has no Cypher translation: {}".format(self.name, self)
        )
