# Copyright 2020-present Kensho Technologies, LLC.
from typing import Any, Callable, Dict, Optional

from ..compiler.patterns import EntityRef, Literal, RdfValue


# Define the various operators' behavior for values other than None.
# The behavior with respect to None is defined explicitly in the "apply_operator()" function.
_operator_definitions_for_non_null_values: Dict[str, Callable[[Any, Any], bool]] = {
    "=": lambda left, right: left == right,
    ">": lambda left, right: left > right,
    ">=": lambda left, right: left >= right,
    "<": lambda left, right: left < right,
    "<=": lambda left, right: left <= right,
    "!=": lambda left, right: left != right,
    "contains": lambda left, right: right in left,
    "starts_with": lambda left, right: left.startswith(right),
    "ends_with": lambda left, right: left.endswith(right),
}

_STRING_OPERATORS = frozenset({"contains", "starts_with", "ends_with"})


def get_comparable_value(value: Optional[RdfValue]) -> Any:
    """Return the plain value compared by filters: an entity's IRI, or a literal's value."""
    if value is None:
        return None
    elif isinstance(value, EntityRef):
        return value.uri
    elif isinstance(value, Literal):
        return value.value
    else:
        raise AssertionError(
            "Unreachable code reached: unexpected value {} {}".format(type(value).__name__, value)
        )


def apply_operator(operator: str, left_value: Any, right_value: Any) -> Optional[bool]:
    # Cypher-like three-valued semantics, where None means "unknown":
    # - any comparison involving None is None, including None = None
    # - values that cannot be compared with each other compare as None
    # - string operators on non-string values are None
    if left_value is None or right_value is None:
        return None

    operator_handler = _operator_definitions_for_non_null_values.get(operator, None)
    if operator_handler is None:
        raise NotImplementedError(f"Operator {operator} is not currently implemented.")

    if operator in _STRING_OPERATORS and not (
        isinstance(left_value, str) and isinstance(right_value, str)
    ):
        return None

    # bool is an int in Python, but booleans and numbers are different types in Cypher.
    if isinstance(left_value, bool) == isinstance(right_value, bool):
        try:
            return operator_handler(left_value, right_value)
        except TypeError:
            pass

    # Values of different types are never equal, and are not ordered.
    if operator == "=":
        return False
    elif operator == "!=":
        return True
    return None


def apply_and(left_value: Optional[bool], right_value: Optional[bool]) -> Optional[bool]:
    """Three-valued conjunction: false wins over unknown."""
    if left_value is False or right_value is False:
        return False
    elif left_value is None or right_value is None:
        return None
    return True


def apply_or(left_value: Optional[bool], right_value: Optional[bool]) -> Optional[bool]:
    """Three-valued disjunction: true wins over unknown."""
    if left_value is True or right_value is True:
        return True
    elif left_value is None or right_value is None:
        return None
    return False


def apply_not(value: Optional[bool]) -> Optional[bool]:
    """Three-valued negation."""
    if value is None:
        return None
    return not value
