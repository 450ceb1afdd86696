# Copyright 2020-present Kensho Technologies, LLC.
from typing import Any, Mapping, Optional

from ..compiler.expressions import (
    Bound,
    Comparison,
    Conjunction,
    Disjunction,
    FilterExpression,
    FilterOperand,
    FunctionCall,
    Negation,
    StringPredicate,
    TypeTest,
)
from ..compiler.patterns import EntityRef, Literal, RdfValue, Variable
from ..exceptions import UnsupportedFilterKind
from .operators import apply_and, apply_not, apply_operator, apply_or, get_comparable_value
from .typedefs import ExtensionFunctions, FilterEvaluatorFunc


def _get_operand_value(
    operand: FilterOperand, bindings: Mapping[str, RdfValue]
) -> Optional[RdfValue]:
    """Return the value of the operand, or None if it is an unbound variable."""
    if isinstance(operand, Variable):
        return bindings.get(operand.name)
    return operand


def _evaluate_comparison(
    evaluator_func: FilterEvaluatorFunc,
    expression: Comparison,
    bindings: Mapping[str, RdfValue],
    extension_functions: ExtensionFunctions,
) -> Optional[bool]:
    return apply_operator(
        expression.operator,
        get_comparable_value(_get_operand_value(expression.left, bindings)),
        get_comparable_value(_get_operand_value(expression.right, bindings)),
    )


def _evaluate_conjunction(
    evaluator_func: FilterEvaluatorFunc,
    expression: Conjunction,
    bindings: Mapping[str, RdfValue],
    extension_functions: ExtensionFunctions,
) -> Optional[bool]:
    return apply_and(
        evaluator_func(expression.left, bindings, extension_functions),
        evaluator_func(expression.right, bindings, extension_functions),
    )


def _evaluate_disjunction(
    evaluator_func: FilterEvaluatorFunc,
    expression: Disjunction,
    bindings: Mapping[str, RdfValue],
    extension_functions: ExtensionFunctions,
) -> Optional[bool]:
    return apply_or(
        evaluator_func(expression.left, bindings, extension_functions),
        evaluator_func(expression.right, bindings, extension_functions),
    )


def _evaluate_negation(
    evaluator_func: FilterEvaluatorFunc,
    expression: Negation,
    bindings: Mapping[str, RdfValue],
    extension_functions: ExtensionFunctions,
) -> Optional[bool]:
    return apply_not(evaluator_func(expression.inner, bindings, extension_functions))


def _evaluate_type_test(
    evaluator_func: FilterEvaluatorFunc,
    expression: TypeTest,
    bindings: Mapping[str, RdfValue],
    extension_functions: ExtensionFunctions,
) -> Optional[bool]:
    # Unbound variables are neither literals nor entities.
    value = bindings.get(expression.variable.name)
    if expression.test == TypeTest.IS_LITERAL:
        return isinstance(value, Literal)
    else:
        return isinstance(value, EntityRef)


def _evaluate_bound(
    evaluator_func: FilterEvaluatorFunc,
    expression: Bound,
    bindings: Mapping[str, RdfValue],
    extension_functions: ExtensionFunctions,
) -> Optional[bool]:
    return expression.variable.name in bindings


def _evaluate_string_predicate(
    evaluator_func: FilterEvaluatorFunc,
    expression: StringPredicate,
    bindings: Mapping[str, RdfValue],
    extension_functions: ExtensionFunctions,
) -> Optional[bool]:
    return apply_operator(
        expression.operator,
        get_comparable_value(bindings.get(expression.variable.name)),
        expression.literal.value,
    )


def _evaluate_function_call(
    evaluator_func: FilterEvaluatorFunc,
    expression: FunctionCall,
    bindings: Mapping[str, RdfValue],
    extension_functions: ExtensionFunctions,
) -> Optional[bool]:
    function = extension_functions.get(expression.name)
    if function is None:
        raise UnsupportedFilterKind(
            "No implementation was provided for function {}: {}".format(
                expression.name, expression
            )
        )
    arguments = [_get_operand_value(argument, bindings) for argument in expression.arguments]
    return function(*arguments)


def evaluate_filter(
    expression: FilterExpression,
    bindings: Mapping[str, RdfValue],
    extension_functions: ExtensionFunctions,
) -> Any:
    """Return True, False or None (unknown) for the filter under the given bindings."""
    type_to_handler = {
        Comparison: _evaluate_comparison,
        Conjunction: _evaluate_conjunction,
        Disjunction: _evaluate_disjunction,
        Negation: _evaluate_negation,
        TypeTest: _evaluate_type_test,
        Bound: _evaluate_bound,
        StringPredicate: _evaluate_string_predicate,
        FunctionCall: _evaluate_function_call,
    }
    handler = type_to_handler[type(expression)]

    # N.B.: We pass "evaluate_filter" (i.e. this dispatch function) into the specific handler,
    #       since connectives contain nested sub-expressions.
    return handler(evaluate_filter, expression, bindings, extension_functions)


def passes_filter(
    expression: FilterExpression,
    bindings: Mapping[str, RdfValue],
    extension_functions: ExtensionFunctions,
) -> bool:
    """Return True if the filter is true, rather than false or unknown, under the bindings."""
    return evaluate_filter(expression, bindings, extension_functions) is True
