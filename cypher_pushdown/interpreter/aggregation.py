# Copyright 2020-present Kensho Technologies, LLC.
"""Grouped aggregates over solutions produced by row-at-a-time evaluation."""
import math
from typing import Dict, Iterable, Iterator, List, Optional, Sequence, Tuple

import funcy

from ..compiler.aggregation import AVG, COUNT, MAX, MIN, SUM, Aggregate
from ..compiler.patterns import Literal, RdfValue, Variable
from .typedefs import Bindings


def _is_number(value: RdfValue) -> bool:
    """Return True if the value is a numeric literal that the database would aggregate."""
    if not isinstance(value, Literal):
        return False
    number = value.value
    # bool is a subclass of int, but booleans are not numbers.
    if isinstance(number, bool) or not isinstance(number, (int, float)):
        return False
    return not math.isnan(number)


def _compute_aggregate(
    aggregate: Aggregate, solutions: Sequence[Bindings]
) -> Optional[RdfValue]:
    """Return the aggregate of one group of solutions, or None if it is unbound."""
    if aggregate.variable is None:
        return Literal(len(solutions))

    variable_name = aggregate.variable.name
    values = [bindings[variable_name] for bindings in solutions if variable_name in bindings]
    if aggregate.function == COUNT:
        if aggregate.distinct:
            values = list(funcy.distinct(values))
        return Literal(len(values))

    numbers = [value.value for value in values if _is_number(value)]
    if aggregate.function == SUM:
        return Literal(sum(numbers))
    elif not numbers:
        return None
    elif aggregate.function == AVG:
        return Literal(sum(numbers) / len(numbers))
    elif aggregate.function == MIN:
        return Literal(min(numbers))
    elif aggregate.function == MAX:
        return Literal(max(numbers))
    else:
        raise AssertionError(
            "Unreachable code reached: unknown aggregate function {}".format(aggregate.function)
        )


def aggregate_solutions(
    solutions: Iterable[Bindings], group_by: Sequence[Variable], aggregates: Sequence[Aggregate]
) -> Iterator[Bindings]:
    """Group the solutions by the values of the grouping variables, and aggregate each group.

    Unbound grouping variables form a group of their own. Without grouping variables, exactly one
    row is produced, even if there are no solutions at all.

    Args:
        solutions: binding dicts to aggregate, consumed once
        group_by: variables whose values identify each group of solutions
        aggregates: Aggregates to compute over each group of solutions

    Returns:
        generator of binding dicts, one per group, in order of each group's first solution.
        Each binds the group's values of the grouping variables and the aggregate results,
        leaving unbound aggregates and grouping variables absent.
    """
    grouped_solutions: Dict[Tuple[Optional[RdfValue], ...], List[Bindings]] = {}
    for bindings in solutions:
        key = tuple(bindings.get(variable.name) for variable in group_by)
        grouped_solutions.setdefault(key, []).append(bindings)
    if not group_by and not grouped_solutions:
        grouped_solutions[()] = []

    for key, group_solutions in grouped_solutions.items():
        row: Bindings = {
            variable.name: value for variable, value in zip(group_by, key) if value is not None
        }
        for aggregate in aggregates:
            value = _compute_aggregate(aggregate, group_solutions)
            if value is not None:
                row[aggregate.result.name] = value
        yield row
