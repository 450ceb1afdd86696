# Copyright 2019-present Kensho Technologies, LLC.
"""Grouped aggregates computed over the solutions of a pattern group."""
from dataclasses import dataclass
from typing import Optional, Sequence

from ..exceptions import MalformedPattern
from .patterns import PatternGroup, Variable, validate_pattern_group


COUNT = "count"
SUM = "sum"
AVG = "avg"
MIN = "min"
MAX = "max"

SUPPORTED_FUNCTIONS = frozenset({COUNT, SUM, AVG, MIN, MAX})
# These only ever take numeric values into account.
NUMERIC_FUNCTIONS = frozenset({SUM, AVG, MIN, MAX})


@dataclass(frozen=True)
class Aggregate:
    """One aggregate of the solutions of each group, bound to a result variable.

    Attributes:
        function: one of "count", "sum", "avg", "min" or "max"
        variable: the aggregated Variable, or None to count every solution, like count(*)
        result: Variable bound to the aggregate's value in each result row
        distinct: whether only distinct values are counted
    """

    function: str
    variable: Optional[Variable]
    result: Variable
    distinct: bool = False

    def __post_init__(self) -> None:
        """Validate the aggregate."""
        if self.function not in SUPPORTED_FUNCTIONS:
            raise MalformedPattern(
                "Unrecognized aggregate function {}, supported functions are: {}".format(
                    self.function, sorted(SUPPORTED_FUNCTIONS)
                )
            )
        if self.variable is None:
            if self.function != COUNT or self.distinct:
                raise MalformedPattern(
                    "Only a non-distinct count can aggregate every solution: {}".format(self)
                )
        elif not isinstance(self.variable, Variable):
            raise MalformedPattern(
                "Expected the aggregated value to be a Variable, got: {} {}".format(
                    type(self.variable).__name__, self.variable
                )
            )
        if not isinstance(self.result, Variable):
            raise MalformedPattern(
                "Expected the result to be a Variable, got: {} {}".format(
                    type(self.result).__name__, self.result
                )
            )
        if self.distinct and self.function != COUNT:
            raise MalformedPattern("Only counts can be distinct: {}".format(self))

    @property
    def is_nullable(self) -> bool:
        """Return True if the aggregate of a group can be unbound. Counts and sums never are."""
        return self.function not in (COUNT, SUM)

    def __str__(self) -> str:
        """Return the aggregate in a readable, SPARQL-like notation."""
        argument = "*" if self.variable is None else str(self.variable)
        if self.distinct:
            argument = "DISTINCT " + argument
        return "({}({}) AS {})".format(self.function.upper(), argument, self.result)


def validate_aggregation(
    group: PatternGroup, group_by: Sequence[Variable], aggregates: Sequence[Aggregate]
) -> None:
    """Ensure the aggregation of the group's solutions is well-formed.

    Raises:
        MalformedPattern: if the group is malformed, if a grouping or aggregated variable is not
                          a variable of the group, or if two result columns share a name
    """
    validate_pattern_group(group)
    if not aggregates:
        raise MalformedPattern("Expected at least one aggregate, got none.")

    group_variables = frozenset(group.get_all_variables())
    for variable in group_by:
        if not isinstance(variable, Variable) or variable not in group_variables:
            raise MalformedPattern(
                "Cannot group by {}, which is not a variable of the group.".format(variable)
            )
    for aggregate in aggregates:
        if aggregate.variable is not None and aggregate.variable not in group_variables:
            raise MalformedPattern(
                "Cannot compute {}, since {} is not a variable of the group.".format(
                    aggregate, aggregate.variable
                )
            )

    result_names = [variable.name for variable in group_by]
    result_names.extend(aggregate.result.name for aggregate in aggregates)
    if len(result_names) != len(set(result_names)):
        raise MalformedPattern(
            "Grouping variables and aggregate results must have distinct names: {}".format(
                result_names
            )
        )
