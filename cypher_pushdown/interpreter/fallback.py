# Copyright 2020-present Kensho Technologies, LLC.
"""Row-at-a-time evaluation of pattern groups that cannot be pushed down."""
from typing import Iterable, Iterator, Mapping, Optional, Sequence

from ..compiler.aggregation import Aggregate
from ..compiler.expressions import FilterExpression
from ..compiler.patterns import Literal, ObjectTerm, PatternGroup, RdfValue, TriplePattern, Variable
from .aggregation import aggregate_solutions
from .expression_evaluation import passes_filter
from .typedefs import Bindings, ExtensionFunctions, ForEachMatch


def _substitute_term(term: ObjectTerm, bindings: Mapping[str, RdfValue]) -> ObjectTerm:
    """Return the bound value of a variable term, or the term itself."""
    if isinstance(term, Variable):
        return bindings.get(term.name, term)
    return term


def _substitute_pattern(
    pattern: TriplePattern, bindings: Mapping[str, RdfValue]
) -> Optional[TriplePattern]:
    """Return the pattern with its bound variables replaced, or None if nothing can match it."""
    subject = _substitute_term(pattern.subject, bindings)
    predicate = _substitute_term(pattern.predicate, bindings)
    obj = _substitute_term(pattern.object, bindings)
    if isinstance(subject, Literal) or isinstance(predicate, Literal):
        # Literals never appear in the subject or predicate position of a fact.
        return None
    return TriplePattern(subject, predicate, obj)


def _merge_compatible_bindings(
    bindings: Mapping[str, RdfValue], new_bindings: Mapping[str, RdfValue]
) -> Optional[Bindings]:
    """Return the union of the two bindings, or None if they disagree on a variable."""
    merged = dict(bindings)
    for name, value in new_bindings.items():
        existing_value = merged.get(name)
        if existing_value is None:
            merged[name] = value
        elif existing_value != value:
            return None
    return merged


class FallbackEvaluator(object):
    """Evaluate pattern groups with one collaborator call per pattern and partial solution."""

    def __init__(
        self,
        for_each_match: ForEachMatch,
        extension_functions: Optional[ExtensionFunctions] = None,
    ) -> None:
        """Create a new FallbackEvaluator.

        Args:
            for_each_match: function that, given a TriplePattern, returns one mapping per
                            matching fact, binding each of the pattern's variables
            extension_functions: optional dict, function name -> implementation, used to
                                 evaluate FunctionCall filters
        """
        self._for_each_match = for_each_match
        self._extension_functions: ExtensionFunctions = dict(extension_functions or {})

    def _join_pattern(
        self, solutions: Iterable[Bindings], pattern: TriplePattern
    ) -> Iterator[Bindings]:
        """Extend every solution with every compatible match of the pattern."""
        for bindings in solutions:
            substituted_pattern = _substitute_pattern(pattern, bindings)
            if substituted_pattern is None:
                continue
            for match in self._for_each_match(substituted_pattern):
                merged = _merge_compatible_bindings(bindings, match)
                if merged is not None:
                    yield merged

    def _left_join(
        self, solutions: Iterable[Bindings], optional_group: PatternGroup
    ) -> Iterator[Bindings]:
        """Extend every solution with the optional group, keeping solutions it does not match."""
        for bindings in solutions:
            matched = False
            for extended_bindings in self._evaluate_group(optional_group, [bindings]):
                matched = True
                yield extended_bindings
            if not matched:
                yield bindings

    def _evaluate_group(
        self, group: PatternGroup, solutions: Iterable[Bindings]
    ) -> Iterator[Bindings]:
        """Evaluate the group on top of the given partial solutions."""
        for pattern in group.patterns:
            solutions = self._join_pattern(solutions, pattern)
        for optional_group in group.optional_groups:
            solutions = self._left_join(solutions, optional_group)
        for filter_expression in group.filters:
            solutions = self._apply_filter(solutions, filter_expression)
        return iter(solutions)

    def _apply_filter(
        self, solutions: Iterable[Bindings], filter_expression: FilterExpression
    ) -> Iterator[Bindings]:
        """Keep the solutions for which the filter is true, and not false or unknown."""
        return (
            bindings
            for bindings in solutions
            if passes_filter(filter_expression, bindings, self._extension_functions)
        )

    def evaluate(self, group: PatternGroup) -> Iterator[Bindings]:
        """Lazily return one binding dict per solution of the group.

        Optional groups are left-joined after the group's own patterns, with their own filters
        applied inside the join. The group's filters are applied last, so they may refer to
        variables of optional groups.
        """
        return self._evaluate_group(group, [{}])

    def evaluate_aggregation(
        self, group: PatternGroup, group_by: Sequence[Variable], aggregates: Sequence[Aggregate]
    ) -> Iterator[Bindings]:
        """Return one binding dict per group of the group's solutions, with its aggregates."""
        return aggregate_solutions(self.evaluate(group), group_by, aggregates)
