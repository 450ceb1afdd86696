# Copyright 2020-present Kensho Technologies, LLC.
"""Run pattern groups against the graph, natively when possible and row-at-a-time otherwise."""
import logging
from typing import Any, Dict, Iterable, Iterator, Mapping, Optional, Sequence

from .compiler.aggregation import Aggregate
from .compiler.common import compile_aggregation, compile_pattern_group, compile_union
from .compiler.cypher_query import ColumnPlan
from .compiler.patterns import PatternGroup, RdfValue, Variable
from .exceptions import UnsupportedShape
from .interpreter import ExtensionFunctions, FallbackEvaluator, ForEachMatch
from .post_processing.result_binding import bind_rows
from .settings import DEFAULT_SETTINGS, PushdownSettings
from .typedefs import QueryExecutor, QueryRow


logger = logging.getLogger(__name__)


class PushdownQueryRunner(object):
    """Evaluate pattern groups as single Cypher queries, falling back to row-at-a-time evaluation.

    Groups whose shape can be pushed down are compiled, executed once, and their rows are bound
    back onto the group's variables. Groups that cannot be pushed down, including those with a
    filter that has no Cypher translation, are evaluated by the FallbackEvaluator through the
    per-fact collaborator instead.
    """

    def __init__(
        self,
        execute: QueryExecutor,
        for_each_match: Optional[ForEachMatch] = None,
        settings: Optional[PushdownSettings] = None,
        extension_functions: Optional[ExtensionFunctions] = None,
    ) -> None:
        """Create a new PushdownQueryRunner.

        Args:
            execute: function that runs a Cypher query with its parameters and returns its rows
            for_each_match: optional per-fact collaborator used for groups that cannot be pushed
                            down. Without it, such groups raise UnsupportedShape.
            settings: optional PushdownSettings describing how facts are laid out in the graph
            extension_functions: optional dict, function name -> implementation, available to
                                 filters evaluated by the fallback evaluator
        """
        self._execute = execute
        self._settings = settings if settings is not None else DEFAULT_SETTINGS
        self._fallback_evaluator: Optional[FallbackEvaluator] = None
        if for_each_match is not None:
            self._fallback_evaluator = FallbackEvaluator(
                for_each_match, extension_functions=extension_functions
            )

    def _get_fallback_evaluator(
        self, groups: Sequence[PatternGroup], error: UnsupportedShape
    ) -> FallbackEvaluator:
        """Return the evaluator for groups that cannot be pushed down, or re-raise the error."""
        if self._fallback_evaluator is None:
            raise error

        logger.warning(
            "Falling back to row-at-a-time evaluation of %d pattern group(s): %s",
            len(groups),
            error,
        )
        return self._fallback_evaluator

    def _fall_back(
        self, groups: Sequence[PatternGroup], error: UnsupportedShape
    ) -> Iterator[Dict[str, RdfValue]]:
        """Evaluate the groups row-at-a-time, or re-raise if there is no fallback."""
        evaluator = self._get_fallback_evaluator(groups, error)
        return (bindings for group in groups for bindings in evaluator.evaluate(group))

    def run(self, group: PatternGroup) -> Iterator[Dict[str, RdfValue]]:
        """Return one binding dict per solution of the pattern group.

        Raises:
            MalformedPattern: if the group can never be evaluated
            UnsupportedShape: if the group cannot be pushed down and there is no fallback
            ExecutionFailure: if the database reports an error
        """
        try:
            compiled_query = compile_pattern_group(group, settings=self._settings)
        except UnsupportedShape as e:
            return self._fall_back([group], e)

        rows = self._execute(compiled_query.query, compiled_query.parameters)
        return bind_rows(rows, compiled_query.column_plan)

    def run_union(self, groups: Sequence[PatternGroup]) -> Iterator[Dict[str, RdfValue]]:
        """Return the solutions of every alternative group, in one query when possible.

        If any of the groups cannot be pushed down, every group is evaluated row-at-a-time.
        """
        try:
            compiled_query = compile_union(groups, settings=self._settings)
        except UnsupportedShape as e:
            return self._fall_back(groups, e)

        rows = self._execute(compiled_query.query, compiled_query.parameters)
        return bind_rows(rows, compiled_query.column_plan)

    def run_aggregation(
        self, group: PatternGroup, group_by: Sequence[Variable], aggregates: Sequence[Aggregate]
    ) -> Iterator[Dict[str, RdfValue]]:
        """Return one binding dict per group of the pattern group's solutions.

        Each dict binds the grouping variables and the results of the aggregates. Aggregates that
        cannot be computed natively are computed over the solutions of the fallback evaluator.

        Raises:
            MalformedPattern: if the group or the aggregation is malformed
            UnsupportedShape: if the aggregation cannot be pushed down and there is no fallback
            ExecutionFailure: if the database reports an error
        """
        try:
            compiled_query = compile_aggregation(
                group, group_by, aggregates, settings=self._settings
            )
        except UnsupportedShape as e:
            evaluator = self._get_fallback_evaluator([group], e)
            return evaluator.evaluate_aggregation(group, group_by, aggregates)

        rows = self._execute(compiled_query.query, compiled_query.parameters)
        return bind_rows(rows, compiled_query.column_plan)

    def run_native_query(
        self,
        query: str,
        parameters: Optional[Mapping[str, Any]] = None,
        column_plan: Optional[ColumnPlan] = None,
    ) -> Iterable[Any]:
        """Run a caller-written Cypher query, bypassing classification entirely.

        Args:
            query: Cypher query string
            parameters: optional mapping from parameter name to value
            column_plan: optional ColumnPlan. When given, the rows are bound onto variables just
                         like the rows of compiled queries; otherwise they are returned as-is.

        Returns:
            the rows, or one binding dict per row if a column plan was given
        """
        rows: Iterable[QueryRow] = self._execute(query, dict(parameters or {}))
        if column_plan is None:
            return rows
        return bind_rows(rows, column_plan)
