# Copyright 2017-present Kensho Technologies, LLC.
import logging
from typing import Sequence

from ..exceptions import UnsupportedShape
from ..settings import DEFAULT_SETTINGS, PushdownSettings
from .aggregation import Aggregate, validate_aggregation
from .classifier import classify
from .cypher_query import CompiledQuery
from .emit_cypher import emit_aggregation, emit_cypher, emit_union
from .emit_cypher_writes import emit_batch_write
from .patterns import PatternGroup, PendingWrite, Variable, validate_pattern_group
from .shapes import Unsupported, get_shape_name


logger = logging.getLogger(__name__)


def compile_pattern_group(
    group: PatternGroup, settings: PushdownSettings = DEFAULT_SETTINGS
) -> CompiledQuery:
    """Compile the pattern group into a single Cypher query and the plan for binding its rows.

    Args:
        group: PatternGroup to compile
        settings: PushdownSettings describing how facts are laid out in the graph

    Returns:
        CompiledQuery object

    Raises:
        MalformedPattern: if the group can never be evaluated
        UnsupportedShape: if the group matches no pushdown shape, or one of its filters has no
                          Cypher translation (UnsupportedFilterKind)
    """
    validate_pattern_group(group)
    shape = classify(group, settings=settings)
    if isinstance(shape, Unsupported):
        raise UnsupportedShape(shape.reason)
    logger.debug("Compiling pattern group as %s.", get_shape_name(shape))
    return emit_cypher(shape, group, settings=settings)


def compile_union(
    groups: Sequence[PatternGroup], settings: PushdownSettings = DEFAULT_SETTINGS
) -> CompiledQuery:
    """Compile alternative pattern groups into a single query returning the rows of each.

    Raises:
        MalformedPattern: if any of the groups can never be evaluated
        UnsupportedShape: if any of the groups cannot be pushed down
    """
    for group in groups:
        validate_pattern_group(group)
    return emit_union(groups, settings=settings)


def compile_aggregation(
    group: PatternGroup,
    group_by: Sequence[Variable],
    aggregates: Sequence[Aggregate],
    settings: PushdownSettings = DEFAULT_SETTINGS,
) -> CompiledQuery:
    """Compile grouped aggregates over the pattern group's solutions into a single query.

    Args:
        group: PatternGroup whose solutions are aggregated
        group_by: variables of the group whose values identify each group of solutions
        aggregates: Aggregates to compute over each group of solutions
        settings: PushdownSettings describing how facts are laid out in the graph

    Returns:
        CompiledQuery object

    Raises:
        MalformedPattern: if the group or the aggregation is malformed
        UnsupportedShape: if the group cannot be pushed down, or its aggregates cannot be
                          computed natively
    """
    validate_aggregation(group, group_by, aggregates)
    shape = classify(group, settings=settings)
    if isinstance(shape, Unsupported):
        raise UnsupportedShape(shape.reason)
    logger.debug("Compiling aggregation over pattern group as %s.", get_shape_name(shape))
    return emit_aggregation(shape, group, group_by, aggregates, settings=settings)


def compile_pending_writes(
    pending_writes: Sequence[PendingWrite], settings: PushdownSettings = DEFAULT_SETTINGS
) -> CompiledQuery:
    """Compile the pending writes, in order, into a single batch statement."""
    return emit_batch_write(pending_writes, settings=settings)
