# Copyright 2019-present Kensho Technologies, LLC.
"""Decide which pushdown shape, if any, a pattern group matches."""
from collections import Counter, defaultdict
from typing import Callable, Dict, FrozenSet, Iterable, List, Mapping, Optional, Set, Tuple, Union

import funcy

from ..settings import DEFAULT_SETTINGS, PushdownSettings
from .expressions import FilterExpression
from .filters import is_translatable_filter
from .patterns import EntityRef, PatternGroup, TriplePattern, Variable
from .shapes import (
    BaseShape,
    ClosedChain,
    FixedTriple,
    MultiHop,
    OptionalJoin,
    Shape,
    TypeQuery,
    Unsupported,
    VariableObjectSingleTriple,
    VariablePredicateSingleSubject,
)


NodeTerm = Union[Variable, EntityRef]


def is_label_pattern(pattern: TriplePattern, settings: PushdownSettings) -> bool:
    """Return True if the pattern is stored as a node label."""
    return pattern.predicate == EntityRef(settings.type_predicate) and isinstance(
        pattern.object, EntityRef
    )


def is_entity_object(
    pattern: TriplePattern, entity_variables: FrozenSet[Variable], settings: PushdownSettings
) -> bool:
    """Return True if the pattern's object is known to be a node at the end of a relationship."""
    if is_label_pattern(pattern, settings):
        return False
    elif isinstance(pattern.object, EntityRef):
        return True
    elif isinstance(pattern.object, Variable):
        return pattern.object in entity_variables
    else:
        return False


def get_subject_variables(patterns: Iterable[TriplePattern]) -> FrozenSet[Variable]:
    """Return the variables used as the subject of any of the patterns."""
    return frozenset(
        pattern.subject for pattern in patterns if isinstance(pattern.subject, Variable)
    )


def _get_filter_problem(
    filters: Iterable[FilterExpression], available_variables: Iterable[Variable]
) -> Optional[str]:
    """Return why the filters cannot be pushed down, or None if they can."""
    available_variables = set(available_variables)
    for filter_expression in filters:
        unavailable_variables = set(filter_expression.get_variables()) - available_variables
        if unavailable_variables:
            return "Filter {} references variables {} not bound by the patterns.".format(
                filter_expression, sorted(str(variable) for variable in unavailable_variables)
            )
        if not is_translatable_filter(filter_expression):
            return "Filter {} has no Cypher translation.".format(filter_expression)
    return None


def _get_relationship_edges(
    patterns: Iterable[TriplePattern], settings: PushdownSettings
) -> List[Tuple[NodeTerm, NodeTerm]]:
    """Return the (subject, object) node pairs of the patterns stored as relationships."""
    patterns = tuple(patterns)
    entity_variables = get_subject_variables(patterns)
    return [
        (pattern.subject, pattern.object)
        for pattern in patterns
        if is_entity_object(pattern, entity_variables, settings)
    ]


def _is_connected(patterns: Tuple[TriplePattern, ...], settings: PushdownSettings) -> bool:
    """Return True if the nodes of the patterns form a single weakly connected component."""
    edges = _get_relationship_edges(patterns, settings)
    neighbors: Dict[NodeTerm, Set[NodeTerm]] = defaultdict(set)
    for subject, obj in edges:
        neighbors[subject].add(obj)
        neighbors[obj].add(subject)

    all_nodes = list(funcy.distinct(funcy.concat(
        (pattern.subject for pattern in patterns), funcy.cat(edges)
    )))
    visited = {all_nodes[0]}
    frontier = [all_nodes[0]]
    while frontier:
        current = frontier.pop()
        for neighbor in neighbors[current]:
            if neighbor not in visited:
                visited.add(neighbor)
                frontier.append(neighbor)
    return len(visited) == len(all_nodes)


def _has_directed_cycle(patterns: Tuple[TriplePattern, ...], settings: PushdownSettings) -> bool:
    """Return True if the relationships form a directed cycle. Self-loops do not count."""
    successors: Dict[NodeTerm, List[NodeTerm]] = defaultdict(list)
    for subject, obj in _get_relationship_edges(patterns, settings):
        if subject != obj:
            successors[subject].append(obj)

    finished: Set[NodeTerm] = set()
    in_progress: Set[NodeTerm] = set()

    def visit(node: NodeTerm) -> bool:
        if node in in_progress:
            return True
        if node in finished:
            return False
        in_progress.add(node)
        found_cycle = any(visit(successor) for successor in successors[node])
        in_progress.discard(node)
        finished.add(node)
        return found_cycle

    return any(visit(node) for node in list(successors))


def _classify_single_pattern(pattern: TriplePattern, settings: PushdownSettings) -> Shape:
    """Classify a group consisting of exactly one pattern."""
    type_predicate = EntityRef(settings.type_predicate)
    subject, predicate, obj = pattern

    if not any(isinstance(term, Variable) for term in pattern):
        return FixedTriple(pattern)
    if predicate == type_predicate and isinstance(obj, EntityRef):
        return TypeQuery(pattern)
    if isinstance(subject, EntityRef) and isinstance(predicate, Variable):
        if obj == predicate:
            return Unsupported("Predicate variable {} is reused as the object.".format(predicate))
        return VariablePredicateSingleSubject(pattern)
    if isinstance(predicate, EntityRef) and isinstance(obj, Variable):
        if predicate == type_predicate:
            return Unsupported("Type patterns with a variable class are not pushed down.")
        return VariableObjectSingleTriple(pattern)

    return Unsupported("No single-pattern shape matches {}.".format(pattern))


def _get_closed_chain_problem(
    patterns: Tuple[TriplePattern, ...], settings: PushdownSettings
) -> Optional[str]:
    """Return why the patterns are not a closed chain, or None if they are."""
    object_variables = {
        pattern.object for pattern in patterns if isinstance(pattern.object, Variable)
    }
    dangling_variables = object_variables - get_subject_variables(patterns)
    if dangling_variables:
        return "Object variables {} are never used as subjects.".format(
            sorted(str(variable) for variable in dangling_variables)
        )
    if not _is_connected(patterns, settings):
        return "The patterns do not form a connected graph."
    if _has_directed_cycle(patterns, settings):
        return "The patterns form a cycle."
    return None


def _order_as_path(patterns: Tuple[TriplePattern, ...]) -> Optional[Tuple[TriplePattern, ...]]:
    """Return the patterns ordered as a path from their single bound start, or None."""
    start_patterns = [pattern for pattern in patterns if isinstance(pattern.subject, EntityRef)]
    if len(start_patterns) != 1:
        return None

    path = [start_patterns[0]]
    remaining = [pattern for pattern in patterns if pattern is not start_patterns[0]]
    while remaining:
        current_object = path[-1].object
        if not isinstance(current_object, Variable):
            return None
        next_patterns, remaining = funcy.lsplit(
            lambda pattern: pattern.subject == current_object, remaining
        )
        if len(next_patterns) != 1:
            return None
        path.append(next_patterns[0])
    return tuple(path)


def _get_multi_hop_problem(
    patterns: Tuple[TriplePattern, ...], settings: PushdownSettings
) -> Tuple[Optional[str], Optional[Tuple[TriplePattern, ...]]]:
    """Return (problem, None) if the patterns are not a multi-hop path, else (None, path)."""
    type_predicate = EntityRef(settings.type_predicate)
    if any(pattern.predicate == type_predicate for pattern in patterns):
        return "Multi-hop paths cannot contain type patterns.", None

    path = _order_as_path(patterns)
    if path is None:
        return "The patterns do not form a linear path from a bound start.", None
    if _has_directed_cycle(path, settings):
        return "The path returns to a node it already visited.", None

    term_counts = Counter(funcy.cat(patterns))
    for hop in path[:-1]:
        intermediate = hop.object
        if not isinstance(intermediate, Variable) or term_counts[intermediate] != 2:
            return "Intermediate {} is not a distinct path variable.".format(intermediate), None

    end = path[-1].object
    if isinstance(end, Variable) and term_counts[end] != 1:
        return "The end variable {} is used more than once.".format(end), None
    return None, path


def _classify_multiple_patterns(
    patterns: Tuple[TriplePattern, ...], settings: PushdownSettings
) -> Shape:
    """Classify a group of two or more patterns."""
    type_predicate = EntityRef(settings.type_predicate)
    for pattern in patterns:
        if isinstance(pattern.predicate, Variable):
            return Unsupported(
                "Variable predicate {} in a multi-pattern group.".format(pattern.predicate)
            )
        if pattern.predicate == type_predicate and isinstance(pattern.object, Variable):
            return Unsupported("Type patterns with a variable class are not pushed down.")

    closed_chain_problem = _get_closed_chain_problem(patterns, settings)
    if closed_chain_problem is None:
        return ClosedChain(patterns)

    multi_hop_problem, path = _get_multi_hop_problem(patterns, settings)
    if path is not None:
        return MultiHop(path)

    return Unsupported("{} {}".format(closed_chain_problem, multi_hop_problem))


def _get_fixed_triple_node_variables(shape: FixedTriple) -> Tuple[Variable, ...]:
    return ()


def _get_single_subject_node_variables(
    shape: Union[TypeQuery, VariableObjectSingleTriple]
) -> Tuple[Variable, ...]:
    subject = shape.pattern.subject
    return (subject,) if isinstance(subject, Variable) else ()


def _get_variable_predicate_node_variables(
    shape: VariablePredicateSingleSubject,
) -> Tuple[Variable, ...]:
    return ()


def _get_closed_chain_node_variables(shape: ClosedChain) -> Tuple[Variable, ...]:
    return tuple(funcy.distinct(funcy.cat(pattern.get_variables() for pattern in shape.patterns)))


def _get_multi_hop_node_variables(shape: MultiHop) -> Tuple[Variable, ...]:
    all_variables = funcy.distinct(funcy.cat(pattern.get_variables() for pattern in shape.patterns))
    return tuple(variable for variable in all_variables if variable != shape.end_variable)


_NODE_VARIABLE_GETTERS: Mapping[type, Callable[..., Tuple[Variable, ...]]] = {
    FixedTriple: _get_fixed_triple_node_variables,
    TypeQuery: _get_single_subject_node_variables,
    VariablePredicateSingleSubject: _get_variable_predicate_node_variables,
    VariableObjectSingleTriple: _get_single_subject_node_variables,
    ClosedChain: _get_closed_chain_node_variables,
    MultiHop: _get_multi_hop_node_variables,
}


def get_node_variables(shape: BaseShape) -> FrozenSet[Variable]:
    """Return the variables bound to a graph node in every branch of the shape's query."""
    return frozenset(_NODE_VARIABLE_GETTERS[type(shape)](shape))


def _get_optional_group_problem(
    optional_group: PatternGroup,
    base_variables: FrozenSet[Variable],
    node_variables: FrozenSet[Variable],
    variables_of_other_optional_groups: FrozenSet[Variable],
    settings: PushdownSettings,
) -> Optional[str]:
    """Return why the optional group cannot be pushed down, or None if it can."""
    type_predicate = EntityRef(settings.type_predicate)
    if optional_group.optional_groups:
        return "Nested optional groups are not pushed down."

    for pattern in optional_group.patterns:
        if isinstance(pattern.predicate, Variable):
            return "Variable predicate {} in an optional group.".format(pattern.predicate)
        if pattern.predicate == type_predicate and isinstance(pattern.object, Variable):
            return "Type patterns with a variable class are not pushed down."

    group_variables = frozenset(optional_group.get_pattern_variables())
    non_node_base_variables = (group_variables & base_variables) - node_variables
    if non_node_base_variables:
        return "Optional group uses variables {} that are not graph nodes.".format(
            sorted(str(variable) for variable in non_node_base_variables)
        )

    new_variables = group_variables - base_variables
    shared_variables = new_variables & variables_of_other_optional_groups
    if shared_variables:
        return "Variables {} are shared between optional groups.".format(
            sorted(str(variable) for variable in shared_variables)
        )

    # New object variables that are never subjects become literal properties, and a property
    # can only be read once per group.
    subject_variables = get_subject_variables(optional_group.patterns)
    term_counts = Counter(funcy.cat(optional_group.patterns))
    for variable in new_variables - subject_variables:
        if term_counts[variable] != 1:
            return "Optional literal variable {} is used more than once.".format(variable)

    return _get_filter_problem(optional_group.filters, base_variables | group_variables)


def _classify_optional_join(group: PatternGroup, settings: PushdownSettings) -> Shape:
    """Classify a group that has optional groups."""
    base_group = group.without_optional_groups()
    base = classify(base_group, settings=settings)
    if isinstance(base, Unsupported):
        return Unsupported("The base of the optional join is unsupported: {}".format(base.reason))

    base_variables = frozenset(base_group.get_pattern_variables())
    node_variables = get_node_variables(base)
    seen_optional_variables: FrozenSet[Variable] = frozenset()
    for optional_group in group.optional_groups:
        problem = _get_optional_group_problem(
            optional_group, base_variables, node_variables, seen_optional_variables, settings
        )
        if problem is not None:
            return Unsupported(problem)
        optional_variables = frozenset(optional_group.get_pattern_variables())
        seen_optional_variables |= optional_variables - base_variables

    return OptionalJoin(base=base, optional_groups=group.optional_groups)


##############
# Public API #
##############


def classify(group: PatternGroup, settings: PushdownSettings = DEFAULT_SETTINGS) -> Shape:
    """Return the shape of the pattern group. The first matching shape wins.

    Shapes are tried from the most specific to the least specific: FixedTriple, TypeQuery,
    VariablePredicateSingleSubject, VariableObjectSingleTriple, ClosedChain, MultiHop and
    finally OptionalJoin. Groups that match none of them are Unsupported.

    Args:
        group: PatternGroup to classify. It is assumed to have been validated.
        settings: PushdownSettings naming the type predicate, among others

    Returns:
        the Shape of the group. Classification is a pure function of the group and settings.
    """
    if not group.patterns:
        return Unsupported("Empty pattern groups have no shape.")
    if group.optional_groups:
        return _classify_optional_join(group, settings)

    filter_problem = _get_filter_problem(group.filters, group.get_pattern_variables())
    if filter_problem is not None:
        return Unsupported(filter_problem)

    if len(group.patterns) == 1:
        return _classify_single_pattern(group.patterns[0], settings)
    return _classify_multiple_patterns(group.patterns, settings)
