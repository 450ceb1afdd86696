# Copyright 2019-present Kensho Technologies, LLC.
"""Convert classified pattern groups to Cypher query strings."""
from collections import defaultdict
from dataclasses import dataclass, field
from enum import Enum
import itertools
import logging
from types import MappingProxyType
from typing import Callable, Dict, FrozenSet, List, Mapping, Optional, Sequence, Set, Tuple, Union

import funcy

from ..deserialization import serialize_literal
from ..exceptions import UnsupportedShape
from ..settings import DEFAULT_SETTINGS, PushdownSettings
from .aggregation import COUNT, Aggregate
from .classifier import classify, get_subject_variables, is_entity_object, is_label_pattern
from .cypher_helpers import (
    ParameterAllocator,
    get_property_accessor,
    quote_identifier,
    quote_string,
)
from .cypher_query import ColumnKind, ColumnPlan, ColumnSpec, CompiledQuery
from .filters import VariableReference, translate_filter
from .patterns import EntityRef, Literal, PatternGroup, TriplePattern, Variable
from .shapes import (
    ClosedChain,
    FixedTriple,
    MultiHop,
    OptionalJoin,
    Shape,
    TypeQuery,
    Unsupported,
    VariableObjectSingleTriple,
    VariablePredicateSingleSubject,
    get_shape_name,
)


logger = logging.getLogger(__name__)

EXISTENCE_COLUMN_NAME = "_exists"
# Variable names cannot start with an underscore, so these column names never collide with them.
DATATYPE_COLUMN_PREFIX = "_datatype_"

NodeTerm = Union[Variable, EntityRef]


class _PatternRole(Enum):
    """How a pattern is stored in the property graph."""

    RELATIONSHIP = "relationship"
    PROPERTY = "property"
    LABEL = "label"
    # The object variable may be either a relationship target or a property value.
    AMBIGUOUS = "ambiguous"


@dataclass(frozen=True)
class _VariableBinding:
    """How one variable is read within one branch."""

    # Comparable value: the IRI string of an entity or predicate, or the stored literal value.
    expression: str
    kind: ColumnKind
    datatype_expression: Optional[str] = None
    # Condition under which the value belongs to the row, for values of optional groups.
    guard: Optional[str] = None

    def to_reference(self) -> VariableReference:
        """Return the reference used to read the variable inside filters."""
        return VariableReference(self.expression, is_literal=self.kind == ColumnKind.LITERAL)


class _QueryState(object):
    """State shared by every branch of one compiled query."""

    def __init__(self, settings: PushdownSettings) -> None:
        """Create the state of a new query."""
        self.settings = settings
        self.allocator = ParameterAllocator()
        self._uri_parameters: Dict[str, str] = {}

    def get_uri_parameter(self, uri: str) -> str:
        """Return the parameter holding the given IRI, reused across branches."""
        if uri not in self._uri_parameters:
            self._uri_parameters[uri] = self.allocator.allocate(uri)
        return self._uri_parameters[uri]


@dataclass
class _Branch:
    """One UNION ALL alternative of a compiled read query, under construction."""

    state: _QueryState
    clauses: List[str] = field(default_factory=list)
    conditions: List[str] = field(default_factory=list)
    optional_clauses: List[str] = field(default_factory=list)
    bindings: Dict[str, _VariableBinding] = field(default_factory=dict)
    node_identifiers: Dict[NodeTerm, str] = field(default_factory=dict)

    def is_node_declared(self, term: NodeTerm) -> bool:
        """Return True if the term is already matched as a node in this branch."""
        return term in self.node_identifiers

    def get_node_identifier(self, term: NodeTerm) -> str:
        """Return the Cypher identifier of an already-declared node."""
        identifier = self.node_identifiers.get(term)
        if identifier is None:
            raise AssertionError(
                "Node {} is used before it is declared: {}".format(term, self.node_identifiers)
            )
        return identifier

    def _make_bound_node_identifier(self, prefix: str) -> str:
        bound_node_count = sum(
            1 for term in self.node_identifiers if isinstance(term, EntityRef)
        )
        return "{}n{}".format(prefix, bound_node_count)

    def render_node(
        self, term: NodeTerm, labels: Sequence[str] = (), identifier_prefix: str = "_"
    ) -> str:
        """Return the node pattern of the term, declaring the node on first use."""
        if self.is_node_declared(term):
            return "({})".format(self.node_identifiers[term])

        settings = self.state.settings
        if isinstance(term, Variable):
            identifier = quote_identifier(term.name)
            properties = ""
            self.bindings[term.name] = _VariableBinding(
                get_property_accessor(identifier, settings.uri_property), ColumnKind.ENTITY
            )
        else:
            identifier = self._make_bound_node_identifier(identifier_prefix)
            properties = " {{{}: {}}}".format(
                quote_identifier(settings.uri_property), self.state.get_uri_parameter(term.uri)
            )
        self.node_identifiers[term] = identifier

        all_labels = funcy.distinct(funcy.concat([settings.resource_label], labels))
        label_text = "".join(":" + quote_identifier(label) for label in all_labels)
        return "({}{}{})".format(identifier, label_text, properties)

    def match_node(self, term: NodeTerm, labels: Sequence[str] = ()) -> None:
        """Ensure the term is matched as a node."""
        if not self.is_node_declared(term):
            self.clauses.append("MATCH " + self.render_node(term, labels))

    def bind_literal(
        self, variable: Variable, value_expression: str, datatype_expression: Optional[str]
    ) -> None:
        """Bind the variable to a literal value, or require equality if it is already bound."""
        existing_binding = self.bindings.get(variable.name)
        if existing_binding is not None:
            self.conditions.append("{} = {}".format(value_expression, existing_binding.expression))
        else:
            self.bindings[variable.name] = _VariableBinding(
                value_expression, ColumnKind.LITERAL, datatype_expression=datatype_expression
            )

    def get_filter_references(self) -> Dict[str, VariableReference]:
        """Return how every bound variable is read inside filters."""
        return {name: binding.to_reference() for name, binding in self.bindings.items()}


def _get_literal_conditions(
    state: _QueryState, value_expression: str, datatype_expression: str, literal: Literal
) -> List[str]:
    """Return the conditions under which the stored value equals the literal."""
    stored_value, stored_datatype = serialize_literal(literal)
    conditions = ["{} = {}".format(value_expression, state.allocator.allocate(stored_value))]
    if stored_datatype is not None:
        conditions.append(
            "{} = {}".format(datatype_expression, state.allocator.allocate(stored_datatype))
        )
    return conditions


def _get_node_labels(
    patterns: Sequence[TriplePattern], settings: PushdownSettings
) -> Dict[NodeTerm, List[str]]:
    """Return the class labels required of each subject by the patterns' label patterns."""
    labels: Dict[NodeTerm, List[str]] = defaultdict(list)
    for pattern in patterns:
        if is_label_pattern(pattern, settings):
            labels[pattern.subject].append(pattern.object.uri)
    return labels


def _get_pattern_roles(
    patterns: Sequence[TriplePattern], settings: PushdownSettings
) -> List[_PatternRole]:
    """Return the storage role of each pattern, leaving unknowable objects AMBIGUOUS."""
    entity_variables = get_subject_variables(patterns)
    roles = []
    for pattern in patterns:
        if is_label_pattern(pattern, settings):
            roles.append(_PatternRole.LABEL)
        elif isinstance(pattern.object, Literal):
            roles.append(_PatternRole.PROPERTY)
        elif is_entity_object(pattern, entity_variables, settings):
            roles.append(_PatternRole.RELATIONSHIP)
        else:
            roles.append(_PatternRole.AMBIGUOUS)
    return roles


def _expand_ambiguous_roles(roles: List[_PatternRole]) -> List[List[_PatternRole]]:
    """Return one role assignment per branch, resolving each AMBIGUOUS role both ways."""
    ambiguous_indexes = [
        index for index, role in enumerate(roles) if role == _PatternRole.AMBIGUOUS
    ]
    branch_roles = []
    for resolution in itertools.product(
        (_PatternRole.RELATIONSHIP, _PatternRole.PROPERTY), repeat=len(ambiguous_indexes)
    ):
        resolved_roles = list(roles)
        for index, resolved_role in zip(ambiguous_indexes, resolution):
            resolved_roles[index] = resolved_role
        branch_roles.append(resolved_roles)
    return branch_roles


def _add_property_pattern(branch: _Branch, pattern: TriplePattern) -> None:
    """Match the pattern as a literal property of its subject."""
    settings = branch.state.settings
    subject_identifier = branch.get_node_identifier(pattern.subject)
    value_expression = get_property_accessor(subject_identifier, pattern.predicate.uri)
    datatype_expression = get_property_accessor(
        subject_identifier, settings.datatype_property(pattern.predicate.uri)
    )

    if isinstance(pattern.object, Literal):
        branch.conditions.extend(
            _get_literal_conditions(
                branch.state, value_expression, datatype_expression, pattern.object
            )
        )
    else:
        branch.conditions.append("{} IS NOT NULL".format(value_expression))
        branch.bind_literal(pattern.object, value_expression, datatype_expression)


def _emit_pattern_branch(
    patterns: Sequence[TriplePattern], roles: Sequence[_PatternRole], state: _QueryState
) -> _Branch:
    """Return one branch matching every pattern in its resolved storage role."""
    branch = _Branch(state)
    labels = _get_node_labels(patterns, state.settings)

    for pattern, role in zip(patterns, roles):
        if role == _PatternRole.RELATIONSHIP:
            subject_node = branch.render_node(pattern.subject, labels[pattern.subject])
            object_node = branch.render_node(pattern.object, labels[pattern.object])
            # One MATCH per relationship, since a single MATCH never reuses a relationship.
            branch.clauses.append(
                "MATCH {}-[:{}]->{}".format(
                    subject_node, quote_identifier(pattern.predicate.uri), object_node
                )
            )
        elif role == _PatternRole.LABEL:
            branch.match_node(pattern.subject, labels[pattern.subject])
        elif role == _PatternRole.PROPERTY:
            branch.match_node(pattern.subject, labels[pattern.subject])
            _add_property_pattern(branch, pattern)
        else:
            raise AssertionError(
                "Unreachable code reached: unresolved role {} for {}".format(role, pattern)
            )

    return branch


def _emit_patterns(patterns: Sequence[TriplePattern], state: _QueryState) -> List[_Branch]:
    """Return the branches matching the patterns, one per resolution of ambiguous objects."""
    roles = _get_pattern_roles(patterns, state.settings)
    return [
        _emit_pattern_branch(patterns, branch_roles, state)
        for branch_roles in _expand_ambiguous_roles(roles)
    ]


def _add_filters(branches: List[_Branch], group: PatternGroup) -> List[_Branch]:
    """Add the group's filters to the conditions of every branch."""
    for branch in branches:
        for filter_expression in group.filters:
            translation = translate_filter(
                filter_expression, branch.get_filter_references(), branch.state.allocator
            )
            branch.conditions.append(translation.fragment)
    return branches


def _emit_single_pattern_shape(
    shape: Union[FixedTriple, TypeQuery, VariableObjectSingleTriple],
    group: PatternGroup,
    state: _QueryState,
) -> List[_Branch]:
    """Emit a shape consisting of a single pattern with a bound predicate."""
    return _add_filters(_emit_patterns((shape.pattern,), state), group)


def _emit_chain(
    shape: Union[ClosedChain, MultiHop], group: PatternGroup, state: _QueryState
) -> List[_Branch]:
    """Emit a chain of patterns as one linear match, with a union for a variable end."""
    return _add_filters(_emit_patterns(shape.patterns, state), group)


def _emit_variable_predicate_single_subject(
    shape: VariablePredicateSingleSubject, group: PatternGroup, state: _QueryState
) -> List[_Branch]:
    """Emit up to three branches: relationships, literal properties and class labels."""
    settings = state.settings
    subject, predicate, obj = shape.pattern
    branches = []

    if not isinstance(obj, Literal):
        relationship_branch = _Branch(state)
        subject_node = relationship_branch.render_node(subject)
        object_node = relationship_branch.render_node(obj)
        relationship_branch.clauses.append(
            "MATCH {}-[_r]->{}".format(subject_node, object_node)
        )
        relationship_branch.bindings[predicate.name] = _VariableBinding(
            "type(_r)", ColumnKind.PREDICATE
        )
        branches.append(relationship_branch)

    if not isinstance(obj, EntityRef):
        property_branch = _Branch(state)
        property_branch.match_node(subject)
        subject_identifier = property_branch.get_node_identifier(subject)
        value_expression = "{}[_key]".format(subject_identifier)
        datatype_expression = "{}[_key + {}]".format(
            subject_identifier, quote_string(settings.datatype_suffix)
        )
        # Aliased explicitly, since RedisGraph-family databases reject un-aliased WITH entities.
        property_branch.clauses.extend(
            [
                "UNWIND keys({}) AS _key".format(subject_identifier),
                "WITH {0} AS {0}, _key AS _key".format(subject_identifier),
            ]
        )
        property_branch.conditions.extend(
            [
                "_key <> {}".format(quote_string(settings.uri_property)),
                "NOT _key ENDS WITH {}".format(quote_string(settings.datatype_suffix)),
            ]
        )
        property_branch.bindings[predicate.name] = _VariableBinding("_key", ColumnKind.PREDICATE)
        if isinstance(obj, Literal):
            property_branch.conditions.extend(
                _get_literal_conditions(state, value_expression, datatype_expression, obj)
            )
        else:
            property_branch.bind_literal(obj, value_expression, datatype_expression)
        branches.append(property_branch)

    if not isinstance(obj, Literal):
        label_branch = _Branch(state)
        label_branch.match_node(subject)
        subject_identifier = label_branch.get_node_identifier(subject)
        label_branch.clauses.extend(
            [
                "UNWIND labels({}) AS _label".format(subject_identifier),
                "WITH {0} AS {0}, _label AS _label".format(subject_identifier),
            ]
        )
        label_branch.conditions.append(
            "_label <> {}".format(quote_string(settings.resource_label))
        )
        label_branch.bindings[predicate.name] = _VariableBinding(
            state.get_uri_parameter(settings.type_predicate), ColumnKind.PREDICATE
        )
        if isinstance(obj, EntityRef):
            label_branch.conditions.append(
                "_label = {}".format(state.get_uri_parameter(obj.uri))
            )
        else:
            label_branch.bindings[obj.name] = _VariableBinding("_label", ColumnKind.ENTITY)
        branches.append(label_branch)

    return _add_filters(branches, group)


def _get_optional_pattern_roles(
    branch: _Branch, optional_group: PatternGroup
) -> List[_PatternRole]:
    """Return the storage role of each optional pattern, in the context of the branch."""
    settings = branch.state.settings
    entity_variables = get_subject_variables(optional_group.patterns) | frozenset(
        term for term in branch.node_identifiers if isinstance(term, Variable)
    )
    roles = []
    for pattern in optional_group.patterns:
        if is_label_pattern(pattern, settings):
            roles.append(_PatternRole.LABEL)
        elif is_entity_object(pattern, entity_variables, settings):
            roles.append(_PatternRole.RELATIONSHIP)
        else:
            # Object variables that are never subjects are read as literal properties.
            roles.append(_PatternRole.PROPERTY)
    return roles


def _add_optional_group(branch: _Branch, optional_group: PatternGroup, group_index: int) -> None:
    """Left-join the optional group onto the branch, leaving its variables nullable."""
    state = branch.state
    settings = state.settings
    identifier_prefix = "_opt{}_".format(group_index)
    roles = _get_optional_pattern_roles(branch, optional_group)
    base_nodes = frozenset(branch.node_identifiers)

    new_node_labels: Dict[NodeTerm, List[str]] = defaultdict(list)
    conditions: List[str] = []
    for pattern, role in zip(optional_group.patterns, roles):
        if role == _PatternRole.LABEL:
            if pattern.subject in base_nodes:
                conditions.append(
                    "{}:{}".format(
                        branch.get_node_identifier(pattern.subject),
                        quote_identifier(pattern.object.uri),
                    )
                )
            else:
                new_node_labels[pattern.subject].append(pattern.object.uri)

    elements: List[str] = []
    relationship_names: List[str] = []
    new_nodes: List[NodeTerm] = []

    def render_optional_node(term: NodeTerm) -> str:
        if term not in base_nodes and term not in new_nodes:
            new_nodes.append(term)
        return branch.render_node(term, new_node_labels[term], identifier_prefix=identifier_prefix)

    for pattern_index, (pattern, role) in enumerate(zip(optional_group.patterns, roles)):
        if role == _PatternRole.RELATIONSHIP:
            relationship_name = "{}r{}".format(identifier_prefix, pattern_index)
            subject_node = render_optional_node(pattern.subject)
            object_node = render_optional_node(pattern.object)
            elements.append(
                "{}-[{}:{}]->{}".format(
                    subject_node,
                    relationship_name,
                    quote_identifier(pattern.predicate.uri),
                    object_node,
                )
            )
            relationship_names.append(relationship_name)

    for pattern in optional_group.patterns:
        if pattern.subject not in base_nodes and pattern.subject not in new_nodes:
            elements.append(render_optional_node(pattern.subject))

    literal_variables: List[Variable] = []
    for pattern, role in zip(optional_group.patterns, roles):
        if role == _PatternRole.PROPERTY:
            subject_identifier = branch.get_node_identifier(pattern.subject)
            value_expression = get_property_accessor(subject_identifier, pattern.predicate.uri)
            datatype_expression = get_property_accessor(
                subject_identifier, settings.datatype_property(pattern.predicate.uri)
            )
            if isinstance(pattern.object, Literal):
                conditions.extend(
                    _get_literal_conditions(
                        state, value_expression, datatype_expression, pattern.object
                    )
                )
            else:
                conditions.append("{} IS NOT NULL".format(value_expression))
                branch.bindings[pattern.object.name] = _VariableBinding(
                    value_expression, ColumnKind.LITERAL, datatype_expression=datatype_expression
                )
                literal_variables.append(pattern.object)

    for filter_expression in optional_group.filters:
        translation = translate_filter(
            filter_expression, branch.get_filter_references(), state.allocator
        )
        conditions.append(translation.fragment)

    if elements:
        branch.optional_clauses.append("OPTIONAL MATCH " + ", ".join(elements))
        if conditions:
            branch.optional_clauses.append("  WHERE " + " AND ".join(conditions))
        if relationship_names:
            guard_identifier = relationship_names[0]
        else:
            guard_identifier = branch.get_node_identifier(new_nodes[0])
        guard = "{} IS NOT NULL".format(guard_identifier)
    elif len(conditions) == 1:
        guard = conditions[0]
    else:
        guard = "({})".format(" AND ".join(conditions))

    # Properties of nodes matched before the optional group are not nulled out by a failed
    # OPTIONAL MATCH, so literal values are only returned under the group's guard.
    for variable in literal_variables:
        binding = branch.bindings[variable.name]
        branch.bindings[variable.name] = _VariableBinding(
            binding.expression,
            binding.kind,
            datatype_expression=binding.datatype_expression,
            guard=guard,
        )


def _emit_optional_join(
    shape: OptionalJoin, group: PatternGroup, state: _QueryState
) -> List[_Branch]:
    """Emit the base shape, followed by one left join per optional group in every branch."""
    base_emitter = _SHAPE_EMITTERS[type(shape.base)]
    branches = base_emitter(shape.base, group.without_optional_groups(), state)
    for branch in branches:
        for group_index, optional_group in enumerate(shape.optional_groups):
            _add_optional_group(branch, optional_group, group_index)
    return branches


_SHAPE_EMITTERS: Mapping[type, Callable[..., List[_Branch]]] = MappingProxyType(
    {
        FixedTriple: _emit_single_pattern_shape,
        TypeQuery: _emit_single_pattern_shape,
        VariablePredicateSingleSubject: _emit_variable_predicate_single_subject,
        VariableObjectSingleTriple: _emit_single_pattern_shape,
        ClosedChain: _emit_chain,
        MultiHop: _emit_chain,
        OptionalJoin: _emit_optional_join,
    }
)


def _emit_shape_branches(shape: Shape, group: PatternGroup, state: _QueryState) -> List[_Branch]:
    """Return the branches of the query for the classified group."""
    if isinstance(shape, Unsupported):
        raise UnsupportedShape(shape.reason)

    emitter = _SHAPE_EMITTERS.get(type(shape))
    if emitter is None:
        raise AssertionError("Unreachable code reached: unknown shape {}".format(shape))
    return emitter(shape, group, state)


def _get_column_kind(kinds: Set[ColumnKind]) -> ColumnKind:
    """Return the kind of a column whose cells have the given kinds across branches."""
    if len(kinds) == 1:
        return funcy.first(kinds)
    elif ColumnKind.LITERAL in kinds:
        return ColumnKind.LITERAL_OR_ENTITY
    elif kinds == {ColumnKind.ENTITY, ColumnKind.PREDICATE}:
        # Both are read as IRIs.
        return ColumnKind.ENTITY
    else:
        raise AssertionError("Unexpected combination of column kinds: {}".format(kinds))


def _make_column_plan(
    variable_names: Sequence[str],
    branches: Sequence[_Branch],
    optional_variable_names: FrozenSet[str],
) -> ColumnPlan:
    """Return the column plan of a query made of the given branches."""
    columns = []
    for variable_name in variable_names:
        kinds = {
            branch.bindings[variable_name].kind
            for branch in branches
            if variable_name in branch.bindings
        }
        if not kinds:
            raise AssertionError(
                "Variable {} is not bound in any branch: {}".format(variable_name, branches)
            )
        kind = _get_column_kind(kinds)
        nullable = variable_name in optional_variable_names or any(
            variable_name not in branch.bindings for branch in branches
        )
        datatype_column = None
        if kind in (ColumnKind.LITERAL, ColumnKind.LITERAL_OR_ENTITY):
            datatype_column = DATATYPE_COLUMN_PREFIX + variable_name
        columns.append(ColumnSpec(variable_name, variable_name, kind, nullable, datatype_column))

    if not columns:
        columns.append(ColumnSpec(EXISTENCE_COLUMN_NAME, None, ColumnKind.EXISTENCE))
    return ColumnPlan(tuple(columns))


def _apply_guard(expression: str, guard: Optional[str]) -> str:
    """Return the expression, nulled out when the guard does not hold."""
    if guard is None or expression == "null":
        return expression
    return "CASE WHEN {} THEN {} END".format(guard, expression)


def _render_cell(binding: Optional[_VariableBinding], kind: ColumnKind) -> Tuple[str, str]:
    """Return the (value, datatype) expressions of one cell in one branch."""
    if binding is None:
        return "null", "null"

    datatype_expression = binding.datatype_expression or "null"
    if kind == ColumnKind.LITERAL_OR_ENTITY and binding.kind != ColumnKind.LITERAL:
        # Union-typed cells tell entities apart from literals by representation.
        value_expression = "{{uri: {}}}".format(binding.expression)
        datatype_expression = "null"
    else:
        value_expression = binding.expression

    return (
        _apply_guard(value_expression, binding.guard),
        _apply_guard(datatype_expression, binding.guard),
    )


def _render_branch(
    branch: _Branch,
    column_plan: ColumnPlan,
    aggregate_expressions: Mapping[str, str] = MappingProxyType({}),
) -> str:
    """Return the Cypher text of one branch.

    Args:
        branch: the _Branch to render
        column_plan: ColumnPlan of the query the branch belongs to
        aggregate_expressions: column name -> aggregate expression, for the columns holding
                               aggregates rather than variable values

    Returns:
        the branch's clauses, followed by its RETURN clause
    """
    query_data = list(branch.clauses)
    if branch.conditions:
        query_data.append("  WHERE " + " AND ".join(branch.conditions))
    query_data.extend(branch.optional_clauses)

    return_items = []
    is_existence_check = False
    for column in column_plan.columns:
        if column.column_name in aggregate_expressions:
            return_items.append(
                "{} AS {}".format(
                    aggregate_expressions[column.column_name],
                    quote_identifier(column.column_name),
                )
            )
            continue
        if column.kind == ColumnKind.EXISTENCE:
            is_existence_check = True
            return_items.append("1 AS {}".format(quote_identifier(column.column_name)))
            continue

        value_expression, datatype_expression = _render_cell(
            branch.bindings.get(column.variable_name), column.kind
        )
        return_items.append(
            "{} AS {}".format(value_expression, quote_identifier(column.column_name))
        )
        if column.datatype_column is not None:
            return_items.append(
                "{} AS {}".format(datatype_expression, quote_identifier(column.datatype_column))
            )

    return_clause = "RETURN " + ", ".join(return_items)
    if is_existence_check:
        return_clause += " LIMIT 1"
    query_data.append(return_clause)
    return "\n".join(query_data)


def _render_query(branches: Sequence[_Branch], column_plan: ColumnPlan) -> str:
    """Return the Cypher text of the whole query."""
    return "\nUNION ALL\n".join(_render_branch(branch, column_plan) for branch in branches)


def _get_optional_variable_names(group: PatternGroup) -> FrozenSet[str]:
    """Return the names of the variables bound only by the group's optional groups."""
    base_variables = set(group.get_pattern_variables())
    return frozenset(
        variable.name for variable in group.get_all_variables() if variable not in base_variables
    )


def _render_aggregate(aggregate: Aggregate, branch: _Branch) -> str:
    """Return the Cypher aggregate expression computing the aggregate over the branch's rows."""
    if aggregate.variable is None:
        return "count(*)"

    binding = branch.bindings.get(aggregate.variable.name)
    if binding is None:
        raise AssertionError(
            "Aggregated variable {} is not bound in the branch: {}".format(
                aggregate.variable, branch
            )
        )
    value_expression, datatype_expression = _render_cell(binding, binding.kind)

    if aggregate.function == COUNT:
        if not aggregate.distinct:
            return "count({})".format(value_expression)
        if binding.kind == ColumnKind.LITERAL:
            # Equal stored values of different datatypes are different literals.
            value_expression = "CASE WHEN {0} IS NOT NULL THEN [{0}, {1}] END".format(
                value_expression, datatype_expression
            )
        return "count(DISTINCT {})".format(value_expression)

    if binding.kind != ColumnKind.LITERAL:
        raise UnsupportedShape(
            "Cannot compute {} natively, since {} is not bound to literal values.".format(
                aggregate, aggregate.variable
            )
        )
    # Only numbers are aggregated. Strings, booleans, NaN and lexically stored values compare
    # neither greater than nor less than zero.
    numeric_expression = "CASE WHEN {0} >= 0 OR {0} < 0 THEN {0} END".format(value_expression)
    return "{}({})".format(aggregate.function, numeric_expression)


##############
# Public API #
##############


def emit_cypher(
    shape: Shape, group: PatternGroup, settings: PushdownSettings = DEFAULT_SETTINGS
) -> CompiledQuery:
    """Return a CompiledQuery for the classified pattern group.

    Args:
        shape: the Shape of the group, as returned by classify()
        group: the validated PatternGroup the shape was computed from
        settings: PushdownSettings describing how facts are laid out in the graph

    Returns:
        CompiledQuery with one column per variable of the group, in order of first appearance

    Raises:
        UnsupportedShape: if the shape is Unsupported
        UnsupportedFilterKind: if a filter has no Cypher translation
    """
    state = _QueryState(settings)
    branches = _emit_shape_branches(shape, group, state)
    column_plan = _make_column_plan(
        [variable.name for variable in group.get_all_variables()],
        branches,
        _get_optional_variable_names(group),
    )
    compiled_query = CompiledQuery(
        query=_render_query(branches, column_plan),
        parameters=state.allocator.parameters,
        column_plan=column_plan,
        shape_name=get_shape_name(shape),
    )
    logger.debug(
        "Compiled %s group into Cypher:\n%s", compiled_query.shape_name, compiled_query.query
    )
    return compiled_query


def emit_union(
    groups: Sequence[PatternGroup], settings: PushdownSettings = DEFAULT_SETTINGS
) -> CompiledQuery:
    """Return a CompiledQuery returning the rows of every group, combined with UNION ALL.

    Each group is classified and emitted independently. Variables missing from some of the
    groups are returned as nulls in their branches, and are therefore nullable.

    Raises:
        UnsupportedShape: if any of the groups is Unsupported
        UnsupportedFilterKind: if a filter of any group has no Cypher translation
    """
    if not groups:
        raise AssertionError("Expected at least one group to combine, got: {}".format(groups))

    state = _QueryState(settings)
    branches: List[_Branch] = []
    optional_variable_names: Set[str] = set()
    for group in groups:
        branches.extend(_emit_shape_branches(classify(group, settings=settings), group, state))
        optional_variable_names.update(_get_optional_variable_names(group))

    variable_names = list(
        funcy.distinct(
            variable.name for group in groups for variable in group.get_all_variables()
        )
    )
    column_plan = _make_column_plan(variable_names, branches, frozenset(optional_variable_names))
    compiled_query = CompiledQuery(
        query=_render_query(branches, column_plan),
        parameters=state.allocator.parameters,
        column_plan=column_plan,
        shape_name="Union",
    )
    logger.debug("Compiled union of %d groups into Cypher:\n%s", len(groups), compiled_query.query)
    return compiled_query


def emit_aggregation(
    shape: Shape,
    group: PatternGroup,
    group_by: Sequence[Variable],
    aggregates: Sequence[Aggregate],
    settings: PushdownSettings = DEFAULT_SETTINGS,
) -> CompiledQuery:
    """Return a CompiledQuery computing grouped aggregates over the classified group's solutions.

    The query returns one column per grouping variable, followed by one column per aggregate.
    Rows are grouped by the values of the grouping variables. Without grouping variables, the
    query returns exactly one row, even if the group has no solutions.

    Args:
        shape: the Shape of the group, as returned by classify()
        group: the validated PatternGroup the shape was computed from
        group_by: variables of the group whose values identify each group of solutions
        aggregates: Aggregates to compute over each group of solutions
        settings: PushdownSettings describing how facts are laid out in the graph

    Returns:
        CompiledQuery whose column plan binds the grouping variables and the aggregate results

    Raises:
        UnsupportedShape: if the shape is Unsupported, if its query needs more than one branch,
                          or if a numeric aggregate is computed over values that are not literals
        UnsupportedFilterKind: if a filter has no Cypher translation
    """
    state = _QueryState(settings)
    branches = _emit_shape_branches(shape, group, state)
    if len(branches) != 1:
        raise UnsupportedShape(
            "Aggregates are only computed natively over single-branch queries, but the {} group "
            "needs {} branches.".format(get_shape_name(shape), len(branches))
        )
    branch = funcy.first(branches)

    columns: List[ColumnSpec] = []
    if group_by:
        group_by_plan = _make_column_plan(
            [variable.name for variable in group_by], branches, _get_optional_variable_names(group)
        )
        columns.extend(group_by_plan.columns)
    aggregate_expressions = {}
    for aggregate in aggregates:
        result_name = aggregate.result.name
        aggregate_expressions[result_name] = _render_aggregate(aggregate, branch)
        columns.append(
            ColumnSpec(result_name, result_name, ColumnKind.LITERAL, nullable=aggregate.is_nullable)
        )

    column_plan = ColumnPlan(tuple(columns))
    compiled_query = CompiledQuery(
        query=_render_branch(branch, column_plan, aggregate_expressions),
        parameters=state.allocator.parameters,
        column_plan=column_plan,
        shape_name=get_shape_name(shape),
    )
    logger.debug(
        "Compiled aggregation over %s group into Cypher:\n%s",
        compiled_query.shape_name,
        compiled_query.query,
    )
    return compiled_query
