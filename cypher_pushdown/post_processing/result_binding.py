# Copyright 2019-present Kensho Technologies, LLC.
"""Map the rows of a compiled query back onto variable bindings."""
from typing import Any, Dict, Iterable, Iterator, Mapping, Optional

from ..compiler.cypher_query import ColumnKind, ColumnPlan, ColumnSpec
from ..compiler.patterns import EntityRef, RdfValue
from ..deserialization import deserialize_literal
from ..exceptions import BindingMismatch


ENTITY_MAP_KEY = "uri"


def _is_entity_cell(value: Any) -> bool:
    """Return True if the cell of a union-typed column holds an entity."""
    return isinstance(value, EntityRef) or (
        isinstance(value, Mapping) and ENTITY_MAP_KEY in value
    )


def _bind_entity(value: Any, column: ColumnSpec) -> EntityRef:
    """Convert an entity or predicate cell into an EntityRef."""
    if isinstance(value, EntityRef):
        return value
    elif isinstance(value, Mapping) and ENTITY_MAP_KEY in value:
        return EntityRef(value[ENTITY_MAP_KEY])
    elif isinstance(value, str):
        return EntityRef(value)
    else:
        raise BindingMismatch(
            "Expected an entity identifier in column {}, got: {} {}".format(
                column.column_name, type(value).__name__, value
            )
        )


def _bind_literal(value: Any, datatype: Optional[str], column: ColumnSpec) -> RdfValue:
    """Convert a literal cell and its stored datatype into a Literal."""
    try:
        return deserialize_literal(value, datatype)
    except ValueError as e:
        raise BindingMismatch(
            "Could not read the value {} of column {} as a literal of datatype {}.".format(
                repr(value), column.column_name, datatype
            )
        ) from e


def _bind_cell(row: Mapping[str, Any], column: ColumnSpec) -> Optional[RdfValue]:
    """Return the value the row binds through the column, or None if it leaves it unbound."""
    value = row[column.column_name]
    if value is None:
        if not column.nullable:
            raise BindingMismatch(
                "Column {} is not nullable, but the row has no value for it: {}".format(
                    column.column_name, row
                )
            )
        return None

    datatype = row[column.datatype_column] if column.datatype_column is not None else None
    if column.needs_post_processing:
        # The cell itself tells whether the union-typed column holds an entity or a literal.
        if _is_entity_cell(value):
            return _bind_entity(value, column)
        return _bind_literal(value, datatype, column)
    elif column.kind in (ColumnKind.ENTITY, ColumnKind.PREDICATE):
        return _bind_entity(value, column)
    elif column.kind == ColumnKind.LITERAL:
        return _bind_literal(value, datatype, column)
    else:
        raise AssertionError(
            "Unreachable code reached: column {} binds no value.".format(column)
        )


##############
# Public API #
##############


def bind_row(row: Mapping[str, Any], column_plan: ColumnPlan) -> Dict[str, RdfValue]:
    """Return the variable bindings of a single row.

    Args:
        row: mapping from column name to cell value, as returned by the execution function
        column_plan: ColumnPlan of the query that produced the row

    Returns:
        dict, variable name -> Literal or EntityRef. Variables left unbound by the row,
        such as those of unmatched optional groups, are absent.

    Raises:
        BindingMismatch: if the row's columns disagree with the plan
    """
    expected_columns = set(column_plan.result_column_names)
    if set(row.keys()) != expected_columns:
        raise BindingMismatch(
            "Expected row with columns {}, got: {}".format(sorted(expected_columns), sorted(row))
        )

    bindings: Dict[str, RdfValue] = {}
    for column in column_plan.columns:
        if column.kind == ColumnKind.EXISTENCE:
            continue
        value = _bind_cell(row, column)
        if value is not None:
            bindings[column.variable_name] = value
    return bindings


def bind_rows(
    rows: Iterable[Mapping[str, Any]], column_plan: ColumnPlan
) -> Iterator[Dict[str, RdfValue]]:
    """Lazily bind every row, consuming the rows once."""
    for row in rows:
        yield bind_row(row, column_plan)
