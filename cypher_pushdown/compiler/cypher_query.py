# Copyright 2019-present Kensho Technologies, LLC.
"""Compiled Cypher queries and the column plans describing their results."""
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional, Tuple


class ColumnKind(Enum):
    """How the cells of a result column must be interpreted."""

    # Marker column of an existence check. It binds no variable.
    EXISTENCE = "existence"
    # The cell holds the identifier of an entity.
    ENTITY = "entity"
    # The cell holds a predicate identifier: a relationship type, a property key or a label.
    PREDICATE = "predicate"
    # The cell holds a literal value.
    LITERAL = "literal"
    # The cell holds either a literal value or an entity, depending on its representation.
    LITERAL_OR_ENTITY = "literal_or_entity"


@dataclass(frozen=True)
class ColumnSpec:
    """One expected result column.

    Attributes:
        column_name: name of the column in the returned rows
        variable_name: name of the variable the column binds, or None for EXISTENCE columns
        kind: ColumnKind describing how to read the column's cells
        nullable: whether an empty cell is legal, leaving the variable unbound
        datatype_column: name of the companion column holding the literal's stored datatype,
                         or None if the column has no such companion
    """

    column_name: str
    variable_name: Optional[str]
    kind: ColumnKind
    nullable: bool = False
    datatype_column: Optional[str] = None

    def __post_init__(self) -> None:
        """Validate the column specification."""
        if (self.kind == ColumnKind.EXISTENCE) != (self.variable_name is None):
            raise AssertionError(
                "Existence columns, and only existence columns, must bind no variable: "
                "{}".format(self)
            )
        if self.datatype_column is not None and self.kind not in (
            ColumnKind.LITERAL,
            ColumnKind.LITERAL_OR_ENTITY,
        ):
            raise AssertionError(
                "Only columns that may hold literals can have a datatype column: {}".format(self)
            )

    @property
    def needs_post_processing(self) -> bool:
        """Return True if the binder must inspect the cell to tell a literal from an entity."""
        return self.kind == ColumnKind.LITERAL_OR_ENTITY


@dataclass(frozen=True)
class ColumnPlan:
    """The ordered list of columns a compiled query returns."""

    columns: Tuple[ColumnSpec, ...]

    def __post_init__(self) -> None:
        """Ensure no two columns and no two variables collide."""
        object.__setattr__(self, "columns", tuple(self.columns))
        all_names = [column.column_name for column in self.columns]
        all_names.extend(
            column.datatype_column for column in self.columns if column.datatype_column
        )
        if len(all_names) != len(set(all_names)):
            raise AssertionError("Duplicate column names in column plan: {}".format(all_names))

        variable_names = [
            column.variable_name for column in self.columns if column.variable_name is not None
        ]
        if len(variable_names) != len(set(variable_names)):
            raise AssertionError(
                "Duplicate variables in column plan: {}".format(variable_names)
            )

    @property
    def result_column_names(self) -> Tuple[str, ...]:
        """Return the names of every column the rows must contain, in order."""
        names = []
        for column in self.columns:
            names.append(column.column_name)
            if column.datatype_column is not None:
                names.append(column.datatype_column)
        return tuple(names)


@dataclass(frozen=True)
class CompiledQuery:
    """A Cypher query string, its parameters, and the plan for binding its results.

    Attributes:
        query: Cypher query string with "$name" placeholders
        parameters: mapping from placeholder name (without "$") to its value
        column_plan: ColumnPlan describing the returned columns
        shape_name: name of the shape the query was compiled from, for logging
    """

    query: str
    parameters: Dict[str, Any] = field(default_factory=dict)
    column_plan: ColumnPlan = field(default_factory=lambda: ColumnPlan(()))
    shape_name: Optional[str] = None
