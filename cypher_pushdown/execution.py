# Copyright 2020-present Kensho Technologies, LLC.
"""Adapt a FalkorDB graph to the query execution function used by the compiler."""
import logging
from typing import Any, Dict, List, Optional, Sequence

from falkordb import Graph, Node
from redis.exceptions import RedisError

from .compiler.patterns import EntityRef
from .exceptions import ExecutionFailure
from .settings import DEFAULT_SETTINGS, PushdownSettings
from .typedefs import QueryExecutor


logger = logging.getLogger(__name__)


def _get_column_names(header: Sequence[Any]) -> List[str]:
    """Return the column names of a result header."""
    # Each header entry is a [column type, column name] pair.
    column_names = []
    for column in header:
        if isinstance(column, (list, tuple)):
            column = column[1]
        if isinstance(column, bytes):
            column = column.decode("utf-8")
        column_names.append(column)
    return column_names


def _convert_cell(value: Any, settings: PushdownSettings) -> Any:
    """Replace returned nodes with references to the entities they represent."""
    if isinstance(value, Node):
        uri = value.properties.get(settings.uri_property)
        if uri is None:
            raise ExecutionFailure(
                "Returned node has no {} property, so it does not represent an entity: "
                "{}".format(settings.uri_property, value)
            )
        return EntityRef(uri)
    return value


def make_falkordb_executor(
    graph: Graph, settings: Optional[PushdownSettings] = None
) -> QueryExecutor:
    """Return a function running Cypher queries on the given FalkorDB graph.

    The returned function takes a query string and a dict of parameters, and returns a list
    of rows, each a dict from column name to cell value. Returned nodes become EntityRef values.

    Args:
        graph: FalkorDB Graph, as returned by FalkorDB(...).select_graph(name)
        settings: optional PushdownSettings naming the property that holds entity identifiers

    Returns:
        query execution function
    """
    if settings is None:
        settings = DEFAULT_SETTINGS

    def execute(query: str, parameters: Dict[str, Any]) -> List[Dict[str, Any]]:
        """Run the query and return its rows as dicts."""
        try:
            result = graph.query(query, parameters)
        except RedisError as e:
            raise ExecutionFailure(
                "FalkorDB failed to execute query: {}\n{}".format(e, query)
            ) from e

        column_names = _get_column_names(result.header or [])
        rows = [
            {
                column_name: _convert_cell(value, settings)
                for column_name, value in zip(column_names, result_row)
            }
            for result_row in result.result_set
        ]
        logger.debug("FalkorDB returned %d rows.", len(rows))
        return rows

    return execute
