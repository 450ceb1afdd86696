# Copyright 2020-present Kensho Technologies, LLC.
from typing import Any, Callable, Dict, Iterable, Mapping


# One result row: column name -> cell value. Cells are None, literal scalars, or entity tokens.
QueryRow = Mapping[str, Any]

# The execution collaborator: run a Cypher query with the given parameters, and return its rows.
# It raises ExecutionFailure if the database reports an error.
QueryExecutor = Callable[[str, Dict[str, Any]], Iterable[QueryRow]]
