# Copyright 2019-present Kensho Technologies, LLC.
"""Helpers for rendering safe Cypher fragments."""
import json
from typing import Any, Dict


def quote_identifier(value: str) -> str:
    """Return the value as a backtick-quoted Cypher identifier (labels, types, property keys)."""
    if not isinstance(value, str):
        raise TypeError(
            "Expected identifier as string, got: {} {}".format(type(value).__name__, value)
        )
    # Backticks inside a quoted identifier are escaped by doubling them.
    return "`" + value.replace("`", "``").replace("\0", "") + "`"


def quote_string(value: str) -> str:
    """Return the value as a Cypher string literal."""
    # Using JSON encoding means that all unicode literals and special chars
    # (e.g. newlines and backslashes) are replaced by appropriate escape sequences.
    return json.dumps(value)


def get_property_accessor(node_name: str, property_name: str) -> str:
    """Return the Cypher expression reading a property of the named node."""
    return "{}.{}".format(node_name, quote_identifier(property_name))


class ParameterAllocator(object):
    """Hand out query parameter names that are unique within one compiled query."""

    def __init__(self, prefix: str = "p") -> None:
        """Create an allocator with no parameters."""
        self._prefix = prefix
        self._parameters: Dict[str, Any] = {}

    def allocate(self, value: Any) -> str:
        """Bind the value to a fresh parameter, and return the "$name" reference to it."""
        name = "{}{}".format(self._prefix, len(self._parameters))
        if name in self._parameters:
            raise AssertionError(
                "Parameter name {} was allocated twice: {}".format(name, self._parameters)
            )
        self._parameters[name] = value
        return "$" + name

    @property
    def parameters(self) -> Dict[str, Any]:
        """Return a copy of every parameter allocated so far."""
        return dict(self._parameters)
