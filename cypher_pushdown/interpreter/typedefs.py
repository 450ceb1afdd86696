# Copyright 2020-present Kensho Technologies, LLC.
from typing import Any, Callable, Dict, Iterable, Mapping, Optional

from ..compiler.expressions import FilterExpression
from ..compiler.patterns import RdfValue, TriplePattern


# Variable name -> bound value. Unbound variables are absent.
Bindings = Dict[str, RdfValue]

# The per-fact collaborator: given a pattern, return one binding of the pattern's variables
# per matching fact.
ForEachMatch = Callable[[TriplePattern], Iterable[Mapping[str, RdfValue]]]

# Implementation of a named filter function. It receives the argument values, with None for
# unbound variables, and returns True, False or None for "unknown".
ExtensionFunction = Callable[..., Optional[bool]]
ExtensionFunctions = Mapping[str, ExtensionFunction]

FilterEvaluatorFunc = Callable[[FilterExpression, Mapping[str, RdfValue], ExtensionFunctions], Any]
