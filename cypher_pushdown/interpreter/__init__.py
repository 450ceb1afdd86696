# Copyright 2020-present Kensho Technologies, LLC.
"""Row-at-a-time evaluation of pattern groups, for groups the compiler cannot push down.

The evaluator never talks to the graph database directly. It calls a per-fact collaborator
once per pattern and partial solution, joins the results in nested loops, left-joins optional
groups, and applies filters with the same three-valued logic Cypher uses: a filter keeps a
solution only if it is true, and not if it is false or unknown because of unbound variables.
"""
from .aggregation import aggregate_solutions  # noqa
from .expression_evaluation import evaluate_filter, passes_filter  # noqa
from .fallback import FallbackEvaluator  # noqa
from .typedefs import Bindings, ExtensionFunction, ExtensionFunctions, ForEachMatch  # noqa
