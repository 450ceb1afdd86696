# Copyright 2017-present Kensho Technologies, LLC.
"""Commonly-used functions and data types from this package."""
from .compiler import (  # noqa
    AddFact,
    Aggregate,
    Bound,
    ColumnKind,
    ColumnPlan,
    ColumnSpec,
    Comparison,
    CompiledQuery,
    Conjunction,
    Disjunction,
    EntityRef,
    FunctionCall,
    Literal,
    Negation,
    PatternGroup,
    RemoveFact,
    StringPredicate,
    TriplePattern,
    TypeTest,
    Variable,
    classify,
    compile_aggregation,
    compile_pattern_group,
    compile_pending_writes,
    compile_union,
)
from .exceptions import (  # noqa
    BindingMismatch,
    ExecutionFailure,
    MalformedPattern,
    PushdownCompilerError,
    UnsupportedFilterKind,
    UnsupportedShape,
)
from .execution import make_falkordb_executor  # noqa
from .interpreter import FallbackEvaluator  # noqa
from .post_processing import bind_row, bind_rows  # noqa
from .query_running import PushdownQueryRunner  # noqa
from .settings import DEFAULT_SETTINGS, PushdownSettings  # noqa
from .write_buffer import WriteBuffer  # noqa


__package_name__ = "cypher-pushdown-compiler"
__version__ = "1.0.0"
