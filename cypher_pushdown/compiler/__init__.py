# Copyright 2017-present Kensho Technologies, LLC.
from .aggregation import Aggregate, validate_aggregation  # noqa
from .classifier import classify  # noqa
from .common import (  # noqa
    compile_aggregation,
    compile_pattern_group,
    compile_pending_writes,
    compile_union,
)
from .cypher_query import ColumnKind, ColumnPlan, ColumnSpec, CompiledQuery  # noqa
from .expressions import (  # noqa
    Bound,
    Comparison,
    Conjunction,
    Disjunction,
    FilterExpression,
    FunctionCall,
    Negation,
    StringPredicate,
    TypeTest,
)
from .filters import FilterTranslation, VariableReference, translate_filter  # noqa
from .patterns import (  # noqa
    AddFact,
    EntityRef,
    Literal,
    PatternGroup,
    PendingWrite,
    RdfValue,
    RemoveFact,
    TriplePattern,
    Variable,
    validate_pattern_group,
)
