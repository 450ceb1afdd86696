# Copyright 2017-present Kensho Technologies, LLC.
class PushdownCompilerError(Exception):
    """Generic error when compiling or running triple-pattern queries."""


class UnsupportedShape(PushdownCompilerError):
    """Raised when a pattern group matches none of the shapes that can be pushed down.

    This is a routing signal rather than a failure: the group must be evaluated
    row-at-a-time through the fallback evaluator instead.
    """


class UnsupportedFilterKind(UnsupportedShape):
    """Raised when a filter expression uses a construct that has no Cypher translation.

    The whole enclosing pattern group is then treated as unsupported, never partially emitted.
    """


class MalformedPattern(PushdownCompilerError):
    """Raised when a pattern group is invalid and can never be evaluated.

    For example:
    - the pattern group, or one of its optional groups, has no patterns;
    - a filter references a variable that does not appear in any pattern;
    - a variable name is not a safe identifier.
    """


class ExecutionFailure(PushdownCompilerError):
    """Raised when the query execution collaborator reports an error.

    Pending writes are preserved when this happens, so the operation can be retried.
    """


class BindingMismatch(PushdownCompilerError):
    """Raised when a result row does not agree with the column plan it is bound against.

    This always indicates a bug in the contract between the emitter and the result binder.
    """
