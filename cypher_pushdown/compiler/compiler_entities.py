# Copyright 2017-present Kensho Technologies, LLC.
"""Base classes for compiler entity objects like filter expressions."""
from abc import ABCMeta, abstractmethod
from typing import Any, Tuple


class CompilerEntity(object, metaclass=ABCMeta):
    """An abstract compiler entity. Can represent things like filter expressions."""

    __slots__ = ("_print_args", "_print_kwargs")

    def __init__(self, *args: Any, **kwargs: Any) -> None:
        """Construct a new CompilerEntity."""
        self._print_args = args
        self._print_kwargs = kwargs

    @abstractmethod
    def validate(self) -> None:
        """Ensure that the CompilerEntity is valid."""
        raise NotImplementedError()

    def __str__(self) -> str:
        """Return a human-readable unicode representation of this CompilerEntity."""
        printed_args = []
        if self._print_args:
            printed_args.append("{args}")
        if self._print_kwargs:
            printed_args.append("{kwargs}")

        template = "{cls_name}(" + ", ".join(printed_args) + ")"
        return template.format(
            cls_name=type(self).__name__, args=self._print_args, kwargs=self._print_kwargs
        )

    def __repr__(self) -> str:
        """Return a human-readable str representation of the CompilerEntity object."""
        return self.__str__()

    def _get_identity(self) -> Tuple[Any, ...]:
        """Return the values that determine equality and the hash of this CompilerEntity."""
        return (type(self), self._print_args, tuple(sorted(self._print_kwargs.items())))

    # pylint: disable=protected-access
    def __eq__(self, other: Any) -> bool:
        """Return True if the CompilerEntity objects are equal, and False otherwise."""
        if type(self) != type(other):
            return False

        return self._get_identity() == other._get_identity()

    # pylint: enable=protected-access

    def __ne__(self, other: Any) -> bool:
        """Check another object for non-equality against this one."""
        return not self.__eq__(other)

    def __hash__(self) -> int:
        """Return the hash of this CompilerEntity, consistent with its equality."""
        return hash(self._get_identity())
