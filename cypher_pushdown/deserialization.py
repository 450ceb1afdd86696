# Copyright 2020-present Kensho Technologies, LLC.
"""Convert literal values to and from their stored property representation."""
from datetime import date, datetime
import decimal
from types import MappingProxyType
from typing import Any, Callable, Mapping, Optional, Tuple

from ciso8601 import parse_datetime  # pylint: disable=no-name-in-module

from .compiler.patterns import (
    NATIVE_DATATYPES,
    XSD_DATE,
    XSD_DATETIME,
    XSD_DECIMAL,
    Literal,
    LiteralValueType,
)


def _serialize_date(value: Any) -> str:
    """Serialize a date object to its ISO-8601 representation."""
    # datetime is a subclass of date, but the two are not interchangeable here.
    if type(value) != date:
        raise ValueError(
            "Expected argument to be a python date object. "
            "Got {} of type {} instead.".format(value, type(value))
        )
    return value.isoformat()


def _serialize_datetime(value: Any) -> str:
    """Serialize a datetime object to its ISO-8601 representation."""
    if not isinstance(value, datetime):
        raise ValueError(
            f"Expected a python datetime object. Got {value} of type {type(value)} instead."
        )
    return value.isoformat()


def _serialize_decimal(value: Any) -> str:
    """Serialize a Decimal to its lexical form, without losing precision."""
    if not isinstance(value, (decimal.Decimal, int)) or isinstance(value, bool):
        raise ValueError(
            f"Expected a decimal.Decimal object. Got {value} of type {type(value)} instead."
        )
    return str(value)


def _parse_date_value(value: Any) -> date:
    """Deserialize a date object from its ISO-8601 representation."""
    if type(value) == date:
        return value
    elif isinstance(value, str):
        # ciso8601 only parses into datetime objects, so "YYYY-MM-DD" strings come back as
        # midnight datetimes. Anything with a time component would lose precision.
        dt = parse_datetime(value)  # This will raise ValueError in case of bad ISO 8601 formatting.
        if (
            dt.hour != 0
            or dt.minute != 0
            or dt.second != 0
            or dt.microsecond != 0
            or dt.tzinfo is not None
        ):
            raise ValueError(
                f"Expected an ISO-8601 date string in 'YYYY-MM-DD' format, but got a datetime "
                f"string with a non-empty time component. Received value {repr(value)}."
            )
        return dt.date()
    else:
        raise ValueError(
            f"Expected a date object or its ISO-8601 'YYYY-MM-DD' string representation. "
            f"Got {value} of type {type(value)} instead."
        )


def _parse_datetime_value(value: Any) -> datetime:
    """Deserialize a datetime object from its ISO-8601 representation."""
    if isinstance(value, datetime):
        return value
    elif isinstance(value, str):
        # This will raise ValueError in case of bad ISO 8601 formatting.
        return parse_datetime(value)
    else:
        raise ValueError(
            f"Expected a datetime object or its ISO-8601 string representation. "
            f"Got {value} of type {type(value)} instead."
        )


def _parse_decimal_value(value: Any) -> decimal.Decimal:
    """Deserialize a Decimal from its lexical form."""
    try:
        return decimal.Decimal(value)
    except (decimal.InvalidOperation, TypeError) as e:
        raise ValueError(f"Expected a decimal lexical form, got {repr(value)}.") from e


_SERIALIZATION_FUNCTIONS: Mapping[str, Callable[[Any], str]] = MappingProxyType(
    {
        XSD_DATE: _serialize_date,
        XSD_DATETIME: _serialize_datetime,
        XSD_DECIMAL: _serialize_decimal,
    }
)

_DESERIALIZATION_FUNCTIONS: Mapping[str, Callable[[Any], LiteralValueType]] = MappingProxyType(
    {
        XSD_DATE: _parse_date_value,
        XSD_DATETIME: _parse_datetime_value,
        XSD_DECIMAL: _parse_decimal_value,
    }
)


def serialize_literal(literal: Literal) -> Tuple[Any, Optional[str]]:
    """Return the stored property value of the literal, and its stored datatype if needed.

    Literals of native datatypes (strings, integers, doubles and booleans) are stored as-is and
    need no datatype companion. Every other literal is stored as its lexical form, together with
    its datatype IRI.

    Args:
        literal: the Literal to store

    Returns:
        tuple (stored value, datatype IRI or None)

    Raises:
        ValueError: if the literal's value does not match its datatype
    """
    if literal.datatype in NATIVE_DATATYPES:
        return literal.value, None
    elif isinstance(literal.value, str):
        # Already in lexical form.
        return literal.value, literal.datatype

    serialization_function = _SERIALIZATION_FUNCTIONS.get(literal.datatype, str)
    return serialization_function(literal.value), literal.datatype


def deserialize_literal(value: Any, datatype: Optional[str] = None) -> Literal:
    """Rebuild a Literal from a stored property value and its optional stored datatype.

    Below are examples of stored representations:
        no datatype: "Hello", 42, 4.5, True
        XSD_DATE: "2018-02-01"
        XSD_DATETIME: "2018-02-01T05:11:54"
        XSD_DECIMAL: "5.00000000000000000000000000001"

    Literals with a stored datatype that has no known parser keep their lexical form.

    Raises:
        ValueError: if the stored value is not a valid lexical form of its datatype
    """
    if datatype is None or datatype in NATIVE_DATATYPES:
        return Literal(value, datatype)

    deserialization_function = _DESERIALIZATION_FUNCTIONS.get(datatype)
    if deserialization_function is None:
        return Literal(value, datatype)
    return Literal(deserialization_function(value), datatype)
