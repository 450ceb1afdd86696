# Copyright 2017-present Kensho Technologies, LLC.
"""Common helper objects and methods."""
import string

from ..exceptions import MalformedPattern


VARIABLE_ALLOWED_CHARS = frozenset(string.ascii_letters + string.digits + "_")


def validate_safe_string(value: str, value_description: str = "string") -> None:
    """Ensure that the provided string not have illegal characters."""
    if not isinstance(value, str):
        raise MalformedPattern(
            "Expected {} to be a string, got: {} {}".format(
                value_description, type(value).__name__, value
            )
        )

    if not value:
        raise MalformedPattern("Empty {}s are not allowed!".format(value_description))

    if value[0] in string.digits:
        raise MalformedPattern(
            "Encountered invalid {}: {}. It cannot start with a "
            "digit.".format(value_description, value)
        )

    # set(value) is used instead of frozenset(value) to avoid printing 'frozenset' in error message.
    disallowed_chars = set(value) - VARIABLE_ALLOWED_CHARS
    if disallowed_chars:
        raise MalformedPattern(
            "Encountered illegal characters {} in {}: {}. It is only "
            "allowed to have upper and lower case letters, "
            "digits and underscores.".format(disallowed_chars, value_description, value)
        )
