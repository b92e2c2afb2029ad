"""Field and condition matchers used by the waiters and the error-on rules."""

import re
from dataclasses import dataclass
from typing import Any

from converge.core.errors import MatchTypeError

from .path import PathExpression, parse

VALUE_TYPE_EQ = "eq"
VALUE_TYPE_REGEX = "regex"

# "*" means "the field is present, whatever its value"
WILDCARD = "*"
WILDCARD_PATTERN = "(.*)?"


def value_to_string(value: Any, shortest_floats: bool = False) -> str:
    """
    Render a scalar the way matchers compare it.

    Strings pass through, booleans become ``true``/``false`` and integral
    numbers render without a decimal point. Other numbers use ``%f``, or their
    shortest round-trip form when ``shortest_floats`` is set (``3.5``, not
    ``3.500000``). Anything else raises MatchTypeError.
    """
    if isinstance(value, str):
        return value
    # bool is an int subclass, so it has to be checked first
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, int):
        return str(value)
    if isinstance(value, float):
        if value.is_integer():
            return str(int(value))
        return repr(value) if shortest_floats else "%f" % value
    raise MatchTypeError(value)


def compile_pattern(
    value: str, value_type: str = VALUE_TYPE_EQ, wildcard: bool = True
) -> "re.Pattern[str]":
    """
    Turn a configured value into the regex a Matcher tests with.

    With ``wildcard`` unset, ``*`` is an ordinary value: a literal for ``eq``
    and an invalid pattern for ``regex``.
    """
    if value_type not in (VALUE_TYPE_EQ, VALUE_TYPE_REGEX):
        raise ValueError(f"unsupported value_type {value_type!r}, expected 'eq' or 'regex'")
    if wildcard and value == WILDCARD:
        return re.compile(WILDCARD_PATTERN)
    if value_type == VALUE_TYPE_EQ:
        # \Z, unlike $, does not match before a trailing newline
        return re.compile("^" + re.escape(value) + r"\Z")
    return re.compile(value)


@dataclass(frozen=True)
class Matcher:
    """A parsed field path plus the regex its value must match."""

    path: PathExpression
    predicate: "re.Pattern[str]"

    @classmethod
    def build(cls, key: str, value: str, value_type: str = VALUE_TYPE_EQ) -> "Matcher":
        try:
            predicate = compile_pattern(value, value_type)
        except re.error as e:
            raise ValueError(f"invalid regular expression {value!r}: {e}") from e
        return cls(path=parse(key), predicate=predicate)

    def matches(self, value: Any) -> bool:
        return self.predicate.search(value_to_string(value)) is not None


@dataclass(frozen=True)
class ConditionMatcher:
    """A (type, status) pair looked up in ``status.conditions``."""

    type: str
    status: str
