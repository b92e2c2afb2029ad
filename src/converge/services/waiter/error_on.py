"""
Error-on rules: fail-fast predicates evaluated against the latest snapshot.

A rule either matches a field value or a status condition. Rules are stateless
between snapshots; one match is enough to abort.
"""

import logging
import re
from dataclasses import dataclass
from typing import Any, Dict, Optional, Sequence, Union

from converge.core.errors import AbortError, MatchTypeError

from .matchers import VALUE_TYPE_REGEX, compile_pattern, value_to_string
from .path import PathExpression, parse, walk

logger = logging.getLogger(__name__)

CONDITIONS_PATH = parse("status.conditions")


@dataclass(frozen=True)
class FieldRule:
    """Matches a field value; ``eq`` is exact equality, ``*`` included."""

    key: str
    path: PathExpression
    value: str
    pattern: "re.Pattern[str]"
    message: Optional[str] = None

    @classmethod
    def build(
        cls,
        key: str,
        value: str,
        value_type: str = VALUE_TYPE_REGEX,
        message: Optional[str] = None,
    ) -> "FieldRule":
        try:
            pattern = compile_pattern(value, value_type, wildcard=False)
        except re.error as e:
            raise ValueError(f"error_on: invalid regex {value!r}: {e}") from e
        return cls(key=key, path=parse(key), value=value, pattern=pattern, message=message)

    def check(self, obj: Dict[str, Any], resource_name: str) -> Optional[AbortError]:
        found_value, found = walk(self.path, obj)
        if not found or found_value is None:
            return None
        try:
            observed = value_to_string(found_value, shortest_floats=True)
        except MatchTypeError:
            logger.debug(f"error_on: {self.key} is not a scalar, skipping")
            return None
        if self.pattern.search(observed) is None:
            return None
        return AbortError(
            resource=resource_name,
            key=self.key,
            matched_value=observed,
            pattern=self.value,
            custom_message=self.message,
        )


@dataclass(frozen=True)
class ConditionRule:
    """Matches a ``status.conditions`` entry; an empty type or status matches any."""

    type: str = ""
    status: str = ""
    message: Optional[str] = None

    def check(self, obj: Dict[str, Any], resource_name: str) -> Optional[AbortError]:
        conditions, found = walk(CONDITIONS_PATH, obj)
        if not found or not isinstance(conditions, list):
            return None
        for entry in conditions:
            if not isinstance(entry, dict):
                continue
            cond_type = str(entry.get("type", ""))
            cond_status = str(entry.get("status", ""))
            if (not self.type or cond_type == self.type) and (
                not self.status or cond_status == self.status
            ):
                return AbortError(
                    resource=resource_name,
                    key=f"status.conditions[type={cond_type}]",
                    matched_value=cond_status,
                    pattern=f"type={self.type or '*'} status={self.status or '*'}",
                    custom_message=self.message
                    or (
                        f"error condition met for {resource_name}: condition type={cond_type} "
                        f"status={cond_status} reason={entry.get('reason', '')} "
                        f"message={entry.get('message', '')}"
                    ),
                )
        return None


ErrorOnRule = Union[FieldRule, ConditionRule]


def first_match(
    rules: Sequence[ErrorOnRule], obj: Dict[str, Any], resource_name: str
) -> Optional[AbortError]:
    """Return the abort error of the first rule that matches ``obj``, if any."""
    for rule in rules:
        abort = rule.check(obj, resource_name)
        if abort is not None:
            return abort
    return None
