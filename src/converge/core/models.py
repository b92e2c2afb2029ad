"""Configuration models for waits, error-on rules and timeouts."""

import re
from enum import Enum
from pathlib import Path
from typing import Any, List, Optional

import yaml
from pydantic import BaseModel, Field, field_validator, model_validator

from converge.services.waiter.error_on import ConditionRule, ErrorOnRule, FieldRule
from converge.services.waiter.matchers import ConditionMatcher, Matcher

DEFAULT_TIMEOUT_SECONDS = 10 * 60

_DURATION = re.compile(r"(\d+(?:\.\d+)?)(ms|h|m|s)")
_UNITS = {"ms": 0.001, "s": 1.0, "m": 60.0, "h": 3600.0}


def parse_duration(value: Any) -> float:
    """Parse ``90``, ``"90"``, ``"1m30s"`` or ``"10m"`` into seconds."""
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return float(value)
    if not isinstance(value, str):
        raise ValueError(f"invalid duration {value!r}")
    text = value.strip()
    try:
        return float(text)
    except ValueError:
        pass
    pos = 0
    total = 0.0
    for m in _DURATION.finditer(text):
        if m.start() != pos:
            break
        total += float(m.group(1)) * _UNITS[m.group(2)]
        pos = m.end()
    if pos != len(text) or not text:
        raise ValueError(f"invalid duration {value!r}, expected e.g. '30s', '10m' or '1h30m'")
    return total


class ValueType(str, Enum):
    """How a configured value is compared with a field."""

    EQ = "eq"
    REGEX = "regex"


class Operation(str, Enum):
    """The operation whose timeout bounds a write-then-wait sequence."""

    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"


class DeletePropagation(str, Enum):
    """What happens to a deleted object's dependents."""

    BACKGROUND = "Background"
    FOREGROUND = "Foreground"


class WaitFieldConfig(BaseModel):
    """Wait until the field at ``key`` matches ``value``."""

    key: str
    value: str
    value_type: ValueType = ValueType.EQ

    @model_validator(mode="after")
    def _check_matcher(self) -> "WaitFieldConfig":
        self.to_matcher()
        return self

    def to_matcher(self) -> Matcher:
        return Matcher.build(self.key, self.value, self.value_type.value)


class WaitConditionConfig(BaseModel):
    """Wait until the status condition ``type`` has ``status``."""

    type: str
    status: str

    def to_matcher(self) -> ConditionMatcher:
        return ConditionMatcher(type=self.type, status=self.status)


class WaitConfig(BaseModel):
    """
    The wait block. At most one of ``rollout``, ``condition`` and ``field`` may
    be set; an empty block waits on nothing.
    """

    rollout: bool = False
    condition: List[WaitConditionConfig] = Field(default_factory=list)
    field: List[WaitFieldConfig] = Field(default_factory=list)

    @model_validator(mode="after")
    def _only_one_strategy(self) -> "WaitConfig":
        selected = [
            name
            for name, is_set in (
                ("rollout", self.rollout),
                ("condition", bool(self.condition)),
                ("field", bool(self.field)),
            )
            if is_set
        ]
        if len(selected) > 1:
            raise ValueError(
                f"wait block may set only one of rollout, condition or field, got: {', '.join(selected)}"
            )
        return self

    @property
    def strategy(self) -> Optional[str]:
        if self.rollout:
            return "rollout"
        if self.condition:
            return "condition"
        if self.field:
            return "field"
        return None


class ErrorOnFieldConfig(BaseModel):
    """Abort when the field at ``key`` matches ``value``."""

    key: str
    value: str
    value_type: ValueType = ValueType.REGEX
    message: Optional[str] = None

    @model_validator(mode="after")
    def _check_rule(self) -> "ErrorOnFieldConfig":
        self.to_rule()
        return self

    def to_rule(self) -> FieldRule:
        return FieldRule.build(self.key, self.value, self.value_type.value, self.message)


class ErrorOnConditionConfig(BaseModel):
    """Abort when a status condition matches; an unset type or status matches any."""

    type: Optional[str] = None
    status: Optional[str] = None
    message: Optional[str] = None

    def to_rule(self) -> ConditionRule:
        return ConditionRule(type=self.type or "", status=self.status or "", message=self.message)


class ErrorOnConfig(BaseModel):
    """Fail-fast rules checked while waiting."""

    field: List[ErrorOnFieldConfig] = Field(default_factory=list)
    condition: List[ErrorOnConditionConfig] = Field(default_factory=list)

    def to_rules(self) -> List[ErrorOnRule]:
        rules: List[ErrorOnRule] = [f.to_rule() for f in self.field]
        rules.extend(c.to_rule() for c in self.condition)
        return rules


class Timeouts(BaseModel):
    """Per-operation timeouts, in seconds."""

    create: float = Field(default=DEFAULT_TIMEOUT_SECONDS, gt=0)
    update: float = Field(default=DEFAULT_TIMEOUT_SECONDS, gt=0)
    delete: float = Field(default=DEFAULT_TIMEOUT_SECONDS, gt=0)

    @field_validator("create", "update", "delete", mode="before")
    @classmethod
    def _parse_duration(cls, v: Any) -> float:
        return parse_duration(v)

    def for_operation(self, operation: Operation) -> float:
        return float(getattr(self, Operation(operation).value))


class ManifestWaitConfig(BaseModel):
    """Everything that decides how long and on what an apply waits."""

    wait: Optional[WaitConfig] = None
    error_on: Optional[ErrorOnConfig] = None
    timeouts: Timeouts = Field(default_factory=Timeouts)

    @classmethod
    def from_yaml(cls, path: Path) -> "ManifestWaitConfig":
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
        return cls.model_validate(data)

    def error_on_rules(self) -> List[ErrorOnRule]:
        return self.error_on.to_rules() if self.error_on else []
